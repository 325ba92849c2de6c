"""
Tests for aggregation and the full round computation.
"""

import json
import math
import random

import pandas as pd
import pytest

from fairrank.scoring.aggregator import aggregate_across_judges
from fairrank.scoring.models import (
    ConfigurationError,
    Criterion,
    Evaluation,
    JudgeAssignment,
    NormalizationConfig,
    NormalizedEvaluation,
    ValidationError,
)
from fairrank.scoring.pipeline import compute_round, judge_weights_from_assignments, main


CRITERIA = [Criterion("c1", 100, weight=1.0, display_order=1)]

# j1: A=80, B=60, C=70; j2: A=85, B=65, C=80
SCENARIO = [
    Evaluation("j1", "A", "R1", {"c1": 80}),
    Evaluation("j1", "B", "R1", {"c1": 60}),
    Evaluation("j1", "C", "R1", {"c1": 70}),
    Evaluation("j2", "A", "R1", {"c1": 85}),
    Evaluation("j2", "B", "R1", {"c1": 65}),
    Evaluation("j2", "C", "R1", {"c1": 80}),
]


def normalized(judge_id, team_id, judge_total, weighted, raw_total):
    return NormalizedEvaluation(
        judge_id=judge_id,
        team_id=team_id,
        round_id="R1",
        per_criterion_z=dict(weighted),
        per_criterion_weighted_z=dict(weighted),
        judge_total=judge_total,
        raw_total=raw_total,
    )


class TestAggregateAcrossJudges:
    """Tests for aggregate_across_judges function."""

    CRITERIA = [Criterion("c1", 10, display_order=1), Criterion("c2", 10, display_order=2)]
    NORMALIZED = [
        normalized("j1", "A", 1.5, {"c1": 1.0, "c2": 0.5}, 16),
        normalized("j2", "A", -0.5, {"c1": 0.25, "c2": -0.75}, 10),
        normalized("j3", "A", 1.0, {"c1": 0.5, "c2": 0.5}, 13),
        normalized("j1", "B", 0.5, {"c1": 0.5, "c2": 0.0}, 12),
    ]

    def test_sums_judge_totals(self):
        results = {r.team_id: r for r in aggregate_across_judges(self.NORMALIZED, self.CRITERIA)}
        assert results["A"].aggregated_score == 2.0
        assert results["A"].judge_count == 3
        assert results["B"].aggregated_score == 0.5

    def test_per_criterion_aggregate_adds_up(self):
        result = aggregate_across_judges(self.NORMALIZED, self.CRITERIA)[0]
        assert result.per_criterion_aggregate == {"c1": 1.75, "c2": 0.25}
        assert math.fsum(result.per_criterion_aggregate.values()) == pytest.approx(result.aggregated_score)

    def test_raw_total_mean_and_median(self):
        result = aggregate_across_judges(self.NORMALIZED, self.CRITERIA)[0]
        assert result.mean_raw_total == 13.0
        assert result.median_raw_total == 13.0

    def test_judge_weights(self):
        results = aggregate_across_judges(self.NORMALIZED, self.CRITERIA, judge_weights={"j1": 2.0})
        assert results[0].aggregated_score == 3.5
        assert results[0].per_criterion_aggregate["c1"] == 2.75

    def test_sorted_by_team(self):
        results = aggregate_across_judges(list(reversed(self.NORMALIZED)), self.CRITERIA)
        assert [r.team_id for r in results] == ["A", "B"]


class TestComputeRound:
    """Tests for compute_round function."""

    def test_ranking_corrects_for_judge_bias(self):
        computation = compute_round(SCENARIO, CRITERIA)
        assert [r.team_id for r in computation.ranked] == ["A", "C", "B"]
        assert [r.rank for r in computation.ranked] == [1, 2, 3]
        assert computation.round_id == "R1"

    def test_zero_variance_round_ties_every_team(self):
        criteria = [Criterion("c1", 10, display_order=1), Criterion("c2", 10, display_order=2)]
        evaluations = [
            Evaluation("j1", team_id, "R1", {"c1": 7, "c2": 4})
            for team_id in ["T1", "T2", "T3"]
        ]
        computation = compute_round(evaluations, criteria)
        assert len(computation.ranked) == 3
        assert all(n.per_criterion_z == {"c1": 0.0, "c2": 0.0} for n in computation.normalized)
        assert all(r.is_tied and r.rank == 1 for r in computation.ranked)
        assert [r.team_id for r in computation.ranked] == ["T1", "T2", "T3"]

    def test_recomputation_is_identical(self):
        first = compute_round(SCENARIO, CRITERIA)
        second = compute_round(SCENARIO, CRITERIA)
        assert first.ranked == second.ranked
        assert first.results_frame().equals(second.results_frame())

    def test_input_order_does_not_matter(self):
        criteria = [Criterion("c1", 100), Criterion("c2", 10, weight=0.5, display_order=1)]
        evaluations = [
            Evaluation(e.judge_id, e.team_id, e.round_id, {**e.scores, "c2": e.scores["c1"] % 7})
            for e in SCENARIO
        ]
        shuffled = list(evaluations)
        random.Random(3).shuffle(shuffled)

        forward = compute_round(evaluations, criteria)
        backward = compute_round(shuffled, list(reversed(criteria)))
        assert forward.ranked == backward.ranked
        assert forward.normalized == backward.normalized

    def test_drafts_are_skipped(self):
        evaluations = SCENARIO + [Evaluation("j3", "A", "R1", {"c1": "pending"}, is_draft=True)]
        computation = compute_round(evaluations, CRITERIA)
        assert {n.judge_id for n in computation.normalized} == {"j1", "j2"}

    def test_only_drafts_is_an_error(self):
        evaluations = [Evaluation("j1", "A", "R1", {"c1": 80}, is_draft=True)]
        with pytest.raises(ValidationError) as exc_info:
            compute_round(evaluations, CRITERIA)
        assert exc_info.value.violations[0].message == "No submitted evaluations found"

    def test_malformed_input_produces_nothing(self):
        evaluations = SCENARIO + [Evaluation("j3", "A", "R1", {"c1": 80, "rank": 1})]
        with pytest.raises(ValidationError):
            compute_round(evaluations, CRITERIA)

    def test_robust_mad(self):
        config = NormalizationConfig.build(method="ROBUST_MAD")
        computation = compute_round(SCENARIO, CRITERIA, config)
        assert computation.method.value == "ROBUST_MAD"
        assert computation.ranked[0].team_id == "A"

    def test_judge_weights(self):
        # Only j2 counts: A (85) > C (80) > B (65)
        config = NormalizationConfig.build(judge_weights={"j1": 1e-9})
        computation = compute_round(SCENARIO, CRITERIA, config)
        assert [r.team_id for r in computation.ranked] == ["A", "C", "B"]

    def test_bad_judge_weight(self):
        with pytest.raises(ConfigurationError):
            NormalizationConfig.build(judge_weights={"j1": 0})

    def test_unknown_method(self):
        with pytest.raises(ConfigurationError):
            NormalizationConfig.build(method="PERCENTILE")

    def test_judge_weights_from_assignments(self):
        assignments = [JudgeAssignment("j1", judge_weight=2.0), JudgeAssignment("j2")]
        assert judge_weights_from_assignments(assignments) == {"j1": 2.0, "j2": 1.0}


class TestRoundFrames:
    """Tests for the tabular views of a computed round."""

    def test_normalization_frame(self):
        df = compute_round(SCENARIO, CRITERIA).normalization_frame()
        assert len(df) == 6
        assert list(df.columns[:3]) == ["round_id", "team_id", "judge_id"]

        row = df[(df["judge_id"] == "j1") & (df["team_id"] == "A")].iloc[0]
        assert row["raw_total"] == 80.0
        assert row["judge_mean"] == pytest.approx(70.0)
        assert row["rank"] == 1
        assert json.loads(row["tie_breaker_data"])["judge_count"] == 2

    def test_results_frame(self):
        df = compute_round(SCENARIO, CRITERIA).results_frame()
        assert list(df["team_id"]) == ["A", "C", "B"]
        assert list(df["percentile"]) == [100.0, 50.0, 0.0]
        assert "c1_aggregate" in df.columns
        assert df["c1_aggregate"].tolist() == pytest.approx(df["aggregated_score"].tolist())


class TestMain:
    """Tests for the command line entry point."""

    @pytest.fixture
    def inputs(self, tmp_path):
        (tmp_path / "criteria.csv").write_text("id,max_marks,weight,display_order\nc1,100,1.0,1\n")
        lines = ["judge_id,team_id,round_id,criterion_id,score"]
        lines += [f"{e.judge_id},{e.team_id},{e.round_id},c1,{e.scores['c1']}" for e in SCENARIO]
        (tmp_path / "evaluations.csv").write_text("\n".join(lines) + "\n")
        (tmp_path / "judges.csv").write_text("judge_id,judge_type\nj1,HARDWARE\nj2,SOFTWARE\n")
        return tmp_path

    def test_writes_results_and_promotions(self, inputs):
        out = inputs / "out"
        code = main([
            "--criteria", str(inputs / "criteria.csv"),
            "--evaluations", str(inputs / "evaluations.csv"),
            "--assignments", str(inputs / "judges.csv"),
            "--mode", "GLOBAL_TOP_K",
            "--top-k", "2",
            "--to-round", "R2",
            "--output-dir", str(out),
        ])
        assert code == 0

        results = pd.read_csv(out / "R1_results.csv")
        assert list(results["team_id"]) == ["A", "C", "B"]
        assert (out / "R1_normalization.csv").exists()

        promotions = pd.read_csv(out / "R1_promotions.csv")
        assert list(promotions["team_id"]) == ["A", "C"]
        assert set(promotions["to_round"]) == {"R2"}

    def test_invalid_input_fails(self, inputs):
        (inputs / "evaluations.csv").write_text(
            "judge_id,team_id,round_id,criterion_id,score\nj1,A,R1,c1,150\n"
        )
        code = main([
            "--criteria", str(inputs / "criteria.csv"),
            "--evaluations", str(inputs / "evaluations.csv"),
            "--output-dir", str(inputs / "out"),
        ])
        assert code == 1
        assert not (inputs / "out").exists()

    def test_malformed_json_export_fails_cleanly(self, inputs):
        (inputs / "evaluations.json").write_text(json.dumps([
            {"judge_id": "j1", "team_id": "A", "round_id": "R1", "scores": [1, 2]},
        ]))
        code = main([
            "--criteria", str(inputs / "criteria.csv"),
            "--evaluations", str(inputs / "evaluations.json"),
            "--output-dir", str(inputs / "out"),
        ])
        assert code == 1
        assert not (inputs / "out").exists()
