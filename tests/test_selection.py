"""
Tests for team selection.
"""

import pytest

from fairrank.scoring.models import (
    ConfigurationError,
    JudgeAssignment,
    JudgeType,
    NormalizedEvaluation,
    RankedResult,
    SelectionConfig,
    SelectionError,
    SelectionMode,
)
from fairrank.scoring.selection import (
    build_promotion_records,
    execute_selection,
    select_global_top_k,
    select_per_judge_top_n,
    should_stop_after_round,
)


def normalized(judge_id, team_id, raw_total, judge_total=0.0):
    return NormalizedEvaluation(
        judge_id=judge_id,
        team_id=team_id,
        round_id="R1",
        per_criterion_z={},
        per_criterion_weighted_z={},
        judge_total=judge_total,
        raw_total=raw_total,
    )


def ranked(team_id, rank, percentile=0.0):
    return RankedResult(
        team_id=team_id,
        rank=rank,
        percentile=percentile,
        aggregated_score=0.0,
        is_tied=False,
        requires_manual_resolution=False,
        tie_breaker_trace={},
    )


# Judge j1 prefers t1, t2; judge j2 prefers t4, t5
NORMALIZED = [
    normalized("j1", "t1", 90), normalized("j1", "t2", 80), normalized("j1", "t3", 70),
    normalized("j2", "t3", 60), normalized("j2", "t4", 95), normalized("j2", "t5", 85),
]

ASSIGNMENTS = [
    JudgeAssignment("j1", JudgeType.HARDWARE),
    JudgeAssignment("j2", JudgeType.SOFTWARE),
]

RANKED = [ranked("t1", 1), ranked("t2", 2), ranked("t3", 2), ranked("t4", 4), ranked("t5", 5)]


class TestSelectPerJudgeTopN:
    """Tests for select_per_judge_top_n function."""

    def test_union_of_judge_top_sets(self):
        result = select_per_judge_top_n(NORMALIZED, ASSIGNMENTS, top_n=2)
        assert result.success
        assert result.mode == SelectionMode.PER_JUDGE_TOP_N
        assert result.selected_team_ids == {"t1", "t2", "t4", "t5"}

    def test_overlapping_picks_collapse(self):
        data = NORMALIZED + [normalized("j2", "t1", 99)]
        result = select_per_judge_top_n(data, ASSIGNMENTS, top_n=2)
        assert result.selected_team_ids == {"t1", "t2", "t4"}

    def test_breakdown_per_judge(self):
        result = select_per_judge_top_n(NORMALIZED, ASSIGNMENTS, top_n=2)
        j1, j2 = result.per_judge_breakdown
        assert j1.judge_id == "j1"
        assert j1.teams_evaluated == 3
        assert j1.selected_team_ids == ["t1", "t2"]
        assert j2.selected_team_ids == ["t4", "t5"]

    def test_judge_type_filter(self):
        result = select_per_judge_top_n(NORMALIZED, ASSIGNMENTS, top_n=2, judge_types=["HARDWARE"])
        assert result.selected_team_ids == {"t1", "t2"}
        assert result.params == {"top_n": 2, "judge_types": ["HARDWARE"]}

    def test_no_matching_judges(self):
        assignments = [JudgeAssignment("j1", JudgeType.HARDWARE)]
        with pytest.raises(SelectionError):
            select_per_judge_top_n(NORMALIZED, assignments, top_n=2, judge_types=[JudgeType.SOFTWARE])

    def test_equal_raw_totals_ordered_by_judge_total_then_team(self):
        data = [
            normalized("j1", "t1", 80, judge_total=0.5),
            normalized("j1", "t3", 80, judge_total=1.0),
            normalized("j1", "t2", 80, judge_total=1.0),
        ]
        result = select_per_judge_top_n(data, [JudgeAssignment("j1")], top_n=2)
        assert result.per_judge_breakdown[0].selected_team_ids == ["t2", "t3"]

    def test_judge_with_fewer_teams_than_n(self):
        result = select_per_judge_top_n(NORMALIZED, ASSIGNMENTS, top_n=5)
        assert result.selected_team_ids == {"t1", "t2", "t3", "t4", "t5"}

    def test_illegal_n(self):
        with pytest.raises(ConfigurationError):
            select_per_judge_top_n(NORMALIZED, ASSIGNMENTS, top_n=3)


class TestSelectGlobalTopK:
    """Tests for select_global_top_k function."""

    def test_top_k(self):
        result = select_global_top_k(RANKED, top_k=1)
        assert result.selected_team_ids == {"t1"}
        assert result.params == {"top_k": 1}

    def test_tie_at_cutoff_takes_exactly_k(self):
        result = select_global_top_k(RANKED, top_k=2)
        assert result.selected_team_ids == {"t1", "t2"}
        assert [r.team_id for r in result.ranked_list] == ["t1", "t2"]
        assert result.cut_tied_team_ids == {"t3"}
        assert result.to_dict()["cut_tied_team_ids"] == ["t3"]

    def test_cutoff_between_ranks_cuts_no_tied_team(self):
        result = select_global_top_k(RANKED, top_k=3)
        assert result.selected_team_ids == {"t1", "t2", "t3"}
        assert result.cut_tied_team_ids == frozenset()
        assert "cut_tied_team_ids" not in result.to_dict()

    def test_selection_follows_rank_not_input_order(self):
        result = select_global_top_k(list(reversed(RANKED)), top_k=2)
        assert [r.team_id for r in result.ranked_list] == ["t1", "t2"]

    def test_k_larger_than_field(self):
        result = select_global_top_k(RANKED, top_k=50)
        assert len(result.selected_team_ids) == 5

    def test_illegal_k(self):
        with pytest.raises(ConfigurationError):
            select_global_top_k(RANKED, top_k=0)


class TestExecuteSelection:
    """Tests for execute_selection function."""

    def test_single_judge_round_stops(self):
        config = SelectionConfig.build(mode="PER_JUDGE_TOP_N", top_n=2)
        result = execute_selection(config, [JudgeAssignment("j1")], NORMALIZED, RANKED)
        assert result.success
        assert result.stop
        assert result.to_dict() == {
            "success": True,
            "stop": True,
            "message": "Only one judge in round. No next round needed.",
        }

    def test_should_stop_after_round(self):
        assert should_stop_after_round([JudgeAssignment("j1")])
        assert not should_stop_after_round(ASSIGNMENTS)
        assert not should_stop_after_round([])

    def test_dispatches_per_judge_mode(self):
        config = SelectionConfig.build(mode="PER_JUDGE_TOP_N", top_n=2)
        result = execute_selection(config, ASSIGNMENTS, NORMALIZED, RANKED)
        assert result.selected_team_ids == {"t1", "t2", "t4", "t5"}
        assert result.params == config.params

    def test_dispatches_global_mode(self):
        config = SelectionConfig.build(mode="GLOBAL_TOP_K", top_k=1)
        result = execute_selection(config, ASSIGNMENTS, NORMALIZED, RANKED)
        assert result.selected_team_ids == {"t1"}
        assert result.to_dict()["ranked_list"] == [{"team_id": "t1", "rank": 1, "percentile": 0.0}]

    def test_empty_selection_is_an_error(self):
        config = SelectionConfig.build(mode="PER_JUDGE_TOP_N", top_n=2)
        with pytest.raises(SelectionError):
            execute_selection(config, ASSIGNMENTS, [], [])


class TestSelectionConfig:
    """Tests for SelectionConfig validation."""

    def test_defaults(self):
        config = SelectionConfig.build(mode="GLOBAL_TOP_K")
        assert config.top_k == 10
        assert config.params == {"top_k": 10}

    def test_unknown_mode(self):
        with pytest.raises(ConfigurationError):
            SelectionConfig.build(mode="RANDOM")

    def test_illegal_top_n(self):
        with pytest.raises(ConfigurationError):
            SelectionConfig.build(mode="PER_JUDGE_TOP_N", top_n=3)

    def test_empty_judge_type_filter(self):
        with pytest.raises(ConfigurationError):
            SelectionConfig.build(mode="PER_JUDGE_TOP_N", judge_types=[])

    def test_unknown_judge_type(self):
        with pytest.raises(ConfigurationError):
            SelectionConfig.build(mode="PER_JUDGE_TOP_N", judge_types=["JURY"])


class TestBuildPromotionRecords:
    """Tests for build_promotion_records function."""

    def test_records_in_team_order(self):
        result = select_per_judge_top_n(NORMALIZED, ASSIGNMENTS, top_n=2)
        records = build_promotion_records(result, "R1", "R2")
        assert [r.team_id for r in records] == ["t1", "t2", "t4", "t5"]
        assert all(r.from_round == "R1" and r.to_round == "R2" for r in records)
        assert records[0].mode == SelectionMode.PER_JUDGE_TOP_N
        assert records[0].params == {"top_n": 2}

    def test_stop_result_has_nothing_to_promote(self):
        config = SelectionConfig.build(mode="GLOBAL_TOP_K")
        stop = execute_selection(config, [JudgeAssignment("j1")], NORMALIZED, RANKED)
        with pytest.raises(SelectionError):
            build_promotion_records(stop, "R1", "R2")
