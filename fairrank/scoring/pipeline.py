"""
Round Computation Pipeline

Runs the full scoring chain for one round:

    validate -> per-judge statistics -> normalize -> aggregate -> rank

Every call recomputes the whole round from its submitted evaluations; the
derived rows replace any earlier result set. Recomputation of the same
round must be serialized by the caller.

Usage:
    python -m fairrank.scoring.pipeline --criteria criteria.csv --evaluations evaluations.csv
    OR
    fairrank-compute --criteria criteria.csv --evaluations evaluations.json \\
        --assignments judges.csv --mode PER_JUDGE_TOP_N --top-n 2 --to-round R2

    Programmatic usage:
        from fairrank.scoring.pipeline import compute_round
        computation = compute_round(evaluations, criteria)
        computation.results_frame()
"""

import argparse
import json
import math
import sys
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from fairrank.config import DEFAULT_METHOD, OUTPUT_FOLDER
from fairrank.ingestion.loaders import (
    IngestionError,
    load_assignments_csv,
    load_criteria_csv,
    load_evaluations,
)
from fairrank.scoring.aggregator import aggregate_across_judges
from fairrank.scoring.models import (
    AggregatedTeamResult,
    ConfigurationError,
    Criterion,
    JudgeStatistic,
    NormalizationConfig,
    NormalizationMethod,
    NormalizedEvaluation,
    RankedResult,
    SelectionConfig,
    SelectionError,
    SelectionMode,
    ValidationError,
    canonical_criteria,
)
from fairrank.scoring.normalizer import normalize_evaluations
from fairrank.scoring.ranking import convert_to_ranks
from fairrank.scoring.selection import build_promotion_records, execute_selection
from fairrank.scoring.statistics import compute_judge_statistics
from fairrank.scoring.validator import validate_round_inputs
from fairrank.utils import atomic_write_csv, setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

NORMALIZATION_COLUMNS = [
    "round_id", "team_id", "judge_id", "raw_total", "judge_mean", "judge_std",
    "z_score", "aggregated_z", "percentile", "rank", "tie_breaker_data",
]

RESULT_COLUMNS = [
    "round_id", "rank", "team_id", "aggregated_score", "percentile", "judge_count",
    "mean_raw_total", "median_raw_total", "is_tied", "requires_manual_resolution",
    "tie_breaker_trace",
]

PROMOTION_COLUMNS = ["from_round", "to_round", "team_id", "mode", "params"]


@dataclass(frozen=True)
class RoundComputation:
    """Everything derived from one round's submitted evaluations."""

    round_id: str
    method: NormalizationMethod
    criteria: tuple[Criterion, ...]
    statistics: dict[tuple[str, str], JudgeStatistic]
    normalized: tuple[NormalizedEvaluation, ...]
    aggregated: tuple[AggregatedTeamResult, ...]
    ranked: tuple[RankedResult, ...]

    def ranked_by_team(self) -> dict[str, RankedResult]:
        return {r.team_id: r for r in self.ranked}

    def judge_center_spread(self, judge_id: str) -> tuple[float, float]:
        """A judge's center and spread, averaged over the round's criteria."""
        stats = [self.statistics[(judge_id, c.id)] for c in canonical_criteria(self.criteria)]
        return (
            math.fsum(s.center for s in stats) / len(stats),
            math.fsum(s.spread for s in stats) / len(stats),
        )

    def normalization_frame(self) -> pd.DataFrame:
        """
        Per-judge normalization rows, each carrying the team's final rank.

        Returns:
            DataFrame with NORMALIZATION_COLUMNS, ordered by judge then team
        """
        ranked = self.ranked_by_team()
        rows = []
        for result in self.normalized:
            judge_mean, judge_std = self.judge_center_spread(result.judge_id)
            team = ranked[result.team_id]
            rows.append({
                "round_id": self.round_id,
                "team_id": result.team_id,
                "judge_id": result.judge_id,
                "raw_total": result.raw_total,
                "judge_mean": judge_mean,
                "judge_std": judge_std,
                "z_score": result.judge_total,
                "aggregated_z": team.aggregated_score,
                "percentile": team.percentile,
                "rank": team.rank,
                "tie_breaker_data": json.dumps(team.tie_breaker_trace, sort_keys=True),
            })
        return pd.DataFrame(rows, columns=NORMALIZATION_COLUMNS)

    def results_frame(self) -> pd.DataFrame:
        """
        One row per team in rank order, with the per-criterion aggregates.

        Returns:
            DataFrame with RESULT_COLUMNS followed by one
            "<criterion_id>_aggregate" column per criterion
        """
        aggregated = {a.team_id: a for a in self.aggregated}
        criterion_ids = [c.id for c in canonical_criteria(self.criteria)]
        columns = RESULT_COLUMNS + [f"{cid}_aggregate" for cid in criterion_ids]

        rows = []
        for ranked in self.ranked:
            team = aggregated[ranked.team_id]
            row = {
                "round_id": self.round_id,
                "rank": ranked.rank,
                "team_id": ranked.team_id,
                "aggregated_score": ranked.aggregated_score,
                "percentile": ranked.percentile,
                "judge_count": team.judge_count,
                "mean_raw_total": team.mean_raw_total,
                "median_raw_total": team.median_raw_total,
                "is_tied": ranked.is_tied,
                "requires_manual_resolution": ranked.requires_manual_resolution,
                "tie_breaker_trace": json.dumps(ranked.tie_breaker_trace, sort_keys=True),
            }
            for cid in criterion_ids:
                row[f"{cid}_aggregate"] = team.per_criterion_aggregate[cid]
            rows.append(row)
        return pd.DataFrame(rows, columns=columns)


def judge_weights_from_assignments(assignments) -> dict[str, float]:
    """Judge weights as configured on the round's assignments."""
    return {a.judge_id: a.judge_weight for a in assignments}


def compute_round(evaluations, criteria, config=None, require_complete=False) -> RoundComputation:
    """
    Compute normalized scores, aggregates and ranks for one round.

    Draft evaluations are left out; only submitted ones are scored.

    Args:
        evaluations: Evaluations of the round
        criteria: Criteria of the round
        config: NormalizationConfig (default: Z_SCORE, all judges weight 1.0)
        require_complete: Reject evaluations that leave a criterion unscored

    Returns:
        RoundComputation

    Raises:
        ValidationError: If the input is malformed (nothing is computed)
    """
    config = config or NormalizationConfig()

    submitted = [e for e in evaluations if not e.is_draft]
    drafts = len(evaluations) - len(submitted)
    if drafts:
        logger.info(f"Skipping {drafts} draft evaluation(s)")

    validate_round_inputs(submitted, criteria, require_complete=require_complete)

    round_id = submitted[0].round_id
    logger.info(f"Computing round {round_id}: {len(submitted)} evaluations, "
                f"{len(criteria)} criteria, method {config.method.value}")

    statistics = compute_judge_statistics(submitted, criteria, config.method)
    normalized = normalize_evaluations(submitted, criteria, statistics)
    aggregated = aggregate_across_judges(normalized, criteria, config.judge_weights)
    ranked = convert_to_ranks(aggregated, criteria)

    return RoundComputation(
        round_id=round_id,
        method=config.method,
        criteria=tuple(canonical_criteria(criteria)),
        statistics=statistics,
        normalized=tuple(normalized),
        aggregated=tuple(aggregated),
        ranked=tuple(ranked),
    )


def write_round_outputs(computation, output_dir: Path) -> dict[str, Path]:
    """Write the normalization and results rows of a round as CSV."""
    paths = {
        "normalization": output_dir / f"{computation.round_id}_normalization.csv",
        "results": output_dir / f"{computation.round_id}_results.csv",
    }
    atomic_write_csv(computation.normalization_frame(), paths["normalization"], index=False)
    atomic_write_csv(computation.results_frame(), paths["results"], index=False)
    return paths


def write_promotions(records, path: Path) -> Path:
    df = pd.DataFrame(
        [
            {
                "from_round": r.from_round,
                "to_round": r.to_round,
                "team_id": r.team_id,
                "mode": r.mode.value,
                "params": json.dumps(r.params, sort_keys=True),
            }
            for r in records
        ],
        columns=PROMOTION_COLUMNS,
    )
    atomic_write_csv(df, path, index=False)
    return path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compute judge-normalized rankings for a round and select advancing teams."
    )
    parser.add_argument("--criteria", type=Path, required=True, help="Criteria CSV")
    parser.add_argument("--evaluations", type=Path, required=True,
                        help="Evaluations as long CSV or JSON export")
    parser.add_argument("--assignments", type=Path, help="Judge assignments CSV (weights, types)")
    parser.add_argument("--method", default=DEFAULT_METHOD,
                        choices=[m.value for m in NormalizationMethod])
    parser.add_argument("--require-complete", action="store_true",
                        help="Reject evaluations with unscored criteria")
    parser.add_argument("--mode", choices=[m.value for m in SelectionMode],
                        help="Run team selection after ranking")
    parser.add_argument("--top-n", type=int, default=None)
    parser.add_argument("--top-k", type=int, default=None)
    parser.add_argument("--judge-type", action="append", dest="judge_types",
                        help="Restrict per-judge selection to a judge type (repeatable)")
    parser.add_argument("--to-round", help="Round the selected teams are promoted to")
    parser.add_argument("--output-dir", type=Path, default=OUTPUT_FOLDER)
    return parser


def _selection_options(args) -> dict:
    options = {"mode": args.mode}
    if args.top_n is not None:
        options["top_n"] = args.top_n
    if args.top_k is not None:
        options["top_k"] = args.top_k
    if args.judge_types:
        options["judge_types"] = [t.upper() for t in args.judge_types]
    return options


def main(argv=None) -> int:
    """CLI interface for computing a round."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.mode and not args.assignments:
        parser.error("--mode requires --assignments")

    try:
        criteria = load_criteria_csv(args.criteria)
        evaluations = load_evaluations(args.evaluations)
        assignments = load_assignments_csv(args.assignments) if args.assignments else []

        config = NormalizationConfig.build(
            method=args.method,
            judge_weights=judge_weights_from_assignments(assignments),
        )
        computation = compute_round(evaluations, criteria, config, require_complete=args.require_complete)

        paths = write_round_outputs(computation, args.output_dir)
        logger.info("=" * 60)
        logger.info(f"Round {computation.round_id} results")
        logger.info("=" * 60)
        logger.info("\n" + computation.results_frame()[
            ["rank", "team_id", "aggregated_score", "percentile", "is_tied"]
        ].to_string(index=False))
        for label, path in paths.items():
            logger.info(f"  {label}: {path}")

        if args.mode:
            selection_config = SelectionConfig.build(**_selection_options(args))
            selection = execute_selection(
                selection_config, assignments, computation.normalized, computation.ranked
            )
            if selection.stop:
                logger.info(selection.message)
            else:
                logger.info(f"Selected {len(selection.selected_team_ids)} teams: "
                            f"{sorted(selection.selected_team_ids)}")
                if args.to_round:
                    records = build_promotion_records(selection, computation.round_id, args.to_round)
                    path = write_promotions(
                        records,
                        args.output_dir / f"{computation.round_id}_promotions.csv",
                    )
                    logger.info(f"  promotions: {path}")

    except ValidationError as e:
        logger.error(f"VALIDATION ERROR: {e}")
        return 1
    except ConfigurationError as e:
        logger.error(f"CONFIGURATION ERROR: {e}")
        return 1
    except SelectionError as e:
        logger.error(f"SELECTION ERROR: {e}")
        return 1
    except IngestionError as e:
        logger.error(f"INGESTION ERROR: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
