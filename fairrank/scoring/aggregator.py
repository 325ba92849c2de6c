"""
Aggregator

Combines a team's normalized judge totals into one aggregated score.

Aggregation rule: weighted summation across judges,

    aggregated_score = sum over judges j of  w_j * judge_total_j

with w_j = 1.0 unless a judge weight is configured. The per-criterion
aggregate uses the same rule, so the per-criterion values of a team always
add up to its aggregated score.

Raw-total mean and median are kept as fallback tie-break signals.
"""

import math
import statistics
from collections import defaultdict

from fairrank.config import DEFAULT_JUDGE_WEIGHT
from fairrank.scoring.models import AggregatedTeamResult, canonical_criteria
from fairrank.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


def aggregate_team(team_id, team_results, criteria, judge_weights=None) -> AggregatedTeamResult:
    """
    Aggregate one team's normalized evaluations.

    Args:
        team_id: Team being aggregated
        team_results: NormalizedEvaluation list for this team (one per judge)
        criteria: Criteria of the round
        judge_weights: Optional dict judge_id -> weight (default 1.0)

    Returns:
        AggregatedTeamResult
    """
    judge_weights = judge_weights or {}
    ordered = sorted(team_results, key=lambda r: r.judge_id)

    weighted_totals = []
    per_criterion_terms = defaultdict(list)

    for result in ordered:
        weight = judge_weights.get(result.judge_id, DEFAULT_JUDGE_WEIGHT)
        weighted_totals.append(weight * result.judge_total)
        for criterion_id, value in result.per_criterion_weighted_z.items():
            per_criterion_terms[criterion_id].append(weight * value)

    per_criterion_aggregate = {
        c.id: math.fsum(per_criterion_terms.get(c.id, []))
        for c in canonical_criteria(criteria)
    }

    raw_totals = [r.raw_total for r in ordered]

    return AggregatedTeamResult(
        team_id=team_id,
        aggregated_score=math.fsum(weighted_totals),
        judge_count=len(ordered),
        per_criterion_aggregate=per_criterion_aggregate,
        mean_raw_total=math.fsum(raw_totals) / len(raw_totals),
        median_raw_total=float(statistics.median(sorted(raw_totals))),
    )


def aggregate_across_judges(normalized, criteria, judge_weights=None) -> list[AggregatedTeamResult]:
    """
    Group normalized evaluations by team and aggregate each team.

    Args:
        normalized: NormalizedEvaluation list of a round
        criteria: Criteria of the round
        judge_weights: Optional dict judge_id -> weight

    Returns:
        List of AggregatedTeamResult sorted by team_id
    """
    teams = defaultdict(list)
    for result in normalized:
        teams[result.team_id].append(result)

    judge_ids = {r.judge_id for r in normalized}
    unknown = sorted(set(judge_weights or {}) - judge_ids)
    if unknown:
        logger.debug(f"Judge weights given for judges with no evaluations: {unknown}")

    aggregated = [
        aggregate_team(team_id, teams[team_id], criteria, judge_weights)
        for team_id in sorted(teams)
    ]

    logger.info(f"Aggregated {len(aggregated)} teams across {len(judge_ids)} judges")
    return aggregated
