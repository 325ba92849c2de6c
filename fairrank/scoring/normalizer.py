"""
Normalizer

Converts each raw per-criterion score into a judge-corrected, weighted
value:

    z         = (score - center) / spread      (0 when spread is 0 or score missing)
    weightedZ = z * criterion.weight
    judge_total = sum of weightedZ over the criteria

judge_total is deliberately not divided by the criterion count or the
weight sum; its magnitude scales with both.
"""

import math

from fairrank.scoring.models import (
    NormalizedEvaluation,
    canonical_criteria,
    is_numeric_score,
)
from fairrank.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


def compute_raw_total(evaluation, criteria) -> float:
    """Sum of the evaluation's numeric raw scores over the round's criteria."""
    values = [
        float(evaluation.scores[c.id])
        for c in criteria
        if is_numeric_score(evaluation.scores.get(c.id))
    ]
    return math.fsum(values)


def normalize_evaluation(evaluation, criteria, statistics) -> NormalizedEvaluation:
    """
    Normalize a single evaluation against its judge's statistics.

    Args:
        evaluation: Evaluation to normalize
        criteria: Criteria of the round
        statistics: dict (judge_id, criterion_id) -> JudgeStatistic

    Returns:
        NormalizedEvaluation with per-criterion z and weighted z maps
    """
    per_criterion_z = {}
    per_criterion_weighted_z = {}

    for criterion in canonical_criteria(criteria):
        score = evaluation.scores.get(criterion.id)
        stat = statistics.get((evaluation.judge_id, criterion.id))

        z = 0.0
        if is_numeric_score(score) and stat is not None and stat.spread > 0:
            z = (float(score) - stat.center) / stat.spread

        per_criterion_z[criterion.id] = z
        per_criterion_weighted_z[criterion.id] = z * criterion.weight

    return NormalizedEvaluation(
        judge_id=evaluation.judge_id,
        team_id=evaluation.team_id,
        round_id=evaluation.round_id,
        per_criterion_z=per_criterion_z,
        per_criterion_weighted_z=per_criterion_weighted_z,
        judge_total=math.fsum(per_criterion_weighted_z.values()),
        raw_total=compute_raw_total(evaluation, criteria),
    )


def normalize_evaluations(evaluations, criteria, statistics) -> list[NormalizedEvaluation]:
    """
    Normalize every evaluation of a round.

    Returns:
        List of NormalizedEvaluation sorted by (judge_id, team_id)
    """
    ordered = sorted(evaluations, key=lambda e: (e.judge_id, e.team_id))
    results = [normalize_evaluation(e, criteria, statistics) for e in ordered]
    logger.info(f"Normalized {len(results)} evaluations")
    return results
