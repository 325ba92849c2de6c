"""
Per-Judge Statistics

Derives each judge's personal scoring center and spread per criterion,
using only that judge's own submitted values. These are the reference
points the normalizer uses to cancel out a judge's leniency or strictness.

Two methods are available:
- Z_SCORE: mean and population standard deviation
- ROBUST_MAD: median and MAD scaled by 1.4826 (outlier resistant)

A (judge, criterion) pair with fewer than two values, or with no spread,
gets spread 0, which the normalizer turns into a neutral z-score of 0.
"""

import math
from collections import defaultdict

import numpy as np

from fairrank.config import MAD_CONSISTENCY_CONSTANT, MIN_SAMPLES_FOR_SPREAD
from fairrank.scoring.models import (
    JudgeStatistic,
    NormalizationMethod,
    canonical_criteria,
    is_numeric_score,
    parse_method,
)
from fairrank.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


def compute_center_spread(values, method=NormalizationMethod.Z_SCORE):
    """
    Compute the center and spread of one judge's values on one criterion.

    Values are sorted and summed with exact rounding (math.fsum), so the
    result does not depend on the order the values arrive in.

    Args:
        values: Raw scores (finite numbers)
        method: NormalizationMethod to use

    Returns:
        Tuple of (center, spread) as floats. Spread is 0.0 for degenerate input.
    """
    arr = np.sort(np.asarray(list(values), dtype=np.float64))
    n = arr.size

    if n == 0:
        return 0.0, 0.0

    if method == NormalizationMethod.ROBUST_MAD:
        center = float(np.median(arr))
        if n < MIN_SAMPLES_FOR_SPREAD:
            return center, 0.0
        deviations = np.sort(np.abs(arr - center))
        spread = MAD_CONSISTENCY_CONSTANT * float(np.median(deviations))
    else:
        center = math.fsum(arr.tolist()) / n
        if n < MIN_SAMPLES_FOR_SPREAD:
            return center, 0.0
        squared = sorted(((arr - center) ** 2).tolist())
        spread = math.sqrt(math.fsum(squared) / n)

    if not math.isfinite(spread) or spread <= 0.0:
        spread = 0.0

    return center, spread


def compute_judge_statistics(evaluations, criteria, method=NormalizationMethod.Z_SCORE):
    """
    Compute statistics for every (judge, criterion) pair.

    Args:
        evaluations: Submitted evaluations of one round
        criteria: Criteria of the round
        method: NormalizationMethod to use

    Returns:
        dict mapping (judge_id, criterion_id) -> JudgeStatistic, in judge id
        then criterion display order
    """
    method = parse_method(method)
    ordered_criteria = canonical_criteria(criteria)

    values_by_judge = defaultdict(lambda: defaultdict(list))
    for evaluation in evaluations:
        for criterion in ordered_criteria:
            value = evaluation.scores.get(criterion.id)
            if is_numeric_score(value):
                values_by_judge[evaluation.judge_id][criterion.id].append(float(value))

    judge_ids = sorted({e.judge_id for e in evaluations})
    stats = {}
    degenerate = 0

    for judge_id in judge_ids:
        for criterion in ordered_criteria:
            values = values_by_judge[judge_id][criterion.id]
            center, spread = compute_center_spread(values, method)
            stat = JudgeStatistic(
                judge_id=judge_id,
                criterion_id=criterion.id,
                center=center,
                spread=spread,
                sample_count=len(values),
            )
            stats[(judge_id, criterion.id)] = stat

            if stat.is_degenerate:
                degenerate += 1
                logger.debug(
                    f"Judge {judge_id} / {criterion.id}: degenerate spread "
                    f"({len(values)} values), z-scores neutral"
                )

    logger.info(
        f"Computed {method.value} statistics for {len(judge_ids)} judges x "
        f"{len(ordered_criteria)} criteria"
    )
    if degenerate:
        logger.warning(
            f"{degenerate} judge/criterion pair(s) have no spread; their z-scores are 0"
        )

    return stats
