"""
Judge Analytics

Describes how each judge used the scoring scale in a round: how many teams
they saw, how lenient or strict their raw totals were compared with the
other judges, and how consistent they were. Normalization already removes
this bias from the ranking; the profile is for transparency.

Usage:
    from fairrank.scoring.analytics import compute_judge_profiles
    profiles = compute_judge_profiles(evaluations, criteria)
"""

import pandas as pd

from fairrank.config import (
    BIAS_NEUTRAL_PCT,
    BIAS_STRONG_PCT,
    CONSISTENCY_EXCELLENT_PCT,
    CONSISTENCY_GOOD_PCT,
    CONSISTENCY_MODERATE_PCT,
)
from fairrank.scoring.normalizer import compute_raw_total
from fairrank.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

PROFILE_COLUMNS = [
    "judge_id", "evaluations", "teams_judged", "coverage_pct", "mean_raw_total",
    "std_raw_total", "consistency_pct", "consistency_label", "bias_pct", "bias_label",
]


def bias_label(bias_pct: float) -> str:
    """Classify a bias factor (percent above/below the average judge)."""
    if abs(bias_pct) < BIAS_NEUTRAL_PCT:
        return "Neutral"
    if bias_pct > BIAS_STRONG_PCT:
        return "Lenient"
    if bias_pct < -BIAS_STRONG_PCT:
        return "Strict"
    if bias_pct > 0:
        return "Slightly Lenient"
    return "Slightly Strict"


def consistency_label(consistency_pct: float) -> str:
    if consistency_pct >= CONSISTENCY_EXCELLENT_PCT:
        return "Excellent"
    if consistency_pct >= CONSISTENCY_GOOD_PCT:
        return "Good"
    if consistency_pct >= CONSISTENCY_MODERATE_PCT:
        return "Moderate"
    return "Low"


def _consistency_pct(mean: float, std: float) -> float:
    # 1 / (1 + coefficient of variation); a judge with no spread is fully consistent
    if std <= 0 or mean <= 0:
        return 100.0
    return 100.0 / (1.0 + std / mean)


def compute_judge_profiles(evaluations, criteria) -> pd.DataFrame:
    """
    Build one profile row per judge from submitted evaluations.

    Args:
        evaluations: Evaluations of the round (drafts are ignored)
        criteria: Criteria of the round

    Returns:
        DataFrame with PROFILE_COLUMNS, ordered by judge_id:
            - coverage_pct: share of the round's scored teams this judge saw
            - mean_raw_total / std_raw_total: population statistics of the
              judge's raw totals
            - consistency_pct: 100 / (1 + std / mean)
            - bias_pct: judge mean relative to the mean of all judge means
    """
    rows = [
        {
            "judge_id": e.judge_id,
            "team_id": e.team_id,
            "raw_total": compute_raw_total(e, criteria),
        }
        for e in evaluations
        if not e.is_draft
    ]
    if not rows:
        logger.warning("No submitted evaluations; judge profiles are empty")
        return pd.DataFrame(columns=PROFILE_COLUMNS)

    df = pd.DataFrame(rows)
    total_teams = df["team_id"].nunique()

    profiles = df.groupby("judge_id", sort=True).agg(
        evaluations=("team_id", "size"),
        teams_judged=("team_id", "nunique"),
        mean_raw_total=("raw_total", "mean"),
        std_raw_total=("raw_total", lambda s: s.std(ddof=0)),
    ).reset_index()

    average_mean = profiles["mean_raw_total"].mean()

    profiles["coverage_pct"] = 100.0 * profiles["teams_judged"] / total_teams
    profiles["consistency_pct"] = [
        _consistency_pct(m, s)
        for m, s in zip(profiles["mean_raw_total"], profiles["std_raw_total"])
    ]
    profiles["consistency_label"] = profiles["consistency_pct"].apply(consistency_label)
    profiles["bias_pct"] = (
        100.0 * (profiles["mean_raw_total"] - average_mean) / average_mean
        if average_mean > 0 else 0.0
    )
    profiles["bias_label"] = profiles["bias_pct"].apply(bias_label)

    flagged = profiles[profiles["bias_label"].isin(["Lenient", "Strict"])]
    for row in flagged.itertuples(index=False):
        logger.info(f"Judge {row.judge_id} is {row.bias_label.lower()} ({row.bias_pct:+.1f}%)")

    logger.info(f"Profiled {len(profiles)} judges over {total_teams} teams")
    return profiles[PROFILE_COLUMNS]
