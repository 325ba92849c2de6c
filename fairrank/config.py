"""
Central configuration for the fairrank scoring engine.

All shared constants and configuration values should be defined here
to avoid duplication and ensure consistency across modules.
"""

from pathlib import Path

# --- Project Paths ---
PROJECT_ROOT = Path(__file__).parent.parent
DATA_FOLDER = PROJECT_ROOT / "data"
OUTPUT_FOLDER = DATA_FOLDER / "processed"

# --- Normalization Configuration ---
# Absolute tolerance for score comparisons (ranking, tie detection, tie-breaks)
EPSILON = 1e-4

# Scales MAD so it is consistent with stddev under normality
MAD_CONSISTENCY_CONSTANT = 1.4826

# A (judge, criterion) pair needs at least this many values for a spread
MIN_SAMPLES_FOR_SPREAD = 2

DEFAULT_METHOD = "Z_SCORE"
DEFAULT_JUDGE_WEIGHT = 1.0

# --- Raw Score Validation ---
# Score maps may never carry caller-supplied computed values
RESERVED_SCORE_KEYS = frozenset({
    "z_score",
    "normalized",
    "weighted",
    "final",
    "rank",
    "percentile",
    "aggregated",
    "mean",
    "std",
    "variance",
    "computed",
})

MIN_SCORE = 0

# --- Selection Configuration ---
ALLOWED_TOP_N = frozenset({2, 5, 10})
DEFAULT_TOP_N = 5
DEFAULT_TOP_K = 10
DEFAULT_JUDGE_TYPE = "BOTH"

# --- Judge Analytics ---
# Bias factor thresholds, in percent of the mean judge score
BIAS_NEUTRAL_PCT = 5
BIAS_STRONG_PCT = 15

# Consistency label thresholds, in percent
CONSISTENCY_EXCELLENT_PCT = 80
CONSISTENCY_GOOD_PCT = 60
CONSISTENCY_MODERATE_PCT = 40

# --- Input Validation ---
MAX_INPUT_SIZE = 5_000_000  # Maximum JSON export size in bytes (~5MB)
