"""
Scoring Engine

Modules:
- models: Data model, errors and validated configuration
- validator: Raw score validation
- statistics: Per-judge center and spread
- normalizer: Judge-corrected weighted z-scores
- aggregator: Weighted summation across judges
- ranking: Rank, percentile and tie-break cascade
- selection: Teams advancing to the next round
- pipeline: Full round computation and CLI
- analytics: Judge leniency/strictness profiles
"""


def __getattr__(name):
    """Lazy imports to avoid RuntimeWarning when running modules directly."""
    if name == "compute_round":
        from fairrank.scoring.pipeline import compute_round
        return compute_round
    if name == "execute_selection":
        from fairrank.scoring.selection import execute_selection
        return execute_selection
    if name == "compute_judge_profiles":
        from fairrank.scoring.analytics import compute_judge_profiles
        return compute_judge_profiles
    if name == "run_round":
        from fairrank.scoring.pipeline import main
        return main
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
