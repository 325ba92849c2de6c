"""
Selection Engine

Decides which teams advance to the next round.

Modes:
- PER_JUDGE_TOP_N: every assigned judge (optionally filtered by judge type)
  nominates their own top N teams by raw total; the union advances.
- GLOBAL_TOP_K: the first K teams of the final ranking advance.

A round with exactly one assigned judge is the last round: selection
returns a stop result instead of a team set.

Usage:
    from fairrank.scoring.selection import execute_selection
    config = SelectionConfig.build(mode="PER_JUDGE_TOP_N", top_n=2)
    result = execute_selection(config, assignments, normalized, ranked)
"""

from collections import defaultdict

from fairrank.config import ALLOWED_TOP_N
from fairrank.scoring.models import (
    ConfigurationError,
    JudgeSelection,
    JudgeType,
    PromotionRecord,
    SelectionError,
    SelectionMode,
    SelectionResult,
)
from fairrank.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

STOP_MESSAGE = "Only one judge in round. No next round needed."


def _parse_judge_types(judge_types):
    if judge_types is None:
        return None
    try:
        return {JudgeType(t) for t in judge_types}
    except ValueError:
        allowed = ", ".join(t.value for t in JudgeType)
        raise ConfigurationError(
            f"Unknown judge type in {list(judge_types)}. Allowed values: {allowed}"
        ) from None


def select_per_judge_top_n(normalized, assignments, top_n, judge_types=None) -> SelectionResult:
    """
    Union of every assigned judge's own top N teams.

    Each judge's teams are ordered by raw total descending, then by the
    judge's normalized total, then by team_id.

    Args:
        normalized: NormalizedEvaluation list of the round
        assignments: JudgeAssignment list of the round
        top_n: Teams per judge (2, 5 or 10)
        judge_types: Optional iterable of JudgeType to restrict the judges

    Returns:
        SelectionResult with per-judge breakdown

    Raises:
        ConfigurationError: If top_n or a judge type is not allowed
        SelectionError: If no assigned judge matches the filter
    """
    if top_n not in ALLOWED_TOP_N:
        raise ConfigurationError(f"top_n must be one of {sorted(ALLOWED_TOP_N)}, got {top_n}")

    allowed_types = _parse_judge_types(judge_types)
    judges = sorted(
        (a for a in assignments if allowed_types is None or a.judge_type in allowed_types),
        key=lambda a: a.judge_id,
    )
    if not judges:
        raise SelectionError("No judges found matching criteria")

    by_judge = defaultdict(list)
    for result in normalized:
        by_judge[result.judge_id].append(result)

    selected = set()
    breakdown = []

    for judge in judges:
        judge_results = sorted(
            by_judge.get(judge.judge_id, []),
            key=lambda r: (-r.raw_total, -r.judge_total, r.team_id),
        )
        top = judge_results[:top_n]
        selected.update(r.team_id for r in top)

        breakdown.append(JudgeSelection(
            judge_id=judge.judge_id,
            judge_type=judge.judge_type,
            teams_evaluated=len(judge_results),
            selected=tuple(
                {"team_id": r.team_id, "raw_total": r.raw_total, "judge_total": r.judge_total}
                for r in top
            ),
        ))
        logger.debug(f"Judge {judge.judge_id}: top {len(top)} of {len(judge_results)} -> "
                     f"{[r.team_id for r in top]}")

    params = {"top_n": top_n}
    if allowed_types is not None:
        params["judge_types"] = sorted(t.value for t in allowed_types)

    logger.info(f"Per-judge top {top_n}: {len(selected)} teams selected by {len(judges)} judges")

    return SelectionResult(
        success=True,
        mode=SelectionMode.PER_JUDGE_TOP_N,
        params=params,
        selected_team_ids=frozenset(selected),
        per_judge_breakdown=tuple(breakdown),
    )


def select_global_top_k(ranked, top_k) -> SelectionResult:
    """
    The first K teams of the final ranking.

    Exactly min(K, field size) teams advance. When the cutoff falls inside
    a tied group, the group is split by team_id and the tied teams left
    out are reported in cut_tied_team_ids.

    Raises:
        ConfigurationError: If top_k is below 1
    """
    if top_k < 1:
        raise ConfigurationError(f"top_k must be at least 1, got {top_k}")

    ordered = sorted(ranked, key=lambda r: (r.rank, r.team_id))
    chosen = tuple(ordered[:top_k])

    cut = frozenset()
    if chosen and len(ordered) > top_k:
        cutoff_rank = chosen[-1].rank
        cut = frozenset(r.team_id for r in ordered[top_k:] if r.rank == cutoff_rank)
    if cut:
        logger.warning(f"Tie at the top {top_k} cutoff (rank {cutoff_rank}): "
                       f"{sorted(cut)} left out, requires manual review")

    logger.info(f"Global top {top_k}: {len(chosen)} teams selected")

    return SelectionResult(
        success=True,
        mode=SelectionMode.GLOBAL_TOP_K,
        params={"top_k": top_k},
        selected_team_ids=frozenset(r.team_id for r in chosen),
        ranked_list=chosen,
        cut_tied_team_ids=cut,
    )


def should_stop_after_round(assignments) -> bool:
    """True when the round has exactly one assigned judge."""
    return len({a.judge_id for a in assignments}) == 1


def execute_selection(config, assignments, normalized, ranked) -> SelectionResult:
    """
    Run the configured selection for a computed round.

    Args:
        config: SelectionConfig
        assignments: JudgeAssignment list of the round
        normalized: NormalizedEvaluation list of the round
        ranked: RankedResult list of the round

    Returns:
        SelectionResult (a stop result when only one judge is assigned)

    Raises:
        SelectionError: If the selection is empty or no judge matches
        ConfigurationError: If the mode is unknown
    """
    if should_stop_after_round(assignments):
        logger.info("Single judge round, no selection needed")
        return SelectionResult(success=True, stop=True, message=STOP_MESSAGE)

    if config.mode == SelectionMode.PER_JUDGE_TOP_N:
        result = select_per_judge_top_n(normalized, assignments, config.top_n, config.judge_types)
    elif config.mode == SelectionMode.GLOBAL_TOP_K:
        result = select_global_top_k(ranked, config.top_k)
    else:
        raise ConfigurationError(f"Invalid selection mode: {config.mode}")

    if not result.selected_team_ids:
        raise SelectionError("No teams selected")

    return result


def build_promotion_records(selection, from_round, to_round) -> list[PromotionRecord]:
    """
    Promotion records for the teams of a selection, in team_id order.

    Raises:
        SelectionError: If the selection is a stop result or unsuccessful
    """
    if not selection.success or selection.stop:
        raise SelectionError("Selection did not produce teams to promote")

    records = [
        PromotionRecord(
            from_round=from_round,
            to_round=to_round,
            team_id=team_id,
            mode=selection.mode,
            params=dict(selection.params),
        )
        for team_id in sorted(selection.selected_team_ids)
    ]
    logger.info(f"Promoting {len(records)} teams from {from_round} to {to_round}")
    return records
