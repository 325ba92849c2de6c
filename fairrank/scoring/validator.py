"""
Raw Score Validation

Rejects malformed or pre-computed input before any statistics are derived.
Every check collects violations instead of stopping at the first one, so a
caller can show the complete list of problems in one pass.

Usage:
    from fairrank.scoring.validator import validate_round_inputs
    validate_round_inputs(evaluations, criteria)  # raises ValidationError
"""

from collections import Counter

from fairrank.config import MIN_SCORE, RESERVED_SCORE_KEYS
from fairrank.scoring.models import (
    Criterion,
    Evaluation,
    ValidationError,
    Violation,
    is_numeric_score,
)
from fairrank.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)


def find_reserved_keys(scores: dict) -> list[str]:
    """
    Find keys that name a computed field instead of a criterion.

    Args:
        scores: Raw score map of one evaluation

    Returns:
        Sorted list of offending keys (empty if none)
    """
    return sorted(
        key for key in (scores or {})
        if str(key).strip().lower() in RESERVED_SCORE_KEYS
    )


def validate_scores(
    scores: dict,
    criteria: list[Criterion],
    judge_id: str | None = None,
    team_id: str | None = None,
    require_complete: bool = False,
) -> list[Violation]:
    """
    Validate one evaluation's raw score map against the round's criteria.

    Args:
        scores: Mapping of criterion id to raw score
        criteria: Criteria of the round
        judge_id: Judge that submitted the scores (for reporting)
        team_id: Team that was scored (for reporting)
        require_complete: Also report criteria with no score

    Returns:
        List of violations (empty if the scores are valid)
    """
    violations = []

    if not isinstance(scores, dict):
        return [Violation("Scores must be a mapping of criterion id to value",
                          judge_id=judge_id, team_id=team_id)]

    by_id = {c.id: c for c in criteria}

    # A criterion named like a computed field is reported once by validate_criteria
    reserved = {key for key in find_reserved_keys(scores) if key not in by_id}
    for key in sorted(reserved):
        violations.append(Violation(
            f"Pre-calculated value '{key}' not allowed; submit raw scores only",
            judge_id=judge_id, team_id=team_id,
        ))

    for key in sorted(scores, key=str):
        if key in reserved:
            continue

        criterion = by_id.get(key)
        if criterion is None:
            violations.append(Violation(
                "Score given for a criterion that is not part of this round",
                judge_id=judge_id, team_id=team_id, criterion_id=str(key),
            ))
            continue

        value = scores[key]
        if value is None:
            if require_complete:
                violations.append(Violation("Missing score", judge_id=judge_id,
                                            team_id=team_id, criterion_id=key))
            continue

        if not is_numeric_score(value):
            violations.append(Violation(
                f"Invalid score format: {value!r} is not a finite number",
                judge_id=judge_id, team_id=team_id, criterion_id=key,
            ))
            continue

        # A broken max_marks is already reported by validate_criteria
        if not is_numeric_score(criterion.max_marks):
            continue

        if value < MIN_SCORE or value > criterion.max_marks:
            violations.append(Violation(
                f"Score {value} out of range ({MIN_SCORE}-{criterion.max_marks})",
                judge_id=judge_id, team_id=team_id, criterion_id=key,
            ))

    if require_complete:
        for criterion in criteria:
            if criterion.id not in scores:
                violations.append(Violation("Missing score", judge_id=judge_id,
                                            team_id=team_id, criterion_id=criterion.id))

    return violations


def validate_criteria(criteria: list[Criterion]) -> list[Violation]:
    """
    Validate the criteria list of a round.

    Returns:
        List of violations (empty if the criteria are valid)
    """
    if not criteria:
        return [Violation("No criteria defined for this round")]

    violations = []

    counts = Counter(c.id for c in criteria)
    for criterion_id, count in sorted(counts.items()):
        if count > 1:
            violations.append(Violation(f"Duplicate criterion id ({count} definitions)",
                                        criterion_id=criterion_id))

    for criterion_id in sorted({c.id for c in criteria}):
        if str(criterion_id).strip().lower() in RESERVED_SCORE_KEYS:
            violations.append(Violation(
                f"Criterion id '{criterion_id}' is reserved for a computed field; rename the criterion",
                criterion_id=criterion_id,
            ))

    for criterion in criteria:
        if not is_numeric_score(criterion.max_marks) or criterion.max_marks <= 0:
            violations.append(Violation(f"max_marks must be > 0, got {criterion.max_marks!r}",
                                        criterion_id=criterion.id))
        if not is_numeric_score(criterion.weight) or criterion.weight <= 0:
            violations.append(Violation(f"weight must be > 0, got {criterion.weight!r}",
                                        criterion_id=criterion.id))

    return violations


def validate_evaluations(
    evaluations: list[Evaluation],
    criteria: list[Criterion],
    require_complete: bool = False,
) -> list[Violation]:
    """
    Validate the submitted evaluations of a round.

    Checks that the set is non-empty, belongs to a single round, contains
    no drafts and no duplicate (judge, team) pair, and that every score map
    is valid.

    Returns:
        List of violations (empty if the evaluations are valid)
    """
    if not evaluations:
        return [Violation("No submitted evaluations found")]

    violations = []

    round_ids = sorted({e.round_id for e in evaluations})
    if len(round_ids) > 1:
        violations.append(Violation(
            f"Evaluations span several rounds: {', '.join(round_ids)}"
        ))

    pairs = Counter((e.judge_id, e.team_id) for e in evaluations)
    for (judge_id, team_id), count in sorted(pairs.items()):
        if count > 1:
            violations.append(Violation(f"Duplicate evaluation ({count} submissions)",
                                        judge_id=judge_id, team_id=team_id))

    for evaluation in sorted(evaluations, key=lambda e: (e.judge_id, e.team_id)):
        if evaluation.is_draft:
            violations.append(Violation("Draft evaluation is not valid input",
                                        judge_id=evaluation.judge_id,
                                        team_id=evaluation.team_id))
        violations.extend(validate_scores(
            evaluation.scores,
            criteria,
            judge_id=evaluation.judge_id,
            team_id=evaluation.team_id,
            require_complete=require_complete,
        ))

    return violations


def validate_round_inputs(
    evaluations: list[Evaluation],
    criteria: list[Criterion],
    require_complete: bool = False,
) -> None:
    """
    Validate everything a round computation consumes.

    Raises:
        ValidationError: Listing every violation found
    """
    violations = validate_criteria(criteria)
    violations.extend(validate_evaluations(evaluations, criteria, require_complete))

    if violations:
        logger.warning(f"Rejected round input: {len(violations)} violation(s)")
        for v in violations[:10]:
            logger.warning(f"  - {v}")
        if len(violations) > 10:
            logger.warning(f"  ... and {len(violations) - 10} more")
        raise ValidationError(violations)

    logger.debug(f"Validated {len(evaluations)} evaluations against {len(criteria)} criteria")
