"""
Data model for the scoring engine.

Inputs (Criterion, Evaluation, JudgeAssignment) are read in from the
persistence layer; every other type is derived and recreated on each
compute call. Derived records are frozen: a recomputation replaces the
whole set instead of patching it.

Runtime options are validated pydantic models with enumerated values.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from fairrank.config import (
    ALLOWED_TOP_N,
    DEFAULT_JUDGE_TYPE,
    DEFAULT_JUDGE_WEIGHT,
    DEFAULT_METHOD,
    DEFAULT_TOP_K,
    DEFAULT_TOP_N,
)
from fairrank.utils import parse_flag


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ScoringError(Exception):
    """Base exception for the scoring engine"""
    pass


@dataclass(frozen=True)
class Violation:
    """One problem found in the raw input."""

    message: str
    judge_id: str | None = None
    team_id: str | None = None
    criterion_id: str | None = None

    def __str__(self) -> str:
        where = ", ".join(
            f"{label}={value}"
            for label, value in (
                ("judge", self.judge_id),
                ("team", self.team_id),
                ("criterion", self.criterion_id),
            )
            if value is not None
        )
        return f"[{where}] {self.message}" if where else self.message


class ValidationError(ScoringError):
    """Raised when raw input is malformed. Lists every violation found."""

    def __init__(self, violations: list[Violation]):
        self.violations = list(violations)
        lines = "\n".join(f"  - {v}" for v in self.violations)
        super().__init__(f"{len(self.violations)} validation error(s):\n{lines}")


class ConfigurationError(ScoringError):
    """Raised for unknown methods/modes or illegal configuration values"""
    pass


class SelectionError(ScoringError):
    """Raised when a selection cannot be produced"""
    pass


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class NormalizationMethod(str, Enum):
    """How a judge's personal scoring center and spread are measured."""

    Z_SCORE = "Z_SCORE"  # mean / population stddev
    ROBUST_MAD = "ROBUST_MAD"  # median / scaled MAD


class SelectionMode(str, Enum):
    PER_JUDGE_TOP_N = "PER_JUDGE_TOP_N"
    GLOBAL_TOP_K = "GLOBAL_TOP_K"


class JudgeType(str, Enum):
    HARDWARE = "HARDWARE"
    SOFTWARE = "SOFTWARE"
    BOTH = "BOTH"


def parse_method(method: NormalizationMethod | str) -> NormalizationMethod:
    """
    Coerce a method name into a NormalizationMethod.

    Raises:
        ConfigurationError: If the name is not a known method
    """
    try:
        return NormalizationMethod(method)
    except ValueError:
        allowed = ", ".join(m.value for m in NormalizationMethod)
        raise ConfigurationError(
            f"Unknown normalization method: '{method}'. Allowed values: {allowed}"
        ) from None


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Criterion:
    """A scoring criterion of a round. Immutable once judging starts."""

    id: str
    max_marks: float
    weight: float = 1.0
    display_order: int = 0
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class Evaluation:
    """One judge's raw scores for one team in one round."""

    judge_id: str
    team_id: str
    round_id: str
    scores: dict[str, Any] = field(default_factory=dict)
    is_draft: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Evaluation":
        """
        Build an evaluation from an exported record.

        A scores value that is not a mapping is kept as given so validation
        can report it.

        Raises:
            KeyError: If judge_id or team_id is missing
            ValueError: If is_draft is not a recognizable flag
        """
        scores = data.get("scores")
        if scores is None:
            scores = {}
        elif isinstance(scores, dict):
            scores = dict(scores)
        return cls(
            judge_id=str(data["judge_id"]),
            team_id=str(data["team_id"]),
            round_id=str(data.get("round_id", "")),
            scores=scores,
            is_draft=parse_flag(data.get("is_draft")),
        )


@dataclass(frozen=True)
class JudgeAssignment:
    """A judge assigned to a round."""

    judge_id: str
    judge_type: JudgeType = JudgeType(DEFAULT_JUDGE_TYPE)
    judge_weight: float = DEFAULT_JUDGE_WEIGHT


def canonical_criteria(criteria) -> list[Criterion]:
    """Criteria in a fixed order (display_order, then id), whatever the input order."""
    return sorted(criteria, key=lambda c: (c.display_order, c.id))


def criteria_by_weight(criteria) -> list[Criterion]:
    """Criteria by weight descending; ties fall back to display order, then id."""
    return sorted(criteria, key=lambda c: (-c.weight, c.display_order, c.id))


def is_numeric_score(value) -> bool:
    """True for finite int/float values. Booleans are not scores."""
    if isinstance(value, bool):
        return False
    if not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


# ---------------------------------------------------------------------------
# Derived records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JudgeStatistic:
    """A judge's scoring center and spread on one criterion."""

    judge_id: str
    criterion_id: str
    center: float
    spread: float
    sample_count: int

    @property
    def is_degenerate(self) -> bool:
        return self.spread == 0.0


@dataclass(frozen=True)
class NormalizedEvaluation:
    """One evaluation after judge-bias correction and criterion weighting."""

    judge_id: str
    team_id: str
    round_id: str
    per_criterion_z: dict[str, float]
    per_criterion_weighted_z: dict[str, float]
    judge_total: float
    raw_total: float


@dataclass(frozen=True)
class AggregatedTeamResult:
    team_id: str
    aggregated_score: float
    judge_count: int
    per_criterion_aggregate: dict[str, float]
    mean_raw_total: float
    median_raw_total: float


@dataclass(frozen=True)
class RankedResult:
    team_id: str
    rank: int
    percentile: float
    aggregated_score: float
    is_tied: bool
    requires_manual_resolution: bool
    tie_breaker_trace: dict[str, Any]


@dataclass(frozen=True)
class JudgeSelection:
    """Per-judge breakdown entry of a PER_JUDGE_TOP_N selection."""

    judge_id: str
    judge_type: JudgeType
    teams_evaluated: int
    selected: tuple[dict[str, Any], ...]

    @property
    def selected_team_ids(self) -> list[str]:
        return [entry["team_id"] for entry in self.selected]


@dataclass(frozen=True)
class SelectionResult:
    success: bool
    mode: SelectionMode | None = None
    params: dict[str, Any] = field(default_factory=dict)
    selected_team_ids: frozenset[str] = frozenset()
    per_judge_breakdown: tuple[JudgeSelection, ...] | None = None
    ranked_list: tuple[RankedResult, ...] | None = None
    stop: bool = False
    message: str | None = None
    cut_tied_team_ids: frozenset[str] = frozenset()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.stop:
            result["stop"] = True
            result["message"] = self.message
            return result
        result["mode"] = self.mode.value if self.mode else None
        result["params"] = dict(self.params)
        result["selected_team_ids"] = sorted(self.selected_team_ids)
        if self.per_judge_breakdown is not None:
            result["per_judge_breakdown"] = [
                {
                    "judge_id": b.judge_id,
                    "judge_type": b.judge_type.value,
                    "teams_evaluated": b.teams_evaluated,
                    "teams_selected": len(b.selected),
                    "selected_team_ids": b.selected_team_ids,
                }
                for b in self.per_judge_breakdown
            ]
        if self.ranked_list is not None:
            result["ranked_list"] = [
                {"team_id": r.team_id, "rank": r.rank, "percentile": r.percentile}
                for r in self.ranked_list
            ]
        if self.cut_tied_team_ids:
            result["cut_tied_team_ids"] = sorted(self.cut_tied_team_ids)
        return result


@dataclass(frozen=True)
class PromotionRecord:
    """A team advancing from one round to the next."""

    from_round: str
    to_round: str
    team_id: str
    mode: SelectionMode
    params: dict[str, Any]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class NormalizationConfig(BaseModel):
    """Options for a round computation."""

    method: NormalizationMethod = NormalizationMethod(DEFAULT_METHOD)
    judge_weights: dict[str, float] = Field(default_factory=dict)

    @field_validator("judge_weights")
    @classmethod
    def _validate_judge_weights(cls, value: dict[str, float]) -> dict[str, float]:
        for judge_id, weight in value.items():
            if not math.isfinite(weight) or weight <= 0:
                raise ValueError(f"judge weight for '{judge_id}' must be a positive number")
        return value

    @classmethod
    def build(cls, **kwargs) -> "NormalizationConfig":
        """Construct, reporting bad values as ConfigurationError."""
        try:
            return cls(**kwargs)
        except PydanticValidationError as e:
            raise ConfigurationError(str(e)) from e


class SelectionConfig(BaseModel):
    """Options for choosing the teams that advance."""

    mode: SelectionMode
    top_n: int = DEFAULT_TOP_N
    top_k: int = DEFAULT_TOP_K
    judge_types: list[JudgeType] | None = None

    @field_validator("top_n")
    @classmethod
    def _validate_top_n(cls, value: int) -> int:
        if value not in ALLOWED_TOP_N:
            raise ValueError(f"top_n must be one of {sorted(ALLOWED_TOP_N)}")
        return value

    @field_validator("top_k")
    @classmethod
    def _validate_top_k(cls, value: int) -> int:
        if value < 1:
            raise ValueError("top_k must be at least 1")
        return value

    @model_validator(mode="after")
    def _validate_judge_filter(self) -> "SelectionConfig":
        if self.judge_types is not None and not self.judge_types:
            raise ValueError("judge_types filter must name at least one judge type")
        return self

    @classmethod
    def build(cls, **kwargs) -> "SelectionConfig":
        """Construct, reporting bad values as ConfigurationError."""
        try:
            return cls(**kwargs)
        except PydanticValidationError as e:
            raise ConfigurationError(str(e)) from e

    @property
    def params(self) -> dict[str, Any]:
        """Parameters recorded alongside a selection for audit."""
        if self.mode == SelectionMode.PER_JUDGE_TOP_N:
            params: dict[str, Any] = {"top_n": self.top_n}
            if self.judge_types is not None:
                params["judge_types"] = sorted(t.value for t in self.judge_types)
            return params
        return {"top_k": self.top_k}
