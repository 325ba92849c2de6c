"""
Round Input Loaders

Reads the inputs of a round computation from files into model objects:
- criteria CSV: id, max_marks, weight, display_order, name
- evaluations, either a long CSV (one row per judge/team/criterion score)
  or a JSON export (list of evaluation objects)
- judge assignments CSV: judge_id, judge_type, judge_weight

Loaders only parse. Range and format checks on the scores themselves are
left to the validator so every problem is reported together.

Usage:
    from fairrank.ingestion.loaders import load_criteria_csv, load_evaluations
    criteria = load_criteria_csv(Path("data/raw/criteria.csv"))
    evaluations = load_evaluations(Path("data/raw/evaluations.csv"))
"""

import json
import math
from pathlib import Path

import pandas as pd

from fairrank.config import DEFAULT_JUDGE_TYPE, DEFAULT_JUDGE_WEIGHT, MAX_INPUT_SIZE
from fairrank.scoring.models import Criterion, Evaluation, JudgeAssignment, JudgeType
from fairrank.utils import parse_flag, setup_logging, validate_choice, validate_input_size

# --- Module Logger ---
logger = setup_logging(__name__)

EVALUATION_FORMATS = ("csv", "json")

CRITERIA_COLUMNS = ["id", "max_marks"]
EVALUATION_COLUMNS = ["judge_id", "team_id", "round_id", "criterion_id", "score"]
ASSIGNMENT_COLUMNS = ["judge_id"]

class IngestionError(Exception):
    """Custom exception for input loading errors"""
    pass


def _read_csv(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise IngestionError(f"Input file not found: {path}")
    try:
        # Everything as text; numeric parsing is done per column
        return pd.read_csv(path, dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise IngestionError(f"Could not read {path}: {e}") from e


def _require_columns(df: pd.DataFrame, columns: list[str], path: Path) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise IngestionError(f"{path.name} is missing required column(s): {', '.join(missing)}")


def _parse_score(text: str):
    """Blank -> None, numeric -> float, anything else kept as given."""
    text = text.strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return text


def _parse_display_order(text: str, default: int, criterion_id: str, path: Path) -> int:
    """Blank -> row position; otherwise a finite whole number."""
    text = text.strip()
    if not text:
        return default
    try:
        value = float(text)
    except ValueError:
        value = math.nan
    if not math.isfinite(value) or not value.is_integer():
        raise IngestionError(
            f"display_order of criterion '{criterion_id}' in {path.name} "
            f"must be a whole number, got '{text}'"
        )
    return int(value)


def _parse_draft_flags(flags, judge_id: str, team_id: str, path: Path) -> bool:
    """An evaluation is a draft if any of its rows is flagged as one."""
    try:
        return any(parse_flag(flag) for flag in flags)
    except ValueError as e:
        raise IngestionError(f"Evaluation {judge_id}/{team_id} in {path.name}: {e}") from e


def load_criteria_csv(path: Path) -> list[Criterion]:
    """
    Load the criteria of a round.

    Missing weights default to 1.0 and missing display orders to the row
    position. A max_marks or weight that is not a number is loaded as NaN
    and rejected later by the validator.

    Raises:
        IngestionError: If the file cannot be read, lacks required columns,
            or holds a display_order that is not a whole number
    """
    df = _read_csv(path)
    _require_columns(df, CRITERIA_COLUMNS, path)

    max_marks = pd.to_numeric(df["max_marks"], errors="coerce")
    weights = (
        pd.to_numeric(df["weight"].replace("", "1"), errors="coerce")
        if "weight" in df.columns else pd.Series(1.0, index=df.index)
    )

    criteria = []
    for position, (i, row) in enumerate(df.iterrows()):
        criterion_id = row["id"].strip()
        criteria.append(Criterion(
            id=criterion_id,
            max_marks=float(max_marks[i]),
            weight=float(weights[i]),
            display_order=_parse_display_order(
                row.get("display_order", ""), position, criterion_id, path
            ),
            name=(row.get("name") or "").strip() or None,
        ))

    logger.info(f"Loaded {len(criteria)} criteria from {path}")
    return criteria


def load_evaluations_csv(path: Path) -> list[Evaluation]:
    """
    Load evaluations from a long-format CSV.

    Each row holds one score: judge_id, team_id, round_id, criterion_id,
    score and an optional is_draft flag. Rows are grouped into one
    Evaluation per (judge, team, round). An evaluation is a draft if any
    of its rows is flagged as one.

    Raises:
        IngestionError: If the file cannot be read, lacks required columns,
            repeats a criterion within one evaluation, or holds an
            unrecognized is_draft value
    """
    df = _read_csv(path)
    _require_columns(df, EVALUATION_COLUMNS, path)

    if "is_draft" not in df.columns:
        df["is_draft"] = ""

    for column in ["judge_id", "team_id", "round_id", "criterion_id"]:
        df[column] = df[column].str.strip()

    duplicated = df.duplicated(subset=["judge_id", "team_id", "round_id", "criterion_id"], keep=False)
    if duplicated.any():
        dupes = df.loc[duplicated, ["judge_id", "team_id", "criterion_id"]].drop_duplicates()
        raise IngestionError(
            f"Repeated criterion score rows in {path.name}: "
            f"{dupes.to_dict(orient='records')}"
        )

    evaluations = []
    for (judge_id, team_id, round_id), group in df.groupby(["judge_id", "team_id", "round_id"], sort=True):
        evaluations.append(Evaluation(
            judge_id=judge_id,
            team_id=team_id,
            round_id=round_id,
            scores={
                row.criterion_id: _parse_score(row.score)
                for row in group.itertuples(index=False)
            },
            is_draft=_parse_draft_flags(group["is_draft"], judge_id, team_id, path),
        ))

    logger.info(f"Loaded {len(evaluations)} evaluations ({len(df)} score rows) from {path}")
    return evaluations


def load_evaluations_json(path: Path) -> list[Evaluation]:
    """
    Load evaluations from a JSON export.

    The file holds either a list of evaluation objects or an object with an
    "evaluations" list. Each object has judge_id, team_id, round_id, a
    scores mapping and an optional is_draft flag.

    Raises:
        IngestionError: If the file is missing, too large, not valid JSON,
            or an entry lacks judge_id/team_id, has scores that are not an
            object, or an is_draft value that is not a flag
    """
    if not path.exists():
        raise IngestionError(f"Input file not found: {path}")

    text = path.read_text(encoding="utf-8")
    try:
        validate_input_size(text, MAX_INPUT_SIZE)
    except ValueError as e:
        raise IngestionError(str(e)) from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise IngestionError(f"Invalid JSON in {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("evaluations")
    if not isinstance(data, list):
        raise IngestionError(f"{path.name} must contain a list of evaluations")

    evaluations = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise IngestionError(f"Evaluation #{i} in {path.name} is not an object")
        scores = entry.get("scores")
        if scores is not None and not isinstance(scores, dict):
            raise IngestionError(
                f"Evaluation #{i} in {path.name} has scores of type "
                f"{type(scores).__name__}, expected an object"
            )
        try:
            evaluations.append(Evaluation.from_dict(entry))
        except KeyError as e:
            raise IngestionError(f"Evaluation #{i} in {path.name} is missing {e}") from e
        except ValueError as e:
            raise IngestionError(f"Evaluation #{i} in {path.name}: {e}") from e

    logger.info(f"Loaded {len(evaluations)} evaluations from {path}")
    return evaluations


def load_evaluations(path: Path, fmt: str | None = None) -> list[Evaluation]:
    """
    Load evaluations, choosing the reader from fmt or the file extension.

    Raises:
        IngestionError: If the format is not supported or loading fails
    """
    fmt = (fmt or path.suffix.lstrip(".")).lower()
    try:
        validate_choice(fmt, EVALUATION_FORMATS, "evaluation format")
    except ValueError as e:
        raise IngestionError(str(e)) from e

    if fmt == "json":
        return load_evaluations_json(path)
    return load_evaluations_csv(path)


def load_assignments_csv(path: Path) -> list[JudgeAssignment]:
    """
    Load the judges assigned to a round.

    judge_type defaults to BOTH and judge_weight to 1.0 when the column is
    absent or blank.

    Raises:
        IngestionError: If the file cannot be read, lacks judge_id, or holds
            an unknown judge type or a non-numeric weight
    """
    df = _read_csv(path)
    _require_columns(df, ASSIGNMENT_COLUMNS, path)

    assignments = []
    for row in df.to_dict(orient="records"):
        judge_type = (row.get("judge_type") or DEFAULT_JUDGE_TYPE).strip().upper()
        try:
            validate_choice(judge_type, [t.value for t in JudgeType], "judge type")
        except ValueError as e:
            raise IngestionError(f"Judge {row['judge_id']}: {e}") from e

        weight_text = (row.get("judge_weight") or "").strip()
        try:
            weight = float(weight_text) if weight_text else DEFAULT_JUDGE_WEIGHT
        except ValueError:
            raise IngestionError(
                f"Judge {row['judge_id']}: judge_weight '{weight_text}' is not a number"
            ) from None

        assignments.append(JudgeAssignment(
            judge_id=row["judge_id"].strip(),
            judge_type=JudgeType(judge_type),
            judge_weight=weight,
        ))

    logger.info(f"Loaded {len(assignments)} judge assignments from {path}")
    return assignments
