"""Payload parsing, configuration strings and roster/answer sheet loading."""

import json
import logging
import re
import zipfile
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from bulls.models import (
    ClassificationThresholds,
    QuestionTag,
    RawAnswer,
    Student,
)

LOG = logging.getLogger(__name__)


# Question UUIDs of the deployed BULL-S questionnaire (q1..q9).
DEFAULT_QUESTION_TAGS: Dict[str, QuestionTag] = {
    'd90ddd09-3878-4efc-9059-7279570157bc': QuestionTag.POSITIVE_AFFINITY_NOMINATION,
    '47b56067-0c8c-4565-b645-80348852907f': QuestionTag.NEGATIVE_AFFINITY_NOMINATION,
    'dae67e87-db3e-4637-ace1-f1148f1d7d69': QuestionTag.AGGRESSOR_NOMINATION,
    'd2888d67-9878-4cdf-8a58-592c251c1cb6': QuestionTag.VICTIM_NOMINATION,
    '0489df06-c6e7-48ec-8fb0-49469ec541ae': QuestionTag.AGGRESSION_FORM,
    '775af389-a84d-4f40-8fb9-7b94cbea5498': QuestionTag.AGGRESSION_PLACE,
    '8e0be6b5-fa0b-4215-bc60-0c91065bbaa9': QuestionTag.AGGRESSION_FREQUENCY,
    'eec6513e-f5b7-45b1-b21d-4e4551b3e504': QuestionTag.PERCEIVED_SEVERITY,
    '8074fef6-4952-4857-b97c-08a1a8805522': QuestionTag.PERCEIVED_SAFETY,
}


@dataclass(frozen=True)
class Nominations:
    """A well-formed nomination list."""
    ids: Tuple[str, ...]


@dataclass(frozen=True)
class MalformedPayload:
    """A payload that could not be read as a nomination list."""
    raw: Any
    reason: str


NominationPayload = Union[Nominations, MalformedPayload]


def _coerce_id(value: Any) -> Optional[str]:
    # bool is an int subclass but never a student id
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int):
        return str(value)
    return None


def parse_nomination_payload(payload: Any) -> NominationPayload:
    """
    Read a stored answer payload as a list of nominated student ids.

    Accepts JSON text of an array or an already decoded list/tuple. Elements
    must be strings or integers. Never raises: anything else comes back as
    MalformedPayload.

    Args:
        payload: Raw payload as stored

    Returns:
        Nominations or MalformedPayload
    """
    value = payload
    if isinstance(payload, (bytes, bytearray)):
        try:
            value = payload.decode('utf-8')
        except UnicodeDecodeError:
            return MalformedPayload(payload, "payload is not valid UTF-8")

    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return MalformedPayload(payload, "payload is not valid JSON")

    if not isinstance(value, (list, tuple)):
        return MalformedPayload(payload, f"expected a list, got {type(value).__name__}")

    ids = []
    for item in value:
        student_id = _coerce_id(item)
        if student_id is None:
            return MalformedPayload(payload, f"unsupported nominee {item!r}")
        ids.append(student_id)

    return Nominations(tuple(ids))


def parse_choice_payload(payload: Any) -> List[str]:
    """
    Read a situational (multiple choice) answer as a list of options.

    A JSON list yields its string items; any other text is a single option.
    """
    if payload is None:
        return []
    if isinstance(payload, (list, tuple)):
        return [str(item).strip() for item in payload if str(item).strip()]

    text = str(payload).strip()
    if not text:
        return []
    try:
        decoded = json.loads(text)
    except ValueError:
        return [text]
    if isinstance(decoded, list):
        return [str(item).strip() for item in decoded if str(item).strip()]
    if isinstance(decoded, str):
        return [decoded.strip()] if decoded.strip() else []
    return [text]


def parse_thresholds(thresholds_str: Optional[str]) -> ClassificationThresholds:
    """
    Parse a `key:value,key:value` string into ClassificationThresholds.

    Unknown keys, non-numeric values and fractional values for integer
    thresholds raise ValueError.
    """
    if not thresholds_str or not thresholds_str.strip():
        return ClassificationThresholds()

    fields = ClassificationThresholds.model_fields
    overrides: Dict[str, float] = {}
    for item in thresholds_str.split(','):
        if not item.strip():
            continue
        if ':' not in item:
            raise ValueError(f"Invalid threshold entry '{item.strip()}', expected key:value")
        key, value = item.split(':', 1)
        key = key.strip()
        if key not in fields:
            raise ValueError(f"Unknown threshold '{key}'")
        try:
            number = float(value.strip())
        except ValueError:
            raise ValueError(f"Threshold '{key}' must be numeric, got '{value.strip()}'")
        if fields[key].annotation is int:
            if not number.is_integer():
                raise ValueError(f"Threshold '{key}' must be a whole number, got '{value.strip()}'")
            number = int(number)
        overrides[key] = number

    return ClassificationThresholds(**overrides)


def parse_question_tags(tags: Union[None, str, Dict[str, Any]]) -> Dict[str, QuestionTag]:
    """
    Build the question_id -> QuestionTag map.

    `tags` may be a JSON object string or a dict; entries override the
    defaults. An empty value returns the defaults.
    """
    result = dict(DEFAULT_QUESTION_TAGS)
    if tags is None:
        return result
    if isinstance(tags, str):
        if not tags.strip():
            return result
        try:
            tags = json.loads(tags)
        except ValueError as e:
            raise ValueError(f"Question tags must be a JSON object: {e}")
    if not isinstance(tags, dict):
        raise ValueError("Question tags must map question ids to tags")

    for question_id, tag in tags.items():
        try:
            result[str(question_id)] = QuestionTag(tag)
        except ValueError:
            raise ValueError(f"Unknown question tag '{tag}' for question '{question_id}'")
    return result


def normalize_col_name(col_name) -> str:
    """Normalize a column name for matching."""
    if pd.isna(col_name):
        return ""
    normalized = str(col_name).strip().lower()
    normalized = re.sub(r'[.,%#]', '', normalized)
    normalized = re.sub(r'[\s_\-]+', ' ', normalized)
    return normalized.strip()


ROSTER_COLUMNS = {
    "student_id": ["student id", "studentid", "student", "id", "estudiante id", "estudiante"],
    "first_name": ["first name", "firstname", "nombre", "nombre estudiante"],
    "last_name": ["last name", "lastname", "surname", "apellido", "apellido estudiante"],
    "name": ["name", "student name", "full name", "nombre completo"],
    "group_id": ["group id", "groupid", "group", "grupo id", "grupo"],
    "age": ["age", "edad"],
    "gender": ["gender", "sex", "genero"],
}

ANSWER_COLUMNS = {
    "student_id": ["student id", "studentid", "respondent", "respondent id", "estudiante id"],
    "question_id": ["question id", "questionid", "question", "pregunta id", "pregunta"],
    "payload": ["payload", "answer", "response", "value", "respuesta texto", "respuesta", "valor"],
}


def normalize_and_rename_columns(df: pd.DataFrame, sheet_type: str) -> pd.DataFrame:
    """
    Standardize column names of a roster or answers sheet.

    Args:
        df: DataFrame to normalize
        sheet_type: "roster" or "answers"

    Returns:
        Copy of df with canonical column names
    """
    if sheet_type == "roster":
        target_mappings = ROSTER_COLUMNS
    elif sheet_type == "answers":
        target_mappings = ANSWER_COLUMNS
    else:
        raise ValueError(f"Unknown sheet type '{sheet_type}'")

    df = df.copy()
    actual_rename = {}
    for orig_col in df.columns:
        normalized = normalize_col_name(orig_col)
        for target_name, variations in target_mappings.items():
            if normalized == target_name.replace('_', ' ') or normalized in variations:
                if target_name not in actual_rename.values():
                    actual_rename[orig_col] = target_name
                break

    if actual_rename:
        df = df.rename(columns=actual_rename)
        LOG.debug("Renamed columns in %s sheet: %s", sheet_type, actual_rename)
    else:
        LOG.warning("No columns were renamed in %s sheet. Original columns: %s", sheet_type, list(df.columns))

    if df.columns.duplicated().any():
        LOG.warning("Dropping duplicate columns in %s sheet: %s",
                    sheet_type, df.columns[df.columns.duplicated()].tolist())
        df = df.loc[:, ~df.columns.duplicated(keep='first')]

    return df


def find_header_row(file_bytes: bytes, max_rows: int = 20) -> int:
    """
    Locate the header row of the first worksheet of an Excel file.

    Exported sheets often carry title rows above the table; the header is
    the first row with a recognizable student id column.

    Returns:
        Zero-based row index suitable for pandas' `header` argument
    """
    workbook = load_workbook(filename=BytesIO(file_bytes), data_only=True)
    try:
        sheet = workbook.worksheets[0]
        known = set(ROSTER_COLUMNS["student_id"]) | set(ANSWER_COLUMNS["student_id"]) | {"student id"}
        for row_idx, row in enumerate(sheet.iter_rows(min_row=1, max_row=max_rows, values_only=True)):
            for value in row:
                if value is not None and normalize_col_name(value) in known:
                    return row_idx
    finally:
        workbook.close()
    return 0


def load_table(file_bytes: bytes, filename: str) -> pd.DataFrame:
    """
    Load a CSV or Excel upload into a DataFrame of strings.

    Raises:
        ValueError: unsupported extension or unreadable workbook
    """
    name = (filename or "").lower()
    if name.endswith(".csv"):
        df = pd.read_csv(BytesIO(file_bytes), dtype=str, keep_default_na=False)
    elif name.endswith((".xlsx", ".xlsm")):
        try:
            header = find_header_row(file_bytes)
            df = pd.read_excel(BytesIO(file_bytes), header=header, dtype=str, engine="openpyxl")
        except (zipfile.BadZipFile, InvalidFileException, KeyError) as e:
            raise ValueError(f"Could not read Excel file '{filename}': {e}")
        df = df.fillna("")
    else:
        raise ValueError("Invalid file type. Please upload a CSV or Excel (.xlsx) file")

    # Drop fully empty rows left by spreadsheet exports
    df = df[~(df.astype(str).apply(lambda col: col.str.strip()) == "").all(axis=1)]
    return df.reset_index(drop=True)


def _cell(row: pd.Series, column: str) -> str:
    value = row.get(column, "")
    if value is None or pd.isna(value):
        return ""
    return str(value).strip()


def roster_from_frame(df: pd.DataFrame, group_id: Optional[str] = None) -> List[Student]:
    """
    Build Student records from a roster sheet.

    Rows without an id are skipped. The display name is taken from a name
    column, or joined from first/last name columns.
    """
    df = normalize_and_rename_columns(df, "roster")
    if "student_id" not in df.columns:
        raise ValueError(f"Roster sheet has no student id column. Columns: {list(df.columns)}")

    students = []
    for _, row in df.iterrows():
        student_id = _cell(row, "student_id")
        if not student_id:
            continue

        name = _cell(row, "name")
        if not name:
            name = " ".join(part for part in (_cell(row, "first_name"), _cell(row, "last_name")) if part)

        age = _cell(row, "age")
        try:
            age_value = int(float(age)) if age else None
        except ValueError:
            age_value = None

        students.append(Student(
            id=student_id,
            name=name or "Unknown",
            group_id=_cell(row, "group_id") or group_id,
            age=age_value,
            gender=_cell(row, "gender") or None,
        ))

    return students


def answers_from_frame(df: pd.DataFrame) -> List[RawAnswer]:
    """
    Build RawAnswer records from an answers sheet.

    Payload text is kept verbatim; it is parsed later by the classifier.
    """
    df = normalize_and_rename_columns(df, "answers")
    missing = [col for col in ("student_id", "question_id", "payload") if col not in df.columns]
    if missing:
        raise ValueError(f"Answers sheet is missing columns {missing}. Columns: {list(df.columns)}")

    answers = []
    skipped = 0
    for _, row in df.iterrows():
        student_id = _cell(row, "student_id")
        question_id = _cell(row, "question_id")
        if not student_id or not question_id:
            skipped += 1
            continue
        answers.append(RawAnswer(student_id=student_id, question_id=question_id, payload=_cell(row, "payload")))

    if skipped:
        LOG.warning("Skipped %d answer rows without respondent or question id", skipped)
    return answers
