"""
Column Profiler — Role Classification for Uploaded Tables
===========================================================
Classifies every column of a record collection as numeric, date, or
categorical. Roles are derived on every call and never stored.

Rules:
  numeric     — ≥70% of non-null values parse as finite numbers
  date        — not numeric, and every non-null value is a date string
  categorical — everything else

Also hosts the value parsers shared by the statistical engine, the
pipeline steps, and the recommendation ranker.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

NUMERIC_SHARE_THRESHOLD = 0.7

_INT_PATTERN = re.compile(r"^[+-]?\d+$")

_DATE_FORMATS = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%Y-%m",
)


class ColumnRole:
    NUMERIC = "numeric"
    DATE = "date"
    CATEGORICAL = "categorical"


# ═══════════════════════════════════════════════════════════════
# VALUE PARSING
# ═══════════════════════════════════════════════════════════════

def is_null(value: Any) -> bool:
    """None and blank strings count as null."""
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def parse_number(value: Any) -> Optional[float]:
    """Strictly parse a value as a finite number. Booleans are not numbers."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text or "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_numeric_string(text: str) -> Optional[Any]:
    """Turn a numeric-looking string into int or float; None if it isn't one."""
    stripped = text.strip()
    if _INT_PATTERN.match(stripped):
        return int(stripped)
    number = parse_number(stripped)
    if number is None:
        return None
    return number


def parse_date(value: Any) -> Optional[datetime]:
    """Parse a date string. Returns a timezone-aware datetime (UTC when naive)."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None

    parsed = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00") if text.endswith("Z") else text)
    except ValueError:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso_utc(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2024-01-05T00:00:00.000Z"""
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"


def json_type_name(value: Any) -> str:
    """Type name as a JSON consumer would see it."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


# ═══════════════════════════════════════════════════════════════
# COLUMN CLASSIFICATION
# ═══════════════════════════════════════════════════════════════

@dataclass
class ColumnProfile:
    name: str
    role: str = ColumnRole.CATEGORICAL
    non_null_count: int = 0
    numeric_count: int = 0
    date_count: int = 0
    sample_values: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "role": self.role,
            "non_null_count": self.non_null_count,
            "numeric_count": self.numeric_count,
            "date_count": self.date_count,
        }


def column_order(records: Iterable[Record]) -> List[str]:
    """Column names in order of first appearance across the collection."""
    seen: Dict[str, None] = {}
    for record in records:
        if not isinstance(record, dict):
            continue
        for key in record:
            if key not in seen:
                seen[key] = None
    return list(seen)


def profile_column(records: List[Record], column: str) -> ColumnProfile:
    profile = ColumnProfile(name=column)
    all_strings = True

    for record in records:
        value = record.get(column) if isinstance(record, dict) else None
        if is_null(value):
            continue
        profile.non_null_count += 1
        if len(profile.sample_values) < 5:
            profile.sample_values.append(value)
        if parse_number(value) is not None:
            profile.numeric_count += 1
        if not isinstance(value, str):
            all_strings = False
        elif parse_date(value) is not None:
            profile.date_count += 1

    if profile.non_null_count == 0:
        return profile

    if profile.numeric_count / profile.non_null_count >= NUMERIC_SHARE_THRESHOLD:
        profile.role = ColumnRole.NUMERIC
    elif all_strings and profile.date_count == profile.non_null_count:
        profile.role = ColumnRole.DATE
    return profile


def classify_columns(records: List[Record]) -> List[ColumnProfile]:
    """Profile every column, preserving column order."""
    return [profile_column(records, col) for col in column_order(records)]


def columns_with_role(records: List[Record], role: str) -> List[str]:
    return [p.name for p in classify_columns(records) if p.role == role]


def numeric_columns(records: List[Record]) -> List[str]:
    return columns_with_role(records, ColumnRole.NUMERIC)


def date_columns(records: List[Record]) -> List[str]:
    return columns_with_role(records, ColumnRole.DATE)
