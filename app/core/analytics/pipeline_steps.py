"""
Pipeline Step Library — clean / validate / transform / filter / enrich
========================================================================
Each step is a pure function: (records, params) -> new records.
Input records are never mutated; every step copies what it changes.

Params reference:
  clean      remove_nulls, trim_strings, standardize_formats
  validate   required_fields: [field], type_validations: {field: number|email|date}
  transform  field_transformations: {field: uppercase|lowercase|number|date}
             computed_fields: {new_field: {type: concat|math, fields, separator, operation}}
  filter     filters: [{field, operator: equals|contains|greater_than|less_than, value}]
  enrich     enrich_location, add_metadata
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .column_profiler import (
    Record, coerce_numeric_string, is_null, parse_date, parse_number, to_iso_utc,
)
from .errors import PipelineConfigError

logger = logging.getLogger(__name__)

Params = Dict[str, Any]
Step = Callable[[List[Record], Params], List[Record]]

NULL_TOKENS = frozenset({"null", "NULL", "n/a", "N/A", "undefined", "none", "None"})

_PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")
_MIN_PHONE_DIGITS = 7

ENRICHMENT_VERSION = "1.0"


def _has_data(record: Record) -> bool:
    return any(not is_null(v) for v in record.values())


def _is_phone_like(text: str) -> bool:
    if not _PHONE_PATTERN.match(text):
        return False
    return sum(ch.isdigit() for ch in text) >= _MIN_PHONE_DIGITS


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ═══════════════════════════════════════════════════════════════
# CLEAN
# ═══════════════════════════════════════════════════════════════

def _clean_value(value: Any, params: Params) -> Any:
    if not isinstance(value, str):
        return value

    text = value.strip() if params.get("trim_strings") else value
    if params.get("remove_nulls") and text.strip() in NULL_TOKENS:
        return None

    standardize = params.get("standardize_formats")
    if standardize and _is_phone_like(text.strip()):
        return re.sub(r"\D", "", text)

    number = coerce_numeric_string(text) if text.strip() else None
    if number is not None:
        return number

    if standardize and "@" in text:
        return text.lower()
    return text


def clean(records: List[Record], params: Params) -> List[Record]:
    """Drop empty records, normalize null tokens, trim, parse numbers, standardize."""
    cleaned = []
    for record in records:
        row = {key: _clean_value(value, params) for key, value in record.items()}
        if not _has_data(row):
            continue
        cleaned.append(row)
    return cleaned


# ═══════════════════════════════════════════════════════════════
# VALIDATE
# ═══════════════════════════════════════════════════════════════

def _passes_type(value: Any, expected: str) -> bool:
    if expected == "number":
        return parse_number(value) is not None
    if expected == "email":
        return isinstance(value, str) and bool(_EMAIL_PATTERN.match(value.strip()))
    if expected == "date":
        return parse_date(value) is not None
    logger.debug(f"Unknown type validation '{expected}' ignored")
    return True


def validate(records: List[Record], params: Params) -> List[Record]:
    """Keep only records passing required-field and type checks."""
    required = params.get("required_fields") or []
    type_checks = params.get("type_validations") or {}

    kept = []
    for record in records:
        if any(is_null(record.get(f)) for f in required):
            continue
        if any(
            not is_null(record.get(f)) and not _passes_type(record.get(f), expected)
            for f, expected in type_checks.items()
        ):
            continue
        kept.append(dict(record))
    return kept


# ═══════════════════════════════════════════════════════════════
# TRANSFORM
# ═══════════════════════════════════════════════════════════════

def _apply_field_transformation(value: Any, kind: str) -> Any:
    if value is None:
        return None
    if kind == "uppercase":
        return _to_text(value).upper()
    if kind == "lowercase":
        return _to_text(value).lower()
    if kind == "number":
        return parse_number(value)
    if kind == "date":
        moment = parse_date(value)
        return to_iso_utc(moment) if moment else None
    raise PipelineConfigError(f"Unknown field transformation: {kind}")


def _compute_field(row: Record, definition: Dict[str, Any]) -> Any:
    fields = definition.get("fields") or []
    kind = definition.get("type")

    if kind == "concat":
        separator = definition.get("separator", " ")
        return separator.join(_to_text(row.get(f)) for f in fields)

    if kind == "math":
        values = [parse_number(row.get(f)) or 0.0 for f in fields]
        operation = definition.get("operation")
        if operation == "sum":
            return sum(values)
        if operation == "average":
            return sum(values) / len(values) if values else 0.0
        raise PipelineConfigError(f"Unknown math operation: {operation}")

    raise PipelineConfigError(f"Unknown computed field type: {kind}")


def transform(records: List[Record], params: Params) -> List[Record]:
    """Per-field conversions, then computed fields."""
    field_transformations = params.get("field_transformations") or {}
    computed_fields = params.get("computed_fields") or {}

    transformed = []
    for record in records:
        row = dict(record)
        for field_name, definition in field_transformations.items():
            if field_name not in row:
                continue
            kind = definition.get("type") if isinstance(definition, dict) else definition
            row[field_name] = _apply_field_transformation(row[field_name], kind)
        for new_field, definition in computed_fields.items():
            row[new_field] = _compute_field(row, definition)
        transformed.append(row)
    return transformed


# ═══════════════════════════════════════════════════════════════
# FILTER
# ═══════════════════════════════════════════════════════════════

def _compare(left: Any, right: Any, operator: str) -> bool:
    a, b = parse_number(left), parse_number(right)
    if a is None or b is None:
        return False
    return a > b if operator == "greater_than" else a < b


def _matches(record: Record, predicate: Dict[str, Any]) -> bool:
    operator = predicate.get("operator")
    value = record.get(predicate.get("field"))
    expected = predicate.get("value")

    if operator == "equals":
        return value == expected
    if operator == "contains":
        return value is not None and _to_text(expected) in _to_text(value)
    if operator in ("greater_than", "less_than"):
        return _compare(value, expected, operator)
    raise PipelineConfigError(f"Unknown filter operator: {operator}")


def filter_records(records: List[Record], params: Params) -> List[Record]:
    """AND-combined predicate filter."""
    predicates = params.get("filters") or []
    return [dict(r) for r in records if all(_matches(r, p) for p in predicates)]


# ═══════════════════════════════════════════════════════════════
# ENRICH
# ═══════════════════════════════════════════════════════════════

def enrich(records: List[Record], params: Params, now: Optional[datetime] = None) -> List[Record]:
    """Placeholder location block and processing metadata. No real geocoding."""
    processed_at = to_iso_utc(now or datetime.now(timezone.utc))

    enriched = []
    for record in records:
        row = dict(record)
        if params.get("enrich_location") and not is_null(record.get("city")):
            row["enriched_location"] = {
                "city": record["city"],
                "region": "Unknown",
                "country": "Unknown",
            }
        if params.get("add_metadata"):
            row["_metadata"] = {
                "processed_at": processed_at,
                "enrichment_version": ENRICHMENT_VERSION,
            }
        enriched.append(row)
    return enriched


STEP_REGISTRY: Dict[str, Step] = {
    "clean": clean,
    "validate": validate,
    "transform": transform,
    "filter": filter_records,
    "enrich": enrich,
}
