"""
Ad hoc data processing driven by boolean operation flags:

  {"clean": true, "validate": true, "transform": true, "analyze": true}

Unlike the configured pipeline, validation here annotates instead of
filtering, and transform derives normalized/encoded columns automatically.
"""

import logging
import math
from typing import Any, Dict, List

from .column_profiler import (
    ColumnRole, Record, column_order, is_null, json_type_name, parse_number, profile_column,
)
from .pipeline_orchestrator import PipelineRunResult
from .pipeline_steps import clean

logger = logging.getLogger(__name__)

OUTLIER_SIGMA = 3.0
OUTLIER_PENALTY = 5
ISSUE_PENALTY = 10
MAX_ENCODED_CATEGORIES = 10
TOP_VALUES = 5


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


# ── clean ──────────────────────────────────────────────────────

def _clean(data: List[Record]) -> Dict[str, Any]:
    cleaned_fields = []
    for record in data:
        for key, value in record.items():
            if isinstance(value, str) and value != value.strip() and key not in cleaned_fields:
                cleaned_fields.append(key)

    cleaned = clean(data, {"remove_nulls": True, "trim_strings": True})
    return {
        "data": cleaned,
        "removed_rows": len(data) - len(cleaned),
        "cleaned_fields": cleaned_fields,
    }


# ── validate ───────────────────────────────────────────────────

def _validate(data: List[Record]) -> Dict[str, Any]:
    if not data:
        return {
            "metrics": {"completeness": 0.0, "accuracy": 0.0, "consistency": 0.0},
            "issues": ["No data to validate"],
        }

    columns = column_order(data)
    issues = []

    total = len(data) * len(columns)
    filled = sum(1 for r in data for c in columns if not is_null(r.get(c)))
    completeness = filled / total * 100 if total else 0.0

    if columns:
        first = columns[0]
        values = [json_type_name(r.get(first)) + ":" + str(r.get(first)) for r in data]
        if len(set(values)) != len(values):
            issues.append(f"Potential duplicates detected in {first}")

    for col in columns:
        types = {json_type_name(r[col]) for r in data if r.get(col) is not None}
        if len(types) > 1:
            issues.append(f"Inconsistent data types in column {col}")

    accuracy = 100
    for col in columns:
        numbers = [n for n in (parse_number(r.get(col)) for r in data) if n is not None]
        if len(numbers) <= 3:
            continue
        mean = sum(numbers) / len(numbers)
        std = math.sqrt(sum((n - mean) ** 2 for n in numbers) / len(numbers))
        outliers = [n for n in numbers if abs(n - mean) > OUTLIER_SIGMA * std]
        if outliers:
            issues.append(f"{len(outliers)} potential outliers in {col}")
            accuracy -= OUTLIER_PENALTY

    return {
        "metrics": {
            "completeness": completeness,
            "accuracy": max(accuracy, 0),
            "consistency": max(100 - len(issues) * ISSUE_PENALTY, 0),
        },
        "issues": issues,
    }


# ── transform ──────────────────────────────────────────────────

def _transform(data: List[Record]) -> Dict[str, Any]:
    if not data:
        return {"data": [], "transformations": []}

    transformed = [dict(r) for r in data]
    transformations = []
    columns = column_order(data)

    numeric = [c for c in columns if any(_is_number(r.get(c)) for r in data)]
    if numeric:
        col = numeric[0]
        values = [r[col] for r in data if _is_number(r.get(col))]
        low, high = (min(values), max(values)) if values else (0, 0)
        if len(values) > 1 and high > low:
            for row in transformed:
                if _is_number(row.get(col)):
                    row[f"{col}_normalized"] = (row[col] - low) / (high - low)
            transformations.append(f"Normalized {col}")

    textual = [c for c in columns if any(isinstance(r.get(c), str) for r in data)]
    if textual:
        col = textual[0]
        distinct = list(dict.fromkeys(r[col] for r in data if isinstance(r.get(col), str)))
        if 1 < len(distinct) <= MAX_ENCODED_CATEGORIES:
            encoding = {value: idx for idx, value in enumerate(distinct)}
            for row in transformed:
                if isinstance(row.get(col), str):
                    row[f"{col}_encoded"] = encoding[row[col]]
            transformations.append(f"Encoded {col}")

    return {"data": transformed, "transformations": transformations}


# ── analyze ────────────────────────────────────────────────────

def _analyze(data: List[Record]) -> Dict[str, Any]:
    if not data:
        return {"insights": [], "summary": {}}

    columns = column_order(data)
    summary = {
        "row_count": len(data),
        "column_count": len(columns),
        "numeric_columns": [],
        "categorical_columns": [],
    }

    for col in columns:
        values = [r.get(col) for r in data if r.get(col) is not None]
        if profile_column(data, col).role == ColumnRole.NUMERIC:
            numbers = [n for n in (parse_number(v) for v in values) if n is not None]
            summary["numeric_columns"].append({
                "name": col,
                "min": min(numbers),
                "max": max(numbers),
                "mean": sum(numbers) / len(numbers),
                "count": len(numbers),
            })
        else:
            distinct = list(dict.fromkeys(values))
            summary["categorical_columns"].append({
                "name": col,
                "unique_count": len(distinct),
                "top_values": distinct[:TOP_VALUES],
                "count": len(values),
            })

    insights = []
    if summary["numeric_columns"]:
        insights.append(f"Found {len(summary['numeric_columns'])} numeric columns ready for analysis")
    if summary["categorical_columns"]:
        insights.append(f"Identified {len(summary['categorical_columns'])} categorical variables")

    empty_rows = sum(1 for r in data if all(is_null(v) for v in r.values()))
    completeness = (len(data) - empty_rows) / len(data) * 100
    insights.append(f"Data completeness: {completeness:.1f}%")

    return {"insights": insights, "summary": summary}


# ── entry point ────────────────────────────────────────────────

def process_operations(records: List[Record], operations: Dict[str, Any]) -> PipelineRunResult:
    """Run the flagged operations in fixed order: clean, validate, transform, analyze."""
    data = [dict(r) for r in records if isinstance(r, dict)]
    result = PipelineRunResult(original_count=len(data))

    if operations.get("clean"):
        outcome = _clean(data)
        data = outcome["data"]
        result.operations.append({
            "type": "cleaning",
            "removed_rows": outcome["removed_rows"],
            "cleaned_fields": outcome["cleaned_fields"],
        })

    if operations.get("validate"):
        outcome = _validate(data)
        result.quality_metrics = outcome["metrics"]
        result.issues = outcome["issues"]
        result.operations.append({"type": "validation", "issues_found": len(outcome["issues"])})

    if operations.get("transform"):
        outcome = _transform(data)
        data = outcome["data"]
        result.operations.append({"type": "transformation", "transformations": outcome["transformations"]})

    if operations.get("analyze"):
        outcome = _analyze(data)
        result.analysis = outcome
        result.operations.append({"type": "analysis", "insights": len(outcome["insights"])})

    result.processed_count = len(data)
    result.records = data
    logger.info(
        f"Processed {result.original_count} records with operations "
        f"{[op['type'] for op in result.operations]} -> {result.processed_count} records"
    )
    return result
