"""
Quality Scorer — 0–1 Data-Quality Score for a Record Collection
=================================================================
quality = mean(completeness, consistency, uniqueness)

  completeness — filled cells / (records × union of columns)
  consistency  — share of columns whose non-null values share one JSON type
  uniqueness   — distinct records (key-order insensitive) / record count

All three factors are always computed; an empty collection scores 0.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

from .column_profiler import Record, column_order, is_null, json_type_name

logger = logging.getLogger(__name__)

LOW_COMPLETENESS = 0.8


@dataclass
class QualityMetrics:
    completeness: float = 0.0
    consistency: float = 0.0
    uniqueness: float = 0.0
    quality_score: float = 0.0
    inconsistent_columns: List[str] = field(default_factory=list)
    duplicate_records: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completeness": self.completeness,
            "consistency": self.consistency,
            "uniqueness": self.uniqueness,
            "quality_score": self.quality_score,
            "inconsistent_columns": list(self.inconsistent_columns),
            "duplicate_records": self.duplicate_records,
        }


def _fingerprint(record: Record) -> str:
    return json.dumps(record, sort_keys=True, default=str)


def score_quality(records: List[Record]) -> QualityMetrics:
    if not records:
        return QualityMetrics()

    columns = column_order(records)

    # Completeness
    total_cells = len(records) * len(columns)
    filled = sum(
        1 for record in records for col in columns if not is_null(record.get(col))
    )
    completeness = filled / total_cells if total_cells else 0.0

    # Consistency
    observed: Dict[str, Set[str]] = {col: set() for col in columns}
    for record in records:
        for col in columns:
            value = record.get(col)
            if value is not None:
                observed[col].add(json_type_name(value))
    inconsistent = [col for col, types in observed.items() if len(types) > 1]
    consistency = (len(columns) - len(inconsistent)) / len(columns) if columns else 1.0

    # Uniqueness
    distinct = len({_fingerprint(r) for r in records})
    uniqueness = distinct / len(records)

    quality = (completeness + consistency + uniqueness) / 3
    return QualityMetrics(
        completeness=completeness,
        consistency=consistency,
        uniqueness=uniqueness,
        quality_score=quality,
        inconsistent_columns=inconsistent,
        duplicate_records=len(records) - distinct,
    )


def quality_issues(records: List[Record], metrics: QualityMetrics) -> List[str]:
    """Human-readable issues derived from the metrics."""
    issues = []
    if not records:
        return issues
    if metrics.completeness < LOW_COMPLETENESS:
        issues.append(f"Low completeness: {metrics.completeness * 100:.1f}% of fields are filled")
    for col in metrics.inconsistent_columns:
        issues.append(f"Inconsistent data types in column {col}")
    if metrics.duplicate_records:
        issues.append(f"{metrics.duplicate_records} duplicate records detected")
    return issues
