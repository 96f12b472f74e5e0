"""
Pipeline Orchestrator — Declarative Record Processing
=======================================================
Applies an ordered list of steps from the step library to a record
collection, scores the output, and reports a structured run result.

Steps execute strictly in configuration order; each step receives the
previous step's output, never the original input.

Usage:
  config = PipelineConfig.from_dict({"steps": [
      {"type": "clean", "params": {"trim_strings": True}},
      {"type": "filter", "params": {"filters": [...]}},
  ]})
  result = run_pipeline(records, config)
  result.to_dict()
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .column_profiler import Record
from .errors import PipelineConfigError
from .pipeline_steps import STEP_REGISTRY
from .quality_scorer import QualityMetrics, quality_issues, score_quality

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PipelineStep:
    type: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "params": dict(self.params)}


@dataclass(frozen=True)
class PipelineConfig:
    steps: Tuple[PipelineStep, ...] = ()
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Any, name: Optional[str] = None) -> "PipelineConfig":
        """
        Accepts {"steps": [...]}, a bare list of steps, or a stored
        pipeline row {"name": ..., "pipeline_config": {"steps": [...]}}.
        """
        if isinstance(raw, dict) and "pipeline_config" in raw:
            return cls.from_dict(raw.get("pipeline_config") or {}, name=raw.get("name") or name)

        if isinstance(raw, dict):
            raw_steps = raw.get("steps") or []
            name = raw.get("name") or name
        elif isinstance(raw, list):
            raw_steps = raw
        else:
            raise PipelineConfigError(f"Pipeline configuration must be an object or list, got {type(raw).__name__}")

        if not isinstance(raw_steps, list):
            raise PipelineConfigError("Pipeline 'steps' must be a list")

        steps = []
        for position, entry in enumerate(raw_steps, start=1):
            if not isinstance(entry, dict):
                raise PipelineConfigError(f"Step {position} must be an object")
            step_type = entry.get("type")
            if step_type not in STEP_REGISTRY:
                raise PipelineConfigError(
                    f"Step {position} has unknown type '{step_type}'. "
                    f"Expected one of: {', '.join(STEP_REGISTRY)}"
                )
            params = entry.get("params") or {}
            if not isinstance(params, dict):
                raise PipelineConfigError(f"Step {position} params must be an object")
            steps.append(PipelineStep(type=step_type, params=dict(params)))

        return cls(steps=tuple(steps), name=name)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "steps": [s.to_dict() for s in self.steps]}


# ═══════════════════════════════════════════════════════════════
# RESULT
# ═══════════════════════════════════════════════════════════════

@dataclass
class PipelineRunResult:
    original_count: int
    processed_count: int = 0
    operations: List[Dict[str, Any]] = field(default_factory=list)
    quality_metrics: Dict[str, Any] = field(default_factory=dict)
    issues: List[str] = field(default_factory=list)
    records: List[Record] = field(default_factory=list)
    analysis: Optional[Dict[str, Any]] = None

    def to_dict(self, include_records: bool = False) -> Dict[str, Any]:
        out = {
            "original_count": self.original_count,
            "processed_count": self.processed_count,
            "operations": self.operations,
            "quality_metrics": self.quality_metrics,
            "issues": self.issues,
        }
        if self.analysis is not None:
            out["analysis"] = self.analysis
        if include_records:
            out["records"] = self.records
        return out


# ═══════════════════════════════════════════════════════════════
# RUNNER
# ═══════════════════════════════════════════════════════════════

def run_pipeline(records: List[Record], config: PipelineConfig) -> PipelineRunResult:
    """Apply every configured step in order, then score the output."""
    data = [dict(r) for r in records if isinstance(r, dict)]
    result = PipelineRunResult(original_count=len(data))

    for position, step in enumerate(config.steps, start=1):
        func = STEP_REGISTRY[step.type]
        started = time.perf_counter()
        before = len(data)
        data = func(data, step.params)
        elapsed_ms = (time.perf_counter() - started) * 1000

        removed = before - len(data)
        result.operations.append({
            "step": position,
            "type": step.type,
            "input_count": before,
            "output_count": len(data),
            "removed_rows": removed,
            "duration_ms": round(elapsed_ms, 3),
        })
        if removed:
            result.issues.append(f"Step {position} ({step.type}) removed {removed} records")
        logger.debug(f"Pipeline step {position} ({step.type}): {before} -> {len(data)} records")

    metrics: QualityMetrics = score_quality(data)
    result.quality_metrics = metrics.to_dict()
    result.issues.extend(quality_issues(data, metrics))
    if not data:
        result.issues.append("No records remaining after processing")

    result.processed_count = len(data)
    result.records = data

    logger.info(
        f"Pipeline '{config.name or 'unnamed'}' processed {result.original_count} -> "
        f"{result.processed_count} records across {len(config.steps)} steps "
        f"(quality {metrics.quality_score:.2f})"
    )
    return result
