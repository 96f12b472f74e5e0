"""
Insight Analytics — Core Module
================================
Stateless request/response handlers behind the analytics product:
statistical analysis over uploaded tables, configurable record-processing
pipelines, and feedback-driven recommendations.

Components:
  ┌──────────────────────────────────────────────────────────┐
  │ StatisticalEngine    — regression / clustering /          │
  │                        anomalies / time series            │
  │ ColumnProfiler       — numeric / date / categorical roles │
  │ Pipeline steps       — clean validate transform filter    │
  │                        enrich                             │
  │ run_pipeline         — ordered step execution + quality   │
  │ process_operations   — flag-driven ad hoc processing      │
  │ QualityScorer        — completeness·consistency·unique    │
  │ PatternExtractor     — feedback → per-user patterns       │
  │ RecommendationRanker — candidates → top 5                 │
  │ Stores               — repository interfaces + adapters   │
  └──────────────────────────────────────────────────────────┘

Usage:
  from app.core.analytics import StatisticalEngine
  result = StatisticalEngine().analyze(records, "linear_regression", {})

  from app.core.analytics import PipelineConfig, run_pipeline
  run = run_pipeline(records, PipelineConfig.from_dict({"steps": [...]}))
"""

from .errors import (
    AnalyticsError,
    UnsupportedModelError,
    PipelineConfigError,
    FeedbackValidationError,
    DatasetNotFoundError,
    PipelineNotFoundError,
    UpstreamError,
    RecordProviderError,
    PatternStoreError,
    InsightStoreError,
)

# Analysis
from .column_profiler import ColumnRole, ColumnProfile, classify_columns
from .statistical_engine import (
    StatisticalEngine,
    EngineSettings,
    AnalysisResult,
    AnalysisErrorCode,
    ModelKind,
)

# Processing
from .pipeline_steps import STEP_REGISTRY
from .quality_scorer import QualityMetrics, score_quality
from .pipeline_orchestrator import PipelineStep, PipelineConfig, PipelineRunResult, run_pipeline
from .data_processor import process_operations

# Learning
from .pattern_extractor import FeedbackEvent, LearningPattern, PatternExtractor, PatternType
from .recommendation_ranker import (
    Recommendation,
    RankingResult,
    RecommendationRanker,
    personalization_score,
)

# Persistence seams
from .stores import (
    PatternRepository,
    FeedbackRepository,
    InsightRepository,
    RecordProvider,
    PipelineRepository,
    best_effort,
)

__all__ = [
    # ── Errors ──
    "AnalyticsError",
    "UnsupportedModelError",
    "PipelineConfigError",
    "FeedbackValidationError",
    "DatasetNotFoundError",
    "PipelineNotFoundError",
    "UpstreamError",
    "RecordProviderError",
    "PatternStoreError",
    "InsightStoreError",
    # ── Analysis ──
    "ColumnRole",
    "ColumnProfile",
    "classify_columns",
    "StatisticalEngine",
    "EngineSettings",
    "AnalysisResult",
    "AnalysisErrorCode",
    "ModelKind",
    # ── Processing ──
    "STEP_REGISTRY",
    "QualityMetrics",
    "score_quality",
    "PipelineStep",
    "PipelineConfig",
    "PipelineRunResult",
    "run_pipeline",
    "process_operations",
    # ── Learning ──
    "FeedbackEvent",
    "LearningPattern",
    "PatternExtractor",
    "PatternType",
    "Recommendation",
    "RankingResult",
    "RecommendationRanker",
    "personalization_score",
    # ── Persistence ──
    "PatternRepository",
    "FeedbackRepository",
    "InsightRepository",
    "RecordProvider",
    "PipelineRepository",
    "best_effort",
]
