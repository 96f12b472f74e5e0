"""
Recommendation Ranker — Candidate Generation + Top-N Selection
================================================================
Six independent strategies each contribute candidates with a fixed or
pattern-derived confidence:

  1. Dataset shape     — column roles of the most recent dataset      0.8–0.9
  2. Workflow chaining — next step after the most recent insight type  0.85
  3. Pattern-driven    — confident or positively-flagged patterns      pattern confidence
  4. Session context   — what the user is currently looking at         0.75
  5. Fallback          — anomaly check when nothing else proposes one  0.7
  6. Engagement        — many recent positive feedback events          0.8

Candidates are merged, stably sorted by confidence (descending) and
truncated. The personalization score is reported alongside and never
filters the list.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .column_profiler import ColumnRole, classify_columns
from .pattern_extractor import FeedbackEvent, LearningPattern, PatternType
from .statistical_engine import ModelKind

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 5

TIME_SERIES_CONFIDENCE = 0.9
REGRESSION_CONFIDENCE = 0.85
CLUSTERING_CONFIDENCE = 0.8
WORKFLOW_CONFIDENCE = 0.85
CONTEXT_CONFIDENCE = 0.75
FALLBACK_CONFIDENCE = 0.7
ENGAGEMENT_CONFIDENCE = 0.8

PATTERN_CONFIDENCE_THRESHOLD = 0.7
ENGAGEMENT_WINDOW = 10
ENGAGEMENT_MIN_POSITIVE = 5

_DECLARED_NUMERIC = {"number", "numeric", "integer", "int", "float", "decimal"}
_DECLARED_DATE = {"date", "datetime", "timestamp", "time"}


@dataclass
class Recommendation:
    type: str
    title: str
    description: str
    confidence: float
    model_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
        }
        if self.model_type:
            out["model_type"] = self.model_type
        return out


@dataclass
class RankingResult:
    recommendations: List[Recommendation] = field(default_factory=list)
    personalization_score: float = 0.0
    candidate_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendations": [r.to_dict() for r in self.recommendations],
            "personalization_score": self.personalization_score,
            "candidate_count": self.candidate_count,
        }


def personalization_score(patterns: List[LearningPattern]) -> float:
    """0.7 × mean pattern confidence + 0.3 × pattern diversity (saturates at 5)."""
    if not patterns:
        return 0.0
    mean_confidence = sum(p.confidence_score for p in patterns) / len(patterns)
    diversity = min(len(patterns) / 5, 1.0)
    return mean_confidence * 0.7 + diversity * 0.3


# ═══════════════════════════════════════════════════════════════
# DATASET COLUMN ROLES
# ═══════════════════════════════════════════════════════════════

def dataset_column_roles(dataset: Dict[str, Any]) -> Dict[str, str]:
    """Resolve column roles from explicit roles, declared column types, or sample records."""
    roles = dataset.get("column_roles")
    if isinstance(roles, dict) and roles:
        return dict(roles)

    columns = dataset.get("columns")
    if isinstance(columns, list) and columns:
        resolved = {}
        for column in columns:
            if isinstance(column, dict):
                name = column.get("name")
                declared = str(column.get("type") or "").lower()
            else:
                name, declared = column, ""
            if name is None:
                continue
            if declared in _DECLARED_NUMERIC:
                resolved[str(name)] = ColumnRole.NUMERIC
            elif declared in _DECLARED_DATE:
                resolved[str(name)] = ColumnRole.DATE
            else:
                resolved[str(name)] = ColumnRole.CATEGORICAL
        return resolved

    sample = dataset.get("sample_records") or []
    return {p.name: p.role for p in classify_columns(sample)}


# ═══════════════════════════════════════════════════════════════
# RANKER
# ═══════════════════════════════════════════════════════════════

class RecommendationRanker:

    def __init__(self, limit: int = MAX_RECOMMENDATIONS):
        self.limit = max(0, min(limit, MAX_RECOMMENDATIONS))

    def rank(
        self,
        patterns: List[LearningPattern],
        feedback_history: List[FeedbackEvent],
        session_context: Optional[Dict[str, Any]],
        datasets: List[Dict[str, Any]],
        insights: List[Dict[str, Any]],
    ) -> RankingResult:
        candidates: List[Recommendation] = []
        candidates.extend(self._from_dataset_shape(datasets))
        candidates.extend(self._from_workflow(insights))
        candidates.extend(self._from_patterns(patterns))
        candidates.extend(self._from_session(session_context or {}))
        candidates.extend(self._fallback(candidates, datasets))
        candidates.extend(self._from_engagement(feedback_history))

        ranked = sorted(candidates, key=lambda r: r.confidence, reverse=True)
        result = RankingResult(
            recommendations=ranked[:self.limit],
            personalization_score=personalization_score(patterns),
            candidate_count=len(candidates),
        )
        logger.debug(
            f"Ranked {len(candidates)} candidates -> {len(result.recommendations)} "
            f"(personalization {result.personalization_score:.2f})"
        )
        return result

    # ── 1. dataset shape ──

    def _from_dataset_shape(self, datasets: List[Dict[str, Any]]) -> List[Recommendation]:
        if not datasets:
            return []
        latest = datasets[0]
        name = latest.get("name") or "your latest dataset"
        roles = dataset_column_roles(latest)
        numeric = [c for c, r in roles.items() if r == ColumnRole.NUMERIC]
        dates = [c for c, r in roles.items() if r == ColumnRole.DATE]
        categorical = [c for c, r in roles.items() if r == ColumnRole.CATEGORICAL]

        out = []
        if dates:
            out.append(Recommendation(
                type="analysis_suggestion",
                title="Run a time series analysis",
                description=f"{name} has a date column ({dates[0]}); look for trends and seasonality over time.",
                confidence=TIME_SERIES_CONFIDENCE,
                model_type=ModelKind.TIME_SERIES,
            ))
        if len(numeric) >= 2:
            out.append(Recommendation(
                type="analysis_suggestion",
                title=f"Explore the relationship between {numeric[0]} and {numeric[1]}",
                description=f"{name} has {len(numeric)} numeric columns; a linear regression can quantify how they relate.",
                confidence=REGRESSION_CONFIDENCE,
                model_type=ModelKind.LINEAR_REGRESSION,
            ))
        if categorical and numeric:
            out.append(Recommendation(
                type="analysis_suggestion",
                title=f"Segment {numeric[0]} into clusters",
                description=f"Group records by {numeric[0]} and compare segments across {categorical[0]}.",
                confidence=CLUSTERING_CONFIDENCE,
                model_type=ModelKind.CLUSTERING,
            ))
        return out

    # ── 2. workflow chaining ──

    def _from_workflow(self, insights: List[Dict[str, Any]]) -> List[Recommendation]:
        if not insights:
            return []
        last_type = str(insights[0].get("insight_type") or "").lower()

        if "regression" in last_type:
            return [Recommendation(
                type="workflow_next_step",
                title="Generate predictions from your regression",
                description="Use the fitted equation to forecast values for new inputs.",
                confidence=WORKFLOW_CONFIDENCE,
            )]
        if "cluster" in last_type:
            return [Recommendation(
                type="workflow_next_step",
                title="Profile your clusters",
                description="Compare the characteristics of each cluster to understand what sets them apart.",
                confidence=WORKFLOW_CONFIDENCE,
            )]
        if "anomaly" in last_type:
            return [Recommendation(
                type="workflow_next_step",
                title="Investigate the root cause of detected anomalies",
                description="Look at what the anomalous records have in common to find the underlying cause.",
                confidence=WORKFLOW_CONFIDENCE,
            )]
        return []

    # ── 3. patterns ──

    def _from_patterns(self, patterns: List[LearningPattern]) -> List[Recommendation]:
        out = []
        for pattern in patterns:
            data = pattern.pattern_data or {}
            flagged = bool(data.get("preferred") or data.get("liked") or data.get("interested"))
            if not (pattern.confidence_score > PATTERN_CONFIDENCE_THRESHOLD or flagged):
                continue
            rec = self._pattern_recommendation(pattern.pattern_type, data, pattern.confidence_score)
            if rec:
                out.append(rec)
        return out

    @staticmethod
    def _pattern_recommendation(pattern_type: str, data: Dict[str, Any], confidence: float) -> Optional[Recommendation]:
        if pattern_type == PatternType.PREFERRED_MODELS:
            model = data.get("model_type")
            return Recommendation(
                type="model_suggestion",
                title=f"Consider using {model}",
                description=f"Based on your feedback, you tend to prefer {model} analysis.",
                confidence=confidence,
                model_type=model,
            )
        if pattern_type == PatternType.QUERY_COMPLEXITY:
            level = data.get("complexity_level")
            return Recommendation(
                type="query_style",
                title=f"{level} queries work well for you",
                description=f"You seem to prefer {level} complexity questions.",
                confidence=confidence,
            )
        if pattern_type == PatternType.RESPONSE_FORMAT:
            fmt = data.get("format_type")
            return Recommendation(
                type="format_preference",
                title=f"{fmt} format recommended",
                description=f"You've shown preference for {fmt} response formats.",
                confidence=confidence,
            )
        if pattern_type == PatternType.TOPIC_INTERESTS:
            topics = ", ".join(data.get("topics") or [])
            return Recommendation(
                type="topic_focus",
                title=f"More insights on {topics}",
                description=f"Your questions often focus on {topics}; explore related metrics next.",
                confidence=confidence,
            )
        logger.debug(f"No recommendation template for pattern type '{pattern_type}'")
        return None

    # ── 4. session context ──

    @staticmethod
    def _from_session(session_context: Dict[str, Any]) -> List[Recommendation]:
        activity = session_context.get("recentActivity") or session_context.get("recent_activity")
        if activity == "viewing_dashboard":
            return [Recommendation(
                type="contextual",
                title="Drill into your dashboard metrics",
                description="Ask the assistant to explain the biggest changes on your dashboard.",
                confidence=CONTEXT_CONFIDENCE,
            )]
        if activity == "viewing_ai_chat":
            return [Recommendation(
                type="contextual",
                title="Ask a follow-up question",
                description="Build on your last answer by asking why, or how it changed over time.",
                confidence=CONTEXT_CONFIDENCE,
            )]
        return []

    # ── 5. fallback ──

    @staticmethod
    def _fallback(candidates: List[Recommendation], datasets: List[Dict[str, Any]]) -> List[Recommendation]:
        if not datasets:
            return []
        if any(c.model_type == ModelKind.ANOMALY_DETECTION for c in candidates):
            return []
        return [Recommendation(
            type="analysis_suggestion",
            title="Check for anomalies",
            description="Scan your data for unusual values that may indicate errors or opportunities.",
            confidence=FALLBACK_CONFIDENCE,
            model_type=ModelKind.ANOMALY_DETECTION,
        )]

    # ── 6. engagement ──

    @staticmethod
    def _from_engagement(feedback_history: List[FeedbackEvent]) -> List[Recommendation]:
        positive = [f for f in feedback_history if f.feedback_type == "positive"][:ENGAGEMENT_WINDOW]
        if len(positive) <= ENGAGEMENT_MIN_POSITIVE:
            return []
        return [Recommendation(
            type="engagement",
            title="High engagement detected",
            description="You seem very engaged with AI analytics. Consider exploring advanced features like knowledge graphs.",
            confidence=ENGAGEMENT_CONFIDENCE,
        )]
