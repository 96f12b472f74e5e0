"""
Pattern Extractor — Feedback → Per-User Learning Patterns
===========================================================
Turns a single feedback event into up to four pattern upserts:

  preferred_models   — which model kind the user rated      (context.model_type)
  query_complexity   — simple / medium / complex questions  (query text)
  response_format    — tabular / visual / structured / ...  (response content)
  topic_interests    — business topics mentioned in the query

Each pattern is keyed by (user_id, pattern_type). A newer event overwrites
the stored pattern_data and confidence_score; there is no blending.
A store failure skips that pattern only; the remaining types are still written.

Usage:
  extractor = PatternExtractor(pattern_repository)
  event = FeedbackEvent.from_dict(payload)
  updated = extractor.extract_patterns(user_id, event)   # ["preferred_models", ...]
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import FeedbackValidationError, UpstreamError

logger = logging.getLogger(__name__)


class PatternType:
    PREFERRED_MODELS = "preferred_models"
    QUERY_COMPLEXITY = "query_complexity"
    RESPONSE_FORMAT = "response_format"
    TOPIC_INTERESTS = "topic_interests"


FEEDBACK_TYPES = ("positive", "negative", "neutral")
MIN_RATING, MAX_RATING = 1, 5

TECHNICAL_TERMS = ("correlation", "regression", "clustering", "anomaly", "prediction", "analysis")

# Matched against the start of each word in the query
TOPIC_VOCABULARIES: Dict[str, tuple] = {
    "sales": ("sale", "revenue", "deal", "customer", "order", "purchase", "quota"),
    "finance": ("financ", "budget", "cost", "profit", "expense", "invoice", "cash", "margin"),
    "marketing": ("marketing", "campaign", "brand", "advertis", "lead", "conversion", "seo"),
    "operations": ("operation", "supply", "inventory", "logistic", "shipment", "warehouse", "efficien"),
    "hr": ("employee", "hiring", "recruit", "retention", "payroll", "staff", "attrition", "headcount"),
    "product": ("product", "feature", "roadmap", "release", "adoption", "usage"),
}

_WORD = re.compile(r"[a-z0-9]+")
_LIST_MARKER = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+", re.MULTILINE)

DETAILED_LENGTH = 500


# ═══════════════════════════════════════════════════════════════
# DATA TYPES
# ═══════════════════════════════════════════════════════════════

def _first_present(payload: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


@dataclass
class FeedbackEvent:
    feedback_type: str
    rating: int
    interaction_id: Optional[str] = None
    comment: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FeedbackEvent":
        """Build from a camelCase or snake_case payload, validating rating and type."""
        if not isinstance(payload, dict):
            raise FeedbackValidationError("Feedback must be an object")

        feedback_type = _first_present(payload, "feedback_type", "feedbackType")
        if feedback_type not in FEEDBACK_TYPES:
            raise FeedbackValidationError(
                f"feedback_type must be one of {', '.join(FEEDBACK_TYPES)}, got {feedback_type!r}"
            )

        rating = payload.get("rating")
        if isinstance(rating, bool) or not isinstance(rating, (int, float)) or float(rating) != int(rating):
            raise FeedbackValidationError(f"rating must be an integer, got {rating!r}")
        rating = int(rating)
        if not MIN_RATING <= rating <= MAX_RATING:
            raise FeedbackValidationError(f"rating must be between {MIN_RATING} and {MAX_RATING}, got {rating}")

        context = payload.get("context") or {}
        if not isinstance(context, dict):
            raise FeedbackValidationError("context must be an object")

        interaction_id = _first_present(payload, "interaction_id", "interactionId")
        return cls(
            feedback_type=feedback_type,
            rating=rating,
            interaction_id=str(interaction_id) if interaction_id is not None else None,
            comment=payload.get("comment"),
            context=dict(context),
        )

    @property
    def model_type(self) -> Optional[str]:
        return _first_present(self.context, "modelType", "model_type")

    @property
    def query_text(self) -> Optional[str]:
        value = _first_present(self.context, "query", "queryText", "messageContent")
        return value if isinstance(value, str) and value.strip() else None

    @property
    def response_content(self) -> Optional[str]:
        value = _first_present(self.context, "responseContent", "response", "messageContent")
        return value if isinstance(value, str) and value.strip() else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interaction_id": self.interaction_id,
            "feedback_type": self.feedback_type,
            "rating": self.rating,
            "comment": self.comment,
            "context": self.context,
        }


@dataclass
class LearningPattern:
    user_id: str
    pattern_type: str
    pattern_data: Dict[str, Any]
    confidence_score: float
    usage_count: int = 1
    last_used: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "pattern_type": self.pattern_type,
            "pattern_data": self.pattern_data,
            "confidence_score": self.confidence_score,
            "usage_count": self.usage_count,
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }


# ═══════════════════════════════════════════════════════════════
# CLASSIFIERS
# ═══════════════════════════════════════════════════════════════

def classify_query_complexity(query: str) -> str:
    words = len(query.split())
    lowered = query.lower()
    technical = sum(1 for term in TECHNICAL_TERMS if term in lowered)

    if words > 20 or technical >= 3:
        return "complex"
    if words > 10 or technical >= 1:
        return "medium"
    return "simple"


def classify_response_format(content: str) -> str:
    lowered = content.lower()
    if "|" in content or "table" in lowered:
        return "tabular"
    if "chart" in lowered or "graph" in lowered:
        return "visual"
    if _LIST_MARKER.search(content) or "•" in content:
        return "structured"
    if len(content) > DETAILED_LENGTH:
        return "detailed"
    return "concise"


def match_topics(text: str) -> List[str]:
    words = _WORD.findall(text.lower())
    return [
        topic for topic, stems in TOPIC_VOCABULARIES.items()
        if any(word.startswith(stem) for word in words for stem in stems)
    ]


# ═══════════════════════════════════════════════════════════════
# EXTRACTOR
# ═══════════════════════════════════════════════════════════════

class PatternExtractor:
    """Derives and upserts learning patterns through a PatternRepository."""

    def __init__(self, repository):
        self.repository = repository

    def extract_patterns(self, user_id: str, event: FeedbackEvent) -> List[str]:
        """Upsert each derived pattern independently; returns the types actually written."""
        candidates = self._candidate_patterns(user_id, event)
        updated = []
        for pattern in candidates:
            try:
                self.repository.upsert(pattern)
            except UpstreamError as e:
                logger.warning(f"Skipped {pattern.pattern_type} pattern for user {user_id}: {e}")
                continue
            updated.append(pattern.pattern_type)

        logger.info(f"Feedback from user {user_id} updated patterns: {updated or 'none'}")
        return updated

    def _candidate_patterns(self, user_id: str, event: FeedbackEvent) -> List[LearningPattern]:
        rating = event.rating
        patterns = []

        model_type = event.model_type
        if model_type:
            patterns.append(LearningPattern(
                user_id=user_id,
                pattern_type=PatternType.PREFERRED_MODELS,
                pattern_data={
                    "model_type": model_type,
                    "rating": rating,
                    "feedback_type": event.feedback_type,
                },
                confidence_score=rating / 5.0,
            ))

        query = event.query_text
        if query:
            patterns.append(LearningPattern(
                user_id=user_id,
                pattern_type=PatternType.QUERY_COMPLEXITY,
                pattern_data={
                    "complexity_level": classify_query_complexity(query),
                    "rating": rating,
                    "preferred": rating >= 4,
                },
                # distance from a neutral rating
                confidence_score=abs(rating - 3) / 2.0,
            ))

        content = event.response_content
        if content:
            patterns.append(LearningPattern(
                user_id=user_id,
                pattern_type=PatternType.RESPONSE_FORMAT,
                pattern_data={
                    "format_type": classify_response_format(content),
                    "rating": rating,
                    "liked": event.feedback_type == "positive",
                },
                confidence_score=rating / 5.0,
            ))

        topics = match_topics(query) if query else []
        if topics:
            patterns.append(LearningPattern(
                user_id=user_id,
                pattern_type=PatternType.TOPIC_INTERESTS,
                pattern_data={
                    "topics": topics,
                    "rating": rating,
                    "interested": rating >= 4,
                },
                confidence_score=rating / 5.0,
            ))

        return patterns
