"""
Learning Engine — API Endpoint
================================
  POST /learning-engine  {action: "process_feedback", feedback: {...}}
  POST /learning-engine  {action: "get_recommendations", context: {...}}

process_feedback stores the raw event (best-effort) and upserts each derived
pattern; a failed pattern write is skipped and left out of patterns_updated.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends

from app.api.deps import (
    error_response,
    get_current_user,
    get_feedback_repository,
    get_insight_repository,
    get_pattern_repository,
    get_record_provider,
)
from app.config import settings
from app.core.analytics.errors import FeedbackValidationError
from app.core.analytics.pattern_extractor import FeedbackEvent, PatternExtractor
from app.core.analytics.recommendation_ranker import RecommendationRanker
from app.core.analytics.stores import best_effort

logger = logging.getLogger(__name__)
router = APIRouter()


class LearningEngineRequest(BaseModel):
    action: str = Field(..., description="process_feedback | get_recommendations")
    feedback: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "action": "process_feedback",
                "feedback": {
                    "interactionId": "msg-42",
                    "feedbackType": "positive",
                    "rating": 5,
                    "context": {"modelType": "clustering", "query": "segment customers by revenue"},
                },
            }
        }


@router.post("/learning-engine")
async def learning_engine(
        request: LearningEngineRequest,
        user_id: str = Depends(get_current_user),
        patterns=Depends(get_pattern_repository),
        feedback_store=Depends(get_feedback_repository),
        records=Depends(get_record_provider),
        insights=Depends(get_insight_repository),
):
    if request.action == "process_feedback":
        return _process_feedback(request, user_id, patterns, feedback_store)
    if request.action == "get_recommendations":
        return _get_recommendations(request, user_id, patterns, feedback_store, records, insights)
    return error_response(400, "Invalid action")


def _process_feedback(request: LearningEngineRequest, user_id: str, patterns, feedback_store):
    try:
        event = FeedbackEvent.from_dict(request.feedback)
    except FeedbackValidationError as e:
        return error_response(400, str(e))

    best_effort("feedback storage", feedback_store.add, user_id, event)

    try:
        updated = PatternExtractor(patterns).extract_patterns(user_id, event)
    except Exception as e:
        logger.error(f"Learning engine feedback error: {e}", exc_info=True)
        return error_response(500, str(e))

    return {
        "success": True,
        "patterns_updated": len(updated),
        "pattern_types": updated,
        "message": "Learning patterns updated successfully",
    }


def _get_recommendations(request: LearningEngineRequest, user_id: str, patterns, feedback_store, records, insights):
    try:
        user_patterns = patterns.list_for_user(user_id, settings.PATTERN_LOOKUP_LIMIT)
        history = feedback_store.recent(user_id, settings.FEEDBACK_HISTORY_LIMIT)
        datasets = records.list_datasets(user_id, settings.CONTEXT_DATASET_LIMIT)
        recent_insights = insights.recent(user_id, settings.CONTEXT_INSIGHT_LIMIT)

        ranking = RecommendationRanker(limit=settings.RECOMMENDATION_LIMIT).rank(
            user_patterns, history, request.context or {}, datasets, recent_insights,
        )
    except Exception as e:
        logger.error(f"Learning engine recommendation error: {e}", exc_info=True)
        return error_response(500, str(e))

    return {
        "success": True,
        "recommendations": [r.to_dict() for r in ranking.recommendations],
        "personalization_score": ranking.personalization_score,
    }
