"""
Statistical Analysis — API Endpoint
=====================================
  POST /ml-models/analyze   — run one analysis over a dataset's records

Input-insufficiency is a normal 200 response carrying metadata.error.
Successful results are stored as insights (best-effort).
"""

import logging
from typing import Any, Dict

from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends

from app.api.deps import error_response, get_current_user, get_insight_repository, get_record_provider
from app.config import settings
from app.core.analytics.errors import DatasetNotFoundError, UnsupportedModelError
from app.core.analytics.statistical_engine import StatisticalEngine
from app.core.analytics.stores import best_effort

logger = logging.getLogger(__name__)
router = APIRouter()

_engine = StatisticalEngine()

ANALYSIS_ERROR_TITLE = "ML Analysis Error"
ANALYSIS_ERROR_DESCRIPTION = (
    "An error occurred during analysis. Please try again with different "
    "parameters or check your data."
)


class AnalyzeRequest(BaseModel):
    dataset_id: str = Field(..., alias="datasetId")
    model_type: str = Field(
        ..., alias="modelType",
        description="linear_regression | clustering | anomaly_detection | time_series",
    )
    parameters: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        populate_by_name = True
        protected_namespaces = ()
        json_schema_extra = {
            "example": {
                "datasetId": "8750650f-0479-428b-a134-3b681dae7492",
                "modelType": "anomaly_detection",
                "parameters": {"threshold": 2.5},
            }
        }


@router.post("/analyze")
async def analyze_dataset(
        request: AnalyzeRequest,
        user_id: str = Depends(get_current_user),
        records=Depends(get_record_provider),
        insights=Depends(get_insight_repository),
):
    """Run a statistical analysis and return the titled result."""
    try:
        data = records.get_records(request.dataset_id, user_id, settings.ANALYSIS_RECORD_LIMIT)
        result = _engine.analyze(data, request.model_type, request.parameters)

    except UnsupportedModelError as e:
        return error_response(400, str(e))
    except DatasetNotFoundError as e:
        return error_response(404, str(e))
    except Exception as e:
        logger.error(f"Analysis error [{request.model_type}]: {e}", exc_info=True)
        return error_response(
            500, str(e),
            title=ANALYSIS_ERROR_TITLE,
            description=ANALYSIS_ERROR_DESCRIPTION,
            confidence=0.1,
            metadata={"error": str(e)},
        )

    if settings.ENABLE_INSIGHT_STORAGE and result.error is None:
        best_effort(
            "insight storage", insights.add,
            user_id, request.dataset_id, request.model_type, result.to_dict(),
        )
    return result.to_dict()
