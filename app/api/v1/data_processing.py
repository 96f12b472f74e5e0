"""
Data Processing — API Endpoints
=================================
  POST /data-processing   — flag-driven clean/validate/transform/analyze
  POST /pipelines/run     — execute a stored pipeline configuration

Pipeline status transitions (running → active | error) and the
data_processing insight are best-effort side effects.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends

from app.api.deps import (
    error_response,
    get_current_user,
    get_insight_repository,
    get_pipeline_repository,
    get_record_provider,
)
from app.config import settings
from app.core.analytics.data_processor import process_operations
from app.core.analytics.errors import DatasetNotFoundError, PipelineConfigError, PipelineNotFoundError
from app.core.analytics.pipeline_orchestrator import PipelineConfig, run_pipeline
from app.core.analytics.stores import best_effort

logger = logging.getLogger(__name__)
router = APIRouter()

PIPELINE_INSIGHT_CONFIDENCE = 0.9


# ═══════════════════════════════════════════════════════════════
# REQUEST SCHEMAS
# ═══════════════════════════════════════════════════════════════

class ProcessingOperations(BaseModel):
    clean: bool = False
    validate_data: bool = Field(False, alias="validate")
    transform: bool = False
    analyze: bool = False

    class Config:
        populate_by_name = True


class DataProcessingRequest(BaseModel):
    dataset_id: str = Field(..., alias="datasetId")
    operations: ProcessingOperations = Field(default_factory=ProcessingOperations)
    include_records: bool = Field(False, alias="includeRecords")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "datasetId": "8750650f-0479-428b-a134-3b681dae7492",
                "operations": {"clean": True, "validate": True, "transform": False, "analyze": True},
            }
        }


class PipelineRunRequest(BaseModel):
    pipeline_id: str = Field(..., alias="pipelineId")
    dataset_id: str = Field(..., alias="datasetId")
    action: Optional[str] = "run"

    class Config:
        populate_by_name = True


# ═══════════════════════════════════════════════════════════════
# ENDPOINTS
# ═══════════════════════════════════════════════════════════════

@router.post("/data-processing")
async def process_dataset(
        request: DataProcessingRequest,
        user_id: str = Depends(get_current_user),
        records=Depends(get_record_provider),
):
    """Run the requested operations in fixed order over the dataset's records."""
    try:
        data = records.get_records(request.dataset_id, user_id, settings.PIPELINE_RECORD_LIMIT)
        ops = request.operations
        result = process_operations(data, {
            "clean": ops.clean,
            "validate": ops.validate_data,
            "transform": ops.transform,
            "analyze": ops.analyze,
        })
        return result.to_dict(include_records=request.include_records)

    except DatasetNotFoundError as e:
        return error_response(404, str(e))
    except Exception as e:
        logger.error(f"Data processing error: {e}", exc_info=True)
        return error_response(500, str(e))


@router.post("/pipelines/run")
async def run_stored_pipeline(
        request: PipelineRunRequest,
        user_id: str = Depends(get_current_user),
        records=Depends(get_record_provider),
        pipelines=Depends(get_pipeline_repository),
        insights=Depends(get_insight_repository),
):
    """Execute a stored pipeline against a dataset and record the outcome."""
    if request.action != "run":
        return error_response(400, "Invalid action")

    try:
        pipeline = pipelines.get(request.pipeline_id, user_id)
        config = PipelineConfig.from_dict(pipeline)
    except PipelineNotFoundError as e:
        return error_response(404, str(e))
    except PipelineConfigError as e:
        return error_response(400, str(e))
    except Exception as e:
        logger.error(f"Pipeline load error [{request.pipeline_id}]: {e}", exc_info=True)
        return error_response(500, str(e))

    best_effort("pipeline status update", pipelines.set_status, request.pipeline_id, "running")

    try:
        data = records.get_records(request.dataset_id, user_id, settings.PIPELINE_RECORD_LIMIT)
        run = run_pipeline(data, config)
    except DatasetNotFoundError as e:
        best_effort("pipeline status update", pipelines.set_status, request.pipeline_id, "error")
        return error_response(404, str(e))
    except PipelineConfigError as e:
        best_effort("pipeline status update", pipelines.set_status, request.pipeline_id, "error")
        return error_response(400, str(e))
    except Exception as e:
        logger.error(f"Pipeline run error [{request.pipeline_id}]: {e}", exc_info=True)
        best_effort("pipeline status update", pipelines.set_status, request.pipeline_id, "error")
        return error_response(500, str(e))

    quality = run.quality_metrics.get("quality_score", 0.0)
    results = {
        "original_count": run.original_count,
        "processed_count": run.processed_count,
        "transformations_applied": len(config.steps),
        "data_quality_score": quality,
        "operations": run.operations,
        "quality_metrics": run.quality_metrics,
        "issues": run.issues,
    }

    best_effort(
        "pipeline status update", pipelines.set_status,
        request.pipeline_id, "active", last_run=datetime.now(timezone.utc),
    )
    if settings.ENABLE_INSIGHT_STORAGE:
        name = config.name or request.pipeline_id
        best_effort(
            "pipeline insight storage", insights.add,
            user_id, request.dataset_id, "data_processing",
            {
                "title": f"Data Pipeline: {name}",
                "description": (
                    f"Processed {run.original_count} records with {len(config.steps)} "
                    f"transformations. Data quality score: {quality:.2f}"
                ),
                "confidence": PIPELINE_INSIGHT_CONFIDENCE,
                "metadata": {"pipeline_id": request.pipeline_id, "processing_results": results},
            },
        )

    return {
        "success": True,
        "results": results,
        "message": "Pipeline executed successfully",
    }
