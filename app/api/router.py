"""
API Router — Combines all endpoint groups under /api/v1.

Analysis:     /api/v1/ml-models/analyze
Processing:   /api/v1/data-processing, /api/v1/pipelines/run
Learning:     /api/v1/learning-engine
Health:       /api/v1/health
"""

from fastapi import APIRouter

from app.api.v1.ml_models import router as ml_models_router
from app.api.v1.data_processing import router as data_processing_router
from app.api.v1.learning import router as learning_router
from app.api.v1.health import router as health_router

api_router = APIRouter()

api_router.include_router(
    ml_models_router,
    prefix="/ml-models",
    tags=["Statistical Analysis"],
)

api_router.include_router(
    data_processing_router,
    tags=["Data Processing"],
)

api_router.include_router(
    learning_router,
    tags=["Learning Engine"],
)

api_router.include_router(
    health_router,
    tags=["Health"],
)
