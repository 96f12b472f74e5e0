"""
Insight Analytics Engine — FastAPI Server (Port 8001)
=======================================================
Statistical analysis over uploaded tables, configurable data-processing
pipelines, and feedback-driven personalized recommendations.

Run:
  uvicorn main:app --host 0.0.0.0 --port 8001 --reload
  # or
  python main.py
"""

import logging
import os
from contextlib import asynccontextmanager

# Load .env file BEFORE anything reads os.getenv()
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from app.config import settings  # noqa: E402

# ── Logging ──
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(name)-30s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("insight_analytics")


# ── Lifespan: create tables ──
@asynccontextmanager
async def lifespan(app: FastAPI):
    from app.core.database import init_db

    logger.info("Creating database tables...")
    tables = init_db()
    logger.info(f"Database tables ready: {', '.join(tables)}")

    if not settings.AUTH_TOKENS:
        logger.warning("AUTH_TOKENS is empty; every request will be rejected with 401")

    yield
    logger.info("Shutting down Insight Analytics Engine")


# ── Create FastAPI app ──
app = FastAPI(
    title="Insight Analytics Engine",
    description=(
        "Statistical analysis (regression, clustering, anomaly detection, time series), "
        "configurable record-processing pipelines with quality scoring, and an adaptive "
        "recommendation engine that learns from user feedback."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (browser front-end calls these endpoints directly) ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Mount all API routes ──
from app.api.router import api_router  # noqa: E402
app.include_router(api_router, prefix="/api/v1")


# ── Root ──
@app.get("/", tags=["Root"])
async def root():
    return {
        "service": "Insight Analytics Engine",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "analysis": "/api/v1/ml-models/analyze",
            "processing": "/api/v1/data-processing, /api/v1/pipelines/run",
            "learning": "/api/v1/learning-engine",
        },
        "health": "/api/v1/health",
    }


# ── Direct run ──
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=os.getenv("RELOAD", "true").lower() == "true",
        log_level=settings.LOG_LEVEL.lower(),
    )
