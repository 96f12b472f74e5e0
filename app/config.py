"""
Application Settings — All via environment variables with sensible defaults.
"""
import os


class Settings:
    # ── Server ──
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8001"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # ── Database ──
    # Default: SQLite (zero config). Production: set DATABASE_URL env var.
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./insight_analytics.db")

    # ── CORS ──
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000,*")

    # ── Identity ──
    # Comma-separated "token=user_id" pairs resolved from the Bearer header
    AUTH_TOKENS: str = os.getenv("AUTH_TOKENS", "")

    # ── Record caps per request ──
    ANALYSIS_RECORD_LIMIT: int = int(os.getenv("ANALYSIS_RECORD_LIMIT", "1000"))
    PIPELINE_RECORD_LIMIT: int = int(os.getenv("PIPELINE_RECORD_LIMIT", "10000"))

    # ── Recommendation inputs ──
    PATTERN_LOOKUP_LIMIT: int = int(os.getenv("PATTERN_LOOKUP_LIMIT", "10"))
    FEEDBACK_HISTORY_LIMIT: int = int(os.getenv("FEEDBACK_HISTORY_LIMIT", "50"))
    CONTEXT_DATASET_LIMIT: int = int(os.getenv("CONTEXT_DATASET_LIMIT", "5"))
    CONTEXT_INSIGHT_LIMIT: int = int(os.getenv("CONTEXT_INSIGHT_LIMIT", "5"))
    RECOMMENDATION_LIMIT: int = int(os.getenv("RECOMMENDATION_LIMIT", "5"))

    # ── Feature Flags ──
    ENABLE_INSIGHT_STORAGE: bool = os.getenv("ENABLE_INSIGHT_STORAGE", "true").lower() == "true"


settings = Settings()
