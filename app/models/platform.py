"""
Platform Models — Datasets, Records, Insights, Pipelines
==========================================================
Uploaded tables live as one DataRecord row per record, with the record
itself serialized as JSON text. Insights and pipeline configurations are
owned by a user and scoped to a dataset.

Tables auto-created by Base.metadata.create_all(engine).
"""

import logging
from datetime import datetime
from uuid import uuid4
from sqlalchemy import (
    Column, String, Text, Float, Integer, DateTime, ForeignKey, Index,
)
from app.core.database import Base

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# DATASETS
# ═══════════════════════════════════════════════════════════════

class Dataset(Base):
    __tablename__ = "datasets"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(100), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    file_name = Column(String(255), nullable=True)
    row_count = Column(Integer, nullable=True)
    columns = Column(Text, nullable=True)  # JSON: [{"name": ..., "type": ...}]
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Dataset(id={self.id}, user={self.user_id}, name={self.name})>"


class DataRecord(Base):
    __tablename__ = "data_records"
    __table_args__ = (
        Index("ix_data_records_dataset_row", "dataset_id", "row_index"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    dataset_id = Column(String(36), ForeignKey("datasets.id", ondelete="CASCADE"), nullable=False, index=True)
    row_index = Column(Integer, nullable=False, default=0)
    data = Column(Text, nullable=False, default="{}")  # JSON object


# ═══════════════════════════════════════════════════════════════
# INSIGHTS
# ═══════════════════════════════════════════════════════════════

class AIInsight(Base):
    __tablename__ = "ai_insights"
    __table_args__ = (
        Index("ix_ai_insights_user_created", "user_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(100), nullable=False, index=True)
    dataset_id = Column(String(36), nullable=True, index=True)
    insight_type = Column(String(50), nullable=False)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    confidence_score = Column(Float, nullable=True)
    insight_metadata = Column("metadata", Text, nullable=True)  # JSON
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# ═══════════════════════════════════════════════════════════════
# PROCESSING PIPELINES
# ═══════════════════════════════════════════════════════════════

class ProcessingPipeline(Base):
    __tablename__ = "processing_pipelines"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(100), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    pipeline_config = Column(Text, nullable=False, default='{"steps": []}')  # JSON
    status = Column(String(20), nullable=False, default="draft")  # draft | running | active | error
    last_run = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
