"""
Learning Models — Per-User Patterns and Raw Feedback
======================================================
learning_patterns holds at most one row per (user_id, pattern_type);
writers upsert against that key. user_feedback is append-only history.

Tables auto-created by Base.metadata.create_all(engine).
"""

from datetime import datetime
from uuid import uuid4
from sqlalchemy import (
    Column, String, Text, Float, Integer, DateTime, Index, UniqueConstraint,
)
from app.core.database import Base


class LearningPatternRow(Base):
    __tablename__ = "learning_patterns"
    __table_args__ = (
        UniqueConstraint("user_id", "pattern_type", name="uq_learning_patterns_user_type"),
        Index("ix_learning_patterns_user_confidence", "user_id", "confidence_score"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(100), nullable=False, index=True)
    pattern_type = Column(String(50), nullable=False)
    pattern_data = Column(Text, nullable=False, default="{}")  # JSON
    confidence_score = Column(Float, nullable=False, default=0.0)
    usage_count = Column(Integer, nullable=False, default=1)
    last_used = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<LearningPatternRow(user={self.user_id}, type={self.pattern_type}, conf={self.confidence_score})>"


class UserFeedbackRow(Base):
    __tablename__ = "user_feedback"
    __table_args__ = (
        Index("ix_user_feedback_user_created", "user_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(100), nullable=False, index=True)
    interaction_id = Column(String(100), nullable=True)
    feedback_type = Column(String(20), nullable=False)  # positive | negative | neutral
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    context = Column(Text, nullable=True)  # JSON
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
