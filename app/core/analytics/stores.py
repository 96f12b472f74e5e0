"""
Stores — Repository Interfaces Between the Core and Persistence
=================================================================
The analytics core never touches a database directly. Handlers receive
repositories through these interfaces:

  PatternRepository   — learning patterns keyed by (user_id, pattern_type)
  FeedbackRepository  — raw feedback history, newest first
  InsightRepository   — stored analysis results, newest first
  RecordProvider      — record collections per dataset, owner-checked
  PipelineRepository  — stored pipeline configurations and run status

Two implementations of each:
  InMemory*  — dict-backed, used by tests and local experiments
  Sql*       — SQLAlchemy session-backed (app.models.platform / app.models.learning)

SQLAlchemy failures surface as UpstreamError subclasses so the HTTP layer
can map them to a 500 without knowing about the ORM.

best_effort() wraps side-effect writes (insight storage, status updates)
whose failure must never fail the primary response.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .column_profiler import Record
from .errors import (
    DatasetNotFoundError, InsightStoreError, PatternStoreError, PipelineNotFoundError, RecordProviderError,
    UpstreamError,
)
from .pattern_extractor import FeedbackEvent, LearningPattern

logger = logging.getLogger(__name__)

SAMPLE_RECORDS = 50


def best_effort(description: str, fn: Callable[..., Any], *args, **kwargs) -> Optional[Any]:
    """Run a side-effect write; log and discard any failure."""
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        logger.warning(f"Best-effort {description} failed: {e}")
        return None


def _safe_json(raw, default=None):
    """Safely parse a JSON text column."""
    if raw is None:
        return default if default is not None else {}
    if isinstance(raw, (dict, list)):
        return raw
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return default if default is not None else {}
    return default if default is not None else {}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _as_naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is not None and moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


# ═══════════════════════════════════════════════════════════════
# INTERFACES
# ═══════════════════════════════════════════════════════════════

class PatternRepository(ABC):

    @abstractmethod
    def get(self, user_id: str, pattern_type: str) -> Optional[LearningPattern]:
        ...

    @abstractmethod
    def upsert(self, pattern: LearningPattern) -> LearningPattern:
        """Insert or overwrite the (user_id, pattern_type) row; usage_count increments."""

    @abstractmethod
    def list_for_user(self, user_id: str, limit: int) -> List[LearningPattern]:
        """Patterns ordered by confidence_score, highest first."""


class FeedbackRepository(ABC):

    @abstractmethod
    def add(self, user_id: str, event: FeedbackEvent) -> None:
        ...

    @abstractmethod
    def recent(self, user_id: str, limit: int) -> List[FeedbackEvent]:
        ...


class InsightRepository(ABC):

    @abstractmethod
    def add(self, user_id: str, dataset_id: Optional[str], insight_type: str, result: Dict[str, Any]) -> str:
        """Store {title, description, confidence, metadata}; returns the insight id."""

    @abstractmethod
    def recent(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        ...


class RecordProvider(ABC):

    @abstractmethod
    def get_records(self, dataset_id: str, user_id: str, limit: int) -> List[Record]:
        """Raises DatasetNotFoundError when missing or owned by someone else."""

    @abstractmethod
    def list_datasets(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        """Newest first: {id, name, row_count, columns?, sample_records?}."""


class PipelineRepository(ABC):

    @abstractmethod
    def get(self, pipeline_id: str, user_id: str) -> Dict[str, Any]:
        """Raises PipelineNotFoundError when missing or owned by someone else."""

    @abstractmethod
    def set_status(self, pipeline_id: str, status: str, last_run: Optional[datetime] = None) -> None:
        ...


# ═══════════════════════════════════════════════════════════════
# IN-MEMORY IMPLEMENTATIONS
# ═══════════════════════════════════════════════════════════════

class InMemoryPatternRepository(PatternRepository):

    def __init__(self):
        self._patterns: Dict[Tuple[str, str], LearningPattern] = {}

    def get(self, user_id: str, pattern_type: str) -> Optional[LearningPattern]:
        return self._patterns.get((user_id, pattern_type))

    def upsert(self, pattern: LearningPattern) -> LearningPattern:
        key = (pattern.user_id, pattern.pattern_type)
        existing = self._patterns.get(key)
        stored = replace(
            pattern,
            pattern_data=dict(pattern.pattern_data),
            usage_count=existing.usage_count + 1 if existing else 1,
            last_used=_utcnow(),
        )
        self._patterns[key] = stored
        return stored

    def list_for_user(self, user_id: str, limit: int) -> List[LearningPattern]:
        owned = [p for (uid, _), p in self._patterns.items() if uid == user_id]
        owned.sort(key=lambda p: p.confidence_score, reverse=True)
        return owned[:limit]


class InMemoryFeedbackRepository(FeedbackRepository):

    def __init__(self):
        self._events: Dict[str, List[FeedbackEvent]] = {}

    def add(self, user_id: str, event: FeedbackEvent) -> None:
        self._events.setdefault(user_id, []).append(event)

    def recent(self, user_id: str, limit: int) -> List[FeedbackEvent]:
        return list(reversed(self._events.get(user_id, [])))[:limit]


class InMemoryInsightRepository(InsightRepository):

    def __init__(self):
        self._insights: List[Dict[str, Any]] = []

    def add(self, user_id: str, dataset_id: Optional[str], insight_type: str, result: Dict[str, Any]) -> str:
        insight_id = str(uuid4())
        self._insights.append({
            "id": insight_id,
            "user_id": user_id,
            "dataset_id": dataset_id,
            "insight_type": insight_type,
            "title": result.get("title"),
            "description": result.get("description"),
            "confidence_score": result.get("confidence"),
            "metadata": result.get("metadata") or {},
            "created_at": _utcnow().isoformat(),
        })
        return insight_id

    def recent(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        return [i for i in reversed(self._insights) if i["user_id"] == user_id][:limit]


class InMemoryRecordProvider(RecordProvider):

    def __init__(self):
        self._datasets: Dict[str, Dict[str, Any]] = {}

    def add_dataset(
        self,
        user_id: str,
        records: List[Record],
        name: Optional[str] = None,
        columns: Optional[List[Dict[str, Any]]] = None,
        dataset_id: Optional[str] = None,
    ) -> str:
        dataset_id = dataset_id or str(uuid4())
        self._datasets[dataset_id] = {
            "user_id": user_id,
            "name": name or dataset_id,
            "records": [dict(r) for r in records],
            "columns": columns,
        }
        return dataset_id

    def get_records(self, dataset_id: str, user_id: str, limit: int) -> List[Record]:
        dataset = self._datasets.get(dataset_id)
        if dataset is None or dataset["user_id"] != user_id:
            raise DatasetNotFoundError(f"Dataset {dataset_id} not found or access denied")
        return [dict(r) for r in dataset["records"][:limit]]

    def list_datasets(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        owned = [(ds_id, ds) for ds_id, ds in reversed(self._datasets.items()) if ds["user_id"] == user_id]
        summaries = []
        for ds_id, ds in owned[:limit]:
            summary = {"id": ds_id, "name": ds["name"], "row_count": len(ds["records"])}
            if ds["columns"]:
                summary["columns"] = ds["columns"]
            else:
                summary["sample_records"] = [dict(r) for r in ds["records"][:SAMPLE_RECORDS]]
            summaries.append(summary)
        return summaries


class InMemoryPipelineRepository(PipelineRepository):

    def __init__(self):
        self._pipelines: Dict[str, Dict[str, Any]] = {}

    def add_pipeline(self, user_id: str, name: str, pipeline_config: Any, pipeline_id: Optional[str] = None) -> str:
        pipeline_id = pipeline_id or str(uuid4())
        self._pipelines[pipeline_id] = {
            "id": pipeline_id,
            "user_id": user_id,
            "name": name,
            "pipeline_config": pipeline_config,
            "status": "draft",
            "last_run": None,
        }
        return pipeline_id

    def get(self, pipeline_id: str, user_id: str) -> Dict[str, Any]:
        pipeline = self._pipelines.get(pipeline_id)
        if pipeline is None or pipeline["user_id"] != user_id:
            raise PipelineNotFoundError(f"Pipeline {pipeline_id} not found or access denied")
        return dict(pipeline)

    def set_status(self, pipeline_id: str, status: str, last_run: Optional[datetime] = None) -> None:
        pipeline = self._pipelines.get(pipeline_id)
        if pipeline is None:
            raise PipelineNotFoundError(f"Pipeline {pipeline_id} not found")
        pipeline["status"] = status
        if last_run is not None:
            pipeline["last_run"] = last_run


# ═══════════════════════════════════════════════════════════════
# SQLALCHEMY IMPLEMENTATIONS
# ═══════════════════════════════════════════════════════════════

def _pattern_from_row(row) -> LearningPattern:
    return LearningPattern(
        user_id=row.user_id,
        pattern_type=row.pattern_type,
        pattern_data=_safe_json(row.pattern_data),
        confidence_score=row.confidence_score or 0.0,
        usage_count=row.usage_count or 0,
        last_used=_as_aware(row.last_used),
    )


class SqlPatternRepository(PatternRepository):

    def __init__(self, db_session):
        self.db = db_session

    def get(self, user_id: str, pattern_type: str) -> Optional[LearningPattern]:
        from app.models.learning import LearningPatternRow
        try:
            row = (
                self.db.query(LearningPatternRow)
                .filter(LearningPatternRow.user_id == user_id, LearningPatternRow.pattern_type == pattern_type)
                .first()
            )
        except SQLAlchemyError as e:
            raise PatternStoreError(f"Failed to read pattern {pattern_type}: {e}") from e
        return _pattern_from_row(row) if row else None

    def upsert(self, pattern: LearningPattern) -> LearningPattern:
        try:
            return self._write(pattern)
        except IntegrityError:
            # Concurrent insert for the same key; overwrite it instead
            self.db.rollback()
            try:
                return self._write(pattern)
            except SQLAlchemyError as e:
                self.db.rollback()
                raise PatternStoreError(f"Failed to store pattern {pattern.pattern_type}: {e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PatternStoreError(f"Failed to store pattern {pattern.pattern_type}: {e}") from e

    def _write(self, pattern: LearningPattern) -> LearningPattern:
        from app.models.learning import LearningPatternRow
        now = _as_naive_utc(_utcnow())
        row = (
            self.db.query(LearningPatternRow)
            .filter(LearningPatternRow.user_id == pattern.user_id,
                    LearningPatternRow.pattern_type == pattern.pattern_type)
            .first()
        )
        if row is None:
            row = LearningPatternRow(
                user_id=pattern.user_id,
                pattern_type=pattern.pattern_type,
                usage_count=1,
            )
            self.db.add(row)
        else:
            row.usage_count = (row.usage_count or 0) + 1
        row.pattern_data = json.dumps(pattern.pattern_data, default=str)
        row.confidence_score = pattern.confidence_score
        row.last_used = now
        self.db.commit()
        self.db.refresh(row)
        return _pattern_from_row(row)

    def list_for_user(self, user_id: str, limit: int) -> List[LearningPattern]:
        from app.models.learning import LearningPatternRow
        try:
            rows = (
                self.db.query(LearningPatternRow)
                .filter(LearningPatternRow.user_id == user_id)
                .order_by(LearningPatternRow.confidence_score.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise PatternStoreError(f"Failed to list patterns: {e}") from e
        return [_pattern_from_row(r) for r in rows]


class SqlFeedbackRepository(FeedbackRepository):

    def __init__(self, db_session):
        self.db = db_session

    def add(self, user_id: str, event: FeedbackEvent) -> None:
        from app.models.learning import UserFeedbackRow
        try:
            self.db.add(UserFeedbackRow(
                user_id=user_id,
                interaction_id=event.interaction_id,
                feedback_type=event.feedback_type,
                rating=event.rating,
                comment=event.comment,
                context=json.dumps(event.context, default=str),
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PatternStoreError(f"Failed to store feedback: {e}") from e

    def recent(self, user_id: str, limit: int) -> List[FeedbackEvent]:
        from app.models.learning import UserFeedbackRow
        try:
            rows = (
                self.db.query(UserFeedbackRow)
                .filter(UserFeedbackRow.user_id == user_id)
                .order_by(UserFeedbackRow.created_at.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise PatternStoreError(f"Failed to read feedback history: {e}") from e
        return [
            FeedbackEvent(
                feedback_type=r.feedback_type,
                rating=r.rating,
                interaction_id=r.interaction_id,
                comment=r.comment,
                context=_safe_json(r.context),
            )
            for r in rows
        ]


class SqlInsightRepository(InsightRepository):

    def __init__(self, db_session):
        self.db = db_session

    def add(self, user_id: str, dataset_id: Optional[str], insight_type: str, result: Dict[str, Any]) -> str:
        from app.models.platform import AIInsight
        try:
            row = AIInsight(
                user_id=user_id,
                dataset_id=dataset_id,
                insight_type=insight_type,
                title=result.get("title") or insight_type,
                description=result.get("description"),
                confidence_score=result.get("confidence"),
                insight_metadata=json.dumps(result.get("metadata") or {}, default=str),
            )
            self.db.add(row)
            self.db.commit()
            return row.id
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InsightStoreError(f"Failed to store insight: {e}") from e

    def recent(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        from app.models.platform import AIInsight
        try:
            rows = (
                self.db.query(AIInsight)
                .filter(AIInsight.user_id == user_id)
                .order_by(AIInsight.created_at.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise InsightStoreError(f"Failed to read insights: {e}") from e
        return [
            {
                "id": r.id,
                "dataset_id": r.dataset_id,
                "insight_type": r.insight_type,
                "title": r.title,
                "description": r.description,
                "confidence_score": r.confidence_score,
                "metadata": _safe_json(r.insight_metadata),
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r in rows
        ]


class SqlRecordProvider(RecordProvider):

    def __init__(self, db_session):
        self.db = db_session

    def _owned_dataset(self, dataset_id: str, user_id: str):
        from app.models.platform import Dataset
        return (
            self.db.query(Dataset)
            .filter(Dataset.id == dataset_id, Dataset.user_id == user_id)
            .first()
        )

    def _records(self, dataset_id: str, limit: int) -> List[Record]:
        from app.models.platform import DataRecord
        rows = (
            self.db.query(DataRecord.data)
            .filter(DataRecord.dataset_id == dataset_id)
            .order_by(DataRecord.row_index)
            .limit(limit)
            .all()
        )
        records = [_safe_json(r.data) for r in rows]
        return [r for r in records if isinstance(r, dict)]

    def get_records(self, dataset_id: str, user_id: str, limit: int) -> List[Record]:
        try:
            if self._owned_dataset(dataset_id, user_id) is None:
                raise DatasetNotFoundError(f"Dataset {dataset_id} not found or access denied")
            records = self._records(dataset_id, limit)
        except SQLAlchemyError as e:
            raise RecordProviderError(f"Failed to fetch data records: {e}") from e
        logger.debug(f"Loaded {len(records)} records for dataset {dataset_id}")
        return records

    def list_datasets(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        from app.models.platform import Dataset
        try:
            rows = (
                self.db.query(Dataset)
                .filter(Dataset.user_id == user_id)
                .order_by(Dataset.created_at.desc())
                .limit(limit)
                .all()
            )
            summaries = []
            for ds in rows:
                summary = {"id": ds.id, "name": ds.name, "row_count": ds.row_count}
                columns = _safe_json(ds.columns, [])
                if columns:
                    summary["columns"] = columns
                else:
                    summary["sample_records"] = self._records(ds.id, SAMPLE_RECORDS)
                summaries.append(summary)
        except SQLAlchemyError as e:
            raise RecordProviderError(f"Failed to list datasets: {e}") from e
        return summaries


class SqlPipelineRepository(PipelineRepository):

    def __init__(self, db_session):
        self.db = db_session

    def get(self, pipeline_id: str, user_id: str) -> Dict[str, Any]:
        from app.models.platform import ProcessingPipeline
        try:
            row = (
                self.db.query(ProcessingPipeline)
                .filter(ProcessingPipeline.id == pipeline_id, ProcessingPipeline.user_id == user_id)
                .first()
            )
        except SQLAlchemyError as e:
            raise UpstreamError(f"Failed to load pipeline {pipeline_id}: {e}") from e
        if row is None:
            raise PipelineNotFoundError(f"Pipeline {pipeline_id} not found or access denied")
        return {
            "id": row.id,
            "user_id": row.user_id,
            "name": row.name,
            "pipeline_config": _safe_json(row.pipeline_config),
            "status": row.status,
            "last_run": _as_aware(row.last_run),
        }

    def set_status(self, pipeline_id: str, status: str, last_run: Optional[datetime] = None) -> None:
        from app.models.platform import ProcessingPipeline
        try:
            row = self.db.query(ProcessingPipeline).filter(ProcessingPipeline.id == pipeline_id).first()
            if row is None:
                raise PipelineNotFoundError(f"Pipeline {pipeline_id} not found")
            row.status = status
            if last_run is not None:
                row.last_run = _as_naive_utc(last_run)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamError(f"Failed to update pipeline {pipeline_id} status: {e}") from e
