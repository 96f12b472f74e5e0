"""
API tests: authentication, analysis, processing, pipelines, learning, health.

Stores are swapped for in-memory implementations via dependency_overrides.

Run: pytest app/core/analytics/tests/ -v
"""

import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.core.analytics.errors import PatternStoreError, RecordProviderError
from app.core.analytics.stores import InMemoryRecordProvider
from app.core.database import get_db
from main import app

AUTH = {"Authorization": "Bearer test-token"}
OTHER_AUTH = {"Authorization": "Bearer other-token"}

CLUSTER_VALUES = [1, 2, 3, 10, 11, 12, 20, 21, 22]


# ═══════════════════════════════════════════════════════════════
# TEST FIXTURES
# ═══════════════════════════════════════════════════════════════

class SpyRecordProvider(InMemoryRecordProvider):
    """Counts record fetches so tests can assert nothing was read."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def get_records(self, dataset_id, user_id, limit):
        self.calls += 1
        return super().get_records(dataset_id, user_id, limit)


class FailingRecordProvider(InMemoryRecordProvider):

    def get_records(self, dataset_id, user_id, limit):
        raise RecordProviderError("connection refused")


class FailingStore:
    """Stands in for any repository whose writes fail."""

    def add(self, *args, **kwargs):
        raise PatternStoreError("database is locked")

    def upsert(self, *args, **kwargs):
        raise PatternStoreError("database is locked")


def override_stores(stores):
    app.dependency_overrides[deps.get_record_provider] = lambda: stores.records
    app.dependency_overrides[deps.get_pattern_repository] = lambda: stores.patterns
    app.dependency_overrides[deps.get_feedback_repository] = lambda: stores.feedback
    app.dependency_overrides[deps.get_insight_repository] = lambda: stores.insights
    app.dependency_overrides[deps.get_pipeline_repository] = lambda: stores.pipelines


@pytest.fixture
def client(stores):
    stores.records = SpyRecordProvider()
    override_stores(stores)
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_cluster_dataset(stores, user_id="user-1"):
    return stores.records.add_dataset(user_id, [{"value": v} for v in CLUSTER_VALUES], name="values")


# ═══════════════════════════════════════════════════════════════
# 1. AUTHENTICATION
# ═══════════════════════════════════════════════════════════════

class TestAuthentication:

    def test_missing_token(self, client, stores):
        ds_id = make_cluster_dataset(stores)
        resp = client.post("/api/v1/ml-models/analyze", json={"datasetId": ds_id, "modelType": "clustering"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "User not authenticated"
        assert stores.records.calls == 0

    def test_unknown_token(self, client, stores):
        ds_id = make_cluster_dataset(stores)
        resp = client.post(
            "/api/v1/ml-models/analyze",
            json={"datasetId": ds_id, "modelType": "clustering"},
            headers={"Authorization": "Bearer nope"},
        )
        assert resp.status_code == 401
        assert stores.records.calls == 0

    def test_every_endpoint_requires_identity(self, client):
        for path, body in [
            ("/api/v1/data-processing", {"datasetId": "x"}),
            ("/api/v1/pipelines/run", {"pipelineId": "p", "datasetId": "x"}),
            ("/api/v1/learning-engine", {"action": "get_recommendations"}),
        ]:
            assert client.post(path, json=body).status_code == 401

    def test_custom_identity_provider(self, client, stores):
        ds_id = make_cluster_dataset(stores, user_id="alice")
        app.dependency_overrides[deps.get_identity_provider] = lambda: deps.StaticTokenIdentityProvider({"abc": "alice"})
        resp = client.post(
            "/api/v1/ml-models/analyze",
            json={"datasetId": ds_id, "modelType": "clustering"},
            headers={"Authorization": "Bearer abc"},
        )
        assert resp.status_code == 200

    def test_token_table_parsing(self):
        provider = deps.StaticTokenIdentityProvider.from_setting(" a=u1 , broken, =u2, b= ,c=u3")
        assert provider.resolve("a") == "u1"
        assert provider.resolve("c") == "u3"
        assert provider.resolve("broken") is None
        assert provider.resolve(None) is None


# ═══════════════════════════════════════════════════════════════
# 2. ANALYSIS
# ═══════════════════════════════════════════════════════════════

class TestAnalyzeEndpoint:

    def test_clustering_success_stores_insight(self, client, stores):
        ds_id = make_cluster_dataset(stores)
        resp = client.post(
            "/api/v1/ml-models/analyze",
            json={"datasetId": ds_id, "modelType": "clustering", "parameters": {"clusters": 3}},
            headers=AUTH,
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["title"] == "Clustering: 3 clusters in value"
        assert body["metadata"]["k"] == 3
        assert 0 <= body["confidence"] <= 1

        stored = stores.insights.recent("user-1", 5)
        assert [i["insight_type"] for i in stored] == ["clustering"]
        assert stored[0]["dataset_id"] == ds_id

    def test_insufficient_data_is_not_an_http_error(self, client, stores):
        ds_id = stores.records.add_dataset("user-1", [{"x": 1}, {"x": 2}, {"x": 3}])
        resp = client.post(
            "/api/v1/ml-models/analyze",
            json={"datasetId": ds_id, "modelType": "linear_regression"},
            headers=AUTH,
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["metadata"]["error"] == "insufficient_data"
        assert body["confidence"] == 0.1
        assert stores.insights.recent("user-1", 5) == []

    def test_unknown_model_type(self, client, stores):
        ds_id = make_cluster_dataset(stores)
        resp = client.post(
            "/api/v1/ml-models/analyze",
            json={"datasetId": ds_id, "modelType": "neural_net"},
            headers=AUTH,
        )
        assert resp.status_code == 400
        assert "neural_net" in resp.json()["error"]

    def test_dataset_of_another_user(self, client, stores):
        ds_id = make_cluster_dataset(stores)
        resp = client.post(
            "/api/v1/ml-models/analyze",
            json={"datasetId": ds_id, "modelType": "clustering"},
            headers=OTHER_AUTH,
        )
        assert resp.status_code == 404

    def test_upstream_failure(self, client, stores):
        app.dependency_overrides[deps.get_record_provider] = lambda: FailingRecordProvider()
        resp = client.post(
            "/api/v1/ml-models/analyze",
            json={"datasetId": "ds", "modelType": "clustering"},
            headers=AUTH,
        )
        body = resp.json()
        assert resp.status_code == 500
        assert body["title"] == "ML Analysis Error"
        assert body["confidence"] == 0.1
        assert body["metadata"]["error"] == "connection refused"

    def test_insight_storage_failure_is_ignored(self, client, stores):
        ds_id = make_cluster_dataset(stores)
        app.dependency_overrides[deps.get_insight_repository] = lambda: FailingStore()
        resp = client.post(
            "/api/v1/ml-models/analyze",
            json={"datasetId": ds_id, "modelType": "anomaly_detection"},
            headers=AUTH,
        )
        assert resp.status_code == 200


# ═══════════════════════════════════════════════════════════════
# 3. DATA PROCESSING
# ═══════════════════════════════════════════════════════════════

class TestDataProcessingEndpoint:

    def test_flagged_operations(self, client, stores):
        ds_id = stores.records.add_dataset("user-1", [
            {"name": " Ann ", "amount": "10"},
            {"name": "", "amount": None},
            {"name": "Ben", "amount": "30"},
        ])
        resp = client.post(
            "/api/v1/data-processing",
            json={"datasetId": ds_id, "operations": {"clean": True, "validate": True, "analyze": True}},
            headers=AUTH,
        )
        body = resp.json()
        assert resp.status_code == 200
        assert [op["type"] for op in body["operations"]] == ["cleaning", "validation", "analysis"]
        assert body["original_count"] == 3
        assert body["processed_count"] == 2
        assert "records" not in body
        assert body["analysis"]["summary"]["row_count"] == 2

    def test_include_records(self, client, stores):
        ds_id = stores.records.add_dataset("user-1", [{"name": " Ann "}])
        resp = client.post(
            "/api/v1/data-processing",
            json={"datasetId": ds_id, "operations": {"clean": True}, "includeRecords": True},
            headers=AUTH,
        )
        assert resp.json()["records"] == [{"name": "Ann"}]

    def test_missing_dataset(self, client):
        resp = client.post("/api/v1/data-processing", json={"datasetId": "missing"}, headers=AUTH)
        assert resp.status_code == 404


# ═══════════════════════════════════════════════════════════════
# 4. STORED PIPELINES
# ═══════════════════════════════════════════════════════════════

class TestPipelineRunEndpoint:

    def make_pipeline(self, stores, steps=None, user_id="user-1"):
        steps = steps if steps is not None else [
            {"type": "clean", "params": {"trim_strings": True}},
            {"type": "filter", "params": {"filters": [{"field": "amount", "operator": "greater_than", "value": 10}]}},
        ]
        return stores.pipelines.add_pipeline(user_id, "nightly", {"steps": steps})

    def make_dataset(self, stores):
        return stores.records.add_dataset("user-1", [{"amount": " 5 "}, {"amount": "20"}, {"amount": 30}])

    def test_run_success(self, client, stores):
        pid, ds_id = self.make_pipeline(stores), self.make_dataset(stores)
        resp = client.post("/api/v1/pipelines/run", json={"pipelineId": pid, "datasetId": ds_id}, headers=AUTH)
        body = resp.json()

        assert resp.status_code == 200
        assert body["success"] is True
        assert body["message"] == "Pipeline executed successfully"
        results = body["results"]
        assert results["original_count"] == 3
        assert results["processed_count"] == 2
        assert results["transformations_applied"] == 2
        assert results["data_quality_score"] == 1.0
        assert [op["type"] for op in results["operations"]] == ["clean", "filter"]

        pipeline = stores.pipelines.get(pid, "user-1")
        assert pipeline["status"] == "active"
        assert pipeline["last_run"] is not None

        insight = stores.insights.recent("user-1", 5)[0]
        assert insight["insight_type"] == "data_processing"
        assert insight["title"] == "Data Pipeline: nightly"
        assert insight["confidence_score"] == 0.9
        assert insight["metadata"]["pipeline_id"] == pid

    def test_invalid_action(self, client, stores):
        pid, ds_id = self.make_pipeline(stores), self.make_dataset(stores)
        resp = client.post(
            "/api/v1/pipelines/run",
            json={"pipelineId": pid, "datasetId": ds_id, "action": "pause"},
            headers=AUTH,
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid action"}

    def test_missing_pipeline(self, client, stores):
        ds_id = self.make_dataset(stores)
        resp = client.post("/api/v1/pipelines/run", json={"pipelineId": "missing", "datasetId": ds_id}, headers=AUTH)
        assert resp.status_code == 404

    def test_pipeline_of_another_user(self, client, stores):
        pid, ds_id = self.make_pipeline(stores, user_id="user-2"), self.make_dataset(stores)
        resp = client.post("/api/v1/pipelines/run", json={"pipelineId": pid, "datasetId": ds_id}, headers=AUTH)
        assert resp.status_code == 404

    def test_unknown_step_type(self, client, stores):
        pid = self.make_pipeline(stores, steps=[{"type": "deduplicate"}])
        ds_id = self.make_dataset(stores)
        resp = client.post("/api/v1/pipelines/run", json={"pipelineId": pid, "datasetId": ds_id}, headers=AUTH)
        assert resp.status_code == 400
        assert stores.pipelines.get(pid, "user-1")["status"] == "draft"

    def test_missing_dataset_marks_error(self, client, stores):
        pid = self.make_pipeline(stores)
        resp = client.post("/api/v1/pipelines/run", json={"pipelineId": pid, "datasetId": "missing"}, headers=AUTH)
        assert resp.status_code == 404
        assert stores.pipelines.get(pid, "user-1")["status"] == "error"


# ═══════════════════════════════════════════════════════════════
# 5. LEARNING ENGINE
# ═══════════════════════════════════════════════════════════════

FEEDBACK = {
    "interactionId": "msg-42",
    "feedbackType": "positive",
    "rating": 5,
    "context": {
        "modelType": "clustering",
        "query": "Segment customers by revenue",
        "responseContent": "| segment | revenue |",
    },
}


class TestLearningEndpoint:

    def test_process_feedback(self, client, stores):
        resp = client.post(
            "/api/v1/learning-engine",
            json={"action": "process_feedback", "feedback": FEEDBACK},
            headers=AUTH,
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["success"] is True
        assert body["patterns_updated"] == 4
        assert body["message"] == "Learning patterns updated successfully"
        assert len(stores.feedback.recent("user-1", 10)) == 1
        assert stores.patterns.get("user-1", "preferred_models").confidence_score == 1.0

    def test_invalid_rating(self, client, stores):
        resp = client.post(
            "/api/v1/learning-engine",
            json={"action": "process_feedback", "feedback": {**FEEDBACK, "rating": 9}},
            headers=AUTH,
        )
        assert resp.status_code == 400
        assert stores.patterns.list_for_user("user-1", 10) == []

    def test_missing_feedback(self, client):
        resp = client.post("/api/v1/learning-engine", json={"action": "process_feedback"}, headers=AUTH)
        assert resp.status_code == 400

    def test_feedback_storage_failure_is_ignored(self, client, stores):
        app.dependency_overrides[deps.get_feedback_repository] = lambda: FailingStore()
        resp = client.post(
            "/api/v1/learning-engine",
            json={"action": "process_feedback", "feedback": FEEDBACK},
            headers=AUTH,
        )
        assert resp.status_code == 200
        assert resp.json()["patterns_updated"] == 4

    def test_pattern_store_failure_skips_that_pattern(self, client, stores):
        class FlakyPatterns:
            def upsert(self, pattern):
                if pattern.pattern_type == "preferred_models":
                    raise PatternStoreError("database is locked")
                return stores.patterns.upsert(pattern)

        app.dependency_overrides[deps.get_pattern_repository] = lambda: FlakyPatterns()
        resp = client.post(
            "/api/v1/learning-engine",
            json={"action": "process_feedback", "feedback": FEEDBACK},
            headers=AUTH,
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["patterns_updated"] == 3
        assert "preferred_models" not in body["pattern_types"]
        assert stores.patterns.get("user-1", "preferred_models") is None
        assert stores.patterns.get("user-1", "response_format") is not None

    def test_pattern_store_down(self, client):
        app.dependency_overrides[deps.get_pattern_repository] = lambda: FailingStore()
        resp = client.post(
            "/api/v1/learning-engine",
            json={"action": "process_feedback", "feedback": FEEDBACK},
            headers=AUTH,
        )
        assert resp.status_code == 200
        assert resp.json()["patterns_updated"] == 0

    def test_recommendations_capped_and_sorted(self, client, stores):
        stores.records.add_dataset("user-1", [
            {"date": "2024-01-01", "revenue": 100, "cost": 40, "region": "north"},
            {"date": "2024-01-02", "revenue": 120, "cost": 50, "region": "south"},
        ], name="sales")
        stores.insights.add("user-1", None, "linear_regression", {"title": "Linear Regression Analysis"})
        for _ in range(6):
            client.post("/api/v1/learning-engine", json={"action": "process_feedback", "feedback": FEEDBACK}, headers=AUTH)

        resp = client.post(
            "/api/v1/learning-engine",
            json={"action": "get_recommendations", "context": {"recentActivity": "viewing_dashboard"}},
            headers=AUTH,
        )
        body = resp.json()
        confidences = [r["confidence"] for r in body["recommendations"]]
        assert resp.status_code == 200
        assert len(body["recommendations"]) == 5
        assert confidences == sorted(confidences, reverse=True)
        assert 0 < body["personalization_score"] <= 1

    def test_recommendations_for_new_user(self, client):
        resp = client.post("/api/v1/learning-engine", json={"action": "get_recommendations"}, headers=OTHER_AUTH)
        assert resp.json() == {"success": True, "recommendations": [], "personalization_score": 0.0}

    def test_invalid_action(self, client):
        resp = client.post("/api/v1/learning-engine", json={"action": "forget"}, headers=AUTH)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid action"}


# ═══════════════════════════════════════════════════════════════
# 6. HEALTH
# ═══════════════════════════════════════════════════════════════

class TestHealthEndpoint:

    def test_healthy(self, client):
        resp = client.get("/api/v1/health")
        body = resp.json()
        assert resp.status_code == 200
        assert body["status"] == "healthy"
        assert body["components"]["database"] == "active"
        assert body["version"] == "1.0.0"

    def test_degraded_when_database_unreachable(self, client):
        class BrokenSession:
            def execute(self, *args, **kwargs):
                raise ConnectionError("no route to host")

        app.dependency_overrides[get_db] = lambda: BrokenSession()
        body = client.get("/api/v1/health").json()
        assert body["status"] == "degraded"
        assert body["components"]["database"] == "unavailable (ConnectionError)"

    def test_root(self, client):
        assert client.get("/").json()["service"] == "Insight Analytics Engine"
