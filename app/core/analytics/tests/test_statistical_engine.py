"""
Column profiling and statistical analysis tests.

Run: pytest app/core/analytics/tests/ -v
"""

import math
import pytest

from app.core.analytics.column_profiler import (
    ColumnRole, classify_columns, column_order, parse_date, parse_number, to_iso_utc,
)
from app.core.analytics.errors import UnsupportedModelError
from app.core.analytics.statistical_engine import (
    AnalysisErrorCode, EngineSettings, ModelKind, StatisticalEngine,
)


# ═══════════════════════════════════════════════════════════════
# TEST FIXTURES
# ═══════════════════════════════════════════════════════════════

def make_linear_records(n=10, slope=2.0, intercept=1.0):
    """y = slope·x + intercept, no noise."""
    return [{"x": i, "y": slope * i + intercept} for i in range(1, n + 1)]


def make_series(values, start_day=1):
    """Daily series with ISO date strings."""
    return [
        {"date": f"2024-01-{start_day + i:02d}", "value": v}
        for i, v in enumerate(values)
    ]


# ═══════════════════════════════════════════════════════════════
# 1. COLUMN PROFILER
# ═══════════════════════════════════════════════════════════════

class TestColumnProfiler:
    """Tests for column_profiler.py"""

    def test_numeric_requires_seventy_percent(self):
        records = [{"a": 1}, {"a": "2"}, {"a": 3.5}, {"a": "n/a"}]
        assert classify_columns(records)[0].role == ColumnRole.NUMERIC

        records = [{"a": 1}, {"a": "x"}, {"a": "y"}]
        assert classify_columns(records)[0].role == ColumnRole.CATEGORICAL

    def test_nulls_are_ignored_for_share(self):
        records = [{"a": 1}, {"a": None}, {"a": ""}, {"a": 2}]
        profile = classify_columns(records)[0]
        assert profile.role == ColumnRole.NUMERIC
        assert profile.non_null_count == 2

    def test_booleans_are_not_numbers(self):
        assert parse_number(True) is None
        records = [{"flag": True}, {"flag": False}]
        assert classify_columns(records)[0].role == ColumnRole.CATEGORICAL

    def test_date_column(self):
        records = [{"d": "2024-01-01"}, {"d": "2024/02/01"}, {"d": "Mar 5, 2024"}]
        assert classify_columns(records)[0].role == ColumnRole.DATE

    def test_mixed_date_and_text_is_categorical(self):
        records = [{"d": "2024-01-01"}, {"d": "soon"}]
        assert classify_columns(records)[0].role == ColumnRole.CATEGORICAL

    def test_column_order_is_first_appearance(self):
        records = [{"b": 1, "a": 2}, {"c": 3, "a": 4}]
        assert column_order(records) == ["b", "a", "c"]

    def test_strict_number_parsing(self):
        assert parse_number("12.5") == 12.5
        assert parse_number(" 7 ") == 7.0
        assert parse_number("1_000") is None
        assert parse_number("nan") is None
        assert parse_number("inf") is None
        assert parse_number("12abc") is None

    def test_dates_normalize_to_utc(self):
        moment = parse_date("2024-01-05T10:00:00Z")
        assert to_iso_utc(moment) == "2024-01-05T10:00:00.000Z"
        assert to_iso_utc(parse_date("2024-01-05")) == "2024-01-05T00:00:00.000Z"
        assert parse_date(20240105) is None


# ═══════════════════════════════════════════════════════════════
# 2. LINEAR REGRESSION
# ═══════════════════════════════════════════════════════════════

class TestLinearRegression:
    """Tests for StatisticalEngine.linear_regression"""

    def test_perfect_line(self):
        result = StatisticalEngine().analyze(make_linear_records(5), ModelKind.LINEAR_REGRESSION)
        meta = result.metadata
        assert result.error is None
        assert meta["equation"]["slope"] == pytest.approx(2.0)
        assert meta["equation"]["intercept"] == pytest.approx(1.0)
        assert meta["r_squared"] == pytest.approx(1.0)
        assert result.confidence == pytest.approx(0.99)
        assert meta["relationship_strength"] == "strong"
        assert meta["direction"] == "positive"
        assert meta["variables"] == {"x": "x", "y": "y"}

    def test_perfect_fit_has_no_t_statistic(self):
        result = StatisticalEngine().analyze(make_linear_records(6), ModelKind.LINEAR_REGRESSION)
        assert result.metadata["t_statistic"] is None
        assert result.metadata["p_value"] == 0.0

    def test_noisy_line_reports_inference(self):
        records = [{"x": x, "y": 3 * x + (1 if x % 2 else -1)} for x in range(1, 21)]
        result = StatisticalEngine().analyze(records, ModelKind.LINEAR_REGRESSION)
        meta = result.metadata
        assert 0.9 < meta["r_squared"] < 1.0
        assert meta["t_statistic"] > 0
        assert 0.0 <= meta["p_value"] < 0.05
        assert result.confidence == pytest.approx(min(meta["r_squared"], 0.99))

    def test_single_numeric_column_is_insufficient(self):
        records = [{"x": i, "label": f"row-{i}"} for i in range(10)]
        result = StatisticalEngine().analyze(records, ModelKind.LINEAR_REGRESSION)
        assert result.error == AnalysisErrorCode.INSUFFICIENT_DATA
        assert result.confidence <= 0.1

    def test_too_few_pairs(self):
        records = [{"x": 1, "y": 2}, {"x": 2, "y": 4}]
        result = StatisticalEngine().analyze(records, ModelKind.LINEAR_REGRESSION)
        assert result.error == AnalysisErrorCode.INSUFFICIENT_DATA

    def test_constant_x_is_zero_variance(self):
        records = [{"x": 5, "y": i} for i in range(6)]
        result = StatisticalEngine().analyze(records, ModelKind.LINEAR_REGRESSION)
        assert result.error == AnalysisErrorCode.ZERO_VARIANCE

    def test_constant_y_has_zero_r_squared(self):
        records = [{"x": i, "y": 7} for i in range(6)]
        result = StatisticalEngine().analyze(records, ModelKind.LINEAR_REGRESSION)
        assert result.metadata["r_squared"] == 0.0
        assert result.metadata["direction"] == "flat"

    def test_numeric_strings_are_used(self):
        records = [{"x": str(i), "y": str(2 * i + 1)} for i in range(1, 8)]
        result = StatisticalEngine().analyze(records, ModelKind.LINEAR_REGRESSION)
        assert result.metadata["equation"]["slope"] == pytest.approx(2.0)


# ═══════════════════════════════════════════════════════════════
# 3. CLUSTERING
# ═══════════════════════════════════════════════════════════════

class TestClustering:
    """Tests for StatisticalEngine.clustering"""

    def test_three_contiguous_ranges_cover_all_values(self):
        records = [{"v": v} for v in [1, 2, 2, 3, 10, 11, 12, 25, 26, 30, 30]]
        result = StatisticalEngine().analyze(records, ModelKind.CLUSTERING, {"clusters": 3})
        clusters = result.metadata["clusters"]

        assert len(clusters) == 3
        assert sum(c["count"] for c in clusters) == 11
        for left, right in zip(clusters, clusters[1:]):
            assert left["range"][1] == pytest.approx(right["range"][0])
        assert clusters[0]["range"][0] == 1
        assert clusters[-1]["range"][1] == 30

    def test_max_value_lands_in_last_cluster(self):
        records = [{"v": v} for v in range(0, 9)]
        result = StatisticalEngine().analyze(records, ModelKind.CLUSTERING, {"clusters": 3})
        assert result.metadata["clusters"][-1]["count"] == 3

    def test_default_k(self):
        # min(3, floor(sqrt(8 / 2))) = 2
        records = [{"v": v} for v in range(8)]
        result = StatisticalEngine().analyze(records, ModelKind.CLUSTERING)
        assert result.metadata["k"] == 2

    def test_requested_k_is_capped(self):
        records = [{"v": i} for i in range(10)]
        for requested in (2_000_000, "1e9"):
            result = StatisticalEngine().analyze(records, ModelKind.CLUSTERING, {"clusters": requested})
            assert result.metadata["k"] == 10
            assert len(result.metadata["clusters"]) == 10

        many = [{"v": i} for i in range(100)]
        result = StatisticalEngine().analyze(many, ModelKind.CLUSTERING, {"clusters": 500})
        assert result.metadata["k"] == EngineSettings().clustering.max_clusters
        assert sum(c["count"] for c in result.metadata["clusters"]) == 100

    def test_default_k_never_below_one(self):
        result = StatisticalEngine().analyze([{"v": 4}], ModelKind.CLUSTERING)
        assert result.metadata["k"] == 1
        assert result.metadata["clusters"][0]["count"] == 1

    def test_fixed_confidence_and_silhouette_bounds(self):
        records = [{"v": v} for v in [1, 1, 2, 50, 51, 52, 100, 101]]
        result = StatisticalEngine().analyze(records, ModelKind.CLUSTERING, {"clusters": 3})
        assert result.confidence == 0.8
        assert -1.0 <= result.metadata["silhouette_score"] <= 1.0

    def test_no_numeric_columns(self):
        result = StatisticalEngine().analyze([{"name": "a"}], ModelKind.CLUSTERING)
        assert result.error == AnalysisErrorCode.NO_NUMERIC_COLUMNS


# ═══════════════════════════════════════════════════════════════
# 4. ANOMALY DETECTION
# ═══════════════════════════════════════════════════════════════

class TestAnomalyDetection:
    """Tests for StatisticalEngine.anomaly_detection"""

    def test_single_extreme_outlier(self):
        records = [{"v": v} for v in [1, 2, 3, 4, 5, 6, 7, 8, 9, 100]]
        result = StatisticalEngine().analyze(records, ModelKind.ANOMALY_DETECTION, {"threshold": 2})
        anomalies = result.metadata["anomalies"]
        assert len(anomalies) == 1
        assert anomalies[0]["column"] == "v"
        assert anomalies[0]["count"] == 1
        assert anomalies[0]["examples"] == [100]
        assert anomalies[0]["indices"] == [9]

    def test_five_point_sample_is_bounded_by_population_z(self):
        # With n=5 the largest population z-score is 2, so the outlier sits just below 2
        records = [{"v": v} for v in [1, 2, 3, 4, 100]]
        strict = StatisticalEngine().analyze(records, ModelKind.ANOMALY_DETECTION, {"threshold": 2})
        assert strict.metadata["total_anomalies"] == 0

        relaxed = StatisticalEngine().analyze(records, ModelKind.ANOMALY_DETECTION, {"threshold": 1.5})
        assert relaxed.metadata["total_anomalies"] == 1
        assert relaxed.metadata["anomalies"][0]["examples"] == [100]

    def test_no_anomalies_confidence(self):
        records = [{"v": v} for v in range(20)]
        result = StatisticalEngine().analyze(records, ModelKind.ANOMALY_DETECTION)
        assert result.metadata["total_anomalies"] == 0
        assert result.confidence == 0.7

    def test_constant_column_is_skipped(self):
        records = [{"v": 5, "w": w} for w in [1, 2, 3, 4, 5, 6, 7, 8, 9, 100]]
        result = StatisticalEngine().analyze(records, ModelKind.ANOMALY_DETECTION)
        assert [a["column"] for a in result.metadata["anomalies"]] == ["w"]

    def test_at_most_three_columns_checked(self):
        records = [{"a": i, "b": i, "c": i, "d": i} for i in range(10)]
        result = StatisticalEngine().analyze(records, ModelKind.ANOMALY_DETECTION)
        assert result.metadata["columns_checked"] == ["a", "b", "c"]

    def test_confidence_small_sample_rules(self):
        # 1 anomaly / 10 values: rate 0.1 (not > 0.1), small sample penalty applies
        records = [{"v": v} for v in [1, 2, 3, 4, 5, 6, 7, 8, 9, 100]]
        result = StatisticalEngine().analyze(records, ModelKind.ANOMALY_DETECTION)
        assert result.confidence == pytest.approx(0.75)

    def test_default_threshold_used_for_invalid_values(self):
        records = [{"v": v} for v in range(10)]
        result = StatisticalEngine().analyze(records, ModelKind.ANOMALY_DETECTION, {"threshold": "abc"})
        assert result.metadata["threshold"] == 2.0


# ═══════════════════════════════════════════════════════════════
# 5. TIME SERIES
# ═══════════════════════════════════════════════════════════════

class TestTimeSeries:
    """Tests for StatisticalEngine.time_series"""

    def test_increasing(self):
        result = StatisticalEngine().analyze(make_series([1, 2, 3, 4, 5, 6]), ModelKind.TIME_SERIES)
        trend = result.metadata["trend"]
        assert trend["direction"] == "increasing"
        assert result.metadata["forecast"]["next_value"] == pytest.approx(6 * 1.1)

    def test_decreasing(self):
        result = StatisticalEngine().analyze(make_series([9, 8, 7, 6, 5, 4]), ModelKind.TIME_SERIES)
        assert result.metadata["trend"]["direction"] == "decreasing"
        assert result.metadata["forecast"]["next_value"] == pytest.approx(4 * 0.9)

    def test_constant_is_stable(self):
        result = StatisticalEngine().analyze(make_series([5] * 8), ModelKind.TIME_SERIES)
        trend = result.metadata["trend"]
        assert trend["direction"] == "stable"
        assert trend["strength"] == 0
        assert result.metadata["volatility"] == 0

    def test_records_are_sorted_by_date(self):
        records = list(reversed(make_series([1, 2, 3, 4, 5, 6])))
        result = StatisticalEngine().analyze(records, ModelKind.TIME_SERIES)
        assert result.metadata["trend"]["direction"] == "increasing"
        assert result.metadata["date_range"]["start"].startswith("2024-01-01")

    def test_seasonality_periods_need_two_cycles(self):
        result = StatisticalEngine().analyze(make_series([1, 2, 3, 4, 5, 6, 7]), ModelKind.TIME_SERIES)
        scores = result.metadata["seasonality"]["period_scores"]
        assert set(scores) == {"2", "3"}

    def test_repeating_pattern_detected(self):
        values = [10, 20] * 6
        result = StatisticalEngine().analyze(make_series(values), ModelKind.TIME_SERIES)
        seasonality = result.metadata["seasonality"]
        assert seasonality["detected"] is True
        assert seasonality["period"] == 2

    def test_zero_first_half_strength(self):
        result = StatisticalEngine().analyze(make_series([0, 0, 5, 5]), ModelKind.TIME_SERIES)
        assert result.metadata["trend"]["strength"] == 100.0

    def test_volatility_skips_zero_previous(self):
        result = StatisticalEngine().analyze(make_series([0, 10, 20]), ModelKind.TIME_SERIES)
        assert result.metadata["volatility"] == pytest.approx(1.0)

    def test_confidence_is_clamped(self):
        volatile = [100 + (60 if i % 2 else -60) for i in range(25)]
        result = StatisticalEngine().analyze(make_series(volatile), ModelKind.TIME_SERIES)
        assert 0.1 <= result.confidence <= 0.95

        steep = [2 ** i for i in range(25)]
        result = StatisticalEngine().analyze(make_series(steep), ModelKind.TIME_SERIES)
        assert result.confidence <= 0.95

    def test_missing_date_column(self):
        result = StatisticalEngine().analyze([{"v": 1}, {"v": 2}, {"v": 3}], ModelKind.TIME_SERIES)
        assert result.error == AnalysisErrorCode.MISSING_DATE_OR_NUMERIC
        assert result.confidence == pytest.approx(0.1)

    def test_too_few_points(self):
        result = StatisticalEngine().analyze(make_series([1, 2]), ModelKind.TIME_SERIES)
        assert result.error == AnalysisErrorCode.INSUFFICIENT_DATA


# ═══════════════════════════════════════════════════════════════
# 6. DISPATCH
# ═══════════════════════════════════════════════════════════════

class TestDispatch:

    def test_unknown_model_kind_raises(self):
        with pytest.raises(UnsupportedModelError):
            StatisticalEngine().analyze([{"x": 1}], "neural_net")

    def test_unsupported_model_is_value_error(self):
        with pytest.raises(ValueError):
            StatisticalEngine().analyze([], "random_forest")

    def test_empty_records_never_raise(self):
        engine = StatisticalEngine()
        for kind in ModelKind.ALL:
            result = engine.analyze([], kind)
            assert result.error is not None
            assert 0.0 <= result.confidence <= 1.0

    def test_custom_failure_confidence(self):
        engine = StatisticalEngine(EngineSettings(failure_confidence=0.05))
        result = engine.analyze([], ModelKind.CLUSTERING)
        assert result.confidence == 0.05

    def test_confidence_always_in_unit_interval(self):
        engine = StatisticalEngine()
        records = [{"x": i, "y": math.sin(i), "date": f"2024-03-{i + 1:02d}"} for i in range(25)]
        for kind in ModelKind.ALL:
            assert 0.0 <= engine.analyze(records, kind).confidence <= 1.0
