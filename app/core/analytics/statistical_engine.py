"""
Statistical Engine — Heuristic Analyses over Uploaded Tables
==============================================================
Runs one of four deliberately simple analyses over a record collection and
returns a titled, templated AnalysisResult.

Capabilities:
  1. Linear Regression   — OLS between the first two numeric columns
  2. Clustering          — 1-D equal-width binning of the first numeric column
  3. Anomaly Detection   — Per-column z-scores (up to 3 numeric columns)
  4. Time Series         — Half-vs-half trend, phase-variance seasonality,
                           volatility, naive forecast

Confidence is a heuristic health score for the fit, NOT a calibrated
probability. The arithmetic of every confidence formula and the silhouette
estimate is intentionally ad hoc and must be kept as-is.

Failure mode: unmet preconditions (too few columns / points) never raise.
They return a confidence-0.1 result with metadata["error"] set.

Usage:
  engine = StatisticalEngine()
  result = engine.analyze(records, "linear_regression", {})
  result.to_dict()
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .column_profiler import (
    Record, date_columns, numeric_columns, parse_date, parse_number,
)
from .errors import UnsupportedModelError

logger = logging.getLogger(__name__)


class ModelKind:
    LINEAR_REGRESSION = "linear_regression"
    CLUSTERING = "clustering"
    ANOMALY_DETECTION = "anomaly_detection"
    TIME_SERIES = "time_series"

    ALL = (LINEAR_REGRESSION, CLUSTERING, ANOMALY_DETECTION, TIME_SERIES)


class AnalysisErrorCode:
    INSUFFICIENT_DATA = "insufficient_data"
    NO_NUMERIC_COLUMNS = "no_numeric_columns"
    MISSING_DATE_OR_NUMERIC = "missing_date_or_numeric_columns"
    ZERO_VARIANCE = "zero_variance"


# ═══════════════════════════════════════════════════════════════
# HEURISTIC SETTINGS (one group per algorithm)
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RegressionSettings:
    min_points: int = 3
    max_confidence: float = 0.99
    strong_r_squared: float = 0.7
    moderate_r_squared: float = 0.4


@dataclass(frozen=True)
class ClusteringSettings:
    max_default_clusters: int = 3
    max_clusters: int = 20
    fixed_confidence: float = 0.8


@dataclass(frozen=True)
class AnomalySettings:
    max_columns: int = 3
    default_threshold: float = 2.0
    max_examples: int = 3
    base_confidence: float = 0.85
    no_anomaly_confidence: float = 0.7
    high_rate: float = 0.10
    high_rate_penalty: float = 0.2
    low_rate: float = 0.001
    low_rate_penalty: float = 0.1
    multi_column_bonus: float = 0.05
    small_sample_size: int = 100
    small_sample_penalty: float = 0.1
    min_confidence: float = 0.1
    max_confidence: float = 0.95


@dataclass(frozen=True)
class TimeSeriesSettings:
    min_points: int = 3
    candidate_periods: Tuple[int, ...] = (2, 3, 4, 6, 12)
    min_cycles: int = 2
    seasonality_threshold: float = 0.7
    forecast_step: float = 0.10
    base_confidence: float = 0.75
    few_points: int = 10
    few_points_penalty: float = 0.15
    many_points: int = 30
    many_points_bonus: float = 0.05
    weak_trend_pct: float = 5.0
    weak_trend_penalty: float = 0.1
    strong_trend_pct: float = 20.0
    strong_trend_bonus: float = 0.05
    high_volatility: float = 0.3
    high_volatility_penalty: float = 0.1
    min_confidence: float = 0.1
    max_confidence: float = 0.95


@dataclass(frozen=True)
class EngineSettings:
    regression: RegressionSettings = field(default_factory=RegressionSettings)
    clustering: ClusteringSettings = field(default_factory=ClusteringSettings)
    anomaly: AnomalySettings = field(default_factory=AnomalySettings)
    time_series: TimeSeriesSettings = field(default_factory=TimeSeriesSettings)
    failure_confidence: float = 0.1


# ═══════════════════════════════════════════════════════════════
# RESULT
# ═══════════════════════════════════════════════════════════════

@dataclass
class AnalysisResult:
    """Titled analysis outcome. Stored by callers as an insight row."""
    title: str
    description: str
    confidence: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def error(self) -> Optional[str]:
        return self.metadata.get("error")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
            "metadata": self.metadata,
        }


# ═══════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════

def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _population_variance(values: List[float]) -> float:
    if not values:
        return 0.0
    m = _mean(values)
    return sum((v - m) ** 2 for v in values) / len(values)


def _population_std(values: List[float]) -> float:
    return math.sqrt(_population_variance(values))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _normal_cdf(x: float) -> float:
    return 0.5 * (1.0 + math.erf(x / math.sqrt(2.0)))


def _column_values(records: List[Record], column: str) -> List[float]:
    values = []
    for record in records:
        number = parse_number(record.get(column))
        if number is not None:
            values.append(number)
    return values


# ═══════════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════════

class StatisticalEngine:
    """
    Stateless analysis dispatcher. One instance can serve any number of
    requests; all state lives in the arguments.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        self._handlers = {
            ModelKind.LINEAR_REGRESSION: self.linear_regression,
            ModelKind.CLUSTERING: self.clustering,
            ModelKind.ANOMALY_DETECTION: self.anomaly_detection,
            ModelKind.TIME_SERIES: self.time_series,
        }

    def analyze(
        self, records: List[Record], model_kind: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> AnalysisResult:
        handler = self._handlers.get(model_kind)
        if handler is None:
            raise UnsupportedModelError(f"Unsupported model type: {model_kind}")

        rows = [r for r in (records or []) if isinstance(r, dict)]
        logger.info(f"Running {model_kind} over {len(rows)} records")
        result = handler(rows, parameters or {})
        if result.error:
            logger.info(f"{model_kind} precondition failed: {result.error}")
        return result

    def _failure(self, title: str, code: str, message: str, **extra) -> AnalysisResult:
        metadata = {"error": code, "message": message}
        metadata.update(extra)
        return AnalysisResult(
            title=title,
            description=message,
            confidence=self.settings.failure_confidence,
            metadata=metadata,
        )

    # ──────────────────────────────────────────────────────────
    # 1. LINEAR REGRESSION
    # ──────────────────────────────────────────────────────────

    def linear_regression(self, records: List[Record], parameters: Dict[str, Any]) -> AnalysisResult:
        cfg = self.settings.regression
        title = "Linear Regression Analysis"

        numeric = numeric_columns(records)
        if len(numeric) < 2:
            return self._failure(
                title, AnalysisErrorCode.INSUFFICIENT_DATA,
                f"Linear regression needs at least 2 numeric columns; found {len(numeric)}.",
                numeric_columns=numeric,
            )

        x_col, y_col = numeric[0], numeric[1]
        points = []
        for record in records:
            x = parse_number(record.get(x_col))
            y = parse_number(record.get(y_col))
            if x is not None and y is not None:
                points.append((x, y))

        n = len(points)
        if n < cfg.min_points:
            return self._failure(
                title, AnalysisErrorCode.INSUFFICIENT_DATA,
                f"Only {n} valid ({x_col}, {y_col}) pairs; at least {cfg.min_points} are required.",
                data_points=n, variables={"x": x_col, "y": y_col},
            )

        sum_x = sum(p[0] for p in points)
        sum_y = sum(p[1] for p in points)
        sum_xy = sum(p[0] * p[1] for p in points)
        sum_xx = sum(p[0] * p[0] for p in points)

        denominator = n * sum_xx - sum_x * sum_x
        if denominator == 0:
            return self._failure(
                title, AnalysisErrorCode.ZERO_VARIANCE,
                f"{x_col} has no variance, so no regression line can be fitted.",
                data_points=n, variables={"x": x_col, "y": y_col},
            )

        slope = (n * sum_xy - sum_x * sum_y) / denominator
        intercept = (sum_y - slope * sum_x) / n

        mean_x = sum_x / n
        mean_y = sum_y / n
        ss_total = sum((y - mean_y) ** 2 for _, y in points)
        ss_residual = sum((y - (slope * x + intercept)) ** 2 for x, y in points)
        r_squared = max(0.0, 1 - ss_residual / ss_total) if ss_total > 0 else 0.0

        # Inference (simplified): normal approximation for the two-sided p-value
        residual_std_error = math.sqrt(ss_residual / (n - 2)) if n > 2 else 0.0
        ss_x = sum((x - mean_x) ** 2 for x, _ in points)
        slope_std_error = residual_std_error / math.sqrt(ss_x) if ss_x > 0 else 0.0
        if slope_std_error > 0:
            t_statistic = slope / slope_std_error
            p_value = 2 * (1 - _normal_cdf(abs(t_statistic)))
        else:
            t_statistic = None
            p_value = 0.0

        std_x = _population_std([x for x, _ in points])
        std_y = _population_std([y for _, y in points])
        feature_importance = abs(slope) * std_x / std_y if std_y > 0 else 0.0

        if r_squared > cfg.strong_r_squared:
            strength = "strong"
        elif r_squared > cfg.moderate_r_squared:
            strength = "moderate"
        else:
            strength = "weak"
        direction = "positive" if slope > 0 else "negative" if slope < 0 else "flat"

        return AnalysisResult(
            title=f"Linear Regression: {y_col} vs {x_col}",
            description=(
                f"Found a {strength} {direction} relationship between {x_col} and {y_col}. "
                f"For every 1 unit increase in {x_col}, {y_col} changes by {slope:.3f} units. "
                f"This model explains {r_squared * 100:.1f}% of the variation in {y_col}."
            ),
            confidence=min(r_squared, cfg.max_confidence),
            metadata={
                "equation": {"slope": slope, "intercept": intercept},
                "r_squared": r_squared,
                "residual_std_error": residual_std_error,
                "t_statistic": t_statistic,
                "p_value": p_value,
                "feature_importance": feature_importance,
                "relationship_strength": strength,
                "direction": direction,
                "data_points": n,
                "variables": {"x": x_col, "y": y_col},
            },
        )

    # ──────────────────────────────────────────────────────────
    # 2. CLUSTERING (1-D equal-width binning)
    # ──────────────────────────────────────────────────────────

    def _cluster_count(self, parameters: Dict[str, Any], n: int) -> int:
        """Requested k, capped at the value count and max_clusters; else min(3, floor(sqrt(n/2)))."""
        cfg = self.settings.clustering
        requested = parameters.get("clusters")
        if requested is not None and not isinstance(requested, bool):
            number = parse_number(requested)
            if number is not None and number >= 1:
                return max(min(int(number), n, cfg.max_clusters), 1)
        default = min(cfg.max_default_clusters, int(math.floor(math.sqrt(n / 2))))
        return max(default, 1)

    def clustering(self, records: List[Record], parameters: Dict[str, Any]) -> AnalysisResult:
        cfg = self.settings.clustering
        title = "Clustering Analysis"

        numeric = numeric_columns(records)
        if not numeric:
            return self._failure(
                title, AnalysisErrorCode.NO_NUMERIC_COLUMNS,
                "Clustering needs at least one numeric column.",
            )

        column = numeric[0]
        values = sorted(_column_values(records, column))
        n = len(values)
        if n == 0:
            return self._failure(
                title, AnalysisErrorCode.INSUFFICIENT_DATA,
                f"No valid numeric values in {column}.", variable=column,
            )

        k = self._cluster_count(parameters, n)
        low, high = values[0], values[-1]
        value_range = high - low

        members: List[List[float]] = [[] for _ in range(k)]
        for v in values:
            if value_range == 0:
                index = 0
            else:
                index = min(int((v - low) / value_range * k), k - 1)
            members[index].append(v)

        clusters = []
        for i in range(k):
            bucket = members[i]
            clusters.append({
                "id": i,
                "range": [low + value_range * i / k, low + value_range * (i + 1) / k],
                "count": len(bucket),
                "percentage": round(len(bucket) / n * 100, 1),
                "center": _mean(bucket) if bucket else None,
                "width": (max(bucket) - min(bucket)) if bucket else None,
            })

        silhouette = self._silhouette_estimate(clusters)
        largest = max(clusters, key=lambda c: c["count"])

        return AnalysisResult(
            title=f"Clustering: {k} clusters in {column}",
            description=(
                f"Identified {k} value ranges in {column}. The largest cluster contains "
                f"{largest['count']} data points ({largest['percentage']}% of data)."
            ),
            confidence=cfg.fixed_confidence,
            metadata={
                "clusters": clusters,
                "k": k,
                "variable": column,
                "total_points": n,
                "silhouette_score": silhouette,
            },
        )

    @staticmethod
    def _silhouette_estimate(clusters: List[Dict[str, Any]]) -> float:
        """Heuristic silhouette-like score over non-empty clusters."""
        filled = [c for c in clusters if c["count"] > 0]
        if len(filled) < 2:
            return 0.0

        distances = []
        for i in range(len(filled)):
            for j in range(i + 1, len(filled)):
                distances.append(abs(filled[i]["center"] - filled[j]["center"]))
        avg_between = _mean(distances)
        avg_width = _mean([c["width"] for c in filled])

        denominator = max(avg_width, avg_between)
        if denominator == 0:
            return 0.0
        return _clamp((avg_between - avg_width) / denominator, -1.0, 1.0)

    # ──────────────────────────────────────────────────────────
    # 3. ANOMALY DETECTION (z-score)
    # ──────────────────────────────────────────────────────────

    def anomaly_detection(self, records: List[Record], parameters: Dict[str, Any]) -> AnalysisResult:
        cfg = self.settings.anomaly
        title = "Anomaly Detection Results"

        numeric = numeric_columns(records)
        if not numeric:
            return self._failure(
                title, AnalysisErrorCode.NO_NUMERIC_COLUMNS,
                "Anomaly detection needs at least one numeric column.",
            )

        threshold = parse_number(parameters.get("threshold"))
        if threshold is None or threshold <= 0:
            threshold = cfg.default_threshold

        anomalies = []
        checked_columns = numeric[:cfg.max_columns]
        values_checked = 0
        sample_size = 0

        for column in checked_columns:
            values = _column_values(records, column)
            if not values:
                continue
            values_checked += len(values)
            sample_size = max(sample_size, len(values))

            mean = _mean(values)
            std = _population_std(values)
            if std == 0:
                continue

            flagged = [
                {"index": i, "value": v, "z_score": abs(v - mean) / std}
                for i, v in enumerate(values)
                if abs(v - mean) / std > threshold
            ]
            if flagged:
                anomalies.append({
                    "column": column,
                    "count": len(flagged),
                    "percentage": round(len(flagged) / len(values) * 100, 1),
                    "mean": mean,
                    "std": std,
                    "examples": [a["value"] for a in flagged[:cfg.max_examples]],
                    "indices": [a["index"] for a in flagged],
                })

        total = sum(a["count"] for a in anomalies)
        rate = total / values_checked if values_checked else 0.0
        confidence = self._anomaly_confidence(total, rate, len(anomalies), sample_size)

        if total == 0:
            summary = "Data appears normal."
        else:
            summary = "These outliers may require further investigation."

        return AnalysisResult(
            title=title,
            description=(
                f"Found {total} anomalies ({rate * 100:.1f}% of checked values) across "
                f"{len(anomalies)} variables. {summary}"
            ),
            confidence=confidence,
            metadata={
                "anomalies": anomalies,
                "threshold": threshold,
                "total_anomalies": total,
                "anomaly_rate": rate,
                "columns_checked": checked_columns,
            },
        )

    def _anomaly_confidence(self, total: int, rate: float, affected_columns: int, sample_size: int) -> float:
        cfg = self.settings.anomaly
        if total == 0:
            return cfg.no_anomaly_confidence

        confidence = cfg.base_confidence
        if rate > cfg.high_rate:
            confidence -= cfg.high_rate_penalty
        elif rate < cfg.low_rate:
            confidence -= cfg.low_rate_penalty
        if affected_columns > 1:
            confidence += cfg.multi_column_bonus
        if sample_size < cfg.small_sample_size:
            confidence -= cfg.small_sample_penalty
        return _clamp(confidence, cfg.min_confidence, cfg.max_confidence)

    # ──────────────────────────────────────────────────────────
    # 4. TIME SERIES
    # ──────────────────────────────────────────────────────────

    def time_series(self, records: List[Record], parameters: Dict[str, Any]) -> AnalysisResult:
        cfg = self.settings.time_series
        title = "Time Series Analysis"

        dates = date_columns(records)
        numeric = numeric_columns(records)
        if not dates or not numeric:
            return self._failure(
                title, AnalysisErrorCode.MISSING_DATE_OR_NUMERIC,
                "Time series analysis needs one date column and one numeric column.",
                date_columns=dates, numeric_columns=numeric,
            )

        date_col, value_col = dates[0], numeric[0]
        series = []
        for record in records:
            moment = parse_date(record.get(date_col))
            value = parse_number(record.get(value_col))
            if moment is not None and value is not None:
                series.append((moment, value))
        series.sort(key=lambda pair: pair[0])

        n = len(series)
        if n < cfg.min_points:
            return self._failure(
                title, AnalysisErrorCode.INSUFFICIENT_DATA,
                f"Only {n} valid ({date_col}, {value_col}) points; at least {cfg.min_points} are required.",
                data_points=n, variables={"date": date_col, "value": value_col},
            )

        values = [v for _, v in series]
        trend = self._trend(values)
        seasonality = self._seasonality(values)
        volatility = self._volatility(values)

        step = {"increasing": 1 + cfg.forecast_step, "decreasing": 1 - cfg.forecast_step}
        forecast = values[-1] * step.get(trend["direction"], 1.0)

        confidence = cfg.base_confidence
        if n < cfg.few_points:
            confidence -= cfg.few_points_penalty
        elif n > cfg.many_points:
            confidence += cfg.many_points_bonus
        if trend["strength"] < cfg.weak_trend_pct:
            confidence -= cfg.weak_trend_penalty
        elif trend["strength"] > cfg.strong_trend_pct:
            confidence += cfg.strong_trend_bonus
        if volatility > cfg.high_volatility:
            confidence -= cfg.high_volatility_penalty
        confidence = _clamp(confidence, cfg.min_confidence, cfg.max_confidence)

        direction = trend["direction"]
        season_text = (
            f" Seasonal pattern detected with a period of {seasonality['period']} observations."
            if seasonality["detected"] else ""
        )
        return AnalysisResult(
            title=f"Time Series Analysis: {value_col} over Time",
            description=(
                f"{direction.capitalize()} trend detected with {trend['strength']:.1f}% change "
                f"from first to second half of data.{season_text} "
                f"Naive forecast for the next period: {forecast:.2f}."
            ),
            confidence=confidence,
            metadata={
                "trend": trend,
                "seasonality": seasonality,
                "volatility": volatility,
                "forecast": {"next_value": forecast, "method": "naive_trend_extrapolation"},
                "data_points": n,
                "date_range": {"start": series[0][0].isoformat(), "end": series[-1][0].isoformat()},
                "variables": {"date": date_col, "value": value_col},
            },
        )

    @staticmethod
    def _trend(values: List[float]) -> Dict[str, Any]:
        half = len(values) // 2
        first_avg = _mean(values[:half])
        second_avg = _mean(values[half:])
        delta = second_avg - first_avg

        if second_avg > first_avg:
            direction = "increasing"
        elif second_avg < first_avg:
            direction = "decreasing"
        else:
            direction = "stable"

        if first_avg != 0:
            strength = abs(delta) / abs(first_avg) * 100
        else:
            strength = 0.0 if delta == 0 else 100.0

        return {
            "direction": direction,
            "strength": strength,
            "first_half_mean": first_avg,
            "second_half_mean": second_avg,
        }

    def _seasonality(self, values: List[float]) -> Dict[str, Any]:
        cfg = self.settings.time_series
        period_scores: Dict[int, float] = {}

        for period in cfg.candidate_periods:
            if len(values) < cfg.min_cycles * period:
                continue
            phases = [values[phase::period] for phase in range(period)]
            scores = [1 / (1 + _population_variance(p)) for p in phases if p]
            period_scores[period] = _mean(scores)

        if not period_scores:
            return {"detected": False, "period": None, "score": 0.0, "period_scores": {}}

        best_period = max(period_scores, key=lambda p: (period_scores[p], -p))
        best_score = period_scores[best_period]
        detected = best_score > cfg.seasonality_threshold
        return {
            "detected": detected,
            "period": best_period if detected else None,
            "score": best_score,
            "period_scores": {str(p): s for p, s in period_scores.items()},
        }

    @staticmethod
    def _volatility(values: List[float]) -> float:
        changes = [
            abs((current - previous) / previous)
            for previous, current in zip(values, values[1:])
            if previous != 0
        ]
        return _mean(changes)
