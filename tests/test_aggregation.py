"""
Tests for on-demand metric aggregation
"""

import math

import pytest

from perfwatch.aggregation import (
    aggregate_metrics, aggregate_vitals, average_metric_value, clean_values,
    percentile, performance_score, summarize
)
from perfwatch.performance_types import Metric, MetricType, VitalName, VitalRating, WebVital


def metric(name, value):
    return Metric(id=f"{name}_{value}", type=MetricType.PAGE_LOAD, name=name, value=value)


class TestCleanValues:
    def test_drops_invalid_values(self):
        assert clean_values([1, -5, math.nan, math.inf, -math.inf, 2.5, True, "3"]) == [1.0, 2.5]


class TestSummaries:
    def test_summarize(self):
        summary = summarize("full_page_load", list(range(1, 101)))

        assert summary.count == 100
        assert summary.mean == pytest.approx(50.5)
        assert summary.median == pytest.approx(50.5)
        assert summary.p95 == pytest.approx(95.05)
        assert summary.min == 1
        assert summary.max == 100
        assert summary.dropped == 0

    def test_invalid_values_counted_as_dropped(self):
        summary = summarize("x", [100.0, -1.0, math.nan])
        assert summary.count == 1
        assert summary.dropped == 2

    def test_nothing_usable(self):
        assert summarize("x", [math.nan, -3]) is None

    def test_percentile_without_data(self):
        assert percentile([], 95) == 0.0

    def test_aggregate_by_name(self):
        metrics = [metric("a", 10), metric("a", 30), metric("b", 5), metric("c", -1)]
        aggregates = aggregate_metrics(metrics)

        assert set(aggregates) == {"a", "b"}
        assert aggregates["a"].mean == 20
        assert aggregates["a"].to_dict()["count"] == 2

    def test_average_metric_value(self):
        metrics = [metric("a", 10), metric("a", 20), metric("a", math.nan), metric("b", 1000)]
        assert average_metric_value(metrics, "a") == 15
        assert average_metric_value(metrics, "missing") == 0.0


class TestVitalAggregation:
    def test_latest_and_rating_counts(self):
        vitals = [
            WebVital(VitalName.LCP, 2000, VitalRating.GOOD, 2000, "v1"),
            WebVital(VitalName.LCP, 4500, VitalRating.POOR, 2500, "v2"),
            WebVital(VitalName.CLS, 0.05, VitalRating.GOOD, 0.05, "v3"),
        ]
        result = aggregate_vitals(vitals)

        assert result["LCP"]["count"] == 2
        assert result["LCP"]["latest"] == 4500
        assert result["LCP"]["rating"] == "poor"
        assert result["LCP"]["ratings"] == {"good": 1, "needs-improvement": 0, "poor": 1}
        assert result["CLS"]["latest"] == 0.05


class TestPerformanceScore:
    def test_no_data_is_perfect(self):
        assert performance_score(0, 0, 2000, 200) == 100.0

    def test_within_targets(self):
        assert performance_score(1500, 150, 2000, 200) == 100.0

    def test_over_target(self):
        # page 4000 vs 2000 -> 50, api 200 vs 200 -> 100
        assert performance_score(4000, 200, 2000, 200) == 75.0

    def test_single_component(self):
        assert performance_score(0, 400, 2000, 200) == 50.0
