"""
Tests for Web Vital rating and the alert engine
"""

import pytest

from perfwatch.config_manager import PerformanceConfig
from perfwatch.performance_types import (
    AlertSeverity, AlertType, ErrorRecord, ErrorType, Metric, MetricType,
    VitalName, VitalRating, WebVital
)
from perfwatch.rating import AlertEngine, rate_vital


def make_metric(metric_type=MetricType.PAGE_LOAD, name="full_page_load", value=1000.0, critical=False):
    return Metric(id="metric_1", type=metric_type, name=name, value=value, is_critical_content=critical)


def make_vital(name=VitalName.CLS, value=0.3, critical=False):
    return WebVital(
        name=name, value=value, rating=rate_vital(name, value), delta=value, id="vital_1",
        is_critical_content=critical,
    )


class TestRateVital:
    @pytest.mark.parametrize("value,expected", [
        (2500, VitalRating.GOOD),
        (2501, VitalRating.NEEDS_IMPROVEMENT),
        (4000, VitalRating.NEEDS_IMPROVEMENT),
        (4001, VitalRating.POOR),
    ])
    def test_lcp_boundaries(self, value, expected):
        assert rate_vital(VitalName.LCP, value) == expected

    @pytest.mark.parametrize("name,good,poor", [
        ("CLS", 0.1, 0.25),
        ("FID", 100, 300),
        ("FCP", 1800, 3000),
        ("TTFB", 800, 1800),
    ])
    def test_good_side_is_inclusive(self, name, good, poor):
        assert rate_vital(name, good) == VitalRating.GOOD
        assert rate_vital(name, poor) == VitalRating.NEEDS_IMPROVEMENT
        assert rate_vital(name, poor * 1.01) == VitalRating.POOR

    def test_unknown_names_rate_good(self):
        assert rate_vital("INP", 10_000) == VitalRating.GOOD
        assert rate_vital("XYZ", 10_000) == VitalRating.GOOD


class TestAlertEngine:
    """Test alert evaluation and severity"""

    def setup_method(self):
        self.config = PerformanceConfig()
        self.engine = AlertEngine(self.config)

    def test_slow_critical_page_load_is_high_and_flushes(self):
        decision = self.engine.evaluate_metric(make_metric(value=5000, critical=True))

        assert decision.alert.alert_type == AlertType.PAGE_LOAD_SLOW
        assert decision.alert.severity == AlertSeverity.HIGH
        assert decision.alert.threshold == 2000
        assert decision.flush

    def test_slow_page_load_without_critical_content_is_medium(self):
        decision = self.engine.evaluate_metric(make_metric(value=5000))

        assert decision.alert.severity == AlertSeverity.MEDIUM
        assert not decision.flush

    def test_priority_flag_off_downgrades_severity(self):
        engine = AlertEngine(PerformanceConfig(critical_content_priority=False))
        decision = engine.evaluate_metric(make_metric(value=5000, critical=True))

        assert decision.alert.severity == AlertSeverity.MEDIUM
        assert not decision.flush

    def test_page_load_at_target_does_not_alert(self):
        assert self.engine.evaluate_metric(make_metric(value=2000)).alert is None

    def test_only_full_page_load_is_checked(self):
        assert self.engine.evaluate_metric(make_metric(name="dns_lookup", value=9000)).alert is None

    def test_slow_api_response(self):
        metric = make_metric(MetricType.API_RESPONSE, "api_response_time", 450.0, critical=True)
        decision = self.engine.evaluate_metric(metric)

        assert decision.alert.alert_type == AlertType.API_RESPONSE_SLOW
        assert decision.alert.severity == AlertSeverity.HIGH
        assert decision.flush

    def test_poor_vital_always_flushes(self):
        decision = self.engine.evaluate_vital(make_vital(value=0.3))

        assert decision.alert.alert_type == AlertType.WEB_VITAL_POOR
        assert decision.alert.severity == AlertSeverity.MEDIUM
        assert decision.alert.threshold == 0.25
        assert decision.flush

    def test_poor_critical_vital_is_high(self):
        decision = self.engine.evaluate_vital(make_vital(value=0.3, critical=True))
        assert decision.alert.severity == AlertSeverity.HIGH

    def test_good_vital_is_quiet(self):
        decision = self.engine.evaluate_vital(make_vital(value=0.05))
        assert decision.alert is None
        assert not decision.flush

    def test_critical_error_escalates(self):
        error = ErrorRecord(type=ErrorType.SCRIPT, message="boom", source="app.js", is_critical_content=True)
        decision = self.engine.evaluate_error(error)

        assert decision.alert.alert_type == AlertType.CRITICAL_ERROR
        assert decision.alert.severity == AlertSeverity.HIGH
        assert decision.flush

    def test_ordinary_error_is_quiet(self):
        error = ErrorRecord(type=ErrorType.NETWORK, message="timeout", source="fetch")
        assert self.engine.evaluate_error(error).alert is None

    def test_history_is_bounded(self):
        engine = AlertEngine(PerformanceConfig(alert_history_size=3))
        for _ in range(5):
            engine.evaluate_metric(make_metric(value=5000))

        assert len(engine.get_alerts()) == 3

    def test_callbacks_receive_alerts_and_failures_are_contained(self):
        received = []

        def broken(alert):
            raise RuntimeError("callback bug")

        self.engine.add_alert_callback(broken)
        self.engine.add_alert_callback(received.append)
        self.engine.evaluate_metric(make_metric(value=5000))

        assert len(received) == 1

    def test_alert_stats(self):
        self.engine.evaluate_metric(make_metric(value=5000, critical=True))
        self.engine.evaluate_vital(make_vital(value=0.3))

        stats = self.engine.get_alert_stats()
        assert stats["total_alerts"] == 2
        assert stats["by_severity"]["high"] == 1
        assert stats["by_type"]["web_vital_poor"] == 1

    def test_alert_logged_with_structured_data(self, caplog):
        with caplog.at_level("INFO", logger="perfwatch.rating"):
            self.engine.evaluate_metric(make_metric(value=5000, critical=True))

        record = next(r for r in caplog.records if hasattr(r, "structured_data"))
        assert record.structured_data["event"] == "performance_alert"
        assert record.structured_data["severity"] == "high"
        assert record.levelname == "WARNING"
