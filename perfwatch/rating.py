"""
Rating & Alert Engine

Pure classification applied when a metric, vital or error is recorded:
- Web Vitals are rated against the published good / poor boundaries
- Page-load and API metrics are checked against configured targets
- Critical-content signals are escalated to high severity when the
  content-priority flag is set, and ask for an immediate report flush
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Tuple, Union

from .config_manager import PerformanceConfig
from .performance_types import (
    AlertSeverity, AlertType, ErrorRecord, Metric, MetricType, PerformanceAlert,
    VitalName, VitalRating, WebVital
)
from .structured_logging import get_telemetry_logger

logger = logging.getLogger(__name__)

# (good boundary, poor boundary); both inclusive on the better side
VITAL_THRESHOLDS: Dict[VitalName, Tuple[float, float]] = {
    VitalName.CLS: (0.1, 0.25),
    VitalName.FID: (100.0, 300.0),
    VitalName.FCP: (1800.0, 3000.0),
    VitalName.LCP: (2500.0, 4000.0),
    VitalName.TTFB: (800.0, 1800.0),
}

FULL_PAGE_LOAD = "full_page_load"
API_RESPONSE_TIME = "api_response_time"


def rate_vital(name: Union[VitalName, str], value: float) -> VitalRating:
    """Rate a vital; names without published thresholds rate good"""
    if not isinstance(name, VitalName):
        try:
            name = VitalName(name)
        except ValueError:
            return VitalRating.GOOD

    thresholds = VITAL_THRESHOLDS.get(name)
    if thresholds is None:
        return VitalRating.GOOD

    good, poor = thresholds
    if value <= good:
        return VitalRating.GOOD
    if value <= poor:
        return VitalRating.NEEDS_IMPROVEMENT
    return VitalRating.POOR


@dataclass
class AlertDecision:
    """Outcome of evaluating one signal"""
    alert: Optional[PerformanceAlert] = None
    flush: bool = False


class AlertEngine:
    """Evaluates signals against targets and keeps a bounded alert history"""

    def __init__(self, config: PerformanceConfig):
        self.config = config
        self.alert_history: Deque[PerformanceAlert] = deque(maxlen=config.alert_history_size)
        self.alert_callbacks: List[Callable[[PerformanceAlert], None]] = []
        self._telemetry = get_telemetry_logger(__name__)

    def update_config(self, config: PerformanceConfig) -> None:
        self.config = config
        if self.alert_history.maxlen != config.alert_history_size:
            self.alert_history = deque(self.alert_history, maxlen=config.alert_history_size)

    def _severity(self, is_critical: bool) -> AlertSeverity:
        if is_critical and self.config.critical_content_priority:
            return AlertSeverity.HIGH
        return AlertSeverity.MEDIUM

    def evaluate_metric(self, metric: Metric) -> AlertDecision:
        """Check page-load and API metrics against their targets"""
        alert = None

        if metric.type == MetricType.PAGE_LOAD and metric.name == FULL_PAGE_LOAD:
            if metric.value > self.config.page_load_target:
                alert = PerformanceAlert(
                    alert_type=AlertType.PAGE_LOAD_SLOW,
                    severity=self._severity(metric.is_critical_content),
                    message=f"Slow page load: {metric.value:.0f}ms (target: {self.config.page_load_target:.0f}ms)",
                    metric_name=metric.name,
                    value=metric.value,
                    threshold=self.config.page_load_target,
                    is_critical_content=metric.is_critical_content,
                )

        elif metric.type == MetricType.API_RESPONSE:
            if metric.value > self.config.api_response_target:
                alert = PerformanceAlert(
                    alert_type=AlertType.API_RESPONSE_SLOW,
                    severity=self._severity(metric.is_critical_content),
                    message=f"Slow API response: {metric.value:.0f}ms (target: {self.config.api_response_target:.0f}ms)",
                    metric_name=metric.name,
                    value=metric.value,
                    threshold=self.config.api_response_target,
                    is_critical_content=metric.is_critical_content,
                )

        if alert is None:
            return AlertDecision()

        self._raise(alert)
        return AlertDecision(alert=alert, flush=alert.severity == AlertSeverity.HIGH)

    def evaluate_vital(self, vital: WebVital) -> AlertDecision:
        """Poor vitals alert and are always flushed immediately"""
        if vital.rating != VitalRating.POOR:
            return AlertDecision()

        thresholds = VITAL_THRESHOLDS.get(vital.name)
        alert = PerformanceAlert(
            alert_type=AlertType.WEB_VITAL_POOR,
            severity=self._severity(vital.is_critical_content),
            message=f"Poor {vital.name.value}: {vital.value:g}",
            metric_name=vital.name.value,
            value=vital.value,
            threshold=thresholds[1] if thresholds else None,
            is_critical_content=vital.is_critical_content,
        )
        self._raise(alert)
        return AlertDecision(alert=alert, flush=True)

    def evaluate_error(self, error: ErrorRecord) -> AlertDecision:
        """Critical-content errors are escalated when content priority is on"""
        if not (error.is_critical_content and self.config.critical_content_priority):
            return AlertDecision()

        alert = PerformanceAlert(
            alert_type=AlertType.CRITICAL_ERROR,
            severity=AlertSeverity.HIGH,
            message=f"{error.type.value} error in critical content: {error.message}",
            metric_name=error.source,
            value=1.0,
            is_critical_content=True,
        )
        self._raise(alert)
        return AlertDecision(alert=alert, flush=True)

    def _raise(self, alert: PerformanceAlert) -> None:
        self.alert_history.append(alert)
        self._telemetry.log_alert(
            alert.alert_type.value, alert.severity.value, alert.message, alert.value, alert.is_critical_content
        )

        for callback in self.alert_callbacks:
            try:
                callback(alert)
            except Exception as e:
                logger.error(f"❌ Alert callback error: {e}")

    def add_alert_callback(self, callback: Callable[[PerformanceAlert], None]) -> None:
        self.alert_callbacks.append(callback)

    def get_alerts(self) -> List[PerformanceAlert]:
        return list(self.alert_history)

    def clear(self) -> None:
        self.alert_history.clear()

    def get_alert_stats(self) -> Dict[str, object]:
        return {
            "total_alerts": len(self.alert_history),
            "by_severity": {
                severity.value: sum(1 for a in self.alert_history if a.severity == severity)
                for severity in AlertSeverity
            },
            "by_type": {
                alert_type.value: sum(1 for a in self.alert_history if a.alert_type == alert_type)
                for alert_type in AlertType
            },
        }
