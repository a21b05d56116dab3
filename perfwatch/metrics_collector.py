"""
Metric Collector

Buffers metrics, Web Vitals and errors for the current session behind the
monitoring gate (enabled and sampled in). Every accepted signal is handed to
the alert engine; the collector asks for a flush when the engine wants one or
when the metric buffer reaches its configured size.

Usage:
    collector = MetricCollector(config, platform, AlertEngine(config), flush_requested=reporter.flush)
    collector.track_metric(MetricType.API_RESPONSE, "api_response_time", 340.0)
"""

import logging
import random
import string
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Union

from .config_manager import PerformanceConfig
from .device_capabilities import Platform
from .performance_types import (
    ConnectionType, ErrorRecord, ErrorType, Metric, MetricType, MetricUnit,
    PerformanceAlert, VitalName, VitalRating, WebVital
)
from .rating import AlertDecision, AlertEngine, rate_vital

logger = logging.getLogger(__name__)

FLUSH_BUFFER_FULL = "buffer_full"
FLUSH_ALERT = "alert"

E = TypeVar("E", bound=Enum)


def generate_session_id(clock: Callable[[], float] = time.time, rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    suffix = "".join(rng.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"perf_{int(clock() * 1000)}_{suffix}"


@dataclass
class CollectedBatch:
    """Buffer contents taken for one report"""
    metrics: List[Metric] = field(default_factory=list)
    web_vitals: List[WebVital] = field(default_factory=list)
    errors: List[ErrorRecord] = field(default_factory=list)
    alerts: List[PerformanceAlert] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.metrics or self.web_vitals or self.errors)


class MetricCollector:
    """Session buffers and the monitoring gate"""

    def __init__(
        self,
        config: PerformanceConfig,
        platform: Platform,
        alert_engine: AlertEngine,
        flush_requested: Optional[Callable[[str], Any]] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config
        self.platform = platform
        self.alert_engine = alert_engine
        self.flush_requested = flush_requested
        self.rng = rng or random.Random()
        self.clock = clock

        self.session_id = generate_session_id(clock, self.rng)
        self.is_sampled = self.roll_sample()

        self.metrics: List[Metric] = []
        self.web_vitals: List[WebVital] = []
        self.errors: List[ErrorRecord] = []
        self.pending_alerts: List[PerformanceAlert] = []

        self.total_metrics = 0
        self.total_errors = 0
        self.rejected = 0

    def roll_sample(self) -> bool:
        """Draw the per-session sampling decision"""
        self.is_sampled = self.rng.random() < self.config.sample_rate
        return self.is_sampled

    @property
    def is_monitoring(self) -> bool:
        return self.config.enabled and self.is_sampled

    def update_config(self, config: PerformanceConfig) -> None:
        self.config = config

    def is_critical_url(self, url: Optional[str]) -> bool:
        """True when the URL matches one of the critical-content patterns"""
        if not url:
            return False
        lowered = url.lower()
        return any(pattern.lower() in lowered for pattern in self.config.critical_content_patterns)

    def _connection_type(self) -> str:
        try:
            connection = self.platform.connection()
        except Exception as e:
            logger.debug(f"Connection info unavailable: {e}")
            return ConnectionType.UNKNOWN.value
        if connection is None:
            return ConnectionType.UNKNOWN.value
        return ConnectionType.parse(connection.effective_type).value

    def _now_ms(self) -> float:
        return self.clock() * 1000

    def _coerce(self, enum_cls: Type[E], value: Any, what: str) -> Optional[E]:
        """Enum member for ``value``; None (counted as rejected) when unknown"""
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError:
            self.rejected += 1
            logger.warning(f"⚠️ Dropping signal with unknown {what} {value!r}")
            return None

    def track_metric(
        self,
        metric_type: Union[MetricType, str],
        name: str,
        value: float,
        unit: Union[MetricUnit, str] = MetricUnit.MS,
        is_critical_content: bool = False,
        domain_context: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None
    ) -> Optional[Metric]:
        """Stamp, buffer and evaluate one metric; None when the gate is closed"""
        if not self.is_monitoring:
            self.rejected += 1
            return None

        metric_type = self._coerce(MetricType, metric_type, "metric type")
        if metric_type is None:
            return None
        unit = self._coerce(MetricUnit, unit, "metric unit")
        if unit is None:
            return None

        metric = Metric(
            id=f"metric_{uuid.uuid4().hex}",
            type=metric_type,
            name=name,
            value=value,
            unit=unit,
            timestamp=self._now_ms(),
            url=url if url is not None else self.platform.current_url(),
            user_agent=self.platform.user_agent(),
            connection_type=self._connection_type(),
            is_critical_content=is_critical_content,
            domain_context=domain_context,
            metadata=metadata,
        )
        self.metrics.append(metric)
        self.total_metrics += 1

        decision = self.alert_engine.evaluate_metric(metric)
        if not self._handle_decision(decision) and len(self.metrics) >= self.config.buffer_size:
            self._request_flush(FLUSH_BUFFER_FULL)
        return metric

    def record_web_vital(
        self,
        name: Union[VitalName, str],
        value: float,
        rating: Optional[Union[VitalRating, str]] = None,
        delta: Optional[float] = None,
        vital_id: Optional[str] = None,
        entries: Optional[List[Any]] = None,
        is_critical_content: bool = False
    ) -> Optional[WebVital]:
        """
        Record a vital, rating it when no rating is given.

        A vital whose id is already buffered is amended in place (value, delta,
        rating, entries) so cumulative vitals appear once per report.
        """
        if not self.is_monitoring:
            self.rejected += 1
            return None

        name = self._coerce(VitalName, name, "vital")
        if name is None:
            return None
        if rating is None:
            rating = rate_vital(name, value)
        else:
            rating = self._coerce(VitalRating, rating, "vital rating")
            if rating is None:
                return None

        vital = next((v for v in self.web_vitals if vital_id is not None and v.id == vital_id), None)
        if vital is not None:
            vital.delta = delta if delta is not None else value - vital.value
            vital.value = value
            vital.rating = rating
            vital.entries.extend(entries or [])
            vital.is_critical_content = vital.is_critical_content or is_critical_content
        else:
            vital = WebVital(
                name=name,
                value=value,
                rating=rating,
                delta=delta if delta is not None else value,
                id=vital_id or f"vital_{uuid.uuid4().hex}",
                entries=list(entries or []),
                is_critical_content=is_critical_content,
            )
            self.web_vitals.append(vital)

        self._handle_decision(self.alert_engine.evaluate_vital(vital))
        return vital

    def track_error(
        self,
        error_type: Union[ErrorType, str],
        message: str,
        source: str,
        stack: Optional[str] = None,
        is_critical_content: bool = False,
        url: Optional[str] = None
    ) -> Optional[ErrorRecord]:
        if not self.is_monitoring:
            self.rejected += 1
            return None

        error_type = self._coerce(ErrorType, error_type, "error type")
        if error_type is None:
            return None

        error = ErrorRecord(
            type=error_type,
            message=message,
            source=source,
            stack=stack,
            timestamp=self._now_ms(),
            url=url if url is not None else self.platform.current_url(),
            is_critical_content=is_critical_content,
        )
        self.errors.append(error)
        self.total_errors += 1

        self._handle_decision(self.alert_engine.evaluate_error(error))
        return error

    def _handle_decision(self, decision: AlertDecision) -> bool:
        """Queue the alert for the next report; True if a flush was requested"""
        if decision.alert is not None:
            self.pending_alerts.append(decision.alert)
        if decision.flush:
            self._request_flush(FLUSH_ALERT)
            return True
        return False

    def _request_flush(self, reason: str) -> None:
        if self.flush_requested is not None:
            self.flush_requested(reason)

    def has_data(self) -> bool:
        return bool(self.metrics or self.web_vitals or self.errors)

    def snapshot(self) -> CollectedBatch:
        """Copy of the current buffers, left in place"""
        return CollectedBatch(
            metrics=list(self.metrics),
            web_vitals=list(self.web_vitals),
            errors=list(self.errors),
            alerts=list(self.pending_alerts),
        )

    def take_batch(self) -> CollectedBatch:
        """Move the buffers out, leaving them empty"""
        batch = CollectedBatch(
            metrics=self.metrics,
            web_vitals=self.web_vitals,
            errors=self.errors,
            alerts=self.pending_alerts,
        )
        self.metrics = []
        self.web_vitals = []
        self.errors = []
        self.pending_alerts = []
        return batch

    def clear(self) -> None:
        self.take_batch()

    def buffer_sizes(self) -> Dict[str, int]:
        return {
            "metrics": len(self.metrics),
            "vitals": len(self.web_vitals),
            "errors": len(self.errors),
            "alerts": len(self.pending_alerts),
        }
