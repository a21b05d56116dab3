"""
Performance Monitor for perfwatch
Session-scoped telemetry: observers feed the collector, the alert engine
rates each signal, and the reporter ships batches to the reporting endpoint.

Usage:
    monitor = create_performance_monitor(sample_rate=1.0)
    monitor.start_monitoring()
    monitor.track_page_load("/medical-search", 1850.0)
    monitor.track_web_vital("CLS", 0.02)
    await monitor.dispose()
"""

import asyncio
import logging
import random
import sys
import time
import traceback
from typing import Any, Callable, Dict, List, Optional, Union

from .aggregation import aggregate_metrics, aggregate_vitals, average_metric_value, performance_score
from .config_manager import PerformanceConfig
from .device_capabilities import HostPlatform, Platform
from .error_handling import ObserverRegistrationError
from .metrics_collector import MetricCollector
from .observers import (
    EntryChannel, EntryObserver, PerformanceEntry, ScrollDepthTracker,
    VisibleTimeTracker, default_observers
)
from .performance_types import (
    ErrorRecord, ErrorType, Metric, MetricType, MetricUnit, PerformanceAlert,
    Report, VitalName, VitalRating, WebVital
)
from .rating import AlertEngine, API_RESPONSE_TIME, FULL_PAGE_LOAD
from .reporter import Reporter, ReportTransport

logger = logging.getLogger(__name__)

# Rollup metric name to the metric type it is recorded under
ROLLUP_METRIC_TYPES: Dict[str, MetricType] = {
    "medical_news_load": MetricType.PAGE_LOAD,
    "calculator_response": MetricType.API_RESPONSE,
    "search_response": MetricType.API_RESPONSE,
    "image_load_time": MetricType.RESOURCE_TIMING,
}


class PerformanceMonitor:
    """Central performance monitoring system"""

    def __init__(
        self,
        config: Optional[PerformanceConfig] = None,
        platform: Optional[Platform] = None,
        transport: Optional[ReportTransport] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic
    ):
        self.config = config or PerformanceConfig()
        self.platform = platform or HostPlatform()

        # Core components
        self.alert_engine = AlertEngine(self.config)
        self.collector = MetricCollector(
            self.config, self.platform, self.alert_engine,
            flush_requested=self._on_flush_requested, rng=rng, clock=clock,
        )
        self.reporter = Reporter(self.config, self.collector, self.platform, transport, clock)

        # Observer fan-in
        self.channel = EntryChannel()
        self.observers: List[EntryObserver] = default_observers(self.collector)
        self.scroll_tracker = ScrollDepthTracker()
        self.visible_time_tracker = VisibleTimeTracker(monotonic)

        # Monitoring state
        self.started = False
        self.disposed = False
        self._resume_on_enable = False
        self._previous_excepthook = None
        self._hooked_loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous_loop_handler = None

        if self.collector.is_monitoring:
            logger.info(f"📊 Performance monitoring active for session {self.session_id}")
        else:
            logger.debug(f"Session {self.session_id} not sampled; telemetry disabled")

    @property
    def session_id(self) -> str:
        return self.collector.session_id

    @property
    def is_monitoring(self) -> bool:
        return self.collector.is_monitoring

    # Lifecycle

    def start_monitoring(self) -> bool:
        """Register observers and the periodic report timer; False when the gate is closed"""
        if self.started:
            return True
        if not self.collector.is_monitoring:
            return False

        supported = self.platform.supported_entry_types()
        for observer in self.observers:
            try:
                observer.connect(self.channel, supported)
            except ObserverRegistrationError as e:
                logger.warning(f"⚠️ Skipping {e.entry_type} observer: {e}")

        if self.config.batch_reporting_enabled:
            self.reporter.start_periodic()

        self.started = True
        logger.info(f"✅ Performance monitoring started ({self.connected_observers()} observers)")
        return True

    def stop_monitoring(self) -> None:
        """Disconnect observers, stop the timer and flush what is left"""
        for observer in self.observers:
            observer.disconnect()
        self.reporter.stop_periodic()

        if self.started:
            self.started = False
            self.reporter.flush("stop")
            logger.info("✅ Performance monitoring stopped")

    async def dispose(self) -> None:
        if self.disposed:
            return
        self.stop_monitoring()
        self.uninstall_error_hooks()
        await self.reporter.drain()
        self.reporter.close()
        self.disposed = True

    async def drain(self) -> None:
        """Wait for in-flight report sends"""
        await self.reporter.drain()

    def wait_for_reports(self, timeout: Optional[float] = None) -> bool:
        """Block until sends started outside an event loop have finished"""
        return self.reporter.wait(timeout)

    def connected_observers(self) -> int:
        return sum(1 for observer in self.observers if observer.connected)

    # Platform events

    def push_entry(self, entry: PerformanceEntry) -> None:
        self.channel.push(entry)

    def update_scroll(self, scroll_y: float, scroll_height: float, viewport_height: float) -> float:
        return self.scroll_tracker.update(scroll_y, scroll_height, viewport_height)

    def set_visibility(self, hidden: bool) -> None:
        """Visibility change; becoming hidden flushes the buffers"""
        self.visible_time_tracker.set_visible(not hidden)
        if hidden and self.collector.is_monitoring:
            self.reporter.flush("visibility_hidden")

    def page_hide(self) -> None:
        """Final page event: report scroll depth and visible time, then flush"""
        if not self.collector.is_monitoring:
            return
        url = self.platform.current_url()
        self.scroll_tracker.report(self.collector, url)
        self.visible_time_tracker.report(self.collector, url)
        self.reporter.flush("page_hide")

    # Tracking

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
        return self.collector.track_metric(
            metric_type, name, value, unit=unit, is_critical_content=is_critical_content,
            domain_context=domain_context, metadata=metadata, url=url,
        )

    def track_error(
        self,
        error_type: Union[ErrorType, str],
        message: str,
        source: str = "unknown",
        stack: Optional[str] = None,
        is_critical_content: bool = False,
        url: Optional[str] = None
    ) -> Optional[ErrorRecord]:
        return self.collector.track_error(
            error_type, message, source, stack=stack, is_critical_content=is_critical_content, url=url
        )

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
        return self.collector.record_web_vital(
            name, value, rating=rating, delta=delta, vital_id=vital_id,
            entries=entries, is_critical_content=is_critical_content,
        )

    def track_web_vital(
        self,
        name: Union[VitalName, str],
        value: float,
        rating: Optional[Union[VitalRating, str]] = None,
        is_critical_content: bool = False
    ) -> Optional[WebVital]:
        """Record a vital reported by an external source (e.g. a web-vitals bridge)"""
        return self.record_web_vital(name, value, rating=rating, is_critical_content=is_critical_content)

    def track_page_load(
        self,
        page: str,
        load_time: float,
        is_critical: Optional[bool] = None
    ) -> Optional[Metric]:
        """Full page load for a named page; criticality defaults to URL matching"""
        if is_critical is None:
            is_critical = self.collector.is_critical_url(page)
        return self.collector.track_metric(
            MetricType.PAGE_LOAD, FULL_PAGE_LOAD, load_time,
            is_critical_content=is_critical, metadata={"page": page},
        )

    def track_api_response(
        self,
        endpoint: str,
        response_time: float,
        status_code: Optional[int] = None,
        method: str = "GET",
        is_critical: Optional[bool] = None
    ) -> Optional[Metric]:
        if is_critical is None:
            is_critical = self.collector.is_critical_url(endpoint)
        return self.collector.track_metric(
            MetricType.API_RESPONSE, API_RESPONSE_TIME, response_time,
            is_critical_content=is_critical,
            metadata={"endpoint": endpoint, "method": method, "statusCode": status_code},
        )

    def track_interaction(
        self,
        name: str,
        details: Optional[Dict[str, Any]] = None,
        value: float = 1.0,
        is_critical: bool = False
    ) -> Optional[Metric]:
        """Count a user interaction such as a click or search submission"""
        return self.collector.track_metric(
            MetricType.USER_INTERACTION, name, value, unit=MetricUnit.COUNT,
            is_critical_content=is_critical, metadata=details,
        )

    def track_critical_content_performance(
        self,
        timings: Dict[str, float],
        domain_context: Optional[str] = None
    ) -> List[Metric]:
        """
        Record domain timings keyed by rollup label (e.g. ``newsLoadTime``).

        Each label maps to its rollup metric name; unknown labels are ignored.
        All metrics are tagged as critical content.
        """
        recorded = []
        for label, value in timings.items():
            metric_name = self.config.critical_content_rollups.get(label)
            if metric_name is None:
                logger.debug(f"Unknown critical content timing: {label}")
                continue
            metric = self.collector.track_metric(
                ROLLUP_METRIC_TYPES.get(metric_name, MetricType.PAGE_LOAD), metric_name, value,
                is_critical_content=True, domain_context=domain_context,
            )
            if metric is not None:
                recorded.append(metric)
        return recorded

    def track_resource_error(self, resource_url: str, tag: str = "resource") -> Optional[ErrorRecord]:
        """A resource (image, script, stylesheet) failed to load"""
        return self.collector.track_error(
            ErrorType.RESOURCE, f"Failed to load: {resource_url}", tag,
            is_critical_content=self.collector.is_critical_url(resource_url),
        )

    # Error hooks

    def install_error_hooks(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Route uncaught exceptions and unhandled task errors into track_error"""
        if self._previous_excepthook is None:
            self._previous_excepthook = sys.excepthook
            sys.excepthook = self._excepthook

        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        if loop is not None and self._hooked_loop is None:
            self._hooked_loop = loop
            self._previous_loop_handler = loop.get_exception_handler()
            loop.set_exception_handler(self._loop_exception_handler)

    def uninstall_error_hooks(self) -> None:
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None
        if self._hooked_loop is not None:
            self._hooked_loop.set_exception_handler(self._previous_loop_handler)
            self._hooked_loop = None
            self._previous_loop_handler = None

    def _excepthook(self, exc_type, exc, tb) -> None:
        try:
            source = tb.tb_frame.f_code.co_filename if tb is not None else "unknown"
            self.collector.track_error(
                ErrorType.SCRIPT, str(exc) or exc_type.__name__, source,
                stack="".join(traceback.format_exception(exc_type, exc, tb)),
                is_critical_content=self.collector.is_critical_url(source),
            )
        except Exception as e:
            logger.error(f"❌ Failed to record uncaught exception: {e}")
        previous = self._previous_excepthook or sys.__excepthook__
        previous(exc_type, exc, tb)

    def _loop_exception_handler(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        stack = None
        if exc is not None:
            message = f"Unhandled task exception: {exc}"
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        else:
            message = f"Unhandled task exception: {context.get('message', 'unknown')}"

        # Unhandled async failures are treated as critical content
        try:
            self.collector.track_error(ErrorType.SCRIPT, message, "promise", stack=stack, is_critical_content=True)
        except Exception as e:
            logger.error(f"❌ Failed to record task exception: {e}")

        if self._previous_loop_handler is not None:
            self._previous_loop_handler(loop, context)
        else:
            loop.default_exception_handler(context)

    # Reporting

    def _on_flush_requested(self, reason: str) -> None:
        self.reporter.flush(reason)

    def generate_report(self) -> Report:
        return self.reporter.generate_report()

    def flush(self, reason: str = "manual") -> Optional[Report]:
        return self.reporter.flush(reason)

    async def report_metrics(self) -> Optional[Report]:
        return await self.reporter.report_metrics()

    async def send_batch_report(self) -> Optional[Report]:
        return await self.reporter.report_metrics("batch")

    # Queries

    def get_aggregated_metrics(self) -> Dict[str, Any]:
        """Dashboard view over the current buffers"""
        batch = self.collector.snapshot()
        average_page_load = average_metric_value(batch.metrics, FULL_PAGE_LOAD)
        average_api = average_metric_value(
            [m for m in batch.metrics if m.type == MetricType.API_RESPONSE], API_RESPONSE_TIME
        )
        critical = [m for m in batch.metrics if m.is_critical_content]

        return {
            "metrics": {name: aggregate.to_dict() for name, aggregate in aggregate_metrics(batch.metrics).items()},
            "webVitals": aggregate_vitals(batch.web_vitals),
            "averagePageLoadTime": average_page_load,
            "averageApiResponseTime": average_api,
            "performanceScore": performance_score(
                average_page_load, average_api,
                self.config.page_load_target, self.config.api_response_target,
            ),
            "criticalContentPerformance": {
                label: average_metric_value(critical, metric_name)
                for label, metric_name in self.config.critical_content_rollups.items()
            },
            "errorCount": len(batch.errors),
        }

    def get_metrics(self) -> Dict[str, List[Any]]:
        batch = self.collector.snapshot()
        return {
            "metrics": batch.metrics,
            "webVitals": batch.web_vitals,
            "errors": batch.errors,
        }

    def get_performance_alerts(self) -> List[PerformanceAlert]:
        return self.alert_engine.get_alerts()

    def add_alert_callback(self, callback: Callable[[PerformanceAlert], None]) -> None:
        self.alert_engine.add_alert_callback(callback)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "is_monitoring": self.collector.is_monitoring,
            "is_sampled": self.collector.is_sampled,
            "started": self.started,
            "observers": self.connected_observers(),
            "buffers": self.collector.buffer_sizes(),
            "total_metrics": self.collector.total_metrics,
            "total_errors": self.collector.total_errors,
            "rejected": self.collector.rejected,
            "unhandled_entries": self.channel.dropped,
            "reporting": self.reporter.get_stats(),
            "alerts": self.alert_engine.get_alert_stats(),
        }

    def clear_metrics(self) -> None:
        self.collector.clear()
        self.alert_engine.clear()

    # Configuration

    def get_config(self) -> PerformanceConfig:
        return self.config

    def update_config(self, **partial: Any) -> PerformanceConfig:
        """Apply a partial update; raises ConfigurationError for bad keys or values"""
        config = self.config.updated(**partial)
        self.config = config
        self.collector.update_config(config)
        self.alert_engine.update_config(config)
        self.reporter.update_config(config)

        if self.started:
            if config.batch_reporting_enabled:
                self.reporter.start_periodic()
            else:
                self.reporter.stop_periodic()
        return config

    def set_enabled(self, enabled: bool) -> bool:
        """
        Toggle monitoring.

        Disabling stops monitoring first, so observers and the report timer go
        quiet and the buffers are flushed. Enabling re-rolls the sampling
        decision and resumes monitoring if it had been stopped by a disable.
        """
        if not enabled:
            self._resume_on_enable = self._resume_on_enable or self.started
            self.stop_monitoring()
            self.update_config(enabled=False)
            return False

        self.update_config(enabled=True)
        self.collector.roll_sample()
        if self._resume_on_enable and self.collector.is_monitoring:
            self._resume_on_enable = False
            self.start_monitoring()
        return self.collector.is_monitoring


# Factory function for easy creation
def create_performance_monitor(
    config: Optional[PerformanceConfig] = None,
    platform: Optional[Platform] = None,
    transport: Optional[ReportTransport] = None,
    **overrides: Any
) -> PerformanceMonitor:
    """Create performance monitor with standard configuration"""
    config = config or PerformanceConfig()
    if overrides:
        config = config.updated(**overrides)
    return PerformanceMonitor(config, platform=platform, transport=transport)
