"""
Report building and best-effort delivery

Buffers are taken and cleared synchronously at flush time; the POST itself
runs as an asyncio task, or on a single background worker thread when the
caller has no running loop. Flushing never blocks on the network. A failed
send is logged and dropped, never retried, and never restores the buffers.
"""

import asyncio
import concurrent.futures
import logging
import re
import time
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any, Callable, Dict, Optional, Set

import aiohttp

from .aggregation import average_metric_value, performance_score
from .config_manager import PerformanceConfig
from .device_capabilities import Platform
from .error_handling import ReportingError
from .metrics_collector import CollectedBatch, MetricCollector
from .performance_types import ConnectionType, DeviceInfo, MetricType, NetworkInfo, Report
from .rating import API_RESPONSE_TIME, FULL_PAGE_LOAD
from .structured_logging import get_telemetry_logger

logger = logging.getLogger(__name__)

MOBILE_AGENT = re.compile(r"Mobile|Android|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)
TABLET_AGENT = re.compile(r"iPad|Android(?!.*Mobile)|Tablet", re.IGNORECASE)


class ReportTransport(ABC):
    """Delivers one serialized report"""

    @abstractmethod
    async def send(self, endpoint: str, payload: Dict[str, Any]) -> int:
        """POST the payload; return the HTTP status or raise ReportingError"""


class HttpReportTransport(ReportTransport):
    """JSON POST over aiohttp"""

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds

    async def send(self, endpoint: str, payload: Dict[str, Any]) -> int:
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    endpoint,
                    json=payload,
                    headers={'Content-Type': 'application/json'}
                ) as response:
                    if response.status >= 400:
                        raise ReportingError(
                            f"Reporting endpoint returned status {response.status}",
                            status=response.status,
                            details={"endpoint": endpoint},
                        )
                    return response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ReportingError(
                f"Failed to reach reporting endpoint: {e}",
                original_exception=e,
                details={"endpoint": endpoint},
            )


class Reporter:
    """Builds reports from the collector and ships them"""

    def __init__(
        self,
        config: PerformanceConfig,
        collector: MetricCollector,
        platform: Platform,
        transport: Optional[ReportTransport] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config
        self.collector = collector
        self.platform = platform
        self.transport = transport or HttpReportTransport(config.request_timeout_seconds)
        self.clock = clock

        self._in_flight: Set[asyncio.Task] = set()
        self._background: Set[concurrent.futures.Future] = set()
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._periodic_task: Optional[asyncio.Task] = None

        self.reports_attempted = 0
        self.reports_sent = 0
        self.reports_failed = 0
        self._telemetry = get_telemetry_logger(__name__, collector.session_id)

    def update_config(self, config: PerformanceConfig) -> None:
        self.config = config
        if isinstance(self.transport, HttpReportTransport):
            self.transport.timeout_seconds = config.request_timeout_seconds

    # Report building

    def _network_info(self) -> NetworkInfo:
        connection = self.platform.connection()
        if connection is None:
            return NetworkInfo()
        return NetworkInfo(
            effective_type=connection.effective_type or ConnectionType.UNKNOWN.value,
            rtt=connection.rtt,
            downlink=connection.downlink,
        )

    def _device_info(self) -> DeviceInfo:
        user_agent = self.platform.user_agent()
        return DeviceInfo(
            memory=self.platform.device_memory(),
            cores=self.platform.hardware_concurrency(),
            is_mobile=bool(MOBILE_AGENT.search(user_agent)),
            is_tablet=bool(TABLET_AGENT.search(user_agent)),
        )

    def _critical_content_performance(self, batch: CollectedBatch) -> Dict[str, float]:
        critical = [m for m in batch.metrics if m.is_critical_content]
        return {
            label: average_metric_value(critical, metric_name)
            for label, metric_name in self.config.critical_content_rollups.items()
        }

    def build_report(self, batch: CollectedBatch) -> Report:
        by_type = {metric_type: [] for metric_type in MetricType}
        for metric in batch.metrics:
            by_type[metric.type].append(metric)

        page_loads = [m for m in by_type[MetricType.PAGE_LOAD] if m.name == FULL_PAGE_LOAD]
        api_calls = by_type[MetricType.API_RESPONSE]
        average_page_load = average_metric_value(page_loads, FULL_PAGE_LOAD)
        average_api = average_metric_value(api_calls, API_RESPONSE_TIME)

        summary = {
            "totalPageLoads": len(page_loads),
            "totalApiCalls": len(api_calls),
            "averagePageLoadTime": average_page_load,
            "averageApiResponseTime": average_api,
            "performanceScore": performance_score(
                average_page_load, average_api,
                self.config.page_load_target, self.config.api_response_target,
            ),
        }

        error_analysis = {
            "totalErrors": len(batch.errors),
            "errorsByType": dict(Counter(error.type.value for error in batch.errors)),
        }

        return Report(
            session_id=self.collector.session_id,
            timestamp=self.clock() * 1000,
            page_load_metrics=by_type[MetricType.PAGE_LOAD],
            api_metrics=api_calls,
            user_interaction_metrics=by_type[MetricType.USER_INTERACTION],
            resource_timings=by_type[MetricType.RESOURCE_TIMING],
            vital_metrics=by_type[MetricType.VITAL],
            web_vitals=batch.web_vitals,
            errors=batch.errors,
            critical_content_performance=self._critical_content_performance(batch),
            network_info=self._network_info(),
            device_info=self._device_info(),
            summary=summary,
            error_analysis=error_analysis,
            alerts=batch.alerts,
        )

    def generate_report(self) -> Report:
        """Report over the current buffers; nothing is cleared"""
        return self.build_report(self.collector.snapshot())

    # Delivery

    def flush(self, reason: str = "manual") -> Optional[Report]:
        """
        Take the buffers and send them.

        The buffers are empty when this returns. On a running loop the send is
        scheduled as a task; without one it is handed to the background
        worker. Either way the caller does not wait for the network.
        """
        if not self.collector.has_data():
            return None

        report = self.build_report(self.collector.take_batch())
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._submit_background(report, reason)
            return report

        task = loop.create_task(self._send(report, reason))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return report

    def _submit_background(self, report: Report, reason: str) -> None:
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="perfwatch-report"
            )
        self._background = {f for f in self._background if not f.done()}
        self._background.add(self._executor.submit(self._run_send, report, reason))

    def _run_send(self, report: Report, reason: str) -> bool:
        return asyncio.run(self._send(report, reason))

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until background sends finish; False if the timeout expired"""
        pending = list(self._background)
        if not pending:
            return True
        _, not_done = concurrent.futures.wait(pending, timeout=timeout)
        self._background = set(not_done)
        return not not_done

    def close(self) -> None:
        """Let queued background sends finish, then release the worker"""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._background.clear()

    async def report_metrics(self, reason: str = "manual") -> Optional[Report]:
        """Take the buffers and await the send"""
        if not self.collector.has_data():
            return None
        report = self.build_report(self.collector.take_batch())
        await self._send(report, reason)
        return report

    async def _send(self, report: Report, reason: str) -> bool:
        self.reports_attempted += 1
        counts = report.counts()
        try:
            status = await self.transport.send(self.config.reporting_endpoint, report.to_dict())
        except ReportingError as e:
            self.reports_failed += 1
            self._telemetry.log_report_failed(counts, e)
            return False
        except Exception as e:
            self.reports_failed += 1
            logger.error(f"❌ Unexpected error sending {reason} report: {e}")
            return False

        self.reports_sent += 1
        self._telemetry.log_report_sent(counts, status)
        return True

    async def drain(self) -> None:
        """Wait for every scheduled send to finish"""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        pending = [f for f in self._background if not f.done()]
        if pending:
            await asyncio.gather(*(asyncio.wrap_future(f) for f in pending), return_exceptions=True)
        self._background = {f for f in self._background if not f.done()}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight) + sum(1 for f in self._background if not f.done())

    # Periodic reporting

    def start_periodic(self) -> bool:
        if self._periodic_task is not None and not self._periodic_task.done():
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; periodic reporting disabled")
            return False
        self._periodic_task = loop.create_task(self._periodic_loop())
        return True

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.report_interval_seconds)
            try:
                if self.collector.has_data():
                    self.flush("periodic")
            except Exception as e:
                logger.error(f"❌ Error in periodic reporting: {e}")

    def stop_periodic(self) -> None:
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            self._periodic_task = None

    def get_stats(self) -> Dict[str, int]:
        return {
            "reports_attempted": self.reports_attempted,
            "reports_sent": self.reports_sent,
            "reports_failed": self.reports_failed,
            "in_flight": self.in_flight,
        }
