"""
Entry observers and the channel that fans them into the collector

Platform performance entries (navigation, resource, long-task, paint,
layout-shift, first-input) are pushed onto a single ``EntryChannel``. The
channel dispatches in FIFO order on the caller's turn; entries pushed while a
dispatch is running are queued behind it, never handled re-entrantly. Tests
drive observers by pushing synthetic entries.
"""

import logging
import re
import time
import uuid
from collections import defaultdict, deque
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Callable, Deque, Dict, FrozenSet, List, Optional

from .error_handling import ObserverRegistrationError
from .performance_types import MetricType, MetricUnit, VitalName

if TYPE_CHECKING:
    from .metrics_collector import MetricCollector

logger = logging.getLogger(__name__)

IMAGE_URL = re.compile(r"\.(jpg|jpeg|png|webp|avif|gif|svg)$", re.IGNORECASE)
API_URL_MARKER = "/api/"


@dataclass
class PerformanceEntry:
    entry_type: str
    name: str = ""
    start_time: float = 0.0
    duration: float = 0.0

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass
class NavigationTiming(PerformanceEntry):
    entry_type: str = "navigation"
    domain_lookup_start: float = 0.0
    domain_lookup_end: float = 0.0
    connect_start: float = 0.0
    connect_end: float = 0.0
    request_start: float = 0.0
    response_start: float = 0.0
    response_end: float = 0.0
    dom_interactive: float = 0.0
    dom_content_loaded_event_end: float = 0.0
    load_event_end: float = 0.0


@dataclass
class ResourceTiming(PerformanceEntry):
    entry_type: str = "resource"
    request_start: float = 0.0
    response_end: float = 0.0
    transfer_size: int = 0


@dataclass
class LongTaskEntry(PerformanceEntry):
    entry_type: str = "longtask"


@dataclass
class PaintEntry(PerformanceEntry):
    entry_type: str = "paint"


@dataclass
class LargestContentfulPaintEntry(PerformanceEntry):
    entry_type: str = "largest-contentful-paint"
    size: int = 0


@dataclass
class LayoutShiftEntry(PerformanceEntry):
    entry_type: str = "layout-shift"
    value: float = 0.0
    had_recent_input: bool = False


@dataclass
class FirstInputEntry(PerformanceEntry):
    entry_type: str = "first-input"
    processing_start: float = 0.0


EntryHandler = Callable[[PerformanceEntry], None]


class EntryChannel:
    """Single-threaded FIFO fan-in from observers to the collector"""

    def __init__(self):
        self._queue: Deque[PerformanceEntry] = deque()
        self._subscribers: Dict[str, List[EntryHandler]] = defaultdict(list)
        self._dispatching = False
        self.dropped = 0

    def subscribe(self, entry_type: str, handler: EntryHandler) -> Callable[[], None]:
        self._subscribers[entry_type].append(handler)

        def unsubscribe():
            handlers = self._subscribers.get(entry_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def push(self, entry: PerformanceEntry) -> None:
        self._queue.append(entry)
        if not self._dispatching:
            self._drain()

    def push_many(self, entries: List[PerformanceEntry]) -> None:
        for entry in entries:
            self.push(entry)

    def _drain(self) -> None:
        self._dispatching = True
        try:
            while self._queue:
                entry = self._queue.popleft()
                handlers = list(self._subscribers.get(entry.entry_type, ()))
                if not handlers:
                    self.dropped += 1
                    continue
                for handler in handlers:
                    try:
                        handler(entry)
                    except Exception as e:
                        logger.error(f"❌ Observer error for {entry.entry_type} entry: {e}")
        finally:
            self._dispatching = False

    @property
    def pending(self) -> int:
        return len(self._queue)


class EntryObserver:
    """Subscribes to one entry type and turns entries into metrics or vitals"""

    entry_type: str = ""

    def __init__(self, collector: 'MetricCollector'):
        self.collector = collector
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def connected(self) -> bool:
        return self._unsubscribe is not None

    def connect(self, channel: EntryChannel, supported: FrozenSet[str]) -> None:
        if self.entry_type not in supported:
            raise ObserverRegistrationError(
                f"{self.entry_type} entries are not supported by this runtime",
                entry_type=self.entry_type,
            )
        if self._unsubscribe is None:
            self._unsubscribe = channel.subscribe(self.entry_type, self.handle)

    def disconnect(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle(self, entry: PerformanceEntry) -> None:
        raise NotImplementedError


class NavigationObserver(EntryObserver):
    """Derives page-load phases and TTFB from navigation timing"""

    entry_type = "navigation"

    def handle(self, entry: NavigationTiming) -> None:
        critical = self.collector.is_critical_url(entry.name)

        def track(name: str, value: float):
            self.collector.track_metric(
                MetricType.PAGE_LOAD, name, value, is_critical_content=critical, url=entry.name or None
            )

        if entry.domain_lookup_end > entry.domain_lookup_start:
            track("dns_lookup", entry.domain_lookup_end - entry.domain_lookup_start)

        if entry.connect_end > entry.connect_start:
            track("connection_time", entry.connect_end - entry.connect_start)

        if entry.response_start > entry.request_start:
            track("server_response", entry.response_start - entry.request_start)

        if entry.dom_interactive > 0:
            track("time_to_interactive", entry.dom_interactive - entry.start_time)

        if entry.dom_content_loaded_event_end > 0:
            track("dom_content_loaded", entry.dom_content_loaded_event_end - entry.start_time)

        if entry.load_event_end > 0:
            track("full_page_load", entry.load_event_end - entry.start_time)

        if entry.response_start > 0:
            self.collector.record_web_vital(
                VitalName.TTFB, entry.response_start - entry.start_time,
                entries=[entry], is_critical_content=critical,
            )


class ResourceObserver(EntryObserver):
    """Per-resource load time, API latency, images and slow resources"""

    entry_type = "resource"

    def handle(self, entry: ResourceTiming) -> None:
        critical = self.collector.is_critical_url(entry.name)
        cached = entry.transfer_size == 0
        load_time = entry.response_end - entry.start_time

        if API_URL_MARKER in entry.name:
            self.collector.track_metric(
                MetricType.API_RESPONSE, "api_response_time", entry.response_end - entry.request_start,
                is_critical_content=critical,
                metadata={"endpoint": entry.name, "transferSize": entry.transfer_size, "cached": cached},
            )

        if IMAGE_URL.search(entry.name):
            self.collector.track_metric(
                MetricType.RESOURCE_TIMING, "image_load_time", load_time,
                is_critical_content=critical,
                metadata={"size": entry.transfer_size, "cached": cached},
            )

        if load_time > self.collector.config.slow_resource_threshold_ms:
            self.collector.track_metric(
                MetricType.RESOURCE_TIMING, "slow_resource", load_time,
                is_critical_content=critical,
                metadata={"resource": entry.name, "size": entry.transfer_size},
            )


class LongTaskObserver(EntryObserver):
    entry_type = "longtask"

    def handle(self, entry: LongTaskEntry) -> None:
        self.collector.track_metric(
            MetricType.USER_INTERACTION, "long_task", entry.duration,
            is_critical_content=self.collector.is_critical_url(entry.name),
        )


class PaintObserver(EntryObserver):
    entry_type = "paint"

    def handle(self, entry: PaintEntry) -> None:
        if entry.name == "first-contentful-paint":
            self.collector.record_web_vital(VitalName.FCP, entry.start_time, entries=[entry])


class LargestContentfulPaintObserver(EntryObserver):
    """The latest candidate wins; one vital amended in place"""

    entry_type = "largest-contentful-paint"

    def __init__(self, collector: 'MetricCollector'):
        super().__init__(collector)
        self.vital_id = f"lcp_{uuid.uuid4().hex[:12]}"
        self.value = 0.0

    def handle(self, entry: LargestContentfulPaintEntry) -> None:
        delta = entry.start_time - self.value
        self.value = entry.start_time
        self.collector.record_web_vital(
            VitalName.LCP, self.value, delta=delta, vital_id=self.vital_id, entries=[entry]
        )


class LayoutShiftObserver(EntryObserver):
    """Accumulates shifts not caused by recent input into one CLS vital"""

    entry_type = "layout-shift"

    def __init__(self, collector: 'MetricCollector'):
        super().__init__(collector)
        self.vital_id = f"cls_{uuid.uuid4().hex[:12]}"
        self.value = 0.0

    def handle(self, entry: LayoutShiftEntry) -> None:
        if entry.had_recent_input:
            return
        self.value += entry.value
        self.collector.record_web_vital(
            VitalName.CLS, self.value, delta=entry.value, vital_id=self.vital_id, entries=[entry]
        )


class FirstInputObserver(EntryObserver):
    entry_type = "first-input"

    def __init__(self, collector: 'MetricCollector'):
        super().__init__(collector)
        self.tracked = False

    def handle(self, entry: FirstInputEntry) -> None:
        if self.tracked:
            return
        self.tracked = True
        self.collector.record_web_vital(VitalName.FID, entry.processing_start - entry.start_time, entries=[entry])


def default_observers(collector: 'MetricCollector') -> List[EntryObserver]:
    return [
        NavigationObserver(collector),
        ResourceObserver(collector),
        LongTaskObserver(collector),
        PaintObserver(collector),
        LargestContentfulPaintObserver(collector),
        LayoutShiftObserver(collector),
        FirstInputObserver(collector),
    ]


class ScrollDepthTracker:
    """Maximum scroll percentage, reported once at page hide"""

    def __init__(self):
        self.max_percent = 0.0
        self.reported = False

    def update(self, scroll_y: float, scroll_height: float, viewport_height: float) -> float:
        scrollable = scroll_height - viewport_height
        if scrollable <= 0:
            percent = 100.0
        else:
            percent = max(0.0, min(100.0, scroll_y / scrollable * 100))
        if percent > self.max_percent:
            self.max_percent = percent
        return self.max_percent

    def report(self, collector: 'MetricCollector', url: str = "") -> None:
        if self.reported:
            return
        self.reported = True
        collector.track_metric(
            MetricType.USER_INTERACTION, "scroll_depth", self.max_percent / 100,
            unit=MetricUnit.RATIO, is_critical_content=collector.is_critical_url(url),
        )


class VisibleTimeTracker:
    """Visible time accumulated across visibility toggles, reported once at page hide"""

    def __init__(self, clock: Callable[[], float] = time.monotonic, visible: bool = True):
        self.clock = clock
        self.visible = visible
        self.total_visible_ms = 0.0
        self.last_change = clock()
        self.reported = False

    def _accumulate(self) -> None:
        now = self.clock()
        if self.visible:
            self.total_visible_ms += (now - self.last_change) * 1000
        self.last_change = now

    def set_visible(self, visible: bool) -> None:
        self._accumulate()
        self.visible = visible

    def report(self, collector: 'MetricCollector', url: str = "") -> None:
        if self.reported:
            return
        self._accumulate()
        self.reported = True
        collector.track_metric(
            MetricType.USER_INTERACTION, "time_on_page", self.total_visible_ms,
            is_critical_content=collector.is_critical_url(url),
        )
