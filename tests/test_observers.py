"""
Tests for entry observers, the entry channel and the ambient trackers
"""

import random

import pytest

from perfwatch.config_manager import PerformanceConfig
from perfwatch.metrics_collector import MetricCollector
from perfwatch.observers import (
    EntryChannel, FirstInputEntry, LargestContentfulPaintEntry, LayoutShiftEntry,
    LongTaskEntry, NavigationTiming, PaintEntry, ResourceTiming, ScrollDepthTracker,
    VisibleTimeTracker, default_observers
)
from perfwatch.error_handling import ObserverRegistrationError
from perfwatch.performance_types import MetricType, MetricUnit, VitalName, VitalRating
from perfwatch.rating import AlertEngine

from fakes import FakePlatform


@pytest.fixture
def collector():
    """Sampled-in collector with flushes recorded instead of sent"""
    config = PerformanceConfig(sample_rate=1.0, buffer_size=1000)
    collector = MetricCollector(config, FakePlatform(), AlertEngine(config), rng=random.Random(1))
    collector.flushes = []
    collector.flush_requested = collector.flushes.append
    return collector


@pytest.fixture
def channel(collector):
    channel = EntryChannel()
    for observer in default_observers(collector):
        observer.connect(channel, FakePlatform().supported_entry_types())
    return channel


def names(collector):
    return [m.name for m in collector.metrics]


class TestEntryChannel:
    def test_fifo_dispatch(self):
        channel = EntryChannel()
        seen = []
        channel.subscribe("longtask", lambda e: seen.append(e.name))

        channel.push_many([LongTaskEntry(name="a"), LongTaskEntry(name="b")])
        assert seen == ["a", "b"]

    def test_reentrant_push_is_queued(self):
        """An entry pushed from a handler runs after the current one finishes"""
        channel = EntryChannel()
        order = []

        def first(entry):
            order.append(f"start {entry.name}")
            if entry.name == "outer":
                channel.push(LongTaskEntry(name="inner"))
            order.append(f"end {entry.name}")

        channel.subscribe("longtask", first)
        channel.push(LongTaskEntry(name="outer"))

        assert order == ["start outer", "end outer", "start inner", "end inner"]
        assert channel.pending == 0

    def test_handler_errors_are_isolated(self):
        channel = EntryChannel()
        seen = []

        def broken(entry):
            raise ValueError("bad entry")

        channel.subscribe("paint", broken)
        channel.subscribe("paint", seen.append)
        channel.push(PaintEntry(name="first-paint"))

        assert len(seen) == 1

    def test_unsubscribed_entries_counted(self):
        channel = EntryChannel()
        channel.push(LongTaskEntry())
        assert channel.dropped == 1

    def test_unsubscribe(self):
        channel = EntryChannel()
        seen = []
        unsubscribe = channel.subscribe("longtask", seen.append)
        unsubscribe()
        channel.push(LongTaskEntry())
        assert seen == []


class TestObserverRegistration:
    def test_unsupported_type_raises(self, collector):
        channel = EntryChannel()
        observer = default_observers(collector)[3]  # paint

        with pytest.raises(ObserverRegistrationError) as exc_info:
            observer.connect(channel, frozenset({"navigation"}))
        assert exc_info.value.entry_type == "paint"
        assert not observer.connected

    def test_disconnect_stops_delivery(self, collector):
        channel = EntryChannel()
        observer = default_observers(collector)[2]  # longtask
        observer.connect(channel, frozenset({"longtask"}))
        observer.disconnect()

        channel.push(LongTaskEntry(duration=120))
        assert collector.metrics == []


class TestNavigationObserver:
    def test_derived_phases(self, collector, channel):
        channel.push(NavigationTiming(
            name="https://example.org/news/today",
            domain_lookup_start=10, domain_lookup_end=30,
            connect_start=30, connect_end=80,
            request_start=80, response_start=200, response_end=260,
            dom_interactive=900, dom_content_loaded_event_end=1100, load_event_end=1500,
        ))

        values = {m.name: m.value for m in collector.metrics}
        assert values == {
            "dns_lookup": 20,
            "connection_time": 50,
            "server_response": 120,
            "time_to_interactive": 900,
            "dom_content_loaded": 1100,
            "full_page_load": 1500,
        }
        assert all(m.type == MetricType.PAGE_LOAD for m in collector.metrics)
        assert all(m.is_critical_content for m in collector.metrics)

        ttfb = collector.web_vitals[0]
        assert ttfb.name == VitalName.TTFB
        assert ttfb.value == 200
        assert ttfb.rating == VitalRating.GOOD

    def test_zero_phases_skipped(self, collector, channel):
        channel.push(NavigationTiming(name="https://example.org/", load_event_end=700))
        assert names(collector) == ["full_page_load"]
        assert collector.web_vitals == []


class TestResourceObserver:
    def test_api_resource(self, collector, channel):
        channel.push(ResourceTiming(
            name="https://example.org/api/search", start_time=0, request_start=5,
            response_end=150, transfer_size=0,
        ))

        metric = collector.metrics[0]
        assert metric.type == MetricType.API_RESPONSE
        assert metric.name == "api_response_time"
        assert metric.value == 145
        assert metric.metadata["cached"] is True

    def test_image_resource(self, collector, channel):
        channel.push(ResourceTiming(name="https://cdn.example.org/hero.WEBP", start_time=10, response_end=310,
                                    transfer_size=2048))

        metric = collector.metrics[0]
        assert metric.type == MetricType.RESOURCE_TIMING
        assert metric.name == "image_load_time"
        assert metric.value == 300
        assert metric.metadata == {"size": 2048, "cached": False}

    def test_slow_image_recorded_twice(self, collector, channel):
        channel.push(ResourceTiming(name="https://cdn.example.org/big.png", start_time=0, response_end=1500))
        assert names(collector) == ["image_load_time", "slow_resource"]

    def test_threshold_is_exclusive(self, collector, channel):
        channel.push(ResourceTiming(name="https://example.org/app.js", start_time=0, response_end=1000))
        assert collector.metrics == []

        channel.push(ResourceTiming(name="https://example.org/app.js", start_time=0, response_end=1001))
        assert names(collector) == ["slow_resource"]


class TestVitalObservers:
    def test_long_task(self, collector, channel):
        channel.push(LongTaskEntry(duration=180))
        metric = collector.metrics[0]
        assert (metric.type, metric.name, metric.value) == (MetricType.USER_INTERACTION, "long_task", 180)

    def test_first_contentful_paint_only(self, collector, channel):
        channel.push(PaintEntry(name="first-paint", start_time=400))
        channel.push(PaintEntry(name="first-contentful-paint", start_time=900))

        assert len(collector.web_vitals) == 1
        assert collector.web_vitals[0].name == VitalName.FCP
        assert collector.web_vitals[0].value == 900

    def test_lcp_latest_wins_in_place(self, collector, channel):
        channel.push(LargestContentfulPaintEntry(start_time=1200))
        channel.push(LargestContentfulPaintEntry(start_time=2600))

        assert len(collector.web_vitals) == 1
        lcp = collector.web_vitals[0]
        assert lcp.value == 2600
        assert lcp.delta == 1400
        assert lcp.rating == VitalRating.NEEDS_IMPROVEMENT
        assert len(lcp.entries) == 2

    def test_cls_accumulates_and_ignores_recent_input(self, collector, channel):
        channel.push(LayoutShiftEntry(value=0.04))
        channel.push(LayoutShiftEntry(value=0.5, had_recent_input=True))
        channel.push(LayoutShiftEntry(value=0.03))

        assert len(collector.web_vitals) == 1
        cls = collector.web_vitals[0]
        assert cls.value == pytest.approx(0.07)
        assert cls.delta == pytest.approx(0.03)
        assert cls.rating == VitalRating.GOOD
        assert collector.flushes == []

    def test_cls_turning_poor_flushes(self, collector, channel):
        channel.push(LayoutShiftEntry(value=0.2))
        channel.push(LayoutShiftEntry(value=0.1))

        assert collector.web_vitals[0].rating == VitalRating.POOR
        assert collector.flushes == ["alert"]

    def test_cls_reappended_after_flush(self, collector, channel):
        channel.push(LayoutShiftEntry(value=0.05))
        collector.take_batch()
        channel.push(LayoutShiftEntry(value=0.02))

        assert len(collector.web_vitals) == 1
        assert collector.web_vitals[0].value == pytest.approx(0.07)

    def test_first_input_once(self, collector, channel):
        channel.push(FirstInputEntry(start_time=1000, processing_start=1040))
        channel.push(FirstInputEntry(start_time=2000, processing_start=2500))

        assert len(collector.web_vitals) == 1
        assert collector.web_vitals[0].name == VitalName.FID
        assert collector.web_vitals[0].value == 40


class TestAmbientTrackers:
    def test_scroll_depth_keeps_maximum(self, collector):
        tracker = ScrollDepthTracker()
        tracker.update(500, 3000, 1000)
        tracker.update(1500, 3000, 1000)
        tracker.update(200, 3000, 1000)

        assert tracker.max_percent == 75.0

        tracker.report(collector, "https://example.org/calculators/bmi")
        tracker.report(collector)
        assert len(collector.metrics) == 1
        metric = collector.metrics[0]
        assert (metric.name, metric.value, metric.unit) == ("scroll_depth", 0.75, MetricUnit.RATIO)
        assert metric.is_critical_content

    def test_unscrollable_page(self):
        assert ScrollDepthTracker().update(0, 800, 1000) == 100.0

    def test_visible_time_across_toggles(self, collector):
        now = [100.0]
        tracker = VisibleTimeTracker(clock=lambda: now[0])

        now[0] = 102.0
        tracker.set_visible(False)
        now[0] = 110.0
        tracker.set_visible(True)
        now[0] = 111.5
        tracker.report(collector)
        tracker.report(collector)

        assert len(collector.metrics) == 1
        assert collector.metrics[0].name == "time_on_page"
        assert collector.metrics[0].value == pytest.approx(3500)
