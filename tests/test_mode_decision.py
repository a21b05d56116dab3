"""
Tests for the performance mode decision rules
"""

import itertools

import pytest

from perfwatch.mode_decision import decide, is_full, is_lite, should_use_css_fallback
from perfwatch.performance_types import ConnectionType, GPUTier, PerformanceMode

from fakes import make_snapshot


class TestLiteRule:
    """Any single weak signal forces lite"""

    @pytest.mark.parametrize("overrides", [
        {"cpu_cores": 2},
        {"cpu_cores": 1},
        {"device_memory_gb": 1.0},
        {"device_memory_gb": 0.5},
        {"connection_type": ConnectionType.TWO_G},
        {"connection_type": ConnectionType.SLOW_2G},
        {"gpu_tier": GPUTier.LOW},
        {"prefers_reduced_motion": True},
    ])
    def test_single_weak_signal_on_strong_device(self, overrides):
        """A strong device with one weak signal is still lite"""
        snapshot = make_snapshot(**overrides)
        assert is_lite(snapshot)
        assert decide(snapshot) == PerformanceMode.LITE

    def test_two_cores_overrides_high_end_hardware(self):
        """cpuCores <= 2 wins over 4 GB, a high GPU and 4g"""
        snapshot = make_snapshot(
            cpu_cores=2,
            device_memory_gb=4.0,
            gpu_tier=GPUTier.HIGH,
            connection_type=ConnectionType.FOUR_G,
            prefers_reduced_motion=False,
        )
        assert decide(snapshot) == PerformanceMode.LITE

    def test_lite_wins_even_when_full_would_match(self):
        snapshot = make_snapshot(prefers_reduced_motion=True)
        assert is_full(snapshot)
        assert decide(snapshot) == PerformanceMode.LITE


class TestFullRule:
    def test_strong_device(self):
        assert decide(make_snapshot()) == PerformanceMode.FULL

    def test_unknown_connection_counts_as_fast(self):
        snapshot = make_snapshot(connection_type=ConnectionType.UNKNOWN)
        assert decide(snapshot) == PerformanceMode.FULL

    def test_exact_boundaries(self):
        snapshot = make_snapshot(cpu_cores=4, device_memory_gb=4.0)
        assert decide(snapshot) == PerformanceMode.FULL


class TestBalancedDefault:
    @pytest.mark.parametrize("overrides", [
        {"cpu_cores": 3},
        {"device_memory_gb": 2.0},
        {"gpu_tier": GPUTier.MEDIUM},
        {"gpu_tier": GPUTier.UNKNOWN},
        {"connection_type": ConnectionType.THREE_G},
    ])
    def test_middle_devices(self, overrides):
        assert decide(make_snapshot(**overrides)) == PerformanceMode.BALANCED

    def test_decide_is_total(self):
        """Every combination maps to exactly one mode, lite and full are never confused"""
        combinations = itertools.product(
            [1, 2, 3, 4, 16],
            [0.25, 1.0, 2.0, 4.0, 8.0],
            list(GPUTier),
            list(ConnectionType),
            [False, True],
        )
        for cores, memory, tier, connection, reduced in combinations:
            snapshot = make_snapshot(
                cpu_cores=cores,
                device_memory_gb=memory,
                gpu_tier=tier,
                connection_type=connection,
                prefers_reduced_motion=reduced,
            )
            mode = decide(snapshot)
            assert mode in set(PerformanceMode)
            if is_lite(snapshot):
                assert mode == PerformanceMode.LITE
            elif is_full(snapshot):
                assert mode == PerformanceMode.FULL
            else:
                assert mode == PerformanceMode.BALANCED


class TestCssFallback:
    def test_low_gpu_uses_fallback(self):
        assert should_use_css_fallback(make_snapshot(gpu_tier=GPUTier.LOW))

    def test_reduced_motion_uses_fallback(self):
        assert should_use_css_fallback(make_snapshot(prefers_reduced_motion=True))

    def test_capable_device_does_not(self):
        assert not should_use_css_fallback(make_snapshot(gpu_tier=GPUTier.MEDIUM))
