"""
Shared fixtures for perfwatch tests
"""

import random

import pytest

from perfwatch.config_manager import PerformanceConfig
from perfwatch.performance_monitor import PerformanceMonitor

from fakes import FakePlatform, RecordingTransport


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def config():
    """Every session sampled, periodic reporting off"""
    return PerformanceConfig(sample_rate=1.0, batch_reporting_enabled=False)


@pytest.fixture
def monitor(config, platform, transport):
    return PerformanceMonitor(config, platform=platform, transport=transport, rng=random.Random(7))
