"""
Performance mode decision

Maps a capability snapshot to a performance mode. Rules are evaluated in
order and the first match wins: any single weak signal forces ``lite``,
``full`` needs every signal to be strong, and everything else is
``balanced``. A reduced-motion user on a high-end device still gets ``lite``.
"""

from .performance_types import CapabilitySnapshot, ConnectionType, GPUTier, PerformanceMode

SLOW_CONNECTIONS = frozenset({ConnectionType.TWO_G, ConnectionType.SLOW_2G})
FULL_CONNECTIONS = frozenset({ConnectionType.FOUR_G, ConnectionType.UNKNOWN})


def is_lite(snapshot: CapabilitySnapshot) -> bool:
    return (
        snapshot.cpu_cores <= 2
        or snapshot.device_memory_gb < 2
        or snapshot.connection_type in SLOW_CONNECTIONS
        or snapshot.gpu_tier == GPUTier.LOW
        or snapshot.prefers_reduced_motion
    )


def is_full(snapshot: CapabilitySnapshot) -> bool:
    return (
        snapshot.cpu_cores >= 4
        and snapshot.device_memory_gb >= 4
        and snapshot.gpu_tier == GPUTier.HIGH
        and snapshot.connection_type in FULL_CONNECTIONS
    )


def decide(snapshot: CapabilitySnapshot) -> PerformanceMode:
    """Pick the performance mode for a snapshot"""
    if is_lite(snapshot):
        return PerformanceMode.LITE
    if is_full(snapshot):
        return PerformanceMode.FULL
    return PerformanceMode.BALANCED


def should_use_css_fallback(snapshot: CapabilitySnapshot) -> bool:
    """Whether GPU-driven effects should fall back to plain CSS transitions"""
    return snapshot.gpu_tier == GPUTier.LOW or snapshot.prefers_reduced_motion
