"""
Device Capability Probe

Reads raw platform signals once (CPU cores, device memory, effective network
type, reduced-motion preference, graphics support) and produces an immutable
``CapabilitySnapshot``. The platform is abstracted so a browser bridge, the
local machine (``HostPlatform``), or a test double can supply the signals.

Usage:
    probe = CapabilityProbe(HostPlatform(), store)
    snapshot = probe.detect()
"""

import logging
import platform as _platform
import random
import string
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, FrozenSet, Optional

import GPUtil
import psutil

from .error_handling import ProbeError
from .gpu_tier import RendererPatterns, detect_gpu_tier
from .performance_types import CapabilitySnapshot, ConnectionType

if TYPE_CHECKING:
    from .capability_store import KeyValueStore
    from .config_manager import CapabilityConfig

logger = logging.getLogger(__name__)

DEVICE_ID_KEY = "deviceId"

DEFAULT_CPU_CORES = 2
DEFAULT_DEVICE_MEMORY_GB = 2.0

# navigator.deviceMemory is quantized to these buckets
DEVICE_MEMORY_BUCKETS = (0.25, 0.5, 1.0, 2.0, 4.0, 8.0)

# Entry types a fully instrumented runtime can deliver
ALL_ENTRY_TYPES = frozenset({
    "navigation", "resource", "longtask", "paint",
    "largest-contentful-paint", "layout-shift", "first-input",
})


@dataclass
class ConnectionInfo:
    """Network Information API equivalent"""
    effective_type: Optional[str] = None
    rtt: float = 0.0
    downlink: float = 0.0


class GraphicsContext(ABC):
    """An offscreen graphics context created for probing"""

    @abstractmethod
    def debug_renderer_info(self) -> Optional[str]:
        """Unmasked renderer string, or None if the debug extension is unavailable"""

    def release(self) -> None:
        pass


class Platform(ABC):
    """Source of raw platform signals"""

    @abstractmethod
    def hardware_concurrency(self) -> Optional[int]:
        ...

    @abstractmethod
    def device_memory(self) -> Optional[float]:
        ...

    @abstractmethod
    def connection(self) -> Optional[ConnectionInfo]:
        ...

    @abstractmethod
    def prefers_reduced_motion(self) -> bool:
        ...

    @abstractmethod
    def create_graphics_context(self) -> Optional[GraphicsContext]:
        ...

    def user_agent(self) -> str:
        return ""

    def current_url(self) -> str:
        return ""

    def supported_entry_types(self) -> FrozenSet[str]:
        return ALL_ENTRY_TYPES


class _NamedRendererContext(GraphicsContext):
    def __init__(self, renderer: Optional[str]):
        self._renderer = renderer

    def debug_renderer_info(self) -> Optional[str]:
        return self._renderer


def bucket_device_memory(total_bytes: float) -> float:
    """Round physical memory down to the nearest device-memory bucket"""
    gigabytes = total_bytes / (1024 ** 3)
    bucket = DEVICE_MEMORY_BUCKETS[0]
    for candidate in DEVICE_MEMORY_BUCKETS:
        if gigabytes >= candidate:
            bucket = candidate
    return bucket


class HostPlatform(Platform):
    """Platform signals for the machine this process runs on"""

    def __init__(self, config: Optional['CapabilityConfig'] = None, url: str = ""):
        self.config = config
        self.url = url

    def hardware_concurrency(self) -> Optional[int]:
        return psutil.cpu_count(logical=True)

    def device_memory(self) -> Optional[float]:
        return bucket_device_memory(psutil.virtual_memory().total)

    def connection(self) -> Optional[ConnectionInfo]:
        if self.config is None or self.config.connection_type is None:
            return None
        return ConnectionInfo(
            effective_type=self.config.connection_type,
            rtt=self.config.connection_rtt_ms,
            downlink=self.config.connection_downlink_mbps,
        )

    def prefers_reduced_motion(self) -> bool:
        return bool(self.config and self.config.prefers_reduced_motion)

    def create_graphics_context(self) -> Optional[GraphicsContext]:
        # GPUtil only enumerates NVIDIA devices; an empty list means the
        # renderer is unknown, not that the host has no graphics stack
        try:
            gpus = GPUtil.getGPUs()
        except Exception as e:
            raise ProbeError(f"GPU enumeration failed: {e}", original_exception=e)
        if not gpus:
            return _NamedRendererContext(None)
        return _NamedRendererContext(gpus[0].name)

    def user_agent(self) -> str:
        if self.config and self.config.user_agent:
            return self.config.user_agent
        return f"perfwatch Python/{_platform.python_version()} ({_platform.system()} {_platform.machine()})"

    def current_url(self) -> str:
        return self.url

    def supported_entry_types(self) -> FrozenSet[str]:
        # A desktop process has no paint pipeline; navigation/resource/longtask
        # entries are pushed by the host application.
        return frozenset({"navigation", "resource", "longtask"})


def generate_device_id(clock: Callable[[], float] = time.time, rng: Optional[random.Random] = None) -> str:
    """Synthesize a device identifier: timestamp plus a random suffix"""
    rng = rng or random.Random()
    suffix = "".join(rng.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"device-{int(clock() * 1000)}-{suffix}"


class CapabilityProbe:
    """Reads platform signals once and builds a CapabilitySnapshot"""

    def __init__(
        self,
        platform: Platform,
        store: 'KeyValueStore',
        patterns: Optional[RendererPatterns] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None
    ):
        self.platform = platform
        self.store = store
        self.patterns = patterns
        self.clock = clock
        self.rng = rng or random.Random()

    def detect(self) -> CapabilitySnapshot:
        """Detect device capabilities; never raises for probe failures"""
        gpu_tier, supports_context = detect_gpu_tier(self.platform, self.patterns)

        snapshot = CapabilitySnapshot(
            device_id=self.get_or_create_device_id(),
            cpu_cores=self._read_cpu_cores(),
            device_memory_gb=self._read_device_memory(),
            gpu_tier=gpu_tier,
            connection_type=self._read_connection_type(),
            prefers_reduced_motion=self._read_reduced_motion(),
            supports_graphics_context=supports_context,
        )
        logger.debug(f"Detected capabilities: {snapshot.to_dict()}")
        return snapshot

    def get_or_create_device_id(self) -> str:
        """Read the persisted device id, creating and persisting one if absent"""
        existing = self.store.get_item(DEVICE_ID_KEY)
        if existing:
            return existing

        device_id = generate_device_id(self.clock, self.rng)
        self.store.set_item(DEVICE_ID_KEY, device_id)
        logger.info(f"🆔 Generated device id {device_id}")
        return device_id

    def _read_cpu_cores(self) -> int:
        try:
            cores = self.platform.hardware_concurrency()
        except Exception as e:
            logger.debug(f"hardware concurrency unavailable: {e}")
            return DEFAULT_CPU_CORES
        if not isinstance(cores, int) or isinstance(cores, bool) or cores <= 0:
            return DEFAULT_CPU_CORES
        return cores

    def _read_device_memory(self) -> float:
        try:
            memory = self.platform.device_memory()
        except Exception as e:
            logger.debug(f"device memory unavailable: {e}")
            return DEFAULT_DEVICE_MEMORY_GB
        if not isinstance(memory, (int, float)) or isinstance(memory, bool) or memory <= 0:
            return DEFAULT_DEVICE_MEMORY_GB
        return float(memory)

    def _read_connection_type(self) -> ConnectionType:
        try:
            connection = self.platform.connection()
        except Exception as e:
            logger.debug(f"connection info unavailable: {e}")
            return ConnectionType.UNKNOWN
        if connection is None:
            return ConnectionType.UNKNOWN
        return ConnectionType.parse(connection.effective_type)

    def _read_reduced_motion(self) -> bool:
        try:
            return bool(self.platform.prefers_reduced_motion())
        except Exception as e:
            logger.debug(f"reduced motion query failed: {e}")
            return False
