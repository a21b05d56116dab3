"""
Device profile: the read-mostly capability view handed to the UI layer
"""

import logging
from typing import Optional, Union

from .capability_store import CapabilityStore, DeviceCapabilities, InMemoryStore, JsonFileStore, KeyValueStore
from .config_manager import CapabilityConfig
from .device_capabilities import CapabilityProbe, HostPlatform, Platform
from .feature_flags import Feature, is_feature_enabled
from .mode_decision import should_use_css_fallback
from .performance_types import CapabilitySnapshot, PerformanceMode
from .structured_logging import get_telemetry_logger

logger = logging.getLogger(__name__)


class DeviceProfile:
    """Capabilities and performance mode, resolved once and cached"""

    def __init__(self, capability_store: CapabilityStore):
        self.capability_store = capability_store
        self._capabilities: Optional[DeviceCapabilities] = None
        self._telemetry = get_telemetry_logger(__name__)

    def initialize(self) -> DeviceCapabilities:
        if self._capabilities is None:
            cached = self.capability_store.load()
            if cached is not None:
                self._capabilities = cached
                source = "cache"
            else:
                self._capabilities = self.capability_store.redetect()
                source = "detection"
            self._telemetry.log_capabilities(
                self._capabilities.snapshot.to_dict(), self._capabilities.performance_mode.value, source
            )
        return self._capabilities

    def get_capabilities(self) -> CapabilitySnapshot:
        return self.initialize().snapshot

    def get_mode(self) -> PerformanceMode:
        return self.initialize().performance_mode

    def set_mode(self, mode: Union[PerformanceMode, str]) -> PerformanceMode:
        """Explicit user override; persisted alongside the snapshot"""
        if not isinstance(mode, PerformanceMode):
            mode = PerformanceMode(mode)
        self.initialize()
        self._capabilities = self.capability_store.override(mode)
        return self._capabilities.performance_mode

    def refresh(self) -> PerformanceMode:
        """Re-run detection, replacing any override"""
        self._capabilities = self.capability_store.redetect()
        return self._capabilities.performance_mode

    def is_feature_enabled(self, feature: Union[Feature, str]) -> bool:
        if not isinstance(feature, Feature):
            feature = Feature(feature)
        return is_feature_enabled(feature, self.get_mode())

    def should_use_css_fallback(self) -> bool:
        return should_use_css_fallback(self.get_capabilities())


def create_device_profile(
    platform: Optional[Platform] = None,
    store: Optional[KeyValueStore] = None,
    config: Optional[CapabilityConfig] = None
) -> DeviceProfile:
    """Create a device profile wired to the host machine and a JSON state file"""
    config = config or CapabilityConfig()
    platform = platform or HostPlatform(config)
    if store is None:
        store = JsonFileStore(config.storage_path) if config.storage_path else InMemoryStore()
    probe = CapabilityProbe(platform, store)
    return DeviceProfile(CapabilityStore(store, probe))
