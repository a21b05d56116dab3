"""
Capability Store

Persists the capability snapshot and the chosen performance mode in a durable
key/value store and provides idempotent initialization: load if present and
well-formed, otherwise detect, decide, and persist.

Persisted layout:
    deviceId            -> opaque device identifier
    deviceCapabilities  -> JSON snapshot + performanceMode
    performanceMode     -> bare mode string, kept in sync for cheap reads
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .device_capabilities import DEVICE_ID_KEY, CapabilityProbe
from .error_handling import StorageError
from .mode_decision import decide
from .performance_types import CapabilitySnapshot, PerformanceMode

logger = logging.getLogger(__name__)

CAPABILITIES_KEY = "deviceCapabilities"
MODE_KEY = "performanceMode"


class KeyValueStore(ABC):
    """Durable client key/value storage (localStorage semantics)"""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class InMemoryStore(KeyValueStore):
    """Process-local store, used by tests and ephemeral sessions"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()


class JsonFileStore(KeyValueStore):
    """
    Key/value store backed by a single JSON document.

    Single writer, last write wins. An unreadable or corrupted file is treated
    as empty and is rewritten on the next ``set_item``.
    """

    def __init__(self, path: str):
        self.path = Path(os.path.expanduser(path))
        self._items: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring state file {self.path}: top level is not an object")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".state-", suffix=".json")
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._items, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}", original_exception=e)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)
        self._write()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._write()

    def clear(self) -> None:
        self._items.clear()
        self._write()


@dataclass(frozen=True)
class DeviceCapabilities:
    """A capability snapshot with its active performance mode"""
    snapshot: CapabilitySnapshot
    performance_mode: PerformanceMode

    @property
    def device_id(self) -> str:
        return self.snapshot.device_id

    def to_dict(self) -> Dict[str, Any]:
        data = self.snapshot.to_dict()
        data["performanceMode"] = self.performance_mode.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeviceCapabilities':
        return cls(
            snapshot=CapabilitySnapshot.from_dict(data),
            performance_mode=PerformanceMode(data["performanceMode"]),
        )


class CapabilityStore:
    """Owns the capability snapshot and performance mode for the process lifetime"""

    def __init__(
        self,
        store: KeyValueStore,
        probe: CapabilityProbe,
        decide_mode: Callable[[CapabilitySnapshot], PerformanceMode] = decide
    ):
        self.store = store
        self.probe = probe
        self.decide_mode = decide_mode

    def initialize(self) -> DeviceCapabilities:
        """Return cached capabilities, detecting and persisting them on a miss"""
        cached = self.load()
        if cached is not None:
            logger.debug(f"Loaded cached capabilities for {cached.device_id}")
            return cached

        return self.redetect()

    def redetect(self) -> DeviceCapabilities:
        """Run a fresh detection and persist it; the device id is preserved"""
        snapshot = self.probe.detect()
        capabilities = DeviceCapabilities(snapshot, self.decide_mode(snapshot))
        self.save(capabilities)
        logger.info(f"📱 Detected performance mode: {capabilities.performance_mode.value}")
        return capabilities

    def save(self, capabilities: DeviceCapabilities) -> DeviceCapabilities:
        """Persist capabilities under all three keys"""
        self.store.set_item(DEVICE_ID_KEY, capabilities.device_id)
        self.store.set_item(CAPABILITIES_KEY, json.dumps(capabilities.to_dict()))
        self.store.set_item(MODE_KEY, capabilities.performance_mode.value)
        return capabilities

    def load(self) -> Optional[DeviceCapabilities]:
        """Load persisted capabilities; malformed data yields None"""
        raw = self.store.get_item(CAPABILITIES_KEY)
        if raw is None:
            return None

        try:
            return DeviceCapabilities.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding malformed stored capabilities: {e}")
            return None

    def override(self, mode: PerformanceMode) -> DeviceCapabilities:
        """Force a performance mode without re-detecting capabilities"""
        current = self.initialize()
        if current.performance_mode == mode:
            return current

        updated = replace(current, performance_mode=mode)
        self.save(updated)
        logger.info(f"🎛️ Performance mode overridden: {current.performance_mode.value} → {mode.value}")
        return updated
