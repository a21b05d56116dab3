#!/usr/bin/env python3
"""
Shared Types and Data Classes
Shared types to avoid circular imports between the capability classifier,
the collector and the reporter
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class GPUTier(Enum):
    """Coarse graphics capability"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


class ConnectionType(Enum):
    """Effective network connection type"""
    FOUR_G = "4g"
    THREE_G = "3g"
    TWO_G = "2g"
    SLOW_2G = "slow-2g"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'ConnectionType':
        """Map a raw effective-type signal onto the enum, defaulting to unknown"""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class PerformanceMode(Enum):
    """Performance tier used to gate optional UI features"""
    FULL = "full"
    BALANCED = "balanced"
    LITE = "lite"


class MetricType(Enum):
    """Types of performance metrics"""
    PAGE_LOAD = "page_load"
    API_RESPONSE = "api_response"
    USER_INTERACTION = "user_interaction"
    RESOURCE_TIMING = "resource_timing"
    VITAL = "vital"


class MetricUnit(Enum):
    MS = "ms"
    BYTES = "bytes"
    COUNT = "count"
    RATIO = "ratio"


class VitalName(Enum):
    """Web Vitals tracked by the collector"""
    CLS = "CLS"
    FID = "FID"
    FCP = "FCP"
    LCP = "LCP"
    TTFB = "TTFB"
    INP = "INP"


class VitalRating(Enum):
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs-improvement"
    POOR = "poor"


class ErrorType(Enum):
    """Error sources; the wire values are shared with the web client"""
    SCRIPT = "javascript"
    NETWORK = "network"
    RESOURCE = "resource"
    DOMAIN_SPECIFIC = "domain_specific"


class AlertSeverity(Enum):
    """Alert severity levels"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AlertType(Enum):
    PAGE_LOAD_SLOW = "page_load_slow"
    API_RESPONSE_SLOW = "api_response_slow"
    WEB_VITAL_POOR = "web_vital_poor"
    CRITICAL_ERROR = "critical_error"


def now_ms() -> float:
    """Wall clock in epoch milliseconds"""
    return time.time() * 1000


@dataclass(frozen=True)
class CapabilitySnapshot:
    """One-time classification of the running device"""
    device_id: str
    cpu_cores: int
    device_memory_gb: float
    gpu_tier: GPUTier
    connection_type: ConnectionType
    prefers_reduced_motion: bool
    supports_graphics_context: bool

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the persisted field names"""
        return {
            "deviceId": self.device_id,
            "cpuCores": self.cpu_cores,
            "deviceMemory": self.device_memory_gb,
            "gpuTier": self.gpu_tier.value,
            "connectionType": self.connection_type.value,
            "prefersReducedMotion": self.prefers_reduced_motion,
            "supportsWebGL": self.supports_graphics_context,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CapabilitySnapshot':
        """
        Rebuild a snapshot from its persisted form.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` for malformed input.
        """
        if not isinstance(data, dict):
            raise TypeError(f"expected a mapping, got {type(data).__name__}")

        device_id = data["deviceId"]
        cpu_cores = data["cpuCores"]
        device_memory = data["deviceMemory"]
        reduced_motion = data["prefersReducedMotion"]
        supports_context = data["supportsWebGL"]

        if not isinstance(device_id, str) or not device_id:
            raise ValueError("deviceId must be a non-empty string")
        if isinstance(cpu_cores, bool) or not isinstance(cpu_cores, int) or cpu_cores <= 0:
            raise ValueError(f"invalid cpuCores: {cpu_cores!r}")
        if isinstance(device_memory, bool) or not isinstance(device_memory, (int, float)) or device_memory <= 0:
            raise ValueError(f"invalid deviceMemory: {device_memory!r}")
        if not isinstance(reduced_motion, bool) or not isinstance(supports_context, bool):
            raise ValueError("boolean capability flags expected")

        return cls(
            device_id=device_id,
            cpu_cores=cpu_cores,
            device_memory_gb=device_memory,
            gpu_tier=GPUTier(data["gpuTier"]),
            connection_type=ConnectionType(data["connectionType"]),
            prefers_reduced_motion=reduced_motion,
            supports_graphics_context=supports_context,
        )


@dataclass
class Metric:
    """Individual performance metric measurement"""
    id: str
    type: MetricType
    name: str
    value: float
    unit: MetricUnit = MetricUnit.MS
    timestamp: float = field(default_factory=now_ms)
    url: str = ""
    user_agent: str = ""
    connection_type: str = ConnectionType.UNKNOWN.value
    is_critical_content: bool = False
    domain_context: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "value": self.value,
            "unit": self.unit.value,
            "timestamp": self.timestamp,
            "url": self.url,
            "userAgent": self.user_agent,
            "connectionType": self.connection_type,
            "isCriticalContent": self.is_critical_content,
        }
        if self.domain_context is not None:
            data["domainContext"] = self.domain_context
        if self.metadata is not None:
            data["metadata"] = self.metadata
        return data


@dataclass
class WebVital:
    """A Web Vital observation; cumulative vitals are amended in place"""
    name: VitalName
    value: float
    rating: VitalRating
    delta: float
    id: str
    entries: List[Any] = field(default_factory=list)
    is_critical_content: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name.value,
            "value": self.value,
            "rating": self.rating.value,
            "delta": self.delta,
            "id": self.id,
            "entries": [_entry_to_dict(e) for e in self.entries],
            "isCriticalContent": self.is_critical_content,
        }


@dataclass
class ErrorRecord:
    """A captured runtime error"""
    type: ErrorType
    message: str
    source: str
    stack: Optional[str] = None
    timestamp: float = field(default_factory=now_ms)
    url: str = ""
    is_critical_content: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "source": self.source,
            "stack": self.stack,
            "timestamp": self.timestamp,
            "url": self.url,
            "isCriticalContent": self.is_critical_content,
        }


@dataclass
class PerformanceAlert:
    """Performance alert information"""
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    metric_name: str
    value: float
    threshold: Optional[float] = None
    is_critical_content: bool = False
    timestamp: float = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Convert alert to dictionary"""
        return {
            "type": self.alert_type.value,
            "severity": self.severity.value,
            "message": self.message,
            "metricName": self.metric_name,
            "value": self.value,
            "threshold": self.threshold,
            "criticalContent": self.is_critical_content,
            "timestamp": self.timestamp,
        }


@dataclass
class NetworkInfo:
    effective_type: str = ConnectionType.UNKNOWN.value
    rtt: float = 0.0
    downlink: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"effectiveType": self.effective_type, "rtt": self.rtt, "downlink": self.downlink}


@dataclass
class DeviceInfo:
    memory: Optional[float] = None
    cores: Optional[int] = None
    is_mobile: bool = False
    is_tablet: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory": self.memory,
            "cores": self.cores,
            "isMobile": self.is_mobile,
            "isTablet": self.is_tablet,
        }


@dataclass
class Report:
    """Transmission unit built from the current buffers; never persisted"""
    session_id: str
    timestamp: float
    page_load_metrics: List[Metric]
    api_metrics: List[Metric]
    user_interaction_metrics: List[Metric]
    resource_timings: List[Metric]
    vital_metrics: List[Metric]
    web_vitals: List[WebVital]
    errors: List[ErrorRecord]
    critical_content_performance: Dict[str, float]
    network_info: NetworkInfo
    device_info: DeviceInfo
    summary: Dict[str, float] = field(default_factory=dict)
    error_analysis: Dict[str, Any] = field(default_factory=dict)
    alerts: List[PerformanceAlert] = field(default_factory=list)

    @property
    def metric_count(self) -> int:
        return (len(self.page_load_metrics) + len(self.api_metrics) + len(self.user_interaction_metrics)
                + len(self.resource_timings) + len(self.vital_metrics))

    def counts(self) -> Dict[str, int]:
        return {
            "metrics": self.metric_count,
            "vitals": len(self.web_vitals),
            "errors": len(self.errors),
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON body posted to the reporting endpoint; NaN and infinities become null"""
        return json_safe({
            "sessionId": self.session_id,
            "timestamp": self.timestamp,
            "pageLoadMetrics": [m.to_dict() for m in self.page_load_metrics],
            "apiMetrics": [m.to_dict() for m in self.api_metrics],
            "userInteractionMetrics": [m.to_dict() for m in self.user_interaction_metrics],
            "resourceTimings": [m.to_dict() for m in self.resource_timings],
            "vitalMetrics": [m.to_dict() for m in self.vital_metrics],
            "webVitals": [v.to_dict() for v in self.web_vitals],
            "errors": [e.to_dict() for e in self.errors],
            "criticalContentPerformance": dict(self.critical_content_performance),
            "networkInfo": self.network_info.to_dict(),
            "deviceInfo": self.device_info.to_dict(),
            "summary": dict(self.summary),
            "errorAnalysis": dict(self.error_analysis),
            "alerts": [a.to_dict() for a in self.alerts],
        })


def _entry_to_dict(entry: Any) -> Any:
    if hasattr(entry, "to_dict"):
        return entry.to_dict()
    if isinstance(entry, (dict, str, int, float, bool)) or entry is None:
        return entry
    return repr(entry)


def json_safe(value: Any) -> Any:
    """Replace non-finite floats with None so the value encodes as strict JSON"""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {key: json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(item) for item in value]
    return value
