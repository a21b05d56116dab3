"""
perfwatch - adaptive client telemetry and device tiering

Two cooperating subsystems:
- Device capability classifier: probes the device once, derives a
  full / balanced / lite performance mode and persists it
- Performance monitor: collects page-load, API, resource and Web Vital
  metrics for a sampled session, rates them, raises alerts and ships
  batched reports to a collection endpoint
"""

__version__ = "0.1.0"

from .performance_types import (
    GPUTier, ConnectionType, PerformanceMode, MetricType, MetricUnit, VitalName,
    VitalRating, ErrorType, AlertSeverity, AlertType, CapabilitySnapshot, Metric,
    WebVital, ErrorRecord, PerformanceAlert, NetworkInfo, DeviceInfo, Report
)
from .error_handling import (
    ErrorCategory, PerfwatchError, ProbeError, StorageError,
    ObserverRegistrationError, ReportingError, ConfigurationError
)
from .config_manager import (
    PerformanceConfig, CapabilityConfig, LoggingConfig, PerfwatchConfig,
    ConfigManager, EnvironmentType, create_config_template
)
from .structured_logging import configure_logging, get_telemetry_logger
from .gpu_tier import RendererPatterns, classify_renderer, detect_gpu_tier
from .device_capabilities import (
    Platform, HostPlatform, GraphicsContext, ConnectionInfo, CapabilityProbe
)
from .mode_decision import decide, should_use_css_fallback
from .capability_store import (
    KeyValueStore, InMemoryStore, JsonFileStore, CapabilityStore, DeviceCapabilities
)
from .feature_flags import Feature, FEATURE_MATRIX, is_feature_enabled, enabled_features
from .device_profile import DeviceProfile, create_device_profile
from .rating import rate_vital, AlertEngine, VITAL_THRESHOLDS
from .aggregation import MetricAggregate, aggregate_metrics, percentile, performance_score
from .observers import (
    EntryChannel, NavigationTiming, ResourceTiming, LongTaskEntry, PaintEntry,
    LargestContentfulPaintEntry, LayoutShiftEntry, FirstInputEntry
)
from .metrics_collector import MetricCollector
from .reporter import Reporter, ReportTransport, HttpReportTransport
from .performance_monitor import PerformanceMonitor, create_performance_monitor

__all__ = [
    # Types
    "GPUTier", "ConnectionType", "PerformanceMode", "MetricType", "MetricUnit",
    "VitalName", "VitalRating", "ErrorType", "AlertSeverity", "AlertType",
    "CapabilitySnapshot", "Metric", "WebVital", "ErrorRecord", "PerformanceAlert",
    "NetworkInfo", "DeviceInfo", "Report",
    # Errors
    "ErrorCategory", "PerfwatchError", "ProbeError", "StorageError",
    "ObserverRegistrationError", "ReportingError", "ConfigurationError",
    # Configuration and logging
    "PerformanceConfig", "CapabilityConfig", "LoggingConfig", "PerfwatchConfig",
    "ConfigManager", "EnvironmentType", "create_config_template",
    "configure_logging", "get_telemetry_logger",
    # Capability classifier
    "RendererPatterns", "classify_renderer", "detect_gpu_tier",
    "Platform", "HostPlatform", "GraphicsContext", "ConnectionInfo", "CapabilityProbe",
    "decide", "should_use_css_fallback",
    "KeyValueStore", "InMemoryStore", "JsonFileStore", "CapabilityStore", "DeviceCapabilities",
    "Feature", "FEATURE_MATRIX", "is_feature_enabled", "enabled_features",
    "DeviceProfile", "create_device_profile",
    # Performance monitor
    "rate_vital", "AlertEngine", "VITAL_THRESHOLDS",
    "MetricAggregate", "aggregate_metrics", "percentile", "performance_score",
    "EntryChannel", "NavigationTiming", "ResourceTiming", "LongTaskEntry", "PaintEntry",
    "LargestContentfulPaintEntry", "LayoutShiftEntry", "FirstInputEntry",
    "MetricCollector", "Reporter", "ReportTransport", "HttpReportTransport",
    "PerformanceMonitor", "create_performance_monitor",
]
