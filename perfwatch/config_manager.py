"""
perfwatch - Configuration Management

Provides configuration management with:
- YAML-based configuration files
- Environment variable overrides (PERFWATCH_*)
- Environment profiles (development, production, testing)
- Validation that reports every problem at once
- Sensible defaults and fallbacks

Usage:
    config_manager = ConfigManager("config/perfwatch.yaml")
    config = config_manager.get_config()

    monitor = PerformanceMonitor(config.performance, platform=HostPlatform(config.capabilities))
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml

from .error_handling import ConfigurationError
from .performance_types import ConnectionType

logger = logging.getLogger(__name__)

# Older call sites and YAML files use the medical naming for the priority flag
FIELD_ALIASES = {
    "medical_content_priority": "critical_content_priority",
}


class EnvironmentType(Enum):
    """Environment types for configuration profiles"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


def _default_critical_patterns() -> List[str]:
    return ['/medical-search', '/calculators', '/news', 'medical', 'clinical', 'cardiology', 'obgyn']


def _default_rollups() -> Dict[str, str]:
    return {
        'newsLoadTime': 'medical_news_load',
        'calculatorResponseTime': 'calculator_response',
        'searchResultsTime': 'search_response',
        'imageLoadTime': 'image_load_time',
    }


@dataclass
class PerformanceConfig:
    """Performance Monitor configuration"""
    enabled: bool = True
    sample_rate: float = 0.1               # Fraction of sessions monitored (0-1)
    page_load_target: float = 2000.0       # ms
    api_response_target: float = 200.0     # ms
    critical_content_priority: bool = True
    reporting_endpoint: str = "http://127.0.0.1:8080/api/performance-metrics"
    buffer_size: int = 100
    batch_reporting_enabled: bool = True

    # Reporting
    report_interval_seconds: float = 30.0
    request_timeout_seconds: float = 10.0

    # Critical content detection and rollups
    critical_content_patterns: List[str] = field(default_factory=_default_critical_patterns)
    critical_content_rollups: Dict[str, str] = field(default_factory=_default_rollups)

    slow_resource_threshold_ms: float = 1000.0
    alert_history_size: int = 500

    def updated(self, **partial: Any) -> 'PerformanceConfig':
        """Return a validated copy with ``partial`` merged in"""
        known = {f.name for f in fields(self)}
        changes = {}
        for key, value in partial.items():
            key = FIELD_ALIASES.get(key, key)
            if key not in known:
                raise ConfigurationError(f"Unknown performance setting: {key}")
            changes[key] = value

        config = replace(self, **changes)
        errors = validate_performance_config(config)
        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")
        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CapabilityConfig:
    """Capability probe and persisted-state configuration"""
    storage_path: str = os.path.join("~", ".perfwatch", "state.json")
    # Signals a desktop host cannot observe; None leaves them undetected
    connection_type: Optional[str] = None
    connection_rtt_ms: float = 0.0
    connection_downlink_mbps: float = 0.0
    prefers_reduced_motion: bool = False
    user_agent: Optional[str] = None


@dataclass
class LoggingConfig:
    log_level: str = "INFO"
    log_dir: Optional[str] = None


@dataclass
class PerfwatchConfig:
    """Complete perfwatch configuration"""
    environment: EnvironmentType = EnvironmentType.DEVELOPMENT
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    capabilities: CapabilityConfig = field(default_factory=CapabilityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def validate_performance_config(config: PerformanceConfig) -> List[str]:
    """Collect validation errors for a performance configuration"""
    errors = []

    if not isinstance(config.sample_rate, (int, float)) or not 0 <= config.sample_rate <= 1:
        errors.append(f"sample_rate must be between 0 and 1, got {config.sample_rate!r}")

    if config.page_load_target <= 0:
        errors.append("page_load_target must be positive")

    if config.api_response_target <= 0:
        errors.append("api_response_target must be positive")

    if isinstance(config.buffer_size, bool) or not isinstance(config.buffer_size, int) or config.buffer_size <= 0:
        errors.append(f"buffer_size must be a positive integer, got {config.buffer_size!r}")

    if config.report_interval_seconds <= 0:
        errors.append("report_interval_seconds must be positive")

    if config.request_timeout_seconds <= 0:
        errors.append("request_timeout_seconds must be positive")

    if not config.reporting_endpoint:
        errors.append("reporting_endpoint is required")

    if config.alert_history_size <= 0:
        errors.append("alert_history_size must be positive")

    return errors


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on')


class ConfigManager:
    """
    Configuration management for perfwatch

    Features:
    - YAML-based configuration with environment overrides
    - Environment-specific overlay files (perfwatch.production.yaml)
    - Validation with all errors reported together
    """

    def __init__(self, config_path: Optional[str] = None, environment: Optional[EnvironmentType] = None):
        self.config_path = config_path or self._get_default_config_path()
        self.environment = environment or self._detect_environment()
        self.logger = logging.getLogger(__name__)

        self._config: Optional[PerfwatchConfig] = None

    def _get_default_config_path(self) -> str:
        return os.getenv('PERFWATCH_CONFIG', os.path.join('config', 'perfwatch.yaml'))

    def _detect_environment(self) -> EnvironmentType:
        env_name = os.getenv('PERFWATCH_ENV', 'development').lower()

        try:
            return EnvironmentType(env_name)
        except ValueError:
            logger.warning(f"Unknown environment '{env_name}', defaulting to development")
            return EnvironmentType.DEVELOPMENT

    def _load_yaml_config(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        if not os.path.exists(config_path):
            self.logger.debug(f"Configuration file not found: {config_path}")
            return {}

        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read {config_path}: {e}", original_exception=e)

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
        return config_data

    def _apply_environment_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment-specific overrides"""
        root, ext = os.path.splitext(self.config_path)
        env_config_path = f"{root}.{self.environment.value}{ext or '.yaml'}"
        if os.path.exists(env_config_path):
            env_config = self._load_yaml_config(env_config_path)
            config_data = self._deep_merge(config_data, env_config)

        env_overrides = self._get_environment_variable_overrides()
        if env_overrides:
            config_data = self._deep_merge(config_data, env_overrides)

        return config_data

    def _get_environment_variable_overrides(self) -> Dict[str, Any]:
        """Get configuration overrides from environment variables"""
        overrides: Dict[str, Any] = {}

        performance = {}
        if enabled := os.getenv('PERFWATCH_ENABLED'):
            performance['enabled'] = _parse_bool(enabled)
        if sample_rate := os.getenv('PERFWATCH_SAMPLE_RATE'):
            try:
                performance['sample_rate'] = float(sample_rate)
            except ValueError:
                raise ConfigurationError(f"PERFWATCH_SAMPLE_RATE is not a number: {sample_rate!r}")
        if endpoint := os.getenv('PERFWATCH_REPORTING_ENDPOINT'):
            performance['reporting_endpoint'] = endpoint
        if performance:
            overrides['performance'] = performance

        capabilities = {}
        if connection := os.getenv('PERFWATCH_CONNECTION_TYPE'):
            capabilities['connection_type'] = connection
        if reduced_motion := os.getenv('PERFWATCH_REDUCED_MOTION'):
            capabilities['prefers_reduced_motion'] = _parse_bool(reduced_motion)
        if storage_path := os.getenv('PERFWATCH_STORAGE_PATH'):
            capabilities['storage_path'] = storage_path
        if capabilities:
            overrides['capabilities'] = capabilities

        if log_level := os.getenv('LOG_LEVEL'):
            overrides['logging'] = {'log_level': log_level.upper()}

        return overrides

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _create_config_from_dict(self, config_data: Dict[str, Any]) -> PerfwatchConfig:
        """Create PerfwatchConfig from dictionary data"""
        try:
            performance_data = {
                FIELD_ALIASES.get(k, k): v for k, v in (config_data.get('performance') or {}).items()
            }
            return PerfwatchConfig(
                environment=self.environment,
                performance=PerformanceConfig(**performance_data),
                capabilities=CapabilityConfig(**(config_data.get('capabilities') or {})),
                logging=LoggingConfig(**(config_data.get('logging') or {})),
            )
        except TypeError as e:
            raise ConfigurationError(f"Failed to create configuration: {e}", original_exception=e)

    def _validate_config(self, config: PerfwatchConfig) -> None:
        """Validate configuration for completeness and correctness"""
        errors = validate_performance_config(config.performance)

        if config.capabilities.connection_type is not None:
            valid = {c.value for c in ConnectionType}
            if config.capabilities.connection_type.lower() not in valid:
                errors.append(f"Invalid connection_type: {config.capabilities.connection_type}")

        if config.logging.log_level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            errors.append(f"Invalid log_level: {config.logging.log_level}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def load_config(self) -> PerfwatchConfig:
        """Load and validate configuration"""
        self.logger.info(f"Loading configuration from {self.config_path}")

        config_data = self._load_yaml_config(self.config_path)
        config_data = self._apply_environment_overrides(config_data)

        config = self._create_config_from_dict(config_data)
        self._validate_config(config)

        self._config = config
        self.logger.info(f"Configuration loaded for {self.environment.value} environment")
        return config

    def get_config(self) -> PerfwatchConfig:
        """Get the current configuration, loading if necessary"""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(self) -> PerfwatchConfig:
        """Reload configuration from file"""
        self.logger.info("Reloading configuration...")
        self._config = None
        return self.load_config()

    def save_config(self, config: PerfwatchConfig) -> None:
        """Save configuration to file"""
        directory = os.path.dirname(self.config_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        config_dict = {
            'performance': asdict(config.performance),
            'capabilities': asdict(config.capabilities),
            'logging': asdict(config.logging),
        }

        with open(self.config_path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)

        self.logger.info(f"Configuration saved to {self.config_path}")


def create_config_template(output_path: str) -> None:
    """Write a configuration file populated with the defaults"""
    manager = ConfigManager(config_path=output_path, environment=EnvironmentType.DEVELOPMENT)
    manager.save_config(PerfwatchConfig())
