"""
Error taxonomy for the perfwatch telemetry engine

Every failure inside the collector or the capability classifier degrades to
"less telemetry" rather than surfacing to the end user. These exceptions exist
so each subsystem can raise something precise internally and have the owning
component decide whether to swallow, log, or propagate it.
"""

import time
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Structured error categories for precise handling"""
    PROBE = "probe"                  # Platform signal could not be read
    STORAGE = "storage"              # Persisted state unreadable or unwritable
    OBSERVER = "observer"            # Entry observer unsupported in this runtime
    REPORTING = "reporting"          # Report send failed
    CONFIGURATION = "configuration"  # Invalid configuration values


class PerfwatchError(Exception):
    """Base exception for perfwatch operations"""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        original_exception: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.category = category
        self.original_exception = original_exception
        self.details = details or {}
        self.timestamp = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": str(self),
            "category": self.category.value,
            "original": repr(self.original_exception) if self.original_exception else None,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class ProbeError(PerfwatchError):
    """A capability probe failed"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.PROBE, **kwargs)


class StorageError(PerfwatchError):
    """Persisted state could not be read or written"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.STORAGE, **kwargs)


class ObserverRegistrationError(PerfwatchError):
    """An entry observer could not be registered"""

    def __init__(self, message: str, entry_type: Optional[str] = None, **kwargs):
        super().__init__(message, ErrorCategory.OBSERVER, **kwargs)
        self.entry_type = entry_type


class ReportingError(PerfwatchError):
    """A report could not be delivered"""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        super().__init__(message, ErrorCategory.REPORTING, **kwargs)
        self.status = status


class ConfigurationError(PerfwatchError):
    """Configuration-related errors"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.CONFIGURATION, **kwargs)
