"""
Structured Logging for perfwatch
JSON-lines records with telemetry context, plus a readable console format
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": record.created,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add structured data if present
        if hasattr(record, 'structured_data'):
            log_data.update(record.structured_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for better readability"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'      # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']

        timestamp = time.strftime('%H:%M:%S', time.localtime(record.created))

        context_info = ""
        if hasattr(record, 'structured_data'):
            data = record.structured_data

            if 'session_id' in data:
                context_info += f" [{str(data['session_id'])[-8:]}]"

            if 'event' in data:
                context_info += f" {data['event']}"

            if 'value' in data and isinstance(data['value'], (int, float)):
                context_info += f" ({data['value']:.1f})"

            if 'severity' in data:
                context_info += f" [{data['severity']}]"

        return f"{color}{timestamp}{reset} {record.getMessage()}{context_info}"


class TelemetryEventFilter(logging.Filter):
    """Only pass records that carry a telemetry event"""

    def __init__(self, *events: str):
        super().__init__()
        self.events = set(events)

    def filter(self, record: logging.LogRecord) -> bool:
        if hasattr(record, 'structured_data'):
            event = record.structured_data.get('event')
            return not self.events or event in self.events
        return False


class TelemetryLogger:
    """Thin wrapper that attaches telemetry context to log records"""

    def __init__(self, name: str, session_id: Optional[str] = None):
        self.name = name
        self.session_id = session_id
        self.logger = logging.getLogger(name)

    def _emit(self, level: int, message: str, event: str, data: Dict[str, Any]):
        structured = {"event": event}
        if self.session_id:
            structured["session_id"] = self.session_id
        structured.update(data)
        self.logger.log(level, message, extra={"structured_data": structured})

    def log_capabilities(self, capabilities: Dict[str, Any], mode: str, source: str):
        """Log the capability decision and where it came from"""
        self._emit(
            logging.INFO,
            f"📱 Performance mode {mode} ({source})",
            "capabilities_resolved",
            {"mode": mode, "source": source, "capabilities": capabilities},
        )

    def log_alert(self, alert_type: str, severity: str, message: str, value: float, critical: bool):
        """Log a performance alert"""
        level = logging.WARNING if severity == "high" else logging.INFO
        prefix = "🚨" if critical else "⚠️"
        self._emit(
            level,
            f"{prefix} {message}",
            "performance_alert",
            {"alert_type": alert_type, "severity": severity, "value": value, "critical_content": critical},
        )

    def log_report_sent(self, counts: Dict[str, int], status: Optional[int]):
        """Log a delivered report"""
        self._emit(
            logging.INFO,
            "📤 Metrics reported",
            "report_sent",
            {"counts": counts, "status": status},
        )

    def log_report_failed(self, counts: Dict[str, int], error: Exception):
        """Log a dropped report"""
        self._emit(
            logging.WARNING,
            f"Failed to report metrics: {error}",
            "report_failed",
            {"counts": counts, "error": str(error), "error_type": type(error).__name__},
        )


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    name: str = "perfwatch"
) -> logging.Logger:
    """
    Configure the package logger.

    Console output uses the colored formatter. When ``log_dir`` is given, a
    JSON-lines file and a separate telemetry-events file are written there.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ColoredConsoleFormatter())
    logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        formatter = StructuredFormatter()

        file_handler = logging.FileHandler(log_path / f'{name}.jsonl')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        events_handler = logging.FileHandler(log_path / f'{name}_events.jsonl')
        events_handler.setFormatter(formatter)
        events_handler.addFilter(TelemetryEventFilter())
        logger.addHandler(events_handler)

    return logger


def get_telemetry_logger(name: str, session_id: Optional[str] = None) -> TelemetryLogger:
    """Create a telemetry logger bound to an optional session"""
    return TelemetryLogger(name, session_id)
