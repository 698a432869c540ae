"""
Structured Logging for the Performance Monitoring Subsystem
JSON-lines output for tooling, coloured console output for humans
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .error_handling import operation_var, tick_id_var

PERFORMANCE_EVENTS = frozenset({
    'alert_triggered',
    'alert_resolved',
    'quality_adapted',
    'collector_failed',
    'tick_completed',
})


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

        tick_id = tick_id_var.get()
        if tick_id:
            log_data["tick_id"] = tick_id
        operation = operation_var.get()
        if operation:
            log_data["operation"] = operation

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
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']
        timestamp = time.strftime('%H:%M:%S', time.localtime(record.created))

        context_info = ""
        if hasattr(record, 'structured_data'):
            data = record.structured_data
            if 'event' in data:
                context_info += f" [{data['event']}]"
            if 'profile' in data:
                context_info += f" profile={data['profile']}"
            if 'rule_id' in data:
                context_info += f" rule={data['rule_id']}"

        message = f"{color}{timestamp}{reset} {record.getMessage()}{context_info}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class PerformanceEventFilter(logging.Filter):
    """Only pass records that carry a performance event"""

    def filter(self, record: logging.LogRecord) -> bool:
        if hasattr(record, 'structured_data'):
            return record.structured_data.get('event') in PERFORMANCE_EVENTS
        return False


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    json_output: bool = False,
    logger_name: str = "perfmon"
) -> logging.Logger:
    """
    Configure the package logger.

    Console output is coloured unless json_output is set. When log_file is
    given, JSON lines are appended to it and performance events are mirrored
    into a sibling ``*_events.jsonl`` file.
    """
    logger = logging.getLogger(logger_name)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(StructuredFormatter() if json_output else ColoredConsoleFormatter())
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

        events_handler = logging.FileHandler(log_path.with_name(f"{log_path.stem}_events.jsonl"))
        events_handler.setFormatter(StructuredFormatter())
        events_handler.addFilter(PerformanceEventFilter())
        logger.addHandler(events_handler)

    return logger


def log_performance_event(
    logger: logging.Logger,
    event: str,
    message: str,
    level: int = logging.INFO,
    **data: Any
) -> None:
    """Log a performance event with structured payload"""
    structured: Dict[str, Any] = {'event': event, 'timestamp': time.time()}
    structured.update(data)
    logger.log(level, message, extra={"structured_data": structured})
