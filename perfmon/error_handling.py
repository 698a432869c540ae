"""
Error Handling for the Performance Monitoring Subsystem
Categorised exceptions and call-site isolation helpers

Nothing in this package is allowed to crash the host: every call into an
external collaborator (collector, sink, subscriber) goes through one of the
helpers below so that failures are logged and contained.
"""

import logging
import time
from contextvars import ContextVar
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

# Context variables for tick tracking in log records
tick_id_var: ContextVar[str] = ContextVar('tick_id', default='')
operation_var: ContextVar[str] = ContextVar('operation', default='')


class ErrorCategory(Enum):
    """Structured error categories for precise handling"""
    COLLECTOR = "collector"            # collect() failed, skip domain for this tick
    INITIALIZATION = "initialization"  # collector initialize() failed
    CLEANUP = "cleanup"                # collector cleanup() failed
    SINK = "sink"                      # renderer/store write failed
    SUBSCRIBER = "subscriber"          # subscriber callback raised
    CONFIGURATION = "configuration"    # invalid configuration


@dataclass
class ErrorContext:
    """Context attached to a performance monitoring error"""
    component: str
    operation: str
    timestamp: float
    tick_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class PerformanceMonitorError(Exception):
    """Base exception for performance monitoring operations"""
    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.category = category
        self.context = context
        self.original_exception = original_exception
        self.timestamp = time.time()

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the error for structured logging"""
        return {
            "message": str(self),
            "category": self.category.value,
            "component": self.context.component if self.context else None,
            "operation": self.context.operation if self.context else None,
            "original_exception": repr(self.original_exception) if self.original_exception else None,
            "timestamp": self.timestamp
        }


class CollectorError(PerformanceMonitorError):
    """Raised by a collector that cannot produce its fragment"""
    def __init__(self, collector_name: str, message: str,
                 original_exception: Optional[Exception] = None):
        context = ErrorContext(
            component=collector_name,
            operation="collect",
            timestamp=time.time(),
            tick_id=tick_id_var.get() or None
        )
        super().__init__(
            f"Collector '{collector_name}' failed: {message}",
            ErrorCategory.COLLECTOR,
            context=context,
            original_exception=original_exception
        )
        self.collector_name = collector_name


class CollectorTimeoutError(CollectorError):
    """Raised when a collector exceeds its per-tick time budget"""
    def __init__(self, collector_name: str, timeout_ms: float):
        super().__init__(collector_name, f"timed out after {timeout_ms:.0f}ms")
        self.timeout_ms = timeout_ms


class SinkError(PerformanceMonitorError):
    """Raised when applying settings to an external sink fails"""
    def __init__(self, sink_name: str, message: str,
                 original_exception: Optional[Exception] = None):
        context = ErrorContext(component=sink_name, operation="apply", timestamp=time.time())
        super().__init__(message, ErrorCategory.SINK, context=context,
                         original_exception=original_exception)
        self.sink_name = sink_name


class ConfigurationError(PerformanceMonitorError):
    """Configuration-related errors"""
    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(message, ErrorCategory.CONFIGURATION,
                         original_exception=original_exception)


def _log_failure(log: logging.Logger, level: int, operation: str,
                 category: Optional[ErrorCategory], error: Exception) -> None:
    structured_data = {
        "operation": operation,
        "category": category.value if category else None,
        "error": repr(error)
    }
    log.log(level, f"❌ {operation} failed: {error}", exc_info=level >= logging.ERROR,
            extra={"structured_data": structured_data})


def safe_call(
    operation: str,
    func: Callable[..., Any],
    *args: Any,
    logger: Optional[logging.Logger] = None,
    level: int = logging.ERROR,
    category: Optional[ErrorCategory] = None,
    **kwargs: Any
) -> Tuple[bool, Any]:
    """
    Invoke an external callable, logging and containing any exception.

    Args:
        category: Tagged onto the failure record so handlers can route on it

    Returns:
        (succeeded, result) where result is None on failure
    """
    log = logger or logging.getLogger(__name__)
    token = operation_var.set(operation)
    try:
        return True, func(*args, **kwargs)
    except Exception as e:
        _log_failure(log, level, operation, category, e)
        return False, None
    finally:
        operation_var.reset(token)


async def safe_await(
    operation: str,
    func: Callable[..., Any],
    *args: Any,
    logger: Optional[logging.Logger] = None,
    level: int = logging.ERROR,
    category: Optional[ErrorCategory] = None,
    **kwargs: Any
) -> Tuple[bool, Any]:
    """Async counterpart of safe_call for coroutine functions"""
    log = logger or logging.getLogger(__name__)
    token = operation_var.set(operation)
    try:
        return True, await func(*args, **kwargs)
    except Exception as e:
        _log_failure(log, level, operation, category, e)
        return False, None
    finally:
        operation_var.reset(token)
