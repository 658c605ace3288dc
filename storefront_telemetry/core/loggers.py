import contextvars
import inspect
import logging
import os
import sys
from enum import Enum
from typing import Dict, Optional, Sequence

import json_log_formatter
from opentelemetry import trace

# Keep in sync with the collector's log parsing rules
LOG_FORMAT: str = "%(asctime)s %(levelname)s [%(name)s] [%(filename)s:%(lineno)d] - %(message)s"

__all__: Sequence[str] = (
    # most common imports
    "make_logger",
    "logger_name",
    # supporting / less common
    "make_json_logger",
    "LOG_FORMAT",
    "CustomJSONFormatter",
    "silence_chatty_logger",
    # utils
    "LoggerTagKey",
    "LoggerTagManager",
)


class LoggerTagKey(str, Enum):
    SESSION_ID = "session_id"
    DEVICE_ID = "device_id"
    REQUEST_ID = "request_id"


class LoggerTagManager:
    _context_vars: Dict[LoggerTagKey, contextvars.ContextVar] = {}

    @classmethod
    def get(cls, key: LoggerTagKey) -> Optional[str]:
        """Get the value from the context variable."""
        ctx_var = cls._context_vars.get(key)
        if ctx_var is not None:
            return ctx_var.get()
        return None

    @classmethod
    def set(cls, key: LoggerTagKey, value: Optional[str]) -> None:
        """Set the value in the context variable."""
        if value is not None:
            ctx_var = cls._context_vars.get(key)
            if ctx_var is None:
                ctx_var = contextvars.ContextVar(f"ctx_var_{key.name.lower()}", default=None)
                cls._context_vars[key] = ctx_var
            ctx_var.set(value)


class CustomJSONFormatter(json_log_formatter.JSONFormatter):
    def json_record(self, message: str, extra: dict, record: logging.LogRecord) -> dict:
        extra = super().json_record(message, extra, record)
        extra["level"] = record.levelname
        extra["name"] = record.name
        extra["lineno"] = record.lineno
        extra["pathname"] = record.pathname

        # add additional logger tags
        for tag_key in LoggerTagKey:
            tag_value = LoggerTagManager.get(tag_key)
            if tag_value:
                extra[tag_key.value] = tag_value

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            extra["otel.trace_id"] = format(span_context.trace_id, "032x")
            extra["otel.span_id"] = format(span_context.span_id, "016x")

        service_override = os.getenv("OTEL_SERVICE_NAME")
        if service_override:
            extra["service.name"] = service_override

        return extra


def make_json_logger(name: str, log_level: int = logging.INFO) -> logging.Logger:
    """Create a JSON logger. This allows us to pass arbitrary key/value data in log messages.
    It also puts stack traces in a single log message instead of spreading them across multiple log messages.
    """
    if name is None or not isinstance(name, str) or len(name) == 0:
        raise ValueError("Name must be a non-empty string.")

    logger = logging.getLogger(name)
    if any(isinstance(handler, logging.StreamHandler) for handler in logger.handlers):
        # logger already initialized
        return logger

    stream_handler = logging.StreamHandler()
    in_kubernetes = os.getenv("KUBERNETES_SERVICE_HOST")
    if in_kubernetes:
        stream_handler.setFormatter(CustomJSONFormatter())
    else:
        # JSON is hard to read in a terminal, so fall back to the standard log format.
        stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger.addHandler(stream_handler)
    logger.setLevel(log_level)
    logger.propagate = False

    # Uncaught exceptions, including injected crashes, must reach the log before the process dies.
    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.error("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = handle_exception
    return logger


def make_logger(name: str, log_level: int = logging.INFO) -> logging.Logger:
    return make_json_logger(name, log_level)


def logger_name(*, fallback_name: Optional[str] = None) -> str:
    """Returns the __name__ from where the calling function is defined or its filename if it is "__main__".

    NOTE: If :param:`fallback_name` is provided and is not-None and non-empty, then, in the event that
          the logger name cannot be inferred from the calling __main__ module, this value will be used
          instead of raising a ValueError.
    """
    stack = inspect.stack()
    calling_frame = stack[1]
    calling_module = inspect.getmodule(calling_frame[0])
    if calling_module is None:
        raise ValueError(
            f"Cannot obtain module from calling function. Tried to use calling frame {calling_frame}"
        )
    name = calling_module.__name__
    if name == "__main__":
        if hasattr(calling_module, "__file__"):
            return _filename_wo_ext(calling_module.__file__)  # type: ignore
        if fallback_name is not None:
            fallback_name = fallback_name.strip()
            if len(fallback_name) > 0:
                return fallback_name
        raise ValueError("Cannot determine calling module's name from its __file__ attribute!")
    return name


def silence_chatty_logger(*logger_names, quieter=logging.FATAL) -> None:
    """Sets loggers to the `quieter` level, which defaults to the highest (FATAL).

    Accepts a variable number of logger names.
    """
    for name in logger_names:
        log = logging.getLogger(name)
        log.setLevel(quieter)


def _filename_wo_ext(filename: str) -> str:
    """Gets the filename, without the file extension, if present."""
    return os.path.split(filename)[1].split(".", 1)[0]
