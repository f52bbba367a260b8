"""Structured logging setup and helpers."""

import inspect
import logging
import sys
import time
from functools import wraps
from typing import Any, Callable, List, Optional, TypeVar, cast

import structlog
from structlog.types import EventDict, Processor

F = TypeVar("F", bound=Callable[..., Any])

PACKAGE_PREFIX = "meme_factory"

# Third-party loggers that are noisy at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "apscheduler", "PIL")


def add_caller_info(_: logging.Logger, __: str, event_dict: EventDict) -> EventDict:
    """Attach the first package frame outside this module as module/function/line."""
    frame = sys._getframe()
    while frame:
        module = frame.f_globals.get("__name__", "")
        if module.startswith(PACKAGE_PREFIX) and module != __name__:
            event_dict["module"] = module
            event_dict["function"] = frame.f_code.co_name
            event_dict["line"] = frame.f_lineno
            break
        frame = frame.f_back
    return event_dict


def _shared_processors() -> List[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_caller_info,
    ]


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Route structlog and stdlib logging through one renderer.

    Loggers obtained with ``logging.getLogger`` and with :func:`get_logger`
    end up in the same handlers and share request context bound with
    :func:`bind_request_context`.

    Args:
        level: Root log level name
        json_format: Render JSON lines instead of the console format
        log_file: Optional file that receives a copy of every record
    """
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=_shared_processors()
        + [
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(**values: Any) -> None:
    """Bind key/values to every log line emitted by the current request."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def log_performance(func: F) -> F:
    """
    Log the duration of each call to ``func``.

    Works for both coroutine functions and plain functions. Failures are
    logged at WARNING with the error and re-raised.
    """
    logger = get_logger(func.__module__)
    name = func.__qualname__

    def _report(start: float, error: Optional[BaseException] = None) -> None:
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        if error is None:
            logger.debug("call_completed", function=name, duration_ms=duration_ms)
        else:
            logger.warning("call_failed", function=name, duration_ms=duration_ms, error=str(error))

    if inspect.iscoroutinefunction(func):

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _report(start, e)
                raise
            _report(start)
            return result

        return cast(F, async_wrapper)

    @wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            _report(start, e)
            raise
        _report(start)
        return result

    return cast(F, sync_wrapper)
