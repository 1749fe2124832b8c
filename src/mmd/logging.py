"""Logging for mermaid-serve.

All output goes through loguru. Request handling code wraps units of work in
a LogSpan, which emits one structured line per span with its timing and
attributes:

    with LogSpan(span="render.exec", dest=str(dest)) as s:
        ...
        s.add(returncode=0)
"""

from __future__ import annotations

import sys
import time
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from types import TracebackType

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a stderr sink at the given level.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR)
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT, enqueue=False)


def _format_value(value: Any) -> str:
    text = str(value)
    if " " in text or not text:
        return repr(text)
    return text


class LogSpan:
    """A timed logging span with attributes.

    Emits at INFO on success and WARNING when an error was recorded, either
    through ``add(error=...)`` or by an exception escaping the block. The
    exception is never suppressed.
    """

    def __init__(self, span: str, **attrs: Any) -> None:
        """Initialize a log span.

        Args:
            span: Span name (e.g., "dispatch.request")
            **attrs: Initial attributes to log
        """
        self.span = span
        self.attrs: dict[str, Any] = dict(attrs)
        self.start_time = time.perf_counter()

    def add(self, key: str | None = None, value: Any = None, **attrs: Any) -> LogSpan:
        """Add attributes to the span.

        Args:
            key: Attribute name (optional if using kwargs)
            value: Attribute value (required if key is provided)
            **attrs: Bulk attribute additions

        Returns:
            Self for method chaining
        """
        if key is not None:
            self.attrs[key] = value
        self.attrs.update(attrs)
        return self

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.start_time) * 1000, 2)

    def __enter__(self) -> LogSpan:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is not None and "error" not in self.attrs:
            self.attrs["error"] = f"{type(exc).__name__}: {exc}"
        self._emit()

    def _emit(self) -> None:
        fields = " ".join(f"{k}={_format_value(v)}" for k, v in self.attrs.items())
        message = f"{self.span} elapsed_ms={self.elapsed_ms}"
        if fields:
            message = f"{message} {fields}"
        level = "WARNING" if "error" in self.attrs else "INFO"
        logger.log(level, message)
