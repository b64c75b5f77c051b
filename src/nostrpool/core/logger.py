"""
Structured logging with key=value and JSON output.

[Logger][nostrpool.core.logger.Logger] wraps a stdlib ``logging.Logger`` and
turns keyword arguments into structured fields. Sessions bind their relay
URL once with [bind()][nostrpool.core.logger.Logger.bind] so every line they
emit carries ``relay=<url>`` without repeating it at each call site.

[StructuredFormatter][nostrpool.core.logger.StructuredFormatter] renders the
fields as ``level name message key=value ...``. Installed on the root handler
by [setup_logging()][nostrpool.core.logger.setup_logging], it also formats
the plain ``logging.getLogger(__name__)`` lines of the models and utils
layers.

Examples:
    ```python
    logger = Logger("pool")
    logger.info("relay_added", url="wss://relay.damus.io")
    # info pool relay_added url=wss://relay.damus.io

    session_logger = logger.bind(relay="wss://nos.lol")
    session_logger.warning("connect_failed", attempt=3, error="timeout")
    # warning pool connect_failed relay=wss://nos.lol attempt=3 error=timeout
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values longer than ``max_value_length`` are truncated. Values that are
    empty or contain whitespace, ``=`` or quotes are escaped and wrapped in
    double quotes so the line stays machine-splittable.

    Args:
        kwargs: Key-value pairs to format.
        max_value_length: Maximum characters per value, or None for no limit.
        prefix: String prepended to a non-empty result.

    Returns:
        For example ``' url=wss://a.io error="connection refused"'``, or an
        empty string when ``kwargs`` is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for k, v in kwargs.items():
        s = _truncate(str(v), max_value_length)
        if not s or " " in s or "=" in s or '"' in s or "'" in s:
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{k}="{escaped}"')
        else:
            parts.append(f"{k}={s}")

    return prefix + " ".join(parts)


def _truncate(s: str, max_value_length: int | None) -> str:
    if max_value_length and len(s) > max_value_length:
        return s[:max_value_length] + f"...<truncated {len(s) - max_value_length} chars>"
    return s


class StructuredFormatter(logging.Formatter):
    """Render every record as ``level name message key=value ...``.

    Fields come from the ``structured_kv`` extra attached by
    [Logger][nostrpool.core.logger.Logger]. Records without it (plain
    ``logging.getLogger()`` calls) are emitted with the same prefix.
    """

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            base += format_kv_pairs(extra)
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


def setup_logging(level: str = "INFO") -> None:
    """Install a [StructuredFormatter][nostrpool.core.logger.StructuredFormatter] on the root logger."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper()))


class Logger:
    """Structured logger that appends keyword arguments as fields.

    Mirrors the stdlib level methods with an extra ``**kwargs`` parameter.
    Fields bound with [bind()][nostrpool.core.logger.Logger.bind] come first
    on every line; per-call fields override bound ones with the same name.
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize a structured logger.

        Args:
            name: Passed to ``logging.getLogger(name)``.
            json_output: Emit one JSON object per line instead of key=value pairs.
            max_value_length: Truncation limit per value. Defaults to 1000.
            context: Fields prepended to every line.
        """
        if max_value_length is None:
            max_value_length = self._DEFAULT_MAX_VALUE_LENGTH
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = max_value_length
        self._context: dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **context: Any) -> Logger:
        """Return a logger for the same name with additional bound fields."""
        return Logger(
            self._logger.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **context},
        )

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _fields(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        if not self._context:
            return kwargs
        return {**self._context, **kwargs}

    def _format_json(self, msg: str, level: str, kwargs: dict[str, Any]) -> str:
        record = {
            "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
            "level": level,
            "logger": self._logger.name,
            "message": msg,
            **self._fields(kwargs),
        }
        return json.dumps(record, default=str)

    def _make_extra(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        fields = self._fields(kwargs)
        if not fields:
            return {}
        truncated = {
            k: _truncate(str(v), self._max_value_length) if not isinstance(v, int | float) else v
            for k, v in fields.items()
        }
        return {"structured_kv": truncated}

    def _log(
        self,
        level: int,
        name: str,
        msg: str,
        kwargs: dict[str, Any],
        *,
        exc_info: bool = False,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if self._json_output:
            self._logger.log(level, self._format_json(msg, name, kwargs), exc_info=exc_info)
        else:
            self._logger.log(level, msg, extra=self._make_extra(kwargs), exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log a DEBUG level message with optional key=value pairs."""
        self._log(logging.DEBUG, "debug", msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log an INFO level message with optional key=value pairs."""
        self._log(logging.INFO, "info", msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log a WARNING level message with optional key=value pairs."""
        self._log(logging.WARNING, "warning", msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        """Log an ERROR level message with optional key=value pairs."""
        self._log(logging.ERROR, "error", msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        """Log a CRITICAL level message with optional key=value pairs."""
        self._log(logging.CRITICAL, "critical", msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log an ERROR level message with the current traceback."""
        self._log(logging.ERROR, "error", msg, kwargs, exc_info=True)
