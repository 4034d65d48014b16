"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module so every ACL decision and
store mutation is emitted as an event name followed by structured fields,
either as human-readable key=value pairs (default) or as one JSON object per
line for log aggregators.

The ``StructuredFormatter`` reads the ``structured_kv`` extra attached by
[Logger][relayguard.core.logger.Logger] and appends it to the message. When
installed on the root handler (the CLI does this), plain
``logging.getLogger()`` output from the models layer gets the same
``level name message`` prefix.

Examples:
    ```python
    from relayguard.core.logger import Logger

    logger = Logger("store")
    logger.info("pubkey_banned", pubkey="ab" * 32, reason="spam")
    # Output: info store pubkey_banned pubkey=abab... reason=spam

    audit = logger.bind(caller="cd" * 32)
    audit.warning("api_call_rejected", method="banpubkey")
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


def _truncate(value: Any, max_value_length: int | None) -> str:
    s = str(value)
    if max_value_length and len(s) > max_value_length:
        return s[:max_value_length] + f"...<truncated {len(s) - max_value_length} chars>"
    return s


def format_kv_pairs(
    fields: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values containing whitespace, equals signs, or quotes are escaped and
    wrapped in double quotes; empty values are rendered as ``key=""``.

    Args:
        fields: Key-value pairs to format.
        max_value_length: Maximum characters per value before truncation.
            Pass None to disable truncation.
        prefix: String prepended to the output (default: single space).

    Returns:
        Formatted string, e.g. ``' pubkey=ab12 reason="spam bot"'``, or an
        empty string if ``fields`` is empty.
    """
    if not fields:
        return ""

    parts = []
    for key, value in fields.items():
        s = _truncate(value, max_value_length)
        if not s or any(c in s for c in " =\"'"):
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{key}="{escaped}"')
        else:
            parts.append(f"{key}={s}")
    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Formats log records as ``level logger message key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        fields: dict[str, Any] = getattr(record, "structured_kv", {})
        if fields:
            line += format_kv_pairs(fields)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class Logger:
    """Structured logger that appends keyword arguments as fields.

    Mirrors the standard logging API (``debug`` ... ``exception``) with an
    added ``**fields`` parameter. Fields passed to
    [bind()][relayguard.core.logger.Logger.bind] are merged into every
    record emitted by the returned child logger.

    Examples:
        ```python
        logger = Logger("policy")
        logger.info("event_rejected", pubkey="ab" * 32, reason="not_allowed")
        ```
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
            name: Logger name, maps to ``logging.getLogger(name)``.
            json_output: Emit JSON objects instead of key=value pairs.
            max_value_length: Truncation limit for individual values.
                Defaults to 1000.
            context: Fields attached to every record.
        """
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = (
            self._DEFAULT_MAX_VALUE_LENGTH if max_value_length is None else max_value_length
        )
        self._context = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **fields: Any) -> Logger:
        """Return a child logger that always includes ``fields``."""
        return Logger(
            self._logger.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **fields},
        )

    def _emit(self, level: int, msg: str, fields: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        merged = {**self._context, **fields}
        if self._json_output:
            record = {
                "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
                "level": logging.getLevelName(level).lower(),
                "logger": self._logger.name,
                "message": msg,
                **{k: _truncate(v, self._max_value_length) for k, v in merged.items()},
            }
            self._logger.log(level, json.dumps(record, default=str), exc_info=exc_info)
            return
        extra = (
            {"structured_kv": {k: _truncate(v, self._max_value_length) for k, v in merged.items()}}
            if merged
            else {}
        )
        self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, msg, fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._emit(logging.INFO, msg, fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._emit(logging.WARNING, msg, fields)

    def error(self, msg: str, **fields: Any) -> None:
        self._emit(logging.ERROR, msg, fields)

    def critical(self, msg: str, **fields: Any) -> None:
        self._emit(logging.CRITICAL, msg, fields)

    def exception(self, msg: str, **fields: Any) -> None:
        """Log at ERROR level with the active exception's traceback."""
        self._emit(logging.ERROR, msg, fields, exc_info=True)
