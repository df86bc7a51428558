"""Render resolved values as Zabbix-compatible text."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import Any

from ksc_collector.primitives import epoch_seconds
from ksc_collector.property_bag import (
    ABSENT,
    BOOL,
    LIST,
    STRUCT,
    TIMESTAMP,
    PropertyBag,
    value_kind,
)

logger = logging.getLogger(__name__)

# Control characters that would break a JSON string literal.
_JSON_CONTROL_RE = re.compile(r"[\x00-\x1f]")
_JSON_SHORT_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def _escape_control(match: re.Match[str]) -> str:
    char = match.group(0)
    return _JSON_SHORT_ESCAPES.get(char) or f"\\u{ord(char):04x}"


def escape(text: str) -> str:
    """Prefix every backslash and double quote with a backslash (single pass)."""
    return text.replace("\\", "\\\\").replace('"', '\\"')


def timestamp_seconds(value: datetime) -> int:
    """Seconds since 1970-01-01T00:00:00Z, rounded to the nearest second."""
    return int(round(epoch_seconds(value)))


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return timestamp_seconds(value)
    if isinstance(value, PropertyBag):
        return value.to_dict()
    return str(value)


def _compact(value: Any) -> str:
    if isinstance(value, PropertyBag):
        value = value.to_dict()
    elif isinstance(value, list):
        value = [v.to_dict() if isinstance(v, PropertyBag) else v for v in value]
    return json.dumps(value, default=_json_default, separators=(",", ":"), ensure_ascii=False)


def _scalar_text(value: Any) -> str:
    kind = value_kind(value)
    if kind == ABSENT:
        return ""
    if kind == BOOL:
        return "1" if value else "0"
    if kind == TIMESTAMP:
        return str(timestamp_seconds(value))
    if kind in (STRUCT, LIST):
        return _compact(value)
    return str(value)


def _dump(value: Any) -> str:
    """Verbose ``label : value`` listing used for struct values outside JSON mode."""
    if isinstance(value, list):
        return "\n\n".join(_dump(item) if isinstance(item, PropertyBag) else _scalar_text(item) for item in value)

    if not value:
        return ""
    width = max(len(label) for label in value)
    return "\n".join(f"{label.ljust(width)} : {_scalar_text(item)}" for label, item in value.items())


def format_value(
    value: Any,
    *,
    error_code: str | None = "",
    no_escape: bool = False,
    json_compatible: bool = False,
) -> str:
    """
    Normalise *value* into the text Zabbix receives.

    - absent (None) -> *error_code*, or "" when none is set
    - bool -> "0"/"1"; timestamp -> epoch seconds; neither is ever quoted
    - struct/list -> multi-line dump, or compact JSON text in JSON mode
    - anything else -> its string form, quoted in JSON mode

    Backslashes and double quotes are escaped once unless *no_escape*.
    """
    kind = value_kind(value)

    if kind == ABSENT:
        return error_code or ""

    if kind == BOOL:
        return "1" if value else "0"
    if kind == TIMESTAMP:
        try:
            return str(timestamp_seconds(value))
        except (OverflowError, ValueError):
            logger.debug("Timestamp %r out of range; treating as absent", value)
            return error_code or ""

    try:
        if kind in (STRUCT, LIST) and not json_compatible:
            text = _dump(value)
        else:
            text = _scalar_text(value)
    except (TypeError, ValueError) as exc:
        logger.debug("Could not render %r: %s", value, exc)
        return error_code or ""

    if not no_escape:
        text = escape(text)
        if json_compatible:
            text = _JSON_CONTROL_RE.sub(_escape_control, text)

    if json_compatible:
        return f'"{text}"'
    return text
