"""Virtual key resolution: dotted key -> backend filter, field list and metric path.

A virtual key is a dotted name such as ``Status.Critical`` or
``AVBasesAgeIs1-3Days`` that does not map to a single backend field. Host keys
are resolved through a table of predicate builders; Server and License keys
need no predicate. Resolution is pure: it never talks to the backend.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from enum import IntEnum

from pydantic import BaseModel, ConfigDict

from ksc_collector.errors import UnknownSubkeyError
from ksc_collector.object_classes import (
    HOST_DISCOVERY_FIELDS,
    HOST_DISPLAY_NAME,
    HOST_GROUP_ID,
    HOST_ID,
    HOST_LAST_UPDATE,
    HOST_RTP_STATE,
    HOST_STATUS_ID,
    HOST_STATUS_MASK_PREFIX,
    LICENSE_FIELDS,
    SERVER_FIELDS,
    ObjectClass,
)
from ksc_collector.primitives import ksc_datetime_literal, utc_now

logger = logging.getLogger(__name__)


class VirtualKeySpec(BaseModel):
    """Resolved query description for one invocation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    predicate: str | None = None
    fields: tuple[str, ...] = ()
    field_override: str | None = None
    # Path handed to the metric resolver for Get/Sum.
    metric_path: tuple[str, ...] = ()


class RtpState(IntEnum):
    """Real-time protection states as reported in KLHST_WKS_RTP_STATE."""

    Unknown = 0
    Stopped = 1
    Suspended = 2
    Starting = 3
    Running = 4
    RunningMaxProtection = 5
    RunningMaxSpeed = 6
    RunningRecommended = 7
    RunningCustom = 8
    Failure = 9


HOST_STATUSES: dict[str, int | None] = {
    "OK": 0,
    "Critical": 1,
    "Warning": 2,
    "Any": None,
}

STATUS_BITS: dict[str, int] = {
    "NotRunningRTP": 1,
    "NotRunningAVApplication": 2,
    "TooMuchVirusesDetected": 3,
    "NotInstalledAVApplication": 5,
    "FullScanPerformedTooLongAgo": 6,
    "TooOldAVBases": 7,
    "AgentIsInactiveTooLong": 8,
}

_HOUR = timedelta(hours=1)
_DAY = timedelta(days=1)

# (lower age bound inclusive, upper age bound exclusive); None = unbounded
AV_BASES_AGE_BUCKETS: dict[str, tuple[timedelta | None, timedelta | None]] = {
    "AVBasesAgeLess1Hr": (None, _HOUR),
    "AVBasesAgeIs24Hrs": (_HOUR, _DAY),
    "AVBasesAgeIs1-3Days": (_DAY, 3 * _DAY),
    "AVBasesAgeIs3-7Days": (3 * _DAY, 7 * _DAY),
    "AVBasesAgeMoreThan7Days": (7 * _DAY, None),
}

UNASSIGNED_KEY = "Unassigned"


def split_key(key: str | None) -> tuple[str, ...]:
    """Split a dotted key into segments; empty or blank keys give no segments."""
    if not key or not key.strip():
        return ()
    return tuple(segment.strip() for segment in key.strip().split("."))


# ---------------------------------------------------------------------------
# Filter expression helpers (KSC search filter syntax)
# ---------------------------------------------------------------------------


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _cmp(field: str, op: str, value: str | int) -> str:
    rendered = str(value) if isinstance(value, int) else _quote(value)
    return f"({field} {op} {rendered})"


def _all_of(*terms: str) -> str:
    if len(terms) == 1:
        return terms[0]
    return "(&" + "".join(terms) + ")"


# ---------------------------------------------------------------------------
# Host predicate rules
# ---------------------------------------------------------------------------

# A rule receives (key segments, now) and returns (predicate, field override).
_HostRule = Callable[[Sequence[str], datetime], tuple[str, str | None]]

_HOST_RULES: dict[str, _HostRule] = {}


def _register_rule(*names: str) -> Callable[[_HostRule], _HostRule]:
    def decorator(fn: _HostRule) -> _HostRule:
        for name in names:
            _HOST_RULES[name] = fn
        return fn
    return decorator


def _sub_value(segments: Sequence[str]) -> str:
    if len(segments) < 2 or not segments[1]:
        raise UnknownSubkeyError(".".join(segments), f"Virtual key '{segments[0]}' requires a sub-value")
    return segments[1]


@_register_rule("Status")
def _status_rule(segments: Sequence[str], now: datetime) -> tuple[str, str | None]:
    name = _sub_value(segments)
    if name not in HOST_STATUSES:
        raise UnknownSubkeyError(
            ".".join(segments),
            f"Unknown host status '{name}' (expected one of: {', '.join(HOST_STATUSES)})",
        )
    code = HOST_STATUSES[name]
    return _cmp(HOST_STATUS_ID, "=", "*" if code is None else code), None


@_register_rule("RTPState")
def _rtp_state_rule(segments: Sequence[str], now: datetime) -> tuple[str, str | None]:
    name = _sub_value(segments)
    try:
        state = RtpState[name]
    except KeyError:
        raise UnknownSubkeyError(
            ".".join(segments),
            f"Unknown RTP state '{name}' (expected one of: {', '.join(s.name for s in RtpState)})",
        ) from None
    return _cmp(HOST_RTP_STATE, "=", int(state)), HOST_RTP_STATE


@_register_rule(*STATUS_BITS)
def _status_bit_rule(segments: Sequence[str], now: datetime) -> tuple[str, str | None]:
    bit = STATUS_BITS[segments[0]]
    return _cmp(f"{HOST_STATUS_MASK_PREFIX}{bit}", "<>", 0), None


@_register_rule(*AV_BASES_AGE_BUCKETS)
def _av_bases_age_rule(segments: Sequence[str], now: datetime) -> tuple[str, str | None]:
    min_age, max_age = AV_BASES_AGE_BUCKETS[segments[0]]
    terms = []
    # Younger than max_age: updated strictly after now - max_age.
    if max_age is not None:
        terms.append(_cmp_time(HOST_LAST_UPDATE, ">", now - max_age))
    # At least min_age old: updated at or before now - min_age.
    if min_age is not None:
        terms.append(_cmp_time(HOST_LAST_UPDATE, "<=", now - min_age))
    return _all_of(*terms), None


def _cmp_time(field: str, op: str, moment: datetime) -> str:
    return f"({field} {op} {ksc_datetime_literal(moment)})"


def host_virtual_keys() -> list[str]:
    """Names of every Host virtual key, ``Unassigned`` included."""
    return [UNASSIGNED_KEY, *_HOST_RULES]


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def _dedupe(names: Sequence[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for name in names:
        if name:
            seen.setdefault(name, None)
    return tuple(seen)


def _resolve_host(
    segments: Sequence[str],
    host_id: str | None,
    unassigned_group_id: int,
    now: datetime,
) -> VirtualKeySpec:
    first = segments[0] if segments else ""
    not_unassigned = _cmp(HOST_GROUP_ID, "<>", unassigned_group_id)

    if first == UNASSIGNED_KEY:
        return VirtualKeySpec(
            predicate=_cmp(HOST_GROUP_ID, "=", unassigned_group_id),
            fields=HOST_DISCOVERY_FIELDS,
        )

    rule = _HOST_RULES.get(first)
    if rule is not None:
        predicate, override = rule(segments, now)
        primary = override or HOST_ID
        return VirtualKeySpec(
            predicate=_all_of(predicate, not_unassigned),
            fields=_dedupe([primary, *HOST_DISCOVERY_FIELDS]),
            field_override=override,
            metric_path=(override,) if override else (),
        )

    # Plain field key (or no key): match one host by id, or every host.
    if host_id:
        predicate = _cmp(HOST_ID, "=", str(host_id))
    else:
        predicate = _cmp(HOST_DISPLAY_NAME, "=", "*")
    return VirtualKeySpec(
        predicate=_all_of(predicate, not_unassigned),
        fields=_dedupe([first, *HOST_DISCOVERY_FIELDS]),
        metric_path=tuple(segments),
    )


def resolve_virtual_key(
    object_class: ObjectClass,
    segments: Sequence[str],
    host_id: str | None = None,
    *,
    unassigned_group_id: int = 0,
    now: datetime | None = None,
) -> VirtualKeySpec:
    """
    Resolve *segments* for *object_class* into a VirtualKeySpec.

    *unassigned_group_id* is the backend id of the "unassigned devices" group,
    only consulted for Host. *now* anchors the AV bases age buckets and
    defaults to the current UTC time.

    Raises UnknownSubkeyError when a Host key that needs a sub-value
    (``Status``, ``RTPState``) is given none or an unknown one.
    """
    segments = tuple(segments)

    if object_class is ObjectClass.SERVER:
        spec = VirtualKeySpec(fields=SERVER_FIELDS, metric_path=segments)
    elif object_class is ObjectClass.LICENSE:
        spec = VirtualKeySpec(fields=LICENSE_FIELDS, metric_path=segments)
    else:
        spec = _resolve_host(segments, host_id, unassigned_group_id, now or utc_now())

    logger.debug("Resolved %s key %r -> predicate=%s fields=%s", object_class.value, ".".join(segments), spec.predicate, spec.fields)
    return spec
