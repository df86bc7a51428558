"""Zabbix low-level discovery (LLD) document encoder.

The layout is written by hand so macro order always follows the requested
property order and the compact form is byte-stable.
"""

from collections.abc import Iterable, Sequence

from ksc_collector.formatting import escape, format_value
from ksc_collector.property_bag import PropertyBag


def lld_macro(name: str) -> str:
    """``name`` -> ``"{#name}"`` (JSON-quoted)."""
    return '"{#' + escape(name) + '}"'


def _encode_record(record: PropertyBag, property_names: Sequence[str], pretty: bool) -> str:
    colon = ": " if pretty else ":"
    comma = ", " if pretty else ","
    pairs = []
    for name in property_names:
        value = record.get(name)
        text = '""' if value is None else format_value(value, json_compatible=True)
        pairs.append(lld_macro(name) + colon + text)
    return "{" + comma.join(pairs) + "}"


def encode_discovery(
    records: Iterable[PropertyBag | None],
    property_names: Sequence[str],
    pretty: bool = False,
) -> str:
    """
    Serialise *records* into ``{"data":[{"{#NAME}":VALUE,...},...]}``.

    None records are skipped. Absent properties render as ``""``. With
    *pretty*, the document is split over lines with one record per line and a
    space after every ``:`` and ``,``.
    """
    objects = [_encode_record(r, property_names, pretty) for r in records if r is not None]

    if not pretty:
        return '{"data":[' + ",".join(objects) + "]}"

    if not objects:
        return '{\n "data": [\n ]\n}'
    body = ",\n".join("  " + obj for obj in objects)
    return '{\n "data": [\n' + body + "\n ]\n}"
