"""Post-query narrowing of a record set by its identity field."""

from collections.abc import Iterable
from typing import Any

from ksc_collector.property_bag import PropertyBag


def _identity_text(value: Any) -> str | None:
    if value is None or isinstance(value, (PropertyBag, list)):
        return None
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def filter_by_id(records: Iterable[PropertyBag], identity_field: str | None, record_id: Any = None) -> list[PropertyBag]:
    """
    Keep records whose *identity_field* equals *record_id*.

    An empty or missing *record_id* keeps every record. Numbers and strings
    compare by their text form, so ``7`` matches ``"7"``. Records without the
    identity field (or classes without one) are dropped, never an error.
    """
    records = list(records)
    if record_id is None or str(record_id).strip() == "":
        return records
    if not identity_field:
        return []

    wanted = _identity_text(record_id)
    return [r for r in records if r is not None and _identity_text(r.get(identity_field)) == wanted]
