"""Ordered, read-only record type shared by every stage of the collector."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from datetime import datetime
from typing import Any

# Semantic kinds reported by value_kind(); the formatter and the aggregator
# dispatch on these rather than on concrete Python types.
ABSENT = "absent"
BOOL = "bool"
INT = "int"
FLOAT = "float"
STRING = "string"
TIMESTAMP = "timestamp"
STRUCT = "struct"
LIST = "list"


def value_kind(value: Any) -> str:
    """Return the semantic kind of a field value."""
    if value is None:
        return ABSENT
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return BOOL
    if isinstance(value, int):
        return INT
    if isinstance(value, float):
        return FLOAT
    if isinstance(value, datetime):
        return TIMESTAMP
    if isinstance(value, Mapping):
        return STRUCT
    if isinstance(value, (list, tuple)):
        return LIST
    return STRING


class PropertyBag(Mapping[str, Any]):
    """Immutable ordered mapping of field name to typed value.

    Nested mappings are wrapped as PropertyBags on construction so path
    resolution only ever deals with one container type.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, Any] | None = None, **extra: Any) -> None:
        data: dict[str, Any] = {}
        for source in (fields or {}, extra):
            for key, value in source.items():
                data[str(key)] = _wrap(value)
        self._fields = data

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"PropertyBag({self._fields!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PropertyBag):
            return list(self._fields.items()) == list(other._fields.items())
        if isinstance(other, Mapping):
            return dict(self._fields) == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def augment(self, **derived: Any) -> PropertyBag:
        """Return a copy with *derived* fields appended.

        Existing fields are never replaced; a clash raises ValueError.
        """
        clash = sorted(set(derived) & set(self._fields))
        if clash:
            raise ValueError(f"Derived fields would overwrite existing fields: {', '.join(clash)}")
        merged = dict(self._fields)
        merged.update(derived)
        return PropertyBag(merged)

    def project(self, names: list[str] | tuple[str, ...]) -> PropertyBag:
        """Return a bag holding only *names* that are present, in *names* order."""
        return PropertyBag({name: self._fields[name] for name in names if name in self._fields})

    def to_dict(self) -> dict[str, Any]:
        """Plain nested dict/list copy, suitable for JSON or YAML dumping."""
        return {key: _unwrap(value) for key, value in self._fields.items()}


def _wrap(value: Any) -> Any:
    if isinstance(value, PropertyBag):
        return value
    if isinstance(value, Mapping):
        return PropertyBag(value)
    if isinstance(value, (list, tuple)):
        return [_wrap(v) for v in value]
    return value


def _unwrap(value: Any) -> Any:
    if isinstance(value, PropertyBag):
        return value.to_dict()
    if isinstance(value, list):
        return [_unwrap(v) for v in value]
    return value
