"""Walk a dotted metric path across a record and its nested fields."""

from collections.abc import Mapping, Sequence
from typing import Any


def resolve_metric(record: Any, segments: Sequence[str]) -> Any:
    """
    Resolve *segments* left to right starting at *record*.

    Each segment is looked up as a field of the current value when it is a
    mapping (PropertyBag or plain dict), or as a list index when the current
    value is a list and the segment is numeric. A miss at any step returns
    None; an empty path returns *record* itself. The record is never modified.
    """
    current: Any = record
    for segment in segments:
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(segment)
        elif isinstance(current, list) and segment.lstrip("-").isdigit():
            index = int(segment)
            current = current[index] if -len(current) <= index < len(current) else None
        else:
            return None
    return current
