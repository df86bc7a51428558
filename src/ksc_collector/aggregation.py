"""Count and Sum over a filtered record set."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from enum import Enum

from ksc_collector.errors import AbsentMetricError
from ksc_collector.metric_path import resolve_metric
from ksc_collector.primitives import epoch_seconds
from ksc_collector.property_bag import BOOL, FLOAT, INT, STRING, TIMESTAMP, PropertyBag, value_kind

logger = logging.getLogger(__name__)


class SumPolicy(str, Enum):
    """What Sum does with a record whose metric is absent or not numeric."""

    ZERO = "zero"  # counts as 0
    SKIP = "skip"  # record is left out
    STRICT = "strict"  # AbsentMetricError


def count_records(records: Iterable[PropertyBag | None]) -> int:
    return sum(1 for r in records if r is not None)


def numeric_value(value: object) -> int | float | None:
    """Numeric reading of a metric value, or None when it has none."""
    kind = value_kind(value)
    if kind == BOOL:
        return int(bool(value))
    if kind in (INT, FLOAT):
        return value  # type: ignore[return-value]
    if kind == TIMESTAMP:
        return epoch_seconds(value)  # type: ignore[arg-type]
    if kind == STRING:
        text = str(value).strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return None
    return None


def sum_metric(
    records: Iterable[PropertyBag | None],
    segments: Sequence[str],
    policy: SumPolicy = SumPolicy.ZERO,
) -> int | float:
    """
    Sum the metric at *segments* across *records*.

    Under the default ZERO policy an absent or non-numeric metric adds 0.
    An integral total is returned as an int. Empty input is 0.
    """
    total: int | float = 0
    for index, record in enumerate(records):
        if record is None:
            continue
        number = numeric_value(resolve_metric(record, segments))
        if number is None:
            if policy is SumPolicy.STRICT:
                raise AbsentMetricError(f"Metric '{'.'.join(segments)}' is absent or not numeric in record {index}")
            if policy is SumPolicy.SKIP:
                logger.debug("Skipping record %d: metric %s not numeric", index, ".".join(segments))
                continue
            number = 0
        total += number

    if isinstance(total, float) and total.is_integer() and abs(total) < 2**53:
        return int(total)
    return total
