"""One collection pass: resolve, query, filter, post-process, render."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from ksc_collector.aggregation import SumPolicy, count_records, sum_metric
from ksc_collector.datasource.base import DataSource
from ksc_collector.errors import UnknownSubkeyError
from ksc_collector.filtering import filter_by_id
from ksc_collector.formatting import format_value
from ksc_collector.lld import encode_discovery
from ksc_collector.metric_path import resolve_metric
from ksc_collector.object_classes import DISCOVERY_FIELDS, IDENTITY_FIELDS, ObjectClass, post_process
from ksc_collector.primitives import utc_now
from ksc_collector.property_bag import PropertyBag
from ksc_collector.virtual_keys import resolve_virtual_key, split_key

logger = logging.getLogger(__name__)


class Action(str, Enum):
    DISCOVERY = "Discovery"
    GET = "Get"
    COUNT = "Count"
    SUM = "Sum"


class CollectRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: Action
    object_class: ObjectClass
    key: str = ""
    id: str | None = None
    error_code: str = ""
    no_escape: bool = False
    pretty: bool = False
    sum_policy: SumPolicy = SumPolicy.ZERO


def fetch_records(source: DataSource, request: CollectRequest, now: datetime) -> tuple[list[PropertyBag], tuple[str, ...]]:
    """Run the backend query for *request*; returns (records, metric path)."""
    segments = split_key(request.key)
    object_class = request.object_class

    unassigned = source.unassigned_group_id() if object_class is ObjectClass.HOST else 0
    spec = resolve_virtual_key(object_class, segments, request.id, unassigned_group_id=unassigned, now=now)

    if object_class is ObjectClass.SERVER:
        records = [source.fetch_server_info()]
    else:
        records = source.query(object_class, spec.predicate, spec.fields)

    records = filter_by_id(records, IDENTITY_FIELDS[object_class], request.id)
    records = post_process(object_class, records, now)
    logger.debug("%d %s record(s) after filtering", len(records), object_class.value)
    return records, spec.metric_path


def collect(source: DataSource, request: CollectRequest, now: datetime | None = None) -> str:
    """
    Execute *request* against *source* and return the text for Zabbix.

    Get reads the metric from the first remaining record; Count and Sum
    aggregate over all of them; Discovery emits the LLD document with the
    class's fixed property list.
    """
    now = now or utc_now()

    if request.action is Action.SUM and not split_key(request.key):
        raise UnknownSubkeyError("", "Sum requires a metric key")

    records, path = fetch_records(source, request, now)

    if request.action is Action.DISCOVERY:
        return encode_discovery(records, DISCOVERY_FIELDS[request.object_class], pretty=request.pretty)

    if request.action is Action.COUNT:
        return format_value(count_records(records))

    if request.action is Action.SUM:
        return format_value(sum_metric(records, path, request.sum_policy))

    value = resolve_metric(records[0], path) if records else None
    return format_value(value, error_code=request.error_code, no_escape=request.no_escape)
