"""Data source backed by a YAML or JSON dump of the administration server.

Dump layout::

    server: {KLADMSRV_SERVER_HOSTNAME: ksc01, ...}
    unassigned_group_id: 1
    hosts: [{KLHST_WKS_HOSTNAME: ..., ...}, ...]
    licenses: [{KLLIC_SERIAL: ..., ...}, ...]

Values may use the Open API typed form (``{"type": "datetime", "value": ...}``);
ISO timestamp strings and YAML timestamps become aware UTC datetimes.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from ksc_collector.datasource.base import DataSource
from ksc_collector.datasource.ksc import decode_ksc_value
from ksc_collector.datasource.search_filter import FilterSyntaxError, compile_filter
from ksc_collector.errors import BackendError
from ksc_collector.object_classes import IDENTITY_FIELDS, SERVER_FIELDS, ObjectClass
from ksc_collector.primitives import as_utc, parse_iso_datetime
from ksc_collector.property_bag import PropertyBag

logger = logging.getLogger(__name__)

_ISO_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}")

_SECTIONS: dict[ObjectClass, str] = {
    ObjectClass.HOST: "hosts",
    ObjectClass.LICENSE: "licenses",
}


def _normalise(value: Any) -> Any:
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and _ISO_TIMESTAMP_RE.match(value):
        return parse_iso_datetime(value) or value
    if isinstance(value, list):
        return [_normalise(v) for v in value]
    if isinstance(value, Mapping):
        decoded = decode_ksc_value(dict(value))
        if isinstance(decoded, PropertyBag):
            return PropertyBag({k: _normalise(v) for k, v in decoded.items()})
        return _normalise(decoded)
    return value


def _to_record(raw: Any) -> PropertyBag | None:
    record = _normalise(raw) if isinstance(raw, Mapping) else None
    return record if isinstance(record, PropertyBag) else None


class StaticSource(DataSource):
    """Serve records from an in-memory dump, applying predicates locally."""

    def __init__(self, dump: Mapping[str, Any]) -> None:
        self.dump = dict(dump)

    @classmethod
    def from_file(cls, path: str | Path) -> StaticSource:
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise BackendError(f"Cannot read dump {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise BackendError(f"Dump {path} is not a mapping")
        return cls(data)

    def query(self, object_class: ObjectClass, predicate: str | None, fields: Sequence[str]) -> list[PropertyBag]:
        if object_class is ObjectClass.SERVER:
            return [self.fetch_server_info()]

        try:
            matches = compile_filter(predicate)
        except FilterSyntaxError as exc:
            raise BackendError(f"Invalid search filter: {exc}") from exc

        wanted = list(fields)
        identity = IDENTITY_FIELDS.get(object_class)
        if identity and identity not in wanted:
            wanted.append(identity)

        records = []
        for raw in self.dump.get(_SECTIONS[object_class]) or []:
            record = _to_record(raw)
            if record is None:
                logger.debug("Skipping malformed %s entry: %r", object_class.value, raw)
                continue
            if matches(record):
                records.append(record.project(wanted))

        logger.debug("%s query returned %d record(s)", object_class.value, len(records))
        return records

    def fetch_server_info(self) -> PropertyBag:
        server = _to_record(self.dump.get("server"))
        if server is None:
            raise BackendError("Dump has no server section")
        return server.project(SERVER_FIELDS)

    def unassigned_group_id(self) -> int:
        try:
            return int(self.dump.get("unassigned_group_id", 0))
        except (TypeError, ValueError) as exc:
            raise BackendError("unassigned_group_id in dump is not an integer") from exc
