"""Kaspersky Security Center Open API data source."""

from __future__ import annotations

import base64
import logging
from collections.abc import Sequence
from typing import Any

import requests

from ksc_collector.config import CollectorSettings
from ksc_collector.datasource.base import DataSource
from ksc_collector.errors import BackendError
from ksc_collector.object_classes import (
    IDENTITY_FIELDS,
    SERVER_FIELDS,
    ObjectClass,
)
from ksc_collector.primitives import parse_iso_datetime
from ksc_collector.property_bag import PropertyBag

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1.0"


def decode_ksc_value(value: Any) -> Any:
    """
    Convert a KSC Open API value into a PropertyBag value.

    Typed values arrive as ``{"type": ..., "value": ...}``: ``params`` becomes a
    PropertyBag, ``datetime`` an aware UTC datetime, ``long`` an int,
    ``float``/``double`` a float. Binary payloads are kept as their base64 text.
    A malformed typed value raises BackendError.
    """
    if isinstance(value, list):
        return [decode_ksc_value(v) for v in value]
    if not isinstance(value, dict):
        return value

    kind = value.get("type")
    if kind is not None and "value" in value and len(value) == 2:
        raw = value["value"]
        try:
            if kind == "params":
                return PropertyBag({k: decode_ksc_value(v) for k, v in (raw or {}).items()})
            if kind == "datetime":
                return parse_iso_datetime(raw)
            if kind == "long":
                return int(raw)
            if kind in ("float", "double"):
                return float(raw)
        except (AttributeError, TypeError, ValueError) as exc:
            raise BackendError(f"Malformed {kind} value: {raw!r}") from exc
        if kind == "binary":
            return str(raw)
        return decode_ksc_value(raw)

    return PropertyBag({k: decode_ksc_value(v) for k, v in value.items()})


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


class KscOpenApiSource(DataSource):
    """Synchronous KSC Open API client; one login per invocation."""

    def __init__(self, settings: CollectorSettings, session: requests.Session | None = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.session.verify = settings.verify_ssl
        self._logged_in = False

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _auth_header(self) -> str:
        s = self.settings
        parts = [f'user="{_b64(s.user)}"', f'pass="{_b64(s.password)}"']
        if s.domain:
            parts.append(f'domain="{_b64(s.domain)}"')
        parts.append(f'internal="{1 if s.internal else 0}"')
        return "KSCBasic " + ", ".join(parts)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.vserver:
            headers["X-KSC-VServer"] = self.settings.vserver
        return headers

    def open(self) -> None:
        logger.debug("Logging in to %s as %s", self.settings.url, self.settings.user)
        headers = {**self._headers(), "Authorization": self._auth_header()}
        try:
            resp = self.session.post(f"{self.settings.url}{API_PREFIX}/login", headers=headers, timeout=self.settings.timeout)
        except requests.exceptions.RequestException as exc:
            raise BackendError(f"Network error connecting to {self.settings.url}: {exc}") from exc
        if resp.status_code != 200:
            raise BackendError(f"Login failed: HTTP {resp.status_code}")
        self._logged_in = True

    def close(self) -> None:
        try:
            if self._logged_in:
                self.session.post(
                    f"{self.settings.url}{API_PREFIX}/Session.EndSession",
                    headers=self._headers(),
                    json={},
                    timeout=self.settings.timeout,
                )
        except requests.exceptions.RequestException as exc:
            logger.debug("Ignoring logout failure: %s", exc)
        finally:
            self._logged_in = False
            self.session.close()

    # ------------------------------------------------------------------
    # Raw calls
    # ------------------------------------------------------------------

    def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Invoke ``Class.Method`` and return the decoded JSON body.
        Raises BackendError on network, HTTP, JSON or PxgError failures.
        """
        url = f"{self.settings.url}{API_PREFIX}/{method}"
        logger.debug("POST %s", method)
        try:
            resp = self.session.post(url, headers=self._headers(), json=params or {}, timeout=self.settings.timeout)
        except requests.exceptions.RequestException as exc:
            raise BackendError(f"Network error calling {method}: {exc}") from exc

        if resp.status_code != 200:
            preview = resp.text[:200].replace("\n", " ")
            raise BackendError(f"HTTP {resp.status_code} from {method}: {preview}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise BackendError(f"Invalid JSON in response to {method}") from exc

        if not isinstance(data, dict):
            raise BackendError(f"Unexpected response to {method}: {data!r}")

        if "PxgError" in data:
            err = data["PxgError"] or {}
            raise BackendError(f"KSC error {err.get('code')} in {method}: {err.get('message')}")

        return data

    def _read_accessor(self, accessor: str) -> list[PropertyBag]:
        """Drain a ChunkAccessor into records, releasing it afterwards."""
        records: list[PropertyBag] = []
        try:
            count = self.call("ChunkAccessor.GetItemsCount", {"strAccessor": accessor}).get("PxgRetVal")
            try:
                total = int(count or 0)
            except (TypeError, ValueError) as exc:
                raise BackendError(f"Bad item count from accessor: {count!r}") from exc
            start = 0
            while start < total:
                chunk = self.call(
                    "ChunkAccessor.GetItemsChunk",
                    {"strAccessor": accessor, "nStart": start, "nCount": self.settings.chunk_size},
                )
                items = (chunk.get("pChunk") or {}).get("KLCSP_ITERATOR_ARRAY") or []
                if not items:
                    break
                for item in items:
                    record = decode_ksc_value(item)
                    if isinstance(record, PropertyBag):
                        records.append(record)
                start += len(items)
        finally:
            try:
                self.call("ChunkAccessor.Release", {"strAccessor": accessor})
            except BackendError as exc:
                logger.debug("Ignoring accessor release failure: %s", exc)
        return records

    # ------------------------------------------------------------------
    # DataSource contract
    # ------------------------------------------------------------------

    def query(self, object_class: ObjectClass, predicate: str | None, fields: Sequence[str]) -> list[PropertyBag]:
        if object_class is ObjectClass.SERVER:
            return [self.fetch_server_info()]

        wanted = list(fields)
        identity = IDENTITY_FIELDS.get(object_class)
        if identity and identity not in wanted:
            wanted.append(identity)

        if object_class is ObjectClass.HOST:
            result = self.call("HostGroup.FindHosts", {
                "wstrFilter": predicate or "",
                "vecFieldsToReturn": wanted,
                "vecFieldsToOrder": [],
                "pParams": {"KLSRVH_SLAVE_REC_DEPTH": 0, "KLGRP_FIND_FROM_CUR_VS_ONLY": True},
                "lMaxLifeTime": self.settings.timeout * 10,
            })
        else:
            result = self.call("LicenseKeys.EnumKeys", {
                "vecFields": wanted,
                "vecFieldsToOrder": [],
                "pOptions": {},
                "lTimeoutSec": self.settings.timeout * 10,
            })

        accessor = result.get("strAccessor")
        if not accessor:
            raise BackendError(f"No accessor returned for {object_class.value} query")

        records = self._read_accessor(accessor)
        logger.debug("%s query returned %d record(s)", object_class.value, len(records))
        return records

    def fetch_server_info(self) -> PropertyBag:
        result = self.call("HostGroup.GetStaticInfo", {"pValues": list(SERVER_FIELDS)})
        info = decode_ksc_value(result.get("PxgRetVal"))
        if not isinstance(info, PropertyBag):
            raise BackendError("Server static info missing from response")
        return info.project(SERVER_FIELDS)

    def unassigned_group_id(self) -> int:
        result = self.call("HostGroup.GroupIdUnassigned")
        try:
            return int(result.get("PxgRetVal"))
        except (TypeError, ValueError) as exc:
            raise BackendError("Unassigned group id missing from response") from exc
