"""Object classes served by the collector and their fixed field layouts."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from ksc_collector.primitives import as_utc, utc_now
from ksc_collector.property_bag import PropertyBag

logger = logging.getLogger(__name__)


class ObjectClass(str, Enum):
    SERVER = "Server"
    HOST = "Host"
    LICENSE = "License"

    @classmethod
    def parse(cls, raw: str) -> ObjectClass:
        """Case-insensitive lookup by name."""
        for member in cls:
            if member.value.lower() == str(raw).strip().lower():
                return member
        raise ValueError(f"Unknown object type '{raw}' (expected one of: {', '.join(m.value for m in cls)})")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

SERVER_HOSTNAME = "KLADMSRV_SERVER_HOSTNAME"
SERVER_VERSION = "KLADMSRV_PRODUCT_FULL_VERSION"
SERVER_IS_VIRTUAL = "KLADMSRV_IS_VIRTUAL"
SERVER_VSID = "KLADMSRV_VSID"
SERVER_UNASSIGNED_GROUP = "KLADMSRV_GRP_UNASSIGNED"

SERVER_FIELDS: tuple[str, ...] = (SERVER_HOSTNAME, SERVER_VERSION, SERVER_IS_VIRTUAL, SERVER_VSID)

# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------

HOST_ID = "KLHST_WKS_HOSTNAME"
HOST_DISPLAY_NAME = "KLHST_WKS_DN"
HOST_GROUP_ID = "KLHST_WKS_GROUPID"
HOST_NETBIOS_NAME = "KLHST_WKS_WINHOSTNAME"
HOST_STATUS_ID = "KLHST_WKS_STATUS_ID"
HOST_RTP_STATE = "KLHST_WKS_RTP_STATE"
HOST_LAST_UPDATE = "KLHST_WKS_LAST_UPDATE"
HOST_STATUS_MASK_PREFIX = "KLHST_WKS_STATUS_MASK_"

HOST_DISCOVERY_FIELDS: tuple[str, ...] = (HOST_ID, HOST_DISPLAY_NAME, HOST_GROUP_ID, HOST_NETBIOS_NAME)

# ---------------------------------------------------------------------------
# License
# ---------------------------------------------------------------------------

LICENSE_SERIAL = "KLLIC_SERIAL"
LICENSE_KEY_TYPE = "KLLIC_KEY_TYPE"
LICENSE_INSTALLED = "KLLICSRV_KEY_INSTALLED"
LICENSE_COUNT = "KLLIC_LICENSE_COUNT"
LICENSE_LIMIT_DATE = "KLLIC_LIMIT_DATE"
LICENSE_TIME_LEFT = "TimeLeftToLicenseExpire"
LICENSE_EXPIRED = "LicenseExpired"

LICENSE_FIELDS: tuple[str, ...] = (
    LICENSE_SERIAL,
    LICENSE_KEY_TYPE,
    LICENSE_INSTALLED,
    LICENSE_COUNT,
    LICENSE_LIMIT_DATE,
)

IDENTITY_FIELDS: dict[ObjectClass, str | None] = {
    ObjectClass.SERVER: None,
    ObjectClass.HOST: HOST_ID,
    ObjectClass.LICENSE: LICENSE_SERIAL,
}

DISCOVERY_FIELDS: dict[ObjectClass, tuple[str, ...]] = {
    ObjectClass.SERVER: SERVER_FIELDS,
    ObjectClass.HOST: HOST_DISCOVERY_FIELDS,
    ObjectClass.LICENSE: LICENSE_FIELDS + (LICENSE_EXPIRED,),
}


def augment_license(record: PropertyBag, now: datetime | None = None) -> PropertyBag:
    """Append expiry fields derived from the license limit date.

    ``TimeLeftToLicenseExpire`` is whole seconds until the limit date (negative
    once expired); ``LicenseExpired`` is true when now >= limit date. Records
    without a limit date are returned unchanged.
    """
    limit = record.get(LICENSE_LIMIT_DATE)
    if not isinstance(limit, datetime):
        logger.debug("License %s has no limit date; skipping expiry fields", record.get(LICENSE_SERIAL))
        return record

    current = as_utc(now) if now is not None else utc_now()
    left = (as_utc(limit) - current).total_seconds()
    return record.augment(**{
        LICENSE_TIME_LEFT: int(round(left)),
        LICENSE_EXPIRED: current >= as_utc(limit),
    })


def post_process(object_class: ObjectClass, records: list[PropertyBag], now: datetime | None = None) -> list[PropertyBag]:
    """Apply the class-specific derived-field step to every record."""
    if object_class is ObjectClass.LICENSE:
        return [augment_license(r, now) for r in records]
    return list(records)
