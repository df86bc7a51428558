"""Zabbix metrics and low-level discovery collector for Kaspersky Security Center."""

from ksc_collector.errors import (
    AbsentMetricError,
    BackendError,
    CollectorError,
    ConfigError,
    UnknownSubkeyError,
)
from ksc_collector.property_bag import PropertyBag

__all__ = [
    "AbsentMetricError",
    "BackendError",
    "CollectorError",
    "ConfigError",
    "PropertyBag",
    "UnknownSubkeyError",
]

__version__ = "0.1.0"
