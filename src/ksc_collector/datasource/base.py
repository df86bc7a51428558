"""Backend contract the collector core depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from types import TracebackType

from ksc_collector.object_classes import ObjectClass
from ksc_collector.property_bag import PropertyBag


class DataSource(ABC):
    """
    One short-lived backend session.

    Use as a context manager: ``open()`` on enter, ``close()`` on exit. Any
    failure is raised as ``BackendError``.
    """

    def open(self) -> None:
        """Establish the session. No-op by default."""

    def close(self) -> None:
        """Tear the session down. No-op by default."""

    def __enter__(self) -> DataSource:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @abstractmethod
    def query(self, object_class: ObjectClass, predicate: str | None, fields: Sequence[str]) -> list[PropertyBag]:
        """Return records of *object_class* matching *predicate* with *fields* populated.

        No ordering is guaranteed beyond what the backend returns.
        """

    @abstractmethod
    def fetch_server_info(self) -> PropertyBag:
        """Return the administration server's own attributes."""

    @abstractmethod
    def unassigned_group_id(self) -> int:
        """Return the id of the group holding unassigned devices."""
