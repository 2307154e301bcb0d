"""Append-only audit trail for one pipeline run."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from orgs_aggregator.common.ids import audit_id
from orgs_aggregator.common.models import AuditAction, AuditChange, AuditRecord
from orgs_aggregator.common.time_utils import utc_timestamp_iso


class AuditTrail:
    """Ordered log of organisation state transitions.

    Records are immutable and ids are sequential within the trail, so two runs
    over the same input produce the same ids in the same order.
    """

    def __init__(self, clock: Callable[[], str] = utc_timestamp_iso) -> None:
        self._clock = clock
        self._records: list[AuditRecord] = []

    def record(
        self,
        action: AuditAction,
        organisation_id: str,
        changes: Iterable[AuditChange] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> AuditRecord:
        entry = AuditRecord(
            id=audit_id(len(self._records) + 1),
            organisation_id=organisation_id,
            timestamp=self._clock(),
            action=AuditAction(action),
            changes=tuple(changes) if changes is not None else None,
            metadata=MappingProxyType(dict(metadata)) if metadata is not None else None,
        )
        self._records.append(entry)
        return entry

    @property
    def records(self) -> tuple[AuditRecord, ...]:
        return tuple(self._records)

    def history(self, organisation_id: str) -> tuple[AuditRecord, ...]:
        return tuple(entry for entry in self._records if entry.organisation_id == organisation_id)

    def __len__(self) -> int:
        return len(self._records)
