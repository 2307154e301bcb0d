"""Inbound and outbound boundary of the unification pipeline.

Callers hand over one batch of raw records per source with :meth:`Aggregator.ingest`
and read the unified dataset once with :meth:`Aggregator.get_result`.
Failures scoped to one record or one source are recorded in the result;
nothing short of a programming error stops a result from being produced.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, Iterable, Mapping

from orgs_aggregator.common.config_loader import PipelineConfig
from orgs_aggregator.common.errors import MappingError, RecordError, ResolutionError
from orgs_aggregator.common.logging import log_event
from orgs_aggregator.common.models import (
    SOURCE_ORDER,
    AuditAction,
    AuditChange,
    ConflictResolution,
    DataConflict,
    DataSourceType,
    OrganisationDraft,
    ProcessingError,
    ProcessingResult,
    RawRecord,
    SourceMetadata,
)
from orgs_aggregator.common.time_utils import normalise_timestamp, timestamp_sort_key, utc_timestamp_iso
from orgs_aggregator.pipeline.assemble import assemble
from orgs_aggregator.pipeline.audit import AuditTrail
from orgs_aggregator.pipeline.dedupe import cluster_drafts
from orgs_aggregator.pipeline.identity import assign_identity, cluster_id
from orgs_aggregator.pipeline.merge import MERGE_DEGRADED, apply_value, coerce_value, merge_cluster, plain_value
from orgs_aggregator.pipeline.mapper import map_records
from orgs_aggregator.pipeline.quality import score

SOURCE_UNAVAILABLE = "SOURCE_UNAVAILABLE"


@dataclass
class _SourceBatch:
    source: DataSourceType
    sequence: int
    retrieved_at: str
    record_count: int
    drafts: list[OrganisationDraft] = field(default_factory=list)
    errors: list[ProcessingError] = field(default_factory=list)


@dataclass(frozen=True)
class _Resolution:
    resolved_value: Any
    resolved_by: str | None
    reason: str | None
    resolved_at: str


def _as_raw_records(source: DataSourceType, raw_records: Iterable[RawRecord | Mapping[str, Any]]) -> list[RawRecord]:
    records = []
    for idx, raw in enumerate(raw_records):
        if isinstance(raw, RawRecord):
            records.append(raw)
        else:
            records.append(RawRecord(source=source, index=idx, fields=raw))
    return records


class Aggregator:
    """Collect source batches and produce the unified :class:`ProcessingResult`."""

    def __init__(
        self,
        config: PipelineConfig,
        *,
        logger: logging.Logger | None = None,
        clock: Callable[[], str] = utc_timestamp_iso,
        run_id: str | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.run_id = run_id
        self._batches: list[_SourceBatch] = []
        self._resolutions: dict[str, _Resolution] = {}
        self._extra_reasons: dict[str, tuple[str, ...]] = {}
        self._audit = AuditTrail(clock)
        self._result: ProcessingResult | None = None

    def _log(self, message: str, *, level: int = logging.INFO, **fields: Any) -> None:
        log_event(self.logger, message, level=level, run_id=self.run_id, **fields)

    def _record_error(self, exc: RecordError, timestamp: str) -> ProcessingError:
        context: dict[str, Any] = {}
        if isinstance(exc, MappingError) and exc.field is not None:
            context["field"] = exc.field
        return ProcessingError(
            source=DataSourceType(exc.source),
            error=str(exc),
            error_code=exc.error_code,
            timestamp=timestamp,
            record_id=exc.record_id,
            context=context or None,
        )

    def ingest(
        self,
        source: DataSourceType | str,
        raw_records: Iterable[RawRecord | Mapping[str, Any]],
        retrieved_at: str | datetime | date,
    ) -> None:
        """Map one source batch immediately; an empty batch marks the source unavailable."""
        source = DataSourceType(source)
        retrieved = normalise_timestamp(retrieved_at)
        records = _as_raw_records(source, raw_records)
        now = self.clock()
        batch = _SourceBatch(
            source=source,
            sequence=len(self._batches),
            retrieved_at=retrieved,
            record_count=len(records),
        )
        self._batches.append(batch)
        self._result = None

        if not records:
            batch.errors.append(
                ProcessingError(
                    source=source,
                    error=f"no records received from {source.value}",
                    error_code=SOURCE_UNAVAILABLE,
                    timestamp=now,
                )
            )
            self._log(
                "source unavailable",
                level=logging.WARNING,
                stage="ingest",
                source=source.value,
                event="INGEST",
                status="error",
                records_in=0,
                records_out=0,
                error_code=SOURCE_UNAVAILABLE,
            )
            return

        mapping = self.config.mapping_for(source)
        if mapping is None:
            failures: list[RecordError] = [
                MappingError(
                    f"no field mapping configured for {source.value}",
                    source=source.value,
                    record_id=f"#{record.index}",
                )
                for record in records
            ]
            drafts: list[OrganisationDraft] = []
        else:
            mapped, mapping_failures = map_records(
                records, mapping, retrieved_at=retrieved, batch_sequence=batch.sequence
            )
            failures = list(mapping_failures)
            drafts = []
            for draft in mapped:
                try:
                    drafts.append(assign_identity(draft))
                except RecordError as exc:
                    failures.append(exc)

        batch.drafts.extend(drafts)
        for exc in failures:
            batch.errors.append(self._record_error(exc, now))
            self._log(
                str(exc),
                level=logging.WARNING,
                stage="map",
                source=source.value,
                event="MAP_FAIL",
                status="error",
                error_code=exc.error_code,
            )
        self._log(
            "batch ingested",
            stage="ingest",
            source=source.value,
            event="INGEST",
            status="ok" if not failures else "partial",
            records_in=len(records),
            records_out=len(drafts),
        )

    def _source_metadata(self) -> list[SourceMetadata]:
        grouped: dict[DataSourceType, list[_SourceBatch]] = defaultdict(list)
        for batch in self._batches:
            grouped[batch.source].append(batch)
        out = []
        for source in sorted(grouped, key=SOURCE_ORDER.__getitem__):
            batches = grouped[source]
            out.append(
                SourceMetadata(
                    source=source,
                    record_count=sum(batch.record_count for batch in batches),
                    retrieved_at=max((batch.retrieved_at for batch in batches), key=timestamp_sort_key),
                    errors=tuple(
                        f"{error.record_id}: {error.error}" if error.record_id else error.error
                        for batch in batches
                        for error in batch.errors
                    ),
                )
            )
        return out

    def _build(self) -> ProcessingResult:
        processed_at = self.clock()
        self._audit = AuditTrail(self.clock)
        self._extra_reasons = {}
        drafts = sorted(
            (draft for batch in self._batches for draft in batch.drafts),
            key=lambda draft: draft.order_key,
        )
        errors = [error for batch in self._batches for error in batch.errors]

        clusters = cluster_drafts(drafts, self.config)
        self._log(
            "drafts clustered",
            stage="cluster",
            event="CLUSTER",
            status="ok",
            records_in=len(drafts),
            records_out=len(clusters),
        )

        organisations = []
        conflicts: list[DataConflict] = []
        used_ids: set[str] = set()
        for cluster in clusters:
            base_id = cluster_id(cluster.members)
            organisation_id = base_id
            suffix = 2
            while organisation_id in used_ids:
                organisation_id = f"{base_id}-{suffix}"
                suffix += 1
            used_ids.add(organisation_id)

            outcome = merge_cluster(
                cluster, self.config, self._audit, organisation_id=organisation_id, timestamp=processed_at
            )
            organisations.append(outcome.organisation)
            conflicts.extend(outcome.conflicts)
            errors.extend(outcome.errors)
            for error in outcome.errors:
                self._log(
                    error.error,
                    level=logging.WARNING,
                    stage="merge",
                    event="MERGE_DEGRADED",
                    status="degraded",
                    error_code=MERGE_DEGRADED,
                )
            if outcome.review_reasons:
                self._extra_reasons[organisation_id] = outcome.review_reasons

        result = assemble(
            organisations,
            self._source_metadata(),
            conflicts,
            errors,
            draft_count=len(drafts),
            processed_at=processed_at,
        )
        for conflict_key, resolution in self._resolutions.items():
            self._apply_resolution(result, conflict_key, resolution)

        self._log(
            "result assembled",
            stage="assemble",
            event="ASSEMBLE",
            status="ok" if not errors else "partial",
            records_in=len(drafts),
            records_out=len(organisations),
        )
        return result

    def get_result(self) -> ProcessingResult:
        """Return the unified result, computing it on first call after any ingest."""
        if self._result is None:
            self._result = self._build()
        return self._result

    @property
    def audit_trail(self) -> AuditTrail:
        self.get_result()
        return self._audit

    def _apply_resolution(self, result: ProcessingResult, conflict_key: str, resolution: _Resolution) -> None:
        position = next(
            (idx for idx, conflict in enumerate(result.conflicts) if conflict.id == conflict_key), None
        )
        if position is None:
            # The conflict no longer exists after re-clustering new input.
            return
        conflict = result.conflicts[position]
        resolved = replace(
            conflict,
            resolution=ConflictResolution(
                resolved_value=resolution.resolved_value,
                resolved_by=resolution.resolved_by,
                resolved_at=resolution.resolved_at,
                reason=resolution.reason,
            ),
        )
        result.conflicts[position] = resolved

        organisation = result.organisation_for(conflict.organisation_id)
        old_value = apply_value(organisation, conflict.field, resolution.resolved_value)
        organisation.last_updated = resolution.resolved_at
        org_conflicts = [item for item in result.conflicts if item.organisation_id == organisation.id]
        organisation.data_quality = score(
            organisation,
            self.config,
            conflict_fields=[item.field for item in org_conflicts],
            resolved_fields=[item.field for item in org_conflicts if item.resolution is not None],
            extra_reasons=self._extra_reasons.get(organisation.id, ()),
        )
        self._audit.record(
            AuditAction.UPDATED,
            organisation.id,
            changes=[
                AuditChange(
                    field=conflict.field,
                    old_value=plain_value(old_value),
                    new_value=resolution.resolved_value,
                    source=None,
                )
            ],
            metadata={
                "conflictId": conflict.id,
                "resolvedBy": resolution.resolved_by,
                "reason": resolution.reason,
            },
        )

    def resolve_conflict(
        self,
        conflict_key: str,
        resolved_value: Any,
        *,
        resolved_by: str | None = None,
        reason: str | None = None,
    ) -> DataConflict:
        """Attach a manual resolution to a pending conflict.

        Resolutions are append-only: resolving the same conflict twice raises
        :class:`ResolutionError`. The value is applied to the organisation, its
        data quality is re-scored and an ``updated`` audit record is appended.
        """
        result = self.get_result()
        conflict = next((item for item in result.conflicts if item.id == conflict_key), None)
        if conflict is None:
            raise ResolutionError(f"unknown conflict: {conflict_key}")
        if conflict.resolution is not None or conflict_key in self._resolutions:
            raise ResolutionError(f"conflict already resolved: {conflict_key}")
        try:
            coerce_value(conflict.field, resolved_value)
        except ValueError as exc:
            raise ResolutionError(f"invalid value for {conflict.field}: {resolved_value!r}") from exc
        resolution = _Resolution(
            resolved_value=plain_value(resolved_value),
            resolved_by=resolved_by,
            reason=reason,
            resolved_at=self.clock(),
        )
        self._apply_resolution(result, conflict_key, resolution)
        self._resolutions[conflict_key] = resolution
        return next(item for item in result.conflicts if item.id == conflict_key)
