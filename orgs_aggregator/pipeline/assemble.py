"""Assemble the final processing result."""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from orgs_aggregator.common.models import (
    DataConflict,
    Organisation,
    OrganisationType,
    ProcessingError,
    ProcessingMetadata,
    ProcessingResult,
    ProcessingStatistics,
    SourceMetadata,
)


def build_statistics(
    organisations: Sequence[Organisation],
    conflicts: Sequence[DataConflict],
    draft_count: int,
) -> ProcessingStatistics:
    counts = Counter(org.type for org in organisations)
    return ProcessingStatistics(
        total_organisations=len(organisations),
        duplicates_found=draft_count - len(organisations),
        conflicts_detected=len(conflicts),
        # Every type is listed so the key set does not vary between runs.
        organisations_by_type={org_type.value: counts.get(org_type, 0) for org_type in OrganisationType},
    )


def assemble(
    organisations: Sequence[Organisation],
    source_stats: Sequence[SourceMetadata],
    conflicts: Sequence[DataConflict],
    errors: Sequence[ProcessingError],
    *,
    draft_count: int,
    processed_at: str,
) -> ProcessingResult:
    """Combine merged organisations, per-source statistics, conflicts and errors.

    ``draft_count`` is the number of drafts that reached clustering; the
    difference to the organisation count is reported as duplicates found.
    """
    metadata = ProcessingMetadata(
        processed_at=processed_at,
        sources=tuple(source_stats),
        statistics=build_statistics(organisations, conflicts, draft_count),
    )
    return ProcessingResult(
        organisations=list(organisations),
        metadata=metadata,
        conflicts=list(conflicts),
        errors=list(errors),
    )
