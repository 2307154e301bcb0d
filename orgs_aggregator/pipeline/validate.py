"""Output contract checks on an assembled processing result."""

from __future__ import annotations

from collections import Counter

from orgs_aggregator.common.constants import NAME_MAX_LENGTH
from orgs_aggregator.common.errors import ContractError, MappingError, NormalisationError
from orgs_aggregator.common.models import ProcessingResult

RECORD_ERROR_CODES = {MappingError.error_code, NormalisationError.error_code}


def _check_organisations(result: ProcessingResult) -> list[str]:
    problems: list[str] = []
    ids = Counter(org.id for org in result.organisations)
    for org_id, count in sorted(ids.items()):
        if count > 1:
            problems.append(f"duplicate organisation id {org_id}")

    conflict_fields: dict[str, set[str]] = {}
    pending: dict[str, set[str]] = {}
    for conflict in result.conflicts:
        conflict_fields.setdefault(conflict.organisation_id, set()).add(conflict.field)
        if conflict.resolution is None:
            pending.setdefault(conflict.organisation_id, set()).add(conflict.field)

    for org in result.organisations:
        if not org.sources:
            problems.append(f"{org.id} has no source references")
        if not 1 <= len(org.name) <= NAME_MAX_LENGTH:
            problems.append(f"{org.id} name length out of range")
        quality = org.data_quality
        if not 0.0 <= quality.completeness <= 1.0:
            problems.append(f"{org.id} completeness {quality.completeness} outside [0, 1]")
        fields = conflict_fields.get(org.id, set())
        if fields and not quality.has_conflicts:
            problems.append(f"{org.id} has conflicts but hasConflicts is false")
        missing = fields - set(quality.conflict_fields)
        if missing:
            problems.append(f"{org.id} conflictFields missing {', '.join(sorted(missing))}")
        if pending.get(org.id) and not quality.requires_review:
            problems.append(f"{org.id} has pending conflicts but does not require review")

    known_ids = set(ids)
    for conflict in result.conflicts:
        if conflict.organisation_id not in known_ids:
            problems.append(f"conflict {conflict.id} references unknown organisation")
    return problems


def _check_statistics(result: ProcessingResult) -> list[str]:
    problems: list[str] = []
    stats = result.metadata.statistics
    if stats.total_organisations != len(result.organisations):
        problems.append("totalOrganisations does not match organisation count")
    if stats.conflicts_detected != len(result.conflicts):
        problems.append("conflictsDetected does not match conflict count")
    if sum(stats.organisations_by_type.values()) != len(result.organisations):
        problems.append("organisationsByType does not sum to organisation count")
    if stats.duplicates_found < 0:
        problems.append("duplicatesFound is negative")

    # Every received record is either referenced by an organisation or reported.
    received = sum(source.record_count for source in result.metadata.sources)
    referenced = sum(len(org.sources) for org in result.organisations)
    failed = sum(1 for error in result.errors if error.error_code in RECORD_ERROR_CODES)
    if received != referenced + failed:
        problems.append(f"record accounting mismatch: received {received}, referenced {referenced}, failed {failed}")
    if referenced - stats.total_organisations != stats.duplicates_found:
        problems.append("duplicatesFound does not match merged source references")
    return problems


def validate_result(result: ProcessingResult) -> ProcessingResult:
    """Raise :class:`ContractError` listing every broken output invariant."""
    problems = _check_organisations(result) + _check_statistics(result)
    if problems:
        raise ContractError("; ".join(problems))
    return result
