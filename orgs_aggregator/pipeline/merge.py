"""Collapse a cluster of drafts into one organisation.

For each canonical field the explicit values supplied by cluster members are
compared. One distinct value is adopted as-is. Several distinct values are
resolved in favour of the highest-confidence source, then the most recent
``retrievedAt``, then input order, and recorded as a pending
:class:`DataConflict`. Values that only came from source defaults are used
when no member supplies an explicit one and never cause a conflict.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable

from orgs_aggregator.common.config_loader import PipelineConfig
from orgs_aggregator.common.deterministic import canonical_json, unique_values
from orgs_aggregator.common.ids import conflict_id
from orgs_aggregator.common.models import (
    AuditAction,
    AuditChange,
    ConflictValue,
    DataConflict,
    DataQuality,
    Location,
    Organisation,
    OrganisationDraft,
    OrganisationStatus,
    OrganisationType,
    ProcessingError,
)
from orgs_aggregator.common.time_utils import timestamp_sort_key
from orgs_aggregator.pipeline.audit import AuditTrail
from orgs_aggregator.pipeline.dedupe import Cluster, types_compatible
from orgs_aggregator.pipeline.quality import score

MERGE_DEGRADED = "MERGE_DEGRADED"
TYPE_MISMATCH = "type_mismatch"

# Output label -> draft attribute path. Labels are the camelCase names used
# in conflict and audit records; paths match mapping target fields.
MERGED_FIELDS: tuple[tuple[str, str], ...] = (
    ("type", "type"),
    ("classification", "classification"),
    ("parentOrganisation", "parent_organisation"),
    ("controllingUnit", "controlling_unit"),
    ("status", "status"),
    ("establishmentDate", "establishment_date"),
    ("dissolutionDate", "dissolution_date"),
    ("location.country", "location.country"),
    ("location.region", "location.region"),
    ("location.address", "location.address"),
    ("location.postcode", "location.postcode"),
)
FIELD_PATHS = dict(MERGED_FIELDS)

_COERCE: dict[str, Callable[[Any], Any]] = {
    "type": OrganisationType,
    "status": OrganisationStatus,
}


@dataclass(frozen=True)
class MergeOutcome:
    organisation: Organisation
    conflicts: tuple[DataConflict, ...] = ()
    errors: tuple[ProcessingError, ...] = ()
    review_reasons: tuple[str, ...] = ()


def plain_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _read(draft: OrganisationDraft, path: str) -> Any:
    if path.startswith("location."):
        if draft.location is None:
            return None
        return getattr(draft.location, path.split(".", 1)[1])
    return getattr(draft, path)


def rank_key(draft: OrganisationDraft, position: int) -> tuple[float, float, int]:
    """Sort key putting the preferred draft first."""
    retrieved = timestamp_sort_key(draft.reference.retrieved_at).timestamp()
    return (-draft.reference.confidence, -retrieved, position)


def _ranked(members: tuple[OrganisationDraft, ...]) -> list[OrganisationDraft]:
    positions = {id(draft): pos for pos, draft in enumerate(members)}
    return sorted(members, key=lambda draft: rank_key(draft, positions[id(draft)]))


def _resolve_field(
    members: tuple[OrganisationDraft, ...],
    ranked: list[OrganisationDraft],
    path: str,
) -> tuple[Any, list[tuple[OrganisationDraft, Any]], OrganisationDraft | None]:
    """Return the adopted value, the explicit candidates and the winning draft."""
    explicit = [(draft, _read(draft, path)) for draft in members if path not in draft.defaulted]
    explicit = [(draft, value) for draft, value in explicit if value is not None]
    if explicit:
        candidates = explicit
    else:
        candidates = [(draft, _read(draft, path)) for draft in members]
        candidates = [(draft, value) for draft, value in candidates if value is not None]
    if not candidates:
        return None, [], None

    values = {id(draft): value for draft, value in candidates}
    winner = next(draft for draft in ranked if id(draft) in values)
    return values[id(winner)], (explicit if explicit else []), winner


def _conflict_values(candidates: list[tuple[OrganisationDraft, Any]]) -> tuple[ConflictValue, ...]:
    seen: set[tuple[str, str]] = set()
    out: list[ConflictValue] = []
    for draft, value in candidates:
        key = (draft.source.value, canonical_json(plain_value(value)))
        if key in seen:
            continue
        seen.add(key)
        out.append(
            ConflictValue(source=draft.source, value=plain_value(value), retrieved_at=draft.reference.retrieved_at)
        )
    return tuple(out)


def _merge_properties(members: tuple[OrganisationDraft, ...]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for draft in members:
        for key, value in draft.additional_properties.items():
            target = key
            if target in merged and canonical_json(merged[target]) != canonical_json(value):
                target = f"{draft.source.value}:{key}"
                suffix = 2
                while target in merged and canonical_json(merged[target]) != canonical_json(value):
                    target = f"{draft.source.value}:{key}:{suffix}"
                    suffix += 1
            merged.setdefault(target, value)
    return merged


def _merged_location(fields: dict[str, Any], ranked: list[OrganisationDraft]) -> Location | None:
    coordinates = next(
        (draft.location.coordinates for draft in ranked if draft.location and draft.location.coordinates),
        None,
    )
    location = Location(
        country=fields["location.country"],
        region=fields["location.region"],
        address=fields["location.address"],
        postcode=fields["location.postcode"],
        coordinates=coordinates,
    )
    if location == Location():
        return None
    return location


def _alternative_names(members: tuple[OrganisationDraft, ...], name: str) -> list[str]:
    names: list[str] = []
    for draft in members:
        for candidate in (draft.name, *draft.alternative_names):
            if candidate != name and candidate not in names:
                names.append(candidate)
    return names


def _type_degraded(members: tuple[OrganisationDraft, ...], config: PipelineConfig) -> bool:
    types = {draft.type for draft in members}
    return any(
        not types_compatible(left, right, config.type_families) for left in types for right in types
    )


def merge_cluster(
    cluster: Cluster,
    config: PipelineConfig,
    audit: AuditTrail,
    *,
    organisation_id: str,
    timestamp: str,
) -> MergeOutcome:
    """Merge one cluster and record its audit trail entries.

    Never raises for a well-formed cluster: members of incompatible types
    degrade to a review flag plus a ``MERGE_DEGRADED`` processing error.
    """
    members = cluster.members
    ranked = _ranked(members)

    name = ranked[0].name
    fields: dict[str, Any] = {}
    conflicts: list[DataConflict] = []
    changes: list[AuditChange] = []
    for label, path in MERGED_FIELDS:
        value, explicit, winner = _resolve_field(members, ranked, path)
        fields[path] = value
        distinct = unique_values(plain_value(candidate) for _draft, candidate in explicit)
        if len(distinct) < 2:
            continue
        conflicts.append(
            DataConflict(
                id=conflict_id(organisation_id, label),
                organisation_id=organisation_id,
                field=label,
                values=_conflict_values(explicit),
            )
        )
        previous = next(item for item in distinct if canonical_json(item) != canonical_json(plain_value(value)))
        changes.append(
            AuditChange(field=label, old_value=previous, new_value=plain_value(value), source=winner.source)
        )

    errors: list[ProcessingError] = []
    extra_reasons: list[str] = []
    if _type_degraded(members, config):
        extra_reasons.append(TYPE_MISMATCH)
        errors.append(
            ProcessingError(
                source=None,
                error=f"cluster for {organisation_id} mixes incompatible types",
                error_code=MERGE_DEGRADED,
                timestamp=timestamp,
                record_id=organisation_id,
                context={
                    "types": sorted({draft.type.value for draft in members}),
                    "members": [draft.id for draft in members],
                },
            )
        )

    references = sorted(
        (draft.reference for draft in members),
        key=lambda ref: timestamp_sort_key(ref.retrieved_at),
    )
    organisation = Organisation(
        id=organisation_id,
        name=name,
        type=fields["type"] or OrganisationType.OTHER,
        status=fields["status"] or OrganisationStatus.ACTIVE,
        sources=references,
        data_quality=DataQuality(completeness=0.0, has_conflicts=False, requires_review=False),
        last_updated=timestamp,
        classification=fields["classification"],
        alternative_names=_alternative_names(members, name),
        parent_organisation=fields["parent_organisation"],
        controlling_unit=fields["controlling_unit"],
        establishment_date=fields["establishment_date"],
        dissolution_date=fields["dissolution_date"],
        location=_merged_location(fields, ranked),
        additional_properties=_merge_properties(members),
    )
    organisation.data_quality = score(
        organisation,
        config,
        conflict_fields=[conflict.field for conflict in conflicts],
        extra_reasons=extra_reasons,
    )

    if cluster.size == 1:
        audit.record(AuditAction.CREATED, organisation_id, metadata={"source": members[0].source.value})
    else:
        audit.record(
            AuditAction.MERGED,
            organisation_id,
            changes=changes,
            metadata={
                "memberIds": [draft.id for draft in members],
                "matchReasons": list(cluster.match_reasons),
            },
        )
    if organisation.data_quality.requires_review:
        audit.record(
            AuditAction.FLAGGED,
            organisation_id,
            metadata={"reviewReasons": list(organisation.data_quality.review_reasons)},
        )

    return MergeOutcome(
        organisation=organisation,
        conflicts=tuple(conflicts),
        errors=tuple(errors),
        review_reasons=tuple(extra_reasons),
    )


def coerce_value(label: str, value: Any) -> Any:
    """Convert a plain resolved value to the canonical type of its field."""
    coerce = _COERCE.get(FIELD_PATHS[label])
    if coerce is not None and value is not None:
        return coerce(value)
    return value


def apply_value(organisation: Organisation, label: str, value: Any) -> Any:
    """Write a resolved conflict value onto the organisation; return the old value."""
    path = FIELD_PATHS[label]
    value = coerce_value(label, value)
    if path.startswith("location."):
        attr = path.split(".", 1)[1]
        location = organisation.location or Location()
        old = getattr(location, attr)
        organisation.location = replace(location, **{attr: value})
        return old
    old = getattr(organisation, path)
    setattr(organisation, path, value)
    return old
