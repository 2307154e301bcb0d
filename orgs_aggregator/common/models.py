"""Data models used across the pipeline.

Raw records are passive, source-tagged mappings. Drafts are the per-record
result of field mapping. Organisations, conflicts, audit records and the
processing result form the output document; their ``to_dict`` methods emit
the camelCase field names consumed by the static website.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class OrganisationType(str, Enum):
    MINISTERIAL_DEPARTMENT = "ministerial_department"
    EXECUTIVE_AGENCY = "executive_agency"
    LOCAL_AUTHORITY = "local_authority"
    NHS_TRUST = "nhs_trust"
    NHS_FOUNDATION_TRUST = "nhs_foundation_trust"
    NDPB = "non_departmental_public_body"
    EXECUTIVE_NDPB = "executive_ndpb"
    ADVISORY_NDPB = "advisory_ndpb"
    TRIBUNAL_NDPB = "tribunal_ndpb"
    PUBLIC_CORPORATION = "public_corporation"
    DEVOLVED_ADMINISTRATION = "devolved_administration"
    EMERGENCY_SERVICE = "emergency_service"
    JUDICIAL_BODY = "judicial_body"
    EDUCATIONAL_INSTITUTION = "educational_institution"
    COMMUNITY_COUNCIL = "community_council"
    HEALTH_BOARD = "health_board"
    REGIONAL_TRANSPORT_PARTNERSHIP = "regional_transport_partnership"
    OTHER = "other"


class DataSourceType(str, Enum):
    # Declaration order is the deterministic processing order.
    GOV_UK_API = "gov_uk_api"
    ONS_INSTITUTIONAL = "ons_institutional_unit"
    ONS_NON_INSTITUTIONAL = "ons_non_institutional_unit"
    NHS_PROVIDER_DIRECTORY = "nhs_provider_directory"
    GIAS = "gias"
    POLICE_UK = "police_uk"
    NFCC = "nfcc"
    GOV_UK_GUIDANCE = "gov_uk_guidance"
    MANUAL = "manual"


SOURCE_ORDER = {source: idx for idx, source in enumerate(DataSourceType)}


class OrganisationStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISSOLVED = "dissolved"


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    MERGED = "merged"
    FLAGGED = "flagged"


@dataclass(frozen=True)
class RawRecord:
    """One source-shaped record as handed over by a fetcher."""

    source: DataSourceType
    index: int
    fields: Mapping[str, Any]

    def get_path(self, path: str) -> Any:
        """Resolve a dotted path; numeric segments index into lists."""
        current: Any = self.fields
        for part in path.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return None
        return current


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class Location:
    country: str | None = None
    region: str | None = None
    address: str | None = None
    postcode: str | None = None
    coordinates: Coordinates | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "country": self.country,
            "region": self.region,
            "address": self.address,
            "postcode": self.postcode,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
        }


@dataclass(frozen=True)
class DataSourceReference:
    source: DataSourceType
    retrieved_at: str
    confidence: float
    source_id: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "sourceId": self.source_id,
            "retrievedAt": self.retrieved_at,
            "url": self.url,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class DataQuality:
    completeness: float
    has_conflicts: bool
    requires_review: bool
    conflict_fields: tuple[str, ...] = ()
    review_reasons: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "completeness": self.completeness,
            "hasConflicts": self.has_conflicts,
            "conflictFields": list(self.conflict_fields),
            "requiresReview": self.requires_review,
            "reviewReasons": list(self.review_reasons),
        }


@dataclass(frozen=True)
class OrganisationDraft:
    """A single source record after field mapping, before clustering."""

    source: DataSourceType
    record_index: int
    name: str
    type: OrganisationType
    status: OrganisationStatus
    reference: DataSourceReference
    classification: str | None = None
    alternative_names: tuple[str, ...] = ()
    parent_organisation: str | None = None
    controlling_unit: str | None = None
    establishment_date: str | None = None
    dissolution_date: str | None = None
    location: Location | None = None
    additional_properties: Mapping[str, Any] = field(default_factory=dict)
    identifiers: tuple[tuple[str, str], ...] = ()
    # Canonical fields whose value came from defaults or fallbacks.
    defaulted: frozenset[str] = frozenset()
    batch_sequence: int = 0
    normalised_name: str = ""
    id: str = ""

    @property
    def record_id(self) -> str:
        return self.reference.source_id or f"#{self.record_index}"

    @property
    def order_key(self) -> tuple[int, int, int]:
        return (SOURCE_ORDER[self.source], self.batch_sequence, self.record_index)


@dataclass
class Organisation:
    id: str
    name: str
    type: OrganisationType
    status: OrganisationStatus
    sources: list[DataSourceReference]
    data_quality: DataQuality
    last_updated: str
    classification: str | None = None
    alternative_names: list[str] = field(default_factory=list)
    parent_organisation: str | None = None
    controlling_unit: str | None = None
    establishment_date: str | None = None
    dissolution_date: str | None = None
    location: Location | None = None
    additional_properties: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "alternativeNames": list(self.alternative_names),
            "type": self.type.value,
            "classification": self.classification,
            "parentOrganisation": self.parent_organisation,
            "controllingUnit": self.controlling_unit,
            "status": self.status.value,
            "establishmentDate": self.establishment_date,
            "dissolutionDate": self.dissolution_date,
            "location": self.location.to_dict() if self.location else None,
            "sources": [ref.to_dict() for ref in self.sources],
            "dataQuality": self.data_quality.to_dict(),
            "lastUpdated": self.last_updated,
            "additionalProperties": dict(self.additional_properties),
        }


@dataclass(frozen=True)
class ConflictValue:
    source: DataSourceType
    value: Any
    retrieved_at: str

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source.value, "value": self.value, "retrievedAt": self.retrieved_at}


@dataclass(frozen=True)
class ConflictResolution:
    resolved_value: Any
    resolved_by: str | None = None
    resolved_at: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "resolvedValue": self.resolved_value,
            "resolvedBy": self.resolved_by,
            "resolvedAt": self.resolved_at,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class DataConflict:
    id: str
    organisation_id: str
    field: str
    values: tuple[ConflictValue, ...]
    resolution: ConflictResolution | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organisationId": self.organisation_id,
            "field": self.field,
            "values": [value.to_dict() for value in self.values],
            "resolution": self.resolution.to_dict() if self.resolution else None,
        }


@dataclass(frozen=True)
class AuditChange:
    field: str
    old_value: Any
    new_value: Any
    source: DataSourceType | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "source": self.source.value if self.source else None,
        }


@dataclass(frozen=True)
class AuditRecord:
    id: str
    organisation_id: str
    timestamp: str
    action: AuditAction
    changes: tuple[AuditChange, ...] | None = None
    metadata: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organisationId": self.organisation_id,
            "timestamp": self.timestamp,
            "action": self.action.value,
            "changes": [change.to_dict() for change in self.changes] if self.changes is not None else None,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
        }


@dataclass(frozen=True)
class ProcessingError:
    source: DataSourceType | None
    error: str
    error_code: str
    timestamp: str
    record_id: str | None = None
    context: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value if self.source else None,
            "recordId": self.record_id,
            "error": self.error,
            "errorCode": self.error_code,
            "context": dict(self.context) if self.context is not None else None,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class SourceMetadata:
    source: DataSourceType
    record_count: int
    retrieved_at: str
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "recordCount": self.record_count,
            "retrievedAt": self.retrieved_at,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class ProcessingStatistics:
    total_organisations: int
    duplicates_found: int
    conflicts_detected: int
    organisations_by_type: Mapping[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalOrganisations": self.total_organisations,
            "duplicatesFound": self.duplicates_found,
            "conflictsDetected": self.conflicts_detected,
            "organisationsByType": dict(self.organisations_by_type),
        }


@dataclass(frozen=True)
class ProcessingMetadata:
    processed_at: str
    sources: tuple[SourceMetadata, ...]
    statistics: ProcessingStatistics

    def to_dict(self) -> dict[str, Any]:
        return {
            "processedAt": self.processed_at,
            "sources": [source.to_dict() for source in self.sources],
            "statistics": self.statistics.to_dict(),
        }


@dataclass
class ProcessingResult:
    organisations: list[Organisation]
    metadata: ProcessingMetadata
    conflicts: list[DataConflict] = field(default_factory=list)
    errors: list[ProcessingError] = field(default_factory=list)

    def organisation_for(self, organisation_id: str) -> Organisation | None:
        for organisation in self.organisations:
            if organisation.id == organisation_id:
                return organisation
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "organisations": [org.to_dict() for org in self.organisations],
            "metadata": self.metadata.to_dict(),
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
            "errors": [error.to_dict() for error in self.errors],
        }
