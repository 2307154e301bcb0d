"""Write the processing result artifacts."""

from __future__ import annotations

from pathlib import Path

from orgs_aggregator.common.fs import write_csv, write_json
from orgs_aggregator.common.models import Organisation, ProcessingResult

RESULT_FILENAME = "orgs.json"
CONFLICTS_FILENAME = "conflicts.json"
CSV_FILENAME = "orgs.csv"

ORGANISATION_HEADERS = [
    "id",
    "name",
    "alternative_names",
    "type",
    "classification",
    "parent_organisation",
    "controlling_unit",
    "status",
    "establishment_date",
    "dissolution_date",
    "country",
    "region",
    "postcode",
    "latitude",
    "longitude",
    "source_list",
    "source_count",
    "completeness",
    "has_conflicts",
    "requires_review",
    "last_updated",
]


def _serialize_row(org: Organisation) -> dict:
    location = org.location
    coordinates = location.coordinates if location else None
    row = {
        "id": org.id,
        "name": org.name,
        "alternative_names": "|".join(org.alternative_names),
        "type": org.type.value,
        "classification": org.classification,
        "parent_organisation": org.parent_organisation,
        "controlling_unit": org.controlling_unit,
        "status": org.status.value,
        "establishment_date": org.establishment_date,
        "dissolution_date": org.dissolution_date,
        "country": location.country if location else None,
        "region": location.region if location else None,
        "postcode": location.postcode if location else None,
        "latitude": coordinates.latitude if coordinates else None,
        "longitude": coordinates.longitude if coordinates else None,
        "source_list": "|".join(ref.source.value for ref in org.sources),
        "source_count": len(org.sources),
        "completeness": org.data_quality.completeness,
        "has_conflicts": org.data_quality.has_conflicts,
        "requires_review": org.data_quality.requires_review,
        "last_updated": org.last_updated,
    }
    out = {}
    for key in ORGANISATION_HEADERS:
        value = row[key]
        if value is None:
            out[key] = ""
        elif isinstance(value, bool):
            out[key] = "true" if value else "false"
        else:
            out[key] = value
    return out


def write_result_json(result: ProcessingResult, out_dir: Path) -> Path:
    """Write the result document exactly in its serialised shape, no wrapping."""
    out_path = out_dir / RESULT_FILENAME
    write_json(out_path, result.to_dict())
    return out_path


def write_conflicts_json(result: ProcessingResult, out_dir: Path) -> Path:
    out_path = out_dir / CONFLICTS_FILENAME
    write_json(out_path, [conflict.to_dict() for conflict in result.conflicts])
    return out_path


def write_organisations_csv(result: ProcessingResult, out_dir: Path) -> Path:
    out_path = out_dir / CSV_FILENAME
    rows = sorted(result.organisations, key=lambda org: org.id)
    write_csv(out_path, ORGANISATION_HEADERS, [_serialize_row(org) for org in rows])
    return out_path
