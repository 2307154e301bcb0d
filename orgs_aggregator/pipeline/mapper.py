"""Map raw source records onto organisation drafts.

Each source has an ordered list of declarative rules in ``config/sources.yml``.
A rule reads one (possibly dotted) source field, passes it through a named
transformer and writes the result to a canonical target field. Later rules
override earlier ones when they yield a value. Source fields that no rule
consumes are kept in ``additional_properties`` under dotted keys.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping

from orgs_aggregator.common.config_loader import SourceMapping
from orgs_aggregator.common.constants import NAME_MAX_LENGTH
from orgs_aggregator.common.errors import MappingError
from orgs_aggregator.common.models import (
    DataSourceReference,
    Location,
    OrganisationDraft,
    OrganisationStatus,
    OrganisationType,
    RawRecord,
)
from orgs_aggregator.pipeline.coordinates import extract_coordinates
from orgs_aggregator.pipeline.transformers import (
    clean_text,
    get_transformer,
    map_status,
    organisation_type,
    source_code,
    split_names,
)

_LOCATION_PREFIX = "location."


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return isinstance(value, (list, dict)) and not value


def _flatten(fields: Mapping[str, Any], prefix: str = "") -> Iterator[tuple[str, Any]]:
    for key, value in fields.items():
        path = f"{prefix}{key}"
        if isinstance(value, Mapping):
            yield from _flatten(value, prefix=f"{path}.")
        elif not _is_blank(value):
            yield path, value


def _is_consumed(path: str, consumed: set[str]) -> bool:
    if path in consumed:
        return True
    return any(path.startswith(f"{used}.") for used in consumed)


def _record_id(record: RawRecord, mapping: SourceMapping) -> str | None:
    if mapping.source_id_field is None:
        return None
    return source_code(record.get_path(mapping.source_id_field))


def _build_url(record: RawRecord, template: str | None) -> str | None:
    if template is None:
        return None
    values = {key: value for key, value in record.fields.items() if not _is_blank(value)}
    try:
        return template.format_map(values)
    except (KeyError, IndexError, ValueError):
        return None


def _coerce_type(value: Any) -> OrganisationType | None:
    if isinstance(value, OrganisationType):
        return value
    return organisation_type(value)


def _coerce_status(value: Any) -> OrganisationStatus:
    if isinstance(value, OrganisationStatus):
        return value
    return map_status(value)


def _alternative_names(value: Any, name: str) -> tuple[str, ...]:
    names = split_names(value) if value is not None else None
    out: list[str] = []
    for alt in names or []:
        if alt != name and alt not in out:
            out.append(alt)
    return tuple(out)


def _apply_rules(record: RawRecord, mapping: SourceMapping, record_id: str) -> tuple[dict[str, Any], set[str]]:
    values: dict[str, Any] = {}
    consumed: set[str] = set()
    for rule in mapping.rules:
        consumed.add(rule.source_field)
        raw = record.get_path(rule.source_field)
        if _is_blank(raw):
            if rule.required:
                raise MappingError(
                    f"missing required field {rule.source_field!r}",
                    source=mapping.source.value,
                    record_id=record_id,
                    field=rule.source_field,
                )
            continue
        value = get_transformer(rule.transformer)(raw)
        if value is None:
            if rule.required:
                raise MappingError(
                    f"invalid value for required field {rule.source_field!r}: {raw!r}",
                    source=mapping.source.value,
                    record_id=record_id,
                    field=rule.source_field,
                )
            continue
        values[rule.target_field] = value
    return values, consumed


def map_record(
    record: RawRecord,
    mapping: SourceMapping,
    *,
    retrieved_at: str,
    batch_sequence: int = 0,
) -> OrganisationDraft:
    """Turn one raw record into a draft or raise :class:`MappingError`."""
    source_id = _record_id(record, mapping)
    record_id = source_id or f"#{record.index}"
    values, consumed = _apply_rules(record, mapping, record_id)
    if mapping.source_id_field is not None:
        consumed.add(mapping.source_id_field)

    name = clean_text(values.get("name"))
    if name is None:
        raise MappingError("record has no name", source=mapping.source.value, record_id=record_id, field="name")
    if len(name) > NAME_MAX_LENGTH:
        raise MappingError(
            f"name longer than {NAME_MAX_LENGTH} characters",
            source=mapping.source.value,
            record_id=record_id,
            field="name",
        )

    defaulted: set[str] = set()
    for target, default in mapping.defaults.items():
        if target not in values and default is not None:
            values[target] = default
            defaulted.add(target)

    org_type = _coerce_type(values.get("type"))
    if org_type is None or org_type == OrganisationType.OTHER:
        org_type = OrganisationType.OTHER
        defaulted.add("type")

    if "status" in values:
        status = _coerce_status(values["status"])
    else:
        status = OrganisationStatus.ACTIVE
        defaulted.add("status")

    coordinates = None
    if mapping.coordinates is not None:
        coordinates = extract_coordinates(record, dict(mapping.coordinates))
        consumed.update({mapping.coordinates["x_field"], mapping.coordinates["y_field"]})

    location_values = {
        target[len(_LOCATION_PREFIX):]: clean_text(value)
        for target, value in values.items()
        if target.startswith(_LOCATION_PREFIX)
    }
    location = None
    if any(location_values.values()) or coordinates is not None:
        location = Location(coordinates=coordinates, **location_values)

    identifiers = []
    for kind, field_path in mapping.identifiers:
        code = source_code(record.get_path(field_path))
        if code is not None:
            identifiers.append((kind, code))

    additional = {path: value for path, value in _flatten(record.fields) if not _is_consumed(path, consumed)}

    reference = DataSourceReference(
        source=mapping.source,
        retrieved_at=retrieved_at,
        confidence=mapping.confidence,
        source_id=source_id,
        url=_build_url(record, mapping.url_template),
    )
    return OrganisationDraft(
        source=mapping.source,
        record_index=record.index,
        name=name,
        type=org_type,
        status=status,
        reference=reference,
        classification=clean_text(values.get("classification")),
        alternative_names=_alternative_names(values.get("alternative_names"), name),
        parent_organisation=clean_text(values.get("parent_organisation")),
        controlling_unit=clean_text(values.get("controlling_unit")),
        establishment_date=values.get("establishment_date"),
        dissolution_date=values.get("dissolution_date"),
        location=location,
        additional_properties=additional,
        identifiers=tuple(identifiers),
        defaulted=frozenset(defaulted),
        batch_sequence=batch_sequence,
    )


def map_records(
    records: Iterable[RawRecord],
    mapping: SourceMapping,
    *,
    retrieved_at: str,
    batch_sequence: int = 0,
) -> tuple[list[OrganisationDraft], list[MappingError]]:
    """Map a batch, collecting per-record failures instead of aborting."""
    drafts: list[OrganisationDraft] = []
    failures: list[MappingError] = []
    for record in records:
        try:
            drafts.append(map_record(record, mapping, retrieved_at=retrieved_at, batch_sequence=batch_sequence))
        except MappingError as exc:
            failures.append(exc)
    return drafts, failures
