import pytest

from orgs_aggregator.common.errors import MappingError
from orgs_aggregator.common.models import DataSourceType, OrganisationStatus, OrganisationType, RawRecord
from orgs_aggregator.pipeline.mapper import map_record, map_records

RETRIEVED_AT = "2026-01-05T08:00:00.000+00:00"


def _govuk_record(**overrides):
    fields = {
        "title": "Department for Education",
        "content_id": "abc-123",
        "base_path": "/government/organisations/department-for-education",
        "document_type": "ministerial_department",
        "analytics_identifier": "D6",
        "details": {
            "acronym": "DfE",
            "organisation_govuk_status": {"status": "live"},
        },
        "links": {"parent_organisations": [{"title": "Cabinet Office"}]},
    }
    fields.update(overrides)
    return RawRecord(source=DataSourceType.GOV_UK_API, index=0, fields=fields)


def _map(config, source, fields, index=0):
    record = RawRecord(source=source, index=index, fields=fields)
    return map_record(record, config.mapping_for(source), retrieved_at=RETRIEVED_AT)


def test_govuk_record_maps_nested_fields(config):
    draft = map_record(_govuk_record(), config.mapping_for(DataSourceType.GOV_UK_API), retrieved_at=RETRIEVED_AT)

    assert draft.name == "Department for Education"
    assert draft.type == OrganisationType.MINISTERIAL_DEPARTMENT
    assert draft.status == OrganisationStatus.ACTIVE
    assert draft.alternative_names == ("DfE",)
    assert draft.parent_organisation == "Cabinet Office"
    assert draft.reference.source_id == "abc-123"
    assert draft.reference.confidence == 1.0
    assert draft.reference.retrieved_at == RETRIEVED_AT
    assert draft.reference.url == "https://www.gov.uk/government/organisations/department-for-education"
    assert draft.identifiers == (("govuk_content_id", "abc-123"),)


def test_defaults_fill_unset_fields_and_are_marked(config):
    draft = map_record(_govuk_record(), config.mapping_for(DataSourceType.GOV_UK_API), retrieved_at=RETRIEVED_AT)

    assert draft.classification == "government"
    assert draft.location.country == "United Kingdom"
    assert {"classification", "location.country"} <= draft.defaulted
    assert "status" not in draft.defaulted
    assert "type" not in draft.defaulted


def test_unmapped_fields_are_preserved_with_dotted_keys(config):
    draft = map_record(
        _govuk_record(details={"acronym": "DfE", "brand": "department-for-education"}),
        config.mapping_for(DataSourceType.GOV_UK_API),
        retrieved_at=RETRIEVED_AT,
    )

    props = draft.additional_properties
    assert props["analytics_identifier"] == "D6"
    assert props["details.brand"] == "department-for-education"
    assert props["links.parent_organisations"] == [{"title": "Cabinet Office"}]
    assert "title" not in props
    assert "content_id" not in props
    assert "details.acronym" not in props


def test_missing_required_name_raises_mapping_error(config):
    record = _govuk_record(title="   ")
    with pytest.raises(MappingError) as excinfo:
        map_record(record, config.mapping_for(DataSourceType.GOV_UK_API), retrieved_at=RETRIEVED_AT)

    assert excinfo.value.source == "gov_uk_api"
    assert excinfo.value.record_id == "abc-123"
    assert excinfo.value.field == "title"


def test_missing_required_classification_names_the_field(config):
    with pytest.raises(MappingError) as excinfo:
        _map(config, DataSourceType.ONS_INSTITUTIONAL, {"Organisation name": "Ofsted", "ONS code": "E0100"})
    assert excinfo.value.field == "Classification"
    assert excinfo.value.record_id == "E0100"


def test_record_without_source_id_is_identified_by_index(config):
    with pytest.raises(MappingError) as excinfo:
        _map(config, DataSourceType.NFCC, {"region": "North West"}, index=7)
    assert excinfo.value.record_id == "#7"


def test_overlong_name_is_rejected(config):
    with pytest.raises(MappingError):
        _map(config, DataSourceType.MANUAL, {"name": "x" * 501})


def test_unclassifiable_type_falls_back_to_other(config):
    draft = _map(config, DataSourceType.MANUAL, {"name": "Mystery Body", "type": "???"})

    assert draft.type == OrganisationType.OTHER
    assert "type" in draft.defaulted
    assert draft.status == OrganisationStatus.ACTIVE
    assert "status" in draft.defaulted


def test_later_rule_overrides_earlier_rule(config):
    draft = _map(
        config,
        DataSourceType.ONS_INSTITUTIONAL,
        {
            "Organisation name": "Countryside Agency",
            "ONS code": "E1234",
            "Classification": "Central Government - Executive NDPB",
            "Status": "Active",
            "End date": "31/03/2006",
        },
    )

    assert draft.type == OrganisationType.EXECUTIVE_NDPB
    assert draft.status == OrganisationStatus.DISSOLVED
    assert draft.dissolution_date == "2006-03-31"
    assert draft.identifiers == (("ons_code", "E1234"),)


def test_gias_coordinates_and_postcode(config):
    draft = _map(
        config,
        DataSourceType.GIAS,
        {
            "URN": 100000,
            "UKPRN": 10012345.0,
            "EstablishmentName": "Sir John Cass's Foundation Primary School",
            "EstablishmentStatus (name)": "Open",
            "Postcode": "ec3a5de",
            "Easting": 533498,
            "Northing": 181201,
        },
    )

    assert draft.type == OrganisationType.EDUCATIONAL_INSTITUTION
    assert draft.location.postcode == "EC3A 5DE"
    assert draft.location.country == "England"
    assert draft.location.coordinates is not None
    assert draft.location.coordinates.latitude == pytest.approx(51.514, abs=0.01)
    assert draft.location.coordinates.longitude == pytest.approx(-0.077, abs=0.01)
    assert draft.identifiers == (("urn", "100000"), ("ukprn", "10012345"))
    assert draft.reference.url.endswith("/Details/100000")
    assert "Easting" not in draft.additional_properties


def test_map_records_collects_failures_and_keeps_going(config):
    records = [
        RawRecord(source=DataSourceType.MANUAL, index=0, fields={"name": "Alpha Board"}),
        RawRecord(source=DataSourceType.MANUAL, index=1, fields={"type": "other"}),
        RawRecord(source=DataSourceType.MANUAL, index=2, fields={"name": "Gamma Board"}),
    ]

    drafts, failures = map_records(records, config.mapping_for(DataSourceType.MANUAL), retrieved_at=RETRIEVED_AT)

    assert [draft.name for draft in drafts] == ["Alpha Board", "Gamma Board"]
    assert len(failures) == 1
    assert failures[0].record_id == "#1"
