import pytest

from orgs_aggregator.common.models import OrganisationStatus, OrganisationType
from orgs_aggregator.pipeline.transformers import (
    TRANSFORMERS,
    clean_text,
    end_date_status,
    extract_acronym,
    get_transformer,
    infer_type_from_classification,
    map_govuk_type,
    map_locale,
    map_status,
    normalise_postcode,
    organisation_type,
    parse_date,
    source_code,
    split_names,
    withdrawn_status,
)


def test_clean_text_collapses_whitespace_and_blanks():
    assert clean_text("  Home   Office \n") == "Home Office"
    assert clean_text("   ") is None
    assert clean_text(None) is None


def test_map_govuk_type_known_and_unknown():
    assert map_govuk_type("ministerial_department") == OrganisationType.MINISTERIAL_DEPARTMENT
    assert map_govuk_type("Executive_NDPB") == OrganisationType.EXECUTIVE_NDPB
    assert map_govuk_type("court") == OrganisationType.JUDICIAL_BODY
    assert map_govuk_type("something_new") is None


@pytest.mark.parametrize(
    ("classification", "expected"),
    [
        ("Central Government - Executive Agency", OrganisationType.EXECUTIVE_AGENCY),
        ("NHS Foundation Trust", OrganisationType.NHS_FOUNDATION_TRUST),
        ("NHS Trust", OrganisationType.NHS_TRUST),
        ("Town Council", OrganisationType.COMMUNITY_COUNCIL),
        ("Local Government - County Council", OrganisationType.LOCAL_AUTHORITY),
        ("Police Force", OrganisationType.EMERGENCY_SERVICE),
        ("Crown Court", OrganisationType.JUDICIAL_BODY),
        ("Executive NDPB", OrganisationType.EXECUTIVE_NDPB),
        ("Regional Transport Partnership", OrganisationType.REGIONAL_TRANSPORT_PARTNERSHIP),
        ("Further Education College", OrganisationType.EDUCATIONAL_INSTITUTION),
    ],
)
def test_infer_type_from_classification(classification, expected):
    assert infer_type_from_classification(classification) == expected


def test_infer_type_returns_none_for_unrecognised_text():
    assert infer_type_from_classification("Miscellaneous") is None


def test_organisation_type_accepts_enum_values_and_free_text():
    assert organisation_type("health_board") == OrganisationType.HEALTH_BOARD
    assert organisation_type("Fire and Rescue Service") == OrganisationType.EMERGENCY_SERVICE
    assert organisation_type(None) is None


def test_map_status_checks_negative_states_before_active():
    assert map_status("Inactive") == OrganisationStatus.INACTIVE
    assert map_status("closed") == OrganisationStatus.DISSOLVED
    assert map_status("Abolished in 2012") == OrganisationStatus.DISSOLVED
    assert map_status("live") == OrganisationStatus.ACTIVE
    assert map_status(None) == OrganisationStatus.ACTIVE


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2020-04-01", "2020-04-01"),
        ("2020-04-01T09:30:00Z", "2020-04-01"),
        ("01/04/2020", "2020-04-01"),
        ("1-4-2020", "2020-04-01"),
        ("1 April 2020", "2020-04-01"),
        ("2020", "2020-01-01"),
        ("31/02/2020", None),
        ("not a date", None),
    ],
)
def test_parse_date_formats(raw, expected):
    assert parse_date(raw) == expected


def test_acronym_and_name_lists():
    assert extract_acronym(" DfE ") == ["DfE"]
    assert extract_acronym("") is None
    assert split_names("Dept for Education; DfE ;") == ["Dept for Education", "DfE"]
    assert split_names(["A", " ", "B"]) == ["A", "B"]


def test_locale_and_withdrawn_and_end_date_status():
    assert map_locale("cy-GB") == "Wales"
    assert map_locale("fr") == "United Kingdom"
    assert withdrawn_status(True) == OrganisationStatus.DISSOLVED
    assert withdrawn_status("false") is None
    assert end_date_status("31/03/2015") == OrganisationStatus.DISSOLVED
    assert end_date_status("") is None


def test_normalise_postcode_variants():
    assert normalise_postcode("sw1a2aa") == "SW1A 2AA"
    assert normalise_postcode("10 Downing Street, London SW1A 2AA") == "SW1A 2AA"
    assert normalise_postcode("12345") is None


def test_source_code_drops_float_suffix():
    assert source_code(100123.0) == "100123"
    assert source_code(" E0600001 ") == "E0600001"


def test_get_transformer_defaults_to_clean_text():
    assert get_transformer(None) is clean_text
    assert set(TRANSFORMERS) >= {"status", "date", "govuk_type", "postcode"}
    with pytest.raises(KeyError):
        get_transformer("missing")
