"""Named value transformers referenced from source mapping rules.

Every transformer takes one raw value and returns the canonical value, or
``None`` when the value cannot be interpreted. ``None`` leaves the target
field unset so defaults and fallbacks apply.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Callable

from orgs_aggregator.common.constants import DEFAULT_COUNTRY
from orgs_aggregator.common.models import OrganisationStatus, OrganisationType

Transformer = Callable[[Any], Any]

_WHITESPACE_RE = re.compile(r"\s+")
_UK_DATE_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
_YEAR_RE = re.compile(r"^(\d{4})$")
_TEXT_DATE_FORMATS = ("%d %B %Y", "%d %b %Y", "%B %Y", "%b %Y")

UK_UNIT_POSTCODE_RE = re.compile(r"^([A-Z]{1,2}\d[A-Z\d]?) (\d[A-Z]{2})$")
_EMBEDDED_POSTCODE_RE = re.compile(r"\b([A-Z]{1,2}\d[A-Z\d]?\s*\d[A-Z]{2})\b")

GOVUK_TYPE_MAP = {
    "ministerial_department": OrganisationType.MINISTERIAL_DEPARTMENT,
    "non_ministerial_department": OrganisationType.MINISTERIAL_DEPARTMENT,
    "executive_agency": OrganisationType.EXECUTIVE_AGENCY,
    "executive_office": OrganisationType.EXECUTIVE_AGENCY,
    "executive_ndpb": OrganisationType.EXECUTIVE_NDPB,
    "advisory_ndpb": OrganisationType.ADVISORY_NDPB,
    "tribunal_ndpb": OrganisationType.TRIBUNAL_NDPB,
    "tribunal": OrganisationType.TRIBUNAL_NDPB,
    "public_corporation": OrganisationType.PUBLIC_CORPORATION,
    "devolved_administration": OrganisationType.DEVOLVED_ADMINISTRATION,
    "court": OrganisationType.JUDICIAL_BODY,
    "special_health_authority": OrganisationType.NHS_TRUST,
    "civil_service": OrganisationType.OTHER,
    "other": OrganisationType.OTHER,
}

# Checked in order; more specific phrases must precede the generic ones.
CLASSIFICATION_PATTERNS: tuple[tuple[tuple[str, ...], OrganisationType], ...] = (
    (("community council", "town council", "parish council"), OrganisationType.COMMUNITY_COUNCIL),
    (("transport partnership",), OrganisationType.REGIONAL_TRANSPORT_PARTNERSHIP),
    (("health board", "integrated care board"), OrganisationType.HEALTH_BOARD),
    (("nhs foundation trust",), OrganisationType.NHS_FOUNDATION_TRUST),
    (("nhs trust",), OrganisationType.NHS_TRUST),
    (("police", "fire and rescue", "fire service", "ambulance"), OrganisationType.EMERGENCY_SERVICE),
    (("court",), OrganisationType.JUDICIAL_BODY),
    (("local authority", "council"), OrganisationType.LOCAL_AUTHORITY),
    (("executive agency",), OrganisationType.EXECUTIVE_AGENCY),
    (("executive ndpb", "executive non-departmental"), OrganisationType.EXECUTIVE_NDPB),
    (("advisory ndpb", "advisory non-departmental"), OrganisationType.ADVISORY_NDPB),
    (("tribunal",), OrganisationType.TRIBUNAL_NDPB),
    (("ndpb", "non-departmental"), OrganisationType.NDPB),
    (("ministerial", "department"), OrganisationType.MINISTERIAL_DEPARTMENT),
    (("public corporation",), OrganisationType.PUBLIC_CORPORATION),
    (("devolved",), OrganisationType.DEVOLVED_ADMINISTRATION),
    (("college", "school", "academy", "university"), OrganisationType.EDUCATIONAL_INSTITUTION),
)

_DISSOLVED_WORDS = ("dissolved", "closed", "defunct", "abolished", "merged")
_INACTIVE_WORDS = ("inactive", "dormant", "suspended", "exempted")

LOCALE_COUNTRIES = {
    "en-gb": DEFAULT_COUNTRY,
    "en-uk": DEFAULT_COUNTRY,
    "cy-gb": "Wales",
    "gd-gb": "Scotland",
    "en-us": "United States",
    "en": DEFAULT_COUNTRY,
}


def clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = _WHITESPACE_RE.sub(" ", str(value)).strip()
    return text or None


def map_govuk_type(value: Any) -> OrganisationType | None:
    text = clean_text(value)
    if text is None:
        return None
    return GOVUK_TYPE_MAP.get(text.lower())


def infer_type_from_classification(value: Any) -> OrganisationType | None:
    text = clean_text(value)
    if text is None:
        return None
    lower = text.lower()
    for phrases, org_type in CLASSIFICATION_PATTERNS:
        if any(phrase in lower for phrase in phrases):
            return org_type
    return None


def organisation_type(value: Any) -> OrganisationType | None:
    text = clean_text(value)
    if text is None:
        return None
    try:
        return OrganisationType(text.lower())
    except ValueError:
        return infer_type_from_classification(text)


def map_status(value: Any) -> OrganisationStatus:
    text = clean_text(value)
    if text is None:
        return OrganisationStatus.ACTIVE
    lower = text.lower()
    # "inactive" contains "active", so check the negative states first.
    if any(word in lower for word in _DISSOLVED_WORDS):
        return OrganisationStatus.DISSOLVED
    if any(word in lower for word in _INACTIVE_WORDS):
        return OrganisationStatus.INACTIVE
    return OrganisationStatus.ACTIVE


def parse_date(value: Any) -> str | None:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = clean_text(value)
    if text is None:
        return None

    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(candidate).date().isoformat()
    except ValueError:
        pass

    uk_match = _UK_DATE_RE.match(text)
    if uk_match:
        day, month, year = (int(part) for part in uk_match.groups())
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None

    year_match = _YEAR_RE.match(text)
    if year_match:
        return f"{year_match.group(1)}-01-01"

    for fmt in _TEXT_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def extract_acronym(value: Any) -> list[str] | None:
    text = clean_text(value)
    return [text] if text else None


def split_names(value: Any) -> list[str] | None:
    if isinstance(value, (list, tuple)):
        names = [clean_text(item) for item in value]
    else:
        text = clean_text(value)
        if text is None:
            return None
        names = [clean_text(part) for part in text.split(";")]
    kept = [name for name in names if name]
    return kept or None


def map_locale(value: Any) -> str | None:
    text = clean_text(value)
    if text is None:
        return None
    return LOCALE_COUNTRIES.get(text.lower(), DEFAULT_COUNTRY)


def withdrawn_status(value: Any) -> OrganisationStatus | None:
    if value is True or (isinstance(value, str) and value.strip().lower() in {"true", "yes", "1"}):
        return OrganisationStatus.DISSOLVED
    return None


def end_date_status(value: Any) -> OrganisationStatus | None:
    return OrganisationStatus.DISSOLVED if parse_date(value) else None


def normalise_postcode(value: Any) -> str | None:
    text = clean_text(value)
    if text is None:
        return None
    cleaned = text.upper()
    # Address fields often carry the postcode at the end.
    if len(cleaned) > 8:
        embedded = _EMBEDDED_POSTCODE_RE.search(cleaned)
        if embedded is None:
            return None
        cleaned = embedded.group(1)
    compact = re.sub(r"[^A-Z0-9]", "", cleaned)
    if not 5 <= len(compact) <= 7:
        return None
    formatted = f"{compact[:-3]} {compact[-3:]}"
    return formatted if UK_UNIT_POSTCODE_RE.match(formatted) else None


def source_code(value: Any) -> str | None:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return clean_text(value)


TRANSFORMERS: dict[str, Transformer] = {
    "text": clean_text,
    "govuk_type": map_govuk_type,
    "classification_type": infer_type_from_classification,
    "organisation_type": organisation_type,
    "status": map_status,
    "date": parse_date,
    "acronym": extract_acronym,
    "names": split_names,
    "locale_country": map_locale,
    "withdrawn_status": withdrawn_status,
    "end_date_status": end_date_status,
    "postcode": normalise_postcode,
    "code": source_code,
}


def get_transformer(name: str | None) -> Transformer:
    if name is None:
        return clean_text
    return TRANSFORMERS[name]
