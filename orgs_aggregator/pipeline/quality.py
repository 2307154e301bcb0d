"""Completeness scoring and review flags for merged organisations."""

from __future__ import annotations

from typing import Iterable

from orgs_aggregator.common.config_loader import PipelineConfig
from orgs_aggregator.common.models import DataQuality, Organisation, OrganisationStatus, OrganisationType

LOW_COMPLETENESS = "low_completeness"


def _populated(organisation: Organisation, field: str) -> bool:
    if field == "type":
        return organisation.type != OrganisationType.OTHER
    if field == "location":
        location = organisation.location
        if location is None:
            return False
        return any(
            (location.country, location.region, location.address, location.postcode, location.coordinates)
        )
    value = getattr(organisation, field)
    if isinstance(value, (list, tuple)):
        return bool(value)
    return value not in (None, "")


def applicable_fields(organisation: Organisation, config: PipelineConfig) -> list[str]:
    excluded = set(config.not_applicable.get(organisation.type, frozenset()))
    if organisation.status != OrganisationStatus.DISSOLVED:
        excluded.add("dissolution_date")
    return [field for field in config.field_weights if field not in excluded]


def completeness(organisation: Organisation, config: PipelineConfig) -> float:
    fields = applicable_fields(organisation, config)
    total = sum(config.field_weights[field] for field in fields)
    if total <= 0:
        return 0.0
    populated = sum(config.field_weights[field] for field in fields if _populated(organisation, field))
    return min(max(populated / total, 0.0), 1.0)


def score(
    organisation: Organisation,
    config: PipelineConfig,
    *,
    conflict_fields: Iterable[str] = (),
    resolved_fields: Iterable[str] = (),
    extra_reasons: Iterable[str] = (),
) -> DataQuality:
    """Score one organisation.

    ``conflict_fields`` lists every field with a recorded conflict;
    ``resolved_fields`` those whose conflict has a manual resolution and so no
    longer needs review.
    """
    conflicts = tuple(dict.fromkeys(conflict_fields))
    resolved = set(resolved_fields)
    ratio = completeness(organisation, config)

    reasons = [f"conflict:{field}" for field in conflicts if field not in resolved]
    if ratio < config.thresholds.min_completeness:
        reasons.append(LOW_COMPLETENESS)
    for reference in organisation.sources:
        if reference.confidence < config.thresholds.min_source_confidence:
            reasons.append(f"low_source_confidence:{reference.source.value}")
    reasons.extend(extra_reasons)
    reasons = list(dict.fromkeys(reasons))

    return DataQuality(
        completeness=round(ratio, 4),
        has_conflicts=bool(conflicts),
        requires_review=bool(reasons),
        conflict_fields=conflicts,
        review_reasons=tuple(reasons),
    )
