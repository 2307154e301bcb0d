from dataclasses import FrozenInstanceError

import pytest

from orgs_aggregator.common.models import AuditAction, AuditChange, DataSourceType
from orgs_aggregator.pipeline.audit import AuditTrail


def _trail():
    return AuditTrail(clock=lambda: "2026-02-17T12:00:00.000+00:00")


def test_records_are_sequential_and_immutable():
    trail = _trail()
    first = trail.record(AuditAction.CREATED, "org-a")
    second = trail.record("merged", "org-b", changes=[AuditChange("status", "dissolved", "active", DataSourceType.GOV_UK_API)])

    assert first.id == "audit-000001"
    assert second.id == "audit-000002"
    assert second.action == AuditAction.MERGED
    assert second.changes[0].to_dict() == {
        "field": "status",
        "oldValue": "dissolved",
        "newValue": "active",
        "source": "gov_uk_api",
    }
    with pytest.raises(FrozenInstanceError):
        first.action = AuditAction.FLAGGED


def test_history_filters_by_organisation_in_order():
    trail = _trail()
    trail.record(AuditAction.CREATED, "org-a")
    trail.record(AuditAction.CREATED, "org-b")
    trail.record(AuditAction.FLAGGED, "org-a", metadata={"reviewReasons": ["low_completeness"]})

    history = trail.history("org-a")

    assert [entry.action for entry in history] == [AuditAction.CREATED, AuditAction.FLAGGED]
    assert history[1].metadata["reviewReasons"] == ["low_completeness"]
    assert trail.history("org-missing") == ()
    assert len(trail) == 3


def test_records_view_does_not_expose_internal_list():
    trail = _trail()
    trail.record(AuditAction.CREATED, "org-a")
    snapshot = trail.records
    trail.record(AuditAction.UPDATED, "org-a")

    assert len(snapshot) == 1
    assert isinstance(snapshot, tuple)
    assert trail.records[0].to_dict()["changes"] is None
