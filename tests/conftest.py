from pathlib import Path

import pytest

from orgs_aggregator.common.config_loader import load_all_configs
from orgs_aggregator.common.models import (
    DataSourceReference,
    DataSourceType,
    OrganisationDraft,
    OrganisationStatus,
    OrganisationType,
)
from orgs_aggregator.pipeline.identity import assign_identity

REPO_ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = REPO_ROOT / "config"
RETRIEVED_AT = "2026-01-01T00:00:00.000+00:00"


@pytest.fixture(scope="session")
def config_dir() -> Path:
    return CONFIG_DIR


@pytest.fixture(scope="session")
def config():
    return load_all_configs(CONFIG_DIR)


@pytest.fixture
def fixed_clock():
    return lambda: "2026-02-17T12:00:00.000+00:00"


@pytest.fixture
def make_draft():
    def _make(
        name: str,
        *,
        source: DataSourceType = DataSourceType.MANUAL,
        index: int = 0,
        org_type: OrganisationType = OrganisationType.OTHER,
        status: OrganisationStatus = OrganisationStatus.ACTIVE,
        confidence: float = 0.9,
        retrieved_at: str = RETRIEVED_AT,
        source_id: str | None = None,
        **fields,
    ) -> OrganisationDraft:
        reference = DataSourceReference(
            source=source,
            retrieved_at=retrieved_at,
            confidence=confidence,
            source_id=source_id,
        )
        draft = OrganisationDraft(
            source=source,
            record_index=index,
            name=name,
            type=org_type,
            status=status,
            reference=reference,
            **fields,
        )
        return assign_identity(draft)

    return _make
