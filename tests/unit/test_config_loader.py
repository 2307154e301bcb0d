import shutil
from pathlib import Path

import pytest

from orgs_aggregator.common.config_loader import load_all_configs
from orgs_aggregator.common.errors import ConfigError
from orgs_aggregator.common.models import DataSourceType, OrganisationType


def _copy_base(config_dir: Path, tmp_path: Path) -> tuple[Path, Path]:
    base = tmp_path / "base"
    overlay = tmp_path / "overlay"
    shutil.copytree(config_dir, base)
    overlay.mkdir()
    return base, overlay


def test_load_all_configs_from_repo_config_dir(config_dir: Path):
    config = load_all_configs(config_dir)

    assert config.thresholds.duplicate_similarity == 0.9
    assert config.thresholds.min_completeness == 0.6
    assert config.thresholds.min_source_confidence == 0.5
    assert set(config.sources) == set(DataSourceType)
    assert config.mapping_for(DataSourceType.GOV_UK_API).confidence == 1.0
    assert config.mapping_for(DataSourceType.MANUAL).confidence < 0.5
    assert config.field_weights["name"] == 1.0
    assert config.field_weights["location"] == 0.5
    assert "parent_organisation" in config.not_applicable[OrganisationType.LOCAL_AUTHORITY]


def test_gias_mapping_carries_coordinates_and_identifiers(config):
    gias = config.mapping_for(DataSourceType.GIAS)

    assert gias.coordinates["epsg"] == 27700
    assert dict(gias.identifiers) == {"urn": "URN", "ukprn": "UKPRN"}
    assert gias.rules[0].target_field == "name"
    assert gias.rules[0].required is True


def test_config_is_immutable_and_overridable(config):
    relaxed = config.with_thresholds(duplicate_similarity=0.8)
    assert relaxed.thresholds.duplicate_similarity == 0.8
    assert config.thresholds.duplicate_similarity == 0.9

    trusted = config.with_source_confidence(DataSourceType.MANUAL, 0.9)
    assert trusted.mapping_for(DataSourceType.MANUAL).confidence == 0.9
    assert config.mapping_for(DataSourceType.MANUAL).confidence == 0.4

    with pytest.raises(TypeError):
        config.sources[DataSourceType.MANUAL] = None


def test_load_all_configs_applies_overlay_values(config_dir: Path, tmp_path: Path):
    base, overlay = _copy_base(config_dir, tmp_path)
    (overlay / "pipeline.yml").write_text(
        """thresholds:
  duplicate_similarity: 0.95
""",
        encoding="utf-8",
    )
    (overlay / "sources.yml").write_text(
        """sources:
  manual:
    confidence: 0.7
""",
        encoding="utf-8",
    )

    config = load_all_configs(base, overlay_config_dir=overlay)

    assert config.thresholds.duplicate_similarity == 0.95
    assert config.thresholds.min_completeness == 0.6
    assert config.mapping_for(DataSourceType.MANUAL).confidence == 0.7
    assert config.mapping_for(DataSourceType.MANUAL).rules


def test_load_all_configs_ignores_empty_overlay_file(config_dir: Path, tmp_path: Path):
    base, overlay = _copy_base(config_dir, tmp_path)
    (overlay / "pipeline.yml").write_text("", encoding="utf-8")

    config = load_all_configs(base, overlay_config_dir=overlay)
    assert config.thresholds.duplicate_similarity == 0.9


def test_load_all_configs_rejects_non_mapping_overlay(config_dir: Path, tmp_path: Path):
    base, overlay = _copy_base(config_dir, tmp_path)
    (overlay / "sources.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_all_configs(base, overlay_config_dir=overlay)


def test_load_all_configs_requires_base_files(tmp_path: Path):
    with pytest.raises(ConfigError, match="Missing config file"):
        load_all_configs(tmp_path)
