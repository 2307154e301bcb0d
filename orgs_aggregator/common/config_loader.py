"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from orgs_aggregator.common.errors import ConfigError
from orgs_aggregator.common.fs import read_yaml
from orgs_aggregator.common.models import DataSourceType, OrganisationType
from orgs_aggregator.common.schema import validate_pipeline_config, validate_sources_config
from orgs_aggregator.pipeline.transformers import TRANSFORMERS

PIPELINE_FILENAME = "pipeline.yml"
SOURCES_FILENAME = "sources.yml"


@dataclass(frozen=True)
class FieldRule:
    source_field: str
    target_field: str
    transformer: str | None = None
    required: bool = False


@dataclass(frozen=True)
class SourceMapping:
    source: DataSourceType
    confidence: float
    rules: tuple[FieldRule, ...]
    source_id_field: str | None = None
    url_template: str | None = None
    # (identifier kind, source field) pairs, e.g. ("ons_code", "ONS code").
    identifiers: tuple[tuple[str, str], ...] = ()
    coordinates: Mapping[str, Any] | None = None
    defaults: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Thresholds:
    duplicate_similarity: float = 0.9
    min_completeness: float = 0.6
    min_source_confidence: float = 0.5


@dataclass(frozen=True)
class PipelineConfig:
    thresholds: Thresholds
    field_weights: Mapping[str, float]
    not_applicable: Mapping[OrganisationType, frozenset[str]]
    type_families: tuple[frozenset[OrganisationType], ...]
    sources: Mapping[DataSourceType, SourceMapping]

    def mapping_for(self, source: DataSourceType) -> SourceMapping | None:
        return self.sources.get(source)

    def with_thresholds(self, **overrides: float) -> "PipelineConfig":
        return replace(self, thresholds=replace(self.thresholds, **overrides))

    def with_source_confidence(self, source: DataSourceType, confidence: float) -> "PipelineConfig":
        sources = dict(self.sources)
        sources[source] = replace(sources[source], confidence=confidence)
        return replace(self, sources=MappingProxyType(sources))


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def _build_source_mapping(name: str, raw: dict) -> SourceMapping:
    rules = tuple(
        FieldRule(
            source_field=str(rule["source_field"]),
            target_field=rule["target_field"],
            transformer=rule.get("transformer"),
            required=bool(rule.get("required", False)),
        )
        for rule in raw["rules"]
    )
    identifiers = tuple((str(kind), str(src)) for kind, src in (raw.get("identifiers") or {}).items())
    coordinates = raw.get("coordinates")
    return SourceMapping(
        source=DataSourceType(name),
        confidence=float(raw["confidence"]),
        rules=rules,
        source_id_field=raw.get("source_id_field"),
        url_template=raw.get("url_template"),
        identifiers=identifiers,
        coordinates=MappingProxyType(dict(coordinates)) if coordinates else None,
        defaults=MappingProxyType(dict(raw.get("defaults") or {})),
    )


def build_pipeline_config(pipeline_cfg: dict, sources_cfg: dict) -> PipelineConfig:
    raw_thresholds = pipeline_cfg["thresholds"]
    thresholds = Thresholds(
        duplicate_similarity=float(raw_thresholds["duplicate_similarity"]),
        min_completeness=float(raw_thresholds["min_completeness"]),
        min_source_confidence=float(raw_thresholds["min_source_confidence"]),
    )
    quality = pipeline_cfg["quality"]
    not_applicable = {
        OrganisationType(org_type): frozenset(fields)
        for org_type, fields in (quality.get("not_applicable") or {}).items()
    }
    families = tuple(
        frozenset(OrganisationType(member) for member in members)
        for _name, members in sorted(pipeline_cfg["deduplication"]["type_families"].items())
    )
    sources = {
        DataSourceType(name): _build_source_mapping(name, raw)
        for name, raw in sources_cfg["sources"].items()
    }
    return PipelineConfig(
        thresholds=thresholds,
        field_weights=MappingProxyType({key: float(value) for key, value in quality["field_weights"].items()}),
        not_applicable=MappingProxyType(not_applicable),
        type_families=families,
        sources=MappingProxyType(sources),
    )


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> PipelineConfig:
    def _overlay(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    pipeline_cfg = validate_pipeline_config(
        _load_yaml_with_overlay(config_dir / PIPELINE_FILENAME, _overlay(PIPELINE_FILENAME)),
        allow_unknown=allow_unknown,
    )
    sources_cfg = validate_sources_config(
        _load_yaml_with_overlay(config_dir / SOURCES_FILENAME, _overlay(SOURCES_FILENAME)),
        transformer_names=set(TRANSFORMERS),
        allow_unknown=allow_unknown,
    )
    return build_pipeline_config(pipeline_cfg, sources_cfg)
