"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from orgs_aggregator.common.errors import ConfigError
from orgs_aggregator.common.models import DataSourceType, OrganisationType

TARGET_FIELDS = {
    "name",
    "alternative_names",
    "type",
    "classification",
    "parent_organisation",
    "controlling_unit",
    "status",
    "establishment_date",
    "dissolution_date",
    "location.country",
    "location.region",
    "location.address",
    "location.postcode",
}
QUALITY_FIELDS = {
    "name",
    "alternative_names",
    "type",
    "classification",
    "parent_organisation",
    "controlling_unit",
    "status",
    "establishment_date",
    "dissolution_date",
    "location",
}
THRESHOLD_KEYS = {"duplicate_similarity", "min_completeness", "min_source_confidence"}


def _assert_mapping(obj: object, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_unit_interval(value: object, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
        raise ConfigError(f"{ctx} must be a number in [0, 1], got {value!r}")


def _assert_org_types(values: object, ctx: str) -> None:
    known = {member.value for member in OrganisationType}
    for value in values if isinstance(values, list) else [values]:
        if value not in known:
            raise ConfigError(f"Unknown organisation type in {ctx}: {value}")


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "pipeline config")
    required = {"thresholds", "quality", "deduplication"}
    _assert_required_keys(cfg, required, "pipeline config")
    _assert_no_unknown_keys(cfg, required, "pipeline config", allow_unknown)

    thresholds = _assert_mapping(cfg["thresholds"], "thresholds")
    _assert_required_keys(thresholds, THRESHOLD_KEYS, "thresholds")
    _assert_no_unknown_keys(thresholds, THRESHOLD_KEYS, "thresholds", allow_unknown)
    for key in sorted(THRESHOLD_KEYS):
        _assert_unit_interval(thresholds[key], f"thresholds.{key}")

    quality = _assert_mapping(cfg["quality"], "quality")
    _assert_required_keys(quality, {"field_weights"}, "quality")
    weights = _assert_mapping(quality["field_weights"], "quality.field_weights")
    unknown_fields = set(weights) - QUALITY_FIELDS
    if unknown_fields:
        raise ConfigError(f"Unknown quality fields: {', '.join(sorted(unknown_fields))}")
    for name, weight in weights.items():
        if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight <= 0:
            raise ConfigError(f"quality.field_weights.{name} must be a positive number")
    for org_type, fields in (quality.get("not_applicable") or {}).items():
        _assert_org_types(org_type, "quality.not_applicable")
        if not isinstance(fields, list) or set(fields) - QUALITY_FIELDS:
            raise ConfigError(f"quality.not_applicable.{org_type} must list known quality fields")

    dedup = _assert_mapping(cfg["deduplication"], "deduplication")
    _assert_required_keys(dedup, {"type_families"}, "deduplication")
    families = _assert_mapping(dedup["type_families"], "deduplication.type_families")
    for family, members in families.items():
        if not isinstance(members, list) or not members:
            raise ConfigError(f"deduplication.type_families.{family} must be a non-empty list")
        _assert_org_types(members, f"deduplication.type_families.{family}")

    return cfg


def _validate_rule(rule: object, ctx: str, transformer_names: set[str]) -> None:
    rule = _assert_mapping(rule, ctx)
    _assert_required_keys(rule, {"source_field", "target_field"}, ctx)
    _assert_no_unknown_keys(rule, {"source_field", "target_field", "transformer", "required"}, ctx, False)
    if rule["target_field"] not in TARGET_FIELDS:
        raise ConfigError(f"Unknown target field in {ctx}: {rule['target_field']}")
    transformer = rule.get("transformer")
    if transformer is not None and transformer not in transformer_names:
        raise ConfigError(f"Unknown transformer in {ctx}: {transformer}")


def validate_sources_config(cfg: dict, *, transformer_names: set[str], allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "sources config")
    _assert_required_keys(cfg, {"sources"}, "sources config")
    sources = _assert_mapping(cfg["sources"], "sources")
    if not sources:
        raise ConfigError("sources must define at least one source mapping")

    known_sources = {member.value for member in DataSourceType}
    source_known_keys = {
        "confidence",
        "source_id_field",
        "url_template",
        "identifiers",
        "coordinates",
        "defaults",
        "rules",
    }
    for name, mapping in sources.items():
        ctx = f"sources.{name}"
        if name not in known_sources:
            raise ConfigError(f"Unknown data source: {name}")
        mapping = _assert_mapping(mapping, ctx)
        _assert_required_keys(mapping, {"confidence", "rules"}, ctx)
        _assert_no_unknown_keys(mapping, source_known_keys, ctx, allow_unknown)
        _assert_unit_interval(mapping["confidence"], f"{ctx}.confidence")

        rules = mapping["rules"]
        if not isinstance(rules, list) or not rules:
            raise ConfigError(f"{ctx}.rules must be a non-empty list")
        for idx, rule in enumerate(rules):
            _validate_rule(rule, f"{ctx}.rules[{idx}]", transformer_names)
        if not any(rule["target_field"] == "name" for rule in rules):
            raise ConfigError(f"{ctx}.rules must map a name field")

        defaults = _assert_mapping(mapping.get("defaults") or {}, f"{ctx}.defaults")
        unknown_defaults = set(defaults) - TARGET_FIELDS
        if unknown_defaults:
            raise ConfigError(f"Unknown default fields in {ctx}: {', '.join(sorted(unknown_defaults))}")
        if "type" in defaults:
            _assert_org_types(defaults["type"], f"{ctx}.defaults.type")

        _assert_mapping(mapping.get("identifiers") or {}, f"{ctx}.identifiers")
        coordinates = mapping.get("coordinates")
        if coordinates is not None:
            coordinates = _assert_mapping(coordinates, f"{ctx}.coordinates")
            _assert_required_keys(coordinates, {"x_field", "y_field", "epsg"}, f"{ctx}.coordinates")

    return cfg
