import json
from pathlib import Path

import pytest

from orgs_aggregator.cli import main, parse_args, run_command
from orgs_aggregator.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from orgs_aggregator.common.fs import write_json

CONFIG_DIR = str(Path(__file__).resolve().parents[2] / "config")


def _write_snapshot(data_dir: Path, source: str, rows: list[dict]) -> None:
    write_json(data_dir / "raw" / f"{source}.json", {"retrieved_at": "2026-02-16T06:00:00Z", "rows": rows})


def _args(data_dir: Path, *extra: str):
    return parse_args(
        ["aggregate", "--config-dir", CONFIG_DIR, "--data-dir", str(data_dir), "--run-id", "run-test", *extra]
    )


@pytest.mark.integration
def test_aggregate_generates_expected_artifacts(tmp_path: Path):
    data_dir = tmp_path / "data"
    _write_snapshot(
        data_dir,
        "nhs_provider_directory",
        [
            {
                "ODS code": "RR8",
                "Name": "Leeds Teaching Hospitals NHS Trust",
                "Trust type": "Acute NHS Trust",
                "Region": "North East and Yorkshire",
                "Postcode": "ls97tf",
            }
        ],
    )
    _write_snapshot(data_dir, "manual", [{"name": "The Leeds Teaching Hospitals NHS Trust", "ods_code": "RR8"}])

    exit_code = run_command(_args(data_dir, "--max-errors", "20", "--csv"))

    assert exit_code == EXIT_SUCCESS
    out_dir = data_dir / "out"
    payload = json.loads((out_dir / "orgs.json").read_text(encoding="utf-8"))
    assert payload["metadata"]["statistics"]["totalOrganisations"] == 1
    assert payload["metadata"]["statistics"]["duplicatesFound"] == 1
    org = payload["organisations"][0]
    assert org["type"] == "nhs_trust"
    assert org["location"]["postcode"] == "LS9 7TF"
    assert json.loads((out_dir / "conflicts.json").read_text(encoding="utf-8")) == []
    assert (out_dir / "orgs.csv").read_text(encoding="utf-8").startswith("id,name,")
    summary = json.loads((out_dir / "reports" / "summary.json").read_text(encoding="utf-8"))
    assert summary["run_id"] == "run-test"
    assert summary["totals"]["organisations"] == 1
    assert (data_dir / "run_meta" / "run-test.log.jsonl").exists()


@pytest.mark.integration
def test_aggregate_reports_partial_run_when_errors_exceed_budget(tmp_path: Path):
    data_dir = tmp_path / "data"
    _write_snapshot(data_dir, "nfcc", [{"name": "Kent Fire and Rescue Service"}, {"region": "South East"}])
    (data_dir / "raw" / "police_uk.json").write_text("{broken", encoding="utf-8")

    exit_code = run_command(_args(data_dir))

    assert exit_code == EXIT_PARTIAL
    payload = json.loads((data_dir / "out" / "orgs.json").read_text(encoding="utf-8"))
    assert [org["name"] for org in payload["organisations"]] == ["Kent Fire and Rescue Service"]
    codes = {error["errorCode"] for error in payload["errors"]}
    assert {"MAPPING_ERROR", "SOURCE_UNAVAILABLE"} <= codes
    summary = json.loads((data_dir / "out" / "reports" / "summary.json").read_text(encoding="utf-8"))
    assert "police_uk" in summary["failed_sources"]
    assert summary["status"] == "partial"


@pytest.mark.integration
def test_main_returns_hard_fail_for_bad_config(tmp_path: Path):
    exit_code = main(["aggregate", "--config-dir", str(tmp_path / "missing"), "--data-dir", str(tmp_path / "data")])
    assert exit_code == EXIT_HARD_FAIL
