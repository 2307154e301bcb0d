"""CLI entrypoint for the public-sector organisation aggregator."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from orgs_aggregator.common.config_loader import load_all_configs
from orgs_aggregator.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from orgs_aggregator.common.errors import PipelineError, StageError
from orgs_aggregator.common.fs import read_json
from orgs_aggregator.common.ids import generate_run_id
from orgs_aggregator.common.logging import build_logger, log_event
from orgs_aggregator.common.models import DataSourceType
from orgs_aggregator.common.time_utils import utc_timestamp_iso
from orgs_aggregator.pipeline.aggregate import Aggregator
from orgs_aggregator.pipeline.export import write_conflicts_json, write_organisations_csv, write_result_json
from orgs_aggregator.pipeline.reports import write_run_summary
from orgs_aggregator.pipeline.validate import validate_result


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=["aggregate"])
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--max-errors", type=int, default=0)
    parser.add_argument("--csv", action="store_true")
    return parser.parse_args(argv)


def load_snapshot(data_dir: Path, source: DataSourceType) -> tuple[list[dict], str]:
    """Read ``raw/<source>.json``; a missing snapshot is an empty batch."""
    path = data_dir / "raw" / f"{source.value}.json"
    if not path.exists():
        return [], utc_timestamp_iso()
    try:
        payload = read_json(path)
    except ValueError as exc:
        raise StageError(f"Unreadable snapshot {path}: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("rows", []), list):
        raise StageError(f"Snapshot {path} must be an object with a 'rows' list")
    return payload.get("rows", []), payload.get("retrieved_at") or utc_timestamp_iso()


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    config = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
    aggregator = Aggregator(config, logger=logger, run_id=run_id)

    log_event(logger, "stage start", run_id=run_id, stage="ingest", event="STAGE_START", status="ok")
    for source in DataSourceType:
        if config.mapping_for(source) is None:
            continue
        try:
            rows, retrieved_at = load_snapshot(data_dir, source)
        except StageError as exc:
            log_event(
                logger,
                str(exc),
                run_id=run_id,
                stage="ingest",
                source=source.value,
                event="STAGE_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            rows, retrieved_at = [], utc_timestamp_iso()
        aggregator.ingest(source, rows, retrieved_at)

    result = validate_result(aggregator.get_result())

    out_dir = data_dir / "out"
    write_result_json(result, out_dir)
    write_conflicts_json(result, out_dir)
    if args.csv:
        write_organisations_csv(result, out_dir)
    write_run_summary(result, out_dir / "reports", run_id=run_id)
    log_event(
        logger,
        "stage end",
        run_id=run_id,
        stage="assemble",
        event="STAGE_END",
        status="ok",
        records_out=len(result.organisations),
    )

    if len(result.errors) > args.max_errors:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
