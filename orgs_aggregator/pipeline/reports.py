"""Run summary report."""

from __future__ import annotations

from collections import Counter
from pathlib import Path

from orgs_aggregator.common.fs import write_json
from orgs_aggregator.common.models import OrganisationStatus, ProcessingResult


def build_summary(result: ProcessingResult, run_id: str | None = None) -> dict:
    organisations = result.organisations
    statistics = result.metadata.statistics
    by_status = Counter(org.status.value for org in organisations)
    references = Counter(ref.source.value for org in organisations for ref in org.sources)
    completeness = [org.data_quality.completeness for org in organisations]
    failed_sources = [source.source.value for source in result.metadata.sources if source.record_count == 0]

    status = "success"
    if failed_sources:
        status = "error" if len(failed_sources) == len(result.metadata.sources) else "partial"
    elif result.errors:
        status = "partial"

    return {
        "run_id": run_id,
        "processed_at": result.metadata.processed_at,
        "status": status,
        "totals": {
            "organisations": statistics.total_organisations,
            "duplicates_found": statistics.duplicates_found,
            "conflicts_detected": statistics.conflicts_detected,
            "requires_review": sum(1 for org in organisations if org.data_quality.requires_review),
            "with_conflicts": sum(1 for org in organisations if org.data_quality.has_conflicts),
            "errors": len(result.errors),
        },
        "average_completeness": round(sum(completeness) / len(completeness), 4) if completeness else 0.0,
        "by_type": dict(statistics.organisations_by_type),
        "by_status": {status_value.value: by_status.get(status_value.value, 0) for status_value in OrganisationStatus},
        "references_by_source": dict(sorted(references.items())),
        "sources": [source.to_dict() for source in result.metadata.sources],
        "failed_sources": failed_sources,
    }


def write_run_summary(result: ProcessingResult, reports_dir: Path, run_id: str | None = None) -> Path:
    summary_path = reports_dir / "summary.json"
    write_json(summary_path, build_summary(result, run_id=run_id))
    return summary_path
