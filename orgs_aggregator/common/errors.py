"""Domain errors and failure typing."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for aggregation failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class ContractError(PipelineError):
    """Raised when the assembled result breaks its output contract."""

    error_code = "CONTRACT_ERROR"


class StageError(PipelineError):
    """Raised for orchestration failures outside the core pipeline."""

    error_code = "STAGE_ERROR"


class ResolutionError(PipelineError):
    """Raised when a manual conflict resolution cannot be applied."""

    error_code = "RESOLUTION_ERROR"


class RecordError(PipelineError):
    """A single raw record could not be turned into a draft.

    Record errors are always recovered locally: the record is skipped and
    reported in the result metadata.
    """

    error_code = "RECORD_ERROR"

    def __init__(self, message: str, *, source: str, record_id: str | None = None) -> None:
        self.source = source
        self.record_id = record_id
        super().__init__(message)


class MappingError(RecordError):
    error_code = "MAPPING_ERROR"

    def __init__(
        self,
        message: str,
        *,
        source: str,
        record_id: str | None = None,
        field: str | None = None,
    ) -> None:
        self.field = field
        super().__init__(message, source=source, record_id=record_id)


class NormalisationError(RecordError):
    error_code = "NORMALISATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        source: str,
        record_id: str | None = None,
        name: str | None = None,
    ) -> None:
        self.name = name
        super().__init__(message, source=source, record_id=record_id)
