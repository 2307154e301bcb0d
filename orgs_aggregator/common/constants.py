"""Application constants."""

EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "source",
    "event",
    "status",
    "records_in",
    "records_out",
    "error_code",
    "message",
)
NAME_MAX_LENGTH = 500
# Slugs longer than this are truncated and suffixed with a digest.
ID_SLUG_MAX_LENGTH = 80
# Absolute tolerance for inclusive threshold comparisons on float scores.
SCORE_TOLERANCE = 1e-9
DEFAULT_COUNTRY = "United Kingdom"
