"""
Domain error taxonomy.

Every error carries a stable error_code so the API layer can tell
"not found" from "wrong state" without parsing messages.
Per-field extraction misses are never raised; they surface as warnings.
"""


class PipelineError(Exception):
    """Base class for all domain errors."""

    error_code = "ERR_PIPELINE"

    def __init__(self, message: str, error_code: str | None = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        super().__init__(message)


# ── Upload / extraction ──────────────────────────────────────

class NoInputError(PipelineError):
    error_code = "ERR_NO_INPUT"


class UnsupportedFormatError(PipelineError):
    error_code = "ERR_UNSUPPORTED_FORMAT"


class UploadTooLargeError(PipelineError):
    error_code = "ERR_TOO_LARGE"


class ExtractionFailedError(PipelineError):
    """All text recovery strategies failed or returned empty text."""
    error_code = "ERR_EXTRACTION_FAILED"


class ExtractionTimeoutError(PipelineError):
    error_code = "ERR_TIMEOUT"


class ReconciliationUnavailableError(PipelineError):
    """Non-fatal: the caller keeps the deterministic record."""
    error_code = "ERR_RECONCILIATION"


# ── Draft lifecycle ──────────────────────────────────────────

class DraftNotFoundError(PipelineError):
    error_code = "ERR_DRAFT_NOT_FOUND"


class DraftFrozenError(PipelineError):
    """Mutating a draft that is already frozen."""
    error_code = "ERR_DRAFT_FROZEN"


class AlreadyFrozenError(PipelineError):
    """Second freeze of the same draft."""
    error_code = "ERR_ALREADY_FROZEN"


class ShipmentNotFoundError(PipelineError):
    error_code = "ERR_SHIPMENT_NOT_FOUND"


class DraftConflictError(PipelineError):
    """A draft kept changing underneath a save or freeze."""
    error_code = "ERR_DRAFT_CONFLICT"
