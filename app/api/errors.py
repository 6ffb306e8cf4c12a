"""
PipelineError -> HTTPException mapping shared by the routers.
"""

import uuid

from fastapi import HTTPException, status

from app.errors import (
    AlreadyFrozenError, DraftConflictError, DraftFrozenError, DraftNotFoundError, ExtractionFailedError,
    ExtractionTimeoutError, NoInputError, PipelineError, ShipmentNotFoundError,
    UnsupportedFormatError, UploadTooLargeError,
)

STATUS_BY_ERROR: dict[type[PipelineError], int] = {
    NoInputError: status.HTTP_400_BAD_REQUEST,
    UnsupportedFormatError: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    UploadTooLargeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    ExtractionFailedError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ExtractionTimeoutError: status.HTTP_504_GATEWAY_TIMEOUT,
    DraftNotFoundError: status.HTTP_404_NOT_FOUND,
    ShipmentNotFoundError: status.HTTP_404_NOT_FOUND,
    DraftFrozenError: status.HTTP_409_CONFLICT,
    AlreadyFrozenError: status.HTTP_409_CONFLICT,
    DraftConflictError: status.HTTP_409_CONFLICT,
}


def to_http(error: PipelineError) -> HTTPException:
    code = next(
        (s for cls, s in STATUS_BY_ERROR.items() if isinstance(error, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return HTTPException(status_code=code, detail={"error": error.message, "error_code": error.error_code})


def parse_id(value: str, kind: str = "draft") -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": f"Invalid {kind} id: {value}", "error_code": "ERR_BAD_ID"},
        )
