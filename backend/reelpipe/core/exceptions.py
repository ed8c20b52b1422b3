"""Error taxonomy shared by the API and the client library"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    EXPIRED_CREDENTIAL = "EXPIRED_CREDENTIAL"
    NOT_FOUND = "NOT_FOUND"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    VIDEO_NOT_READY = "VIDEO_NOT_READY"


class ReelpipeError(Exception):
    """Base class; every subclass maps to one error code and HTTP status"""

    code = ErrorCode.UPSTREAM_UNAVAILABLE
    status_code = 500

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        return {"code": self.code.value, "detail": self.message}


class ValidationError(ReelpipeError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = 422


class PermissionDeniedError(ReelpipeError):
    code = ErrorCode.PERMISSION_DENIED
    status_code = 403


class UpstreamUnavailableError(ReelpipeError):
    code = ErrorCode.UPSTREAM_UNAVAILABLE
    status_code = 503


class ExpiredCredentialError(ReelpipeError):
    code = ErrorCode.EXPIRED_CREDENTIAL
    status_code = 401


class NotFoundError(ReelpipeError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class PartialFailureError(ReelpipeError):
    """Local and upstream state diverged; reported as a warning, not raised by the API"""
    code = ErrorCode.PARTIAL_FAILURE
    status_code = 207


class UploadFailedError(ReelpipeError):
    """Fatal, non-retryable transfer error"""
    code = ErrorCode.UPLOAD_FAILED
    status_code = 400


class VideoNotReadyError(ReelpipeError):
    """Playback and downloads need a ready video"""
    code = ErrorCode.VIDEO_NOT_READY
    status_code = 400


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError,
        PermissionDeniedError,
        UpstreamUnavailableError,
        ExpiredCredentialError,
        NotFoundError,
        PartialFailureError,
        UploadFailedError,
        VideoNotReadyError,
    )
}


def error_from_payload(payload: dict, status: int) -> ReelpipeError:
    """Rebuild a typed error from an API error body"""
    code = payload.get("code") if isinstance(payload, dict) else None
    message = payload.get("detail") if isinstance(payload, dict) else None
    if not isinstance(message, str):
        message = f"Request failed with status {status}"
    try:
        cls = ERRORS_BY_CODE[ErrorCode(code)]
    except (ValueError, KeyError):
        if status == 404:
            cls = NotFoundError
        elif status in (401, 403):
            cls = PermissionDeniedError
        elif status == 422:
            cls = ValidationError
        else:
            cls = UpstreamUnavailableError
    return cls(message)
