from __future__ import annotations

from typing import Any

from server.models import JobErrorCode


class JobCommandError(Exception):
    """Base class for failures that terminate a job command with a client-visible error."""

    default_code = JobErrorCode.ENGINE_ERROR

    def __init__(
        self,
        message: str,
        code: JobErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = dict(details or {})

    def to_payload(self, job_id: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            payload["details"] = self.details
        if job_id:
            payload["job_id"] = job_id
        return payload


class AuthorizationDenied(JobCommandError):
    """Raised by an authorization gate when the caller may not touch a job or application."""

    default_code = JobErrorCode.AUTHORIZATION_DENIED


class JobValidationError(JobCommandError):
    """Raised for missing, duplicate or unsupported parameters, payloads and paths."""

    default_code = JobErrorCode.UNSUPPORTED_PARAMETER_VALUE

    @classmethod
    def unsupported(cls, param: str, value: Any) -> "JobValidationError":
        return cls(
            f"Invalid parameter value, [{param}] = [{value}]",
            JobErrorCode.UNSUPPORTED_PARAMETER_VALUE,
            {"param": param, "value": value},
        )

    @classmethod
    def missing(cls, param: str) -> "JobValidationError":
        return cls(
            f"Missing parameter [{param}]",
            JobErrorCode.MISSING_PARAMETER,
            {"param": param},
        )


class JobEngineError(JobCommandError):
    """Deterministic business-rule violation reported by a job engine."""

    default_code = JobErrorCode.ENGINE_ERROR


class JobNotFoundError(JobEngineError):
    default_code = JobErrorCode.JOB_NOT_FOUND


class JobOperationNotSupported(JobEngineError):
    default_code = JobErrorCode.NOT_SUPPORTED


class JobTransportError(Exception):
    """I/O failure while reading a request payload or writing a response."""
