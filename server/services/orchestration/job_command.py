from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional

from ...config import config
from .job_errors import (
    AuthorizationDenied,
    JobCommandError,
    JobNotFoundError,
    JobValidationError,
)


@dataclass(frozen=True)
class JobCommand:
    """
    One inbound request against a job.

    `selector` is the raw `action` (PUT) or `show` (GET) value; `payload` is
    the undecoded request body; `params` carries every other query parameter
    through to the engine.
    """

    job_id: str
    caller: str
    selector: Optional[str] = None
    payload: Optional[bytes] = None
    content_type: Optional[str] = None
    timezone: str = field(default_factory=lambda: str(config.JOBS.DEFAULT_TIMEZONE))
    params: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))


class JobResultKind(str, Enum):
    OK = "ok"
    AUTH_DENIED = "auth_denied"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    ENGINE_ERROR = "engine_error"


class JobBodyKind(str, Enum):
    NONE = "none"
    JSON = "json"
    TEXT = "text"
    STREAM = "stream"


@dataclass(frozen=True)
class JobResult:
    kind: JobResultKind
    body_kind: JobBodyKind = JobBodyKind.NONE
    body: Any = None
    media_type: Optional[str] = None
    timezone: Optional[str] = None
    error: Optional[JobCommandError] = None

    @property
    def ok(self) -> bool:
        return self.kind == JobResultKind.OK

    @classmethod
    def empty(cls) -> "JobResult":
        return cls(kind=JobResultKind.OK)

    @classmethod
    def json(cls, body: Any, timezone: Optional[str] = None) -> "JobResult":
        if body is None:
            return cls.empty()
        return cls(kind=JobResultKind.OK, body_kind=JobBodyKind.JSON, body=body, timezone=timezone)

    @classmethod
    def text(cls, text: str, media_type: str) -> "JobResult":
        return cls(kind=JobResultKind.OK, body_kind=JobBodyKind.TEXT, body=text, media_type=media_type)

    @classmethod
    def stream(cls, chunks: Iterator[Any], media_type: str) -> "JobResult":
        return cls(kind=JobResultKind.OK, body_kind=JobBodyKind.STREAM, body=chunks, media_type=media_type)

    @classmethod
    def failure(cls, error: JobCommandError) -> "JobResult":
        if isinstance(error, AuthorizationDenied):
            kind = JobResultKind.AUTH_DENIED
        elif isinstance(error, JobValidationError):
            kind = JobResultKind.VALIDATION_ERROR
        elif isinstance(error, JobNotFoundError):
            kind = JobResultKind.NOT_FOUND
        else:
            kind = JobResultKind.ENGINE_ERROR
        return cls(kind=kind, error=error)
