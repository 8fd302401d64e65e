"""
Translate a `JobResult` into an HTTP response.

Structured bodies are JSON with every timestamp rendered in the requested
timezone as an RFC 822 date (`Tue, 01 Jan 2030 10:00:00 GMT`). Unknown
timezone ids fall back to GMT.
"""

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi.encoders import jsonable_encoder  # type: ignore[import-not-found]
from fastapi.responses import JSONResponse, Response, StreamingResponse  # type: ignore[import-not-found]
from pydantic import BaseModel

from ...models import ErrorResponse
from .job_command import JobBodyKind, JobResult, JobResultKind

GMT = timezone(timedelta(0), "GMT")
RFC822_FORMAT = "%a, %d %b %Y %H:%M:%S %Z"

STATUS_CODES = {
    JobResultKind.OK: 200,
    JobResultKind.AUTH_DENIED: 401,
    JobResultKind.VALIDATION_ERROR: 400,
    JobResultKind.NOT_FOUND: 404,
    JobResultKind.ENGINE_ERROR: 400,
}


def status_code_for(result: JobResult) -> int:
    return STATUS_CODES[result.kind]


def resolve_timezone(tz_id: Optional[str]) -> tzinfo:
    if not tz_id or tz_id.strip().upper() == "GMT":
        return GMT
    try:
        return ZoneInfo(tz_id.strip())
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown timezone id %r, using GMT", tz_id)
        return GMT


def format_timestamp(value: datetime, tz: tzinfo) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).strftime(RFC822_FORMAT)


def localize_timestamps(payload: Any, tz: tzinfo) -> Any:
    if isinstance(payload, datetime):
        return format_timestamp(payload, tz)
    if isinstance(payload, dict):
        return {key: localize_timestamps(value, tz) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [localize_timestamps(item, tz) for item in payload]
    return payload


def render_error(result: JobResult, job_id: Optional[str] = None) -> JSONResponse:
    assert result.error is not None
    body = ErrorResponse(**result.error.to_payload(job_id))
    return JSONResponse(status_code=status_code_for(result), content=body.model_dump(exclude_none=True))


def render_job_result(result: JobResult, job_id: Optional[str] = None) -> Response:
    if result.error is not None:
        return render_error(result, job_id)

    if result.body_kind == JobBodyKind.JSON:
        body = result.body
        if isinstance(body, BaseModel):
            body = body.model_dump(mode="python")
        content = localize_timestamps(body, resolve_timezone(result.timezone))
        return JSONResponse(status_code=200, content=jsonable_encoder(content))
    if result.body_kind == JobBodyKind.TEXT:
        return Response(content=result.body, status_code=200, media_type=result.media_type)
    if result.body_kind == JobBodyKind.STREAM:
        return StreamingResponse(result.body, status_code=200, media_type=result.media_type)
    return Response(status_code=200)


logger = logging.getLogger(__name__)
