"""
API Router for job control.

Exposes endpoints for:
- Performing a lifecycle action on a job (PUT /job/{job_id}?action=...)
- Reading job information, logs, graphs and definitions (GET /job/{job_id}?show=...)
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request  # type: ignore[import-not-found]
from fastapi.responses import Response  # type: ignore[import-not-found]
from starlette.requests import ClientDisconnect  # type: ignore[import-not-found]

from ..config import config
from ..models import ErrorResponse
from ..services.auth.caller_identity import USER_NAME_PARAM, get_caller
from ..services.orchestration.job_command import JobCommand
from ..services.orchestration.job_dispatcher import job_dispatcher
from ..services.orchestration.job_errors import JobTransportError
from ..services.orchestration.job_result_renderer import render_job_result

router = APIRouter(prefix="/job", tags=["jobs"])

RESERVED_PARAMS = {"action", "show", "timezone", USER_NAME_PARAM}
ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


def _passthrough_params(request: Request) -> Dict[str, str]:
    return {key: value for key, value in request.query_params.items() if key not in RESERVED_PARAMS}


@router.put("/{job_id}", responses=ERROR_RESPONSES)
async def perform_job_action(
    job_id: str,
    request: Request,
    action: Optional[str] = Query(default=None),
    caller: str = Depends(get_caller),
) -> Response:
    try:
        payload = await request.body()
    except ClientDisconnect as exc:
        logger.warning("Client disconnected while sending payload for job %s", job_id)
        raise JobTransportError(f"Failed to read request payload for job [{job_id}]") from exc

    command = JobCommand(
        job_id=job_id,
        caller=caller,
        selector=action,
        payload=payload or None,
        content_type=request.headers.get("content-type"),
        params=_passthrough_params(request),
    )
    return render_job_result(job_dispatcher.execute_action(command), job_id)


@router.get("/{job_id}", responses=ERROR_RESPONSES)
async def get_job(
    job_id: str,
    request: Request,
    show: Optional[str] = Query(default=None),
    timezone: Optional[str] = Query(default=None),
    caller: str = Depends(get_caller),
) -> Response:
    command = JobCommand(
        job_id=job_id,
        caller=caller,
        selector=show,
        timezone=timezone or str(config.JOBS.DEFAULT_TIMEZONE),
        params=_passthrough_params(request),
    )
    return render_job_result(job_dispatcher.execute_show(command), job_id)


logger = logging.getLogger(__name__)
