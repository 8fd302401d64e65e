from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request  # type: ignore[import-not-found]
from fastapi.responses import JSONResponse  # type: ignore[import-not-found]

from .logging_config import setup_logging
from .models import ErrorResponse, JobErrorCode
from .routers import jobs
from .services.orchestration.job_errors import JobTransportError


@asynccontextmanager
async def lifespan(_app: FastAPI):
    setup_logging()
    from .services.auth.caller_identity import validate_identity_config
    from .services.platform.maintenance_scheduler import maintenance_scheduler

    validate_identity_config()
    maintenance_scheduler.start()
    try:
        yield
    finally:
        maintenance_scheduler.shutdown()

app = FastAPI(
    title="Job Server",
    description="A REST service to control and inspect workflow, coordinator and bundle jobs.",
    version="0.1.0",
    lifespan=lifespan
)


@app.exception_handler(JobTransportError)
async def job_transport_error_handler(_request: Request, exc: JobTransportError) -> JSONResponse:
    body = ErrorResponse(code=JobErrorCode.TRANSPORT_ERROR.value, message=str(exc))
    return JSONResponse(status_code=400, content=body.model_dump(exclude_none=True))


v2_router = APIRouter(prefix="/v2")
v2_router.include_router(jobs.router)
app.include_router(v2_router)

@app.get("/")
async def root():
    return {"message": "Job Server is running"}
