"""
Data Models for the Job Control Server.

This module defines the enumerations and Pydantic models shared by the
dispatcher, the engines and the HTTP layer. It covers:
- Command selectors (JobAction, JobShow)
- Job lifecycle states (JobStatus, JobType)
- Stable error codes (JobErrorCode)
- Response schemas (JobInfo, ErrorResponse, ...)
"""

from enum import Enum
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime


class JobAction(str, Enum):
    """
    Mutating operations accepted by PUT /job/{job_id}?action=...
    """
    START = "start"
    RESUME = "resume"
    SUSPEND = "suspend"
    KILL = "kill"
    CHANGE = "change"
    IGNORE = "ignore"
    RERUN = "rerun"
    COORD_RERUN = "coord-rerun"
    BUNDLE_RERUN = "bundle-rerun"
    COORD_UPDATE = "update"
    SLA_ENABLE_ALERT = "sla-enable"
    SLA_DISABLE_ALERT = "sla-disable"
    SLA_CHANGE = "sla-change"


class JobShow(str, Enum):
    """
    Read-only views accepted by GET /job/{job_id}?show=...
    """
    INFO = "info"
    ALL_WORKFLOWS_FOR_COORD_ACTION = "allworkflows"
    JMS_TOPIC = "jmstopic"
    LOG = "log"
    ERROR_LOG = "errorlog"
    AUDIT_LOG = "auditlog"
    DEFINITION = "definition"
    GRAPH = "graph"
    STATUS = "status"
    ACTION_RETRIES = "retries"
    COORD_ACTION_MISSING_DEPENDENCIES = "missing-dependencies"
    WF_ACTIONS_IN_COORD = "wf-actions"


class JobType(str, Enum):
    """Kind of job tracked by an engine."""
    WORKFLOW = "workflow"
    COORDINATOR = "coordinator"
    BUNDLE = "bundle"


class JobStatus(str, Enum):
    """
    Lifecycle state of a job.
    """
    PREP = "PREP"               # Submitted, not started
    RUNNING = "RUNNING"         # Active
    SUSPENDED = "SUSPENDED"     # Paused by a user
    SUCCEEDED = "SUCCEEDED"     # Finished successfully
    KILLED = "KILLED"           # Terminated by a user
    FAILED = "FAILED"           # Finished with error
    IGNORED = "IGNORED"         # Excluded from further processing


TERMINAL_JOB_STATUSES = {JobStatus.SUCCEEDED, JobStatus.KILLED, JobStatus.FAILED, JobStatus.IGNORED}


class JobErrorCode(str, Enum):
    """Stable, machine-readable error codes."""
    AUTHORIZATION_DENIED = "AUTHORIZATION_DENIED"
    MISSING_PARAMETER = "MISSING_PARAMETER"
    UNSUPPORTED_PARAMETER_VALUE = "UNSUPPORTED_PARAMETER_VALUE"
    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
    MISSING_PAYLOAD = "MISSING_PAYLOAD"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    MISSING_USER_NAME = "MISSING_USER_NAME"
    MISSING_APP_PATH = "MISSING_APP_PATH"
    MULTIPLE_APP_PATHS = "MULTIPLE_APP_PATHS"
    APP_PATH_KIND_MISMATCH = "APP_PATH_KIND_MISMATCH"
    NOT_SUPPORTED = "NOT_SUPPORTED"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    INVALID_JOB_STATE = "INVALID_JOB_STATE"
    ENGINE_ERROR = "ENGINE_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


class JobActionInfo(BaseModel):
    """
    A single action (node) inside a workflow, or a materialized coordinator action.
    """
    id: str
    name: str
    type: str = "action"
    status: str = "PREP"
    retries: int = 0
    external_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class JobInfo(BaseModel):
    """
    Job representation returned by `show=info`.
    Timestamps are rendered in the requested timezone.
    """
    id: str
    """Engine-assigned job identifier."""

    app_name: str
    """Application name taken from the definition."""

    app_path: Optional[str] = None
    """Location of the defining document."""

    job_type: JobType = JobType.WORKFLOW

    status: JobStatus = JobStatus.PREP

    user: Optional[str] = None
    """Owner of the job."""

    group: Optional[str] = None
    """Authorization group (ACL) of the job."""

    parent_id: Optional[str] = None
    """Coordinator action or bundle that spawned this job."""

    run: int = 0
    """Rerun counter."""

    created_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    last_modified_time: Optional[datetime] = None

    conf: Dict[str, str] = Field(default_factory=dict)
    """Effective job configuration."""

    actions: List[JobActionInfo] = Field(default_factory=list)


class JobStatusResponse(BaseModel):
    """Response payload for `show=status`."""
    status: str


class JmsTopicResponse(BaseModel):
    """Response payload for `show=jmstopic`."""
    jms_topic_name: Optional[str] = None


class ActionRetriesResponse(BaseModel):
    """Response payload for `show=retries`."""
    retries: List[Dict[str, Any]] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """
    Standard API Error response structure.
    """
    code: str
    """Machine-readable error code."""

    message: str
    """Human-readable error message."""

    details: Optional[Dict[str, Any]] = None
    """Additional context, e.g. the offending parameter name and value."""

    job_id: Optional[str] = None
    """Job the failed command targeted."""
