from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ...models import JobInfo
from .job_configuration import JobConfiguration
from .job_errors import JobOperationNotSupported

NOT_SUPPORTED_MESSAGE = "Not supported in this version"


class JobEngine(ABC):
    """
    Job lifecycle operations invoked by the command dispatcher.

    Every operation receives the job id and the request's pass-through
    parameters (`type`, `scope`, `value`, `logfilter`, ...). Failures are
    raised as `JobEngineError` subclasses and describe deterministic
    business-rule violations, never transient faults.
    """

    graph_content_type = "text/vnd.graphviz"
    """Media type of the bytes produced by `stream_job_graph`."""

    @abstractmethod
    def start_job(self, job_id: str, params: Mapping[str, str]) -> None:
        """Start a submitted job."""
        pass

    @abstractmethod
    def resume_job(self, job_id: str, params: Mapping[str, str]) -> None:
        """Resume a suspended job."""
        pass

    @abstractmethod
    def suspend_job(self, job_id: str, params: Mapping[str, str]) -> None:
        """Suspend a running job."""
        pass

    @abstractmethod
    def kill_job(self, job_id: str, params: Mapping[str, str]) -> Optional[Dict[str, Any]]:
        """Kill a job, or a range of coordinator actions. May describe the affected actions."""
        pass

    @abstractmethod
    def change_job(self, job_id: str, params: Mapping[str, str]) -> None:
        """Change coordinator or bundle properties given as `value=key=v;key=v`."""
        pass

    @abstractmethod
    def ignore_job(self, job_id: str, params: Mapping[str, str]) -> Optional[Dict[str, Any]]:
        """Ignore a failed coordinator/bundle job or some of its actions."""
        pass

    @abstractmethod
    def rerun_job(
        self,
        job_id: str,
        conf: Optional[JobConfiguration],
        params: Mapping[str, str],
    ) -> Optional[Dict[str, Any]]:
        """Rerun a workflow with `conf`, or coordinator/bundle actions selected by `params`."""
        pass

    @abstractmethod
    def update_job(
        self,
        job_id: str,
        conf: JobConfiguration,
        params: Mapping[str, str],
    ) -> Optional[Dict[str, Any]]:
        """Update a coordinator definition/configuration; returns the applied diff."""
        pass

    @abstractmethod
    def sla_enable_alert(self, job_id: str, params: Mapping[str, str]) -> None:
        pass

    @abstractmethod
    def sla_disable_alert(self, job_id: str, params: Mapping[str, str]) -> None:
        pass

    @abstractmethod
    def sla_change(self, job_id: str, params: Mapping[str, str]) -> None:
        pass

    @abstractmethod
    def get_job(self, job_id: str, params: Mapping[str, str]) -> JobInfo:
        pass

    @abstractmethod
    def get_jobs_by_parent_id(self, job_id: str, params: Mapping[str, str]) -> Dict[str, Any]:
        """List the workflows spawned by a coordinator action."""
        pass

    @abstractmethod
    def get_jms_topic_name(self, job_id: str, params: Mapping[str, str]) -> Optional[str]:
        pass

    @abstractmethod
    def stream_job_log(self, job_id: str, params: Mapping[str, str]) -> Iterator[str]:
        pass

    @abstractmethod
    def stream_job_error_log(self, job_id: str, params: Mapping[str, str]) -> Iterator[str]:
        pass

    @abstractmethod
    def stream_job_audit_log(self, job_id: str, params: Mapping[str, str]) -> Iterator[str]:
        pass

    @abstractmethod
    def stream_job_graph(self, job_id: str, params: Mapping[str, str]) -> Iterator[bytes]:
        """Render the runtime DAG of a workflow as `graph_content_type` bytes."""
        pass

    @abstractmethod
    def get_job_definition(self, job_id: str, params: Mapping[str, str]) -> str:
        pass

    @abstractmethod
    def get_job_status(self, job_id: str, params: Mapping[str, str]) -> str:
        pass

    @abstractmethod
    def get_action_retries(self, job_id: str, params: Mapping[str, str]) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def get_coord_action_missing_dependencies(
        self,
        job_id: str,
        params: Mapping[str, str],
    ) -> Dict[str, Any]:
        pass

    def get_workflow_actions_by_name(self, job_id: str, params: Mapping[str, str]) -> Dict[str, Any]:
        raise JobOperationNotSupported(NOT_SUPPORTED_MESSAGE)

    def get_job_owner(self, job_id: str) -> Optional[Tuple[Optional[str], Optional[str]]]:
        """Return `(user, acl)` for authorization, or None when unknown."""
        return None

    def run_maintenance(self, retention: timedelta) -> int:
        """Periodic housekeeping; returns the number of purged jobs."""
        return 0
