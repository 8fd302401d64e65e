"""
Process-local job engine.

Keeps workflow, coordinator and bundle records in memory and applies the
lifecycle rules of a workflow scheduler to them: a job starts from PREP,
suspends and resumes while running, can be killed until it completes, and
only completed jobs may be rerun. Coordinator actions are addressed as
`<job id>@<number>` and workflow nodes as `<job id>@<node name>`.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple
from xml.sax.saxutils import quoteattr

from ...models import TERMINAL_JOB_STATUSES, JobActionInfo, JobErrorCode, JobInfo, JobStatus, JobType
from .job_configuration import (
    APP_PATH,
    BUNDLE_APP_PATH,
    COORDINATOR_APP_PATH,
    GROUP_NAME,
    USER_NAME,
    JobConfiguration,
)
from .job_engine import JobEngine
from .job_errors import JobEngineError, JobNotFoundError, JobOperationNotSupported

_TYPE_SUFFIX = {JobType.WORKFLOW: "W", JobType.COORDINATOR: "C", JobType.BUNDLE: "B"}
_APP_PATH_KEYS = {
    JobType.WORKFLOW: APP_PATH,
    JobType.COORDINATOR: COORDINATOR_APP_PATH,
    JobType.BUNDLE: BUNDLE_APP_PATH,
}
_DEFINITION_ROOTS = {
    JobType.WORKFLOW: "workflow-app",
    JobType.COORDINATOR: "coordinator-app",
    JobType.BUNDLE: "bundle-app",
}

CHANGE_KEYS = {"endtime", "concurrency", "pausetime"}
SLA_KEYS = {"should-start", "should-end", "max-duration"}
RERUN_SKIP_NODES = "oozie.wf.rerun.skip.nodes"
RERUN_FAIL_NODES = "oozie.wf.rerun.failnodes"

ACTION_TERMINAL_STATUSES = {"OK", "SUCCEEDED", "KILLED", "FAILED", "TIMEDOUT", "IGNORED", "ERROR"}
ACTION_FAILED_STATUSES = {"KILLED", "FAILED", "TIMEDOUT"}
RERUNNABLE_STATUSES = {JobStatus.SUCCEEDED, JobStatus.KILLED, JobStatus.FAILED}

_GRAPH_COLORS = {
    "PREP": "white",
    "RUNNING": "lightblue",
    "OK": "palegreen",
    "SUCCEEDED": "palegreen",
    "KILLED": "gray",
    "FAILED": "salmon",
    "ERROR": "salmon",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _default_definition(job_type: JobType, app_name: str) -> str:
    root = _DEFINITION_ROOTS[job_type]
    return f'<{root} name={quoteattr(app_name)} xmlns="uri:oozie:{job_type.value}:0.5"></{root}>'


def _parse_key_values(raw: Optional[str], allowed: Set[str], param: str) -> Dict[str, str]:
    if raw is None or not raw.strip():
        raise JobEngineError(f"Parameter [{param}] is required", details={"param": param})
    result: Dict[str, str] = {}
    for item in raw.split(";"):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise JobEngineError(
                f"Invalid {param} entry [{item}], expected key=value",
                details={"param": param, "value": raw},
            )
        key, value = item.split("=", 1)
        key = key.strip().lower()
        if key not in allowed:
            raise JobEngineError(
                f"Unsupported {param} key [{key}]",
                details={"param": param, "value": raw},
            )
        result[key] = value.strip()
    return result


@dataclass
class ActionScope:
    """Action names plus inclusive numeric ranges such as `1-5`, matched without expansion."""

    names: Set[str] = field(default_factory=set)
    ranges: List[Tuple[int, int]] = field(default_factory=list)

    def __contains__(self, item: object) -> bool:
        if item in self.names:
            return True
        if isinstance(item, str) and item.isdigit():
            number = int(item)
            return any(low <= number <= high for low, high in self.ranges)
        return False


def _parse_scope(raw: Optional[str]) -> Optional[ActionScope]:
    if raw is None or not raw.strip():
        return None
    scope = ActionScope()
    for item in raw.split(","):
        item = item.strip()
        low, sep, high = item.partition("-")
        if sep and low.isdigit() and high.isdigit():
            scope.ranges.append((int(low), int(high)))
        elif item:
            scope.names.add(item)
    return scope


@dataclass
class JobRecord:
    id: str
    job_type: JobType
    app_name: str
    definition: str
    created_time: datetime
    user: Optional[str] = None
    group: Optional[str] = None
    app_path: Optional[str] = None
    conf: Dict[str, str] = field(default_factory=dict)
    status: JobStatus = JobStatus.PREP
    parent_id: Optional[str] = None
    run: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    last_modified_time: Optional[datetime] = None
    actions: List[JobActionInfo] = field(default_factory=list)
    log: List[str] = field(default_factory=list)
    audit: List[str] = field(default_factory=list)
    properties: Dict[str, str] = field(default_factory=dict)
    sla: Dict[str, int] = field(default_factory=dict)
    sla_alerts_enabled: bool = True
    missing_dependencies: Dict[str, List[str]] = field(default_factory=dict)


class InMemoryJobEngine(JobEngine):
    def __init__(self, clock: Callable[[], datetime] = _utc_now, server_name: str = "job-server") -> None:
        self._lock = threading.RLock()
        self._jobs: Dict[str, JobRecord] = {}
        self._sequence = 0
        self._clock = clock
        self._server_name = server_name

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------
    def submit_job(
        self,
        conf: JobConfiguration,
        job_type: JobType = JobType.WORKFLOW,
        *,
        app_name: Optional[str] = None,
        definition: Optional[str] = None,
        actions: Iterable[str] = (),
        parent_id: Optional[str] = None,
        missing_dependencies: Optional[Mapping[str, List[str]]] = None,
    ) -> str:
        with self._lock:
            self._sequence += 1
            now = self._clock()
            job_id = (
                f"{self._sequence:07d}-{now.strftime('%y%m%d%H%M%S')}-"
                f"{self._server_name}-{_TYPE_SUFFIX[job_type]}"
            )
            name = app_name or f"{job_type.value}-app"
            record = JobRecord(
                id=job_id,
                job_type=job_type,
                app_name=name,
                definition=definition or _default_definition(job_type, name),
                created_time=now,
                user=conf.get_value(USER_NAME),
                group=conf.get_value(GROUP_NAME),
                app_path=conf.get_value(_APP_PATH_KEYS[job_type]),
                conf=conf.to_dict(),
                parent_id=parent_id,
                last_modified_time=now,
            )
            action_type = "action" if job_type == JobType.WORKFLOW else job_type.value + "-action"
            record.actions = [
                JobActionInfo(id=f"{job_id}@{action}", name=str(action), type=action_type)
                for action in actions
            ]
            record.missing_dependencies = {
                f"{job_id}@{action}": list(deps) for action, deps in (missing_dependencies or {}).items()
            }
            self._jobs[job_id] = record
            self._append_log(record, "INFO", f"Job submitted by user [{record.user}]")
            return job_id

    def set_status(self, job_id: str, status: JobStatus) -> None:
        with self._lock:
            record, _ = self._resolve(job_id)
            self._transition(record, status, "status set")

    def set_action_status(self, action_id: str, status: str) -> None:
        with self._lock:
            record, action_name = self._resolve(action_id)
            action = self._find_action(record, action_name)
            action.status = status
            if status in ACTION_TERMINAL_STATUSES:
                action.end_time = self._clock()
            if status in ACTION_FAILED_STATUSES:
                self._append_log(record, "ERROR", f"Action [{action.name}] ended with status [{status}]")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def start_job(self, job_id: str, params: Mapping[str, str]) -> None:
        with self._lock:
            record, _ = self._resolve(job_id)
            self._require_status(record, {JobStatus.PREP}, "start")
            self._transition(record, JobStatus.RUNNING, "start")
            if record.actions and record.job_type == JobType.WORKFLOW:
                record.actions[0].status = "RUNNING"
                record.actions[0].start_time = record.start_time

    def suspend_job(self, job_id: str, params: Mapping[str, str]) -> None:
        with self._lock:
            record, _ = self._resolve(job_id)
            allowed = {JobStatus.RUNNING}
            if record.job_type != JobType.WORKFLOW:
                allowed.add(JobStatus.PREP)
            self._require_status(record, allowed, "suspend")
            self._transition(record, JobStatus.SUSPENDED, "suspend")

    def resume_job(self, job_id: str, params: Mapping[str, str]) -> None:
        with self._lock:
            record, _ = self._resolve(job_id)
            self._require_status(record, {JobStatus.SUSPENDED}, "resume")
            self._transition(record, JobStatus.RUNNING, "resume")

    def kill_job(self, job_id: str, params: Mapping[str, str]) -> Optional[Dict[str, Any]]:
        with self._lock:
            record, _ = self._resolve(job_id)
            if record.job_type == JobType.COORDINATOR and params.get("type") == "action":
                actions = self._select_actions(record, params.get("scope"))
                for action in actions:
                    if action.status not in ACTION_TERMINAL_STATUSES:
                        action.status = "KILLED"
                        action.end_time = self._clock()
                self._append_audit(record, f"kill actions [{', '.join(a.name for a in actions)}]")
                return {"actions": [action.model_dump(mode="json") for action in actions]}

            self._require_not_terminal(record, "kill")
            self._transition(record, JobStatus.KILLED, "kill")
            for action in record.actions:
                if action.status not in ACTION_TERMINAL_STATUSES:
                    action.status = "KILLED"
                    action.end_time = record.end_time
            for child in self._children(record.id):
                if child.status not in TERMINAL_JOB_STATUSES:
                    self._transition(child, JobStatus.KILLED, f"kill by parent [{record.id}]")
            return None

    def change_job(self, job_id: str, params: Mapping[str, str]) -> None:
        with self._lock:
            record, _ = self._resolve(job_id)
            if record.job_type == JobType.WORKFLOW:
                raise JobEngineError(
                    "Change is only supported for coordinator and bundle jobs",
                    details={"job_id": record.id},
                )
            changes = _parse_key_values(params.get("value"), CHANGE_KEYS, "value")
            if "concurrency" in changes and not changes["concurrency"].lstrip("-").isdigit():
                raise JobEngineError(
                    f"Invalid concurrency [{changes['concurrency']}]",
                    details={"param": "value", "value": params.get("value")},
                )
            self._require_not_terminal(record, "change")
            record.properties.update(changes)
            record.last_modified_time = self._clock()
            self._append_audit(record, "change " + ";".join(f"{k}={v}" for k, v in sorted(changes.items())))

    def ignore_job(self, job_id: str, params: Mapping[str, str]) -> Optional[Dict[str, Any]]:
        with self._lock:
            record, _ = self._resolve(job_id)
            if record.job_type == JobType.WORKFLOW:
                raise JobEngineError(
                    "Ignore is only supported for coordinator and bundle jobs",
                    details={"job_id": record.id},
                )
            if params.get("type") == "action":
                actions = self._select_actions(record, params.get("scope"))
                for action in actions:
                    if action.status not in ACTION_FAILED_STATUSES:
                        raise JobEngineError(
                            f"Action [{action.id}] is in status [{action.status}], cannot ignore",
                            JobErrorCode.INVALID_JOB_STATE,
                        )
                for action in actions:
                    action.status = "IGNORED"
                self._append_audit(record, f"ignore actions [{', '.join(a.name for a in actions)}]")
                return {"actions": [action.model_dump(mode="json") for action in actions]}

            self._require_status(record, {JobStatus.KILLED, JobStatus.FAILED}, "ignore")
            self._transition(record, JobStatus.IGNORED, "ignore")
            return None

    def rerun_job(
        self,
        job_id: str,
        conf: Optional[JobConfiguration],
        params: Mapping[str, str],
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            record, _ = self._resolve(job_id)
            if record.job_type == JobType.COORDINATOR:
                return self._rerun_coordinator_actions(record, params)
            if record.job_type == JobType.BUNDLE:
                return self._rerun_bundle(record, params)

            if conf is None:
                raise JobEngineError("Workflow rerun requires a configuration", details={"job_id": record.id})
            self._require_status(record, RERUNNABLE_STATUSES, "rerun")
            skip_nodes = {node.strip() for node in conf.get_strings(RERUN_SKIP_NODES) if node.strip()}
            fail_nodes_only = (conf.get_value(RERUN_FAIL_NODES) or "").lower() == "true"
            for action in record.actions:
                if action.name in skip_nodes:
                    continue
                if fail_nodes_only and action.status in {"OK", "SUCCEEDED"}:
                    continue
                action.status = "PREP"
                action.start_time = None
                action.end_time = None
            record.conf.update(conf.to_dict())
            record.run += 1
            record.end_time = None
            self._transition(record, JobStatus.RUNNING, f"rerun #{record.run}")
            return None

    def update_job(
        self,
        job_id: str,
        conf: JobConfiguration,
        params: Mapping[str, str],
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            record, _ = self._resolve(job_id)
            if record.job_type != JobType.COORDINATOR:
                raise JobEngineError("Only coordinator jobs can be updated", details={"job_id": record.id})
            self._require_not_terminal(record, "update")
            new_conf = conf.to_dict()
            diff: List[str] = []
            for key in sorted(set(record.conf) | set(new_conf)):
                old_value, new_value = record.conf.get(key), new_conf.get(key)
                if old_value == new_value:
                    continue
                if old_value is not None:
                    diff.append(f"-{key}={old_value}")
                if new_value is not None:
                    diff.append(f"+{key}={new_value}")
            dryrun = str(params.get("dryrun", "false")).lower() == "true"
            if not dryrun:
                record.conf = new_conf
                record.app_path = conf.get_value(COORDINATOR_APP_PATH) or record.app_path
                record.last_modified_time = self._clock()
                self._append_audit(record, f"update ({len(diff)} changes)")
            return {"update": {"job_id": record.id, "dryrun": dryrun, "diff": diff}}

    def sla_enable_alert(self, job_id: str, params: Mapping[str, str]) -> None:
        self._set_sla_alerts(job_id, params, True)

    def sla_disable_alert(self, job_id: str, params: Mapping[str, str]) -> None:
        self._set_sla_alerts(job_id, params, False)

    def sla_change(self, job_id: str, params: Mapping[str, str]) -> None:
        with self._lock:
            record, _ = self._resolve(job_id)
            changes = _parse_key_values(params.get("value"), SLA_KEYS, "value")
            parsed: Dict[str, int] = {}
            for key, value in changes.items():
                if not value.isdigit():
                    raise JobEngineError(
                        f"SLA value for [{key}] must be a number of minutes",
                        details={"param": "value", "value": params.get("value")},
                    )
                parsed[key] = int(value)
            record.sla.update(parsed)
            self._append_audit(record, "sla-change " + ";".join(f"{k}={v}" for k, v in sorted(parsed.items())))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_job(self, job_id: str, params: Mapping[str, str]) -> JobInfo:
        with self._lock:
            record, _ = self._resolve(job_id)
            actions = [action.model_copy() for action in record.actions]
            status_filter = self._parse_status_filter(params.get("filter"))
            if status_filter:
                actions = [action for action in actions if action.status in status_filter]
            if str(params.get("order", "asc")).lower() == "desc":
                actions.reverse()
            offset = self._int_param(params, "offset", 1)
            length = self._int_param(params, "len", len(actions) or 1)
            actions = actions[max(offset, 1) - 1:max(offset, 1) - 1 + max(length, 0)]
            return JobInfo(
                id=record.id,
                app_name=record.app_name,
                app_path=record.app_path,
                job_type=record.job_type,
                status=record.status,
                user=record.user,
                group=record.group,
                parent_id=record.parent_id,
                run=record.run,
                created_time=record.created_time,
                start_time=record.start_time,
                end_time=record.end_time,
                last_modified_time=record.last_modified_time,
                conf=dict(record.conf),
                actions=actions,
            )

    def get_jobs_by_parent_id(self, job_id: str, params: Mapping[str, str]) -> Dict[str, Any]:
        with self._lock:
            self._resolve(job_id)
            workflows = [
                {"id": job.id, "status": job.status.value, "parent_id": job.parent_id}
                for job in self._jobs.values()
                if job.parent_id == job_id and job.job_type == JobType.WORKFLOW
            ]
            return {"workflows": workflows}

    def get_jms_topic_name(self, job_id: str, params: Mapping[str, str]) -> Optional[str]:
        with self._lock:
            record, _ = self._resolve(job_id)
            return record.user

    def stream_job_log(self, job_id: str, params: Mapping[str, str]) -> Iterator[str]:
        with self._lock:
            record, _ = self._resolve(job_id)
            lines = list(record.log)
        level, text = self._parse_log_filter(params.get("logfilter"))
        return (
            line + "\n"
            for line in lines
            if (not level or f" {level} " in line) and (not text or text in line)
        )

    def stream_job_error_log(self, job_id: str, params: Mapping[str, str]) -> Iterator[str]:
        with self._lock:
            record, _ = self._resolve(job_id)
            lines = [line for line in record.log if " ERROR " in line]
        return (line + "\n" for line in lines)

    def stream_job_audit_log(self, job_id: str, params: Mapping[str, str]) -> Iterator[str]:
        with self._lock:
            record, _ = self._resolve(job_id)
            lines = list(record.audit)
        return (line + "\n" for line in lines)

    def stream_job_graph(self, job_id: str, params: Mapping[str, str]) -> Iterator[bytes]:
        with self._lock:
            record, _ = self._resolve(job_id)
            if record.job_type != JobType.WORKFLOW:
                raise JobOperationNotSupported(
                    "Graph is only available for workflow jobs",
                    details={"job_id": record.id},
                )
            nodes = [(action.name, action.status) for action in record.actions]
            app_name = record.app_name
        return self._render_graph(app_name, nodes)

    @staticmethod
    def _render_graph(app_name: str, nodes: List[Tuple[str, str]]) -> Iterator[bytes]:
        yield f"digraph {quoteattr(app_name)} {{\n".encode("utf-8")
        yield b'  rankdir=LR;\n  "start" [shape=circle];\n  "end" [shape=doublecircle];\n'
        for name, status in nodes:
            color = _GRAPH_COLORS.get(status, "white")
            yield f'  {quoteattr(name)} [style=filled, fillcolor="{color}"];\n'.encode("utf-8")
        chain = ["start"] + [name for name, _ in nodes] + ["end"]
        for source, target in zip(chain, chain[1:]):
            yield f"  {quoteattr(source)} -> {quoteattr(target)};\n".encode("utf-8")
        yield b"}\n"

    def get_job_definition(self, job_id: str, params: Mapping[str, str]) -> str:
        with self._lock:
            record, _ = self._resolve(job_id)
            return record.definition

    def get_job_status(self, job_id: str, params: Mapping[str, str]) -> str:
        with self._lock:
            record, action_name = self._resolve(job_id)
            if action_name:
                return self._find_action(record, action_name).status
            return record.status.value

    def get_action_retries(self, job_id: str, params: Mapping[str, str]) -> List[Dict[str, Any]]:
        with self._lock:
            record, action_name = self._resolve(job_id)
            if not action_name:
                raise JobEngineError(
                    "Action retries require an action id (<job id>@<action name>)",
                    details={"job_id": job_id},
                )
            action = self._find_action(record, action_name)
            return [{"attempt": attempt, "action_id": action.id} for attempt in range(1, action.retries + 1)]

    def get_coord_action_missing_dependencies(
        self,
        job_id: str,
        params: Mapping[str, str],
    ) -> Dict[str, Any]:
        with self._lock:
            record, action_name = self._resolve(job_id)
            if record.job_type != JobType.COORDINATOR:
                raise JobEngineError(
                    "Missing dependencies are only tracked for coordinator jobs",
                    details={"job_id": record.id},
                )
            scope = _parse_scope(params.get("action-list"))
            if action_name:
                scope = ActionScope(names={action_name})
            entries = []
            for action_id, deps in record.missing_dependencies.items():
                if scope is not None and action_id.partition("@")[2] not in scope:
                    continue
                entries.append({"id": action_id, "dependencies": list(deps)})
            return {"missing_dependencies": entries}

    # ------------------------------------------------------------------
    # Authorization and maintenance hooks
    # ------------------------------------------------------------------
    def get_job_owner(self, job_id: str) -> Optional[Tuple[Optional[str], Optional[str]]]:
        with self._lock:
            record = self._jobs.get(job_id.partition("@")[0])
            if record is None:
                return None
            return record.user, record.group

    def run_maintenance(self, retention: timedelta) -> int:
        with self._lock:
            cutoff = self._clock() - retention
            expired = [
                job_id
                for job_id, record in self._jobs.items()
                if record.status in TERMINAL_JOB_STATUSES
                and record.end_time is not None
                and record.end_time < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            logger.info("Purged %s completed jobs older than %s", len(expired), cutoff.isoformat())
        return len(expired)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _resolve(self, job_id: str) -> Tuple[JobRecord, Optional[str]]:
        base, _, action_name = job_id.partition("@")
        record = self._jobs.get(base)
        if record is None:
            raise JobNotFoundError(f"Job [{base}] does not exist", details={"job_id": base})
        return record, action_name or None

    def _find_action(self, record: JobRecord, action_name: Optional[str]) -> JobActionInfo:
        for action in record.actions:
            if action.name == action_name:
                return action
        raise JobNotFoundError(
            f"Action [{record.id}@{action_name}] does not exist",
            details={"job_id": record.id, "action": action_name},
        )

    def _select_actions(self, record: JobRecord, raw_scope: Optional[str]) -> List[JobActionInfo]:
        scope = _parse_scope(raw_scope)
        if scope is None:
            raise JobEngineError("Parameter [scope] is required", details={"param": "scope"})
        selected = [action for action in record.actions if action.name in scope or action.id in scope]
        if not selected:
            raise JobEngineError(
                f"No actions of job [{record.id}] match scope [{raw_scope}]",
                details={"param": "scope", "value": raw_scope},
            )
        return selected

    def _children(self, job_id: str) -> List[JobRecord]:
        return [record for record in self._jobs.values() if record.parent_id == job_id]

    def _rerun_coordinator_actions(self, record: JobRecord, params: Mapping[str, str]) -> Dict[str, Any]:
        actions = self._select_actions(record, params.get("scope"))
        for action in actions:
            if action.status not in ACTION_TERMINAL_STATUSES:
                raise JobEngineError(
                    f"Action [{action.id}] is in status [{action.status}], cannot rerun",
                    JobErrorCode.INVALID_JOB_STATE,
                )
        for action in actions:
            action.status = "WAITING"
            action.start_time = None
            action.end_time = None
        if record.status in TERMINAL_JOB_STATUSES:
            record.end_time = None
            self._transition(record, JobStatus.RUNNING, "coord-rerun")
        self._append_audit(
            record,
            f"coord-rerun actions [{', '.join(a.name for a in actions)}] "
            f"refresh={params.get('refresh', 'false')} nocleanup={params.get('nocleanup', 'false')}",
        )
        return {"actions": [action.model_dump(mode="json") for action in actions]}

    def _rerun_bundle(self, record: JobRecord, params: Mapping[str, str]) -> Dict[str, Any]:
        scope = _parse_scope(params.get("coord-scope"))
        coordinators = [
            child
            for child in self._children(record.id)
            if child.job_type == JobType.COORDINATOR and (scope is None or child.app_name in scope)
        ]
        for child in coordinators:
            child.end_time = None
            self._transition(child, JobStatus.RUNNING, f"bundle-rerun by [{record.id}]")
        if record.status in TERMINAL_JOB_STATUSES:
            record.end_time = None
            self._transition(record, JobStatus.RUNNING, "bundle-rerun")
        else:
            self._append_audit(record, "bundle-rerun")
        return {"coordinators": [child.id for child in coordinators]}

    def _set_sla_alerts(self, job_id: str, params: Mapping[str, str], enabled: bool) -> None:
        with self._lock:
            record, _ = self._resolve(job_id)
            record.sla_alerts_enabled = enabled
            scope = params.get("action-list")
            operation = "sla-enable" if enabled else "sla-disable"
            self._append_audit(record, f"{operation} actions [{scope}]" if scope else operation)

    def _require_status(self, record: JobRecord, allowed: Set[JobStatus], operation: str) -> None:
        if record.status not in allowed:
            raise JobEngineError(
                f"Job [{record.id}] is in status [{record.status.value}], cannot {operation}",
                JobErrorCode.INVALID_JOB_STATE,
                {"job_id": record.id, "status": record.status.value},
            )

    def _require_not_terminal(self, record: JobRecord, operation: str) -> None:
        self._require_status(record, set(JobStatus) - TERMINAL_JOB_STATUSES, operation)

    def _transition(self, record: JobRecord, status: JobStatus, operation: str) -> None:
        now = self._clock()
        previous = record.status
        record.status = status
        record.last_modified_time = now
        if status == JobStatus.RUNNING and record.start_time is None:
            record.start_time = now
        if status in TERMINAL_JOB_STATUSES:
            record.end_time = now
        self._append_audit(record, operation)
        self._append_log(record, "INFO", f"Status changed [{previous.value}] -> [{status.value}] by {operation}")

    def _append_log(self, record: JobRecord, level: str, message: str) -> None:
        record.log.append(f"{self._clock().strftime('%Y-%m-%d %H:%M:%S')} {level} [{record.id}] {message}")

    def _append_audit(self, record: JobRecord, operation: str) -> None:
        record.audit.append(f"{self._clock().strftime('%Y-%m-%d %H:%M:%S')} JOB [{record.id}] OPERATION [{operation}]")

    @staticmethod
    def _int_param(params: Mapping[str, str], name: str, default: int) -> int:
        raw = params.get(name)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError as exc:
            raise JobEngineError(
                f"Parameter [{name}] must be an integer",
                details={"param": name, "value": raw},
            ) from exc

    @staticmethod
    def _parse_status_filter(raw: Optional[str]) -> Set[str]:
        statuses: Set[str] = set()
        if not raw:
            return statuses
        for item in raw.split(";"):
            key, sep, value = item.partition("=")
            if sep and key.strip().lower() == "status" and value.strip():
                statuses.add(value.strip().upper())
        return statuses

    @staticmethod
    def _parse_log_filter(raw: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
        level = text = None
        if not raw:
            return level, text
        for item in raw.split(";"):
            key, sep, value = item.partition("=")
            key = key.strip().lower()
            if not sep:
                continue
            if key == "loglevel":
                level = value.strip().upper() or None
            elif key == "text":
                text = value or None
        return level, text


job_engine = InMemoryJobEngine()

logger = logging.getLogger(__name__)
