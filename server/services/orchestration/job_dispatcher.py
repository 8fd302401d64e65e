"""
Job command dispatcher.

Routes one inbound command to exactly one engine operation. For every
command the caller is authorized before anything else happens, the
maintenance scheduler is paused around exactly the engine call, and the
outcome (success or failure) is returned as a single `JobResult`.
"""

import itertools
import logging
from typing import Any, Callable, Dict, Iterator, Optional

from ...logging_config import AUDIT_LOGGER_NAME
from ...models import (
    ActionRetriesResponse,
    JmsTopicResponse,
    JobAction,
    JobErrorCode,
    JobShow,
    JobStatusResponse,
)
from ..auth.app_path_authorizer import AppPathAuthorizer, has_app_path, normalize_app_path, restore_bundle_path
from ..auth.authorization_gate import AuthorizationGate, authorization_gate
from ..auth.caller_identity import is_defined_user
from ..platform.maintenance_pause import MaintenancePauseController, maintenance_pause
from .in_memory_job_engine import job_engine
from .job_command import JobCommand, JobResult
from .job_configuration import (
    BUNDLE_APP_PATH,
    COORDINATOR_APP_PATH,
    USER_NAME,
    XML_CONTENT_TYPE,
    JobConfiguration,
)
from .job_engine import JobEngine
from .job_errors import JobCommandError, JobValidationError
from .job_result_renderer import status_code_for

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)

ACTION_PARAM = "action"
SHOW_PARAM = "show"

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"
XML_MEDIA_TYPE = "application/xml; charset=utf-8"

PAYLOAD_ACTIONS = {JobAction.RERUN, JobAction.COORD_UPDATE}
XML_CONTENT_ACTIONS = {
    JobAction.COORD_RERUN,
    JobAction.BUNDLE_RERUN,
    JobAction.SLA_ENABLE_ALERT,
    JobAction.SLA_DISABLE_ALERT,
    JobAction.SLA_CHANGE,
}
UNPAUSED_STREAM_SHOWS = {JobShow.LOG, JobShow.ERROR_LOG, JobShow.AUDIT_LOG}

ActionHandler = Callable[[JobCommand, Optional[JobConfiguration]], Optional[Dict[str, Any]]]
ShowHandler = Callable[[JobCommand], Any]


def parse_action(selector: Optional[str]) -> JobAction:
    if selector is None or selector == "":
        raise JobValidationError.missing(ACTION_PARAM)
    try:
        return JobAction(selector)
    except ValueError:
        raise JobValidationError.unsupported(ACTION_PARAM, selector) from None


def parse_show(selector: Optional[str]) -> JobShow:
    if selector is None or selector == "":
        return JobShow.INFO
    try:
        return JobShow(selector)
    except ValueError:
        raise JobValidationError.unsupported(SHOW_PARAM, selector) from None


def _prime_stream(stream: Iterator[Any]) -> Iterator[Any]:
    """Pull the first chunk now so engine failures surface before a response starts."""
    iterator = iter(stream)
    try:
        first = next(iterator)
    except StopIteration:
        return iter(())
    return itertools.chain((first,), iterator)


class JobCommandDispatcher:
    def __init__(
        self,
        engine: JobEngine,
        gate: AuthorizationGate,
        pause_controller: MaintenancePauseController,
        app_authorizer: Optional[AppPathAuthorizer] = None,
    ) -> None:
        self._engine = engine
        self._gate = gate
        self._pause = pause_controller
        self._app_authorizer = app_authorizer or AppPathAuthorizer(gate)
        self._action_handlers = self._build_action_handlers()
        self._show_handlers = self._build_show_handlers()
        handled_shows = set(self._show_handlers) | UNPAUSED_STREAM_SHOWS | {JobShow.GRAPH, JobShow.DEFINITION}
        if set(self._action_handlers) != set(JobAction) or handled_shows != set(JobShow):
            raise RuntimeError("Job dispatcher tables do not cover every action and show")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def execute_action(self, command: JobCommand) -> JobResult:
        try:
            result = self._run_action(command)
        except JobCommandError as exc:
            result = JobResult.failure(exc)
        self._audit(command, ACTION_PARAM, result)
        return result

    def execute_show(self, command: JobCommand) -> JobResult:
        try:
            result = self._run_show(command)
        except JobCommandError as exc:
            result = JobResult.failure(exc)
        self._audit(command, SHOW_PARAM, result)
        return result

    # ------------------------------------------------------------------
    # Mutating path
    # ------------------------------------------------------------------
    def _run_action(self, command: JobCommand) -> JobResult:
        self._require_job_id(command)
        if not command.selector:
            raise JobValidationError.missing(ACTION_PARAM)
        self._gate.authorize_for_job(command.caller, command.job_id, True)
        action = parse_action(command.selector)
        conf = self._prepare_payload(action, command)
        with self._pause.paused():
            body = self._action_handlers[action](command, conf)
        return JobResult.json(body)

    def _prepare_payload(self, action: JobAction, command: JobCommand) -> Optional[JobConfiguration]:
        if action in XML_CONTENT_ACTIONS:
            self._validate_content_type(command, required=False)
            return None
        if action not in PAYLOAD_ACTIONS:
            return None

        self._validate_content_type(command, required=True)
        if not command.payload or not command.payload.strip():
            raise JobValidationError(
                f"Action [{action.value}] requires a configuration document",
                JobErrorCode.MISSING_PAYLOAD,
                {"param": ACTION_PARAM, "value": action.value},
            )
        conf = JobConfiguration.from_xml(command.payload)
        if is_defined_user(command.caller):
            conf = conf.with_value(USER_NAME, command.caller)
        if not has_app_path(conf):
            return conf
        if action is JobAction.COORD_UPDATE:
            return self._authorize_update_app(conf)
        authorization = self._app_authorizer.authorize(conf)
        return normalize_app_path(authorization.conf, authorization.user)

    def _authorize_update_app(self, conf: JobConfiguration) -> JobConfiguration:
        bundle_path = None
        if conf.get_value(COORDINATOR_APP_PATH) and BUNDLE_APP_PATH in conf:
            # A coordinator spawned by a bundle is authorized against its own path only.
            bundle_path = conf[BUNDLE_APP_PATH]
            conf = conf.without(BUNDLE_APP_PATH)
        authorization = self._app_authorizer.authorize(conf)
        derived = normalize_app_path(authorization.conf, authorization.user)
        return restore_bundle_path(derived, bundle_path)

    def _build_action_handlers(self) -> Dict[JobAction, ActionHandler]:
        engine = self._engine
        return {
            JobAction.START: lambda cmd, conf: engine.start_job(cmd.job_id, cmd.params),
            JobAction.RESUME: lambda cmd, conf: engine.resume_job(cmd.job_id, cmd.params),
            JobAction.SUSPEND: lambda cmd, conf: engine.suspend_job(cmd.job_id, cmd.params),
            JobAction.KILL: lambda cmd, conf: engine.kill_job(cmd.job_id, cmd.params),
            JobAction.CHANGE: lambda cmd, conf: engine.change_job(cmd.job_id, cmd.params),
            JobAction.IGNORE: lambda cmd, conf: engine.ignore_job(cmd.job_id, cmd.params),
            JobAction.RERUN: lambda cmd, conf: engine.rerun_job(cmd.job_id, conf, cmd.params),
            JobAction.COORD_RERUN: lambda cmd, conf: engine.rerun_job(cmd.job_id, None, cmd.params),
            JobAction.BUNDLE_RERUN: lambda cmd, conf: engine.rerun_job(cmd.job_id, None, cmd.params),
            JobAction.COORD_UPDATE: lambda cmd, conf: engine.update_job(cmd.job_id, conf, cmd.params),
            JobAction.SLA_ENABLE_ALERT: lambda cmd, conf: engine.sla_enable_alert(cmd.job_id, cmd.params),
            JobAction.SLA_DISABLE_ALERT: lambda cmd, conf: engine.sla_disable_alert(cmd.job_id, cmd.params),
            JobAction.SLA_CHANGE: lambda cmd, conf: engine.sla_change(cmd.job_id, cmd.params),
        }

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------
    def _run_show(self, command: JobCommand) -> JobResult:
        self._require_job_id(command)
        self._gate.authorize_for_job(command.caller, command.job_id, False)
        show = parse_show(command.selector)

        if show in UNPAUSED_STREAM_SHOWS:
            stream = self._open_log_stream(show, command)
            return JobResult.stream(_prime_stream(stream), TEXT_MEDIA_TYPE)

        if show is JobShow.GRAPH:
            with self._pause.paused():
                chunks = list(self._engine.stream_job_graph(command.job_id, command.params))
            return JobResult.stream(iter(chunks), self._engine.graph_content_type)

        if show is JobShow.DEFINITION:
            with self._pause.paused():
                definition = self._engine.get_job_definition(command.job_id, command.params)
            return JobResult.text(definition, XML_MEDIA_TYPE)

        with self._pause.paused():
            body = self._show_handlers[show](command)
        return JobResult.json(body, timezone=command.timezone)

    def _open_log_stream(self, show: JobShow, command: JobCommand) -> Iterator[str]:
        if show is JobShow.ERROR_LOG:
            return self._engine.stream_job_error_log(command.job_id, command.params)
        if show is JobShow.AUDIT_LOG:
            return self._engine.stream_job_audit_log(command.job_id, command.params)
        return self._engine.stream_job_log(command.job_id, command.params)

    def _build_show_handlers(self) -> Dict[JobShow, ShowHandler]:
        engine = self._engine
        return {
            JobShow.INFO: lambda cmd: engine.get_job(cmd.job_id, cmd.params),
            JobShow.ALL_WORKFLOWS_FOR_COORD_ACTION: lambda cmd: engine.get_jobs_by_parent_id(cmd.job_id, cmd.params),
            JobShow.JMS_TOPIC: lambda cmd: JmsTopicResponse(
                jms_topic_name=engine.get_jms_topic_name(cmd.job_id, cmd.params)
            ),
            JobShow.STATUS: lambda cmd: JobStatusResponse(status=engine.get_job_status(cmd.job_id, cmd.params)),
            JobShow.ACTION_RETRIES: lambda cmd: ActionRetriesResponse(
                retries=engine.get_action_retries(cmd.job_id, cmd.params)
            ),
            JobShow.COORD_ACTION_MISSING_DEPENDENCIES: lambda cmd: engine.get_coord_action_missing_dependencies(
                cmd.job_id, cmd.params
            ),
            JobShow.WF_ACTIONS_IN_COORD: lambda cmd: engine.get_workflow_actions_by_name(cmd.job_id, cmd.params),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _require_job_id(command: JobCommand) -> None:
        if not command.job_id or not command.job_id.strip():
            raise JobValidationError.missing("job_id")

    @staticmethod
    def _validate_content_type(command: JobCommand, required: bool) -> None:
        content_type = (command.content_type or "").strip().lower()
        if not content_type and not required:
            return
        if not content_type.startswith(XML_CONTENT_TYPE):
            raise JobValidationError(
                f"Invalid content type [{command.content_type}], expected [{XML_CONTENT_TYPE}]",
                JobErrorCode.INVALID_CONTENT_TYPE,
                {"param": "Content-Type", "value": command.content_type},
            )

    @staticmethod
    def _audit(command: JobCommand, param: str, result: JobResult) -> None:
        error = result.error
        audit_logger.info(
            "USER [%s] JOBID [%s] OPERATION [%s=%s] PARAMETER [%s] STATUS [%s] HTTPCODE [%s] "
            "ERRORCODE [%s] ERRORMESSAGE [%s]",
            command.caller,
            command.job_id,
            param,
            command.selector or "",
            dict(command.params),
            result.kind.value,
            status_code_for(result),
            error.code.value if error else "-",
            error.message if error else "-",
        )


authorization_gate.bind_owner_lookup(job_engine)
job_dispatcher = JobCommandDispatcher(
    engine=job_engine,
    gate=authorization_gate,
    pause_controller=maintenance_pause,
)
