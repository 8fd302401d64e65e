import itertools
import logging

import pytest

from server.models import JobErrorCode, JobType
from server.services.auth.app_path_authorizer import (
    AppPathAuthorizer,
    normalize_app_path,
    restore_bundle_path,
    validate_app_paths,
)
from server.services.orchestration.job_configuration import (
    APP_PATH,
    BUNDLE_APP_PATH,
    COORDINATOR_APP_PATH,
    GROUP_NAME,
    JOB_ACL,
    LIBPATH,
    USER_NAME,
    JobConfiguration,
)
from server.services.orchestration.job_errors import AuthorizationDenied, JobValidationError


class RecordingGate:
    def __init__(self, default_group=None, deny=False):
        self.default_group = default_group
        self.deny = deny
        self.calls = []

    def authorize_for_job(self, user, job_id, write):
        return None

    def authorize_for_app(self, user, acl, app_path, definition_file, conf):
        self.calls.append((user, acl, app_path, definition_file, dict(conf)))
        if self.deny:
            raise AuthorizationDenied("denied")

    def use_default_group_as_acl(self):
        return self.default_group is not None

    def get_default_group(self, user):
        return self.default_group


APP_TYPES = (JobType.WORKFLOW, JobType.COORDINATOR, JobType.BUNDLE)


@pytest.mark.parametrize(
    "given",
    [subset for size in range(len(APP_TYPES) + 1) for subset in itertools.combinations(APP_TYPES, size)],
    ids=lambda subset: "+".join(job_type.value for job_type in subset) or "none",
)
def test_validate_app_paths_requires_exactly_one(given):
    paths = {job_type: (f"/apps/{job_type.value}" if job_type in given else None) for job_type in APP_TYPES}

    if len(given) == 1:
        assert validate_app_paths(paths) == (given[0], f"/apps/{given[0].value}")
        return

    with pytest.raises(JobValidationError) as exc_info:
        validate_app_paths(paths)
    if not given:
        assert exc_info.value.code == JobErrorCode.MISSING_APP_PATH
    else:
        assert exc_info.value.code == JobErrorCode.MULTIPLE_APP_PATHS
        assert len(exc_info.value.details["params"]) == len(given)


def test_validate_app_paths_rejects_wrong_definition_file():
    assert validate_app_paths({JobType.COORDINATOR: "/apps/c/coordinator.xml"})[0] == JobType.COORDINATOR
    with pytest.raises(JobValidationError) as exc_info:
        validate_app_paths({JobType.COORDINATOR: "/apps/c/workflow.xml"})
    assert exc_info.value.code == JobErrorCode.APP_PATH_KIND_MISMATCH


def test_authorize_requires_user_name():
    authorizer = AppPathAuthorizer(RecordingGate())
    with pytest.raises(JobValidationError) as exc_info:
        authorizer.authorize(JobConfiguration({APP_PATH: "/apps/wf"}))
    assert exc_info.value.code == JobErrorCode.MISSING_USER_NAME


def test_acl_precedence_group_then_deprecated_then_default(caplog):
    gate = RecordingGate(default_group="users")
    authorizer = AppPathAuthorizer(gate)
    base = JobConfiguration({USER_NAME: "alice", APP_PATH: "/apps/wf"})

    explicit = authorizer.authorize(base.with_value(GROUP_NAME, "eng").with_value(JOB_ACL, "legacy"))
    assert explicit.acl == "eng"

    with caplog.at_level(logging.WARNING):
        deprecated = authorizer.authorize(base.with_value(JOB_ACL, "legacy"))
    assert deprecated.acl == "legacy"
    assert deprecated.conf[GROUP_NAME] == "legacy"
    assert "deprecated" in caplog.text

    fallback = authorizer.authorize(base)
    assert fallback.acl == "users"


def test_absent_acl_proceeds_without_group():
    gate = RecordingGate()
    result = AppPathAuthorizer(gate).authorize(JobConfiguration({USER_NAME: "alice", APP_PATH: "/apps/wf"}))
    assert result.acl is None
    assert GROUP_NAME not in result.conf
    assert gate.calls[0][:4] == ("alice", None, "/apps/wf", "workflow.xml")


def test_input_configuration_is_not_modified():
    conf = JobConfiguration({USER_NAME: "alice", LIBPATH: " ,/lib/shared", JOB_ACL: "ops"})
    result = AppPathAuthorizer(RecordingGate()).authorize(conf)

    assert result.conf[APP_PATH] == "/lib/shared"
    assert result.conf[GROUP_NAME] == "ops"
    assert APP_PATH not in conf
    assert GROUP_NAME not in conf


def test_denial_propagates():
    authorizer = AppPathAuthorizer(RecordingGate(deny=True))
    with pytest.raises(AuthorizationDenied):
        authorizer.authorize(JobConfiguration({USER_NAME: "alice", COORDINATOR_APP_PATH: "/apps/c"}))


def test_normalize_and_restore_paths(override_config):
    override_config(APP__USER_HOME_TEMPLATE="/home/{user}")
    conf = JobConfiguration({APP_PATH: "apps/wf", COORDINATOR_APP_PATH: "hdfs://nn/c"})

    normalized = normalize_app_path(conf, "alice")
    assert normalized[APP_PATH] == "/home/alice/apps/wf"
    assert normalized[COORDINATOR_APP_PATH] == "hdfs://nn/c"
    assert restore_bundle_path(normalized, None) is normalized
    assert restore_bundle_path(normalized, "/b")[BUNDLE_APP_PATH] == "/b"
