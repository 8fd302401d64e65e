import pytest

from server.services.auth.authorization_gate import ConfiguredAuthorizationGate, resolve_app_path
from server.services.orchestration.job_configuration import JobConfiguration
from server.services.orchestration.job_errors import AuthorizationDenied


class StaticOwners:
    def __init__(self, owners):
        self.owners = owners

    def get_job_owner(self, job_id):
        return self.owners.get(job_id)


def _gate(owners=None, groups=None):
    return ConfiguredAuthorizationGate(
        owner_lookup=StaticOwners(owners or {}),
        group_lookup=lambda user: (groups or {}).get(user, []),
    )


def test_everything_allowed_when_security_disabled(override_config):
    override_config(AUTH__SECURITY_ENABLED=False)
    gate = _gate({"job-1": ("alice", None)})
    gate.authorize_for_job("-", "job-1", True)
    gate.authorize_for_app("-", "other", "/apps/wf", "workflow.xml", JobConfiguration())


def test_write_requires_owner_acl_or_admin(security_enabled):
    security_enabled(AUTH__ADMIN_USERS=["root"])
    gate = _gate({"job-1": ("alice", "ops,carol")}, {"dave": ["ops"]})

    gate.authorize_for_job("alice", "job-1", True)
    gate.authorize_for_job("carol", "job-1", True)
    gate.authorize_for_job("dave", "job-1", True)
    gate.authorize_for_job("root", "job-1", True)
    with pytest.raises(AuthorizationDenied):
        gate.authorize_for_job("mallory", "job-1", True)


def test_reads_open_and_anonymous_writes_denied(security_enabled):
    gate = _gate({"job-1": ("alice", None)})
    gate.authorize_for_job("mallory", "job-1", False)
    with pytest.raises(AuthorizationDenied):
        gate.authorize_for_job("-", "job-1", True)


def test_unknown_job_is_deferred_to_engine(security_enabled):
    _gate().authorize_for_job("mallory", "missing", True)


def test_app_acl_membership(security_enabled):
    gate = _gate(groups={"alice": ["eng"]})
    gate.authorize_for_app("alice", "eng", "/apps/wf", "workflow.xml", JobConfiguration())
    gate.authorize_for_app("alice", None, "/apps/wf", "workflow.xml", JobConfiguration())
    with pytest.raises(AuthorizationDenied):
        gate.authorize_for_app("alice", "finance", "/apps/wf", "workflow.xml", JobConfiguration())


def test_app_definition_must_exist_for_local_paths(security_enabled, tmp_path):
    security_enabled(AUTH__CHECK_APP_PATH_EXISTS=True)
    gate = _gate()
    (tmp_path / "workflow.xml").write_text("<workflow-app/>", encoding="utf-8")

    gate.authorize_for_app("alice", None, str(tmp_path), "workflow.xml", JobConfiguration())
    gate.authorize_for_app("alice", None, "hdfs://nn/apps/wf", "workflow.xml", JobConfiguration())
    with pytest.raises(AuthorizationDenied):
        gate.authorize_for_app("alice", None, str(tmp_path / "missing"), "workflow.xml", JobConfiguration())


def test_default_group_requires_membership():
    gate = _gate(groups={"alice": ["eng", "ops"]})
    assert gate.get_default_group("alice") == "eng"
    with pytest.raises(AuthorizationDenied):
        gate.get_default_group("nobody")


def test_relative_app_path_checked_under_user_home(security_enabled, tmp_path, monkeypatch):
    security_enabled(
        AUTH__CHECK_APP_PATH_EXISTS=True,
        APP__USER_HOME_TEMPLATE=str(tmp_path / "home" / "{user}"),
    )
    home_app = tmp_path / "home" / "alice" / "apps" / "wf"
    home_app.mkdir(parents=True)
    (home_app / "workflow.xml").write_text("<workflow-app/>", encoding="utf-8")
    cwd_app = tmp_path / "apps" / "other"
    cwd_app.mkdir(parents=True)
    (cwd_app / "workflow.xml").write_text("<workflow-app/>", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    gate = _gate()

    gate.authorize_for_app("alice", None, "apps/wf", "workflow.xml", JobConfiguration())
    with pytest.raises(AuthorizationDenied):
        gate.authorize_for_app("alice", None, "apps/other", "workflow.xml", JobConfiguration())


def test_resolve_app_path_keeps_absolute_and_remote_paths(override_config):
    override_config(APP__USER_HOME_TEMPLATE="/home/{user}")
    assert resolve_app_path("apps/wf", "alice") == "/home/alice/apps/wf"
    assert resolve_app_path("/apps/wf", "alice") == "/apps/wf"
    assert resolve_app_path("hdfs://nn/apps/wf", "alice") == "hdfs://nn/apps/wf"
