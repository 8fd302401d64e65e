"""
Authorization of the application a job configuration points at.

A configuration names exactly one of a workflow, coordinator or bundle
application path. The authorizer resolves which one, derives the effective
ACL (explicit group, then the deprecated ACL property, then the caller's
default group when the policy allows it) and asks the gate whether the user
may use that application. The input configuration is never modified; the
derived configuration is returned in an `AppAuthorization`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlparse

from ...models import JobErrorCode, JobType
from ..orchestration.job_configuration import (
    APP_PATH,
    BUNDLE_APP_PATH,
    COORDINATOR_APP_PATH,
    GROUP_NAME,
    JOB_ACL,
    LIBPATH,
    USER_NAME,
    JobConfiguration,
)
from ..orchestration.job_errors import AuthorizationDenied, JobValidationError
from .authorization_gate import AuthorizationGate, resolve_app_path


logger = logging.getLogger(__name__)

APP_PATH_KEYS: dict[JobType, str] = {
    JobType.WORKFLOW: APP_PATH,
    JobType.COORDINATOR: COORDINATOR_APP_PATH,
    JobType.BUNDLE: BUNDLE_APP_PATH,
}

DEFINITION_FILES: dict[JobType, str] = {
    JobType.WORKFLOW: "workflow.xml",
    JobType.COORDINATOR: "coordinator.xml",
    JobType.BUNDLE: "bundle.xml",
}


@dataclass(frozen=True)
class AppAuthorization:
    conf: JobConfiguration
    job_type: JobType
    app_path: str
    user: str
    acl: str | None = None


def has_app_path(conf: JobConfiguration) -> bool:
    return any(conf.get_value(key) for key in APP_PATH_KEYS.values())


def validate_app_paths(paths: Mapping[JobType, str | None]) -> tuple[JobType, str]:
    present = [(job_type, path) for job_type, path in paths.items() if path]
    if not present:
        raise JobValidationError(
            "One of (" + ", ".join(APP_PATH_KEYS.values()) + ") must be specified",
            JobErrorCode.MISSING_APP_PATH,
        )
    if len(present) > 1:
        raise JobValidationError(
            "Multiple app paths specified, only one is allowed",
            JobErrorCode.MULTIPLE_APP_PATHS,
            {"params": [APP_PATH_KEYS[job_type] for job_type, _ in present]},
        )
    job_type, path = present[0]
    name = PurePosixPath(urlparse(path).path).name
    if name.endswith(".xml") and name != DEFINITION_FILES[job_type]:
        raise JobValidationError(
            f"App path [{path}] does not name a {job_type.value} definition",
            JobErrorCode.APP_PATH_KIND_MISMATCH,
            {"param": APP_PATH_KEYS[job_type], "value": path},
        )
    return job_type, path


def normalize_app_path(conf: JobConfiguration, user: str) -> JobConfiguration:
    """Resolve relative application paths against the user's home directory."""
    for key in APP_PATH_KEYS.values():
        value = conf.get_value(key)
        if value is None:
            continue
        resolved = resolve_app_path(value, user)
        if resolved != value:
            conf = conf.with_value(key, resolved)
    return conf


def restore_bundle_path(conf: JobConfiguration, bundle_path: str | None) -> JobConfiguration:
    if bundle_path is None:
        return conf
    return conf.with_value(BUNDLE_APP_PATH, bundle_path)


class AppPathAuthorizer:
    def __init__(self, gate: AuthorizationGate) -> None:
        self._gate = gate

    def resolve_effective_acl(self, conf: JobConfiguration, user: str) -> str | None:
        group = conf.get_value(GROUP_NAME)
        if group:
            return group
        deprecated = conf.get_value(JOB_ACL)
        if deprecated:
            logger.warning("Property [%s] is deprecated, use [%s] instead", JOB_ACL, GROUP_NAME)
            return deprecated
        if self._gate.use_default_group_as_acl():
            return self._gate.get_default_group(user)
        return None

    def authorize(self, conf: JobConfiguration) -> AppAuthorization:
        user = conf.get_value(USER_NAME)
        if not user:
            raise JobValidationError(
                f"Missing configuration property [{USER_NAME}]",
                JobErrorCode.MISSING_USER_NAME,
                {"param": USER_NAME},
            )

        acl = self.resolve_effective_acl(conf, user)
        derived = conf.with_value(GROUP_NAME, acl) if acl else conf
        logger.debug("Authorizing application for user=%s group=%s", user, acl)

        paths = {job_type: derived.get_value(key) for job_type, key in APP_PATH_KEYS.items()}
        if not any(paths.values()):
            lib_path = next(
                (item.strip() for item in derived.get_strings(LIBPATH) if item.strip()),
                None,
            )
            if lib_path is None:
                raise JobValidationError(
                    "Request has no application or library path",
                    JobErrorCode.MISSING_APP_PATH,
                )
            derived = derived.with_value(APP_PATH, lib_path)
            paths[JobType.WORKFLOW] = lib_path

        job_type, app_path = validate_app_paths(paths)
        try:
            self._gate.authorize_for_app(user, acl, app_path, DEFINITION_FILES[job_type], derived)
        except AuthorizationDenied:
            logger.info("Application authorization denied: user=%s path=%s", user, app_path)
            raise
        return AppAuthorization(
            conf=derived,
            job_type=job_type,
            app_path=app_path,
            user=user,
            acl=acl,
        )
