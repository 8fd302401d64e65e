from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import urlparse

from ...config import config
from ..orchestration.job_configuration import JobConfiguration
from ..orchestration.job_errors import AuthorizationDenied
from .caller_identity import is_defined_user


logger = logging.getLogger(__name__)


def resolve_app_path(app_path: str, user: str) -> str:
    """Resolve a relative application path against the user's home directory."""
    if urlparse(app_path).scheme or app_path.startswith("/"):
        return app_path
    home = PurePosixPath(str(config.APP.USER_HOME_TEMPLATE).format(user=user))
    return str(home / app_path)


class AuthorizationGate(Protocol):
    def authorize_for_job(self, user: str, job_id: str, write: bool) -> None:
        ...

    def authorize_for_app(
        self,
        user: str,
        acl: str | None,
        app_path: str,
        definition_file: str,
        conf: JobConfiguration,
    ) -> None:
        ...

    def use_default_group_as_acl(self) -> bool:
        ...

    def get_default_group(self, user: str) -> str:
        ...


class JobOwnerPort(Protocol):
    def get_job_owner(self, job_id: str) -> tuple[str | None, str | None] | None:
        ...


def _lookup_os_groups(user: str) -> list[str]:
    try:
        import grp
        import pwd
    except ImportError:
        return []
    try:
        primary_gid = pwd.getpwnam(user).pw_gid
    except KeyError:
        return []
    groups: list[str] = []
    try:
        groups.append(grp.getgrgid(primary_gid).gr_name)
    except KeyError:
        pass
    for entry in grp.getgrall():
        if user in entry.gr_mem and entry.gr_name not in groups:
            groups.append(entry.gr_name)
    return groups


class ConfiguredAuthorizationGate:
    """
    Authorization policy driven by the AUTH config section.

    - Security disabled: every check passes.
    - Reads are open to every caller.
    - Writes require an admin, the job owner, or membership in the job's ACL
      (a comma separated list of users and groups).
    - Application checks require ACL membership and, for local paths, an
      existing definition file.
    """

    def __init__(self, owner_lookup: JobOwnerPort | None = None, group_lookup=_lookup_os_groups) -> None:
        self._owner_lookup = owner_lookup
        self._group_lookup = group_lookup

    def bind_owner_lookup(self, owner_lookup: JobOwnerPort) -> None:
        self._owner_lookup = owner_lookup

    def security_enabled(self) -> bool:
        return bool(config.AUTH.SECURITY_ENABLED)

    def is_admin(self, user: str) -> bool:
        return user in set(config.AUTH.ADMIN_USERS)

    def get_user_groups(self, user: str) -> list[str]:
        return list(self._group_lookup(user))

    def use_default_group_as_acl(self) -> bool:
        return bool(config.AUTH.DEFAULT_GROUP_AS_ACL)

    def get_default_group(self, user: str) -> str:
        groups = self.get_user_groups(user)
        if not groups:
            raise AuthorizationDenied(f"User [{user}] does not belong to any group")
        return groups[0]

    def authorize_for_job(self, user: str, job_id: str, write: bool) -> None:
        if not self.security_enabled() or not write:
            return
        self._require_user(user)
        if self.is_admin(user):
            return
        owner = self._owner_lookup.get_job_owner(job_id) if self._owner_lookup else None
        if owner is None:
            # Unknown jobs are reported by the engine itself.
            logger.debug("No owner recorded for job %s, deferring to engine", job_id)
            return
        job_user, job_acl = owner
        if user == job_user or self._in_acl(user, job_acl):
            return
        raise AuthorizationDenied(
            f"User [{user}] not authorized for job [{job_id}]",
            details={"user": user, "job_id": job_id},
        )

    def authorize_for_app(
        self,
        user: str,
        acl: str | None,
        app_path: str,
        definition_file: str,
        conf: JobConfiguration,
    ) -> None:
        if not self.security_enabled():
            return
        self._require_user(user)
        if acl and not self.is_admin(user) and not self._in_acl(user, acl):
            raise AuthorizationDenied(
                f"User [{user}] not authorized for group [{acl}]",
                details={"user": user, "acl": acl},
            )
        if config.AUTH.CHECK_APP_PATH_EXISTS:
            self._check_definition_exists(resolve_app_path(app_path, user), definition_file)

    def _require_user(self, user: str) -> None:
        if not is_defined_user(user):
            raise AuthorizationDenied("Anonymous callers are not authorized")

    def _in_acl(self, user: str, acl: str | None) -> bool:
        if not acl:
            return False
        entries = {item.strip() for item in acl.split(",") if item.strip()}
        if user in entries:
            return True
        return any(group in entries for group in self.get_user_groups(user))

    def _check_definition_exists(self, app_path: str, definition_file: str) -> None:
        parsed = urlparse(app_path)
        if parsed.scheme not in ("", "file"):
            # Remote filesystems are checked by the engine at submission time.
            return
        target = Path(parsed.path)
        if target.is_dir():
            target = target / definition_file
        if not target.exists():
            raise AuthorizationDenied(
                f"App definition [{target}] does not exist",
                details={"app_path": app_path},
            )


authorization_gate = ConfiguredAuthorizationGate()
