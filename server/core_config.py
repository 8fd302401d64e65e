"""
Core Configuration Definitions.

This module defines the default structure and values for the application's
configuration system using `yacs`. It serves as the single source of truth
for all configurable parameters.

Configuration is organized into sections:
- SYSTEM: Global paths and environment settings.
- AUTH: Caller identity and authorization policy.
- APP: Application path resolution.
- MAINTENANCE: Background maintenance sweeps.
- JOBS: Job rendering defaults.
"""

import os
from pathlib import Path
from yacs.config import CfgNode as CN  # type: ignore[import-untyped]


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _is_container_runtime() -> bool:
    if os.path.exists("/.dockerenv"):
        return True
    cgroup = Path("/proc/1/cgroup")
    if cgroup.exists():
        try:
            lowered = cgroup.read_text(encoding="utf-8", errors="ignore").lower()
            return "docker" in lowered or "containerd" in lowered or "kubepods" in lowered
        except OSError:
            return False
    return False


_C = CN()

# -----------------------------------------------------------------------------
# System Configuration
# -----------------------------------------------------------------------------
_C.SYSTEM = CN()
# Root directory of the project (calculated dynamically if not set)
_C.SYSTEM.ROOT = str(Path(__file__).parent.parent)

# Data directory for logs and other runtime state.
# Check env JOB_SERVER_DATA_DIR first, then default to PROJECT_ROOT/data
_default_data_dir = "/data" if _is_container_runtime() else os.path.join(_C.SYSTEM.ROOT, "data")
_C.SYSTEM.DATA_DIR = os.environ.get("JOB_SERVER_DATA_DIR", _default_data_dir)

# -----------------------------------------------------------------------------
# Authorization
# -----------------------------------------------------------------------------
_C.AUTH = CN()
# When disabled every job and application check is allowed.
_C.AUTH.SECURITY_ENABLED = _env_bool("JOB_SERVER_SECURITY_ENABLED", False)

# Users allowed to operate on any job.
_C.AUTH.ADMIN_USERS = _env_list("JOB_SERVER_ADMIN_USERS")

# Fall back to the caller's default group when a job declares no group/ACL.
_C.AUTH.DEFAULT_GROUP_AS_ACL = _env_bool("JOB_SERVER_DEFAULT_GROUP_AS_ACL", False)

# Header set by a trusted authenticating proxy.
_C.AUTH.USER_HEADER = os.environ.get("JOB_SERVER_USER_HEADER", "X-Remote-User")

# Require local application definition files to exist during app authorization.
_C.AUTH.CHECK_APP_PATH_EXISTS = _env_bool("JOB_SERVER_CHECK_APP_PATH_EXISTS", True)

# -----------------------------------------------------------------------------
# Application paths
# -----------------------------------------------------------------------------
_C.APP = CN()
# Relative application paths are resolved against this directory.
_C.APP.USER_HOME_TEMPLATE = os.environ.get("JOB_SERVER_USER_HOME_TEMPLATE", "/user/{user}")

# -----------------------------------------------------------------------------
# Background maintenance
# -----------------------------------------------------------------------------
_C.MAINTENANCE = CN()
# Sweep interval (seconds); <= 0 disables the scheduler.
_C.MAINTENANCE.INTERVAL_SECONDS = int(
    os.environ.get("JOB_SERVER_MAINTENANCE_INTERVAL_SECONDS", "60")
)

# Completed jobs older than this are purged by the sweep.
_C.MAINTENANCE.COMPLETED_JOB_RETENTION_HOURS = int(
    os.environ.get("JOB_SERVER_COMPLETED_JOB_RETENTION_HOURS", "24")
)

# -----------------------------------------------------------------------------
# Job rendering
# -----------------------------------------------------------------------------
_C.JOBS = CN()
_C.JOBS.DEFAULT_TIMEZONE = os.environ.get("JOB_SERVER_DEFAULT_TIMEZONE", "GMT")


def get_cfg_defaults():
    """
    Get a yacs CfgNode object with default values.
    Returns a clone to ensure thread-safety during initialization.
    """
    return _C.clone()
