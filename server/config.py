"""
Configuration Loader.

This module initializes the global configuration object (`config`) used throughout
the application. It leverages `yacs` to provide a hierarchical, dot-accessible
configuration structure defined in `server.core_config`.

Usage:
    from server.config import config
    print(config.AUTH.SECURITY_ENABLED)
"""

import logging
import os

from server.core_config import get_cfg_defaults

logger = logging.getLogger(__name__)

# Load default configuration
config = get_cfg_defaults()

# Optional YAML overrides
_user_config_path = os.environ.get("JOB_SERVER_CONFIG_FILE")
if _user_config_path and os.path.exists(_user_config_path):
    config.merge_from_file(_user_config_path)

# Freeze config to prevent accidental changes during runtime.
config.freeze()
