import sys
from pathlib import Path
import pytest

# Add project root to sys.path
# This ensures that 'server' is importable as a top-level module during tests
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def override_config():
    """Temporarily override config values given as `SECTION__KEY=value` keywords."""
    from server.config import config

    saved: list[tuple[str, str, object]] = []

    def _apply(**overrides):
        config.defrost()
        try:
            for dotted, value in overrides.items():
                section, key = dotted.split("__", 1)
                node = getattr(config, section)
                saved.append((section, key, node[key]))
                node[key] = value
        finally:
            config.freeze()

    try:
        yield _apply
    finally:
        config.defrost()
        for section, key, value in reversed(saved):
            getattr(config, section)[key] = value
        config.freeze()


@pytest.fixture
def security_enabled(override_config):
    override_config(AUTH__SECURITY_ENABLED=True, AUTH__CHECK_APP_PATH_EXISTS=False)
    return override_config
