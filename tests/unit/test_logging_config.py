import logging
from logging.handlers import RotatingFileHandler

import pytest

from server.logging_config import AUDIT_LOGGER_NAME, setup_logging


@pytest.fixture
def isolated_loggers():
    root_logger = logging.getLogger()
    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    saved_root = list(root_logger.handlers)
    saved_audit = list(audit_logger.handlers)
    audit_logger.handlers = []
    yield root_logger, audit_logger
    for handler in audit_logger.handlers:
        handler.close()
    for handler in root_logger.handlers:
        if handler not in saved_root:
            handler.close()
    audit_logger.handlers = saved_audit
    root_logger.handlers = saved_root


def test_audit_file_attached_when_root_already_configured(isolated_loggers, override_config, monkeypatch, tmp_path):
    root_logger, audit_logger = isolated_loggers
    override_config(SYSTEM__DATA_DIR=str(tmp_path))
    audit_file = tmp_path / "audit.log"
    monkeypatch.setenv("AUDIT_LOG_FILE", str(audit_file))
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "server.log"))
    host_handler = logging.NullHandler()
    root_logger.addHandler(host_handler)
    root_before = list(root_logger.handlers)

    setup_logging()
    setup_logging()

    audit_handlers = [handler for handler in audit_logger.handlers if isinstance(handler, RotatingFileHandler)]
    assert len(audit_handlers) == 1
    assert audit_handlers[0].baseFilename == str(audit_file)
    assert root_logger.handlers == root_before
