"""Unit tests for registry_audit/logging_utils.py"""

import logging

import pytest

from registry_audit.logging_utils import get_logger, log_exception, set_level


@pytest.fixture
def restore_levels():
    names = ["", "urllib3", "kubernetes"]
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


class TestSetLevel:
    """Tests for set_level"""

    def test_accepts_names(self, restore_levels):
        set_level("warning")
        assert logging.getLogger().level == logging.WARNING

    def test_unknown_name_falls_back_to_info(self, restore_levels):
        set_level("LOUD")
        assert logging.getLogger().level == logging.INFO

    def test_debug_unmutes_client_libraries(self, restore_levels):
        set_level(logging.DEBUG)
        assert logging.getLogger("urllib3").level == logging.DEBUG
        assert logging.getLogger("kubernetes").level == logging.DEBUG


def test_get_logger_is_named():
    assert get_logger("registry_audit.test").name == "registry_audit.test"


def test_log_exception_includes_traceback(caplog):
    logger = get_logger("registry_audit.test")
    try:
        raise ValueError("bad manifest")
    except ValueError as e:
        log_exception(logger, "Audit failed", e)

    assert "Audit failed" in caplog.text
    assert "ValueError: bad manifest" in caplog.text
    assert "Traceback" in caplog.text
