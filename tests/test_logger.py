import logging

import pytest

from flowsmith.utils.logger import PROJECT_LOGGER, get_logger, init_logger


@pytest.fixture(autouse=True)
def _restore_project_logger(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("FLOWSMITH_LOG_DIR", raising=False)
    yield
    for h in logging.getLogger(PROJECT_LOGGER).handlers:
        h.close()
    logging.getLogger(PROJECT_LOGGER).handlers.clear()


def test_get_logger_initializes_project_logger_once():
    logging.getLogger(PROJECT_LOGGER).handlers.clear()
    child = get_logger("pipeline")
    project = logging.getLogger(PROJECT_LOGGER)
    assert child.name == "flowsmith.pipeline"
    assert len(project.handlers) == 1
    assert project.level == logging.WARNING
    assert not project.propagate
    get_logger("repair")
    assert len(project.handlers) == 1


def test_env_level_and_reinit_replaces_handlers(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert init_logger().level == logging.DEBUG
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    logger = init_logger()
    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1


def test_log_dir_from_env_adds_rotating_file(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOWSMITH_LOG_DIR", str(tmp_path / "logs"))
    logger = init_logger(level=logging.INFO)
    assert len(logger.handlers) == 2
    get_logger("test").info("written to file")
    for h in logger.handlers:
        h.flush()
    text = (tmp_path / "logs" / "flowsmith.log").read_text(encoding="utf-8")
    assert "written to file" in text
