import logging
from unittest.mock import MagicMock

import pytest

from vimmarch.config.models import Settings
from vimmarch.utils.logger import AppLogger, RichAppLogger, initialize_app_logger


@pytest.fixture(scope="function")
def cleanup_logging_state():
    """Resets logger handlers before and after each test."""
    logging.setLoggerClass(AppLogger)
    for logger_name in list(logging.root.manager.loggerDict.keys()):
        logging.getLogger(logger_name).handlers = []

    yield

    for logger_name in list(logging.root.manager.loggerDict.keys()):
        logging.getLogger(logger_name).handlers = []


@pytest.fixture
def mock_rich_logger():
    """A fully-mocked RichAppLogger. execution_step yields a mock StepStatus."""
    mock_logger = MagicMock(spec=RichAppLogger)

    mock_context_manager = MagicMock()
    mock_context_manager.__enter__.return_value = MagicMock()
    mock_context_manager.__exit__.return_value = None
    mock_logger.execution_step.return_value = mock_context_manager

    return mock_logger


@pytest.fixture
def app_logger(tmp_path, cleanup_logging_state):
    """A real RichAppLogger writing to a temporary log file."""
    return initialize_app_logger(
        app_name="TestApp",
        log_directory=str(tmp_path / "logs"),
        log_file_name="test.log",
        file_log_level=logging.DEBUG,
    )


@pytest.fixture
def settings(tmp_path):
    home = tmp_path / "home" / "tester"
    home.mkdir(parents=True)
    return Settings(
        actual_user="tester",
        home=home,
        backup_dir=tmp_path / "backups",
        retry_delay=0,
    )
