import logging
from unittest.mock import MagicMock, patch

import pytest
from rich.logging import RichHandler

from vimmarch.utils.logger import (
    EXECUTE_LEVEL_NUM, SECTION_LEVEL_NUM, AppLogger, BestEffortFileHandler, RichAppLogger,
    initialize_app_logger,
)

# --- Helpers ---

def get_file_content(logger_wrapper):
    """Reads the content of the wrapper's log file."""
    with open(logger_wrapper.log_file, 'r', encoding='utf-8') as f:
        return f.read()


@pytest.fixture(scope="function")
def isolated_rich_logger(app_logger):
    """The app_logger without its RichHandler, so only custom TUI prints reach the console."""
    for handler in app_logger.logger.handlers[:]:
        if isinstance(handler, RichHandler):
            app_logger.logger.removeHandler(handler)
    return app_logger

# --- Tests ---

def test_initialization_and_configuration(app_logger, tmp_path):
    assert isinstance(app_logger, RichAppLogger)
    assert isinstance(app_logger.logger, AppLogger)
    assert (tmp_path / "logs").is_dir()

    handlers = app_logger.logger.handlers
    assert len(handlers) == 2
    assert any(isinstance(h, BestEffortFileHandler) for h in handlers)
    assert any(isinstance(h, RichHandler) for h in handlers)


def test_custom_levels_sit_below_warning():
    assert logging.INFO < SECTION_LEVEL_NUM < logging.WARNING
    assert logging.INFO < EXECUTE_LEVEL_NUM < logging.WARNING


def test_standard_logging_to_file(app_logger):
    app_logger.info("Mirrorlist refreshed.")
    app_logger.error("Timezone could not be set.")

    file_content = get_file_content(app_logger)
    assert "Mirrorlist refreshed." in file_content
    assert "Timezone could not be set." in file_content


def test_log_file_is_appended(tmp_path, cleanup_logging_state):
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    (log_dir / "test.log").write_text("previous run\n", encoding="utf-8")

    wrapper = initialize_app_logger(app_name="AppendApp", log_directory=str(log_dir), log_file_name="test.log")
    wrapper.info("second run")

    content = get_file_content(wrapper)
    assert content.startswith("previous run\n")
    assert "second run" in content


def test_unwritable_log_directory_falls_back_to_console(tmp_path, cleanup_logging_state):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")

    with patch('vimmarch.utils.logger.RichAppLogger.warning') as mock_warning:
        wrapper = initialize_app_logger(app_name="FallbackApp", log_directory=str(blocker / "logs"))

    assert wrapper.log_file is None
    assert not any(isinstance(h, logging.FileHandler) for h in wrapper.logger.handlers)
    mock_warning.assert_called_once()
    assert "console only" in mock_warning.call_args[0][0]


def test_no_log_directory_means_console_only(cleanup_logging_state):
    wrapper = initialize_app_logger(app_name="ConsoleApp", log_directory=None)
    assert wrapper.log_file is None
    assert len(wrapper.logger.handlers) == 1


def test_file_handler_swallows_write_errors(app_logger, capsys):
    file_handler = next(h for h in app_logger.logger.handlers if isinstance(h, BestEffortFileHandler))
    file_handler.handleError(logging.makeLogRecord({"msg": "lost"}))
    assert "Traceback" not in capsys.readouterr().err


def test_execution_step_success(app_logger):
    step_message = "Refreshing package databases"

    with patch.object(app_logger.console, 'status') as mock_status, \
         patch.object(app_logger.console, 'print') as mock_console_print:
        mock_status.return_value.__enter__.return_value = MagicMock()

        with app_logger.execution_step(step_message) as step:
            assert not step.failed

        mock_console_print.assert_any_call(f"[green]✔ [COMPLETED][/green] {step_message}")

    file_content = get_file_content(app_logger)
    assert f"[RUNNING] {step_message}" in file_content
    assert f"[COMPLETED] {step_message}" in file_content
    mock_status.assert_called_once()


def test_execution_step_marked_failed(app_logger):
    step_message = "Installing something"

    with patch.object(app_logger.console, 'status') as mock_status, \
         patch.object(app_logger.console, 'print') as mock_console_print:
        mock_status.return_value.__enter__.return_value = MagicMock()

        with app_logger.execution_step(step_message) as step:
            step.fail("exit code 1")

        mock_console_print.assert_any_call(f"[bold red]✘ [FAILED][/bold red] {step_message} (exit code 1)")

    file_content = get_file_content(app_logger)
    assert f"[FAILED] {step_message} (exit code 1)" in file_content
    assert "ERROR" not in file_content


def test_execution_step_exception_is_reraised(app_logger):
    step_message = "Enabling ufw"

    with patch.object(app_logger.console, 'status') as mock_status, \
         patch.object(app_logger.console, 'print') as mock_console_print:
        mock_status.return_value.__enter__.return_value = MagicMock()

        with pytest.raises(ValueError):
            with app_logger.execution_step(step_message):
                raise ValueError("ufw is not installed")

        mock_console_print.assert_any_call(f"[bold red]✘ [FAILED][/bold red] {step_message}")

    file_content = get_file_content(app_logger)
    assert f"[FAILED] {step_message}" in file_content
    assert "ValueError: ufw is not installed" in file_content


def test_execute_records_do_not_reach_the_console(app_logger):
    rich_handler = next(h for h in app_logger.logger.handlers if isinstance(h, RichHandler))
    record = logging.makeLogRecord({"levelno": EXECUTE_LEVEL_NUM, "levelname": "EXECUTE", "msg": "x"})
    assert not rich_handler.filter(record)


def test_section_logging(isolated_rich_logger):
    section_message = "PREPARATION PHASE"

    with patch.object(isolated_rich_logger.console, 'print') as mock_console_print:
        isolated_rich_logger.section(section_message)

    file_content = get_file_content(isolated_rich_logger)
    assert f"SECTION: {section_message}" in file_content
    assert "SECTION  " in file_content

    mock_console_print.assert_called_once()
    printed_arg = str(mock_console_print.call_args[0][0])
    assert f"SECTION: {section_message}" in printed_arg


def test_exception_method(app_logger):
    with patch.object(app_logger.console, 'print') as mock_console_print, \
         patch.object(app_logger.console, 'print_exception') as mock_print_exception:
        try:
            raise RuntimeError("reflector crashed")
        except RuntimeError:
            app_logger.exception("Unexpected failure in mirrors task.")

        mock_console_print.assert_any_call("[bold red]FATAL ERROR: Unexpected failure in mirrors task.[/bold red]")
        mock_print_exception.assert_called_once_with(show_locals=False)

    file_content = get_file_content(app_logger)
    assert "Unexpected failure in mirrors task." in file_content


def test_attach_and_detach_handler(app_logger):
    handler = logging.Handler()
    app_logger.attach(handler)
    assert handler in app_logger.logger.handlers
    app_logger.detach(handler)
    assert handler not in app_logger.logger.handlers
