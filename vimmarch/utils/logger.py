# vimmarch/utils/logger.py
import logging
import os
import shutil
import sys
from typing import Iterable, List, Optional
from contextlib import contextmanager

from rich.console import Console
from rich.text import Text
from rich.status import Status
from rich.logging import RichHandler
from rich.theme import Theme

# --- 1. Custom Log Levels and Subclassed Logger ---
# Both levels sit between INFO (20) and WARNING (30) so they are never counted as warnings.
SECTION_LEVEL_NUM = 25
EXECUTE_LEVEL_NUM = 26
logging.addLevelName(SECTION_LEVEL_NUM, 'SECTION')
logging.addLevelName(EXECUTE_LEVEL_NUM, 'EXECUTE')

FILE_FORMAT = "%(asctime)s - %(levelname)-9s - %(name)-15s - %(filename)-20s:%(lineno)-5d - %(message)s"

THEME = Theme({
    "section": "bold yellow on black",
    "info": "yellow",
    "warning": "bold yellow",
    "success": "green",
    "error": "red",
    "critical": "bold reverse red",
})


def _level_method(level: int, name: str):
    def log_at_level(self, msg, *args, **kwargs):
        if self.isEnabledFor(level):
            self._log(level, msg, args, **kwargs)
    log_at_level.__name__ = name
    log_at_level.__doc__ = f"Logs a message at the {logging.getLevelName(level)} level."
    return log_at_level


class AppLogger(logging.Logger):
    """logging.Logger with ``section`` and ``execute`` methods for the two custom levels."""

    section = _level_method(SECTION_LEVEL_NUM, "section")
    execute = _level_method(EXECUTE_LEVEL_NUM, "execute")


logging.setLoggerClass(AppLogger)


# --- 2. File output ---
class FileFormatter(logging.Formatter):
    """Fixed-width columns so the log file lines up when read in a pager."""

    def __init__(self):
        super().__init__(fmt=FILE_FORMAT)


class BestEffortFileHandler(logging.FileHandler):
    """
    FileHandler whose write failures are dropped silently.
    A log file that becomes unwritable mid-run must never fail the task that is logging.
    """

    def handleError(self, record):
        pass


class LevelFilter(logging.Filter):
    """Drops records whose level is one of ``excluded``."""

    def __init__(self, excluded: Iterable[int]):
        super().__init__()
        self.excluded = frozenset(excluded)

    def filter(self, record):
        return record.levelno not in self.excluded


# --- 3. Step status handed out by execution_step ---
class StepStatus:
    """Mutable outcome of an execution step. The body marks it failed; the context manager renders it."""

    def __init__(self, status: Optional[Status] = None):
        self.status = status
        self.failed = False
        self.detail = ""

    def fail(self, detail: str = ""):
        self.failed = True
        self.detail = detail


def _forward(name: str):
    def forwarder(self, message, *args, **kwargs):
        kwargs.setdefault("stacklevel", 2)
        getattr(self.logger, name)(message, *args, **kwargs)
    forwarder.__name__ = name
    return forwarder


# --- 4. Console presentation wrapper ---
class RichAppLogger:
    """
    Pairs the AppLogger with the Rich console it shares with the RichHandler.

    Standard levels go straight to the logger. ``section`` and ``execution_step``
    additionally draw on the console, and ``exception`` prints a rich traceback.
    """

    def __init__(self, console: Console, logger: AppLogger, log_file: Optional[str] = None):
        self.console = console
        self.logger: AppLogger = logger
        self.log_file = log_file

    debug = _forward("debug")
    info = _forward("info")
    warning = _forward("warning")
    error = _forward("error")
    critical = _forward("critical")

    def exception(self, message, *args, **kwargs):
        self.logger.exception(message, *args, **kwargs)
        self.console.print(f"[bold red]FATAL ERROR: {message}[/bold red]")
        self.console.print_exception(show_locals=False)

    def section(self, message: str, *args, **kwargs):
        header = f"SECTION: {message}"
        self.console.print(Text(header, style="section"))
        self.logger.section(header, *args, **kwargs)

    def _report_step(self, message: str, failed: bool, detail: str = ""):
        if not failed:
            self.console.print(f"[green]✔ [COMPLETED][/green] {message}")
            self.logger.execute(f"[COMPLETED] {message}")
            return
        text = f"{message} ({detail})" if detail else message
        self.console.print(f"[bold red]✘ [FAILED][/bold red] {text}")
        self.logger.execute(f"[FAILED] {text}")

    @contextmanager
    def execution_step(self, message: str):
        """
        Shows a [RUNNING] spinner for the duration of the block, then leaves a
        permanent [COMPLETED] or [FAILED] line. The block marks failure through the
        yielded StepStatus; an exception escaping the block also counts as failure
        and is re-raised.
        """
        self.logger.execute(f"[RUNNING] {message}")
        with self.console.status(f"[bold green]...[/] [RUNNING] {message}", spinner="dots") as status:
            step = StepStatus(status)
            try:
                yield step
            except Exception:
                self._report_step(message, failed=True)
                self.logger.debug(f"Exception during execution step: {message}", exc_info=True)
                raise
        self._report_step(message, step.failed, step.detail)

    # The orchestrator observes a run through an extra handler.
    def attach(self, handler: logging.Handler):
        self.logger.addHandler(handler)

    def detach(self, handler: logging.Handler):
        self.logger.removeHandler(handler)


def chown_best_effort(path: str, owner: Optional[str]) -> bool:
    if not owner:
        return False
    try:
        shutil.chown(path, user=owner, group=owner)
        return True
    except (OSError, LookupError):
        return False


# --- 5. Setup ---
def _open_log_file(directory: str, file_name: str, level: int) -> BestEffortFileHandler:
    os.makedirs(directory, exist_ok=True)
    handler = BestEffortFileHandler(os.path.join(directory, file_name), mode="a", encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(FileFormatter())
    return handler


def initialize_app_logger(
    app_name: str,
    log_directory: Optional[str] = "logs",
    log_file_name: str = "application.log",
    file_log_level: int = logging.DEBUG,
    console_log_level: int = logging.INFO,
    owner: Optional[str] = None,
) -> RichAppLogger:
    """
    Builds the named AppLogger with a file handler and a RichHandler on stderr.

    The log file is opened in append mode and, when ``owner`` is given, handed to that
    user. With ``log_directory=None`` there is no file; if the file cannot be created
    the logger runs console-only and says so.
    """
    logger: AppLogger = logging.getLogger(app_name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    while logger.handlers:
        logger.removeHandler(logger.handlers[0])

    problems: List[str] = []
    log_file_path: Optional[str] = None
    if log_directory is not None:
        try:
            file_handler = _open_log_file(log_directory, log_file_name, file_log_level)
        except OSError as e:
            problems.append(
                f"Log file '{os.path.join(log_directory, log_file_name)}' unavailable, "
                f"logging to console only: {e}"
            )
        else:
            logger.addHandler(file_handler)
            log_file_path = file_handler.baseFilename
            chown_best_effort(log_file_path, owner)

    console = Console(file=sys.stderr, force_terminal=True, soft_wrap=True, theme=THEME)
    console_handler = RichHandler(
        console=console,
        level=console_log_level,
        show_time=False,
        show_path=False,
        keywords=[],
    )
    # execution_step prints its own [COMPLETED]/[FAILED] lines
    console_handler.addFilter(LevelFilter([EXECUTE_LEVEL_NUM]))
    logger.addHandler(console_handler)

    wrapper = RichAppLogger(console, logger, log_file=log_file_path)
    for problem in problems:
        wrapper.warning(problem)
    return wrapper
