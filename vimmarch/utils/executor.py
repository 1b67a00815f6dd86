# vimmarch/utils/executor.py

import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from vimmarch.utils.exceptions import InvalidCommandError
from vimmarch.utils.logger import RichAppLogger

# Exit codes reported when the process never produced one of its own.
EXIT_TIMEOUT = 124
EXIT_PERMISSION_DENIED = 126
EXIT_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command. stdout and stderr are combined in ``output``."""
    command: str
    exit_code: int
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def describe(self) -> str:
        return f"'{self.command}' exited with code {self.exit_code}"


def _to_text(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data


def build_argv(command: Union[str, List[str]],
               as_user: Optional[str] = None,
               shell: bool = False,
               sudo_path: str = "sudo") -> List[str]:
    """
    Turns a string or list into an argv list. ``shell`` wraps a string in
    ``bash -c`` with pipefail; ``as_user`` prepends ``sudo -u <user>``.

    Raises:
        InvalidCommandError: empty command, unbalanced quoting, or a non-string argument.
    """
    if not command:
        raise InvalidCommandError(str(command), "Empty command")

    if shell:
        if not isinstance(command, str):
            raise InvalidCommandError(str(command), "A shell command is one string")
        argv = ["bash", "-c", f"set -o pipefail; {command}"]
    elif isinstance(command, str):
        try:
            argv = shlex.split(command)
        except ValueError as e:
            raise InvalidCommandError(command, f"Unparseable command string: {e}")
    elif isinstance(command, list) and all(isinstance(arg, str) for arg in command):
        argv = list(command)
    else:
        raise InvalidCommandError(str(command), "Expected a string or a list of strings")

    return [sudo_path, "-u", as_user, *argv] if as_user else argv


class Executor:
    """
    Runs external commands and reports their outcome as a CommandResult.

    A non-zero exit is data, not an exception: callers decide what a failure means.
    Every command goes through the injected RichAppLogger, which shows a spinner
    while it runs and receives the combined output at DEBUG level.
    """

    def __init__(self,
                 logger_instance: RichAppLogger,
                 default_timeout: Optional[float] = None,
                 sudo_path: str = "sudo"):
        self.logger = logger_instance

        if default_timeout is not None and default_timeout <= 0:
            raise ValueError(f"timeout must be a positive number of seconds or None, not {default_timeout}")
        if not isinstance(sudo_path, str) or not sudo_path:
            raise ValueError("sudo path must be a non-empty string.")

        self._default_timeout = default_timeout
        self._sudo_path = sudo_path
        self.logger.debug(f"Executor ready (timeout={default_timeout}, sudo={sudo_path})")

    def _prepare_command(self, command, as_user: Optional[str] = None, shell: bool = False) -> List[str]:
        try:
            return build_argv(command, as_user=as_user, shell=shell, sudo_path=self._sudo_path)
        except InvalidCommandError as e:
            self.logger.error(f"Refusing to run {e.command!r}: {e.message}")
            raise

    def spawn(self,
              argv: List[str],
              timeout: Optional[float] = None,
              input_text: Optional[str] = None,
              cwd: Optional[str] = None) -> Tuple[int, str]:
        """
        Low-level execution. Returns (exit_code, combined_output) and never raises
        for a failing or unspawnable process.
        """
        limit = self._default_timeout if timeout is None else timeout
        shown = shlex.join(argv)
        self.logger.debug(f"exec: {shown} (timeout={limit})")

        try:
            process = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                input=input_text,
                text=True,
                timeout=limit,
                check=False,
                cwd=cwd,
            )
        except FileNotFoundError:
            self.logger.debug(f"{argv[0]}: not found on PATH")
            return EXIT_NOT_FOUND, f"{argv[0]}: command not found"
        except PermissionError as e:
            self.logger.debug(f"{shown}: permission denied: {e}")
            return EXIT_PERMISSION_DENIED, str(e)
        except subprocess.TimeoutExpired as e:
            self.logger.warning(f"{shown}: timed out after {limit}s")
            return EXIT_TIMEOUT, _to_text(e.output)
        except OSError as e:
            self.logger.debug(f"{shown}: could not be started: {e}")
            return EXIT_NOT_FOUND, str(e)

        self.logger.debug(f"exit {process.returncode}: {shown}")
        return process.returncode, process.stdout or ""

    def run(self,
            description: str,
            command: Union[str, list],
            as_user: Optional[str] = None,
            shell: bool = False,
            quiet: bool = False,
            input_text: Optional[str] = None,
            cwd: Optional[str] = None,
            timeout: Optional[float] = None
            ) -> CommandResult:
        """
        Executes a command inside the logger's execution_step spinner and appends its
        output to the log. ``quiet`` is for read-only queries: no spinner and no output logging.
        """
        prepared = self._prepare_command(command, as_user=as_user, shell=shell)
        cmd_string = command if isinstance(command, str) else shlex.join(command)

        if quiet:
            exit_code, output = self.spawn(prepared, timeout=timeout, input_text=input_text, cwd=cwd)
            return CommandResult(cmd_string, exit_code, output)

        with self.logger.execution_step(description) as step:
            exit_code, output = self.spawn(prepared, timeout=timeout, input_text=input_text, cwd=cwd)
            if exit_code != 0:
                step.fail(f"exit code {exit_code}")

        self.logger.debug(f"Command '{cmd_string}' finished with exit code {exit_code}")
        if output.strip():
            self.logger.debug(f"  Output:\n{output.strip()}")

        return CommandResult(cmd_string, exit_code, output)

    def which(self, name: str) -> Optional[str]:
        """Returns the absolute path of an executable, or None if it is not installed."""
        return shutil.which(name)
