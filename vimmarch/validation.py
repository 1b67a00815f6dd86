# vimmarch/validation.py
"""
Startup checks. Each check raises StartupValidationError; the CLI turns that
into a CRITICAL log line and exit code 1 before any task runs.
"""
import os
import pwd
from pathlib import Path
from typing import Callable, Mapping, Optional

from vimmarch.config.models import Settings
from vimmarch.utils.exceptions import StartupValidationError
from vimmarch.utils.executor import Executor
from vimmarch.utils.logger import chown_best_effort

OS_RELEASE = Path("/etc/os-release")
CONNECTIVITY_HOST = "archlinux.org"


def require_root(euid: Optional[int] = None):
    euid = os.geteuid() if euid is None else euid
    if euid != 0:
        raise StartupValidationError("root", "This program must be run as root (use sudo)")


def _login_name() -> str:
    try:
        return os.getlogin()
    except OSError:
        return ""


def determine_actual_user(environ: Optional[Mapping[str, str]] = None,
                          login_name: Callable[[], str] = _login_name) -> str:
    """The non-root user the machine is being provisioned for: SUDO_USER, falling back to the login name."""
    environ = os.environ if environ is None else environ
    for user in (environ.get("SUDO_USER", ""), login_name()):
        user = user.strip()
        if user and user != "root":
            return user

    raise StartupValidationError(
        "user",
        "Could not determine the non-root user. Run through sudo from your own account.",
    )


def home_of(user: str) -> Path:
    try:
        return Path(pwd.getpwnam(user).pw_dir)
    except KeyError:
        raise StartupValidationError("user", f"User '{user}' does not exist")


def require_arch_linux(os_release: Path = OS_RELEASE):
    try:
        content = os_release.read_text(encoding="utf-8")
    except OSError as e:
        raise StartupValidationError("platform", f"Cannot read {os_release}: {e}")
    if "Arch Linux" not in content:
        raise StartupValidationError("platform", "This program is designed for Arch Linux only")


def require_network(executor: Executor, host: str = CONNECTIVITY_HOST):
    result = executor.run(f"Checking connectivity to {host}", ["ping", "-c", "1", host], quiet=True)
    if not result.succeeded:
        raise StartupValidationError("network", "No internet connectivity detected")


def prepare_directories(settings: Settings):
    try:
        settings.config_dir.mkdir(parents=True, exist_ok=True)
        settings.backup_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StartupValidationError("directories", f"Cannot create working directories: {e}")
    chown_best_effort(str(settings.config_dir), settings.actual_user)


def validate_system(executor: Executor, settings: Settings):
    """Platform, network and directory checks. Root and user are checked earlier, before Settings exist."""
    require_arch_linux()
    require_network(executor)
    prepare_directories(settings)
