# vimmarch/executors/installer.py
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Set

from vimmarch.utils.executor import Executor

CommandBuilder = Callable[[str], List[str]]


@dataclass
class InstallReport:
    """Outcome of one install_all() batch."""
    installed: List[str] = field(default_factory=list)
    failed: Set[str] = field(default_factory=set)

    @property
    def succeeded(self) -> bool:
        return not self.failed

    def describe(self) -> str:
        return f"failed to install: {', '.join(sorted(self.failed))}"


class RetryingInstaller:
    """
    Installs a batch of targets one at a time with bounded retries per target.

    A target that exhausts its retries is recorded and the batch moves on; the
    caller decides whether a non-empty ``failed`` set matters.
    """

    def __init__(self,
                 executor: Executor,
                 command_for: CommandBuilder,
                 kind: str = "package",
                 as_user: Optional[str] = None,
                 max_retries: int = 3,
                 retry_delay: float = 2.0,
                 sleep: Callable[[float], None] = time.sleep):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if retry_delay < 0:
            raise ValueError("retry_delay must not be negative")
        self.executor = executor
        self.logger = executor.logger
        self.command_for = command_for
        self.kind = kind
        self.as_user = as_user
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    def install(self, target: str) -> bool:
        """Tries one target up to max_retries times. Returns True on the first success."""
        for attempt in range(1, self.max_retries + 1):
            result = self.executor.run(
                f"Installing {self.kind} {target}",
                self.command_for(target),
                as_user=self.as_user,
            )
            if result.succeeded:
                return True
            self.logger.warning(
                f"Failed to install {self.kind} {target}, attempt {attempt}/{self.max_retries} "
                f"({result.describe()})"
            )
            if attempt < self.max_retries:
                self._sleep(self.retry_delay)

        self.logger.error(f"Failed to install {self.kind} {target} after {self.max_retries} attempts")
        return False

    def install_all(self, targets: Iterable[str]) -> InstallReport:
        targets = list(targets)
        report = InstallReport()
        if not targets:
            return report

        self.logger.info(f"Installing {self.kind}s: {' '.join(targets)}")
        for target in targets:
            if self.install(target):
                report.installed.append(target)
            else:
                report.failed.add(target)

        if report.failed:
            self.logger.info(f"{len(report.failed)} of {len(targets)} {self.kind}(s) failed to install")
        else:
            self.logger.info(f"All {self.kind}s installed successfully")
        return report


# --- Command builders for the package sources used by the tasks ---

def pacman_command(package: str) -> List[str]:
    return ["pacman", "-S", "--needed", "--noconfirm", package]


def flatpak_command(app_id: str) -> List[str]:
    return ["flatpak", "install", "-y", "--noninteractive", "flathub", app_id]


def aur_command(package: str) -> List[str]:
    return ["yay", "-S", "--needed", "--noconfirm", package]
