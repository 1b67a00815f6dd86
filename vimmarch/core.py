# vimmarch/core.py
from dataclasses import dataclass

from vimmarch.config.models import Settings
from vimmarch.executors.hardware import HardwareProbe
from vimmarch.executors.installer import (
    RetryingInstaller, aur_command, flatpak_command, pacman_command,
)
from vimmarch.utils.backup import BackupStore
from vimmarch.utils.executor import Executor
from vimmarch.utils.logger import RichAppLogger


@dataclass
class AppContext:
    """
    Process-wide state for one run, built once at startup and handed to every component.
    """
    settings: Settings
    logger: RichAppLogger
    executor: Executor
    backups: BackupStore
    hardware: HardwareProbe

    @classmethod
    def create(cls, settings: Settings, logger: RichAppLogger) -> "AppContext":
        executor = Executor(logger_instance=logger)
        return cls(
            settings=settings,
            logger=logger,
            executor=executor,
            backups=BackupStore(settings.backup_dir, logger),
            hardware=HardwareProbe(executor),
        )

    def _installer(self, command_for, kind: str, as_user=None) -> RetryingInstaller:
        return RetryingInstaller(
            self.executor,
            command_for,
            kind=kind,
            as_user=as_user,
            max_retries=self.settings.max_retries,
            retry_delay=self.settings.retry_delay,
        )

    @property
    def pacman(self) -> RetryingInstaller:
        return self._installer(pacman_command, "package")

    @property
    def flatpak(self) -> RetryingInstaller:
        return self._installer(flatpak_command, "flatpak", as_user=self.settings.actual_user)

    @property
    def aur(self) -> RetryingInstaller:
        return self._installer(aur_command, "AUR package", as_user=self.settings.actual_user)
