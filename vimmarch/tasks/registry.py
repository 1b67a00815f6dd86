# vimmarch/tasks/registry.py
"""
Task model and selection.

A Task is a static entry in the catalog. ``resolve`` filters the catalog for a
UserSelection; it never reorders and never creates tasks.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, FrozenSet, List, Optional, Sequence, Union

from vimmarch.config.models import CpuVendor, GpuVendor, StepName, UserSelection
from vimmarch.utils.backup import BackupRecord
from vimmarch.utils.executor import CommandResult

if TYPE_CHECKING:
    from vimmarch.core import AppContext
    from vimmarch.pipeline import RunResult


class Phase(str, Enum):
    """Phases in execution order."""
    PREPARATION = "preparation"
    HARDWARE = "hardware"
    CORE_SERVICES = "core-services"
    STORAGE = "storage"
    APPLICATIONS = "applications"
    SYSTEM_CONFIGURATION = "system-configuration"
    CLEANUP = "cleanup"
    FINALIZATION = "finalization"

    @property
    def index(self) -> int:
        return list(Phase).index(self)


class FailurePolicy(str, Enum):
    FATAL = "fatal"              # abort the run
    DEGRADING = "degrading"      # log and continue
    RECOVERABLE = "recoverable"  # restore backups and continue


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TaskResult:
    outcome: Outcome
    message: str = ""

    @classmethod
    def success(cls, message: str = "") -> "TaskResult":
        return cls(Outcome.SUCCEEDED, message)

    @classmethod
    def failure(cls, message: str) -> "TaskResult":
        return cls(Outcome.FAILED, message)

    @classmethod
    def skipped(cls, message: str) -> "TaskResult":
        return cls(Outcome.SKIPPED, message)

    @classmethod
    def from_command(cls, result: CommandResult, what: str) -> "TaskResult":
        if result.succeeded:
            return cls.success()
        return cls.failure(f"{what}: {result.describe()}")

    @classmethod
    def from_failures(cls, failures: Sequence[str], success_message: str = "") -> "TaskResult":
        if failures:
            return cls.failure("; ".join(failures))
        return cls.success(success_message)

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED


@dataclass
class TaskContext:
    """What a task action sees: the process context, the selection, and its own backup journal."""
    app: "AppContext"
    selection: UserSelection
    task: "Task"
    run_result: Optional["RunResult"] = None
    backups: List[BackupRecord] = field(default_factory=list)

    @property
    def settings(self):
        return self.app.settings

    @property
    def logger(self):
        return self.app.logger

    @property
    def executor(self):
        return self.app.executor

    @property
    def user(self) -> str:
        return self.app.settings.actual_user

    def run(self, description: str, command: Union[str, list], **kwargs) -> CommandResult:
        return self.app.executor.run(description, command, **kwargs)

    def run_as_user(self, description: str, command: Union[str, list], **kwargs) -> CommandResult:
        return self.app.executor.run(description, command, as_user=self.user, **kwargs)

    def backup(self, path: Union[str, Path]) -> BackupRecord:
        """
        Backs up a shared file before mutating it. The orchestrator restores it if the task fails.
        Older backups of the same file beyond ``backup_keep`` are pruned at once, whatever the
        task's outcome; the new backup is the newest, so it is never among them.
        """
        record = self.app.backups.backup(path)
        self.backups.append(record)
        self.app.backups.prune(Path(path).name, keep=self.app.settings.backup_keep)
        return record


TaskAction = Callable[[TaskContext], TaskResult]


@dataclass(frozen=True)
class Task:
    identifier: str
    phase: Phase
    policy: FailurePolicy
    description: str
    action: TaskAction = field(compare=False, repr=False)
    step: Optional[StepName] = None
    cpu: Optional[CpuVendor] = None
    gpu: Optional[FrozenSet[GpuVendor]] = None
    laptop_only: bool = False

    @property
    def unconditional(self) -> bool:
        return self.step is None and self.cpu is None and self.gpu is None and not self.laptop_only

    def enabled_for(self, selection: UserSelection) -> bool:
        if self.step is not None and self.step not in selection.steps:
            return False
        if self.cpu is not None and selection.cpu is not self.cpu:
            return False
        if self.gpu is not None and selection.gpu not in self.gpu:
            return False
        if self.laptop_only and not selection.laptop:
            return False
        return True


def check_catalog(catalog: Sequence[Task]) -> None:
    """Raises ValueError unless identifiers are unique and tasks are grouped in phase order."""
    seen = set()
    last_index = -1
    for task in catalog:
        if task.identifier in seen:
            raise ValueError(f"Duplicate task identifier: {task.identifier}")
        seen.add(task.identifier)
        if task.phase.index < last_index:
            raise ValueError(f"Task '{task.identifier}' is out of phase order ({task.phase.value})")
        last_index = task.phase.index


def resolve(selection: UserSelection, catalog: Sequence[Task]) -> List[Task]:
    """The catalog filtered for ``selection``, in catalog order."""
    return [task for task in catalog if task.enabled_for(selection)]
