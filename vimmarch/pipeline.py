# vimmarch/pipeline.py
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from vimmarch.config.models import UserSelection
from vimmarch.core import AppContext
from vimmarch.tasks.registry import FailurePolicy, Outcome, Phase, Task, TaskContext, TaskResult
from vimmarch.utils.exceptions import BackupIntegrityError


class RunState(str, Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class RunResult:
    """Run-level statistics. Counters only move through log events seen by RunResultHandler."""
    started_at: datetime = field(default_factory=datetime.now)
    errors: int = 0
    warnings: int = 0
    state: RunState = RunState.NOT_STARTED
    current_phase: Optional[Phase] = None
    failed_tasks: List[str] = field(default_factory=list)
    aborted_by: Optional[str] = None
    _start_clock: float = field(default_factory=time.monotonic, repr=False)
    _end_clock: Optional[float] = field(default=None, repr=False)

    @property
    def elapsed(self) -> float:
        end = self._end_clock if self._end_clock is not None else time.monotonic()
        return end - self._start_clock

    def finish(self, state: RunState):
        self.state = state
        self._end_clock = time.monotonic()


class RunResultHandler(logging.Handler):
    """Counts WARNING records as warnings and ERROR/CRITICAL records as errors."""

    def __init__(self, run_result: RunResult):
        super().__init__(level=logging.WARNING)
        self.run_result = run_result

    def emit(self, record):
        if record.levelno >= logging.ERROR:
            self.run_result.errors += 1
        elif record.levelno >= logging.WARNING:
            self.run_result.warnings += 1


class Orchestrator:
    """
    Runs the resolved tasks phase by phase and applies each task's failure policy.

    NOT_STARTED -> RUNNING(phase...) -> COMPLETED, or ABORTED when a fatal task fails.
    """

    def __init__(self, app: AppContext, selection: UserSelection, tasks: Sequence[Task]):
        self.app = app
        self.logger = app.logger
        self.selection = selection
        self.tasks = list(tasks)
        self.result = RunResult()

    @property
    def state(self) -> RunState:
        return self.result.state

    def run(self) -> RunResult:
        if self.result.state is not RunState.NOT_STARTED:
            raise RuntimeError("An orchestrator runs exactly once")

        handler = RunResultHandler(self.result)
        self.logger.attach(handler)
        try:
            self.result.state = RunState.RUNNING
            self.logger.info(f"Starting run with {len(self.tasks)} task(s)")
            for task in self.tasks:
                if task.phase is not self.result.current_phase:
                    self.result.current_phase = task.phase
                    self.logger.section(f"{task.phase.value.upper()} PHASE")
                if not self._run_task(task):
                    self.result.finish(RunState.ABORTED)
                    return self.result

            self.result.finish(RunState.COMPLETED)
            self.logger.info(
                f"Run completed in {self.result.elapsed:.0f}s with "
                f"{self.result.errors} error(s) and {self.result.warnings} warning(s)"
            )
            return self.result
        finally:
            self.logger.detach(handler)

    def _execute(self, task: Task, ctx: TaskContext) -> TaskResult:
        try:
            result = task.action(ctx)
        except BackupIntegrityError as e:
            return TaskResult.failure(f"refusing to continue unprotected: {e}")
        except Exception as e:
            self.logger.debug(f"Unhandled exception in task '{task.identifier}'", exc_info=True)
            return TaskResult.failure(f"{type(e).__name__}: {e}")
        if not isinstance(result, TaskResult):
            return TaskResult.failure(f"task returned {type(result).__name__} instead of a TaskResult")
        return result

    def _run_task(self, task: Task) -> bool:
        """Runs one task and applies its policy. Returns False when the run must stop."""
        ctx = TaskContext(app=self.app, selection=self.selection, task=task, run_result=self.result)
        self.logger.info(f"[{task.identifier}] {task.description}")

        result = self._execute(task, ctx)

        if result.outcome is Outcome.SUCCEEDED:
            self.logger.debug(f"Task '{task.identifier}' succeeded")
            return True
        if result.outcome is Outcome.SKIPPED:
            self.logger.info(f"Task '{task.identifier}' skipped: {result.message}")
            return True

        self.result.failed_tasks.append(task.identifier)

        if task.policy is FailurePolicy.FATAL:
            self.result.aborted_by = task.identifier
            self.logger.critical(
                f"Fatal task '{task.identifier}' failed in phase {task.phase.value}: {result.message}. Aborting run."
            )
            return False

        self.logger.error(f"Task '{task.identifier}' failed ({task.policy.value}): {result.message}")

        if task.policy is FailurePolicy.RECOVERABLE:
            return self._roll_back(task, ctx)
        return True

    def _roll_back(self, task: Task, ctx: TaskContext) -> bool:
        if not ctx.backups:
            self.logger.info(f"Task '{task.identifier}' had no backups to restore")
            return True
        for record in reversed(ctx.backups):
            try:
                self.app.backups.restore(record)
            except BackupIntegrityError as e:
                self.result.aborted_by = task.identifier
                self.logger.critical(
                    f"Could not roll back task '{task.identifier}': {e}. {record.original} may be damaged. Aborting run."
                )
                return False
        self.logger.info(f"Rolled back {len(ctx.backups)} file(s) changed by '{task.identifier}'")
        return True
