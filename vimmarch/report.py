# vimmarch/report.py
import re
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable, List, Optional

from vimmarch import __version__
from vimmarch.config.models import StepName, UserSelection
from vimmarch.utils.logger import chown_best_effort

if TYPE_CHECKING:
    from vimmarch.core import AppContext
    from vimmarch.pipeline import RunResult

UNAVAILABLE = "(unavailable)"

LineFilter = Callable[[List[str]], List[str]]


def _head(count: int) -> LineFilter:
    return lambda lines: lines[:count]


def _tail(count: int) -> LineFilter:
    return lambda lines: lines[-count:]


def _matching(pattern: str) -> LineFilter:
    regex = re.compile(pattern)
    return lambda lines: [line for line in lines if regex.search(line)]


@dataclass(frozen=True)
class Fact:
    title: str
    command: List[str]
    keep: Optional[LineFilter] = None


FACTS = [
    Fact("System Information", ["hostnamectl"]),
    Fact("Hardware Information", ["lscpu"], _head(20)),
    Fact("Memory Information", ["free", "-h"]),
    Fact("Storage Information", ["lsblk"]),
    Fact("Graphics Information", ["lspci"], _matching(r"(?i)vga|3d controller")),
    Fact("Network Information", ["ip", "addr", "show"], _matching(r"^\d+:|inet ")),
    Fact("Installed Packages (last 50)", ["pacman", "-Q"], _tail(50)),
    Fact("Active Services",
         ["systemctl", "list-units", "--type=service", "--state=active", "--no-pager"], _head(20)),
    Fact("Mount Points", ["mount"], _matching(r"^/")),
]


class ReportGenerator:
    """
    Renders the post-run system report.

    Facts are gathered through quiet runner calls; a fact whose command fails is
    rendered as "(unavailable)" instead of failing the report.
    """

    def __init__(self, app: "AppContext", facts: Optional[List[Fact]] = None):
        self.app = app
        self.logger = app.logger
        self.facts = FACTS if facts is None else facts
        self.written = False

    def collect(self, fact: Fact) -> str:
        result = self.app.executor.run(f"Collecting {fact.title.lower()}", fact.command, quiet=True)
        if not result.succeeded:
            return UNAVAILABLE
        lines = result.output.rstrip("\n").splitlines()
        if fact.keep is not None:
            lines = fact.keep(lines)
        return "\n".join(lines) if lines else UNAVAILABLE

    def render(self, run_result: Optional["RunResult"], selection: UserSelection) -> str:
        settings = self.app.settings
        out = [
            "# Arch Linux Setup Report",
            f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}",
            f"Vimmarch Version: {__version__}",
        ]
        if run_result is not None:
            out.append(f"Setup Duration: {int(run_result.elapsed // 60)} minutes")
        out.append("")

        for fact in self.facts:
            out += [f"## {fact.title}", self.collect(fact), ""]

        steps = [step.value for step in StepName if step in selection.steps]
        out += [
            "## Selection",
            f"CPU: {selection.cpu.value}",
            f"GPU: {selection.gpu.value}",
            f"Laptop: {'yes' if selection.laptop else 'no'}",
            f"Steps: {', '.join(steps) if steps else 'none'}",
            "",
        ]

        if run_result is not None:
            out += [
                "## Setup Log Summary",
                f"Errors: {run_result.errors}",
                f"Warnings: {run_result.warnings}",
                f"Failed tasks: {', '.join(run_result.failed_tasks) or 'none'}",
                f"Log file: {settings.log_file}",
                f"Backups: {settings.backup_dir}",
                "",
            ]
        return "\n".join(out)

    def generate(self, run_result: Optional["RunResult"], selection: UserSelection) -> str:
        """Renders the report, writes it to the report file for the user, and returns the text."""
        self.logger.info("Generating system report...")
        text = self.render(run_result, selection)

        report_file = self.app.settings.report_file
        try:
            report_file.parent.mkdir(parents=True, exist_ok=True)
            report_file.write_text(text, encoding="utf-8")
        except OSError as e:
            self.written = False
            self.logger.warning(f"Could not write system report to {report_file}: {e}")
            return text

        self.written = True
        if not chown_best_effort(str(report_file), self.app.settings.actual_user):
            self.logger.debug(f"Could not hand {report_file} to {self.app.settings.actual_user}")
        self.logger.info(f"System report generated: {report_file}")
        return text
