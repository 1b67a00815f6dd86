# vimmarch/tasks/preparation.py
"""Preparation phase: snapshot, mirrors, upgrade, pacman.conf, time."""
import re
from pathlib import Path
from typing import Optional

from vimmarch.tasks.registry import TaskContext, TaskResult

MIRRORLIST = Path("/etc/pacman.d/mirrorlist")
PACMAN_CONF = Path("/etc/pacman.conf")
PARALLEL_DOWNLOADS = 10


def ensure_tool(ctx: TaskContext, tool: str, package: Optional[str] = None) -> bool:
    """Installs ``package`` (default: the tool name) unless ``tool`` is already on PATH."""
    if ctx.executor.which(tool):
        return True
    ctx.logger.info(f"{tool} not found, installing...")
    return ctx.app.pacman.install_all([package or tool]).succeeded


def create_system_snapshot(ctx: TaskContext) -> TaskResult:
    if not ensure_tool(ctx, "timeshift"):
        return TaskResult.failure("timeshift could not be installed, no snapshot taken")

    result = ctx.run(
        "Creating Timeshift snapshot",
        ["timeshift", "--create", "--comments", "Vimmarch: Pre-setup snapshot", "--yes"],
    )
    if not result.succeeded:
        return TaskResult.failure(
            f"snapshot not created, Timeshift may not be configured (run 'sudo timeshift-gtk'): {result.describe()}"
        )
    return TaskResult.success()


def optimize_mirrors(ctx: TaskContext) -> TaskResult:
    if not ensure_tool(ctx, "reflector"):
        return TaskResult.failure("reflector could not be installed")

    ctx.backup(MIRRORLIST)
    result = ctx.run(
        "Ranking mirrors with reflector",
        [
            "reflector",
            "--protocol", "https",
            "--country", ",".join(ctx.settings.reflector_countries),
            "--age", "12",
            "--latest", "20",
            "--sort", "rate",
            "--save", str(MIRRORLIST),
        ],
    )
    if not result.succeeded:
        return TaskResult.from_command(result, "reflector failed")

    return TaskResult.success()


def system_upgrade(ctx: TaskContext) -> TaskResult:
    result = ctx.run("Performing full system upgrade", ["pacman", "-Syu", "--noconfirm"])
    return TaskResult.from_command(result, "system upgrade failed")


def apply_pacman_tweaks(text: str, parallel_downloads: int = PARALLEL_DOWNLOADS) -> str:
    """
    Enables Color, ParallelDownloads and the multilib repository in pacman.conf text.
    Lines that are already active are left alone.
    """
    text = re.sub(r"(?m)^#[ \t]*Color[ \t]*$", "Color", text)

    if not re.search(r"(?m)^ParallelDownloads\b", text):
        if re.search(r"(?m)^#[ \t]*ParallelDownloads\b.*$", text):
            text = re.sub(r"(?m)^#[ \t]*ParallelDownloads\b.*$",
                          f"ParallelDownloads = {parallel_downloads}", text, count=1)
        else:
            text = re.sub(r"(?m)^\[options\][ \t]*$",
                          f"[options]\nParallelDownloads = {parallel_downloads}", text, count=1)

    lines = text.split("\n")
    for i, line in enumerate(lines):
        if re.match(r"^#?\s*\[multilib\]\s*$", line):
            lines[i] = "[multilib]"
            if i + 1 < len(lines) and re.match(r"^#\s*Include\s*=", lines[i + 1]):
                lines[i + 1] = lines[i + 1].lstrip("#").lstrip()
            break
    return "\n".join(lines)


def configure_pacman(ctx: TaskContext) -> TaskResult:
    ctx.backup(PACMAN_CONF)

    original = PACMAN_CONF.read_text(encoding="utf-8")
    updated = apply_pacman_tweaks(original)
    if updated == original:
        ctx.logger.info("pacman.conf already configured")
        return TaskResult.success()

    PACMAN_CONF.write_text(updated, encoding="utf-8")

    check = ctx.run("Validating pacman.conf", ["pacman-conf", "--config", str(PACMAN_CONF)], quiet=True)
    if not check.succeeded:
        return TaskResult.from_command(check, "updated pacman.conf does not parse")

    ctx.logger.info("Pacman configuration updated")
    return TaskResult.success()


def setup_timezone(ctx: TaskContext) -> TaskResult:
    timezone = ctx.settings.timezone
    result = ctx.run(f"Setting timezone to {timezone}", ["timedatectl", "set-timezone", timezone])
    if not result.succeeded:
        return TaskResult.from_command(result, "failed to set timezone")

    result = ctx.run("Enabling NTP synchronization", ["timedatectl", "set-ntp", "true"])
    return TaskResult.from_command(result, "failed to enable NTP")
