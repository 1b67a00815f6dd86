# vimmarch/tasks/cleanup.py
"""Cleanup and finalization phases."""
from vimmarch.report import ReportGenerator
from vimmarch.tasks.registry import TaskContext, TaskResult

TMP_MAX_AGE_DAYS = 7
JOURNAL_RETENTION = "30d"
PACKAGE_CACHE_KEEP = 3


def system_cleanup(ctx: TaskContext) -> TaskResult:
    failures = []

    cache = ctx.run("Cleaning package cache", ["paccache", f"-rk{PACKAGE_CACHE_KEEP}"])
    if not cache.succeeded:
        cache = ctx.run("Cleaning package cache with pacman", ["pacman", "-Sc", "--noconfirm"])
        if not cache.succeeded:
            failures.append(f"package cache: {cache.describe()}")

    # pacman -Qtdq exits 1 when there is nothing to remove
    orphans = ctx.run("Looking for orphaned packages", ["pacman", "-Qtdq"], quiet=True)
    names = orphans.output.split() if orphans.succeeded else []
    if names:
        ctx.logger.info(f"Removing orphaned packages: {' '.join(names)}")
        removed = ctx.run("Removing orphaned packages", ["pacman", "-Rns", "--noconfirm", *names])
        if not removed.succeeded:
            failures.append(f"orphans: {removed.describe()}")

    if ctx.executor.which("flatpak"):
        unused = ctx.run_as_user("Removing unused Flatpak runtimes", ["flatpak", "uninstall", "--unused", "-y"])
        if not unused.succeeded:
            failures.append(f"flatpak: {unused.describe()}")

    stale = ctx.run(
        "Removing stale temporary files",
        ["find", "/tmp", "-type", "f", "-atime", f"+{TMP_MAX_AGE_DAYS}", "-delete"],
    )
    if not stale.succeeded:
        ctx.logger.warning(f"Some temporary files could not be removed: {stale.describe()}")

    journal = ctx.run("Vacuuming the journal", ["journalctl", f"--vacuum-time={JOURNAL_RETENTION}"])
    if not journal.succeeded:
        failures.append(f"journal: {journal.describe()}")

    return TaskResult.from_failures(failures, "system cleanup completed")


def generate_system_report(ctx: TaskContext) -> TaskResult:
    generator = ReportGenerator(ctx.app)
    generator.generate(ctx.run_result, ctx.selection)
    if not generator.written:
        return TaskResult.failure(f"report could not be written to {ctx.settings.report_file}")
    return TaskResult.success()
