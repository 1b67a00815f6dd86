# vimmarch/cli.py
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vimmarch import __version__
from vimmarch.config.models import SetupConfig, Settings
from vimmarch.core import AppContext
from vimmarch.pipeline import Orchestrator, RunResult, RunState
from vimmarch.selection import load_or_elicit
from vimmarch.tasks.catalog import resolve_tasks
from vimmarch.utils.exceptions import RunInterrupted, StartupValidationError
from vimmarch.utils.logger import RichAppLogger, initialize_app_logger
from vimmarch.utils.prompts import confirm_with_timeout
from vimmarch.validation import determine_actual_user, home_of, require_root, validate_system

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

app = typer.Typer(
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
    help="Provision an Arch Linux installation for the invoking user. Must be run as root.",
)


def _raise_interrupt(signum, frame):
    raise RunInterrupted(signum)


def render_summary(console: Console, result: RunResult, settings: Settings):
    stats = Table.grid(padding=(0, 2))
    stats.add_column(style="bold")
    stats.add_column()
    stats.add_row("State", result.state.value)
    stats.add_row("Duration", f"{int(result.elapsed // 60)} minutes")
    stats.add_row("Errors", str(result.errors))
    stats.add_row("Warnings", str(result.warnings))
    if result.failed_tasks:
        stats.add_row("Failed tasks", ", ".join(result.failed_tasks))
    stats.add_row("", "")
    stats.add_row("Log file", str(settings.log_file))
    stats.add_row("System report", str(settings.report_file))
    stats.add_row("Backups", str(settings.backup_dir))

    completed = result.state is RunState.COMPLETED
    console.print(Panel(
        stats,
        title="SETUP COMPLETE" if completed else "SETUP ABORTED",
        border_style="green" if completed else "red",
        expand=False,
    ))
    if completed:
        console.print("[yellow]Reboot to activate all changes. Configure Timeshift snapshots "
                      "and Mullvad VPN credentials when you are back.[/]")


def prompt_reboot(app_ctx: AppContext, interactive: bool):
    logger = app_ctx.logger
    if not interactive:
        logger.info("Non-interactive mode: skipping reboot prompt. Please reboot manually.")
        return
    if confirm_with_timeout(logger.console, "Reboot now to activate all changes?",
                            timeout=app_ctx.settings.reboot_timeout, default=True):
        logger.info("Rebooting system...")
        app_ctx.executor.run("Rebooting", ["reboot"])
    else:
        logger.info("Remember to reboot later to activate all changes")


def provision(config: Optional[Path]) -> int:
    """Runs one provisioning session and returns the process exit code."""
    early_error: Optional[StartupValidationError] = None
    settings: Optional[Settings] = None
    try:
        require_root()
        user = determine_actual_user()
        settings = Settings.for_user(user, home_of(user))
    except StartupValidationError as e:
        early_error = e

    logger: RichAppLogger = initialize_app_logger(
        app_name="vimmarch",
        log_directory=str(settings.log_file.parent) if settings else None,
        log_file_name=settings.log_file.name if settings else "arch_setup.log",
        owner=settings.actual_user if settings else None,
    )

    try:
        if early_error is not None:
            raise early_error

        config_selection = None
        if config is not None:
            logger.info(f"Loading configuration from {config}")
            setup = SetupConfig.load_config_from_file(config)
            config_selection = setup.selection
            settings = Settings.for_user(settings.actual_user, settings.home, overrides=setup.settings)

        app_ctx = AppContext.create(settings, logger)
        logger.info("Validating system requirements...")
        validate_system(app_ctx.executor, settings)
        logger.info("System validation completed successfully")

        logger.info(f"Starting vimmarch v{__version__}")
        logger.info(f"User: {settings.actual_user}, Home: {settings.home}")

        selection = load_or_elicit(config_selection, logger.console, app_ctx.hardware, logger)
        typer.echo(selection.display_summary(), err=True)

        orchestrator = Orchestrator(app_ctx, selection, resolve_tasks(selection))
        result = orchestrator.run()
        render_summary(logger.console, result, settings)

        if result.state is not RunState.COMPLETED:
            return EXIT_FAILURE

        prompt_reboot(app_ctx, interactive=config is None)
        return EXIT_OK

    except StartupValidationError as e:
        logger.critical(f"Startup validation failed: {e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.error("Interrupted, stopping")
        return EXIT_INTERRUPTED


@app.command()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        help="TOML file with CPU, GPU, LAPTOP, STEPS and GAMEDRIVE_UUID. Runs non-interactively.",
    ),
):
    """
    Sequential Arch Linux post-install provisioning.
    """
    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        code = provision(config)
    finally:
        signal.signal(signal.SIGTERM, previous)
    raise typer.Exit(code)
