# vimmarch/tasks/configuration.py
"""System configuration phase: login shell, dotfiles, firewall and I2C access."""
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from vimmarch.tasks.preparation import ensure_tool
from vimmarch.tasks.registry import TaskContext, TaskResult

I2C_UDEV_RULE = Path("/etc/udev/rules.d/45-ddcutil-i2c.rules")
I2C_UDEV_CONTENT = 'SUBSYSTEM=="i2c-dev", GROUP="i2c", MODE="0660"\n'


def login_shell(passwd_line: str) -> Optional[str]:
    """The shell field of a ``getent passwd`` line."""
    fields = passwd_line.strip().split(":")
    return fields[6] if len(fields) >= 7 else None


def setup_zsh(ctx: TaskContext) -> TaskResult:
    if not ensure_tool(ctx, "zsh"):
        return TaskResult.failure("zsh could not be installed")

    zsh = ctx.executor.which("zsh")
    entry = ctx.run("Reading login shell", ["getent", "passwd", ctx.user], quiet=True)
    if entry.succeeded and login_shell(entry.output) == zsh:
        ctx.logger.info(f"Zsh is already the login shell for {ctx.user}")
        return TaskResult.success()

    result = ctx.run(f"Changing default shell to Zsh for {ctx.user}", ["chsh", "-s", zsh, ctx.user])
    return TaskResult.from_command(result, "chsh failed")


def dotfile_links(dotfiles_dir: Path, home: Path) -> List[Tuple[Path, Path]]:
    """(source, destination) pairs for every regular file at the top of the dotfiles checkout."""
    return [
        (source, home / source.name)
        for source in sorted(dotfiles_dir.iterdir())
        if source.is_file() and not source.is_symlink()
    ]


def setup_dotfiles(ctx: TaskContext) -> TaskResult:
    if not ensure_tool(ctx, "git"):
        return TaskResult.failure("git could not be installed")

    repo = ctx.settings.dotfiles_repo
    target = ctx.settings.dotfiles_dir
    if target.is_dir():
        ctx.logger.info("Dotfiles directory already exists. Pulling latest changes.")
        result = ctx.run_as_user("Updating dotfiles", ["git", "-C", str(target), "pull"])
    else:
        result = ctx.run_as_user(f"Cloning {repo}", ["git", "clone", repo, str(target)])
    if not result.succeeded:
        return TaskResult.from_command(result, "could not fetch dotfiles")

    stamp = datetime.now().strftime("%Y%m%d%H%M%S")
    failures = []
    for source, destination in dotfile_links(target, ctx.settings.home):
        if destination.is_symlink() and destination.resolve() == source.resolve():
            continue
        if destination.exists() or destination.is_symlink():
            moved = destination.with_name(f"{destination.name}.backup.{stamp}")
            ctx.logger.info(f"Backing up existing {destination} to {moved}")
            result = ctx.run_as_user(f"Moving {destination.name} aside", ["mv", str(destination), str(moved)])
            if not result.succeeded:
                failures.append(f"{destination.name}: {result.describe()}")
                continue
        result = ctx.run_as_user(f"Linking {destination.name}", ["ln", "-s", str(source), str(destination)])
        if result.succeeded:
            ctx.logger.info(f"Created symlink for {source.name}")
        else:
            failures.append(f"{destination.name}: {result.describe()}")

    return TaskResult.from_failures(failures, "dotfiles linked")


def setup_firewall(ctx: TaskContext) -> TaskResult:
    report = ctx.app.pacman.install_all(["ufw"])
    if not report.succeeded:
        return TaskResult.failure(report.describe())

    steps = [
        ("Denying incoming traffic by default", ["ufw", "default", "deny", "incoming"]),
        ("Allowing outgoing traffic by default", ["ufw", "default", "allow", "outgoing"]),
        ("Allowing SSH", ["ufw", "allow", "ssh"]),
        ("Enabling the firewall service", ["systemctl", "enable", "--now", "ufw"]),
        ("Activating the firewall", ["ufw", "--force", "enable"]),
    ]
    for description, command in steps:
        result = ctx.run(description, command)
        if not result.succeeded:
            return TaskResult.from_command(result, "firewall setup failed")

    status = ctx.run("Reading firewall status", ["ufw", "status", "verbose"], quiet=True)
    if status.succeeded:
        ctx.logger.info(f"Firewall is active. Status:\n{status.output.strip()}")
    return TaskResult.success()


def fix_i2c_permissions(ctx: TaskContext) -> TaskResult:
    group = ctx.run("Checking for the i2c group", ["getent", "group", "i2c"], quiet=True)
    if not group.succeeded:
        result = ctx.run("Creating the i2c group", ["groupadd", "--system", "i2c"])
        if not result.succeeded:
            return TaskResult.from_command(result, "could not create the i2c group")

    result = ctx.run(f"Adding {ctx.user} to the i2c group", ["usermod", "-aG", "i2c", ctx.user])
    if not result.succeeded:
        return TaskResult.from_command(result, "usermod failed")

    I2C_UDEV_RULE.parent.mkdir(parents=True, exist_ok=True)
    I2C_UDEV_RULE.write_text(I2C_UDEV_CONTENT, encoding="utf-8")

    for description, command in (
        ("Reloading udev rules", ["udevadm", "control", "--reload-rules"]),
        ("Triggering udev", ["udevadm", "trigger"]),
    ):
        result = ctx.run(description, command)
        if not result.succeeded:
            return TaskResult.from_command(result, "udev reload failed")

    ctx.logger.info("I2C permissions configured")
    return TaskResult.success()
