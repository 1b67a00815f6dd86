# vimmarch/tasks/services.py
"""Core services phase: AUR helper, Flatpak and the user's directory layout."""
from vimmarch.tasks.registry import TaskContext, TaskResult

YAY_REPO = "https://aur.archlinux.org/yay.git"
YAY_BUILD_DIR = "/tmp/yay-install"
FLATHUB_URL = "https://flathub.org/repo/flathub.flatpakrepo"


def setup_aur_helper(ctx: TaskContext) -> TaskResult:
    if ctx.executor.which("yay"):
        ctx.logger.info("yay is already installed")
        return TaskResult.success()

    report = ctx.app.pacman.install_all(["git", "base-devel"])
    if not report.succeeded:
        return TaskResult.failure(f"cannot build yay, {report.describe()}")

    stale = ctx.run("Removing stale yay build directory", ["rm", "-rf", YAY_BUILD_DIR])
    if not stale.succeeded:
        ctx.logger.warning(f"Could not remove {YAY_BUILD_DIR}: {stale.describe()}")
    result = ctx.run_as_user(
        "Building and installing yay",
        f"git clone {YAY_REPO} {YAY_BUILD_DIR} && cd {YAY_BUILD_DIR} && makepkg -si --noconfirm",
        shell=True,
    )
    if not result.succeeded:
        return TaskResult.from_command(result, "yay build failed")

    ctx.logger.info("yay installed successfully")
    return TaskResult.success()


def setup_flatpak(ctx: TaskContext) -> TaskResult:
    report = ctx.app.pacman.install_all(["flatpak"])
    if not report.succeeded:
        return TaskResult.failure(report.describe())

    remote = ctx.run(
        "Adding Flathub repository",
        ["flatpak", "remote-add", "--if-not-exists", "flathub", FLATHUB_URL],
    )
    if not remote.succeeded:
        return TaskResult.from_command(remote, "could not add the Flathub remote")

    update = ctx.run_as_user("Updating Flatpak", ["flatpak", "update", "-y", "--noninteractive"])
    return TaskResult.from_command(update, "flatpak update failed")


def create_directory_structure(ctx: TaskContext) -> TaskResult:
    failures = []
    for directory in ctx.settings.directories:
        result = ctx.run_as_user(f"Creating {directory}", ["mkdir", "-p", str(directory)])
        if result.succeeded:
            ctx.logger.info(f"Created directory: {directory}")
        else:
            ctx.logger.warning(f"Failed to create directory: {directory}")
            failures.append(str(directory))

    home = ctx.settings.home
    owned = [str(home / "ProtonDrive"), str(home / "Development")]
    chown = ctx.run("Fixing directory ownership", ["chown", "-R", f"{ctx.user}:{ctx.user}", *owned])
    if not chown.succeeded:
        failures.append(f"chown: {chown.describe()}")

    if failures:
        return TaskResult.failure(f"directory setup incomplete: {', '.join(failures)}")
    return TaskResult.success()
