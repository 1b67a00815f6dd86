# vimmarch/tasks/storage.py
"""Storage phase: the BTRFS game drive."""
import re
from pathlib import Path

from vimmarch.tasks.registry import TaskContext, TaskResult

FSTAB = Path("/etc/fstab")
GAMEDRIVE_FSTYPE = "btrfs"
GAMEDRIVE_MOUNT_OPTIONS = "defaults,noatime,space_cache=v2,compress=zstd:1,autodefrag"


def fstab_entry(uuid: str, mount_point: Path, options: str = GAMEDRIVE_MOUNT_OPTIONS) -> str:
    return f"UUID={uuid} {mount_point} {GAMEDRIVE_FSTYPE} {options} 0 2"


def has_fstab_entry(text: str, uuid: str, mount_point: Path) -> bool:
    """True when an active (uncommented) fstab line mounts ``uuid`` on ``mount_point``."""
    pattern = re.compile(rf"^\s*UUID={re.escape(uuid)}\s+{re.escape(str(mount_point))}\s")
    return any(pattern.match(line) for line in text.splitlines())


def append_fstab_entry(text: str, entry: str) -> str:
    if text and not text.endswith("\n"):
        text += "\n"
    return text + entry + "\n"


def setup_game_drive(ctx: TaskContext) -> TaskResult:
    uuid = ctx.selection.gamedrive_uuid
    if not uuid:
        ctx.logger.warning("No game drive selected, skipping")
        return TaskResult.skipped("no game drive device")

    device = ctx.app.hardware.device_for_uuid(uuid)
    if device is None:
        ctx.logger.warning(f"Game drive with UUID {uuid} not detected, skipping")
        return TaskResult.skipped(f"UUID {uuid} not present")
    ctx.logger.info(f"Found game drive at: {device}")

    check = ctx.run("Checking BTRFS filesystem", ["btrfs", "filesystem", "show", device], quiet=True)
    if not check.succeeded:
        return TaskResult.failure(f"{device} is not a valid BTRFS filesystem")

    mount_point = ctx.settings.gamedrive_mount
    mount_point.mkdir(parents=True, exist_ok=True)

    ctx.backup(FSTAB)
    mount = ctx.run(
        f"Mounting game drive on {mount_point}",
        ["mount", "-t", GAMEDRIVE_FSTYPE, "-o", GAMEDRIVE_MOUNT_OPTIONS, device, str(mount_point)],
    )
    if not mount.succeeded:
        return TaskResult.from_command(mount, "failed to mount game drive")

    try:
        fstab = FSTAB.read_text(encoding="utf-8")
        if has_fstab_entry(fstab, uuid, mount_point):
            ctx.logger.info("Game drive already present in fstab")
        else:
            FSTAB.write_text(append_fstab_entry(fstab, fstab_entry(uuid, mount_point)), encoding="utf-8")
            ctx.logger.info("Added game drive to fstab")
    except OSError as e:
        _unmount(ctx, mount_point)
        return TaskResult.failure(f"could not update {FSTAB}: {e}")

    chown = ctx.run("Setting game drive ownership", ["chown", f"{ctx.user}:{ctx.user}", str(mount_point)])
    if not chown.succeeded:
        _unmount(ctx, mount_point)
        return TaskResult.from_command(chown, "could not hand the mount point to the user")

    return TaskResult.success()


def _unmount(ctx: TaskContext, mount_point: Path):
    # The orchestrator restores fstab from its backup; the live mount is ours to undo.
    result = ctx.run(f"Unmounting {mount_point}", ["umount", str(mount_point)])
    if not result.succeeded:
        ctx.logger.warning(f"Could not unmount {mount_point}: {result.describe()}")
