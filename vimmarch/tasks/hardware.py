# vimmarch/tasks/hardware.py
"""Hardware phase: microcode, GPU drivers, laptop power, initramfs and bootloader."""
import re
from pathlib import Path
from typing import Dict, List, Sequence

from vimmarch.config.models import CpuVendor, GpuVendor
from vimmarch.tasks.registry import TaskContext, TaskResult

MKINITCPIO_CONF = Path("/etc/mkinitcpio.conf")
HID_APPLE_FNMODE = Path("/sys/module/hid_apple/parameters/fnmode")
HID_APPLE_CONF = Path("/etc/modprobe.d/hid_apple.conf")
GRUB_DIR = Path("/boot/grub")
GRUB_CFG = GRUB_DIR / "grub.cfg"
SYSTEMD_BOOT_DIR = Path("/boot/loader")

CPU_PACKAGES: Dict[CpuVendor, List[str]] = {
    CpuVendor.AMD: ["amd-ucode", "cpupower"],
    CpuVendor.INTEL: ["intel-ucode", "thermald", "powertop"],
}

GPU_PACKAGES: Dict[GpuVendor, List[str]] = {
    GpuVendor.AMD: ["mesa", "lib32-mesa", "vulkan-radeon", "lib32-vulkan-radeon", "xf86-video-amdgpu"],
    GpuVendor.INTEL: ["mesa", "lib32-mesa", "vulkan-intel", "lib32-vulkan-intel", "xf86-video-intel"],
    GpuVendor.NVIDIA: ["nvidia", "nvidia-utils", "lib32-nvidia-utils", "nvidia-settings"],
}

KMS_MODULES: Dict[GpuVendor, List[str]] = {
    GpuVendor.AMD: ["amdgpu"],
    GpuVendor.INTEL: ["i915"],
}

LAPTOP_PACKAGES = ["tlp", "acpi", "acpi_call", "acpid", "powertop", "iio-sensor-proxy"]


def _install(ctx: TaskContext, packages: Sequence[str]) -> TaskResult:
    report = ctx.app.pacman.install_all(packages)
    if report.failed:
        return TaskResult.failure(report.describe())
    return TaskResult.success()


def install_cpu_packages(ctx: TaskContext) -> TaskResult:
    vendor = ctx.selection.cpu
    ctx.logger.info(f"Installing {vendor.value.upper()} CPU microcode and tools...")
    return _install(ctx, CPU_PACKAGES[vendor])


def install_gpu_packages(ctx: TaskContext) -> TaskResult:
    vendor = ctx.selection.gpu
    ctx.logger.info(f"Installing {vendor.value.upper()} GPU drivers...")
    return _install(ctx, GPU_PACKAGES[vendor])


def install_laptop_packages(ctx: TaskContext) -> TaskResult:
    result = _install(ctx, LAPTOP_PACKAGES)
    if result.failed:
        return result
    enable = ctx.run("Enabling tlp and acpid", ["systemctl", "enable", "--now", "tlp", "acpid"])
    return TaskResult.from_command(enable, "could not enable laptop services")


def add_initramfs_modules(text: str, modules: Sequence[str]) -> str:
    """Adds ``modules`` to the MODULES=(...) array of mkinitcpio.conf text, skipping ones already there."""
    match = re.search(r"(?m)^MODULES=\((.*)\)", text)
    if match is None:
        raise ValueError("mkinitcpio.conf has no MODULES=() line")

    present = match.group(1).split()
    missing = [module for module in modules if module not in present]
    if not missing:
        return text

    new_line = f"MODULES=({' '.join(present + missing)})"
    return text[:match.start()] + new_line + text[match.end():]


def configure_early_kms(ctx: TaskContext) -> TaskResult:
    modules = KMS_MODULES[ctx.selection.gpu]
    ctx.logger.info(f"Configuring early KMS for modules: {' '.join(modules)}")

    ctx.backup(MKINITCPIO_CONF)
    original = MKINITCPIO_CONF.read_text(encoding="utf-8")
    updated = add_initramfs_modules(original, modules)
    if updated == original:
        ctx.logger.info("Early KMS modules already configured")
        return TaskResult.success()

    MKINITCPIO_CONF.write_text(updated, encoding="utf-8")
    rebuild = ctx.run("Rebuilding initramfs", ["mkinitcpio", "-P"])
    if not rebuild.succeeded:
        return TaskResult.from_command(rebuild, "failed to rebuild initramfs")

    return TaskResult.success()


def fix_apple_keyboard(ctx: TaskContext) -> TaskResult:
    if not HID_APPLE_FNMODE.exists():
        return TaskResult.skipped("hid_apple module not loaded")

    HID_APPLE_CONF.parent.mkdir(parents=True, exist_ok=True)
    HID_APPLE_CONF.write_text("options hid_apple fnmode=2\n", encoding="utf-8")
    ctx.logger.info(f"Created {HID_APPLE_CONF}")

    rebuild = ctx.run("Rebuilding initramfs for keyboard fix", ["mkinitcpio", "-P"])
    if not rebuild.succeeded:
        return TaskResult.from_command(rebuild, "failed to rebuild initramfs")

    ctx.logger.info("Apple keyboard fix applied. A reboot is required.")
    return TaskResult.success()


def update_bootloader(ctx: TaskContext) -> TaskResult:
    if ctx.executor.which("grub-mkconfig") and GRUB_DIR.is_dir():
        if GRUB_CFG.is_file():
            ctx.backup(GRUB_CFG)
        result = ctx.run("Regenerating GRUB configuration", ["grub-mkconfig", "-o", str(GRUB_CFG)])
        if not result.succeeded:
            return TaskResult.from_command(result, "failed to update GRUB configuration")
        return TaskResult.success()

    if ctx.executor.which("bootctl") and SYSTEMD_BOOT_DIR.is_dir():
        result = ctx.run("Updating systemd-boot", ["bootctl", "update"])
        return TaskResult.from_command(result, "failed to update systemd-boot")

    ctx.logger.warning("No supported bootloader (GRUB or systemd-boot) detected. Skipping update.")
    return TaskResult.skipped("no supported bootloader")
