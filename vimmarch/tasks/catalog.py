# vimmarch/tasks/catalog.py
"""The static task catalog. Order here is execution order."""
from typing import List, Sequence

from vimmarch.config.models import CpuVendor, GpuVendor, StepName, UserSelection
from vimmarch.tasks import applications, cleanup, configuration, hardware, preparation, services, storage
from vimmarch.tasks.registry import FailurePolicy, Phase, Task, check_catalog, resolve

FATAL = FailurePolicy.FATAL
DEGRADING = FailurePolicy.DEGRADING
RECOVERABLE = FailurePolicy.RECOVERABLE

CATALOG = (
    # --- preparation ---
    Task("system_snapshot", Phase.PREPARATION, DEGRADING,
         "Create a Timeshift safety snapshot", preparation.create_system_snapshot),
    Task("mirrors", Phase.PREPARATION, RECOVERABLE,
         "Rank pacman mirrors with reflector", preparation.optimize_mirrors),
    Task("system_upgrade", Phase.PREPARATION, FATAL,
         "Full system upgrade", preparation.system_upgrade),
    Task("pacman_conf", Phase.PREPARATION, RECOVERABLE,
         "Enable Color, ParallelDownloads and multilib", preparation.configure_pacman),
    Task("timezone", Phase.PREPARATION, DEGRADING,
         "Set timezone and enable NTP", preparation.setup_timezone),

    # --- hardware ---
    Task("cpu_amd", Phase.HARDWARE, DEGRADING,
         "AMD microcode and tools", hardware.install_cpu_packages, cpu=CpuVendor.AMD),
    Task("cpu_intel", Phase.HARDWARE, DEGRADING,
         "Intel microcode and tools", hardware.install_cpu_packages, cpu=CpuVendor.INTEL),
    Task("gpu_drivers", Phase.HARDWARE, DEGRADING,
         "GPU drivers", hardware.install_gpu_packages,
         gpu=frozenset({GpuVendor.AMD, GpuVendor.INTEL, GpuVendor.NVIDIA})),
    Task("laptop_power", Phase.HARDWARE, DEGRADING,
         "Laptop power management", hardware.install_laptop_packages, laptop_only=True),
    Task("early_kms", Phase.HARDWARE, RECOVERABLE,
         "Load the GPU kernel module from the initramfs", hardware.configure_early_kms,
         gpu=frozenset({GpuVendor.AMD, GpuVendor.INTEL})),
    Task("apple_keyboard", Phase.HARDWARE, DEGRADING,
         "Apple keyboard function key mode", hardware.fix_apple_keyboard),
    Task("bootloader", Phase.HARDWARE, RECOVERABLE,
         "Update the bootloader configuration", hardware.update_bootloader),

    # --- core services ---
    Task("aur_helper", Phase.CORE_SERVICES, DEGRADING,
         "Build and install yay", services.setup_aur_helper),
    Task("flatpak", Phase.CORE_SERVICES, DEGRADING,
         "Flatpak with the Flathub remote", services.setup_flatpak),
    Task("directory_structure", Phase.CORE_SERVICES, DEGRADING,
         "Create user directories", services.create_directory_structure,
         step=StepName.DIRECTORY_STRUCTURE),

    # --- storage ---
    Task("gamedrive", Phase.STORAGE, RECOVERABLE,
         "Mount the BTRFS game drive and add it to fstab", storage.setup_game_drive,
         step=StepName.GAMEDRIVE),

    # --- applications ---
    Task("essentials", Phase.APPLICATIONS, DEGRADING,
         "Essential applications", applications.install_essentials, step=StepName.ESSENTIALS),
    Task("coding", Phase.APPLICATIONS, DEGRADING,
         "Development tools", applications.install_development_tools, step=StepName.CODING),
    Task("media", Phase.APPLICATIONS, DEGRADING,
         "Multimedia applications", applications.install_media, step=StepName.MEDIA),
    Task("gaming", Phase.APPLICATIONS, DEGRADING,
         "Gaming applications", applications.install_gaming, step=StepName.GAMING),
    Task("munchiehud", Phase.APPLICATIONS, DEGRADING,
         "MangoHud configuration files", applications.install_munchiehud_configs, step=StepName.GAMING),
    Task("browsers", Phase.APPLICATIONS, DEGRADING,
         "Browsers", applications.install_browsers, step=StepName.BROWSERS),
    Task("office", Phase.APPLICATIONS, DEGRADING,
         "Office applications", applications.install_office, step=StepName.OFFICE),
    Task("virtualization", Phase.APPLICATIONS, DEGRADING,
         "QEMU, libvirt and Wine", applications.setup_virtualization, step=StepName.VIRTUALIZATION),
    Task("mullvad", Phase.APPLICATIONS, DEGRADING,
         "Mullvad VPN from the AUR", applications.install_mullvad_vpn),
    Task("feishin", Phase.APPLICATIONS, DEGRADING,
         "Download the Feishin AppImage", applications.download_feishin),

    # --- system configuration ---
    Task("zsh", Phase.SYSTEM_CONFIGURATION, DEGRADING,
         "Make Zsh the login shell", configuration.setup_zsh),
    Task("dotfiles", Phase.SYSTEM_CONFIGURATION, DEGRADING,
         "Clone and link dotfiles", configuration.setup_dotfiles, step=StepName.DOTFILES),
    Task("firewall", Phase.SYSTEM_CONFIGURATION, DEGRADING,
         "UFW firewall", configuration.setup_firewall, step=StepName.FIREWALL),
    Task("i2c", Phase.SYSTEM_CONFIGURATION, DEGRADING,
         "I2C permissions for ddcutil", configuration.fix_i2c_permissions),

    # --- cleanup ---
    Task("cleanup", Phase.CLEANUP, DEGRADING,
         "Package cache, orphans, temp files and journal", cleanup.system_cleanup),

    # --- finalization ---
    Task("system_report", Phase.FINALIZATION, DEGRADING,
         "Write the system report", cleanup.generate_system_report),
)

check_catalog(CATALOG)


def resolve_tasks(selection: UserSelection, catalog: Sequence[Task] = CATALOG) -> List[Task]:
    return resolve(selection, catalog)
