# vimmarch/tasks/applications.py
"""
Applications phase.

Each step installs a bundle: pacman packages, Flatpak applications and a few
follow-up commands. A bundle keeps going after a failed package and reports
everything that failed at the end.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from vimmarch.tasks.registry import TaskContext, TaskResult

ESSENTIAL_PACKAGES = [
    "man-db", "htop", "btop", "fastfetch", "git", "wget", "curl",
    "zip", "unzip", "unrar", "rsync", "fzf", "ncdu", "tmux",
    "vim", "neovim", "kitty", "wl-clipboard",
    "bluez-utils", "power-profiles-daemon",
    "partitionmanager", "exfatprogs",
    "intel-gpu-tools", "amdgpu_top",
    "flatpak", "bat", "make", "gcc", "go", "tldr", "zsh", "timeshift",
    "os-prober",
]

ESSENTIAL_FLATPAKS = [
    "net.nokyan.Resources",
    "it.mijorus.gearlever",
    "com.bitwarden.desktop",
    "org.gnome.World.PikaBackup",
    "com.github.tchx84.Flatseal",
    "org.telegram.desktop",
    "com.rustdesk.RustDesk",
    "im.riot.Riot",
    "com.system76.Popsicle",
]

CODING_PACKAGES = ["neovim", "ripgrep", "fd"]

MEDIA_PACKAGES = [
    "ffmpeg", "yt-dlp", "vlc", "mpv", "ffmpegthumbs",
    "gstreamer", "gst-libav", "gst-plugins-base", "gst-plugins-good", "gst-plugins-bad", "gst-plugins-ugly",
    "mediainfo", "flac", "lame", "libmpeg2", "wavpack", "x264", "x265",
    "noto-fonts", "noto-fonts-cjk", "noto-fonts-emoji",
    "ttf-jetbrains-mono-nerd", "ttf-liberation", "ttf-dejavu", "ttf-roboto",
    "intel-media-driver", "libva-intel-driver", "libva-mesa-driver", "mesa-vdpau",
    "vulkan-radeon", "lib32-vulkan-radeon", "vlc-plugins-all",
]

MEDIA_FLATPAKS = [
    "dev.vencord.Vesktop",
    "com.spotify.Client",
    "com.mastermindzh.tidal-hifi",
    "com.github.iwalton3.jellyfin-media-player",
    "org.kde.gwenview",
    "com.obsproject.Studio",
    "org.nickvision.tubeconverter",
    "io.github.dimtpap.coppwr",
    "org.nickvision.cavalier",
    "com.github.unrud.VideoDownloader",
]

GAMING_PACKAGES = [
    "steam", "lib32-mangohud", "mangohud", "gamemode", "lib32-gamemode",
    "rocm-core", "rocm-hip-libraries", "rocm-hip-runtime", "rocm-opencl-runtime",
]

GAMING_FLATPAKS = [
    "net.lutris.Lutris",
    "com.heroicgameslauncher.hgl",
    "org.yuzu_emu.yuzu",
    "net.davidotek.pupgui2",
]

BROWSER_FLATPAKS = ["io.gitlab.librewolf-community"]

OFFICE_PACKAGES = ["kate"]

OFFICE_FLATPAKS = [
    "org.gimp.GIMP",
    "org.onlyoffice.desktopeditors",
    "md.obsidian.Obsidian",
    "net.ankiweb.Anki",
]

VIRTUALIZATION_PACKAGES = [
    "qemu-full", "samba", "libvirt", "virt-manager", "dnsmasq",
    "wine", "wine-mono", "wine-gecko", "winetricks",
]

RUSTUP_COMMAND = "curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh -s -- -y"
RCLONE_COMMAND = "curl -fsSL https://rclone.org/install.sh | bash"

MUNCHIEHUD_BASE_URL = "https://raw.githubusercontent.com/linuxmunchies/MunchieHUD/main"
MUNCHIEHUD_FILES = ["MangoHud.conf", "Presets.conf"]

FEISHIN_LATEST_URL = "https://github.com/jeffvli/feishin/releases/latest"
FEISHIN_DOWNLOAD_URL = "https://github.com/jeffvli/feishin/releases/download/v{version}/Feishin-{version}-linux-x86_64.AppImage"


@dataclass
class Bundle:
    name: str
    packages: List[str] = field(default_factory=list)
    flatpaks: List[str] = field(default_factory=list)
    # (description, argv) pairs run as root after the installs
    commands: List[Tuple[str, List[str]]] = field(default_factory=list)


def install_bundle(ctx: TaskContext, bundle: Bundle) -> List[str]:
    """Installs a bundle and returns one message per failed part."""
    ctx.logger.info(f"Installing {bundle.name}...")
    failures = []

    if bundle.packages:
        report = ctx.app.pacman.install_all(bundle.packages)
        if not report.succeeded:
            failures.append(f"packages {', '.join(sorted(report.failed))}")

    if bundle.flatpaks:
        report = ctx.app.flatpak.install_all(bundle.flatpaks)
        if not report.succeeded:
            failures.append(f"flatpaks {', '.join(sorted(report.failed))}")

    for description, command in bundle.commands:
        result = ctx.run(description, command)
        if not result.succeeded:
            failures.append(result.describe())

    return failures


def _bundle_task(ctx: TaskContext, bundle: Bundle) -> TaskResult:
    return TaskResult.from_failures(install_bundle(ctx, bundle), f"{bundle.name} installed")


def install_essentials(ctx: TaskContext) -> TaskResult:
    bundle = Bundle(
        "essential applications",
        packages=ESSENTIAL_PACKAGES,
        flatpaks=ESSENTIAL_FLATPAKS,
        commands=[("Enabling bluetooth and power profiles",
                   ["systemctl", "enable", "--now", "bluetooth", "power-profiles-daemon"])],
    )
    return _bundle_task(ctx, bundle)


def install_development_tools(ctx: TaskContext) -> TaskResult:
    failures = install_bundle(ctx, Bundle("development tools", packages=CODING_PACKAGES))

    rust = ctx.run_as_user("Installing Rust toolchain", RUSTUP_COMMAND, shell=True)
    if not rust.succeeded:
        failures.append(f"rustup: {rust.describe()}")

    rclone = ctx.run("Installing rclone", RCLONE_COMMAND, shell=True)
    if not rclone.succeeded:
        failures.append(f"rclone: {rclone.describe()}")

    return TaskResult.from_failures(failures, "development tools installed")


def install_media(ctx: TaskContext) -> TaskResult:
    return _bundle_task(ctx, Bundle("multimedia applications", packages=MEDIA_PACKAGES, flatpaks=MEDIA_FLATPAKS))


def install_gaming(ctx: TaskContext) -> TaskResult:
    return _bundle_task(ctx, Bundle("gaming applications", packages=GAMING_PACKAGES, flatpaks=GAMING_FLATPAKS))


def install_munchiehud_configs(ctx: TaskContext) -> TaskResult:
    config_dir = ctx.settings.home / ".config" / "MangoHud"
    mkdir = ctx.run_as_user(f"Creating {config_dir}", ["mkdir", "-p", str(config_dir)])
    if not mkdir.succeeded:
        return TaskResult.from_command(mkdir, f"could not create {config_dir}")

    for name in MUNCHIEHUD_FILES:
        url = f"{MUNCHIEHUD_BASE_URL}/{name}"
        result = ctx.run_as_user(f"Downloading {name}", ["curl", "-fsSL", url, "-o", str(config_dir / name)])
        if not result.succeeded:
            return TaskResult.from_command(result, f"failed to download {name} from {url}")

    ctx.logger.info(f"All MangoHud configs installed to {config_dir}")
    return TaskResult.success()


def install_browsers(ctx: TaskContext) -> TaskResult:
    return _bundle_task(ctx, Bundle("browsers", flatpaks=BROWSER_FLATPAKS))


def install_office(ctx: TaskContext) -> TaskResult:
    return _bundle_task(ctx, Bundle("office applications", packages=OFFICE_PACKAGES, flatpaks=OFFICE_FLATPAKS))


def setup_virtualization(ctx: TaskContext) -> TaskResult:
    bundle = Bundle(
        "virtualization",
        packages=VIRTUALIZATION_PACKAGES,
        commands=[
            ("Enabling libvirtd", ["systemctl", "enable", "--now", "libvirtd"]),
            ("Adding user to the libvirt group", ["usermod", "-aG", "libvirt", ctx.user]),
        ],
    )
    return _bundle_task(ctx, bundle)


def install_mullvad_vpn(ctx: TaskContext) -> TaskResult:
    if not ctx.executor.which("yay"):
        return TaskResult.failure("yay is not available, cannot install mullvad-vpn-bin")
    report = ctx.app.aur.install_all(["mullvad-vpn-bin"])
    if not report.succeeded:
        return TaskResult.failure(report.describe())
    return TaskResult.success("Mullvad VPN installed")


def release_version(url: str) -> Optional[str]:
    """The version in a GitHub ``.../releases/tag/vX.Y.Z`` URL, without the leading ``v``."""
    match = re.search(r"/v?(\d+(?:\.\d+)*)/?$", url.strip())
    return match.group(1) if match else None


def download_feishin(ctx: TaskContext) -> TaskResult:
    downloads = ctx.settings.home / "Downloads"
    mkdir = ctx.run_as_user(f"Creating {downloads}", ["mkdir", "-p", str(downloads)])
    if not mkdir.succeeded:
        return TaskResult.from_command(mkdir, f"could not create {downloads}")

    latest = ctx.run(
        "Looking up the latest Feishin release",
        ["curl", "-s", "-L", "-I", "-o", "/dev/null", "-w", "%{url_effective}", FEISHIN_LATEST_URL],
        quiet=True,
    )
    version = release_version(latest.output) if latest.succeeded else None
    if version is None:
        return TaskResult.failure("could not determine the latest Feishin version")

    target = downloads / f"Feishin-{version}-linux-x86_64.AppImage"
    download = ctx.run_as_user(
        f"Downloading Feishin {version}",
        ["curl", "-fL", "-o", str(target), FEISHIN_DOWNLOAD_URL.format(version=version)],
    )
    if not download.succeeded:
        return TaskResult.from_command(download, "failed to download Feishin")

    chmod = ctx.run_as_user("Marking Feishin executable", ["chmod", "+x", str(target)])
    if not chmod.succeeded:
        return TaskResult.from_command(chmod, f"could not make {target} executable")

    ctx.logger.info(f"Feishin AppImage downloaded to {target}")
    return TaskResult.success()
