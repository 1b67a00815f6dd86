# vimmarch/config/models.py

import tomlkit
import typer
from tomlkit.exceptions import TOMLKitError
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field, field_validator

from vimmarch.utils.exceptions import ConfigurationError

# --- 1. Closed vocabularies ---

class CpuVendor(str, Enum):
    AMD = "amd"
    INTEL = "intel"
    OTHER = "other"


class GpuVendor(str, Enum):
    AMD = "amd"
    INTEL = "intel"
    NVIDIA = "nvidia"
    OTHER = "other"


class StepName(str, Enum):
    """Optional steps a user can switch on. Declaration order is the checklist order."""
    DIRECTORY_STRUCTURE = "directory_structure"
    DOTFILES = "dotfiles"
    FIREWALL = "firewall"
    GAMEDRIVE = "gamedrive"
    ESSENTIALS = "essentials"
    CODING = "coding"
    MEDIA = "media"
    GAMING = "gaming"
    BROWSERS = "browsers"
    OFFICE = "office"
    VIRTUALIZATION = "virtualization"


STEP_DESCRIPTIONS: Dict[StepName, str] = {
    StepName.DIRECTORY_STRUCTURE: "Create user directories",
    StepName.DOTFILES: "Setup dotfiles from Git",
    StepName.FIREWALL: "Setup UFW firewall",
    StepName.GAMEDRIVE: "Game drive setup",
    StepName.ESSENTIALS: "Essential apps",
    StepName.CODING: "Development tools",
    StepName.MEDIA: "Multimedia apps",
    StepName.GAMING: "Gaming apps",
    StepName.BROWSERS: "Browsers",
    StepName.OFFICE: "Office apps",
    StepName.VIRTUALIZATION: "Virtualization",
}

_TRUE_WORDS = {"yes", "y", "true", "1", "on"}
_FALSE_WORDS = {"no", "n", "false", "0", "off"}


def parse_steps(value: Any) -> List[str]:
    """Accepts a list/set of names or a comma/space separated string. Names are lower-cased."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.replace(",", " ").split()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(item).strip().lower() if not isinstance(item, Enum) else item.value for item in value]
    raise ValueError("steps must be a list of step names")


# --- 2. Selection ---

class UserSelection(BaseModel):
    """The user's choices for one run. Built once, never mutated."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    cpu: CpuVendor
    gpu: GpuVendor
    laptop: bool
    steps: FrozenSet[StepName] = Field(default_factory=frozenset)
    gamedrive_uuid: Optional[str] = None

    @field_validator("cpu", "gpu", mode="before")
    @classmethod
    def _lower_vendor(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("laptop", mode="before")
    @classmethod
    def _yes_no(cls, value):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            word = value.strip().lower()
            if word in _TRUE_WORDS:
                return True
            if word in _FALSE_WORDS:
                return False
        raise ValueError("laptop must be yes or no")

    @field_validator("steps", mode="before")
    @classmethod
    def _split_steps(cls, value):
        return parse_steps(value)

    @field_validator("gamedrive_uuid", mode="before")
    @classmethod
    def _blank_uuid(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    def has_step(self, step: StepName) -> bool:
        return step in self.steps

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], source: str = "selection") -> "UserSelection":
        """Validates raw choices, whatever their origin, into a UserSelection."""
        normalized = {str(key).lower(): value for key, value in data.items()}
        try:
            return cls.model_validate(normalized)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(source, f"Invalid selection: {problems}")

    def display_summary(self) -> str:
        s = typer.style("\nSELECTION SUMMARY", fg=typer.colors.BLUE, bold=True) + "\n"
        s += "----------------------------------------\n"
        s += f"  CPU:                {self.cpu.value}\n"
        s += f"  GPU:                {self.gpu.value}\n"
        s += f"  Laptop:             {'yes' if self.laptop else 'no'}\n"
        ordered = [step.value for step in StepName if step in self.steps]
        s += f"  Steps:              {', '.join(ordered) if ordered else 'none'}\n"
        if StepName.GAMEDRIVE in self.steps:
            s += f"  Game drive UUID:    {self.gamedrive_uuid or 'none'}\n"
        return s


# --- 3. Settings ---

DEFAULT_REFLECTOR_COUNTRIES = ["United States", "Canada", "Mexico", "United Kingdom", "Germany", "France"]


class SettingsOverrides(BaseModel):
    """Values a configuration file may override in its [settings] table."""
    model_config = ConfigDict(extra="forbid")

    timezone: Optional[str] = None
    reflector_countries: Optional[List[str]] = None
    dotfiles_repo: Optional[str] = None
    gamedrive_mount: Optional[Path] = None
    max_retries: Optional[int] = Field(None, ge=1)
    retry_delay: Optional[float] = Field(None, ge=0)
    backup_keep: Optional[int] = Field(None, ge=1)
    reboot_timeout: Optional[int] = Field(None, ge=1)


class Settings(BaseModel):
    """Paths and policy constants for one run, derived for the invoking user."""

    actual_user: str
    home: Path
    backup_dir: Path = Path("/var/backups/arch-setup")
    timezone: str = "America/Chicago"
    reflector_countries: List[str] = Field(default_factory=lambda: list(DEFAULT_REFLECTOR_COUNTRIES))
    dotfiles_repo: str = "https://github.com/linuxmunchies/dotfiles"
    gamedrive_mount: Path = Path("/mnt/gamedrive")
    max_retries: int = Field(3, ge=1)
    retry_delay: float = Field(2.0, ge=0)
    backup_keep: int = Field(5, ge=1)
    reboot_timeout: int = Field(30, ge=1)

    @computed_field
    @property
    def log_file(self) -> Path:
        return self.home / "Desktop" / "arch_setup.log"

    @computed_field
    @property
    def report_file(self) -> Path:
        return self.home / "Desktop" / "system_setup_report.txt"

    @computed_field
    @property
    def config_dir(self) -> Path:
        return self.home / ".config" / "arch-setup"

    @computed_field
    @property
    def dotfiles_dir(self) -> Path:
        return self.home / ".dotfiles"

    @property
    def directories(self) -> List[Path]:
        """User directories created by the directory_structure step."""
        return [
            self.home / "ProtonDrive" / "Archives" / "Discord",
            self.home / "ProtonDrive" / "Archives" / "Obsidian",
            self.home / "ProtonDrive" / "Career" / "MainDocs",
            self.home / "Development" / "Projects",
            self.home / "Development" / "Scripts",
            self.home / ".local" / "bin",
            self.home / ".config" / "systemd" / "user",
        ]

    @classmethod
    def for_user(cls, actual_user: str, home: Optional[Path] = None,
                 overrides: Optional[SettingsOverrides] = None) -> "Settings":
        values: Dict[str, Any] = {
            "actual_user": actual_user,
            "home": home if home is not None else Path("/home") / actual_user,
        }
        if overrides is not None:
            values.update(overrides.model_dump(exclude_none=True))
        return cls(**values)


# --- 4. Configuration file ---

class SetupConfig(BaseModel):
    """A declarative configuration file: the selection plus optional settings overrides."""

    selection: UserSelection
    settings: SettingsOverrides = Field(default_factory=SettingsOverrides)

    @classmethod
    def load_config_from_file(cls, path: Path) -> "SetupConfig":
        """
        Loads a TOML file and validates it. Top-level keys are case-insensitive
        (``CPU`` and ``cpu`` are the same field).

        Raises:
            ConfigurationError: missing file, unreadable file, bad TOML or invalid values.
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigurationError(path, "Configuration file not found")

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(path, f"Error reading configuration file: {e}")

        try:
            data = tomlkit.parse(content).unwrap()
        except TOMLKitError as e:
            raise ConfigurationError(path, f"Invalid TOML format in file: {e}")

        raw = {str(key).lower(): value for key, value in data.items()}
        settings_table = raw.pop("settings", None) or {}

        selection = UserSelection.from_mapping(raw, source=str(path))
        try:
            settings = SettingsOverrides.model_validate(settings_table)
        except ValidationError as e:
            raise ConfigurationError(path, f"Invalid [settings] table: {e.error_count()} error(s): {e}")

        return cls(selection=selection, settings=settings)
