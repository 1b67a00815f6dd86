from pathlib import Path

import pytest
from pydantic import ValidationError

from vimmarch.config.models import (
    CpuVendor, GpuVendor, Settings, SettingsOverrides, SetupConfig, StepName, UserSelection,
)
from vimmarch.utils.exceptions import ConfigurationError, StartupValidationError

# ======= Execute with: pytest tests/test_config.py ========

VALID_CONFIG = """\
CPU = "AMD"
gpu = "nvidia"
LAPTOP = "yes"
STEPS = ["dotfiles", "firewall", "Gaming"]
GAMEDRIVE_UUID = "1111-aaaa"

[settings]
timezone = "Europe/Berlin"
max_retries = 5
"""


def write_config(tmp_path, content):
    path = tmp_path / "setup.toml"
    path.write_text(content, encoding="utf-8")
    return path


def test_load_valid_config(tmp_path):
    config = SetupConfig.load_config_from_file(write_config(tmp_path, VALID_CONFIG))

    selection = config.selection
    assert selection.cpu is CpuVendor.AMD
    assert selection.gpu is GpuVendor.NVIDIA
    assert selection.laptop is True
    assert selection.steps == frozenset({StepName.DOTFILES, StepName.FIREWALL, StepName.GAMING})
    assert selection.gamedrive_uuid == "1111-aaaa"
    assert config.settings.timezone == "Europe/Berlin"
    assert config.settings.max_retries == 5


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        SetupConfig.load_config_from_file(tmp_path / "nope.toml")


def test_configuration_error_is_a_startup_failure(tmp_path):
    with pytest.raises(StartupValidationError):
        SetupConfig.load_config_from_file(tmp_path / "nope.toml")


def test_invalid_toml(tmp_path):
    with pytest.raises(ConfigurationError, match="Invalid TOML"):
        SetupConfig.load_config_from_file(write_config(tmp_path, "CPU = amd = intel\n"))


def test_non_utf8_config_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_bytes(b'CPU = "amd\xff"\nGPU = "amd"\nLAPTOP = "no"\n')
    with pytest.raises(ConfigurationError, match="Error reading"):
        SetupConfig.load_config_from_file(path)


@pytest.mark.parametrize("content", [
    'CPU = "arm"\nGPU = "amd"\nLAPTOP = "no"\n',
    'CPU = "amd"\nGPU = "amd"\nLAPTOP = "maybe"\n',
    'CPU = "amd"\nGPU = "amd"\nLAPTOP = "no"\nSTEPS = ["kitchen_sink"]\n',
    'CPU = "amd"\nGPU = "amd"\nLAPTOP = "no"\nCOLOR = "blue"\n',
    'GPU = "amd"\nLAPTOP = "no"\n',
])
def test_invalid_selection_values(tmp_path, content):
    with pytest.raises(ConfigurationError, match="Invalid selection"):
        SetupConfig.load_config_from_file(write_config(tmp_path, content))


def test_invalid_settings_table(tmp_path):
    content = 'CPU = "amd"\nGPU = "amd"\nLAPTOP = "no"\n[settings]\nmax_retries = 0\n'
    with pytest.raises(ConfigurationError, match="settings"):
        SetupConfig.load_config_from_file(write_config(tmp_path, content))


@pytest.mark.parametrize("raw, expected", [
    ("yes", True), ("Y", True), ("no", False), ("N", False), (True, True), (False, False),
])
def test_laptop_yes_no(raw, expected):
    selection = UserSelection.from_mapping({"cpu": "other", "gpu": "other", "laptop": raw})
    assert selection.laptop is expected


def test_steps_accept_separated_string():
    selection = UserSelection.from_mapping(
        {"CPU": "intel", "GPU": "intel", "LAPTOP": "no", "STEPS": "essentials, coding media"}
    )
    assert selection.steps == frozenset({StepName.ESSENTIALS, StepName.CODING, StepName.MEDIA})


def test_selection_is_immutable():
    selection = UserSelection.from_mapping({"cpu": "amd", "gpu": "amd", "laptop": "no"})
    with pytest.raises(ValidationError):
        selection.cpu = CpuVendor.INTEL
    assert selection.steps == frozenset()
    assert selection.gamedrive_uuid is None


def test_blank_gamedrive_uuid_is_none():
    selection = UserSelection.from_mapping(
        {"cpu": "amd", "gpu": "amd", "laptop": "no", "gamedrive_uuid": "  "}
    )
    assert selection.gamedrive_uuid is None


def test_settings_for_user_paths():
    settings = Settings.for_user("alice", Path("/home/alice"))

    assert settings.log_file == Path("/home/alice/Desktop/arch_setup.log")
    assert settings.report_file == Path("/home/alice/Desktop/system_setup_report.txt")
    assert settings.dotfiles_dir == Path("/home/alice/.dotfiles")
    assert settings.backup_dir == Path("/var/backups/arch-setup")
    assert settings.backup_keep == 5
    assert Path("/home/alice/.local/bin") in settings.directories


def test_settings_overrides_apply_only_given_values():
    overrides = SettingsOverrides(timezone="Europe/Oslo", retry_delay=0)
    settings = Settings.for_user("alice", Path("/home/alice"), overrides=overrides)

    assert settings.timezone == "Europe/Oslo"
    assert settings.retry_delay == 0
    assert settings.max_retries == 3


def test_display_summary_lists_steps_in_checklist_order():
    selection = UserSelection.from_mapping(
        {"cpu": "amd", "gpu": "amd", "laptop": "no", "steps": ["office", "dotfiles"]}
    )
    summary = selection.display_summary()
    assert "dotfiles, office" in summary
