from io import StringIO
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from vimmarch.config.models import CpuVendor, GpuVendor, SetupConfig, StepName, UserSelection
from vimmarch.executors.hardware import HardwareProbe
from vimmarch.selection import elicit_selection, parse_step_answer
from vimmarch.tasks.catalog import CATALOG, resolve_tasks
from vimmarch.tasks.registry import FailurePolicy, Phase, Task, TaskResult, check_catalog, resolve

# ======= Execute with: pytest tests/test_registry.py ========


def selection(**values):
    data = {"cpu": "other", "gpu": "other", "laptop": "no", "steps": []}
    data.update(values)
    return UserSelection.from_mapping(data)


def identifiers(tasks):
    return [task.identifier for task in tasks]


def noop(ctx):
    return TaskResult.success()


def test_catalog_is_valid():
    check_catalog(CATALOG)
    phases = [task.phase.index for task in CATALOG]
    assert phases == sorted(phases)


def test_empty_selection_resolves_to_unconditional_tasks_in_order():
    tasks = resolve_tasks(selection())

    expected = [task.identifier for task in CATALOG if task.unconditional]
    assert identifiers(tasks) == expected
    assert "system_upgrade" in identifiers(tasks)
    assert "gpu_drivers" not in identifiers(tasks)
    assert "laptop_power" not in identifiers(tasks)
    assert tasks[-1].identifier == "system_report"


def test_resolve_is_deterministic():
    chosen = selection(cpu="amd", gpu="amd", laptop="yes", steps=["gaming", "dotfiles"])
    assert identifiers(resolve_tasks(chosen)) == identifiers(resolve_tasks(chosen))


def test_vendor_and_laptop_gating():
    tasks = identifiers(resolve_tasks(selection(cpu="intel", gpu="nvidia", laptop="yes")))

    assert "cpu_intel" in tasks
    assert "cpu_amd" not in tasks
    assert "gpu_drivers" in tasks
    # nvidia has no early KMS module
    assert "early_kms" not in tasks
    assert "laptop_power" in tasks


def test_step_gating():
    tasks = identifiers(resolve_tasks(selection(steps=["gaming", "gamedrive"])))

    assert "gaming" in tasks
    assert "munchiehud" in tasks
    assert "gamedrive" in tasks
    assert "office" not in tasks
    assert "dotfiles" not in tasks


def test_every_step_enables_at_least_one_task():
    gated_steps = {task.step for task in CATALOG if task.step is not None}
    assert gated_steps == set(StepName)


def test_resolve_preserves_catalog_order_for_full_selection():
    everything = selection(cpu="amd", gpu="amd", laptop="yes", steps=[step.value for step in StepName])
    tasks = resolve_tasks(everything)
    positions = [CATALOG.index(task) for task in tasks]
    assert positions == sorted(positions)


def test_check_catalog_rejects_duplicates():
    catalog = [
        Task("a", Phase.PREPARATION, FailurePolicy.DEGRADING, "a", noop),
        Task("a", Phase.HARDWARE, FailurePolicy.DEGRADING, "a again", noop),
    ]
    with pytest.raises(ValueError, match="Duplicate"):
        check_catalog(catalog)


def test_check_catalog_rejects_phase_disorder():
    catalog = [
        Task("late", Phase.CLEANUP, FailurePolicy.DEGRADING, "late", noop),
        Task("early", Phase.PREPARATION, FailurePolicy.DEGRADING, "early", noop),
    ]
    with pytest.raises(ValueError, match="phase order"):
        check_catalog(catalog)


def test_resolve_never_reorders_a_custom_catalog():
    catalog = [
        Task("one", Phase.PREPARATION, FailurePolicy.DEGRADING, "one", noop, step=StepName.OFFICE),
        Task("two", Phase.PREPARATION, FailurePolicy.DEGRADING, "two", noop),
        Task("three", Phase.HARDWARE, FailurePolicy.DEGRADING, "three", noop, step=StepName.MEDIA),
    ]
    assert identifiers(resolve(selection(steps=["media", "office"]), catalog)) == ["one", "two", "three"]
    assert identifiers(resolve(selection(), catalog)) == ["two"]


# --- Equivalence of the two construction paths ---

def test_parse_step_answer_accepts_numbers_and_names():
    assert parse_step_answer("") == []
    assert parse_step_answer("1, firewall 4") == ["directory_structure", "firewall", "gamedrive"]
    with pytest.raises(ValueError):
        parse_step_answer("99")


@patch('vimmarch.selection.Confirm.ask', return_value=True)
@patch('vimmarch.selection.Prompt.ask')
def test_interactive_and_file_selection_resolve_identically(mock_prompt, mock_confirm, tmp_path):
    mock_prompt.side_effect = ["amd", "nvidia", "2, firewall, 8"]
    hardware = MagicMock(spec=HardwareProbe)
    hardware.detect_vendor.side_effect = lambda component: CpuVendor.AMD if component == "cpu" else GpuVendor.AMD

    interactive = elicit_selection(Console(file=StringIO()), hardware)

    config_path = tmp_path / "setup.toml"
    config_path.write_text(
        'CPU = "amd"\nGPU = "nvidia"\nLAPTOP = "yes"\nSTEPS = ["gaming", "dotfiles", "firewall"]\n',
        encoding="utf-8",
    )
    from_file = SetupConfig.load_config_from_file(config_path).selection

    assert interactive == from_file
    assert identifiers(resolve_tasks(interactive)) == identifiers(resolve_tasks(from_file))


@patch('vimmarch.selection.Confirm.ask', return_value=False)
@patch('vimmarch.selection.Prompt.ask')
def test_interactive_defaults_come_from_the_probe(mock_prompt, mock_confirm):
    mock_prompt.side_effect = ["intel", "intel", ""]
    hardware = MagicMock(spec=HardwareProbe)
    hardware.detect_vendor.side_effect = lambda component: CpuVendor.INTEL if component == "cpu" else GpuVendor.INTEL

    chosen = elicit_selection(Console(file=StringIO()), hardware)

    assert mock_prompt.call_args_list[0][1]["default"] == "intel"
    assert mock_prompt.call_args_list[1][1]["default"] == "intel"
    assert chosen.steps == frozenset()
