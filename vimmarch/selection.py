# vimmarch/selection.py
"""
Building the UserSelection interactively, and resolving the game drive device
for either construction path.
"""
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from vimmarch.config.models import STEP_DESCRIPTIONS, CpuVendor, GpuVendor, StepName, UserSelection
from vimmarch.executors.hardware import DeviceDescriptor, HardwareProbe
from vimmarch.utils.exceptions import ConfigurationError
from vimmarch.utils.logger import RichAppLogger

GAMEDRIVE_FSTYPE = "btrfs"


def parse_step_answer(answer: str) -> List[str]:
    """
    Turns a checklist answer into step names. Entries are step names or their
    1-based checklist numbers, separated by commas or spaces. Blank means none.
    """
    ordered = list(StepName)
    names = []
    for token in answer.replace(",", " ").split():
        if token.isdigit():
            index = int(token) - 1
            if not 0 <= index < len(ordered):
                raise ValueError(f"No step number {token}")
            names.append(ordered[index].value)
        else:
            names.append(token.lower())
    return names


def _steps_table() -> Table:
    table = Table(title="Setup Steps")
    table.add_column("Index", justify="right", style="cyan", no_wrap=True)
    table.add_column("Step", style="success")
    table.add_column("Description")
    for i, step in enumerate(StepName):
        table.add_row(str(i + 1), step.value, STEP_DESCRIPTIONS[step])
    return table


def ask_choices(console: Console, detected_cpu: CpuVendor, detected_gpu: GpuVendor) -> Dict[str, Any]:
    """Asks for CPU, GPU, laptop and steps. Returns raw values for UserSelection.from_mapping."""
    cpu = Prompt.ask(
        "[yellow]Select your CPU type[/]",
        choices=[vendor.value for vendor in CpuVendor],
        default=detected_cpu.value,
        console=console,
    )
    gpu = Prompt.ask(
        "[yellow]Select your GPU type[/]",
        choices=[vendor.value for vendor in GpuVendor],
        default=detected_gpu.value,
        console=console,
    )
    laptop = Confirm.ask("[yellow]Is this device a laptop?[/]", default=False, console=console)

    console.print(_steps_table())
    while True:
        answer = Prompt.ask(
            "[yellow]Steps to run (names or numbers, comma separated, blank for none)[/]",
            default="",
            show_default=False,
            console=console,
        )
        try:
            steps = parse_step_answer(answer)
        except ValueError as e:
            console.print(f"{e}. Please try again.", style="error")
            continue
        unknown = [name for name in steps if name not in {step.value for step in StepName}]
        if unknown:
            console.print(f"Unknown step(s): {', '.join(unknown)}. Please try again.", style="error")
            continue
        break

    return {"cpu": cpu, "gpu": gpu, "laptop": laptop, "steps": steps}


def elicit_selection(console: Console, hardware: HardwareProbe) -> UserSelection:
    """Interactive construction path. The probe only supplies defaults; the user has the last word."""
    raw = ask_choices(console, hardware.detect_vendor("cpu"), hardware.detect_vendor("gpu"))
    return UserSelection.from_mapping(raw, source="interactive")


def choose_device(console: Console, devices: List[DeviceDescriptor]) -> DeviceDescriptor:
    table = Table(title="Available BTRFS Drives")
    table.add_column("Index", justify="right", style="cyan", no_wrap=True)
    table.add_column("UUID", style="success")
    table.add_column("Device", style="success")
    table.add_column("Label")
    for i, device in enumerate(devices):
        table.add_row(str(i + 1), device.uuid, device.device, device.label or "[italic]None[/]")
    console.print(table)

    while True:
        selection = Prompt.ask(
            "[yellow]Enter the index of the game drive[/]",
            default="1",
            show_default=True,
            console=console,
        )
        try:
            index = int(selection) - 1
        except ValueError:
            console.print("Invalid input. Please enter a number.", style="error")
            continue
        if 0 <= index < len(devices):
            return devices[index]
        console.print("Invalid selection. Please enter a valid index.", style="error")


def resolve_gamedrive(selection: UserSelection,
                      hardware: HardwareProbe,
                      logger: RichAppLogger,
                      console: Optional[Console] = None) -> UserSelection:
    """
    Fills in the game drive UUID when the gamedrive step is selected without one.

    Zero candidate devices: none, with a warning. One: selected automatically.
    Several: the user picks when ``console`` is given (interactive mode),
    otherwise none, with a warning.
    """
    if not selection.has_step(StepName.GAMEDRIVE) or selection.gamedrive_uuid:
        return selection

    devices = hardware.list_storage_devices_of_type(GAMEDRIVE_FSTYPE)
    if not devices:
        logger.warning("No BTRFS drives detected for gamedrive setup")
        return selection

    if len(devices) == 1:
        chosen = devices[0]
        logger.info(f"Using the only BTRFS drive for the game drive: {chosen.display_name()}")
    elif console is not None:
        chosen = choose_device(console, devices)
    else:
        logger.warning(
            f"{len(devices)} BTRFS drives found but no GAMEDRIVE_UUID configured; skipping game drive selection"
        )
        return selection

    return selection.model_copy(update={"gamedrive_uuid": chosen.uuid})


def load_or_elicit(config_selection: Optional[UserSelection],
                   console: Console,
                   hardware: HardwareProbe,
                   logger: RichAppLogger) -> UserSelection:
    """The selection for this run, from the configuration file when one was loaded, else from the user."""
    if config_selection is not None:
        return resolve_gamedrive(config_selection, hardware, logger)

    while True:
        try:
            selection = elicit_selection(console, hardware)
        except ConfigurationError as e:
            console.print(str(e), style="error")
            continue
        return resolve_gamedrive(selection, hardware, logger, console=console)
