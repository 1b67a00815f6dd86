# vimmarch/executors/hardware.py
from dataclasses import dataclass
from typing import Dict, List, Optional

from vimmarch.config.models import CpuVendor, GpuVendor
from vimmarch.utils.executor import Executor


@dataclass(frozen=True)
class DeviceDescriptor:
    """A filesystem as reported by blkid."""
    uuid: str
    device: str
    fstype: str
    label: Optional[str] = None

    def display_name(self) -> str:
        label = f" [{self.label}]" if self.label else ""
        return f"{self.device}{label} ({self.uuid})"


def parse_blkid_export(output: str) -> List[Dict[str, str]]:
    """Parses ``blkid -o export`` output: KEY=VALUE lines, one blank-line separated block per device."""
    blocks: List[Dict[str, str]] = []
    current: Dict[str, str] = {}
    for line in output.splitlines():
        line = line.strip()
        if not line:
            if current:
                blocks.append(current)
                current = {}
            continue
        if "=" in line:
            key, value = line.split("=", 1)
            current[key.strip()] = value.strip()
    if current:
        blocks.append(current)
    return blocks


class HardwareProbe:
    """
    Read-only questions about the machine, answered through the Executor.
    Keeps output parsing out of the task code.
    """

    def __init__(self, executor: Executor):
        self.executor = executor
        self.logger = executor.logger

    def list_storage_devices_of_type(self, fstype: str) -> List[DeviceDescriptor]:
        """
        Returns every filesystem of the given type that blkid can see.
        blkid exits with 2 when nothing matches, which is reported as an empty list.
        """
        result = self.executor.run(
            f"Listing {fstype} filesystems",
            ["blkid", "-t", f"TYPE={fstype}", "-o", "export"],
            quiet=True,
        )
        if not result.succeeded:
            if result.exit_code != 2:
                self.logger.debug(f"blkid failed while listing {fstype} devices: {result.describe()}")
            return []

        devices = []
        for block in parse_blkid_export(result.output):
            uuid = block.get("UUID")
            device = block.get("DEVNAME")
            if not uuid or not device:
                continue
            devices.append(DeviceDescriptor(
                uuid=uuid,
                device=device,
                fstype=block.get("TYPE", fstype),
                label=block.get("LABEL") or None,
            ))
        return devices

    def device_for_uuid(self, uuid: str) -> Optional[str]:
        result = self.executor.run(f"Resolving UUID {uuid}", ["blkid", "-U", uuid], quiet=True)
        device = result.output.strip()
        if result.succeeded and device:
            return device
        return None

    def detect_vendor(self, component: str):
        """
        Best guess of the vendor for ``component`` ("cpu" or "gpu"). Returns the
        matching enum member, or OTHER when the answer is unknown.
        """
        if component == "cpu":
            return self._detect_cpu_vendor()
        if component == "gpu":
            return self._detect_gpu_vendor()
        raise ValueError(f"Unknown hardware component: {component}")

    def _detect_cpu_vendor(self) -> CpuVendor:
        result = self.executor.run("Reading CPU vendor", ["lscpu"], quiet=True)
        if not result.succeeded:
            return CpuVendor.OTHER
        for line in result.output.splitlines():
            if "Vendor ID:" in line:
                vendor_id = line.split(":", 1)[1].strip()
                if vendor_id == "GenuineIntel":
                    return CpuVendor.INTEL
                if vendor_id == "AuthenticAMD":
                    return CpuVendor.AMD
        return CpuVendor.OTHER

    def _detect_gpu_vendor(self) -> GpuVendor:
        result = self.executor.run("Reading GPU vendor", ["lspci"], quiet=True)
        if not result.succeeded:
            return GpuVendor.OTHER
        for line in result.output.splitlines():
            if "VGA" not in line and "3D" not in line:
                continue
            if "NVIDIA" in line:
                return GpuVendor.NVIDIA
            if "AMD" in line or "ATI" in line or "Advanced Micro Devices" in line:
                return GpuVendor.AMD
            if "Intel" in line:
                return GpuVendor.INTEL
        return GpuVendor.OTHER
