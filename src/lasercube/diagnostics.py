"""Device diagnostics for a freshly opened LaserCube.

Collects USB descriptor information and the device's protocol-level
settings into one report.  Descriptor reads are best-effort (unreadable
strings become ``"?"``); control queries are not, and their errors
propagate like anywhere else.

Usage:
    from lasercube.diagnostics import collect_diagnostics

    rpt = collect_diagnostics(cube.control, cube.transport.device)
    print(rpt)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import usb.core
import usb.util

from .control import ControlChannel

log = logging.getLogger(__name__)

UNKNOWN = "?"

# Descriptor reads can fail in several ways depending on backend/permissions
_DESCRIPTOR_ERRORS = (usb.core.USBError, ValueError, NotImplementedError)


@dataclass
class DiagnosticsReport:
    active_configuration: Optional[int] = None
    languages: tuple = ()
    manufacturer: str = UNKNOWN
    product: str = UNKNOWN
    serial_number: str = UNKNOWN
    firmware_version: tuple[int, int] = (0, 0)
    min_dac_rate: int = 0
    max_dac_rate: int = 0
    dac_rate: int = 0
    max_dac_value: int = 0
    warnings: list[str] = field(default_factory=list)

    def lines(self) -> list[str]:
        major, minor = self.firmware_version
        return [
            f"Active configuration: {self.active_configuration}",
            f"Languages: {list(self.languages)}",
            f"Manufacturer: {self.manufacturer!r}",
            f"Product: {self.product!r}",
            f"Serial Number: {self.serial_number!r}",
            f"v{major}.{minor}",
            f"min dac rate {self.min_dac_rate}",
            f"max dac rate {self.max_dac_rate}",
            f"dac rate {self.dac_rate}",
            f"max dac value {self.max_dac_value}",
        ]

    def __str__(self) -> str:
        return "\n".join(self.lines())


def _read_string(device: Any, index: int, langid: int, report: DiagnosticsReport,
                 label: str) -> str:
    if not index:
        return UNKNOWN
    try:
        value = usb.util.get_string(device, index, langid)
    except _DESCRIPTOR_ERRORS as e:
        report.warnings.append(f"{label}: {e}")
        log.warning("Could not read %s string: %s", label, e)
        return UNKNOWN
    return value if value is not None else UNKNOWN


def _collect_descriptors(device: Any, report: DiagnosticsReport) -> None:
    try:
        report.active_configuration = device.get_active_configuration().bConfigurationValue
    except _DESCRIPTOR_ERRORS as e:
        report.warnings.append(f"active configuration: {e}")
        log.warning("Could not read active configuration: %s", e)

    try:
        report.languages = tuple(usb.util.get_langids(device))
    except _DESCRIPTOR_ERRORS as e:
        report.warnings.append(f"languages: {e}")
        log.warning("Could not read language IDs: %s", e)

    if not report.languages:
        return
    langid = report.languages[0]
    report.manufacturer = _read_string(
        device, getattr(device, "iManufacturer", 0), langid, report, "manufacturer")
    report.product = _read_string(
        device, getattr(device, "iProduct", 0), langid, report, "product")
    report.serial_number = _read_string(
        device, getattr(device, "iSerialNumber", 0), langid, report, "serial number")


def collect_diagnostics(control: ControlChannel,
                        device: Any = None) -> DiagnosticsReport:
    """Query descriptors (when *device* is given) and device settings.

    Each line of the report is also logged at DEBUG.
    """
    report = DiagnosticsReport()
    if device is not None:
        _collect_descriptors(device, report)

    report.firmware_version = control.firmware_version()
    report.min_dac_rate = control.min_dac_rate()
    report.max_dac_rate = control.max_dac_rate()
    report.dac_rate = control.dac_rate()
    report.max_dac_value = control.max_dac_value()

    for line in report.lines():
        log.debug("%s", line)
    return report
