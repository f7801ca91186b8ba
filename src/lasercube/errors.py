"""Exceptions raised by the LaserCube driver.

Everything derives from ``LaserCubeError`` so callers can catch all
driver errors in one place.  Transport failures from pyusb
(``usb.core.USBError``, including timeouts) are not wrapped: they reach
the caller as plain I/O errors.
"""

from __future__ import annotations


class LaserCubeError(RuntimeError):
    """Base class for all LaserCube driver errors."""


# =========================================================================
# Session open
# =========================================================================

class DeviceNotFound(LaserCubeError):
    """No USB device matches the LaserCube VID:PID."""

    def __init__(self, vid: int, pid: int):
        super().__init__(f"LaserCube not found (VID={vid:#06x} PID={pid:#06x})")
        self.vid = vid
        self.pid = pid


class EndpointNotFound(LaserCubeError):
    """A required bulk endpoint is missing from the configuration descriptor.

    ``role`` is one of ``"control-read"``, ``"control-write"`` or
    ``"data-write"``.
    """

    def __init__(self, role: str):
        super().__init__(f"{role} endpoint not found")
        self.role = role


class DeviceBusy(LaserCubeError):
    """The physical device is already owned by another open session."""

    def __init__(self, vid: int, pid: int, location: tuple):
        super().__init__(
            f"LaserCube {vid:04x}:{pid:04x} at bus {location[0]} "
            f"address {location[1]} is already open"
        )
        self.vid = vid
        self.pid = pid
        self.location = location


class OutputEnableFailed(LaserCubeError):
    """The device reported output disabled right after being told to enable it."""

    def __init__(self):
        super().__init__("failed to enable output")


class TransportClosed(LaserCubeError):
    """I/O was attempted on a transport that is not open."""

    def __init__(self):
        super().__init__("transport not open")


# =========================================================================
# Transfer / protocol errors
# =========================================================================

class BusError(LaserCubeError):
    """A transfer completed but did not move or return what the protocol requires."""


class IncompleteWrite(BusError):
    def __init__(self, written: int, expected: int):
        super().__init__(f"incomplete write: {written} of {expected} bytes")
        self.written = written
        self.expected = expected


class IncompleteResponse(BusError):
    def __init__(self, read: int, expected: int):
        super().__init__(f"incomplete response: {read} of {expected} bytes")
        self.read = read
        self.expected = expected


class UnexpectedContent(BusError):
    """Non-zero status byte in a control response."""

    def __init__(self, actual: int, expected: int = 0):
        super().__init__(f"unexpected content: {actual} instead of {expected}")
        self.actual = actual
        self.expected = expected
