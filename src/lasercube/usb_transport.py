"""
USB layer for the LaserCube: device discovery, endpoint resolution and
raw bulk I/O.

The LaserCube exposes two vendor interfaces in its first configuration::

    interface 0 (control)  bulk IN  + bulk OUT   command request / response
    interface 1 (data)     bulk OUT              sample batches

``PyUsbTransport.open()`` finds the device by VID:PID, claims both
interfaces, resolves the three endpoints and selects the data interface's
alternate setting.  ``close()`` releases everything it claimed.

The ``UsbTransport`` ABC keeps the raw I/O mockable so the protocol layers
(control channel, streaming channel) can be tested without hardware.

Linux dependencies:
  • pyusb:  ``pip install pyusb``  (needs libusb1: ``apt install libusb-1.0-0``)
"""

from __future__ import annotations

import logging
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import usb.core
import usb.util

from .constants import (
    CONFIGURATION_INDEX,
    CONTROL_INTERFACE,
    DATA_INTERFACE,
    TIMEOUT_MS,
    USB_PRODUCT_ID,
    USB_VENDOR_ID,
)
from .errors import DeviceBusy, DeviceNotFound, EndpointNotFound, TransportClosed

log = logging.getLogger(__name__)

DIRECTION_IN = "in"
DIRECTION_OUT = "out"

# (bus, address) -> ownership token of every device held by an open transport
_owned_devices: Dict[Tuple[Any, Any], object] = {}


# =========================================================================
# Data classes
# =========================================================================

@dataclass(frozen=True)
class Endpoint:
    """A resolved bulk endpoint."""
    configuration: int
    interface: int
    alternate_setting: int
    address: int
    direction: str  # DIRECTION_IN or DIRECTION_OUT


@dataclass(frozen=True)
class Endpoints:
    """The three endpoints a LaserCube session needs."""
    control_read: Endpoint
    control_write: Endpoint
    data_write: Endpoint


# =========================================================================
# Discovery helpers
# =========================================================================

def find_device(devices: Optional[Iterable[Any]] = None,
                vid: int = USB_VENDOR_ID, pid: int = USB_PRODUCT_ID) -> Any:
    """Return the first device in *devices* matching *vid*:*pid*.

    *devices* defaults to every device libusb can see.

    Raises:
        DeviceNotFound: nothing matches.
    """
    if devices is None:
        devices = usb.core.find(find_all=True) or []
    for dev in devices:
        if dev.idVendor == vid and dev.idProduct == pid:
            return dev
    raise DeviceNotFound(vid, pid)


def _direction(ep: Any) -> str:
    if usb.util.endpoint_direction(ep.bEndpointAddress) == usb.util.ENDPOINT_IN:
        return DIRECTION_IN
    return DIRECTION_OUT


def _is_bulk(ep: Any) -> bool:
    return usb.util.endpoint_type(ep.bmAttributes) == usb.util.ENDPOINT_TYPE_BULK


def resolve_endpoints(configuration: Any,
                      config_index: int = CONFIGURATION_INDEX) -> Endpoints:
    """Locate control-read, control-write and data-write in a configuration.

    Walks every interface/alternate setting of *configuration*.  On the
    control interface the first bulk IN and first bulk OUT endpoint win; on
    the data interface the first bulk OUT endpoint wins, together with the
    alternate setting it lives in.

    Raises:
        EndpointNotFound: one of the three is missing.
    """
    found: dict[str, Endpoint] = {}

    for intf in configuration.interfaces():
        number = intf.bInterfaceNumber
        if number not in (CONTROL_INTERFACE, DATA_INTERFACE):
            continue
        for ep in intf.endpoints():
            if not _is_bulk(ep):
                continue
            direction = _direction(ep)
            if number == CONTROL_INTERFACE:
                role = "control-read" if direction == DIRECTION_IN else "control-write"
            elif direction == DIRECTION_OUT:
                role = "data-write"
            else:
                continue
            if role in found:
                continue
            found[role] = Endpoint(
                configuration=config_index,
                interface=number,
                alternate_setting=intf.bAlternateSetting,
                address=ep.bEndpointAddress,
                direction=direction,
            )

    for role in ("control-read", "control-write", "data-write"):
        if role not in found:
            raise EndpointNotFound(role)

    endpoints = Endpoints(
        control_read=found["control-read"],
        control_write=found["control-write"],
        data_write=found["data-write"],
    )
    log.debug(
        "Resolved endpoints: control IN=0x%02x OUT=0x%02x, data OUT=0x%02x (alt %d)",
        endpoints.control_read.address, endpoints.control_write.address,
        endpoints.data_write.address, endpoints.data_write.alternate_setting,
    )
    return endpoints


def _release_device(dev: Any, claimed: List[int], location: Tuple[Any, Any],
                    token: object) -> None:
    """Release claimed interfaces, dispose pyusb resources, drop ownership.

    Runs at most once per open, from close() or from the finalizer of a
    transport that was garbage-collected while still open.
    """
    for number in reversed(claimed):
        try:
            usb.util.release_interface(dev, number)
        except usb.core.USBError as e:
            log.debug("Release interface %d: %s", number, e)
    claimed.clear()
    try:
        usb.util.dispose_resources(dev)
    except usb.core.USBError as e:
        log.debug("Dispose resources: %s", e)
    if _owned_devices.get(location) is token:
        del _owned_devices[location]


# =========================================================================
# Abstract USB transport
# =========================================================================

class UsbTransport(ABC):
    """Abstract USB bulk transport, mockable for testing."""

    @abstractmethod
    def open(self) -> None:
        """Open the USB device and claim its interfaces."""

    @abstractmethod
    def close(self) -> None:
        """Release interfaces and close."""

    @abstractmethod
    def write(self, endpoint: int, data: bytes, timeout: int = TIMEOUT_MS) -> int:
        """Bulk write to endpoint.  Returns bytes transferred."""

    @abstractmethod
    def read(self, endpoint: int, length: int, timeout: int = TIMEOUT_MS) -> bytes:
        """Bulk read from endpoint.  Returns data read."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the device is currently open."""

    @property
    @abstractmethod
    def endpoints(self) -> Endpoints:
        """Endpoints resolved during open()."""

    @property
    def device(self) -> Any:
        """Raw device handle for descriptor queries, if the backend has one."""
        return None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()


# =========================================================================
# Real transport: PyUSB  (libusb backend)
# =========================================================================

class PyUsbTransport(UsbTransport):
    """Real USB transport using pyusb (libusb backend).

    Open sequence:
    1. Find the first device matching VID/PID
    2. Refuse it if this process already owns it
    3. Detach kernel drivers from both interfaces, select configuration
    4. Claim control and data interfaces
    5. Resolve endpoints, select the data alternate setting

    Any failure after step 4 releases the claimed interfaces before the
    error propagates.
    A transport garbage-collected while still open releases the device the
    same way, so the process can open it again.

    Requires: ``pip install pyusb`` + ``apt install libusb-1.0-0``
    """

    def __init__(self, vid: int = USB_VENDOR_ID, pid: int = USB_PRODUCT_ID,
                 devices: Optional[Iterable[Any]] = None):
        self._vid = vid
        self._pid = pid
        self._devices = devices
        self._device: Any = None
        self._location: Optional[Tuple[Any, Any]] = None
        self._endpoints: Optional[Endpoints] = None
        self._claimed: List[int] = []
        self._finalizer: Optional[weakref.finalize] = None
        self._is_open = False

    def open(self) -> None:
        if self._is_open:
            return

        dev = find_device(self._devices, self._vid, self._pid)
        location = (getattr(dev, "bus", None), getattr(dev, "address", None))
        if location in _owned_devices:
            raise DeviceBusy(self._vid, self._pid, location)

        token = object()
        _owned_devices[location] = token
        self._device = dev
        self._location = location
        self._claimed = []
        # Releases the device even if this transport is dropped without close()
        self._finalizer = weakref.finalize(
            self, _release_device, dev, self._claimed, location, token)
        try:
            self._claim_interfaces()
            cfg = dev[CONFIGURATION_INDEX]
            self._endpoints = resolve_endpoints(cfg, CONFIGURATION_INDEX)
            dev.set_interface_altsetting(
                interface=DATA_INTERFACE,
                alternate_setting=self._endpoints.data_write.alternate_setting,
            )
        except BaseException:
            self._release()
            raise

        self._is_open = True
        log.info(
            "Opened LaserCube %04x:%04x (control IN=0x%02x OUT=0x%02x, data OUT=0x%02x)",
            self._vid, self._pid,
            self._endpoints.control_read.address,
            self._endpoints.control_write.address,
            self._endpoints.data_write.address,
        )

    def _claim_interfaces(self) -> None:
        dev = self._device
        for number in (CONTROL_INTERFACE, DATA_INTERFACE):
            try:
                if dev.is_kernel_driver_active(number):
                    dev.detach_kernel_driver(number)
                    log.debug("Detached kernel driver from interface %d", number)
            except (NotImplementedError, usb.core.USBError) as e:
                log.debug("Kernel driver detach on interface %d: %s", number, e)

        cfg = dev[CONFIGURATION_INDEX]
        try:
            active = dev.get_active_configuration()
        except usb.core.USBError:
            active = None
        if active is None or active.bConfigurationValue != cfg.bConfigurationValue:
            dev.set_configuration(cfg.bConfigurationValue)

        for number in (CONTROL_INTERFACE, DATA_INTERFACE):
            usb.util.claim_interface(dev, number)
            self._claimed.append(number)

    def _release(self) -> None:
        if self._finalizer is not None:
            self._finalizer()
        self._finalizer = None
        self._claimed = []
        self._device = None
        self._location = None
        self._endpoints = None

    def close(self) -> None:
        was_open = self._is_open
        self._is_open = False
        self._release()
        if was_open:
            log.info("LaserCube closed")

    def write(self, endpoint: int, data: bytes, timeout: int = TIMEOUT_MS) -> int:
        if not self._is_open or self._device is None:
            raise TransportClosed()
        return self._device.write(endpoint, data, timeout=timeout)

    def read(self, endpoint: int, length: int, timeout: int = TIMEOUT_MS) -> bytes:
        if not self._is_open or self._device is None:
            raise TransportClosed()
        return bytes(self._device.read(endpoint, length, timeout=timeout))

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def endpoints(self) -> Endpoints:
        if self._endpoints is None:
            raise TransportClosed()
        return self._endpoints

    @property
    def device(self) -> Any:
        return self._device
