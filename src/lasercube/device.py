"""
LaserCube device session.

A ``LaserCube`` owns one open transport plus its resolved endpoints, and
exposes the control and streaming channels built on them.

Bring-up (strict order)::

    open transport (find, claim, resolve endpoints)
    diagnostics            optional; default when this logger is at DEBUG
    clear ring buffer
    enable output
    verify output enabled  -> OutputEnableFailed otherwise

If any step fails the transport is closed before the error propagates.

Usage:
    from lasercube import LaserCube, Sample

    with LaserCube.open_first(dac_rate=20000) as cube:
        cube.stream([Sample.new(255, 0, 0, x / 10, 0.0) for x in range(-10, 11)])
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Sequence

from .constants import SAMPLES_PER_BATCH, USB_PRODUCT_ID, USB_VENDOR_ID
from .control import ControlChannel
from .diagnostics import DiagnosticsReport, collect_diagnostics
from .errors import OutputEnableFailed
from .sample import Sample
from .streaming import StreamingChannel
from .usb_transport import Endpoints, PyUsbTransport, UsbTransport

log = logging.getLogger(__name__)


class LaserCube:
    """An open LaserCube session.

    Not thread-safe: one thread owns the session; others must hand it work
    through their own queue.
    """

    def __init__(self, transport: UsbTransport):
        """Wrap an already-open *transport*.  Use :meth:`open` to bring one up."""
        self.transport = transport
        self.endpoints: Endpoints = transport.endpoints
        self.control = ControlChannel(transport, self.endpoints)
        self.streaming = StreamingChannel(transport, self.endpoints)
        self.diagnostics_report: Optional[DiagnosticsReport] = None

    # -- Construction ------------------------------------------------------

    @classmethod
    def open(cls, transport: UsbTransport, diagnostics: Optional[bool] = None,
             dac_rate: Optional[int] = None) -> LaserCube:
        """Open *transport* and run the bring-up sequence.

        Args:
            transport: Closed transport; opened here.
            diagnostics: Run the diagnostics query set.  ``None`` means run it
                when this module's logger is enabled for DEBUG.
            dac_rate: If given, set (clamped) after bring-up.

        Raises:
            DeviceNotFound, DeviceBusy, EndpointNotFound: from transport.open().
            OutputEnableFailed: device did not report output enabled.
            BusError: any control exchange failed.
        """
        transport.open()
        try:
            cube = cls(transport)
            cube._bring_up(diagnostics)
            if dac_rate is not None:
                cube.set_dac_rate(dac_rate)
        except BaseException:
            transport.close()
            raise
        return cube

    @classmethod
    def open_first(cls, diagnostics: Optional[bool] = None,
                   dac_rate: Optional[int] = None,
                   devices: Optional[Iterable[Any]] = None) -> LaserCube:
        """Open the first LaserCube found on the system (or in *devices*)."""
        transport = PyUsbTransport(USB_VENDOR_ID, USB_PRODUCT_ID, devices=devices)
        return cls.open(transport, diagnostics=diagnostics, dac_rate=dac_rate)

    def _bring_up(self, diagnostics: Optional[bool]) -> None:
        if diagnostics is None:
            diagnostics = log.isEnabledFor(logging.DEBUG)
        if diagnostics:
            self.diagnostics_report = self.diagnostics()

        self.control.clear_ring_buffer()
        self.control.enable_output()
        if not self.control.output_enabled():
            raise OutputEnableFailed()
        log.info("Output enabled")

    # -- Lifecycle ---------------------------------------------------------

    def close(self) -> None:
        """Release the claimed interfaces.  Safe to call more than once."""
        self.transport.close()

    @property
    def is_open(self) -> bool:
        return self.transport.is_open

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- Control -----------------------------------------------------------

    def diagnostics(self) -> DiagnosticsReport:
        return collect_diagnostics(self.control, self.transport.device)

    def set_dac_rate(self, rate: int) -> int:
        return self.control.set_dac_rate(rate)

    def dac_rate(self) -> int:
        return self.control.dac_rate()

    def min_dac_rate(self) -> int:
        return self.control.min_dac_rate()

    def max_dac_rate(self) -> int:
        return self.control.max_dac_rate()

    def max_dac_value(self) -> int:
        return self.control.max_dac_value()

    def firmware_version(self) -> tuple[int, int]:
        return self.control.firmware_version()

    def clear_ring_buffer(self) -> None:
        self.control.clear_ring_buffer()

    def enable_output(self) -> None:
        self.control.enable_output()

    def disable_output(self) -> None:
        self.control.disable_output()

    def output_enabled(self) -> bool:
        return self.control.output_enabled()

    # -- Streaming ---------------------------------------------------------

    def send(self, data: bytes) -> None:
        """Raw bulk write to the data endpoint."""
        self.streaming.send_bytes(data)

    def send_samples(self, samples: Sequence[Sample]) -> None:
        """One bulk transfer; keep it within SAMPLES_PER_BATCH samples."""
        self.streaming.send(samples)

    def stream(self, samples: Sequence[Sample],
               batch_size: int = SAMPLES_PER_BATCH) -> int:
        """Send any number of samples, chunked in order."""
        return self.streaming.stream(samples, batch_size)
