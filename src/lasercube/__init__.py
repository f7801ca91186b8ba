"""
lasercube - host-side driver for the LaserCube / Laserdock USB laser DAC

Finds the device over USB, configures it through its command protocol and
streams vector samples to it in transport-sized batches.

Features:
- Device discovery and endpoint resolution via pyusb
- Control commands: output enable/disable, DAC rate (clamped), ring buffer
  clear, firmware version, diagnostics
- Sample encoding: 8-bit RGB + normalized XY -> 8-byte wire record
- Batched streaming and looping frame animations
- Pillow previews of frames and animations

Usage:
    from lasercube import Animation, Frame, LaserCube, Sample

    frames = [Frame([Sample.new(255, 0, 0, -0.5, y), Sample.new(255, 0, 0, 0.5, y)])
              for y in (-0.5, 0.0, 0.5)]
    anim = Animation(frames, delay_ms=20)
    with LaserCube.open_first(dac_rate=20000) as cube:
        anim.play(cube)
"""

from lasercube.__version__ import __version__
from lasercube.animation import Animation, Frame
from lasercube.constants import (
    BYTES_PER_BATCH,
    SAMPLE_SIZE,
    SAMPLES_PER_BATCH,
    USB_PRODUCT_ID,
    USB_VENDOR_ID,
    XY_MAX,
    XY_MIN,
)
from lasercube.control import Command, ControlChannel
from lasercube.device import LaserCube
from lasercube.diagnostics import DiagnosticsReport, collect_diagnostics
from lasercube.errors import (
    BusError,
    DeviceBusy,
    DeviceNotFound,
    EndpointNotFound,
    IncompleteResponse,
    IncompleteWrite,
    LaserCubeError,
    OutputEnableFailed,
    TransportClosed,
    UnexpectedContent,
)
from lasercube.sample import Sample, batches, encode, flip, pack_samples, quantize, unpack_samples
from lasercube.streaming import StreamingChannel
from lasercube.usb_transport import Endpoint, Endpoints, PyUsbTransport, UsbTransport

__all__ = [
    # Version
    "__version__",
    # Session
    "LaserCube",
    "ControlChannel",
    "StreamingChannel",
    "Command",
    "DiagnosticsReport",
    "collect_diagnostics",
    # Transport
    "UsbTransport",
    "PyUsbTransport",
    "Endpoint",
    "Endpoints",
    # Samples
    "Sample",
    "encode",
    "quantize",
    "flip",
    "pack_samples",
    "unpack_samples",
    "batches",
    # Animation
    "Frame",
    "Animation",
    # Constants
    "USB_VENDOR_ID",
    "USB_PRODUCT_ID",
    "BYTES_PER_BATCH",
    "SAMPLE_SIZE",
    "SAMPLES_PER_BATCH",
    "XY_MIN",
    "XY_MAX",
    # Errors
    "LaserCubeError",
    "DeviceNotFound",
    "DeviceBusy",
    "EndpointNotFound",
    "OutputEnableFailed",
    "TransportClosed",
    "BusError",
    "IncompleteWrite",
    "IncompleteResponse",
    "UnexpectedContent",
]
