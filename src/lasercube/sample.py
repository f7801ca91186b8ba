"""
Sample codec for the LaserCube data endpoint.

A sample is one point of the vector path: a colour and a position.  On the
wire it is an 8-byte little-endian record::

    [rg:u16][b:u16][x:u16][y:u16]

    rg = r | (g << 8)      red in the low byte, green in the high byte
    b  = b                 blue, upper byte unused (zero)
    x, y                   quantized coordinates in [0, 4095]

Normalized coordinates in [-1.0, 1.0] map onto the 12-bit DAC range with::

    q = round(4095 * (f + 1) / 2)

after clamping ``f`` into [-1.0, 1.0].  A sample with both colour fields at
zero is *blank*: the galvos move there without the laser firing.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Iterable, Iterator, List, Sequence

from .constants import SAMPLE_SIZE, SAMPLE_STRUCT, SAMPLES_PER_BATCH, XY_MAX, XY_MIN


def quantize(f: float) -> int:
    """Map a normalized coordinate onto the device's 12-bit range.

    Values outside [-1.0, 1.0] are clamped first, so the result is always in
    [XY_MIN, XY_MAX].  Monotonic: f1 < f2 implies quantize(f1) <= quantize(f2).
    """
    if math.isnan(f):
        raise ValueError("coordinate is NaN")
    f = max(-1.0, min(1.0, float(f)))
    return int(round(XY_MAX * (f + 1.0) / 2.0))


def flip(q: int) -> int:
    """Mirror a quantized coordinate across the centre of the range."""
    return XY_MAX - q


def _check_channel(name: str, value: int) -> int:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must be in 0..255, got {value}")
    return value


def _check_xy(name: str, value: int) -> int:
    if not XY_MIN <= value <= XY_MAX:
        raise ValueError(f"{name} must be in {XY_MIN}..{XY_MAX}, got {value}")
    return value


@dataclass(frozen=True)
class Sample:
    """One 8-byte LaserCube sample, stored in wire units.

    Every construction path (including the plain constructor and the
    decoders) is range-checked: rg is a u16, b a u8 in its u16 field, and
    x, y lie in [XY_MIN, XY_MAX].
    """
    rg: int = 0
    b: int = 0
    x: int = 0
    y: int = 0

    def __post_init__(self):
        if not 0 <= self.rg <= 0xFFFF:
            raise ValueError(f"rg must be in 0..65535, got {self.rg}")
        _check_channel("b", self.b)
        _check_xy("x", self.x)
        _check_xy("y", self.y)

    # -- Construction ------------------------------------------------------

    @classmethod
    def new(cls, r: int, g: int, b: int, x: float, y: float) -> Sample:
        """Encode a colour and a normalized position (-1.0 .. 1.0)."""
        return cls.from_xy(r, g, b, quantize(x), quantize(y))

    @classmethod
    def from_xy(cls, r: int, g: int, b: int, x: int, y: int) -> Sample:
        """Encode a colour and an already-quantized position (0 .. 4095)."""
        _check_channel("r", r)
        _check_channel("g", g)
        return cls(rg=r | (g << 8), b=b, x=x, y=y)

    @classmethod
    def from_bytes(cls, data: bytes) -> Sample:
        """Decode one wire record (exactly SAMPLE_SIZE bytes).

        Raises ValueError for records whose blue or coordinate fields are
        out of range.
        """
        if len(data) != SAMPLE_SIZE:
            raise ValueError(f"sample record must be {SAMPLE_SIZE} bytes, got {len(data)}")
        rg, b, x, y = SAMPLE_STRUCT.unpack(data)
        return cls(rg=rg, b=b, x=x, y=y)

    # -- Accessors ---------------------------------------------------------

    @property
    def r(self) -> int:
        return self.rg & 0xFF

    @property
    def g(self) -> int:
        return (self.rg >> 8) & 0xFF

    @property
    def color(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)

    @property
    def is_blank(self) -> bool:
        return self.rg == 0 and self.b == 0

    # -- Transforms --------------------------------------------------------

    def blanked(self) -> Sample:
        """Same position, laser off."""
        return replace(self, rg=0, b=0)

    def flipped(self, x: bool = False, y: bool = False) -> Sample:
        """Mirror the selected axes."""
        return replace(
            self,
            x=flip(self.x) if x else self.x,
            y=flip(self.y) if y else self.y,
        )

    def to_bytes(self) -> bytes:
        return SAMPLE_STRUCT.pack(self.rg, self.b, self.x, self.y)


def encode(r: int, g: int, b: int, x: float, y: float) -> Sample:
    """Shorthand for :meth:`Sample.new`."""
    return Sample.new(r, g, b, x, y)


def pack_samples(samples: Iterable[Sample]) -> bytes:
    """Serialize samples back to back in wire order."""
    return b"".join(s.to_bytes() for s in samples)


def unpack_samples(data: bytes) -> List[Sample]:
    """Inverse of :func:`pack_samples`.  Out-of-range records raise ValueError."""
    if len(data) % SAMPLE_SIZE:
        raise ValueError(
            f"buffer length {len(data)} is not a multiple of {SAMPLE_SIZE}"
        )
    return [Sample(*fields) for fields in SAMPLE_STRUCT.iter_unpack(data)]


def batches(samples: Sequence[Sample],
            size: int = SAMPLES_PER_BATCH) -> Iterator[Sequence[Sample]]:
    """Split *samples* into consecutive batches of at most *size* samples.

    Order is preserved; only the last batch may be short.
    """
    if size < 1:
        raise ValueError(f"batch size must be positive, got {size}")
    for start in range(0, len(samples), size):
        yield samples[start:start + size]
