"""
Frame sequencing for continuous LaserCube playback.

An ``Animation`` is a loop of frames streamed back to back with a fixed
delay between them.  With two or more frames every frame gets a tail that
parks the beam and then travels, blanked, to the start of the next frame::

    frame i:  s0 s1 ... sN  sN sN  b b
                            |___|  |_|
                 repeat own end    next frame's first sample, blanked

so the jump between frames never draws a visible stroke.  The tail is
computed from the frames as given, never from already rewritten ones.
"""

from __future__ import annotations

import itertools
import logging
import time
from typing import Callable, Iterable, Iterator, Optional, Protocol, Sequence, Tuple

from .sample import Sample

log = logging.getLogger(__name__)

# Copies of the frame's own end and of the blanked next start
FIXUP_REPEATS = 2


class SampleSink(Protocol):
    """Anything that can stream an ordered sample sequence (LaserCube,
    StreamingChannel)."""

    def stream(self, samples: Sequence[Sample]) -> int: ...


class Frame:
    """An ordered, non-empty sequence of samples."""

    def __init__(self, samples: Iterable[Sample]):
        self.samples: Tuple[Sample, ...] = tuple(samples)
        if not self.samples:
            raise ValueError("a frame needs at least one sample")

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self.samples)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Frame):
            return NotImplemented
        return self.samples == other.samples

    def __hash__(self) -> int:
        return hash(self.samples)

    def __repr__(self) -> str:
        return f"Frame({len(self.samples)} samples)"

    @property
    def first(self) -> Sample:
        return self.samples[0]

    @property
    def last(self) -> Sample:
        return self.samples[-1]

    def draw(self, sink: SampleSink) -> None:
        """Stream this frame, chunked into transport-sized batches."""
        sink.stream(self.samples)


def _close_loop(frames: Sequence[Frame]) -> list[Frame]:
    n = len(frames)
    fixed = []
    for i, frame in enumerate(frames):
        next_start = frames[(i + 1) % n].first.blanked()
        tail = (frame.last,) * FIXUP_REPEATS + (next_start,) * FIXUP_REPEATS
        fixed.append(Frame(frame.samples + tail))
    return fixed


class Animation:
    """A looping sequence of frames with a fixed inter-frame delay."""

    def __init__(self, frames: Iterable[Frame], delay_ms: int):
        frames = list(frames)
        if not frames:
            raise ValueError("an animation needs at least one frame")
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {delay_ms}")

        if len(frames) > 1:
            frames = _close_loop(frames)
        self._frames: Tuple[Frame, ...] = tuple(frames)
        self.delay_ms = delay_ms
        log.debug("Animation built: %d frames, %d ms delay", len(self._frames), delay_ms)

    @classmethod
    def build(cls, frames: Iterable[Frame], delay_ms: int) -> Animation:
        return cls(frames, delay_ms)

    @property
    def frames(self) -> Tuple[Frame, ...]:
        return self._frames

    def __len__(self) -> int:
        return len(self._frames)

    def playback(self, sink: SampleSink,
                 sleep: Callable[[float], None] = time.sleep) -> Iterator[int]:
        """Endless playback, one step per frame.

        Each step streams a frame in full, sleeps ``delay_ms`` and then yields
        the index of the frame just played.  Stop by no longer iterating.
        """
        delay_s = self.delay_ms / 1000.0
        for index, frame in itertools.cycle(enumerate(self._frames)):
            frame.draw(sink)
            sleep(delay_s)
            yield index

    def play(self, sink: SampleSink, cycles: Optional[int] = None,
             sleep: Callable[[float], None] = time.sleep) -> None:
        """Play *cycles* full loops, or forever when *cycles* is None."""
        steps = self.playback(sink, sleep)
        if cycles is not None:
            steps = itertools.islice(steps, cycles * len(self._frames))
        for _ in steps:
            pass
