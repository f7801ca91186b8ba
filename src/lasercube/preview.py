"""
Preview rendering - draws frames the way the LaserCube would trace them.

Useful for checking stroke order and blanking without hardware.  Device
coordinates [0, 4095] map onto a square canvas with Y pointing up.  Each
sample is connected to the previous one in the new sample's colour; a
segment that ends on a blank sample is a travel move and is not drawn.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Tuple, Union

from PIL import Image, ImageDraw

from .animation import Animation, Frame
from .constants import XY_MAX
from .sample import Sample

RGB = Tuple[int, int, int]


def _to_canvas(sample: Sample, size: int) -> Tuple[float, float]:
    scale = (size - 1) / XY_MAX
    return (sample.x * scale, (XY_MAX - sample.y) * scale)


def render_frame(frame: Union[Frame, Iterable[Sample]], size: int = 512,
                 background: RGB = (0, 0, 0), width: int = 1) -> Image.Image:
    """Render one frame (or any sample sequence) to an RGB image."""
    img = Image.new('RGB', (size, size), background)
    draw = ImageDraw.Draw(img)

    prev = None
    for sample in frame:
        if prev is not None and not sample.is_blank:
            draw.line([_to_canvas(prev, size), _to_canvas(sample, size)],
                      fill=sample.color, width=width)
        prev = sample
    return img


def render_animation(animation: Animation, size: int = 512,
                     background: RGB = (0, 0, 0)) -> List[Image.Image]:
    """Render every frame of *animation*, loop tails included."""
    return [render_frame(f, size, background) for f in animation.frames]


def save_gif(animation: Animation, path: Union[str, Path], size: int = 256) -> None:
    """Write *animation* as a looping GIF, ``delay_ms`` per frame."""
    images = render_animation(animation, size)
    images[0].save(
        path,
        save_all=True,
        append_images=images[1:],
        duration=animation.delay_ms,
        loop=0,
    )
