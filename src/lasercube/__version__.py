"""lasercube version information."""

__version__ = "0.3.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history:
# 0.1.0 - Initial release: device open, control commands, sample send
# 0.2.0 - Animation loop with blanked frame-to-frame travel, DAC rate clamping,
#         diagnostics report at DEBUG
# 0.3.0 - Explicit sample serialization (no struct-layout assumptions), command
#         registry with declared response widths, real output-enabled query,
#         scoped interface claiming, single-owner sessions, Pillow preview
