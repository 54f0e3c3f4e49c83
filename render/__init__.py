"""
Frame rendering

Turns raster bands into RGBA frames:
- render_palette: normalize a band to [0,1] and interpolate a color ramp
- render_rgb: true-color compositing straight from three bands
- both resample the data onto the mask grid and, when a mask is given,
  force non-roof pixels fully transparent
- render_frames: evaluate independent frame jobs, optionally on a thread pool
"""
from .palette import (
    interpolate_palette,
    normalize,
    render_frames,
    render_palette,
    render_rgb,
    resample_nearest,
)

__all__ = [
    "interpolate_palette",
    "normalize",
    "render_frames",
    "render_palette",
    "render_rgb",
    "resample_nearest",
]
