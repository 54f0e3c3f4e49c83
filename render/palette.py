from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from common.types import Frame, Palette, Raster


FrameJob = Callable[[], Frame]


def normalize(values: np.ndarray, vmin: float, vmax: float) -> np.ndarray:
    """
    t = clamp((v - vmin) / (vmax - vmin), 0, 1). NaN maps to 0, and so does
    everything when the range is empty.
    """
    v = np.asarray(values, dtype=np.float64)
    span = float(vmax) - float(vmin)
    if span == 0.0 or not np.isfinite(span):
        return np.zeros_like(v)
    t = (v - float(vmin)) / span
    t = np.nan_to_num(t, nan=0.0, posinf=1.0, neginf=0.0)
    return np.clip(t, 0.0, 1.0)


def interpolate_palette(t: np.ndarray, stops: np.ndarray) -> np.ndarray:
    """
    Map normalized values onto evenly spaced color stops.

    Each value is linearly interpolated between the two stops bracketing it;
    t=0 gives the first stop and t=1 the last, exactly.

    Returns float64 array of shape t.shape + (3,).
    """
    stops = np.asarray(stops, dtype=np.float64)
    positions = np.linspace(0.0, 1.0, num=stops.shape[0], dtype=np.float64)
    out = np.empty(t.shape + (3,), dtype=np.float64)
    for c in range(3):
        out[..., c] = np.interp(t, positions, stops[:, c])
    return out


def resample_nearest(band: np.ndarray, height: int, width: int) -> np.ndarray:
    """Nearest-neighbour resample of a 2D band onto a (height, width) grid."""
    src_h, src_w = band.shape
    if (src_h, src_w) == (height, width):
        return band
    rows = np.floor(np.arange(height) * (src_h / height)).astype(np.intp)
    cols = np.floor(np.arange(width) * (src_w / width)).astype(np.intp)
    rows = np.clip(rows, 0, src_h - 1)
    cols = np.clip(cols, 0, src_w - 1)
    return band[rows[:, None], cols[None, :]]


def _output_grid(data: Raster, mask: Optional[Raster]) -> Tuple[int, int]:
    # the mask is the geometric reference whenever it takes part
    ref = mask if mask is not None else data
    return ref.height, ref.width


def _compose(rgb: np.ndarray, mask: Optional[Raster], frame_index: int) -> Frame:
    h, w = rgb.shape[:2]
    rgba = np.empty((h, w, 4), dtype=np.uint8)
    rgba[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    rgba[..., 3] = 255
    if mask is not None:
        roof = np.nan_to_num(mask.bands[0], nan=0.0) != 0
        rgba[~roof] = 0
    return Frame(index=frame_index, rgba=rgba)


def render_palette(
    data: Raster,
    palette: Palette,
    *,
    vmin: float = 0.0,
    vmax: float = 1.0,
    band: int = 0,
    mask: Optional[Raster] = None,
    frame_index: int = 0,
) -> Frame:
    """
    Color-map one band of `data` through `palette` over [vmin, vmax].

    With a mask, output takes the mask's grid and every pixel whose mask value
    is 0 (or NaN) is fully transparent.
    """
    if not 0 <= band < data.band_count:
        raise ValueError(f"band {band} out of range for raster with {data.band_count} bands")
    h, w = _output_grid(data, mask)
    values = resample_nearest(data.bands[band], h, w)
    rgb = interpolate_palette(normalize(values, vmin, vmax), palette.rgb_stops())
    return _compose(rgb, mask, frame_index)


def render_rgb(
    data: Raster,
    *,
    mask: Optional[Raster] = None,
    value_range: Sequence[float] = (0.0, 255.0),
    frame_index: int = 0,
) -> Frame:
    """
    True-color frame from bands 0..2, scaled from value_range to 0..255.
    """
    if data.band_count < 3:
        raise ValueError(f"true-color rendering needs 3 bands, got {data.band_count}")
    lo, hi = float(value_range[0]), float(value_range[1])
    h, w = _output_grid(data, mask)
    rgb = np.stack([resample_nearest(data.bands[i], h, w) for i in range(3)], axis=-1)
    rgb = normalize(rgb, lo, hi) * 255.0
    return _compose(rgb, mask, frame_index)


def render_frames(jobs: Sequence[FrameJob], workers: int = 1) -> List[Frame]:
    """
    Evaluate independent frame jobs in order. numpy releases the GIL for the
    heavy array work, so a small thread pool helps multi-frame layers.
    """
    if workers <= 1 or len(jobs) <= 1:
        return [job() for job in jobs]
    with ThreadPoolExecutor(max_workers=min(workers, len(jobs))) as pool:
        return list(pool.map(lambda job: job(), jobs))
