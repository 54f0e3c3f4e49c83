from __future__ import annotations

import base64
import io
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
from PIL import Image


@dataclass(slots=True, frozen=True)
class BoundingBox:
    """
    Geographic rectangle in WGS84 degrees.

    Invariant: north > south and east > west (no antimeridian handling).
    """
    north: float
    south: float
    east: float
    west: float

    def __post_init__(self) -> None:
        if not self.north > self.south:
            raise ValueError(f"north ({self.north}) must be > south ({self.south})")
        if not self.east > self.west:
            raise ValueError(f"east ({self.east}) must be > west ({self.west})")

    def to_dict(self) -> Dict[str, float]:
        return {"north": self.north, "south": self.south, "east": self.east, "west": self.west}


@dataclass(slots=True)
class Raster:
    """
    Decoded multi-band raster with its WGS84 bounds.

    Attributes:
        width, height: dimensions in pixels.
        bands: float64 array of shape (band_count, height, width). A 2D array of
            flat bands (band_count, width*height) is accepted and reshaped.
        bounds: BoundingBox in WGS84.
        nodata: nodata value declared by the container, if any.

    Pixel (x, y) of band b is bands[b].ravel()[y * width + x].
    """
    width: int
    height: int
    bands: np.ndarray
    bounds: BoundingBox
    nodata: Optional[float] = None

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("width/height must be > 0")
        bands = np.asarray(self.bands, dtype=np.float64)
        if bands.ndim == 2:
            if bands.shape[1] != self.width * self.height:
                raise ValueError(
                    f"each band must hold width*height={self.width * self.height} samples, got {bands.shape[1]}"
                )
            bands = bands.reshape(bands.shape[0], self.height, self.width)
        if bands.ndim != 3 or bands.shape[0] < 1:
            raise ValueError("bands must be shaped (band_count, height, width)")
        if bands.shape[1] != self.height or bands.shape[2] != self.width:
            raise ValueError("width/height do not match band shape")
        self.bands = bands

    @property
    def band_count(self) -> int:
        return int(self.bands.shape[0])

    def band(self, index: int) -> np.ndarray:
        """Flat (row-major) view of one band."""
        return self.bands[index].reshape(-1)

    def pixel(self, band: int, x: int, y: int) -> float:
        return float(self.bands[band, y, x])

    def to_meta(self) -> Dict[str, Any]:
        """Metadata without pixel data (safe to log)."""
        return {
            "width": self.width,
            "height": self.height,
            "bands": self.band_count,
            "bounds": self.bounds.to_dict(),
            "nodata": self.nodata,
        }


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    h = hex_color.strip().lstrip("#")
    if len(h) != 6:
        raise ValueError(f"expected 6-digit hex color, got {hex_color!r}")
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


@dataclass(slots=True, frozen=True)
class Palette:
    """Ordered color stops (hex, no '#') plus legend labels for the extremes."""
    colors: Tuple[str, ...]
    min_label: str
    max_label: str

    def __post_init__(self) -> None:
        if len(self.colors) < 2:
            raise ValueError("palette needs at least 2 color stops")
        for c in self.colors:
            hex_to_rgb(c)

    @classmethod
    def of(cls, colors: Sequence[str], min_label: str, max_label: str) -> "Palette":
        return cls(tuple(colors), min_label, max_label)

    def rgb_stops(self) -> np.ndarray:
        """(n_stops, 3) float64 array of stop colors."""
        return np.array([hex_to_rgb(c) for c in self.colors], dtype=np.float64)


@dataclass(slots=True)
class Frame:
    """
    One rendered RGBA pixel buffer.

    Attributes:
        index: position in the layer's frame sequence (month 0..11 for monthly flux).
        rgba: uint8 array of shape (height, width, 4).
    """
    index: int
    rgba: np.ndarray

    def __post_init__(self) -> None:
        if not isinstance(self.rgba, np.ndarray):
            raise TypeError("rgba must be a numpy ndarray")
        if self.rgba.ndim != 3 or self.rgba.shape[2] != 4:
            raise ValueError("rgba must be shaped (height, width, 4)")
        if self.rgba.dtype != np.uint8:
            self.rgba = self.rgba.astype(np.uint8, copy=False)

    @property
    def width(self) -> int:
        return int(self.rgba.shape[1])

    @property
    def height(self) -> int:
        return int(self.rgba.shape[0])

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        Image.fromarray(self.rgba).save(buf, format="PNG")
        return buf.getvalue()

    def to_data_url(self) -> str:
        """PNG data URL, ready for a map ground overlay."""
        return "data:image/png;base64," + base64.b64encode(self.to_png()).decode("ascii")
