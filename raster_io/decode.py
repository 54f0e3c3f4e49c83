from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np
from rasterio.errors import NotGeoreferencedWarning, RasterioError
from rasterio.io import MemoryFile

from common.errors import DecodeError
from common.geo import CrsKeys, NativeBox, reproject_bounds
from common.types import Raster


@dataclass(slots=True)
class DecodedRaster:
    """GeoTIFF contents before reprojection: bands in native CRS units."""
    width: int
    height: int
    bands: np.ndarray
    native_box: NativeBox
    keys: CrsKeys
    nodata: Optional[float] = None

    def to_raster(self) -> Raster:
        """Reproject the native box to WGS84 and wrap the bands."""
        return Raster(
            width=self.width,
            height=self.height,
            bands=self.bands,
            bounds=reproject_bounds(self.native_box, self.keys),
            nodata=self.nodata,
        )


def decode_geotiff(content: bytes) -> DecodedRaster:
    """
    Decode an in-memory GeoTIFF.

    All bands are converted to float64 regardless of the on-wire sample type.
    Raises DecodeError for unreadable containers and ProjectionError when the
    file carries no coordinate reference system.
    """
    if not content:
        raise DecodeError("empty raster body")
    try:
        with warnings.catch_warnings():
            # a missing CRS is reported as ProjectionError below
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with MemoryFile(content) as memfile:
                with memfile.open() as ds:
                    bands = ds.read().astype(np.float64)
                    b = ds.bounds
                    native_box = (float(b.left), float(b.bottom), float(b.right), float(b.top))
                    crs = ds.crs
                    nodata = None if ds.nodata is None else float(ds.nodata)
                    width, height = int(ds.width), int(ds.height)
    except RasterioError as e:
        raise DecodeError(f"malformed raster container: {e}") from e

    keys = CrsKeys.from_crs(crs)
    return DecodedRaster(
        width=width,
        height=height,
        bands=bands,
        native_box=native_box,
        keys=keys,
        nodata=nodata,
    )
