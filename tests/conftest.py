import os
import sys

import numpy as np
import pytest
from rasterio.io import MemoryFile
from rasterio.transform import from_bounds

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(project_root)

from common.types import BoundingBox, Raster

# ~10 m square in UTM zone 10N, near Mountain View
UTM_CRS = "EPSG:32610"
UTM_BOX = (580000.0, 4140000.0, 580010.0, 4140010.0)
BBOX = BoundingBox(north=37.41, south=37.40, east=-122.08, west=-122.09)


def write_geotiff(bands, *, crs=UTM_CRS, native_box=UTM_BOX, dtype="float32", nodata=None) -> bytes:
    """Encode (count, height, width) data as GeoTIFF bytes."""
    bands = np.asarray(bands)
    if bands.ndim == 2:
        bands = bands[None, ...]
    count, height, width = bands.shape
    transform = from_bounds(*native_box, width, height)
    with MemoryFile() as memfile:
        with memfile.open(
            driver="GTiff",
            width=width,
            height=height,
            count=count,
            dtype=dtype,
            crs=crs,
            transform=transform,
            nodata=nodata,
        ) as ds:
            ds.write(bands.astype(dtype))
        return bytes(memfile.getbuffer())


@pytest.fixture
def geotiff():
    return write_geotiff


@pytest.fixture
def bbox():
    return BBOX


@pytest.fixture
def make_raster():
    """Factory: make_raster(values, width=..., height=..., bands=1, bounds=BBOX)."""

    def _make(values=None, *, width=5, height=5, bands=1, bounds=BBOX, fill=1.0, nodata=None):
        if values is None:
            data = np.full((bands, height, width), fill, dtype=np.float64)
        else:
            data = np.asarray(values, dtype=np.float64)
            if data.ndim == 1:
                data = data.reshape(1, height, width)
            elif data.ndim == 2 and data.shape != (height, width):
                data = data.reshape(data.shape[0], height, width)
            elif data.ndim == 2:
                data = data[None, ...]
        return Raster(width=width, height=height, bands=data, bounds=bounds, nodata=nodata)

    return _make
