from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Tuple

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from common.errors import ProjectionError
from common.types import BoundingBox


# Target reference system for every layer's bounds
WGS84 = "EPSG:4326"

# (left, bottom, right, top) in the raster's native CRS units
NativeBox = Tuple[float, float, float, float]


@dataclass(slots=True, frozen=True)
class CrsKeys:
    """
    Coordinate-system description embedded in a raster.

    Attributes:
        definition: WKT (or any PROJ-readable string) of the native CRS.
        x_to_meter, y_to_meter: linear-unit conversion factors declared with the
            CRS (1.0 for metre-based and geographic systems).
    """
    definition: str
    x_to_meter: float = 1.0
    y_to_meter: float = 1.0

    @classmethod
    def from_crs(cls, crs_input: Any) -> "CrsKeys":
        """
        Build keys from anything pyproj understands (WKT, "EPSG:32610",
        a rasterio CRS, ...). Unit factors are read from the projected axes.
        """
        if crs_input is None:
            raise ProjectionError("raster has no coordinate reference system")
        crs = _parse_crs(crs_input)
        xf = yf = 1.0
        if crs.is_projected and len(crs.axis_info) >= 2:
            xf = float(crs.axis_info[0].unit_conversion_factor)
            yf = float(crs.axis_info[1].unit_conversion_factor)
        return cls(definition=crs.to_wkt(), x_to_meter=xf, y_to_meter=yf)

    @property
    def has_unit_conversion(self) -> bool:
        return self.x_to_meter != 1.0 or self.y_to_meter != 1.0


def _parse_crs(crs_input: Any) -> CRS:
    # rasterio CRS objects expose to_wkt(); pyproj accepts the WKT directly
    if hasattr(crs_input, "to_wkt") and not isinstance(crs_input, CRS):
        crs_input = crs_input.to_wkt()
    try:
        return CRS.from_user_input(crs_input)
    except CRSError as e:
        raise ProjectionError(f"unsupported coordinate-system keys: {e}") from e


def projection_definition(keys: CrsKeys) -> CRS:
    """
    Projection used for the forward transform.

    When the keys declare non-metre linear units, the definition is rewritten
    with metre units; callers scale native coordinates by the factors first.
    """
    crs = _parse_crs(keys.definition)
    if not keys.has_unit_conversion:
        return crs
    with warnings.catch_warnings():
        # to_dict() warns that PROJ strings are lossy; only the units change here
        warnings.simplefilter("ignore", UserWarning)
        params = crs.to_dict()
    if not params:
        raise ProjectionError("coordinate-system keys cannot be expressed as a PROJ definition")
    params.pop("to_meter", None)
    params["units"] = "m"
    try:
        return CRS.from_dict(params)
    except CRSError as e:
        raise ProjectionError(f"cannot rebuild metre-based projection: {e}") from e


@lru_cache(maxsize=32)
def _forward_transformer(keys: CrsKeys) -> Transformer:
    return Transformer.from_crs(projection_definition(keys), WGS84, always_xy=True)


@lru_cache(maxsize=32)
def _inverse_transformer(keys: CrsKeys) -> Transformer:
    return Transformer.from_crs(WGS84, projection_definition(keys), always_xy=True)


def reproject_bounds(native_box: NativeBox, keys: CrsKeys) -> BoundingBox:
    """
    Reproject a native (left, bottom, right, top) box into a WGS84 BoundingBox.

    Only the south-west and north-east corners are transformed:
        north = ne.lat, south = sw.lat, east = ne.lon, west = sw.lon
    """
    left, bottom, right, top = (float(v) for v in native_box)
    try:
        transformer = _forward_transformer(keys)
        lons, lats = transformer.transform(
            [left * keys.x_to_meter, right * keys.x_to_meter],
            [bottom * keys.y_to_meter, top * keys.y_to_meter],
        )
    except ProjError as e:
        raise ProjectionError(f"reprojection failed: {e}") from e

    west, east = float(lons[0]), float(lons[1])
    south, north = float(lats[0]), float(lats[1])
    if not all(math.isfinite(v) for v in (west, east, south, north)):
        raise ProjectionError(f"native box {native_box} falls outside the projection's domain")
    try:
        return BoundingBox(north=north, south=south, east=east, west=west)
    except ValueError as e:
        raise ProjectionError(f"degenerate reprojected bounds: {e}") from e


def inverse_corners(bounds: BoundingBox, keys: CrsKeys) -> NativeBox:
    """
    Inverse of reproject_bounds(): WGS84 corners back to native
    (left, bottom, right, top) in the raster's own units.
    """
    try:
        xs, ys = _inverse_transformer(keys).transform([bounds.west, bounds.east], [bounds.south, bounds.north])
    except ProjError as e:
        raise ProjectionError(f"inverse reprojection failed: {e}") from e
    return (
        float(xs[0]) / keys.x_to_meter,
        float(ys[0]) / keys.y_to_meter,
        float(xs[1]) / keys.x_to_meter,
        float(ys[1]) / keys.y_to_meter,
    )
