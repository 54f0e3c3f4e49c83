"""
Raster acquisition

- fetcher: RasterFetcher downloads one GeoTIFF (API key injected for the
  provider host, bounded retries for transient failures)
- decode: GeoTIFF bytes -> bands, native bounds and CRS keys (rasterio)

The fetcher returns a Raster whose bounds are already reprojected to WGS84.

Usage:
    fetcher = RasterFetcher()               # GOOGLE_API_KEY from env
    mask = fetcher.fetch(data_layers.mask_url)
"""
from .decode import DecodedRaster, decode_geotiff
from .fetcher import RasterFetcher

__all__ = ["DecodedRaster", "RasterFetcher", "decode_geotiff"]
