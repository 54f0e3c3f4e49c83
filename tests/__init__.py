"""
Solar layers test suite

Structure:
- unit/: unit tests for decoding, reprojection, layer building, rendering and batching
- conftest.py: raster and in-memory GeoTIFF factories shared by the unit tests
"""
