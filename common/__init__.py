"""
Shared building blocks for the solar data-layer pipeline.

- types: BoundingBox, Raster, Palette, Frame
- errors: NetworkError, DecodeError, ProjectionError, DomainConfigError
- geo: CRS keys and bounding-box reprojection to WGS84
- config: YAML configuration with built-in defaults
- logging_setup: JSON logging to stdout
"""
