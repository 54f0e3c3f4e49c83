"""
Layer construction

- kinds: LayerKind enum and the typed inputs each kind takes
- palettes: color ramps and fixed normalization ranges
- factory: build(kind, inputs) -> Layer, whose render() emits RGBA frames

Usage:
    from layers import LayerKind, DataInputs, build
    layer = build(LayerKind.ANNUAL_FLUX, DataInputs(mask, flux))
    frames = layer.render(show_roof_only=True)
"""
from .factory import Layer, build
from .kinds import DataInputs, HourlyShadeInputs, LayerKind, MaskInputs, inputs_from_rasters
from .palettes import NormalizationRanges

__all__ = [
    "DataInputs",
    "HourlyShadeInputs",
    "Layer",
    "LayerKind",
    "MaskInputs",
    "NormalizationRanges",
    "build",
    "inputs_from_rasters",
]
