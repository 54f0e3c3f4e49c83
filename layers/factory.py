from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from common.errors import DomainConfigError
from common.logging_setup import get_logger
from common.types import BoundingBox, Frame, Palette, Raster
from layers import palettes
from layers.kinds import LayerInputs, LayerKind, expected_inputs
from layers.palettes import NormalizationRanges
from render.palette import render_frames, render_palette, render_rgb


log = get_logger(__name__)

# (show_roof_only, month, day, hour) -> zero-argument frame jobs, in frame order
JobPlanner = Callable[[bool, Optional[int], Optional[int], Optional[int]], List[Callable[[], Frame]]]


@dataclass(frozen=True)
class Layer:
    """
    A built data layer, ready to render.

    Attributes:
        kind: which data layer this is.
        bounds: WGS84 bounds, copied from the mask raster.
        palette: color ramp + legend labels (None for true-color RGB).
        workers: thread-pool size for multi-frame rendering.
    """
    kind: LayerKind
    bounds: BoundingBox
    palette: Optional[Palette]
    _plan: JobPlanner = field(repr=False, compare=False)
    workers: int = 1

    def iter_frames(
        self,
        show_roof_only: bool,
        month: Optional[int] = None,
        day: Optional[int] = None,
        hour: Optional[int] = None,
    ) -> Iterator[Frame]:
        """Render frames one at a time, in order."""
        for job in self._plan(show_roof_only, month, day, hour):
            yield job()

    def render(
        self,
        show_roof_only: bool,
        month: Optional[int] = None,
        day: Optional[int] = None,
        hour: Optional[int] = None,
    ) -> List[Frame]:
        """
        Render the layer. Returns 12 frames (month 0..11) for MONTHLY_FLUX and
        a single frame for every other kind. Nothing is cached between calls.
        """
        return render_frames(self._plan(show_roof_only, month, day, hour), workers=self.workers)


def _sorted_extremes(data: Raster) -> Tuple[float, float]:
    """
    First and last of the sorted elevation samples, ignoring NaN and the
    declared nodata value.
    """
    values = data.band(0)
    keep = np.isfinite(values)
    if data.nodata is not None:
        keep &= values != data.nodata
    ordered = np.sort(values[keep])
    if ordered.size == 0:
        raise DomainConfigError("elevation raster has no valid samples", kind=LayerKind.DSM.value)
    return float(ordered[0]), float(ordered[-1])


def hourly_shade_index(hour: Optional[int]) -> int:
    # Current behavior: the hour picks a raster from the per-month sequence
    # (defaulting to 1), rather than a bit of a per-month raster.
    return hour if hour is not None else 1


def _check_inputs(kind: LayerKind, inputs: LayerInputs) -> None:
    want = expected_inputs(kind)
    if not isinstance(inputs, want):
        raise DomainConfigError(
            f"{kind.value} expects {want.__name__}, got {type(inputs).__name__}", kind=kind.value
        )


def build(
    kind: Union[str, LayerKind],
    inputs: LayerInputs,
    *,
    ranges: Optional[NormalizationRanges] = None,
    rgb_range: Sequence[float] = (0.0, 255.0),
    workers: int = 1,
) -> Layer:
    """
    Build a Layer for `kind` from its typed inputs.

    Raises DomainConfigError for unknown kinds, inputs of the wrong variant,
    or data rasters that cannot back the kind (e.g. monthly flux with < 12 bands).
    """
    kind = LayerKind.parse(kind)
    _check_inputs(kind, inputs)
    ranges = ranges or NormalizationRanges()
    mask = inputs.mask

    def roof(show_roof_only: bool) -> Optional[Raster]:
        return mask if show_roof_only else None

    if kind is LayerKind.MASK:
        palette = Palette.of(palettes.BINARY, "No roof", "Roof")

        def plan(show_roof_only, month, day, hour):
            return [lambda: render_palette(mask, palette, vmin=0.0, vmax=1.0, mask=roof(show_roof_only))]

    elif kind is LayerKind.DSM:
        data = inputs.data
        lo, hi = _sorted_extremes(data)
        palette = Palette.of(palettes.RAINBOW, f"{lo:.1f} m", f"{hi:.1f} m")

        def plan(show_roof_only, month, day, hour):
            return [lambda: render_palette(data, palette, vmin=lo, vmax=hi, mask=roof(show_roof_only))]

    elif kind is LayerKind.RGB:
        data = inputs.data
        if data.band_count < 3:
            raise DomainConfigError(f"rgb raster needs 3 bands, got {data.band_count}", kind=kind.value)
        palette = None

        def plan(show_roof_only, month, day, hour):
            return [lambda: render_rgb(data, mask=roof(show_roof_only), value_range=rgb_range)]

    elif kind is LayerKind.ANNUAL_FLUX:
        data = inputs.data
        lo, hi = ranges.annual_flux
        palette = Palette.of(palettes.IRON, "Shady", "Sunny")

        def plan(show_roof_only, month, day, hour):
            return [lambda: render_palette(data, palette, vmin=lo, vmax=hi, mask=roof(show_roof_only))]

    elif kind is LayerKind.MONTHLY_FLUX:
        data = inputs.data
        if data.band_count < 12:
            raise DomainConfigError(f"monthly flux raster needs 12 bands, got {data.band_count}", kind=kind.value)
        lo, hi = ranges.monthly_flux
        palette = Palette.of(palettes.IRON, "Shady", "Sunny")

        def plan(show_roof_only, month, day, hour):
            m = roof(show_roof_only)
            return [
                (lambda i=i: render_palette(data, palette, vmin=lo, vmax=hi, band=i, mask=m, frame_index=i))
                for i in range(12)
            ]

    elif kind is LayerKind.HOURLY_SHADE:
        months = inputs.months
        lo, hi = ranges.hourly_shade
        palette = Palette.of(palettes.SUNLIGHT, "Shade", "Sun")

        def plan(show_roof_only, month, day, hour):
            index = hourly_shade_index(hour)
            if not 0 <= index < len(months):
                raise ValueError(f"hour index {index} out of range for {len(months)} shade rasters")
            shade = months[index]
            return [lambda: render_palette(shade, palette, vmin=lo, vmax=hi, mask=roof(show_roof_only))]

    else:  # pragma: no cover - LayerKind.parse guarantees a member
        raise DomainConfigError(f"unhandled layer kind {kind!r}", kind=str(kind))

    log.debug(
        "Built layer",
        extra={"extra": {"kind": kind.value, "bounds": mask.bounds.to_dict(), "palette": palette is not None}},
    )
    return Layer(kind=kind, bounds=mask.bounds, palette=palette, _plan=plan, workers=workers)
