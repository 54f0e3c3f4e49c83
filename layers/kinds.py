from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Tuple, Union

from common.errors import DomainConfigError
from common.types import Raster


class LayerKind(str, Enum):
    """Solar API data layers; values are the provider's layer ids."""
    MASK = "mask"
    DSM = "dsm"
    RGB = "rgb"
    ANNUAL_FLUX = "annualFlux"
    MONTHLY_FLUX = "monthlyFlux"
    HOURLY_SHADE = "hourlyShade"

    @classmethod
    def parse(cls, value: Union[str, "LayerKind"]) -> "LayerKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise DomainConfigError(f"unknown layer kind {value!r}", kind=str(value)) from None

    @property
    def frame_count(self) -> int:
        return 12 if self is LayerKind.MONTHLY_FLUX else 1


@dataclass(slots=True, frozen=True)
class MaskInputs:
    """MASK: the roof mask renders itself."""
    mask: Raster


@dataclass(slots=True, frozen=True)
class DataInputs:
    """DSM, RGB, ANNUAL_FLUX, MONTHLY_FLUX: mask plus one co-registered data raster."""
    mask: Raster
    data: Raster


@dataclass(slots=True, frozen=True)
class HourlyShadeInputs:
    """HOURLY_SHADE: mask plus the per-month shade rasters, in month order."""
    mask: Raster
    months: Tuple[Raster, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.months, tuple):
            object.__setattr__(self, "months", tuple(self.months))
        if not self.months:
            raise DomainConfigError("hourly shade needs at least one per-month raster", kind=LayerKind.HOURLY_SHADE.value)


LayerInputs = Union[MaskInputs, DataInputs, HourlyShadeInputs]

_INPUT_TYPES = {
    LayerKind.MASK: MaskInputs,
    LayerKind.DSM: DataInputs,
    LayerKind.RGB: DataInputs,
    LayerKind.ANNUAL_FLUX: DataInputs,
    LayerKind.MONTHLY_FLUX: DataInputs,
    LayerKind.HOURLY_SHADE: HourlyShadeInputs,
}


def expected_inputs(kind: LayerKind) -> type:
    return _INPUT_TYPES[kind]


def inputs_from_rasters(kind: LayerKind, rasters: Sequence[Raster]) -> LayerInputs:
    """
    Pack fetched rasters (mask first, then data rasters in URL order) into the
    inputs variant for `kind`.
    """
    kind = LayerKind.parse(kind)
    if not rasters:
        raise DomainConfigError("no rasters supplied", kind=kind.value)
    mask, rest = rasters[0], list(rasters[1:])
    if kind is LayerKind.MASK:
        return MaskInputs(mask)
    if kind is LayerKind.HOURLY_SHADE:
        return HourlyShadeInputs(mask, tuple(rest))
    if len(rest) != 1:
        raise DomainConfigError(f"expected mask + 1 data raster, got mask + {len(rest)}", kind=kind.value)
    return DataInputs(mask, rest[0])
