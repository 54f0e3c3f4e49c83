from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from common.config import DEFAULTS


BINARY = ("212121", "B3E5FC")
RAINBOW = ("3949AB", "81D4FA", "66BB6A", "FFE082", "E53935")
IRON = ("00000A", "91009C", "E64616", "FEB400", "FFFFF6")
SUNLIGHT = ("212121", "FFCA28")

Range = Tuple[float, float]


def _as_range(value: Sequence[float], name: str) -> Range:
    lo, hi = float(value[0]), float(value[1])
    if not hi > lo:
        raise ValueError(f"normalization.{name}: max must be > min, got [{lo}, {hi}]")
    return (lo, hi)


@dataclass(slots=True, frozen=True)
class NormalizationRanges:
    """Fixed [min, max] ranges for the flux and shade layers."""
    annual_flux: Range = (0.0, 1800.0)
    monthly_flux: Range = (0.0, 200.0)
    hourly_shade: Range = (0.0, 1.0)

    @classmethod
    def from_config(cls, P: Dict) -> "NormalizationRanges":
        n = {**DEFAULTS["normalization"], **P.get("normalization", {})}
        return cls(
            annual_flux=_as_range(n["annual_flux"], "annual_flux"),
            monthly_flux=_as_range(n["monthly_flux"], "monthly_flux"),
            hourly_shade=_as_range(n["hourly_shade"], "hourly_shade"),
        )
