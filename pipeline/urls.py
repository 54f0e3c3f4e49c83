from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from common.errors import DomainConfigError
from layers.kinds import LayerKind


def _format_date(date: Any) -> Optional[str]:
    """{year, month, day} -> "YYYY-MM-DD"; None unless all three parts are present."""
    if isinstance(date, str):
        return date
    if not isinstance(date, dict):
        return None
    parts = [date.get(k) for k in ("year", "month", "day")]
    if any(p is None for p in parts):
        return None
    year, month, day = (int(p) for p in parts)
    return f"{year:04d}-{month:02d}-{day:02d}"


@dataclass(slots=True, frozen=True)
class DataLayerUrls:
    """
    GeoTIFF URLs from a Solar API `dataLayers:get` response.

    hourly_shade_urls holds one URL per month, in month order.
    """
    mask_url: str
    dsm_url: Optional[str] = None
    rgb_url: Optional[str] = None
    annual_flux_url: Optional[str] = None
    monthly_flux_url: Optional[str] = None
    hourly_shade_urls: Tuple[str, ...] = ()
    imagery_date: Optional[str] = None
    imagery_quality: Optional[str] = None

    @classmethod
    def from_response(cls, resp: Dict[str, Any]) -> "DataLayerUrls":
        mask_url = resp.get("maskUrl")
        if not mask_url:
            raise DomainConfigError("data-layers response has no maskUrl")
        return cls(
            mask_url=mask_url,
            dsm_url=resp.get("dsmUrl"),
            rgb_url=resp.get("rgbUrl"),
            annual_flux_url=resp.get("annualFluxUrl"),
            monthly_flux_url=resp.get("monthlyFluxUrl"),
            hourly_shade_urls=tuple(resp.get("hourlyShadeUrls") or ()),
            imagery_date=_format_date(resp.get("imageryDate")),
            imagery_quality=resp.get("imageryQuality"),
        )

    def urls_for(self, kind: Union[str, LayerKind]) -> Tuple[str, List[str]]:
        """
        (mask_url, data_urls) needed to build `kind`. The mask comes first in
        every request because its bounds georeference the whole layer.
        """
        kind = LayerKind.parse(kind)
        if kind is LayerKind.MASK:
            return self.mask_url, []
        if kind is LayerKind.HOURLY_SHADE:
            if not self.hourly_shade_urls:
                raise DomainConfigError("no hourlyShadeUrls in data-layers response", kind=kind.value)
            return self.mask_url, list(self.hourly_shade_urls)
        url = {
            LayerKind.DSM: self.dsm_url,
            LayerKind.RGB: self.rgb_url,
            LayerKind.ANNUAL_FLUX: self.annual_flux_url,
            LayerKind.MONTHLY_FLUX: self.monthly_flux_url,
        }[kind]
        if not url:
            raise DomainConfigError(f"no {kind.value}Url in data-layers response", kind=kind.value)
        return self.mask_url, [url]
