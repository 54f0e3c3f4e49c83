"""
Unit tests for data-layer URL parsing and the multi-layer batch
"""

import logging
import threading
import time
from unittest.mock import Mock, patch

import numpy as np
import pytest

from common.errors import DecodeError, DomainConfigError, NetworkError
from common.types import BoundingBox
from layers.kinds import LayerKind
from pipeline.batch import BatchComplete, BatchResult, LayerBatch, LayerFailed, LayerReady
from pipeline.urls import DataLayerUrls


BASE = "https://solar.googleapis.com/v1/geoTiff:get?id="
RESPONSE = {
    "imageryDate": {"year": 2022, "month": 4, "day": 6},
    "imageryQuality": "HIGH",
    "maskUrl": BASE + "mask",
    "dsmUrl": BASE + "dsm",
    "rgbUrl": BASE + "rgb",
    "annualFluxUrl": BASE + "annual",
    "monthlyFluxUrl": BASE + "monthly",
    "hourlyShadeUrls": [BASE + f"shade{m}" for m in range(12)],
}
MASK_BOX = BoundingBox(north=37.4201, south=37.4190, east=-122.0830, west=-122.0845)


class FakeFetcher:
    """Stands in for RasterFetcher: serves rasters by URL, raises configured errors."""

    def __init__(self, rasters, failures=None, slow=()):
        self.rasters = rasters
        self.failures = failures or {}
        self.slow = set(slow)
        self.release = threading.Event()
        self.calls = []
        self.deadlines = []
        self._lock = threading.Lock()

    def fetch(self, url, deadline=None):
        with self._lock:
            self.calls.append(url)
            self.deadlines.append(deadline)
        if url in self.slow:
            self.release.wait(5.0)
        if url in self.failures:
            raise self.failures[url]
        return self.rasters[url]


@pytest.fixture
def rasters(make_raster):
    out = {
        BASE + "mask": make_raster(bounds=MASK_BOX),
        BASE + "dsm": make_raster(np.arange(25, dtype=float)),
        BASE + "rgb": make_raster(bands=3, fill=120.0),
        BASE + "annual": make_raster(fill=1000.0),
        BASE + "monthly": make_raster(bands=12, fill=80.0),
    }
    for m in range(12):
        out[BASE + f"shade{m}"] = make_raster(fill=float(m % 2))
    return out


@pytest.fixture
def urls():
    return DataLayerUrls.from_response(RESPONSE)


class TestDataLayerUrls:
    """Test cases for DataLayerUrls"""

    def test_from_response(self, urls):
        assert urls.mask_url == BASE + "mask"
        assert urls.annual_flux_url == BASE + "annual"
        assert len(urls.hourly_shade_urls) == 12
        assert urls.imagery_date == "2022-04-06"
        assert urls.imagery_quality == "HIGH"

    def test_urls_for(self, urls):
        assert urls.urls_for(LayerKind.MASK) == (BASE + "mask", [])
        assert urls.urls_for("rgb") == (BASE + "mask", [BASE + "rgb"])
        mask, shade = urls.urls_for(LayerKind.HOURLY_SHADE)
        assert mask == BASE + "mask"
        assert shade[5] == BASE + "shade5"

    def test_partial_imagery_date_is_dropped(self):
        """A date missing any of year/month/day is left unset"""
        resp = {**RESPONSE, "imageryDate": {"year": 2022, "month": 4}}
        assert DataLayerUrls.from_response(resp).imagery_date is None
        resp = {k: v for k, v in RESPONSE.items() if k != "imageryDate"}
        assert DataLayerUrls.from_response(resp).imagery_date is None

    def test_missing_mask(self):
        with pytest.raises(DomainConfigError):
            DataLayerUrls.from_response({"rgbUrl": BASE + "rgb"})

    def test_missing_layer_url(self):
        urls = DataLayerUrls(mask_url=BASE + "mask")
        with pytest.raises(DomainConfigError):
            urls.urls_for(LayerKind.DSM)


class TestLayerBatch:
    """Test cases for LayerBatch"""

    def test_partial_success(self, rasters, urls):
        """A failed annual-flux download does not stop the RGB layer"""
        fetcher = FakeFetcher(rasters, failures={BASE + "annual": NetworkError("HTTP 503", status=503, body="boom")})
        result = LayerBatch(fetcher).run(urls, [LayerKind.RGB, LayerKind.ANNUAL_FLUX])

        assert isinstance(result, BatchResult)
        assert not result.ok
        assert set(result.layers) == {LayerKind.RGB}
        assert result.layers[LayerKind.RGB].bounds == MASK_BOX
        err = result.failures[LayerKind.ANNUAL_FLUX]
        assert isinstance(err, NetworkError)
        assert err.kind == "annualFlux"
        assert err.url == BASE + "annual"

    def test_all_kinds(self, rasters, urls):
        result = LayerBatch(FakeFetcher(rasters)).run(urls, [k.value for k in LayerKind])
        assert result.ok
        assert set(result.layers) == set(LayerKind)
        assert len(result.layers[LayerKind.MONTHLY_FLUX].render(True)) == 12

    def test_mask_fetched_once(self, rasters, urls):
        fetcher = FakeFetcher(rasters)
        LayerBatch(fetcher).run(urls, ["mask", "dsm", "rgb", "annualFlux"])
        assert fetcher.calls.count(BASE + "mask") == 1
        assert len(fetcher.calls) == 4

    def test_mask_failure_fails_every_kind(self, rasters, urls):
        fetcher = FakeFetcher(rasters, failures={BASE + "mask": DecodeError("malformed raster container")})
        result = LayerBatch(fetcher).run(urls, ["rgb", "dsm"])
        assert not result.layers
        assert set(result.failures) == {LayerKind.RGB, LayerKind.DSM}
        assert all(isinstance(e, DecodeError) for e in result.failures.values())
        assert all(e.kind == k.value for k, e in result.failures.items())

    def test_shared_mask_failure_keeps_each_kind(self, rasters, urls, caplog):
        """Every kind failed by the shared mask records and logs its own id"""
        fetcher = FakeFetcher(rasters, failures={BASE + "mask": DecodeError("bad")})
        with caplog.at_level(logging.ERROR, logger="pipeline.batch"):
            result = LayerBatch(fetcher).run(urls, ["rgb", "dsm", "annualFlux"])

        for kind, err in result.failures.items():
            assert err.kind == kind.value
            assert err.url == BASE + "mask"
            assert str(err).startswith("bad")
        assert result.failures[LayerKind.RGB] is not result.failures[LayerKind.DSM]
        logged = [r.extra["kind"] for r in caplog.records if r.getMessage() == "Error getting layer"]
        assert sorted(logged) == ["annualFlux", "dsm", "rgb"]

    def test_fetches_get_the_batch_deadline(self, rasters, urls):
        fetcher = FakeFetcher(rasters)
        before = time.monotonic()
        LayerBatch(fetcher, {"batch": {"deadline_s": 30}}).run(urls, ["rgb"])
        assert len(fetcher.deadlines) == 2
        assert all(before + 30 <= d <= time.monotonic() + 30 for d in fetcher.deadlines)

    def test_unknown_kind_is_recorded(self, rasters, urls):
        result = LayerBatch(FakeFetcher(rasters)).run(urls, ["panels", "rgb"])
        assert isinstance(result.failures["panels"], DomainConfigError)
        assert LayerKind.RGB in result.layers

    def test_build_failure_is_recorded(self, rasters, urls, make_raster):
        rasters[BASE + "rgb"] = make_raster(bands=1)
        result = LayerBatch(FakeFetcher(rasters)).run(urls, ["rgb", "annualFlux"])
        assert isinstance(result.failures[LayerKind.RGB], DomainConfigError)
        assert LayerKind.ANNUAL_FLUX in result.layers

    def test_unexpected_exception_is_recorded(self, rasters, urls):
        fetcher = FakeFetcher(rasters, failures={BASE + "dsm": ValueError("Solar API key is required")})
        result = LayerBatch(fetcher).run(urls, ["dsm", "rgb"])
        assert isinstance(result.failures[LayerKind.DSM], ValueError)
        assert LayerKind.RGB in result.layers

    def test_stream_ends_with_one_terminal_event(self, rasters, urls):
        fetcher = FakeFetcher(rasters, failures={BASE + "annual": NetworkError("HTTP 500", status=500)})
        events = list(LayerBatch(fetcher).stream(urls, ["rgb", "annualFlux", "mask"]))

        assert isinstance(events[-1], BatchComplete)
        assert sum(isinstance(e, BatchComplete) for e in events) == 1
        ready = {e.kind for e in events if isinstance(e, LayerReady)}
        failed = {e.kind for e in events if isinstance(e, LayerFailed)}
        assert ready == {LayerKind.RGB, LayerKind.MASK}
        assert failed == {LayerKind.ANNUAL_FLUX}

    def test_deadline(self, rasters, urls):
        """Kinds still downloading at the deadline fail; finished kinds are kept"""
        fetcher = FakeFetcher(rasters, slow=[BASE + "annual"])
        batch = LayerBatch(fetcher, {"batch": {"deadline_s": 0.2}})
        try:
            result = batch.run(urls, ["rgb", "annualFlux"])
        finally:
            fetcher.release.set()

        assert LayerKind.RGB in result.layers
        err = result.failures[LayerKind.ANNUAL_FLUX]
        assert isinstance(err, NetworkError)
        assert "deadline" in str(err)

    def test_config_reaches_layers(self, rasters, urls):
        batch = LayerBatch(FakeFetcher(rasters), {"normalization": {"annual_flux": [0, 1000]}, "render": {"workers": 2}})
        layer = batch.run(urls, ["annualFlux"]).layers[LayerKind.ANNUAL_FLUX]
        assert layer.workers == 2
        assert tuple(layer.render(False)[0].rgba[0, 0, :3]) == (0xFF, 0xFF, 0xF6)

    def test_from_config_closes_its_fetcher(self):
        with patch("pipeline.batch.RasterFetcher") as fetcher_cls:
            with LayerBatch.from_config({"logging": {"level": "INFO"}}, api_key="k") as batch:
                assert batch.fetcher is fetcher_cls.from_config.return_value
            fetcher_cls.from_config.return_value.close.assert_called_once()

    def test_injected_fetcher_is_not_closed(self, rasters):
        fetcher = Mock()
        with LayerBatch(fetcher):
            pass
        fetcher.close.assert_not_called()
