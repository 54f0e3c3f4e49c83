from __future__ import annotations

import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Union

from common.config import load_config
from common.errors import NetworkError, SolarLayerError
from common.logging_setup import get_logger, redact_url, setup_logging
from layers.factory import Layer, build
from layers.kinds import LayerKind, inputs_from_rasters
from layers.palettes import NormalizationRanges
from pipeline.urls import DataLayerUrls
from raster_io.fetcher import RasterFetcher


log = get_logger(__name__)

KindKey = Union[LayerKind, str]


@dataclass
class BatchResult:
    """Per-kind outcome of a multi-layer request; unknown kind ids keep their raw string key."""
    layers: Dict[LayerKind, Layer] = field(default_factory=dict)
    failures: Dict[KindKey, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class LayerReady:
    kind: LayerKind
    layer: Layer


@dataclass(frozen=True)
class LayerFailed:
    kind: KindKey
    error: Exception


@dataclass(frozen=True)
class BatchComplete:
    result: BatchResult


BatchEvent = Union[LayerReady, LayerFailed, BatchComplete]


class LayerBatch:
    """
    Builds several data layers for one request.

    Every GeoTIFF download goes to one thread pool (a URL shared between kinds,
    normally the mask, is fetched once). A kind is built as soon as all of its
    rasters are in; a failure is recorded for that kind only and the others
    carry on. An overall deadline bounds the whole request.

    Usage:
        batch = LayerBatch(RasterFetcher(), load_config())
        result = batch.run(DataLayerUrls.from_response(resp), ["rgb", "annualFlux"])
        result.layers[LayerKind.RGB].render(show_roof_only=False)
    """

    def __init__(self, fetcher: RasterFetcher, P: Optional[Dict] = None, *, owns_fetcher: bool = False):
        P = load_config(None, overrides=P)
        self.fetcher = fetcher
        self._owns_fetcher = owns_fetcher
        self.deadline_s = float(P["batch"]["deadline_s"])
        self.max_workers = max(1, int(P["batch"]["max_workers"]))
        self.ranges = NormalizationRanges.from_config(P)
        self.render_workers = max(1, int(P["render"]["workers"]))
        self.rgb_range = tuple(float(v) for v in P["render"]["rgb_range"])

    @classmethod
    def from_config(cls, P: Dict, *, api_key: Optional[str] = None) -> "LayerBatch":
        """Batch with its own fetcher; apply `logging.level` from the same config."""
        setup_logging(P.get("logging", {}).get("level"))
        return cls(RasterFetcher.from_config(P, api_key=api_key), P, owns_fetcher=True)

    def close(self) -> None:
        """
        Close an owned fetcher's session. Downloads abandoned at the batch
        deadline are not waited for: their request timeout and retries are
        capped by that deadline, so they wind down shortly after it.
        """
        if self._owns_fetcher:
            self.fetcher.close()

    def __enter__(self) -> "LayerBatch":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -------- public API --------

    def run(self, urls: DataLayerUrls, kinds: Iterable[KindKey]) -> BatchResult:
        """Build all requested kinds; never raises for per-kind failures."""
        for event in self.stream(urls, kinds):
            if isinstance(event, BatchComplete):
                return event.result
        raise RuntimeError("layer batch ended without a terminal event")  # pragma: no cover

    def stream(self, urls: DataLayerUrls, kinds: Iterable[KindKey]) -> Iterator[BatchEvent]:
        """
        Yield LayerReady / LayerFailed as each kind settles, then exactly one
        BatchComplete. Closing the generator early cancels pending downloads.
        """
        result = BatchResult()
        plan: Dict[LayerKind, List[str]] = {}
        for requested in kinds:
            try:
                kind = LayerKind.parse(requested)
                mask_url, data_urls = urls.urls_for(kind)
            except SolarLayerError as e:
                yield self._fail(result, requested, e)
                continue
            plan[kind] = [mask_url, *data_urls]

        if plan:
            yield from self._fetch_and_build(plan, result)

        log.info(
            "Layer batch complete",
            extra={"extra": {
                "built": [k.value for k in result.layers],
                "failed": [getattr(k, "value", k) for k in result.failures],
            }},
        )
        yield BatchComplete(result)

    # -------- internals --------

    def _fetch_and_build(self, plan: Dict[LayerKind, List[str]], result: BatchResult) -> Iterator[BatchEvent]:
        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="geotiff")
        deadline = time.monotonic() + self.deadline_s
        try:
            futures: Dict[str, Future] = {}
            for kind_urls in plan.values():
                for url in kind_urls:
                    if url not in futures:
                        futures[url] = pool.submit(self.fetcher.fetch, url, deadline=deadline)

            pending = list(plan)
            while pending:
                for kind in list(pending):
                    event = self._settle(kind, plan[kind], futures, result)
                    if event is not None:
                        pending.remove(kind)
                        yield event
                if not pending:
                    break

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    for kind in pending:
                        slow = [redact_url(u) for u in plan[kind] if not futures[u].done()]
                        err = NetworkError(
                            f"deadline of {self.deadline_s:g}s exceeded", url=slow[0] if slow else None, kind=kind.value
                        )
                        yield self._fail(result, kind, err)
                    break
                in_flight = [futures[u] for k in pending for u in plan[k] if not futures[u].done()]
                wait(in_flight, timeout=remaining, return_when=FIRST_COMPLETED)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _settle(
        self,
        kind: LayerKind,
        kind_urls: List[str],
        futures: Dict[str, Future],
        result: BatchResult,
    ) -> Optional[BatchEvent]:
        """Build `kind` if its rasters are all in, fail it if any download failed, else None."""
        done = True
        for url in kind_urls:
            f = futures[url]
            if not f.done():
                done = False
                continue
            err = f.exception()
            if err is not None:
                if isinstance(err, SolarLayerError):
                    err.with_context(url=url)
                return self._fail(result, kind, err)
        if not done:
            return None
        try:
            rasters = [futures[url].result() for url in kind_urls]
            layer = build(
                kind,
                inputs_from_rasters(kind, rasters),
                ranges=self.ranges,
                rgb_range=self.rgb_range,
                workers=self.render_workers,
            )
        except Exception as e:
            return self._fail(result, kind, e)
        result.layers[kind] = layer
        log.info("Layer ready", extra={"extra": {"kind": kind.value, "bounds": layer.bounds.to_dict()}})
        return LayerReady(kind, layer)

    def _fail(self, result: BatchResult, kind: KindKey, error: Exception) -> LayerFailed:
        kind_id = getattr(kind, "value", str(kind))
        if isinstance(error, SolarLayerError):
            error = error.for_kind(kind_id)
        log.error(
            "Error getting layer",
            exc_info=error,
            extra={"extra": {"kind": kind_id, "url": redact_url(getattr(error, "url", None) or "")}},
        )
        result.failures[kind] = error
        return LayerFailed(kind, error)
