"""
Multi-layer orchestration

- urls: DataLayerUrls parsed from a Solar API `dataLayers:get` response
- batch: LayerBatch fetches each requested kind's rasters concurrently and
  builds the layers with per-kind partial success

Usage:
    batch = LayerBatch.from_config(load_config())
    for event in batch.stream(urls, ["rgb", "annualFlux"]):
        ...  # LayerReady / LayerFailed, then one BatchComplete
"""
from .batch import BatchComplete, BatchResult, LayerBatch, LayerFailed, LayerReady
from .urls import DataLayerUrls

__all__ = ["BatchComplete", "BatchResult", "DataLayerUrls", "LayerBatch", "LayerFailed", "LayerReady"]
