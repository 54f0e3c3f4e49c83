from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG_PATH = "config/params.yaml"

DEFAULTS: Dict[str, Any] = {
    "provider": {
        "host": "solar.googleapis.com",
        "api_key_env": "GOOGLE_API_KEY",
    },
    "fetch": {
        "timeout_s": 30.0,
        "max_retries": 2,
        "backoff_s": 0.5,
    },
    "batch": {
        "deadline_s": 120.0,
        "max_workers": 8,
    },
    "normalization": {
        "annual_flux": [0.0, 1800.0],
        "monthly_flux": [0.0, 200.0],
        "hourly_shade": [0.0, 1.0],
    },
    "render": {
        "workers": 1,
        "rgb_range": [0.0, 255.0],
    },
    "logging": {"level": "INFO"},
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: Optional[str] = DEFAULT_CONFIG_PATH, overrides: Optional[Dict[str, Any]] = None) -> Dict:
    """
    Load YAML config merged over DEFAULTS.

    A missing file (or path=None) yields the defaults. `overrides` is merged
    last, which is handy for tests and per-request tweaks.
    """
    P: Dict[str, Any] = copy.deepcopy(DEFAULTS)
    if path and Path(path).exists():
        with open(path, "r") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"config root must be a mapping: {path}")
        P = _merge(P, loaded)
    if overrides:
        P = _merge(P, overrides)
    return P
