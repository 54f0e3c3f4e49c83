from __future__ import annotations

import copy
from typing import Optional


class SolarLayerError(Exception):
    """
    Base error for the layer pipeline.

    Carries enough context (layer kind, URL) for the batch orchestrator to log
    and record the failure at per-kind granularity.
    """

    def __init__(self, message: str, *, url: Optional[str] = None, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url
        self.kind = kind

    def with_context(self, *, url: Optional[str] = None, kind: Optional[str] = None) -> "SolarLayerError":
        """Fill in missing context in place and return self (for re-raise)."""
        if self.url is None and url is not None:
            self.url = url
        if self.kind is None and kind is not None:
            self.kind = kind
        return self

    def for_kind(self, kind: str) -> "SolarLayerError":
        """
        This error attributed to `kind`. A shared download (the mask) fails
        several kinds with one exception; each kind after the first gets a
        copy so its own id is recorded and logged.
        """
        if self.kind is None or self.kind == kind:
            return self.with_context(kind=kind)
        err = copy.copy(self)
        err.kind = kind
        err.__cause__ = self.__cause__
        return err.with_traceback(self.__traceback__)

    def context(self) -> dict:
        return {"error": type(self).__name__, "url": self.url, "kind": self.kind}

    def __str__(self) -> str:
        parts = [self.message]
        if self.kind:
            parts.append(f"kind={self.kind}")
        if self.url:
            parts.append(f"url={self.url}")
        return " | ".join(parts)


class NetworkError(SolarLayerError):
    """Non-success HTTP status or transport failure while downloading a raster."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: Optional[str] = None,
        url: Optional[str] = None,
        kind: Optional[str] = None,
    ):
        super().__init__(message, url=url, kind=kind)
        self.status = status
        self.body = body

    @property
    def transient(self) -> bool:
        # transport errors, throttling and server-side failures may succeed on retry
        return self.status is None or self.status == 429 or self.status >= 500

    def context(self) -> dict:
        ctx = super().context()
        ctx["status"] = self.status
        ctx["body"] = (self.body or "")[:200]
        return ctx


class DecodeError(SolarLayerError):
    """Response body is not a readable raster container."""


class ProjectionError(SolarLayerError):
    """Coordinate-system keys are missing, unparsable or unsupported."""


class DomainConfigError(SolarLayerError):
    """Unrecognized layer kind, or inputs that do not match the kind."""
