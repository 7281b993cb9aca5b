from __future__ import annotations

from typing import Optional


class DerivsRadarError(Exception):
    """Base exception for the refresh pipeline."""


class UpstreamError(DerivsRadarError):
    """An upstream source kept failing after the retry budget was spent."""

    def __init__(self, source: str, target: str, status: Optional[int] = None, message: str = "") -> None:
        self.source = source
        self.target = target
        self.status = status
        self.message = message
        status_part = f" status={status}" if status is not None else ""
        super().__init__(f"{source} {target} failed{status_part}: {message}")


class RateLimitBackoff(DerivsRadarError):
    """Raised inside the request client on HTTP 429; never escapes it."""

    def __init__(self, wait_sec: float) -> None:
        self.wait_sec = wait_sec
        super().__init__(f"rate limited, retry in {wait_sec}s")


class SymbolResolutionFailure(DerivsRadarError):
    """Market listing could not be used; the fallback universe applies."""
