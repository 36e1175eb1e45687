"""Outcome values returned by the source and destination adapters.

Adapters never raise for routine content failures; they return a result with
`error` set so the driver can record it against the item and move on.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FetchResult:
    data: bytes | None = None
    error: str | None = None
    content_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.data is not None and self.error is None

    @classmethod
    def success(cls, data: bytes, content_type: str | None = None) -> "FetchResult":
        return cls(data=data, content_type=content_type)

    @classmethod
    def failure(cls, error: str) -> "FetchResult":
        return cls(error=error or "fetch failed")


@dataclass(frozen=True)
class StoreResult:
    url: str | None = None
    path: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.url is not None and self.error is None

    @classmethod
    def success(cls, url: str, path: str) -> "StoreResult":
        return cls(url=url, path=path)

    @classmethod
    def failure(cls, error: str, path: str | None = None) -> "StoreResult":
        return cls(error=error or "store failed", path=path)
