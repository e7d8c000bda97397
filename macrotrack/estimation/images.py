# -*- coding: utf-8 -*-
"""Estimation — resolve an image reference to encoded bytes for the model."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import urlparse

import httpx

from .models import EstimationFailure, FailureKind

log = logging.getLogger(__name__)

# Ceiling on the base64 payload sent inline to the model.
MAX_ENCODED_BYTES = 20 * 1024 * 1024
DEFAULT_MEDIA_TYPE = "image/jpeg"

_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}


@dataclass(frozen=True)
class FetchedImage:
    data: bytes
    media_type: str
    encoded: str

    @property
    def encoded_size(self) -> int:
        return len(self.encoded)


def max_raw_bytes(max_encoded_bytes: int) -> int:
    """Largest raw size whose base64 encoding still fits ``max_encoded_bytes``."""
    return max_encoded_bytes // 4 * 3


class BlobTooLarge(Exception):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"image is at least {size} bytes > {limit}")
        self.size = size
        self.limit = limit


class BlobStore(Protocol):
    async def fetch_bytes(self, ref: str) -> bytes: ...


class HttpBlobStore:
    """Images hosted behind plain URLs (e.g. a CDN)."""

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        max_bytes: int = max_raw_bytes(MAX_ENCODED_BYTES),
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes
        self._client = client

    async def _download(self, client: httpx.AsyncClient, ref: str) -> bytes:
        async with client.stream("GET", ref) as resp:
            resp.raise_for_status()
            declared = resp.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > self.max_bytes:
                raise BlobTooLarge(int(declared), self.max_bytes)
            body = bytearray()
            async for chunk in resp.aiter_bytes():
                body.extend(chunk)
                if len(body) > self.max_bytes:
                    raise BlobTooLarge(len(body), self.max_bytes)
            return bytes(body)

    async def fetch_bytes(self, ref: str) -> bytes:
        if self._client is not None:
            return await self._download(self._client, ref)
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await self._download(client, ref)


class LocalBlobStore:
    """Images stored on disk under a single root; refs are relative paths."""

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def _resolve(self, ref: str) -> Path:
        path = (self.root / ref.lstrip("/")).resolve()
        if self.root != path and self.root not in path.parents:
            raise ValueError(f"image ref escapes blob root: {ref}")
        return path

    async def fetch_bytes(self, ref: str) -> bytes:
        return self._resolve(ref).read_bytes()


def media_type_for(ref: str) -> str:
    parsed = urlparse(ref)
    path = parsed.path if parsed.scheme else ref.split("?", 1)[0].split("#", 1)[0]
    suffix = PurePosixPath(path).suffix.lower()
    return _MEDIA_TYPES.get(suffix, DEFAULT_MEDIA_TYPE)


class ImageFetcher:
    def __init__(self, store: BlobStore, *, max_encoded_bytes: int = MAX_ENCODED_BYTES) -> None:
        self.store = store
        self.max_encoded_bytes = max_encoded_bytes

    async def fetch(self, ref: str) -> FetchedImage | EstimationFailure:
        try:
            data = await self.store.fetch_bytes(ref)
        except BlobTooLarge as exc:
            return EstimationFailure(kind=FailureKind.payload_too_large, message=str(exc))
        except Exception as exc:
            log.warning("image fetch failed ref=%s: %s", ref, exc)
            return EstimationFailure(
                kind=FailureKind.fetch_error,
                message="image could not be fetched",
                detail=str(exc)[:200],
            )

        if not data:
            return EstimationFailure(kind=FailureKind.fetch_error, message="image is empty")

        encoded = base64.b64encode(data).decode("ascii")
        if len(encoded) > self.max_encoded_bytes:
            return EstimationFailure(
                kind=FailureKind.payload_too_large,
                message=f"encoded image is {len(encoded)} bytes > {self.max_encoded_bytes}",
            )
        return FetchedImage(data=data, media_type=media_type_for(ref), encoded=encoded)


class RoutingBlobStore:
    """URLs go over HTTP, everything else is read from local uploads."""

    def __init__(self, *, local: LocalBlobStore, remote: HttpBlobStore) -> None:
        self.local = local
        self.remote = remote

    async def fetch_bytes(self, ref: str) -> bytes:
        scheme = urlparse(ref).scheme.lower()
        store: BlobStore = self.remote if scheme in {"http", "https"} else self.local
        return await store.fetch_bytes(ref)
