# -*- coding: utf-8 -*-

from __future__ import annotations

import base64
import shutil
import tempfile
import unittest
from pathlib import Path

import httpx

from macrotrack.estimation.images import (
    FetchedImage,
    HttpBlobStore,
    ImageFetcher,
    LocalBlobStore,
    RoutingBlobStore,
    max_raw_bytes,
    media_type_for,
)
from macrotrack.estimation.models import EstimationFailure, FailureKind
from tests.fakes import InMemoryBlobStore


class TestMediaType(unittest.TestCase):
    def test_known_extensions(self) -> None:
        self.assertEqual(media_type_for("meal.JPG"), "image/jpeg")
        self.assertEqual(media_type_for("uploads/a/b.png"), "image/png")
        self.assertEqual(media_type_for("https://cdn.example.com/x/lunch.webp?v=3"), "image/webp")
        self.assertEqual(media_type_for("photo.heic"), "image/heic")

    def test_unknown_defaults_to_jpeg(self) -> None:
        self.assertEqual(media_type_for("https://cdn.example.com/image/upload/abc"), "image/jpeg")
        self.assertEqual(media_type_for("meal.bmp"), "image/jpeg")


class TestImageFetcher(unittest.IsolatedAsyncioTestCase):
    async def test_fetch_encodes(self) -> None:
        fetcher = ImageFetcher(InMemoryBlobStore({"a.png": b"\x89PNGdata"}))
        image = await fetcher.fetch("a.png")
        self.assertIsInstance(image, FetchedImage)
        assert isinstance(image, FetchedImage)
        self.assertEqual(image.media_type, "image/png")
        self.assertEqual(base64.b64decode(image.encoded), b"\x89PNGdata")

    async def test_empty_is_fetch_error(self) -> None:
        result = await ImageFetcher(InMemoryBlobStore({"a.jpg": b""})).fetch("a.jpg")
        assert isinstance(result, EstimationFailure)
        self.assertEqual(result.kind, FailureKind.fetch_error)

    async def test_store_exception_is_fetch_error(self) -> None:
        result = await ImageFetcher(InMemoryBlobStore({"a.jpg": OSError("disk gone")})).fetch("a.jpg")
        assert isinstance(result, EstimationFailure)
        self.assertEqual(result.kind, FailureKind.fetch_error)
        self.assertIn("disk gone", result.detail or "")

    async def test_encoded_size_ceiling(self) -> None:
        # 300 raw bytes encode to exactly 400 base64 characters.
        store = InMemoryBlobStore({"ok.jpg": b"x" * 300, "big.jpg": b"x" * 303})
        fetcher = ImageFetcher(store, max_encoded_bytes=400)
        self.assertIsInstance(await fetcher.fetch("ok.jpg"), FetchedImage)
        result = await fetcher.fetch("big.jpg")
        assert isinstance(result, EstimationFailure)
        self.assertEqual(result.kind, FailureKind.payload_too_large)

    async def test_default_ceiling_is_20_mib(self) -> None:
        self.assertEqual(ImageFetcher(InMemoryBlobStore()).max_encoded_bytes, 20 * 1024 * 1024)


class TestBlobStores(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = Path(tempfile.mkdtemp(prefix="macrotrack-blobs-"))
        (self._tmp / "u1").mkdir()
        (self._tmp / "u1" / "meal.jpg").write_bytes(b"jpegbytes")

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp, ignore_errors=True)

    async def test_local_store_reads_under_root(self) -> None:
        store = LocalBlobStore(self._tmp)
        self.assertEqual(await store.fetch_bytes("u1/meal.jpg"), b"jpegbytes")

    async def test_local_store_rejects_escape(self) -> None:
        store = LocalBlobStore(self._tmp / "u1")
        with self.assertRaises(ValueError):
            await store.fetch_bytes("../../etc/passwd")

    async def test_routing_store(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual(str(request.url), "https://cdn.example.com/meal.png")
            return httpx.Response(200, content=b"remote")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            store = RoutingBlobStore(local=LocalBlobStore(self._tmp), remote=HttpBlobStore(client=client))
            self.assertEqual(await store.fetch_bytes("https://cdn.example.com/meal.png"), b"remote")
            self.assertEqual(await store.fetch_bytes("u1/meal.jpg"), b"jpegbytes")

    async def test_http_error_becomes_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = ImageFetcher(HttpBlobStore(client=client))
            result = await fetcher.fetch("https://cdn.example.com/missing.png")
        assert isinstance(result, EstimationFailure)
        self.assertEqual(result.kind, FailureKind.fetch_error)

    async def test_declared_oversize_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"x" * 11)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = ImageFetcher(HttpBlobStore(client=client, max_bytes=10))
            result = await fetcher.fetch("https://cdn.example.com/huge.jpg")
        assert isinstance(result, EstimationFailure)
        self.assertEqual(result.kind, FailureKind.payload_too_large)

    async def test_streamed_body_capped(self) -> None:
        sent: list[int] = []

        async def body():
            for i in range(100):
                sent.append(i)
                yield b"abcd"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body())

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = ImageFetcher(HttpBlobStore(client=client, max_bytes=10))
            result = await fetcher.fetch("https://cdn.example.com/stream.jpg")
        assert isinstance(result, EstimationFailure)
        self.assertEqual(result.kind, FailureKind.payload_too_large)
        self.assertLess(len(sent), 100)

    async def test_raw_cap_matches_encoded_ceiling(self) -> None:
        self.assertEqual(max_raw_bytes(400), 300)
        self.assertEqual(HttpBlobStore().max_bytes, 15 * 1024 * 1024)


if __name__ == "__main__":
    unittest.main()
