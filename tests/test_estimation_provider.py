# -*- coding: utf-8 -*-

from __future__ import annotations

import json
import unittest

import httpx

from macrotrack.estimation.images import FetchedImage
from macrotrack.estimation.provider import GeminiProvider, ProviderError, ProviderErrorKind, extract_text


def _gemini_text(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


class TestGeminiProvider(unittest.IsolatedAsyncioTestCase):
    async def _invoke(self, handler, *, api_key: str | None = "k", image: FetchedImage | None = None) -> str:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = GeminiProvider(
                api_key=api_key,
                model="gemini-2.0-flash-lite",
                base_url="https://generativelanguage.example/v1beta",
                client=client,
            )
            return await provider.invoke("estimate this", image)

    async def _error_kind(self, handler) -> ProviderErrorKind:
        with self.assertRaises(ProviderError) as ctx:
            await self._invoke(handler)
        return ctx.exception.kind

    async def test_success_with_image_part(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_gemini_text('{"macros": {}}'))

        image = FetchedImage(data=b"abc", media_type="image/png", encoded="YWJj")
        text = await self._invoke(handler, image=image)
        self.assertEqual(text, '{"macros": {}}')
        self.assertTrue(seen["url"].endswith("/models/gemini-2.0-flash-lite:generateContent"))
        self.assertEqual(seen["key"], "k")
        parts = seen["body"]["contents"][0]["parts"]
        self.assertEqual(parts[0], {"text": "estimate this"})
        self.assertEqual(parts[1], {"inline_data": {"mime_type": "image/png", "data": "YWJj"}})

    async def test_missing_key_is_configuration(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with self.assertRaises(ProviderError) as ctx:
            await self._invoke(handler, api_key=None)
        self.assertEqual(ctx.exception.kind, ProviderErrorKind.configuration)
        self.assertTrue(ctx.exception.fatal)

    async def test_status_mapping(self) -> None:
        cases = [
            (
                httpx.Response(
                    400,
                    json={
                        "error": {
                            "code": 400,
                            "message": "API key not valid.",
                            "status": "INVALID_ARGUMENT",
                            "details": [{"reason": "API_KEY_INVALID"}],
                        }
                    },
                ),
                ProviderErrorKind.authentication,
            ),
            (httpx.Response(403, json={"error": {"message": "denied"}}), ProviderErrorKind.authentication),
            (
                httpx.Response(429, json={"error": {"message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}}),
                ProviderErrorKind.quota_exceeded,
            ),
            (httpx.Response(404, json={"error": {"message": "model not found"}}), ProviderErrorKind.configuration),
            (httpx.Response(503, text="overloaded"), ProviderErrorKind.upstream),
            (httpx.Response(500, json={"error": {"message": "internal"}}), ProviderErrorKind.upstream),
        ]
        for response, expected in cases:
            with self.subTest(status=response.status_code, expected=expected):
                kind = await self._error_kind(lambda request, r=response: r)
                self.assertEqual(kind, expected)

    async def test_transport_errors(self) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        def refused(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        self.assertEqual(await self._error_kind(timeout), ProviderErrorKind.timeout)
        self.assertEqual(await self._error_kind(refused), ProviderErrorKind.network)

    async def test_blocked_prompt_is_empty_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

        kind = await self._error_kind(handler)
        self.assertEqual(kind, ProviderErrorKind.empty_response)

    async def test_non_json_body_is_upstream(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        self.assertEqual(await self._error_kind(handler), ProviderErrorKind.upstream)


class TestExtractText(unittest.TestCase):
    def test_joins_parts_and_skips_junk(self) -> None:
        data = {
            "candidates": [
                {"content": {"parts": [{"text": "{\"a\":"}, {"inline_data": {}}, {"text": " 1}"}]}},
                "junk",
            ]
        }
        self.assertEqual(extract_text(data), '{"a": 1}')
        self.assertEqual(extract_text([]), "")


if __name__ == "__main__":
    unittest.main()
