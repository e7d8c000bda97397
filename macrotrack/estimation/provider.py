# -*- coding: utf-8 -*-
"""Estimation — generative model provider adapter (Google Generative Language API).

The adapter is the only place that knows the upstream wire format. Every
failure leaves it as a ``ProviderError`` tagged with a ``ProviderErrorKind``,
so callers never need to inspect error message text.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import httpx

from .images import FetchedImage

log = logging.getLogger(__name__)


class ProviderErrorKind(str, Enum):
    configuration = "configuration"
    authentication = "authentication"
    quota_exceeded = "quota_exceeded"
    network = "network"
    timeout = "timeout"
    upstream = "upstream"
    empty_response = "empty_response"


FATAL_KINDS = frozenset(
    {
        ProviderErrorKind.configuration,
        ProviderErrorKind.authentication,
        ProviderErrorKind.quota_exceeded,
    }
)


class ProviderError(Exception):
    def __init__(self, kind: ProviderErrorKind, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    @property
    def fatal(self) -> bool:
        return self.kind in FATAL_KINDS

    def __str__(self) -> str:
        prefix = self.kind.value
        if self.status_code is not None:
            prefix = f"{prefix} ({self.status_code})"
        return f"{prefix}: {self.message}"


class ModelProvider(Protocol):
    name: str

    async def invoke(self, prompt: str, image: Optional[FetchedImage] = None) -> str: ...


def _parse_error_body(resp: httpx.Response) -> tuple[str, set[str]]:
    """Return a readable message and the ``details[].reason`` codes of an error body."""
    raw = resp.text or ""
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw.replace("\n", " ").strip()[:200] or f"HTTP {resp.status_code}", set()

    reasons: set[str] = set()
    message = f"HTTP {resp.status_code}"
    err = parsed.get("error") if isinstance(parsed, dict) else None
    if isinstance(err, dict):
        msg = err.get("message")
        status = err.get("status")
        if isinstance(msg, str) and msg.strip():
            message = f"{status}: {msg.strip()}" if isinstance(status, str) and status else msg.strip()
        details = err.get("details")
        if isinstance(details, list):
            for detail in details:
                if isinstance(detail, dict) and isinstance(detail.get("reason"), str):
                    reasons.add(detail["reason"])
    return message, reasons


def classify_http_error(resp: httpx.Response) -> ProviderError:
    status = resp.status_code
    message, reasons = _parse_error_body(resp)
    if status in (401, 403) or "API_KEY_INVALID" in reasons:
        return ProviderError(ProviderErrorKind.authentication, message, status_code=status)
    if status == 429:
        return ProviderError(ProviderErrorKind.quota_exceeded, message, status_code=status)
    if status in (400, 404):
        return ProviderError(ProviderErrorKind.configuration, message, status_code=status)
    return ProviderError(ProviderErrorKind.upstream, message, status_code=status)


def _concat_text_parts(parts: object) -> str:
    if not isinstance(parts, list):
        return ""
    out: list[str] = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        val = part.get("text")
        if isinstance(val, str) and val:
            out.append(val)
    return "".join(out)


def extract_text(data: object) -> str:
    """Join the text parts of every candidate in a ``generateContent`` response."""
    if not isinstance(data, dict):
        return ""
    candidates = data.get("candidates")
    if not isinstance(candidates, list):
        return ""
    out: list[str] = []
    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        content = candidate.get("content")
        if isinstance(content, dict):
            text = _concat_text_parts(content.get("parts"))
            if text:
                out.append(text)
    return "".join(out)


class GeminiProvider:
    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        base_url: str,
        temperature: float = 0.2,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.name = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self._client = client

    def _payload(self, prompt: str, image: Optional[FetchedImage]) -> Dict[str, Any]:
        parts: list[Dict[str, Any]] = [{"text": prompt}]
        if image is not None:
            parts.append({"inline_data": {"mime_type": image.media_type, "data": image.encoded}})
        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": self.temperature,
                "responseMimeType": "application/json",
            },
        }

    async def _post(self, client: httpx.AsyncClient, url: str, payload: Dict[str, Any]) -> httpx.Response:
        try:
            return await client.post(url, json=payload, headers={"x-goog-api-key": self.api_key or ""})
        except httpx.TimeoutException as exc:
            raise ProviderError(ProviderErrorKind.timeout, f"model call timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise ProviderError(ProviderErrorKind.network, f"model call failed: {exc}") from exc

    async def invoke(self, prompt: str, image: Optional[FetchedImage] = None) -> str:
        if not self.api_key:
            raise ProviderError(ProviderErrorKind.configuration, "GOOGLE_AI_API_KEY is not set")

        url = f"{self.base_url}/models/{self.name}:generateContent"
        payload = self._payload(prompt, image)
        if self._client is not None:
            resp = await self._post(self._client, url, payload)
        else:
            # Timeouts per attempt are enforced by the invoker.
            async with httpx.AsyncClient(timeout=None, follow_redirects=True) as client:
                resp = await self._post(client, url, payload)

        if resp.status_code >= 400:
            raise classify_http_error(resp)
        try:
            data = resp.json()
        except ValueError as exc:
            snippet = (resp.text or "").replace("\n", " ").strip()[:200]
            raise ProviderError(ProviderErrorKind.upstream, f"non-JSON response: {snippet}") from exc

        text = extract_text(data)
        if not text.strip():
            reason = None
            if isinstance(data, dict):
                feedback = data.get("promptFeedback")
                if isinstance(feedback, dict):
                    reason = feedback.get("blockReason")
            log.warning("model returned no text (block reason: %s)", reason)
            raise ProviderError(ProviderErrorKind.empty_response, f"model returned no text (block reason: {reason})")
        return text
