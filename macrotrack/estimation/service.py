# -*- coding: utf-8 -*-
"""Estimation — orchestrate quota, image, prompt, model and parsing.

Quota is committed exactly once and only after a validated estimate; every
other path returns an ``EstimationFailure`` and leaves no state behind.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..config import Settings, settings as default_settings
from .images import FetchedImage, HttpBlobStore, ImageFetcher, LocalBlobStore, RoutingBlobStore
from .invoker import InvocationFailure, InvocationState, ModelInvoker
from .models import EstimationFailure, EstimationRequest, EstimationResult, FailureKind
from .parser import parse_estimation
from .prompts import build_prompt
from .provider import GeminiProvider, ModelProvider
from .quota import QuotaGate, SqliteQuotaStore

log = logging.getLogger(__name__)


def _upstream_failure(outcome: InvocationFailure) -> EstimationFailure:
    if outcome.state == InvocationState.fatal_failure:
        return EstimationFailure(
            kind=FailureKind.configuration_error,
            message="model provider rejected the request",
            attempts=outcome.attempts,
            detail=str(outcome.error)[:200],
        )
    return EstimationFailure(
        kind=FailureKind.transient_upstream_error,
        message=f"model call failed after {outcome.attempts} attempts",
        attempts=outcome.attempts,
        detail=str(outcome.error)[:200],
    )


class EstimationService:
    def __init__(
        self,
        *,
        quota_gate: QuotaGate,
        image_fetcher: ImageFetcher,
        invoker: ModelInvoker,
        model_name: str = "",
    ) -> None:
        self.quota_gate = quota_gate
        self.image_fetcher = image_fetcher
        self.invoker = invoker
        self.model_name = model_name

    async def estimate(self, user_id: str, request: EstimationRequest) -> EstimationResult | EstimationFailure:
        # The store is synchronous sqlite; keep it off the event loop.
        decision = await asyncio.to_thread(self.quota_gate.check_and_reserve, user_id)
        if isinstance(decision, EstimationFailure):
            return decision

        invalid = request.validate()
        if invalid is not None:
            return invalid

        description = request.clean_description
        image_ref = request.clean_image_ref

        image: Optional[FetchedImage] = None
        if image_ref is not None:
            fetched = await self.image_fetcher.fetch(image_ref)
            if isinstance(fetched, EstimationFailure):
                return fetched
            image = fetched

        prompt = build_prompt(description, has_image=image is not None)

        outcome = await self.invoker.run(prompt, image)
        if isinstance(outcome, InvocationFailure):
            return _upstream_failure(outcome)

        parsed = parse_estimation(outcome.text)
        if isinstance(parsed, EstimationFailure):
            log.warning("estimation output rejected user=%s: %s", user_id, parsed.message)
            return EstimationFailure(
                kind=parsed.kind,
                message=parsed.message,
                attempts=outcome.attempts,
                detail=parsed.detail,
            )

        committed = await asyncio.to_thread(self.quota_gate.commit, user_id)
        if committed is not None:
            return EstimationFailure(
                kind=committed.kind,
                message=committed.message,
                attempts=outcome.attempts,
                detail=committed.detail,
            )
        log.info("estimation succeeded user=%s attempts=%d", user_id, outcome.attempts)
        return EstimationResult(
            macros=parsed.macros,
            explanation=parsed.explanation,
            generated_description=parsed.generated_description,
            attempts=outcome.attempts,
            model=self.model_name,
        )


def build_estimation_service(
    config: Settings | None = None,
    *,
    provider: ModelProvider | None = None,
) -> EstimationService:
    cfg = config or default_settings
    provider = provider or GeminiProvider(
        api_key=cfg.google_ai_api_key,
        model=cfg.model,
        base_url=cfg.model_base_url,
        temperature=cfg.model_temperature,
    )
    blob_store = RoutingBlobStore(
        local=LocalBlobStore(cfg.uploads_root),
        remote=HttpBlobStore(timeout=cfg.blob_timeout),
    )
    return EstimationService(
        quota_gate=QuotaGate(SqliteQuotaStore(cfg.app_db_path), limit=cfg.free_ai_limit),
        image_fetcher=ImageFetcher(blob_store),
        invoker=ModelInvoker(provider, attempt_timeout=cfg.model_timeout),
        model_name=provider.name,
    )
