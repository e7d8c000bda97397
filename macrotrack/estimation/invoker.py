# -*- coding: utf-8 -*-
"""Estimation — model invocation with bounded retries and exponential backoff.

State machine::

    ATTEMPTING(1) -> SUCCESS
                  -> FATAL_FAILURE             (configuration/auth/upstream quota)
                  -> ATTEMPTING(n+1)           (retryable, after 2**(n-1) s backoff)
                  -> EXHAUSTED_FAILURE         (retryable, no attempts left)

The invoker never interprets the model text; parsing happens downstream.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from .images import FetchedImage
from .models import AttemptOutcome, ModelAttempt
from .provider import ModelProvider, ProviderError

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY_MS = 1000

Sleep = Callable[[float], Awaitable[None]]


class InvocationState(str, Enum):
    success = "success"
    fatal_failure = "fatal_failure"
    exhausted_failure = "exhausted_failure"


@dataclass(frozen=True)
class InvocationSuccess:
    text: str
    attempts: int
    history: List[ModelAttempt] = field(default_factory=list)

    state = InvocationState.success


@dataclass(frozen=True)
class InvocationFailure:
    state: InvocationState
    error: BaseException
    attempts: int
    history: List[ModelAttempt] = field(default_factory=list)


def backoff_delay_ms(attempt: int, base_delay_ms: int = BASE_DELAY_MS) -> int:
    """Delay to wait after failed attempt ``attempt`` (1-based): 1000, 2000, 4000, ..."""
    return (2 ** (attempt - 1)) * base_delay_ms


def _is_fatal(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.fatal


class ModelInvoker:
    def __init__(
        self,
        provider: ModelProvider,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay_ms: int = BASE_DELAY_MS,
        attempt_timeout: float | None = 30.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.provider = provider
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep

    async def _attempt(self, prompt: str, image: Optional[FetchedImage]) -> str:
        call = self.provider.invoke(prompt, image)
        if self.attempt_timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self.attempt_timeout)

    async def run(self, prompt: str, image: Optional[FetchedImage] = None) -> InvocationSuccess | InvocationFailure:
        history: List[ModelAttempt] = []
        attempt = 1
        while True:
            try:
                text = await self._attempt(prompt, image)
            except Exception as exc:
                if _is_fatal(exc):
                    history.append(ModelAttempt(attempt, AttemptOutcome.fatal_failure, str(exc)))
                    log.error("model call failed fatally on attempt %d: %s", attempt, exc)
                    return InvocationFailure(InvocationState.fatal_failure, exc, attempt, history)

                if isinstance(exc, asyncio.TimeoutError):
                    detail = f"attempt timed out after {self.attempt_timeout}s"
                else:
                    detail = str(exc) or type(exc).__name__
                history.append(ModelAttempt(attempt, AttemptOutcome.retryable_failure, detail))

                if attempt >= self.max_attempts:
                    log.error("model call failed after %d attempts: %s", attempt, detail)
                    return InvocationFailure(InvocationState.exhausted_failure, exc, attempt, history)

                delay_ms = backoff_delay_ms(attempt, self.base_delay_ms)
                log.warning(
                    "model call failed (attempt %d/%d), retrying in %dms: %s",
                    attempt,
                    self.max_attempts,
                    delay_ms,
                    detail,
                    exc_info=not isinstance(exc, (ProviderError, asyncio.TimeoutError)),
                )
                await self._sleep(delay_ms / 1000.0)
                attempt += 1
                continue

            history.append(ModelAttempt(attempt, AttemptOutcome.success))
            if attempt > 1:
                log.info("model call succeeded on attempt %d", attempt)
            return InvocationSuccess(text=text, attempts=attempt, history=history)
