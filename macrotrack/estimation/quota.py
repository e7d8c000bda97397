# -*- coding: utf-8 -*-
"""Estimation — monthly AI usage gate.

The gate reads the counter before any work and increments it once, after a
validated estimate. Unlimited users (flag or active subscription) are never
counted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from ..app_db import db_conn
from .models import EstimationFailure, FailureKind

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    count: int
    is_unlimited: bool


@dataclass(frozen=True)
class QuotaDecision:
    usage: int
    limit: Optional[int]


@dataclass(frozen=True)
class QuotaStatus:
    can_perform: bool
    usage: int
    limit: Optional[int]


class QuotaStore(Protocol):
    def get_usage(self, user_id: str) -> UsageSnapshot: ...

    def increment(self, user_id: str) -> None: ...


class SqliteQuotaStore:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def get_usage(self, user_id: str) -> UsageSnapshot:
        with db_conn(self.db_path) as conn:
            row = conn.execute(
                "SELECT monthly_ai_usage, is_unlimited, subscription_status FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            raise LookupError(f"user not found: {user_id}")
        unlimited = bool(row["is_unlimited"]) or row["subscription_status"] == "active"
        return UsageSnapshot(count=int(row["monthly_ai_usage"] or 0), is_unlimited=unlimited)

    def increment(self, user_id: str) -> None:
        with db_conn(self.db_path) as conn:
            cur = conn.execute(
                "UPDATE users SET monthly_ai_usage = monthly_ai_usage + 1 WHERE id = ?",
                (user_id,),
            )
            if cur.rowcount == 0:
                raise LookupError(f"user not found: {user_id}")


def _store_failure(user_id: str, exc: Exception) -> EstimationFailure:
    log.error("usage store failed user=%s: %s", user_id, exc, exc_info=not isinstance(exc, LookupError))
    return EstimationFailure(
        kind=FailureKind.configuration_error,
        message="usage could not be read or recorded",
        detail=str(exc)[:200],
    )


class QuotaGate:
    def __init__(self, store: QuotaStore, limit: int) -> None:
        self.store = store
        self.limit = limit

    def check_and_reserve(self, user_id: str) -> QuotaDecision | EstimationFailure:
        try:
            usage = self.store.get_usage(user_id)
        except Exception as exc:
            return _store_failure(user_id, exc)
        if usage.is_unlimited:
            return QuotaDecision(usage=usage.count, limit=None)
        if usage.count >= self.limit:
            log.info("quota exceeded user=%s usage=%d limit=%d", user_id, usage.count, self.limit)
            return EstimationFailure(
                kind=FailureKind.quota_exceeded,
                message=f"monthly AI estimation limit reached ({self.limit})",
            )
        return QuotaDecision(usage=usage.count, limit=self.limit)

    def commit(self, user_id: str) -> Optional[EstimationFailure]:
        try:
            # Re-read: the subscription may have changed while the model was running.
            usage = self.store.get_usage(user_id)
            if not usage.is_unlimited:
                self.store.increment(user_id)
        except Exception as exc:
            return _store_failure(user_id, exc)
        return None

    def status(self, user_id: str) -> QuotaStatus:
        usage = self.store.get_usage(user_id)
        if usage.is_unlimited:
            return QuotaStatus(can_perform=True, usage=0, limit=None)
        return QuotaStatus(can_perform=usage.count < self.limit, usage=usage.count, limit=self.limit)
