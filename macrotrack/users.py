# -*- coding: utf-8 -*-
"""Users — DB helpers + caller identity for FastAPI handlers.

Sign-in lives in front of this service; requests arrive with the resolved
user id in the ``x-user-id`` header.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException, Request

from .app_db import db_conn
from .config import settings

USER_ID_HEADER = "x-user-id"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def get_user_by_id(user_id: str) -> Optional[Dict[str, Any]]:
    with db_conn(settings.app_db_path) as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None


def create_user(
    *,
    email: str,
    subscription_status: str | None = None,
    is_unlimited: bool = False,
    monthly_ai_usage: int = 0,
) -> Dict[str, Any]:
    user_id = str(uuid4())
    now = _utc_now()
    email_norm = email.lower().strip()
    with db_conn(settings.app_db_path) as conn:
        conn.execute(
            "INSERT INTO users (id, email, subscription_status, is_unlimited, monthly_ai_usage, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (user_id, email_norm, subscription_status, int(is_unlimited), int(monthly_ai_usage), now),
        )
    return get_user_by_id(user_id) or {}


def get_current_user(request: Request) -> Dict[str, Any]:
    user = getattr(request.state, "user", None)
    if user:
        return user

    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_row = get_user_by_id(user_id)
    if not user_row:
        raise HTTPException(status_code=401, detail="User not found")

    request.state.user = user_row
    return user_row
