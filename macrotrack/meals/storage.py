# -*- coding: utf-8 -*-
"""Meals — SQLite storage for estimated meal entries."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..app_db import db_conn
from ..config import settings
from ..estimation.models import MACRO_KEYS, EstimationResult, Explanation, MacroBreakdown
from .models import MacroTotals, MealEntry


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _db_path(db_path: Path | None) -> Path:
    return db_path or settings.app_db_path


def _row_to_entry(row: sqlite3.Row) -> MealEntry:
    data = dict(row)
    macros = json.loads(data["macros_json"]) if data.get("macros_json") else None
    explanation = json.loads(data["explanation_json"]) if data.get("explanation_json") else None
    return MealEntry(
        id=data["id"],
        user_id=data["user_id"],
        description=data.get("description"),
        image_ref=data.get("image_ref"),
        generated_description=data.get("generated_description"),
        macros=MacroBreakdown.model_validate(macros) if macros else None,
        explanation=Explanation.model_validate(explanation) if explanation else None,
        eaten_at=data["eaten_at"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


def _result_columns(result: Optional[EstimationResult]) -> Dict[str, Any]:
    if result is None:
        return {"generated_description": None, "macros_json": None, "explanation_json": None}
    return {
        "generated_description": result.generated_description,
        "macros_json": result.macros.model_dump_json(),
        "explanation_json": result.explanation.model_dump_json(),
    }


def create_entry(
    *,
    user_id: str,
    description: Optional[str],
    image_ref: Optional[str],
    eaten_at: str,
    result: EstimationResult,
    db_path: Path | None = None,
) -> MealEntry:
    entry_id = str(uuid4())
    now = _utc_now()
    cols = _result_columns(result)
    with db_conn(_db_path(db_path)) as conn:
        conn.execute(
            """
            INSERT INTO meal_entries (
                id, user_id, description, image_ref, generated_description,
                macros_json, explanation_json, eaten_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry_id,
                user_id,
                description,
                image_ref,
                cols["generated_description"],
                cols["macros_json"],
                cols["explanation_json"],
                eaten_at,
                now,
                now,
            ),
        )
        row = conn.execute("SELECT * FROM meal_entries WHERE id = ?", (entry_id,)).fetchone()
    return _row_to_entry(row)


def get_entry(*, user_id: str, entry_id: str, db_path: Path | None = None) -> Optional[MealEntry]:
    with db_conn(_db_path(db_path)) as conn:
        row = conn.execute(
            "SELECT * FROM meal_entries WHERE id = ? AND user_id = ?",
            (entry_id, user_id),
        ).fetchone()
    return _row_to_entry(row) if row else None


def update_entry(
    *,
    user_id: str,
    entry_id: str,
    description: Optional[str],
    image_ref: Optional[str],
    eaten_at: str,
    result: Optional[EstimationResult],
    db_path: Path | None = None,
) -> Optional[MealEntry]:
    """Update an entry; ``result=None`` keeps the stored estimate."""
    now = _utc_now()
    with db_conn(_db_path(db_path)) as conn:
        if result is None:
            cur = conn.execute(
                "UPDATE meal_entries SET description = ?, image_ref = ?, eaten_at = ?, updated_at = ? "
                "WHERE id = ? AND user_id = ?",
                (description, image_ref, eaten_at, now, entry_id, user_id),
            )
        else:
            cols = _result_columns(result)
            cur = conn.execute(
                "UPDATE meal_entries SET description = ?, image_ref = ?, eaten_at = ?, updated_at = ?, "
                "generated_description = ?, macros_json = ?, explanation_json = ? "
                "WHERE id = ? AND user_id = ?",
                (
                    description,
                    image_ref,
                    eaten_at,
                    now,
                    cols["generated_description"],
                    cols["macros_json"],
                    cols["explanation_json"],
                    entry_id,
                    user_id,
                ),
            )
        if cur.rowcount == 0:
            return None
        row = conn.execute("SELECT * FROM meal_entries WHERE id = ?", (entry_id,)).fetchone()
    return _row_to_entry(row)


def delete_entry(*, user_id: str, entry_id: str, db_path: Path | None = None) -> bool:
    with db_conn(_db_path(db_path)) as conn:
        cur = conn.execute("DELETE FROM meal_entries WHERE id = ? AND user_id = ?", (entry_id, user_id))
        return cur.rowcount > 0


def list_entries(*, user_id: str, date: str, db_path: Path | None = None) -> List[MealEntry]:
    # eaten_at is stored as local ISO8601; the date prefix is the local day.
    with db_conn(_db_path(db_path)) as conn:
        rows = conn.execute(
            "SELECT * FROM meal_entries WHERE user_id = ? AND substr(eaten_at, 1, 10) = ? ORDER BY eaten_at ASC",
            (user_id, date),
        ).fetchall()
    return [_row_to_entry(r) for r in rows]


def daily_totals(entries: List[MealEntry]) -> MacroTotals:
    sums = {key: 0.0 for key in MACRO_KEYS}
    for entry in entries:
        if entry.macros is None:
            continue
        for key in MACRO_KEYS:
            sums[key] += float(getattr(entry.macros, key) or 0.0)
    return MacroTotals(**{key: round(value, 1) for key, value in sums.items()})
