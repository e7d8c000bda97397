# -*- coding: utf-8 -*-
"""Meals — API endpoints."""

from __future__ import annotations

import asyncio
import logging
from datetime import date as date_cls
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Query

from ..estimation import (
    EstimationFailure,
    EstimationRequest,
    EstimationResult,
    EstimationService,
    FailureKind,
    build_estimation_service,
)
from ..users import get_current_user
from .models import (
    MealDayResponse,
    MealEntryCreateRequest,
    MealEntryResponse,
    MealEntryUpdateRequest,
    MealEstimateRequest,
    MealEstimateResponse,
    UsageResponse,
)
from .storage import create_entry, daily_totals, delete_entry, get_entry, list_entries, update_entry

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/meals", tags=["Meals"])

_FAILURE_STATUS = {
    FailureKind.request_invalid: 400,
    FailureKind.quota_exceeded: 403,
    FailureKind.payload_too_large: 413,
    FailureKind.fetch_error: 422,
    FailureKind.configuration_error: 503,
    FailureKind.transient_upstream_error: 502,
    FailureKind.validation_error: 422,
}


@lru_cache(maxsize=1)
def get_estimation_service() -> EstimationService:
    return build_estimation_service()


def _failure_to_http(failure: EstimationFailure) -> HTTPException:
    return HTTPException(
        status_code=_FAILURE_STATUS[failure.kind],
        detail={
            "kind": failure.kind.value,
            "message": failure.user_message,
            "attempts": failure.attempts,
        },
    )


async def _estimate_or_raise(
    service: EstimationService, user_id: str, description: str | None, image_ref: str | None
) -> EstimationResult:
    outcome = await service.estimate(user_id, EstimationRequest(description=description, image_ref=image_ref))
    if isinstance(outcome, EstimationFailure):
        raise _failure_to_http(outcome)
    return outcome


@router.post("/estimate", response_model=MealEstimateResponse, summary="Estimate macros (no storage)")
async def estimate(
    request: MealEstimateRequest,
    user: dict = Depends(get_current_user),
    service: EstimationService = Depends(get_estimation_service),
):
    result = await _estimate_or_raise(service, user["id"], request.description, request.image_ref)
    return MealEstimateResponse(**result.model_dump())


@router.post("/entries", response_model=MealEntryResponse, summary="Estimate macros and save a meal entry")
async def create_meal_entry(
    request: MealEntryCreateRequest,
    user: dict = Depends(get_current_user),
    service: EstimationService = Depends(get_estimation_service),
):
    result = await _estimate_or_raise(service, user["id"], request.description, request.image_ref)
    try:
        entry = await asyncio.to_thread(
            create_entry,
            user_id=user["id"],
            description=(request.description or "").strip() or None,
            image_ref=(request.image_ref or "").strip() or None,
            eaten_at=request.eaten_at,
            result=result,
        )
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to save entry: {exc}") from exc
    return MealEntryResponse(entry=entry)


@router.put("/entries/{entry_id}", response_model=MealEntryResponse, summary="Update a meal entry")
async def update_meal_entry(
    entry_id: str,
    request: MealEntryUpdateRequest,
    user: dict = Depends(get_current_user),
    service: EstimationService = Depends(get_estimation_service),
):
    existing = await asyncio.to_thread(get_entry, user_id=user["id"], entry_id=entry_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Entry not found")

    description = (request.description or "").strip() or None
    image_ref = (request.image_ref or "").strip() or None

    warnings: list[str] = []
    result: EstimationResult | None = None
    if description != existing.description or image_ref != existing.image_ref:
        outcome = await service.estimate(user["id"], EstimationRequest(description=description, image_ref=image_ref))
        if isinstance(outcome, EstimationFailure):
            # Keep the previous estimate; the edit itself still goes through.
            log.info("re-estimation failed for entry=%s: %s", entry_id, outcome.message)
            warnings.append(outcome.user_message)
        else:
            result = outcome

    entry = await asyncio.to_thread(
        update_entry,
        user_id=user["id"],
        entry_id=entry_id,
        description=description,
        image_ref=image_ref,
        eaten_at=request.eaten_at,
        result=result,
    )
    if entry is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    return MealEntryResponse(entry=entry, warnings=warnings)


@router.delete("/entries/{entry_id}", summary="Delete a meal entry")
def delete_meal_entry(entry_id: str, user: dict = Depends(get_current_user)):
    if not delete_entry(user_id=user["id"], entry_id=entry_id):
        raise HTTPException(status_code=404, detail="Entry not found")
    return {"status": "ok", "entry_id": entry_id}


@router.get("/entries", response_model=MealDayResponse, summary="Meal entries for one day")
def list_meal_entries(
    date: str = Query(..., description="YYYY-MM-DD"),
    user: dict = Depends(get_current_user),
):
    try:
        date_cls.fromisoformat(date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid date: {date}") from exc
    entries = list_entries(user_id=user["id"], date=date)
    return MealDayResponse(date=date, count=len(entries), entries=entries, totals=daily_totals(entries))


@router.get("/usage", response_model=UsageResponse, summary="Monthly AI estimation usage")
def usage(
    user: dict = Depends(get_current_user),
    service: EstimationService = Depends(get_estimation_service),
):
    status = service.quota_gate.status(user["id"])
    return UsageResponse(can_perform=status.can_perform, usage=status.usage, limit=status.limit)
