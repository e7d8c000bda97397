# -*- coding: utf-8 -*-
"""Meals — Pydantic models."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..estimation.models import Explanation, MacroBreakdown


class MealEstimateRequest(BaseModel):
    description: Optional[str] = Field(None, max_length=2000, description="Free-text meal description")
    image_ref: Optional[str] = Field(None, max_length=2048, description="Uploaded image URL or upload path")


class MealEstimateResponse(BaseModel):
    macros: MacroBreakdown
    explanation: Explanation
    generated_description: Optional[str] = None
    attempts: int
    model: str


class MealEntryCreateRequest(MealEstimateRequest):
    eaten_at: str = Field(..., description="ISO8601 local timestamp")


class MealEntryUpdateRequest(MealEstimateRequest):
    eaten_at: str = Field(..., description="ISO8601 local timestamp")


class MealEntry(BaseModel):
    id: str
    user_id: str
    description: Optional[str] = None
    image_ref: Optional[str] = None
    generated_description: Optional[str] = None
    macros: Optional[MacroBreakdown] = None
    explanation: Optional[Explanation] = None
    eaten_at: str
    created_at: str
    updated_at: str


class MealEntryResponse(BaseModel):
    entry: MealEntry
    warnings: List[str] = []


class MacroTotals(BaseModel):
    calories: float = Field(0.0, ge=0)
    protein: float = Field(0.0, ge=0)
    carbs: float = Field(0.0, ge=0)
    fat: float = Field(0.0, ge=0)
    water: float = Field(0.0, ge=0)


class MealDayResponse(BaseModel):
    date: str = Field(..., description="YYYY-MM-DD")
    count: int
    entries: List[MealEntry]
    totals: MacroTotals


class UsageResponse(BaseModel):
    can_perform: bool
    usage: int
    limit: Optional[int] = None
