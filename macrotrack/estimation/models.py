# -*- coding: utf-8 -*-
"""Estimation — request/result models and the failure taxonomy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

MACRO_KEYS: tuple[str, ...] = ("calories", "protein", "carbs", "fat", "water")


class MacroBreakdown(BaseModel):
    calories: float = Field(..., ge=0, description="kcal")
    protein: float = Field(..., ge=0, description="grams")
    carbs: float = Field(..., ge=0, description="grams")
    fat: float = Field(..., ge=0, description="grams")
    water: float = Field(..., ge=0, description="millilitres")


class Explanation(BaseModel):
    """Per-field derivation text; each string adds up to the matching macro value."""

    calories: str
    protein: str
    carbs: str
    fat: str
    water: str


class EstimationResult(BaseModel):
    macros: MacroBreakdown
    explanation: Explanation
    generated_description: Optional[str] = None
    attempts: int = Field(1, ge=1, description="Model attempts used (not persisted)")
    model: str = ""


class FailureKind(str, Enum):
    request_invalid = "request_invalid"
    quota_exceeded = "quota_exceeded"
    payload_too_large = "payload_too_large"
    fetch_error = "fetch_error"
    configuration_error = "configuration_error"
    transient_upstream_error = "transient_upstream_error"
    validation_error = "validation_error"


_USER_MESSAGES = {
    FailureKind.request_invalid: "Please describe the meal or add a photo.",
    FailureKind.quota_exceeded: "Monthly AI estimation limit reached. Please upgrade to continue.",
    FailureKind.payload_too_large: "The photo is too large. Please choose a smaller image.",
    FailureKind.fetch_error: "The photo could not be loaded. Please upload it again.",
    FailureKind.configuration_error: "Nutrition estimation is unavailable right now. Please contact support.",
    FailureKind.transient_upstream_error: "Nutrition estimation failed. Please try again.",
    FailureKind.validation_error: "Could not read a complete estimate. Please provide a clearer description.",
}


@dataclass(frozen=True)
class EstimationFailure:
    kind: FailureKind
    message: str
    attempts: int | None = None
    detail: str | None = None

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES[self.kind]


@dataclass(frozen=True)
class EstimationRequest:
    description: str | None = None
    image_ref: str | None = None

    @property
    def clean_description(self) -> str | None:
        if self.description is None:
            return None
        text = self.description.strip()
        return text or None

    @property
    def clean_image_ref(self) -> str | None:
        if self.image_ref is None:
            return None
        ref = self.image_ref.strip()
        return ref or None

    def validate(self) -> EstimationFailure | None:
        if self.clean_description is None and self.clean_image_ref is None:
            return EstimationFailure(
                kind=FailureKind.request_invalid,
                message="either a description or an image is required",
            )
        return None


class AttemptOutcome(str, Enum):
    success = "success"
    retryable_failure = "retryable_failure"
    fatal_failure = "fatal_failure"


@dataclass(frozen=True)
class ModelAttempt:
    attempt_number: int
    outcome: AttemptOutcome
    error: str | None = None
