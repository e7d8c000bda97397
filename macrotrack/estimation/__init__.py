# -*- coding: utf-8 -*-
"""Meal nutrition estimation pipeline.

Turns a meal description and/or photo into a validated macro breakdown by
calling a generative model, under the per-user monthly quota.
"""

from .models import EstimationFailure, EstimationRequest, EstimationResult, FailureKind
from .service import EstimationService, build_estimation_service

__all__ = [
    "EstimationFailure",
    "EstimationRequest",
    "EstimationResult",
    "EstimationService",
    "FailureKind",
    "build_estimation_service",
]
