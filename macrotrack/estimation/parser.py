# -*- coding: utf-8 -*-
"""Estimation — extract and validate the JSON payload from model output."""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .models import MACRO_KEYS, EstimationFailure, Explanation, FailureKind, MacroBreakdown

PREVIEW_CHARS = 200

_FENCE_OPEN_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


@dataclass(frozen=True)
class ParsedEstimation:
    macros: MacroBreakdown
    explanation: Explanation
    generated_description: Optional[str] = None


def _preview(text: str) -> str:
    return (text or "").replace("\n", " ").strip()[:PREVIEW_CHARS]


def _validation_error(message: str, raw_text: str) -> EstimationFailure:
    return EstimationFailure(kind=FailureKind.validation_error, message=message, detail=_preview(raw_text))


def strip_fences(text: str) -> str:
    cleaned = (text or "").strip()
    cleaned = _FENCE_OPEN_RE.sub("", cleaned)
    cleaned = _FENCE_CLOSE_RE.sub("", cleaned)
    return cleaned


def _remove_trailing_commas(text: str) -> str:
    """Remove trailing commas before ``}``/``]`` while preserving string literals."""
    out: list[str] = []
    in_str = False
    escaped = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_str:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == "\"":
                in_str = False
            i += 1
            continue

        if ch == "\"":
            in_str = True
            out.append(ch)
            i += 1
            continue

        if ch == ",":
            j = i + 1
            while j < len(text) and text[j] in " \t\r\n":
                j += 1
            if j < len(text) and text[j] in "}]":
                i += 1
                continue

        out.append(ch)
        i += 1
    return "".join(out)


def _balanced_spans(cleaned: str) -> List[str]:
    candidates: list[str] = []
    in_str = False
    escaped = False
    depth = 0
    start_idx: int | None = None

    for i, ch in enumerate(cleaned):
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == "\"":
                in_str = False
            continue

        if ch == "\"":
            # Quotes only matter inside an object; prose apostrophes/quotes are ignored.
            if depth > 0:
                in_str = True
            continue

        if ch == "{":
            if depth == 0:
                start_idx = i
            depth += 1
            continue

        if ch == "}":
            if depth > 0:
                depth -= 1
                if depth == 0 and start_idx is not None:
                    candidates.append(cleaned[start_idx : i + 1])
                    start_idx = None
            continue

    return candidates


def iter_json_object_candidates(text: str) -> List[str]:
    """Balanced top-level ``{...}`` spans in arbitrary text, string literals respected."""
    return _balanced_spans(strip_fences(text))


def _sanitize_json_like(text: str) -> str:
    # Common LLM output issues: full-width punctuation, curly quotes, trailing commas.
    cleaned = text
    cleaned = cleaned.replace("：", ":").replace("，", ",")
    cleaned = cleaned.replace("“", "\"").replace("”", "\"")
    return _remove_trailing_commas(cleaned)


def _load_object(candidates: List[str], *, nested: bool = False) -> Optional[Dict[str, Any]]:
    for candidate in candidates:
        for attempt in (candidate, _sanitize_json_like(candidate)):
            try:
                parsed = json.loads(attempt)
            except ValueError:
                continue
            if isinstance(parsed, dict) and (not nested or "macros" in parsed):
                return parsed
        # A stray "{" in prose can swallow the real object; look inside the span.
        inner = _load_object(_balanced_spans(candidate[1:]), nested=True)
        if inner is not None:
            return inner
    return None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


def _missing_keys(obj: Any, check) -> List[str]:
    if not isinstance(obj, dict):
        return list(MACRO_KEYS)
    return [key for key in MACRO_KEYS if key not in obj or not check(obj[key])]


def parse_estimation(raw_text: str) -> ParsedEstimation | EstimationFailure:
    candidates = iter_json_object_candidates(raw_text or "")
    if not candidates:
        return _validation_error("no JSON found", raw_text)

    payload = _load_object(candidates)
    if payload is None:
        return _validation_error("malformed JSON", raw_text)

    bad_macros = _missing_keys(payload.get("macros"), lambda v: _as_number(v) is not None)
    if bad_macros:
        return _validation_error(f"macros incomplete: {', '.join(bad_macros)}", raw_text)

    bad_explanation = _missing_keys(payload.get("explanation"), lambda v: isinstance(v, str))
    if bad_explanation:
        return _validation_error(f"explanation incomplete: {', '.join(bad_explanation)}", raw_text)

    macros = MacroBreakdown(**{key: _as_number(payload["macros"][key]) for key in MACRO_KEYS})
    explanation = Explanation(**{key: payload["explanation"][key] for key in MACRO_KEYS})

    description = payload.get("description")
    generated = description.strip() if isinstance(description, str) and description.strip() else None
    return ParsedEstimation(macros=macros, explanation=explanation, generated_description=generated)
