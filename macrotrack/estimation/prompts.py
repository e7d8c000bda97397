# -*- coding: utf-8 -*-
"""Estimation — model instruction text."""

from __future__ import annotations

SYSTEM_PROMPT = (
    "You are a nutrition assistant. Return STRICT JSON only. "
    "Do NOT wrap in markdown or code fences. "
    "Output MUST start with '{' and end with '}'. "
    "Use double quotes for all keys/strings and no trailing commas."
)

_SCHEMA = (
    "Output JSON schema (STRICT):\n"
    "{\n"
    '{description_line}'
    '  "macros": {\n'
    '    "calories": number,\n'
    '    "protein": number,\n'
    '    "carbs": number,\n'
    '    "fat": number,\n'
    '    "water": number\n'
    "  },\n"
    '  "explanation": {\n'
    '    "calories": "string",\n'
    '    "protein": "string",\n'
    '    "carbs": "string",\n'
    '    "fat": "string",\n'
    '    "water": "string"\n'
    "  }\n"
    "}\n"
)

_CONSISTENCY_RULES = (
    "Rules:\n"
    "- calories in kcal; protein, carbs and fat in grams; water in millilitres.\n"
    "- All five macros values are non-negative numbers (no units, no ranges, no strings).\n"
    "- Each explanation value shows the per-ingredient derivation for that field, "
    "e.g. \"150g chicken breast (46g) + 1 tbsp olive oil (0g) = 46g\".\n"
    "- Every macros value MUST equal the arithmetic result of its explanation text.\n"
    "- Both objects MUST contain exactly the keys calories, protein, carbs, fat, water.\n"
)


def build_prompt(description: str | None, has_image: bool) -> str:
    text = (description or "").strip()
    if not text and not has_image:
        raise ValueError("a description or an image is required to build a prompt")

    lines = [SYSTEM_PROMPT, ""]
    if text and has_image:
        lines.extend(
            [
                f'Meal description: "{text}"',
                "A photo of the same meal is attached.",
                "Task:",
                "1) Identify the foods using BOTH the description and the photo.",
                "2) Reconcile the two into ONE consistent estimate: use the photo to judge portion sizes,",
                "   the cooking method (fried vs grilled, etc.), and any sides, sauces or garnish the",
                "   description does not mention. Where they disagree, explain which evidence you used.",
                "3) Estimate calories, protein, carbs, fat and water for the whole portion.",
            ]
        )
    elif has_image:
        lines.extend(
            [
                "A photo of a meal is attached; no description was given.",
                "Task:",
                "1) Identify all foods in the photo and estimate portion sizes.",
                "2) Write a short description of the meal (one sentence) in the \"description\" field.",
                "3) Estimate calories, protein, carbs, fat and water for the whole portion shown.",
            ]
        )
    else:
        lines.extend(
            [
                f'Meal description: "{text}"',
                "Task:",
                "1) Identify the foods and assume typical portions where amounts are not given.",
                "2) Estimate calories, protein, carbs, fat and water for the whole meal.",
            ]
        )

    description_line = '  "description": "string",\n' if has_image and not text else ""
    lines.append("")
    lines.append(_CONSISTENCY_RULES)
    lines.append(_SCHEMA.replace("{description_line}", description_line))
    return "\n".join(lines)
