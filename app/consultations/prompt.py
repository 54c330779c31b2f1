from __future__ import annotations

import re
import textwrap
from collections.abc import Mapping
from typing import Any

# Fixed text; no part of it may be influenced by request data.
MEDICAL_GUIDELINES = textwrap.dedent(
    """
    You are a compassionate medical AI assistant providing consultations to patients.
    Your role is to offer helpful information based on the patient's symptoms and concerns.

    IMPORTANT GUIDELINES:
    - Be clear about your limitations as an AI and when a patient should seek in-person medical care.
    - Never make definitive diagnoses. Instead, suggest possibilities and next steps.
    - Always prioritize patient safety in your recommendations.
    - Encourage appropriate follow-up with healthcare providers.
    - For emergencies, always advise seeking immediate medical attention.
    - Use plain, accessible language when explaining medical concepts.
    - Be respectful, empathetic, and professional in your responses.
    """
).strip()

NO_PATIENT_INFORMATION = "No additional patient information provided."

_UPPERCASE = re.compile(r"([A-Z])")


def format_key(key: str) -> str:
    """Turn a camelCase context key into readable words: `followUpDate` -> `Follow Up Date`."""

    spaced = _UPPERCASE.sub(r" \1", key).strip()
    if not spaced:
        return spaced
    return spaced[0].upper() + spaced[1:]


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def render_patient_context(patient_context: Mapping[str, Any] | None) -> str:
    """Render truthy context entries in insertion order, one `Key: value` per line."""

    lines = [
        f"{format_key(key)}: {_format_value(value)}"
        for key, value in (patient_context or {}).items()
        if value
    ]
    return "\n".join(lines) or NO_PATIENT_INFORMATION


def build_medical_system_prompt(patient_context: Mapping[str, Any] | None = None) -> str:
    """
    Create the system prompt for a medical consultation.

    Safety:
    - Guidelines come first and are constant.
    - Patient context is only ever rendered inside the PATIENT INFORMATION block.
    """

    return "\n\n".join(
        [
            MEDICAL_GUIDELINES,
            f"PATIENT INFORMATION:\n{render_patient_context(patient_context)}",
        ]
    )
