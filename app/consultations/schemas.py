from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ContextValue = str | int | float | bool | None


class NewConsultation(BaseModel):
    """A finished consultation about to be stored."""

    query: str
    response: str
    metadata: dict[str, Any] | None = None


class ConsultationRecord(BaseModel):
    """
    Stored consultation. Immutable once written.

    Serialized inside the encrypted blob with camelCase keys
    (`userId`, `patientQuery`, `aiResponse`, ...).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        # Validation errors end up in server logs; keep record content out of them.
        hide_input_in_errors=True,
    )

    user_id: str
    timestamp: int = Field(description="Creation time in epoch milliseconds.")
    patient_query: str
    ai_response: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConsultationCreate(BaseModel):
    query: str = Field(
        min_length=1,
        description="The patient's question, as free text.",
        examples=["I've had a headache for three days. Should I be worried?"],
    )
    patient_context: dict[str, ContextValue] | None = Field(
        default=None,
        description=(
            "Optional patient attributes (e.g. `age`, `medicalHistory`). Empty values are "
            "ignored."
        ),
        examples=[{"age": 42, "medicalHistory": "migraine", "currentMedications": ""}],
    )
    metadata: dict[str, Any] | None = Field(
        default=None,
        description="Opaque metadata stored alongside the consultation.",
    )
    store: bool = Field(
        default=True,
        description="Persist the consultation encrypted and return its storage id.",
    )

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must not be blank")
        return value


class ConsultationOut(BaseModel):
    response: str = Field(description="The assistant's answer.")
    storage_id: str | None = Field(
        default=None,
        description="Opaque handle of the stored consultation (null when `store` is false).",
    )


class ConsultationRecordOut(BaseModel):
    user_id: str
    timestamp: int = Field(description="Creation time in epoch milliseconds.")
    patient_query: str
    ai_response: str
    metadata: dict[str, Any]
