from __future__ import annotations

from pydantic import BaseModel, Field


class HealthOut(BaseModel):
    """Health check response."""

    status: str = Field(
        description="Service status indicator. `ok` means the API process is up and responding.",
        examples=["ok"],
    )


class ErrorOut(BaseModel):
    """Error body. `detail` is always a fixed, caller-safe message."""

    detail: str = Field(examples=["Medical consultation processing failed"])


CONSULTATION_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    401: {"model": ErrorOut, "description": "Missing or invalid bearer token."},
    404: {"model": ErrorOut, "description": "No consultation the caller may read has this id."},
    500: {"model": ErrorOut, "description": "Encrypted storage failed."},
    502: {"model": ErrorOut, "description": "The confidential processing backend failed."},
}
