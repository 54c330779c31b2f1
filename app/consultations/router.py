from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from app.api.schemas import CONSULTATION_ERROR_RESPONSES
from app.consultations.deps import get_consultation_service
from app.consultations.schemas import (
    ConsultationCreate,
    ConsultationOut,
    ConsultationRecordOut,
    NewConsultation,
)
from app.consultations.service import ConsultationService
from app.core.middleware.http_logging import request_id_of
from app.core.security import AuthenticatedUser, get_current_user
from app.core.settings import get_settings
from app.domain.exceptions import BusinessValidationError

router = APIRouter(
    prefix="/api/consultations",
    tags=["consultations"],
    responses=CONSULTATION_ERROR_RESPONSES,
)
logger = logging.getLogger("app.consultations.api")


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ConsultationOut,
    summary="Ask a medical question",
    description=(
        "Runs the question through the confidential LLM node and, unless `store` is false, "
        "keeps an encrypted copy of the exchange that only the caller can read back."
    ),
)
async def create_consultation(
    payload: ConsultationCreate,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ConsultationService = Depends(get_consultation_service),
) -> ConsultationOut:
    max_chars = get_settings().max_query_chars
    if len(payload.query) > max_chars:
        raise BusinessValidationError(f"query must be {max_chars} characters or fewer.")

    answer = await service.process_medical_consultation(payload.query, payload.patient_context)

    storage_id: str | None = None
    if payload.store:
        storage_id = await service.store_consultation(
            user.user_id,
            NewConsultation(query=payload.query, response=answer, metadata=payload.metadata),
        )

    logger.info(
        "Consultation completed",
        extra={
            "request_id": request_id_of(request),
            "user_id": user.user_id,
            "storage_id": storage_id,
            "success": True,
        },
    )
    return ConsultationOut(response=answer, storage_id=storage_id)


@router.get(
    "/{storage_id}",
    response_model=ConsultationRecordOut,
    summary="Read back a stored consultation",
    description="Only the user who created the consultation can read it.",
)
async def get_consultation(
    storage_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ConsultationService = Depends(get_consultation_service),
) -> ConsultationRecordOut:
    record = await service.retrieve_consultation(user.user_id, storage_id)
    return ConsultationRecordOut(**record.model_dump())
