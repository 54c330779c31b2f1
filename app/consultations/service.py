from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any, Protocol

from app.consultations.prompt import build_medical_system_prompt
from app.consultations.schemas import ConsultationRecord, NewConsultation
from app.core.metrics import record_consultation_operation
from app.core.secure.client import ConsultationTask
from app.core.secure.provider import SecureClient
from app.core.secure.store import RecordNotFoundError
from app.domain.exceptions import (
    ConsultationAccessDeniedError,
    ConsultationNotFoundError,
    ConsultationProcessingError,
    ConsultationRetrievalError,
    ConsultationStorageError,
)

logger = logging.getLogger("app.consultations")

# Conservative sampling for medical phrasing.
CONSULTATION_TEMPERATURE = 0.3
CONSULTATION_MAX_TOKENS = 1000


class SecureClientSource(Protocol):
    async def get_client(self) -> SecureClient: ...


def _now_millis() -> int:
    return int(time.time() * 1000)


class ConsultationService:
    """
    Consultation pipeline: prompt construction, confidential execution, and
    encrypted persistence with ownership checks.

    IMPORTANT (safety):
    - Patient queries, prompts and model output are never logged.
    - Callers only ever see the fixed messages of `app.domain.exceptions`.
    """

    def __init__(self, *, clients: SecureClientSource, model: str):
        self._clients = clients
        self._model = model

    async def process_medical_consultation(
        self,
        query: str,
        patient_context: Mapping[str, Any] | None = None,
    ) -> str:
        try:
            client = await self._clients.get_client()
            task = ConsultationTask(
                system_prompt=build_medical_system_prompt(patient_context),
                user_prompt=query,
                model=self._model,
                temperature=CONSULTATION_TEMPERATURE,
                max_tokens=CONSULTATION_MAX_TOKENS,
            )
            logger.debug(
                "Executing confidential consultation task", extra={"operation": "process"}
            )
            result = await client.execute_confidential_task(task)
        except Exception as exc:  # noqa: BLE001 - every backend failure maps to one public error
            logger.error(
                "Medical consultation processing failed",
                exc_info=True,
                extra={"operation": "process", "error": type(exc).__name__},
            )
            record_consultation_operation(operation="process", outcome="error")
            raise ConsultationProcessingError() from exc

        record_consultation_operation(operation="process", outcome="success")
        return result.response

    async def store_consultation(self, user_id: str, consultation: NewConsultation) -> str:
        record = ConsultationRecord(
            user_id=user_id,
            timestamp=_now_millis(),
            patient_query=consultation.query,
            ai_response=consultation.response,
            metadata=dict(consultation.metadata or {}),
        )
        try:
            client = await self._clients.get_client()
            blob = await client.encrypt(record.model_dump(by_alias=True))
            storage_id = await client.store(blob)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Failed to store consultation",
                exc_info=True,
                extra={"operation": "store", "user_id": user_id, "error": type(exc).__name__},
            )
            record_consultation_operation(operation="store", outcome="error")
            raise ConsultationStorageError() from exc

        logger.info(
            "Consultation stored",
            extra={"operation": "store", "user_id": user_id, "storage_id": storage_id},
        )
        record_consultation_operation(operation="store", outcome="success")
        return storage_id

    async def retrieve_consultation(self, user_id: str, storage_id: str) -> ConsultationRecord:
        try:
            client = await self._clients.get_client()
            blob = await client.retrieve(storage_id)
            record = ConsultationRecord.model_validate(await client.decrypt(blob))
        except RecordNotFoundError as exc:
            logger.info(
                "Consultation not found",
                extra={"operation": "retrieve", "user_id": user_id, "storage_id": storage_id},
            )
            record_consultation_operation(operation="retrieve", outcome="not_found")
            raise ConsultationNotFoundError() from exc
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Failed to retrieve consultation",
                exc_info=True,
                extra={
                    "operation": "retrieve",
                    "user_id": user_id,
                    "storage_id": storage_id,
                    "error": type(exc).__name__,
                },
            )
            record_consultation_operation(operation="retrieve", outcome="error")
            raise ConsultationRetrievalError() from exc

        # Storage is not access-control aware; ownership is enforced here, after decryption.
        if record.user_id != user_id:
            logger.warning(
                "Unauthorized attempt to access consultation",
                extra={"operation": "retrieve", "user_id": user_id, "storage_id": storage_id},
            )
            record_consultation_operation(operation="retrieve", outcome="denied")
            raise ConsultationAccessDeniedError()

        record_consultation_operation(operation="retrieve", outcome="success")
        return record
