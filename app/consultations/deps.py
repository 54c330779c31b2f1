from __future__ import annotations

from fastapi import Depends

from app.consultations.service import ConsultationService
from app.core.secure.provider import SecureClientProvider, get_secure_client_provider
from app.core.settings import get_settings


def get_consultation_service(
    provider: SecureClientProvider = Depends(get_secure_client_provider),
) -> ConsultationService:
    """Dependency provider for ConsultationService (override in tests)."""

    return ConsultationService(clients=provider, model=get_settings().llm_model)
