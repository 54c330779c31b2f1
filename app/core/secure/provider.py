from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from fastapi import Request

from app.core.secure.client import (
    ConsultationTask,
    SecureClientConfig,
    SecureProcessingClient,
    TaskResult,
)
from app.core.settings import Settings

logger = logging.getLogger("app.secure_client")


class SecureClient(Protocol):
    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def encrypt(self, data: dict[str, Any]) -> str: ...

    async def decrypt(self, blob: str) -> dict[str, Any]: ...

    async def store(self, blob: str) -> str: ...

    async def retrieve(self, storage_id: str) -> str: ...

    async def execute_confidential_task(self, task: ConsultationTask) -> TaskResult: ...


class SecureClientProvider:
    """
    Holds the single shared secure client for this process.

    The client is created on first use. Creation is guarded by an asyncio.Lock with a
    second check inside it, so concurrent first requests trigger exactly one
    `connect()`. A failed connect leaves the provider empty; the next call retries.
    """

    def __init__(self, *, factory: Callable[[], SecureClient]):
        self._factory = factory
        self._client: SecureClient | None = None
        self._lock = asyncio.Lock()

    async def get_client(self) -> SecureClient:
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is None:
                client = self._factory()
                try:
                    await client.connect()
                except Exception:
                    logger.exception(
                        "Secure client initialization failed",
                        extra={"operation": "secure_client.connect"},
                    )
                    await client.close()
                    raise
                self._client = client
                logger.info(
                    "Secure client initialized",
                    extra={"operation": "secure_client.connect"},
                )
            return self._client

    async def close(self) -> None:
        async with self._lock:
            if self._client is not None:
                await self._client.close()
                self._client = None


def build_secure_client_provider(*, settings: Settings, sessionmaker: Any) -> SecureClientProvider:
    config = SecureClientConfig(
        api_key=settings.nilai_api_key,
        base_url=settings.nilai_base_url,
        timeout_seconds=float(settings.nilai_timeout_seconds),
        encryption_key=settings.secure_encryption_key,
    )
    return SecureClientProvider(
        factory=lambda: SecureProcessingClient(config=config, sessionmaker=sessionmaker)
    )


def get_secure_client_provider(request: Request) -> SecureClientProvider:
    return request.app.state.secure_client_provider
