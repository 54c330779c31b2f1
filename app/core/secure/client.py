from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.secure.codec import FernetCodec
from app.core.secure.store import RecordStore


class SecureClientError(Exception):
    """Base error for secure processing failures (never shown to API callers)."""


class SecureClientInitializationError(SecureClientError):
    """Raised when the client cannot be configured or connected."""


class SecureClientNotConnectedError(SecureClientError):
    """Raised when an operation is attempted before `connect()`."""


class ConfidentialTaskError(SecureClientError):
    """Raised when the confidential LLM node fails or returns an unexpected response."""


@dataclass(frozen=True)
class SecureClientConfig:
    api_key: str | None
    base_url: str
    timeout_seconds: float
    encryption_key: str | None


@dataclass(frozen=True)
class ConsultationTask:
    """A single confidential LLM execution request. Never persisted."""

    system_prompt: str
    user_prompt: str
    model: str
    temperature: float
    max_tokens: int


@dataclass(frozen=True)
class TaskResult:
    response: str
    # Attestation signature returned by the node, passed through untouched.
    signature: str | None = None


class SecureProcessingClient:
    """
    Client for confidential computation and encrypted record storage.

    Design notes:
    - No logging in this module (payloads may contain PHI).
    - Encrypt/decrypt are inverses; store/retrieve round-trip by handle.
    - Task execution is a plain request/response call against an OpenAI-compatible
      chat completions endpoint; no streaming.
    """

    def __init__(
        self,
        *,
        config: SecureClientConfig,
        sessionmaker: async_sessionmaker[AsyncSession],
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._sessionmaker = sessionmaker
        self._transport = transport
        self._codec: FernetCodec | None = None
        self._store: RecordStore | None = None
        self._http: httpx.AsyncClient | None = None

    @property
    def connected(self) -> bool:
        return self._http is not None

    async def connect(self) -> None:
        if not self._config.encryption_key:
            raise SecureClientInitializationError("Encryption key is not configured")
        if not self._config.api_key:
            raise SecureClientInitializationError("Confidential LLM API key is not configured")

        try:
            codec = FernetCodec(key=self._config.encryption_key)
        except ValueError as exc:
            raise SecureClientInitializationError("Encryption key is invalid") from exc

        store = RecordStore(sessionmaker=self._sessionmaker)
        try:
            await store.ping()
        except SQLAlchemyError as exc:
            raise SecureClientInitializationError("Record store is unreachable") from exc

        self._codec = codec
        self._store = store
        self._http = httpx.AsyncClient(
            timeout=self._config.timeout_seconds, transport=self._transport
        )

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
        self._http = None
        self._codec = None
        self._store = None

    def _require_codec(self) -> FernetCodec:
        if self._codec is None:
            raise SecureClientNotConnectedError("Secure client is not connected")
        return self._codec

    def _require_store(self) -> RecordStore:
        if self._store is None:
            raise SecureClientNotConnectedError("Secure client is not connected")
        return self._store

    async def encrypt(self, data: Mapping[str, Any]) -> str:
        return self._require_codec().encrypt(data)

    async def decrypt(self, blob: str) -> dict[str, Any]:
        return self._require_codec().decrypt(blob)

    async def store(self, blob: str) -> str:
        return await self._require_store().save(ciphertext=blob)

    async def retrieve(self, storage_id: str) -> str:
        return await self._require_store().load(storage_id=storage_id)

    async def execute_confidential_task(self, task: ConsultationTask) -> TaskResult:
        if self._http is None:
            raise SecureClientNotConnectedError("Secure client is not connected")

        url = f"{self._config.base_url.rstrip('/')}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }
        payload: dict[str, Any] = {
            "model": task.model,
            "temperature": task.temperature,
            "max_tokens": task.max_tokens,
            "messages": [
                {"role": "system", "content": task.system_prompt},
                {"role": "user", "content": task.user_prompt},
            ],
            "stream": False,
        }

        try:
            resp = await self._http.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise ConfidentialTaskError("Confidential LLM request timed out") from exc
        except httpx.HTTPError as exc:
            raise ConfidentialTaskError("Confidential LLM request failed") from exc

        if resp.status_code != 200:
            raise ConfidentialTaskError(
                f"Confidential LLM node returned HTTP {resp.status_code}"
            )

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ConfidentialTaskError("Confidential LLM response was malformed") from exc

        if not isinstance(content, str) or not content.strip():
            raise ConfidentialTaskError("Confidential LLM response was empty")

        signature = data.get("signature")
        return TaskResult(
            response=content,
            signature=signature if isinstance(signature, str) else None,
        )
