"""Tests for the concrete secure client: Fernet codec, SQL record store and LLM node calls."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import pytest
from cryptography.fernet import Fernet

from app.core.db import create_engine, create_sessionmaker
from app.core.secure.client import (
    ConfidentialTaskError,
    ConsultationTask,
    SecureClientConfig,
    SecureClientInitializationError,
    SecureClientNotConnectedError,
    SecureProcessingClient,
)
from app.core.secure.codec import CodecError
from app.core.secure.store import RecordNotFoundError

T = TypeVar("T")

_TASK = ConsultationTask(
    system_prompt="You are careful.",
    user_prompt="Is a fever of 38C dangerous?",
    model="meta-llama/Llama-3.1-8B-Instruct",
    temperature=0.3,
    max_tokens=1000,
)


def _completion(content: str, **extra: Any) -> dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}], **extra}


def _config(**overrides: Any) -> SecureClientConfig:
    values: dict[str, Any] = {
        "api_key": "node-key",
        "base_url": "https://nilai.test/v1/",
        "timeout_seconds": 5.0,
        "encryption_key": Fernet.generate_key().decode("ascii"),
    }
    values.update(overrides)
    return SecureClientConfig(**values)


def _run_with_client(
    database_url: str,
    body: Callable[[SecureProcessingClient], Awaitable[T]],
    *,
    config: SecureClientConfig | None = None,
    handler: Callable[[httpx.Request], httpx.Response] | None = None,
) -> T:
    async def run() -> T:
        engine = create_engine(database_url=database_url)
        transport = httpx.MockTransport(handler or (lambda request: httpx.Response(500)))
        client = SecureProcessingClient(
            config=config or _config(),
            sessionmaker=create_sessionmaker(engine=engine),
            transport=transport,
        )
        try:
            await client.connect()
            return await body(client)
        finally:
            await client.close()
            await engine.dispose()

    return asyncio.run(run())


def test_encrypt_decrypt_are_inverse_and_opaque(database_url: str) -> None:
    record = {"userId": "u1", "patientQuery": "chest pain", "metadata": {"n": 1}}

    async def body(client: SecureProcessingClient):
        blob = await client.encrypt(record)
        return blob, await client.decrypt(blob)

    blob, decrypted = _run_with_client(database_url, body)

    assert decrypted == record
    assert "chest pain" not in blob


def test_tampered_blob_fails_to_decrypt(database_url: str) -> None:
    async def body(client: SecureProcessingClient):
        blob = await client.encrypt({"a": 1})
        forged = blob[:-4] + ("AAAA" if not blob.endswith("AAAA") else "BBBB")
        await client.decrypt(forged)

    with pytest.raises(CodecError):
        _run_with_client(database_url, body)


def test_store_retrieve_round_trip_by_handle(database_url: str) -> None:
    async def body(client: SecureProcessingClient):
        first = await client.store("blob-one")
        second = await client.store("blob-two")
        return first, second, await client.retrieve(first), await client.retrieve(second)

    first, second, blob_one, blob_two = _run_with_client(database_url, body)

    assert first != second
    assert (blob_one, blob_two) == ("blob-one", "blob-two")


@pytest.mark.parametrize(
    "storage_id", ["00000000-0000-0000-0000-000000000000", "not-a-uuid", ""]
)
def test_retrieve_unknown_or_malformed_handle(database_url: str, storage_id: str) -> None:
    async def body(client: SecureProcessingClient):
        await client.retrieve(storage_id)

    with pytest.raises(RecordNotFoundError):
        _run_with_client(database_url, body)


def test_execute_task_sends_chat_completion_and_passes_signature(database_url: str) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_completion("Seek care if above 39C.", signature="0xabc"))

    async def body(client: SecureProcessingClient):
        return await client.execute_confidential_task(_TASK)

    result = _run_with_client(database_url, body, handler=handler)

    assert result.response == "Seek care if above 39C."
    assert result.signature == "0xabc"

    (request,) = seen
    assert str(request.url) == "https://nilai.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer node-key"
    payload = json.loads(request.content)
    assert payload["model"] == "meta-llama/Llama-3.1-8B-Instruct"
    assert payload["temperature"] == 0.3
    assert payload["max_tokens"] == 1000
    assert payload["stream"] is False
    assert payload["messages"] == [
        {"role": "system", "content": "You are careful."},
        {"role": "user", "content": "Is a fever of 38C dangerous?"},
    ]


def test_execute_task_without_signature(database_url: str) -> None:
    async def body(client: SecureProcessingClient):
        return await client.execute_confidential_task(_TASK)

    result = _run_with_client(
        database_url, body, handler=lambda request: httpx.Response(200, json=_completion("ok"))
    )
    assert result.signature is None


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json=_completion("   ")),
    ],
)
def test_execute_task_upstream_failures(database_url: str, response: httpx.Response) -> None:
    async def body(client: SecureProcessingClient):
        await client.execute_confidential_task(_TASK)

    with pytest.raises(ConfidentialTaskError):
        _run_with_client(database_url, body, handler=lambda request: response)


def test_execute_task_transport_error(database_url: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async def body(client: SecureProcessingClient):
        await client.execute_confidential_task(_TASK)

    with pytest.raises(ConfidentialTaskError):
        _run_with_client(database_url, body, handler=handler)


@pytest.mark.parametrize(
    "overrides",
    [{"encryption_key": None}, {"encryption_key": "not-a-fernet-key"}, {"api_key": None}],
)
def test_connect_rejects_incomplete_configuration(database_url: str, overrides) -> None:
    async def body(client: SecureProcessingClient):
        return None

    with pytest.raises(SecureClientInitializationError):
        _run_with_client(database_url, body, config=_config(**overrides))


def test_operations_require_connect(database_url: str) -> None:
    async def run() -> None:
        engine = create_engine(database_url=database_url)
        client = SecureProcessingClient(
            config=_config(), sessionmaker=create_sessionmaker(engine=engine)
        )
        try:
            with pytest.raises(SecureClientNotConnectedError):
                await client.encrypt({"a": 1})
            with pytest.raises(SecureClientNotConnectedError):
                await client.retrieve("x")
            with pytest.raises(SecureClientNotConnectedError):
                await client.execute_confidential_task(_TASK)
        finally:
            await engine.dispose()

    asyncio.run(run())
