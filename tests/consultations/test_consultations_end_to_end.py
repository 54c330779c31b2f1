"""End-to-end: real secure client (Fernet + SQLite) with a mocked confidential LLM node."""

from __future__ import annotations

import json

import httpx
import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine as create_sync_engine
from sqlalchemy import text

from app.core.secure.client import SecureClientConfig, SecureProcessingClient
from app.core.secure.provider import SecureClientProvider, get_secure_client_provider
from app.core.settings import get_settings
from app.main import create_app
from tests._helpers import auth_headers


def _node(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(
        200,
        json={
            "choices": [{"message": {"content": f"Answer for: {body['messages'][1]['content']}"}}],
            "signature": "0xfeed",
        },
    )


@pytest.fixture
def e2e_client() -> TestClient:
    app = create_app()

    def provider_with_mock_node(request: Request) -> SecureClientProvider:
        state = request.app.state
        if not hasattr(state, "test_provider"):
            settings = get_settings()
            config = SecureClientConfig(
                api_key=settings.nilai_api_key,
                base_url=settings.nilai_base_url,
                timeout_seconds=settings.nilai_timeout_seconds,
                encryption_key=settings.secure_encryption_key,
            )
            state.test_provider = SecureClientProvider(
                factory=lambda: SecureProcessingClient(
                    config=config,
                    sessionmaker=state.db_sessionmaker,
                    transport=httpx.MockTransport(_node),
                )
            )
        return state.test_provider

    app.dependency_overrides[get_secure_client_provider] = provider_with_mock_node
    with TestClient(app) as c:
        yield c
        if hasattr(app.state, "test_provider"):
            c.portal.call(app.state.test_provider.close)


def test_consultation_is_stored_encrypted_and_readable_by_owner(
    e2e_client: TestClient, database_url: str
) -> None:
    res = e2e_client.post(
        "/api/consultations",
        json={"query": "Is ibuprofen safe with asthma?", "patient_context": {"age": 35}},
        headers=auth_headers("patient-7"),
    )
    assert res.status_code == 201, res.text
    created = res.json()
    assert created["response"] == "Answer for: Is ibuprofen safe with asthma?"

    # Only ciphertext reaches the database.
    sync_url = database_url.replace("sqlite+aiosqlite", "sqlite")
    engine = create_sync_engine(sync_url)
    with engine.connect() as conn:
        rows = conn.execute(text("SELECT ciphertext FROM secure_records")).all()
    engine.dispose()
    assert len(rows) == 1
    assert "ibuprofen" not in rows[0][0]
    assert "patient-7" not in rows[0][0]

    own = e2e_client.get(
        f"/api/consultations/{created['storage_id']}", headers=auth_headers("patient-7")
    )
    assert own.status_code == 200, own.text
    assert own.json()["patient_query"] == "Is ibuprofen safe with asthma?"

    foreign = e2e_client.get(
        f"/api/consultations/{created['storage_id']}", headers=auth_headers("patient-8")
    )
    assert foreign.status_code == 404
