from __future__ import annotations

import uuid

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.secure.models import SecureRecord


class RecordNotFoundError(Exception):
    """Raised when no blob exists for a storage handle."""


def _parse_handle(storage_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(storage_id)
    except (TypeError, ValueError) as exc:
        # Malformed handles cannot exist; treat them like unknown ones.
        raise RecordNotFoundError("Unknown storage handle") from exc


class RecordStore:
    """Opaque blob storage keyed by random UUID handles (no index, no enumeration)."""

    def __init__(self, *, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def ping(self) -> None:
        async with self._sessionmaker() as session:
            await session.execute(text("SELECT 1"))

    async def save(self, *, ciphertext: str) -> str:
        record = SecureRecord(id=uuid.uuid4(), ciphertext=ciphertext)
        async with self._sessionmaker() as session:
            session.add(record)
            await session.commit()
        return str(record.id)

    async def load(self, *, storage_id: str) -> str:
        handle = _parse_handle(storage_id)
        async with self._sessionmaker() as session:
            record = await session.get(SecureRecord, handle)
        if record is None:
            raise RecordNotFoundError("Unknown storage handle")
        return record.ciphertext
