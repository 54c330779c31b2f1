from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from cryptography.fernet import Fernet, InvalidToken


class CodecError(Exception):
    """Raised when a blob cannot be decrypted or does not hold a JSON object."""


class FernetCodec:
    """
    Symmetric encryption of JSON objects into opaque URL-safe tokens.

    Fernet authenticates the ciphertext, so tampered or foreign blobs fail loudly
    instead of decrypting to garbage.
    """

    def __init__(self, *, key: str):
        # Raises ValueError for malformed keys.
        self._fernet = Fernet(key.encode("ascii"))

    def encrypt(self, data: Mapping[str, Any]) -> str:
        raw = json.dumps(dict(data), ensure_ascii=False, separators=(",", ":"))
        return self._fernet.encrypt(raw.encode("utf-8")).decode("ascii")

    def decrypt(self, blob: str) -> dict[str, Any]:
        try:
            raw = self._fernet.decrypt(blob.encode("ascii"))
            data = json.loads(raw)
        except (InvalidToken, UnicodeError, ValueError) as exc:
            raise CodecError("Blob could not be decrypted") from exc

        if not isinstance(data, dict):
            raise CodecError("Decrypted blob must be a JSON object")
        return data
