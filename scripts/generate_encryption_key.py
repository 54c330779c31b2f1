"""Print a fresh Fernet key for SECURE_ENCRYPTION_KEY."""

from __future__ import annotations

from cryptography.fernet import Fernet

if __name__ == "__main__":
    print(Fernet.generate_key().decode("ascii"))
