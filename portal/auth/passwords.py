from __future__ import annotations

from passlib.hash import argon2

# Verified against when the username is unknown so both credential failures cost the same.
_DUMMY_HASH = argon2.hash("portal-dummy-credential")


def hash_secret(value: str) -> str:
    return argon2.hash(value)


def verify_secret(value: str, hashed: str | None) -> bool:
    if not hashed:
        argon2.verify(value, _DUMMY_HASH)
        return False
    try:
        return argon2.verify(value, hashed)
    except (ValueError, TypeError):
        return False
