from __future__ import annotations

import hashlib
import logging
import secrets
import time

logger = logging.getLogger(__name__)

SECRET_KEY_BYTES = 32
API_KEY_BYTES = 16


def _timestamp_key(nbytes: int) -> str:
    digest = hashlib.sha256(str(time.time_ns()).encode("ascii")).hexdigest()
    return digest[: nbytes * 2]


def generate_key(nbytes: int) -> str:
    """Random hex string of ``nbytes`` bytes.

    If the OS has no random source, falls back to a hash of the current
    timestamp. That value is predictable and NOT suitable as a real secret.
    """
    try:
        return secrets.token_hex(nbytes)
    except NotImplementedError:
        logger.warning("No OS random source; using a timestamp hash (not cryptographically strong).")
        return _timestamp_key(nbytes)


def resolve_key(value: str | None, nbytes: int) -> str:
    value = (value or "").strip()
    if value:
        return value
    return generate_key(nbytes)


def resolve_secret_key(value: str | None) -> str:
    return resolve_key(value, SECRET_KEY_BYTES)


def resolve_api_key(value: str | None) -> str:
    return resolve_key(value, API_KEY_BYTES)
