"""User API keys: issuing, hashing and shape checks."""

import hashlib
import secrets

KEY_PREFIX = "lsw_sk_"


def generate_api_key() -> str:
    """New user API key, ``lsw_sk_`` followed by 64 hex characters."""
    return f"{KEY_PREFIX}{secrets.token_hex(32)}"


def hash_api_key(api_key: str) -> str:
    """
    SHA-256 hex digest of an API key.

    Only the digest is stored (``users.api_key_hash``); lookups hash the
    presented key and compare digests.
    """
    return hashlib.sha256(api_key.encode()).hexdigest()


def looks_like_api_key(value: str) -> bool:
    """Cheap shape check so malformed keys never reach the database."""
    return value.startswith(KEY_PREFIX) and len(value) > len(KEY_PREFIX)
