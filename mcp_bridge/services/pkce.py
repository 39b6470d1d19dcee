"""PKCE verifier, challenge and state generation (RFC 7636)."""

from __future__ import annotations

import base64
import hashlib
import secrets
import string

VERIFIER_LENGTH = 64
VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"
STATE_BYTES = 32


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_code_verifier(length: int = VERIFIER_LENGTH) -> str:
    """Return a random verifier drawn from the unreserved URL-safe characters."""
    if not 43 <= length <= 128:
        raise ValueError("PKCE code verifiers must be 43-128 characters long.")
    return "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(length))


def generate_code_challenge(verifier: str) -> str:
    """Derive the S256 challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_state() -> str:
    """Return an opaque CSRF token with 256 bits of entropy."""
    return _b64url(secrets.token_bytes(STATE_BYTES))


__all__ = [
    "VERIFIER_ALPHABET",
    "generate_code_challenge",
    "generate_code_verifier",
    "generate_state",
]
