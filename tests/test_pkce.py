try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
import hashlib

import pytest

from mcp_bridge.services.pkce import (
    VERIFIER_ALPHABET,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
)


def test_challenge_matches_rfc7636_appendix_b() -> None:
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_challenge_is_deterministic_and_unpadded() -> None:
    verifier = generate_code_verifier()

    first = generate_code_challenge(verifier)
    second = generate_code_challenge(verifier)

    assert first == second
    assert "=" not in first
    expected = base64.urlsafe_b64encode(
        hashlib.sha256(verifier.encode("ascii")).digest()
    ).decode("ascii").rstrip("=")
    assert first == expected


def test_verifier_length_and_charset() -> None:
    verifier = generate_code_verifier()

    assert 43 <= len(verifier) <= 128
    assert set(verifier) <= set(VERIFIER_ALPHABET)


@pytest.mark.parametrize("length", [42, 129])
def test_verifier_rejects_out_of_range_length(length: int) -> None:
    with pytest.raises(ValueError):
        generate_code_verifier(length)


def test_verifiers_and_states_do_not_collide() -> None:
    verifiers = {generate_code_verifier() for _ in range(10_000)}
    states = {generate_state() for _ in range(10_000)}

    assert len(verifiers) == 10_000
    assert len(states) == 10_000
