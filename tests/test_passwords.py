"""
tests/test_passwords.py -- Unit tests for CredentialVerifier (bcrypt).

Covers:
  - hash() output verifies against the same secret and not another
  - two hashes of one secret differ (per-hash salt)
  - verify() never raises on a corrupt stored hash
  - secrets over 72 bytes are rejected by hash(), not silently truncated
  - verify_dummy() always returns False and hashes nothing at call time
"""

from __future__ import annotations

import bcrypt
import pytest

from auth.passwords import CredentialVerifier


@pytest.fixture
def verifier() -> CredentialVerifier:
    return CredentialVerifier(rounds=4)


def test_hash_then_verify_matches(verifier: CredentialVerifier) -> None:
    """A fresh hash verifies against the secret it was made from."""
    stored = verifier.hash("Passw0rd!")
    assert verifier.verify("Passw0rd!", stored) is True


def test_verify_rejects_other_secret(verifier: CredentialVerifier) -> None:
    stored = verifier.hash("Passw0rd!")
    assert verifier.verify("Passw0rd?", stored) is False


def test_hash_is_salted(verifier: CredentialVerifier) -> None:
    """Same secret, different hashes -- both still verify."""
    first = verifier.hash("Passw0rd!")
    second = verifier.hash("Passw0rd!")
    assert first != second
    assert verifier.verify("Passw0rd!", first)
    assert verifier.verify("Passw0rd!", second)


def test_hash_is_not_plaintext(verifier: CredentialVerifier) -> None:
    stored = verifier.hash("Passw0rd!")
    assert "Passw0rd!" not in stored
    assert stored.startswith("$2")


def test_rounds_are_encoded_in_hash() -> None:
    """The cost factor is readable from the stored hash."""
    stored = CredentialVerifier(rounds=5).hash("Passw0rd!")
    assert stored.split("$")[2] == "05"


def test_verify_corrupt_hash_returns_false(verifier: CredentialVerifier) -> None:
    """A corrupt stored hash is a mismatch, not an exception."""
    assert verifier.verify("Passw0rd!", "not-a-bcrypt-hash") is False
    assert verifier.verify("Passw0rd!", "") is False


def test_hash_rejects_secret_over_72_bytes(verifier: CredentialVerifier) -> None:
    with pytest.raises(ValueError):
        verifier.hash("a" * 73)


def test_hash_accepts_72_byte_secret(verifier: CredentialVerifier) -> None:
    stored = verifier.hash("a" * 72)
    assert verifier.verify("a" * 72, stored)


def test_verify_dummy_always_false(verifier: CredentialVerifier) -> None:
    """Even the literal dummy input never matches."""
    assert verifier.verify_dummy("Passw0rd!") is False
    assert verifier.verify_dummy("authgate_timing_dummy") is False


def test_verify_dummy_hashes_nothing_on_first_call(monkeypatch: pytest.MonkeyPatch) -> None:
    """The dummy hash exists before the first call, so every call is one checkpw."""
    verifier = CredentialVerifier(rounds=4)
    checks: list[bytes] = []
    real_checkpw = bcrypt.checkpw

    def no_hashpw(*args, **kwargs):
        raise AssertionError("verify_dummy must not call hashpw")

    def counting_checkpw(secret: bytes, hashed: bytes) -> bool:
        checks.append(secret)
        return real_checkpw(secret, hashed)

    monkeypatch.setattr("auth.passwords.bcrypt.hashpw", no_hashpw)
    monkeypatch.setattr("auth.passwords.bcrypt.checkpw", counting_checkpw)

    assert verifier.verify_dummy("Passw0rd!") is False
    assert verifier.verify_dummy("Passw0rd!") is False
    assert len(checks) == 2
