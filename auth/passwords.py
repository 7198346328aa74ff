"""
auth/passwords.py -- Credential hashing and verification (bcrypt).

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection feeds bcrypt a >72 byte password, which bcrypt 4.x+ rejects.

bcrypt.checkpw compares digests in constant time, and its cost factor is the
"slow" part of slow-salted-one-way. The dummy hash lets callers spend the
same bcrypt work on an unknown username as on a wrong password, so response
time does not reveal which usernames exist.
"""

from __future__ import annotations

import bcrypt

# bcrypt only looks at the first 72 bytes of input.
MAX_SECRET_BYTES = 72


class CredentialVerifier:
    """Stateless hash/verify pair. `rounds` is the bcrypt log2 cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Built once here; verify_dummy then costs exactly one checkpw on every call.
        self._dummy_hash = bcrypt.hashpw(b"authgate_timing_dummy", bcrypt.gensalt(rounds=rounds)).decode("utf-8")

    def hash(self, secret: str) -> str:
        """Return a salted bcrypt hash of secret.

        Raises ValueError for secrets longer than 72 bytes instead of letting
        bcrypt silently truncate them. The API layer caps lengths well below this.
        """
        raw = secret.encode("utf-8")
        if len(raw) > MAX_SECRET_BYTES:
            raise ValueError(f"Secret exceeds {MAX_SECRET_BYTES} bytes.")
        return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, secret: str, hash_value: str) -> bool:
        """Return True if secret matches hash_value. Never raises."""
        try:
            return bcrypt.checkpw(secret.encode("utf-8"), hash_value.encode("utf-8"))
        except (ValueError, TypeError):
            # Corrupt stored hash or oversized input -- treat as mismatch.
            return False

    def verify_dummy(self, secret: str) -> bool:
        """Burn one bcrypt verification against a throwaway hash. Always False."""
        self.verify(secret, self._dummy_hash)
        return False
