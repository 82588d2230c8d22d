"""
auth/passwords.py -- bcrypt password hashing.

bcrypt is used directly rather than through passlib: passlib's internal
wrap-bug detection builds a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

The work factor comes from Settings.bcrypt_rounds (10 by default) and is the
same at registration and at verification time; bcrypt stores the cost in the
hash itself, so verify() honours whatever cost the stored hash was made with.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import bcrypt

# bcrypt only reads the first 72 bytes; newer releases raise instead of truncating.
_MAX_PASSWORD_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_MAX_PASSWORD_BYTES]


class PasswordHasher:
    """One-way adaptive hash with a fresh salt per call.

    Usage:
        hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
        stored = hasher.hash("hunter22")
        hasher.verify("hunter22", stored)  # True
    """

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        self._dummy_hash: str | None = None

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext password.

        Passwords longer than 72 bytes are truncated before hashing.
        """
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext password matches the bcrypt hash.

        Malformed hashes make bcrypt raise ValueError; treat that as a mismatch.
        """
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except ValueError:
            return False

    @property
    def dummy_hash(self) -> str:
        """A throwaway hash at the configured cost, for timing equalization [C1].

        Built on first use and cached, so only the first unknown-email login
        pays for generating it.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("keyhole_timing_dummy")
        return self._dummy_hash
