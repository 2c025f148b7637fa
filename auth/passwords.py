"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

bcrypt.checkpw compares digests in constant time, so verification time does
not depend on how much of the hash matched.
"""

from __future__ import annotations

import bcrypt


class BcryptPasswordHasher:
    """One-way password hashing with a per-call salt.

    Usage:
        hasher = BcryptPasswordHasher()
        digest = hasher.hash("S3cretPassw0rd")
        hasher.verify("S3cretPassw0rd", digest)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the plaintext password.

        bcrypt truncates input at 72 bytes. Registration caps passwords at
        72 bytes (auth/validation.py) so no two distinct accepted passwords
        share a hash because of truncation.
        """
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext matches the hash. A malformed hash verifies False."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False
