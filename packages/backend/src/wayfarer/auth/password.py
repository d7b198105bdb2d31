"""Password hashing utilities.

Learn: Uses bcrypt's key-derivation function (bcrypt-pbkdf) rather than
plain bcrypt hashes, so the salt and the derived key are stored in two
separate columns and the output length is fixed (64 bytes) no matter how
long the password is. The cost is the number of KDF rounds, loaded once
from settings; each round is a full bcrypt key setup, so this is slow
on purpose.

Hashing is CPU-bound. The async variants push the work onto a
worker thread so a login storm doesn't stall the event loop.
"""

import asyncio
import secrets
from functools import lru_cache

import bcrypt

from wayfarer.config import settings

SALT_BYTES = 32
HASH_BYTES = 64


class PasswordHasher:
    """Salts, hashes and verifies passwords with bcrypt-pbkdf."""

    def __init__(self, rounds: int = 16):
        if rounds < 1:
            raise ValueError("rounds must be >= 1")
        self.rounds = rounds

    def hash(self, password: str) -> tuple[bytes, bytes]:
        """Hash a password with a fresh random salt.

        Returns (hash, salt). Two calls with the same password give
        different salts and therefore different hashes.
        """
        salt = secrets.token_bytes(SALT_BYTES)
        return self._derive(password, salt), salt

    def verify(self, password: str, password_hash: bytes, salt: bytes) -> bool:
        """Recompute the hash from `salt` and compare in constant time."""
        try:
            candidate = self._derive(password, salt)
        except ValueError:
            # bcrypt refuses empty passwords/salts, so nothing can match those
            return False
        return secrets.compare_digest(candidate, bytes(password_hash))

    async def hash_async(self, password: str) -> tuple[bytes, bytes]:
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(
        self, password: str, password_hash: bytes, salt: bytes
    ) -> bool:
        return await asyncio.to_thread(self.verify, password, password_hash, salt)

    def _derive(self, password: str, salt: bytes) -> bytes:
        return bcrypt.kdf(
            password=password.encode("utf-8"),
            salt=bytes(salt),
            desired_key_bytes=HASH_BYTES,
            rounds=self.rounds,
            ignore_few_rounds=True,
        )


@lru_cache
def get_password_hasher() -> PasswordHasher:
    """Process-wide hasher (FastAPI dependency)."""
    return PasswordHasher(rounds=settings.password_hash_rounds)
