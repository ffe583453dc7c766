"""
auth/credentials.py -- Password hashing and verification (CredentialStore).

Security design decisions:
  bcrypt, used directly (no passlib wrapper). gensalt() draws a fresh salt on
  every call, so hashing the same password twice yields two different
  digests. The cost factor is injected (Settings.bcrypt_rounds) rather than
  hardcoded, so tests can run at the minimum of 4 rounds.

  verify() never raises on a mismatch or a corrupted digest. A digest that
  bcrypt cannot parse is reported as a failed verification, the same as a
  wrong password. So is a plaintext over 72 bytes, which hash() refuses
  outright instead of truncating.

  bcrypt is deliberately slow. hash_async()/verify_async() push the work
  onto a small dedicated ThreadPoolExecutor so a burst of logins cannot
  occupy the threads that accept and dispatch requests.

  dummy_verify() runs a full bcrypt check against a precomputed digest. The
  login flow calls it when the email is unknown so response time does not
  reveal whether an account exists.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

import bcrypt

logger = logging.getLogger("marketplace.auth")

# bcrypt only looks at the first 72 bytes. Longer input is refused rather
# than truncated, otherwise two passwords sharing a 72-byte prefix would
# verify against each other. The request models enforce the same bound.
MAX_PASSWORD_BYTES = 72


def _encode(plain: str) -> bytes:
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return encoded


class CredentialStore:
    """Salted, adaptive-cost password hashing backed by bcrypt.

    Usage:
        credentials = CredentialStore(rounds=12, workers=4)
        digest = await credentials.hash_async("s3cret-pass")
        ok = await credentials.verify_async("s3cret-pass", digest)
        credentials.close()
    """

    def __init__(self, rounds: int = 12, workers: int = 4) -> None:
        self.rounds = rounds
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bcrypt")
        # Computed once so the first unknown-email login is not measurably
        # cheaper than later ones.
        self._dummy_hash = self.hash("marketplace_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt digest of plain with a freshly generated salt.

        Raises ValueError if plain is longer than MAX_PASSWORD_BYTES in UTF-8.
        """
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, digest: str) -> bool:
        """Return True if plain matches digest.

        False on mismatch, on a malformed digest, and on a plaintext too long
        for bcrypt to compare in full.
        """
        if not digest:
            return False
        try:
            encoded = _encode(plain)
        except ValueError:
            return False
        try:
            return bcrypt.checkpw(encoded, digest.encode("utf-8"))
        except ValueError:
            # "Invalid salt" and friends: corrupted storage, not a crash.
            logger.warning("Stored password digest could not be parsed; treating as mismatch")
            return False

    def dummy_verify(self, plain: str) -> bool:
        """Spend one verify's worth of CPU. Always returns False."""
        self.verify(plain, self._dummy_hash)
        return False

    async def hash_async(self, plain: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._pool, self.hash, plain)

    async def verify_async(self, plain: str, digest: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._pool, self.verify, plain, digest)

    async def dummy_verify_async(self, plain: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._pool, self.dummy_verify, plain)

    def close(self) -> None:
        self._pool.shutdown(wait=True)
