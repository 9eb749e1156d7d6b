from __future__ import annotations

import base64
import hashlib
import hmac
import os
from dataclasses import dataclass
from typing import Optional

ALGORITHM = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 260_000


@dataclass(frozen=True)
class PasswordHash:
    algorithm: str
    iterations: int
    salt: bytes
    digest: bytes

    def to_string(self) -> str:
        return f"{self.algorithm}${self.iterations}${_b64e(self.salt)}${_b64e(self.digest)}"

    @classmethod
    def parse(cls, stored: str) -> Optional["PasswordHash"]:
        try:
            algorithm, iterations, salt_b64, digest_b64 = stored.split("$", 3)
            return cls(
                algorithm=algorithm,
                iterations=int(iterations),
                salt=_b64d(salt_b64),
                digest=_b64d(digest_b64),
            )
        except (ValueError, TypeError):
            return None


def _b64e(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64d(raw_b64: str) -> bytes:
    pad = "=" * (-len(raw_b64) % 4)
    return base64.urlsafe_b64decode(raw_b64 + pad)


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


def hash_password(password: str, *, iterations: int = DEFAULT_ITERATIONS) -> str:
    if not password:
        raise ValueError("Password must not be empty")
    salt = os.urandom(16)
    return PasswordHash(
        algorithm=ALGORITHM,
        iterations=iterations,
        salt=salt,
        digest=_derive(password, salt, iterations),
    ).to_string()


def verify_password(password: str, stored_hash: str) -> bool:
    parsed = PasswordHash.parse(stored_hash or "")
    if parsed is None or parsed.algorithm != ALGORITHM:
        return False
    return hmac.compare_digest(_derive(password, parsed.salt, parsed.iterations), parsed.digest)


def needs_rehash(stored_hash: str, *, iterations: int = DEFAULT_ITERATIONS) -> bool:
    parsed = PasswordHash.parse(stored_hash or "")
    return parsed is None or parsed.algorithm != ALGORITHM or parsed.iterations < iterations
