# backend/app/security/hashing.py
"""
Slow one-way hashing for the login secret and the master secret.

Each call to get_password_hash draws its own bcrypt salt, so the two stored
hashes of an account are independent even when both secrets are equal.
bcrypt is CPU-bound; async callers go through the ``a*`` wrappers, which run
it in Starlette's threadpool.
"""
from typing import Optional

import bcrypt
from starlette.concurrency import run_in_threadpool

from backend.app.core.config import settings

# bcrypt only reads the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


def _encode(secret: str) -> bytes:
    return secret.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def get_password_hash(secret: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_encode(secret), salt).decode("utf-8")


def verify_password(secret: str, hashed: str) -> bool:
    if not secret or not hashed:
        return False
    try:
        return bcrypt.checkpw(_encode(secret), hashed.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


async def ahash(secret: str, rounds: Optional[int] = None) -> str:
    return await run_in_threadpool(get_password_hash, secret, rounds)


async def averify(secret: str, hashed: str) -> bool:
    return await run_in_threadpool(verify_password, secret, hashed)
