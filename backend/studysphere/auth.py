# backend/studysphere/auth.py
"""
Credential helpers for StudySphere.

Provides:
 - get_password_hash(password) -> str
 - verify_password(plain_password, hashed_password) -> bool
 - hash_password_async / verify_password_async, the same off the event loop
 - authenticate_user(storage, username, password) -> User or None

Passwords are SHA-256 pre-hashed to a 64 char hex digest so bcrypt's 72-byte
input limit never truncates a passphrase, then hashed by passlib's bcrypt
with a work factor of 10. passlib performs the constant-time comparison.
"""

import hashlib
from functools import lru_cache
from typing import Optional

from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from .models import User

BCRYPT_ROUNDS = 10

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def _sha256_hex(s: str) -> str:
    """Return SHA-256 hex digest of the given string (deterministic, 64 hex chars)."""
    if isinstance(s, bytes):
        b = s
    else:
        b = s.encode("utf-8", errors="surrogatepass")
    return hashlib.sha256(b).hexdigest()


def get_password_hash(password: str) -> str:
    digest = _sha256_hex(password)
    return pwd_context.hash(digest)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plaintext password against a stored hash.
    A missing or unparseable hash counts as a mismatch.
    """
    if not hashed_password:
        return False
    digest = _sha256_hex(plain_password)
    try:
        return pwd_context.verify(digest, hashed_password)
    except ValueError:
        return False


async def hash_password_async(password: str) -> str:
    return await run_in_threadpool(get_password_hash, password)


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    return await run_in_threadpool(verify_password, plain_password, hashed_password)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return get_password_hash("not-a-real-password")


async def authenticate_user(storage, username: str, password: str) -> Optional[User]:
    """
    Find user by username (case-sensitive as stored) and verify password.
    Returns the user on success, or None on failure.
    """
    user = await storage.get_user_by_username(username)
    if not user:
        # unknown usernames cost one bcrypt verify, same as a wrong password
        await verify_password_async(password, await run_in_threadpool(_dummy_hash))
        return None
    if not await verify_password_async(password, user.password_hash):
        return None
    return user
