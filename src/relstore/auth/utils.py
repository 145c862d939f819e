# src/relstore/auth/utils.py
import hashlib
import secrets
from typing import Tuple

TOKEN_BYTES = 32


def hash_token(raw: str) -> str:
    """One-time tokens are stored and looked up by their SHA-256 hex digest."""
    return hashlib.sha256(raw.encode()).hexdigest()


def new_token(nbytes: int = TOKEN_BYTES) -> Tuple[str, str]:
    """(raw token to hand to the user, hash to persist)."""
    raw = secrets.token_urlsafe(nbytes)
    return raw, hash_token(raw)
