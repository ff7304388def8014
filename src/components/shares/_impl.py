"""
Share token storage and password hashing adapters.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from threading import Lock

from passlib.context import CryptContext

from .models import ShareToken


class Argon2PasswordHasher:
    """Argon2 share passwords via passlib."""

    def __init__(self) -> None:
        self._context = CryptContext(schemes=["argon2"], deprecated="auto")

    def hash(self, password: str) -> str:
        result: str = self._context.hash(password)
        return result

    def verify(self, password: str, password_hash: str) -> bool:
        result: bool = self._context.verify(password, password_hash)
        return result


class InMemoryShareRepo:
    """In-memory share repo for testing/dev."""

    def __init__(self) -> None:
        self._shares: dict[str, ShareToken] = {}
        self._lock = Lock()

    def save(self, share: ShareToken) -> None:
        with self._lock:
            self._shares[share.token] = share

    def get(self, token: str) -> ShareToken | None:
        with self._lock:
            return self._shares.get(token)

    def revoke(self, token: str, owner_id: str, revoked_at: datetime) -> bool:
        with self._lock:
            share = self._shares.get(token)
            if share is None or share.owner_id != owner_id or share.is_revoked:
                return False
            self._shares[token] = replace(share, revoked_at=revoked_at)
            return True

    def list_for_owner(self, site_id: str, owner_id: str) -> list[ShareToken]:
        with self._lock:
            return [
                s
                for s in self._shares.values()
                if s.site_id == site_id and s.owner_id == owner_id
            ]
