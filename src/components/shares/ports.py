"""
Shares component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .models import ShareToken


class ShareRepoPort(Protocol):
    """Durable share token storage."""

    def save(self, share: ShareToken) -> None:
        """Insert a new share."""
        ...

    def get(self, token: str) -> ShareToken | None:
        """Look up a share, revoked or not."""
        ...

    def revoke(self, token: str, owner_id: str, revoked_at: datetime) -> bool:
        """
        Mark a live share revoked if owned by owner_id.

        Returns False when the share is missing, already revoked, or owned by
        someone else. Must be atomic with respect to concurrent get() calls.
        """
        ...

    def list_for_owner(self, site_id: str, owner_id: str) -> list[ShareToken]:
        ...


class PasswordHasherPort(Protocol):
    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
