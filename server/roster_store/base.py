from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from models import UsageQuota

from .models import AuditRecord, AuthenticatedUser


class TokenVerifier(ABC):
    @abstractmethod
    async def verify(self, token: str) -> Optional[AuthenticatedUser]:
        """Return the user a bearer token belongs to, or None if it is invalid."""


class QuotaStore(ABC):
    @abstractmethod
    async def get_quota(self, user_id: str) -> Optional[UsageQuota]:
        ...

    @abstractmethod
    async def reset_period(self, user_id: str, period_key: str) -> None:
        ...

    @abstractmethod
    async def set_usage(self, user_id: str, scans_used: int) -> None:
        ...


class AuditLog(ABC):
    @abstractmethod
    async def record_scan(self, record: AuditRecord) -> None:
        ...


class RosterStore(TokenVerifier, QuotaStore, AuditLog):
    """All three collaborators behind one object."""

    async def close(self) -> None:
        return None
