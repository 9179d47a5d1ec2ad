from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from models import UsageQuota

from .base import RosterStore
from .models import AuditRecord, AuthenticatedUser

logger = logging.getLogger("rosterintel.roster_store.memory")


def parse_token_entries(entries: Iterable[str]) -> Dict[str, str]:
    """``["tok:user-1", ...]`` -> ``{"tok": "user-1"}``. Entries without a user id are skipped."""
    tokens: Dict[str, str] = {}
    for entry in entries:
        token, _, user_id = entry.partition(":")
        if token.strip() and user_id.strip():
            tokens[token.strip()] = user_id.strip()
        else:
            logger.warning("Ignoring malformed dev token entry")
    return tokens


class InMemoryRosterStore(RosterStore):
    """Process-local store for development and tests."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None, default_limit: int = 5) -> None:
        self.tokens: Dict[str, str] = dict(tokens or {})
        self.default_limit = default_limit
        self.quotas: Dict[str, UsageQuota] = {}
        self.audit_records: List[AuditRecord] = []

    @classmethod
    def from_token_list(cls, entries: Iterable[str], default_limit: int = 5) -> "InMemoryRosterStore":
        return cls(parse_token_entries(entries), default_limit=default_limit)

    async def verify(self, token: str) -> Optional[AuthenticatedUser]:
        user_id = self.tokens.get(token)
        return AuthenticatedUser(id=user_id) if user_id else None

    async def get_quota(self, user_id: str) -> Optional[UsageQuota]:
        quota = self.quotas.get(user_id)
        return quota.model_copy() if quota else None

    async def reset_period(self, user_id: str, period_key: str) -> None:
        limit = self.quotas[user_id].scan_limit if user_id in self.quotas else self.default_limit
        self.quotas[user_id] = UsageQuota(scans_used_this_period=0, scan_limit=limit, period_key=period_key)

    async def set_usage(self, user_id: str, scans_used: int) -> None:
        quota = self.quotas.get(user_id) or UsageQuota(scan_limit=self.default_limit)
        self.quotas[user_id] = quota.model_copy(update={"scans_used_this_period": scans_used})

    async def record_scan(self, record: AuditRecord) -> None:
        self.audit_records.append(record)
