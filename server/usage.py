# usage.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from logging_utils import component_logger, log_event
from roster_store.base import QuotaStore


def period_key(now: datetime) -> str:
    """Quota period for ``now``: the UTC calendar month as YYYY-MM."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m")


@dataclass
class UsageDecision:
    allowed: bool
    scans_used: int
    scan_limit: int
    period_key: str


class UsageGovernor:
    """
    Monthly scan quota per user.

    ``check`` and ``record_scan`` are separate round trips to the store, so two
    concurrent requests from one user can both pass ``check`` and overshoot
    the limit by one.
    """

    def __init__(
        self,
        store: QuotaStore,
        default_limit: int = 5,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.default_limit = default_limit
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logger or component_logger("usage")

    async def check(self, user_id: str) -> UsageDecision:
        current = period_key(self.clock())
        used, limit, stored_period = 0, self.default_limit, None

        read_failed = False
        try:
            quota = await self.store.get_quota(user_id)
        except Exception as e:
            log_event(self.logger, "quota_read_failed", level=logging.WARNING, user_id=user_id, error=str(e))
            quota, read_failed = None, True

        if quota is not None:
            used, limit, stored_period = quota.scans_used_this_period, quota.scan_limit, quota.period_key

        # A missing record is initialised too; a failed read is left alone.
        if not read_failed and stored_period != current:
            used = 0
            try:
                await self.store.reset_period(user_id, current)
            except Exception as e:
                log_event(self.logger, "quota_reset_failed", level=logging.WARNING, user_id=user_id, error=str(e))
            else:
                log_event(self.logger, "quota_period_reset", user_id=user_id, previous=stored_period, current=current)

        decision = UsageDecision(allowed=used < limit, scans_used=used, scan_limit=limit, period_key=current)
        if not decision.allowed:
            log_event(self.logger, "quota_exhausted", user_id=user_id, scans_used=used, scan_limit=limit)
        return decision

    async def record_scan(self, user_id: str, decision: UsageDecision) -> int:
        new_count = decision.scans_used + 1
        await self.store.set_usage(user_id, new_count)
        return new_count
