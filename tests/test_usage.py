"""Tests for the monthly scan quota."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import fixed_clock
from models import UsageQuota
from roster_store import InMemoryRosterStore
from usage import UsageGovernor, period_key


def governor(store, **kwargs):
    return UsageGovernor(store, default_limit=5, clock=fixed_clock, **kwargs)


def test_period_key_is_utc_month():
    # 23:30 on Jan 31 in UTC-5 is already February in UTC
    local = datetime(2026, 1, 31, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert period_key(local) == "2026-02"
    assert period_key(datetime(2026, 1, 10)) == "2026-01"


@pytest.mark.asyncio
async def test_new_user_gets_default_limit_and_a_record():
    store = InMemoryRosterStore()
    decision = await governor(store).check("u1")
    assert decision.allowed
    assert (decision.scans_used, decision.scan_limit, decision.period_key) == (0, 5, "2026-01")
    assert store.quotas["u1"].period_key == "2026-01"


@pytest.mark.asyncio
async def test_stale_period_resets_usage():
    store = InMemoryRosterStore()
    store.quotas["u1"] = UsageQuota(scans_used_this_period=5, scan_limit=5, period_key="2025-12")
    decision = await governor(store).check("u1")
    assert decision.allowed
    assert decision.scans_used == 0
    assert store.quotas["u1"] == UsageQuota(scans_used_this_period=0, scan_limit=5, period_key="2026-01")


@pytest.mark.asyncio
async def test_exhausted_quota_is_refused():
    store = InMemoryRosterStore()
    store.quotas["u1"] = UsageQuota(scans_used_this_period=5, scan_limit=5, period_key="2026-01")
    decision = await governor(store).check("u1")
    assert not decision.allowed
    assert decision.scans_used == 5


@pytest.mark.asyncio
async def test_custom_limit_is_respected():
    store = InMemoryRosterStore()
    store.quotas["u1"] = UsageQuota(scans_used_this_period=7, scan_limit=50, period_key="2026-01")
    assert (await governor(store).check("u1")).allowed


@pytest.mark.asyncio
async def test_record_scan_increments():
    store = InMemoryRosterStore()
    gov = governor(store)
    decision = await gov.check("u1")
    assert await gov.record_scan("u1", decision) == 1
    assert store.quotas["u1"].scans_used_this_period == 1


class FlakyStore(InMemoryRosterStore):
    def __init__(self, fail_reads=False, fail_resets=False):
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_resets = fail_resets

    async def get_quota(self, user_id):
        if self.fail_reads:
            raise ConnectionError("profiles unavailable")
        return await super().get_quota(user_id)

    async def reset_period(self, user_id, period_key):
        if self.fail_resets:
            raise ConnectionError("profiles unavailable")
        await super().reset_period(user_id, period_key)


@pytest.mark.asyncio
async def test_read_failure_allows_with_defaults_and_keeps_record():
    store = FlakyStore(fail_reads=True)
    store.quotas["u1"] = UsageQuota(scans_used_this_period=3, scan_limit=5, period_key="2025-11")
    decision = await governor(store).check("u1")
    assert decision.allowed
    assert (decision.scans_used, decision.scan_limit) == (0, 5)
    assert store.quotas["u1"].period_key == "2025-11"


@pytest.mark.asyncio
async def test_reset_failure_still_decides():
    store = FlakyStore(fail_resets=True)
    store.quotas["u1"] = UsageQuota(scans_used_this_period=5, scan_limit=5, period_key="2025-12")
    decision = await governor(store).check("u1")
    assert decision.allowed
    assert decision.scans_used == 0
