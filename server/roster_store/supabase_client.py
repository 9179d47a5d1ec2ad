from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Tuple

import aiohttp

from models import UsageQuota

from .base import RosterStore
from .models import AuditRecord, AuthenticatedUser

logger = logging.getLogger("rosterintel.roster_store.supabase")

PROFILE_COLUMNS = "roster_scans_this_month,roster_scan_limit,roster_scan_reset_month"


class SupabaseError(RuntimeError):
    def __init__(self, status: int, path: str, body: Any) -> None:
        super().__init__(f"Supabase {path} returned {status}")
        self.status = status
        self.path = path
        self.body = body


class SupabaseRosterStore(RosterStore):
    """
    Supabase-backed auth, quota and audit log over plain HTTP.

    Endpoints used:
      - GET   /auth/v1/user                      (bearer token -> user)
      - GET   /rest/v1/profiles?id=eq.{user}     (quota columns)
      - PATCH /rest/v1/profiles?id=eq.{user}     (reset / increment)
      - POST  /rest/v1/roster_scans              (audit row)
    """

    def __init__(self, base_url: str, api_key: str, default_limit: int = 5, timeout_s: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.default_limit = default_limit
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout_s, connect=3)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "SupabaseRosterStore":
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=20, ttl_dns_cache=300, keepalive_timeout=30)
            self._session = aiohttp.ClientSession(connector=connector, timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def _headers(self, bearer: Optional[str] = None, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {bearer or self._api_key}",
            "Accept": "application/json",
        }
        headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json_body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Any]:
        t0 = time.perf_counter()
        async with self._get_session().request(
            method,
            f"{self.base_url}{path}",
            params=params,
            json=json_body,
            headers=headers or self._headers(),
        ) as r:
            if r.content_type == "application/json":
                body = await r.json()
            else:
                body = await r.text()
            logger.info(
                "Supabase %s %s status=%s took=%.2fs", method, path, r.status, time.perf_counter() - t0
            )
            return r.status, body

    # ---------------- auth ----------------

    async def verify(self, token: str) -> Optional[AuthenticatedUser]:
        try:
            status, body = await self._request("GET", "/auth/v1/user", headers=self._headers(bearer=token))
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            # Includes total-timeout expiry and an unparseable body
            logger.warning("Supabase auth lookup failed: %r", e)
            return None
        if status != 200 or not isinstance(body, dict) or not body.get("id"):
            return None
        return AuthenticatedUser(id=str(body["id"]), email=body.get("email"))

    # ---------------- quota ----------------

    async def get_quota(self, user_id: str) -> Optional[UsageQuota]:
        status, body = await self._request(
            "GET", "/rest/v1/profiles", params={"id": f"eq.{user_id}", "select": PROFILE_COLUMNS}
        )
        if status != 200:
            raise SupabaseError(status, "/rest/v1/profiles", body)
        if not isinstance(body, list) or not body:
            return None
        row = body[0]
        return UsageQuota(
            scans_used_this_period=row.get("roster_scans_this_month") or 0,
            scan_limit=row.get("roster_scan_limit") or self.default_limit,
            period_key=row.get("roster_scan_reset_month"),
        )

    async def _patch_profile(self, user_id: str, values: Dict[str, Any]) -> None:
        status, body = await self._request(
            "PATCH",
            "/rest/v1/profiles",
            params={"id": f"eq.{user_id}"},
            json_body=values,
            headers=self._headers(Prefer="return=minimal"),
        )
        if status >= 300:
            raise SupabaseError(status, "/rest/v1/profiles", body)

    async def reset_period(self, user_id: str, period_key: str) -> None:
        await self._patch_profile(user_id, {"roster_scans_this_month": 0, "roster_scan_reset_month": period_key})

    async def set_usage(self, user_id: str, scans_used: int) -> None:
        await self._patch_profile(user_id, {"roster_scans_this_month": scans_used})

    # ---------------- audit ----------------

    async def record_scan(self, record: AuditRecord) -> None:
        status, body = await self._request(
            "POST",
            "/rest/v1/roster_scans",
            json_body=record.to_row(),
            headers=self._headers(Prefer="return=minimal"),
        )
        if status >= 300:
            raise SupabaseError(status, "/rest/v1/roster_scans", body)
