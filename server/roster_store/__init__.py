"""
roster_store package

Public API:
    - TokenVerifier, QuotaStore, AuditLog, RosterStore (interfaces)
    - AuthenticatedUser, AuditRecord
    - InMemoryRosterStore (dev tokens, tests)
    - SupabaseRosterStore (profiles + roster_scans over HTTP)
    - build_store(settings)
"""

from __future__ import annotations

import logging

from .base import AuditLog, QuotaStore, RosterStore, TokenVerifier
from .memory import InMemoryRosterStore
from .models import AuditRecord, AuthenticatedUser
from .supabase_client import SupabaseError, SupabaseRosterStore

logger = logging.getLogger("rosterintel.roster_store")


def build_store(settings) -> RosterStore:
    """Supabase when it is configured, otherwise the in-memory dev store."""
    if settings.uses_supabase:
        logger.info("Using Supabase roster store at %s", settings.supabase_url)
        return SupabaseRosterStore(
            settings.supabase_url, settings.supabase_key, default_limit=settings.default_scan_limit
        )
    logger.warning("SUPABASE_URL not configured; using in-memory store with %d dev tokens", len(settings.dev_tokens))
    return InMemoryRosterStore.from_token_list(settings.dev_tokens, default_limit=settings.default_scan_limit)


__all__ = [
    "AuditLog",
    "AuditRecord",
    "AuthenticatedUser",
    "InMemoryRosterStore",
    "QuotaStore",
    "RosterStore",
    "SupabaseError",
    "SupabaseRosterStore",
    "TokenVerifier",
    "build_store",
]
