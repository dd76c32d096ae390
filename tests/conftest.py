"""
Shared fixtures for the ledger tests.

No test talks to a real service: stores are in-memory fakes, the cache is
a MemoryCache and the clock is fixed.
"""

import pytest

from ledger.audit import AuditLogger
from ledger.auth import SessionState
from ledger.config import AppSettings, CacheSettings
from ledger.services.cache import LedgerCache, MemoryCache
from tests.helpers import FIXED_NOW, FakeLedgerStore, encode_auth_payload


@pytest.fixture
def audit() -> AuditLogger:
    return AuditLogger(logger_name="ledger.tests")


@pytest.fixture
def memory_backend() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def cache(memory_backend, audit) -> LedgerCache:
    return LedgerCache(
        backend=memory_backend,
        settings=CacheSettings(),
        audit_logger=audit,
    )


@pytest.fixture
def session(cache, audit) -> SessionState:
    return SessionState(
        cache,
        clock=lambda: FIXED_NOW,
        audit_logger=audit,
        login_url="https://ledger.example/api/auth/login",
    )


@pytest.fixture
def authenticated_session(session) -> SessionState:
    accepted = session.bootstrap_from_callback(
        encode_auth_payload(
            access_token="stale-token",
            refresh_token="refresh-1",
            expires_in="3600",
            email="founder@culturecrunch.com.au",
        )
    )
    assert accepted
    return session


@pytest.fixture
def store() -> FakeLedgerStore:
    return FakeLedgerStore()


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        cash_flow_months=6,
        seed_demo_data=True,
        default_projection_months=12,
    )
