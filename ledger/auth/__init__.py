"""Session and auth state package."""

from ledger.auth.session import (
    AuthPayloadError,
    AuthSession,
    BrowserLoginProvider,
    LoginProvider,
    SessionState,
    SessionStatus,
    build_login_url,
    decode_auth_payload,
    strip_auth_params,
)

__all__ = [
    "AuthPayloadError",
    "AuthSession",
    "BrowserLoginProvider",
    "LoginProvider",
    "SessionState",
    "SessionStatus",
    "build_login_url",
    "decode_auth_payload",
    "strip_auth_params",
]
