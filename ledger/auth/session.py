"""
Session / Auth State

Holds the credentials the remote ledger needs: access token, refresh
token, email and expiry. One SessionState is constructed per process and
handed to the sync client and the controller; nothing reads a global.

Lifecycle:
    CHECKING_AUTH -> AUTHENTICATED    (callback payload or cached session)
    CHECKING_AUTH -> UNAUTHENTICATED  (neither, or unreadable)
    UNAUTHENTICATED --login()--> external redirect --callback--> AUTHENTICATED
    AUTHENTICATED --logout()--> UNAUTHENTICATED

DESIGN DECISION: There is no "expired" state.
An expired token is discovered lazily, on the next store call, through the
refresh-and-retry sequence in the sync client. No timers.
"""

import base64
import time
import webbrowser
from enum import Enum
from typing import Callable, Optional, Protocol
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ledger.audit import AuditLogger
from ledger.config import LedgerApiSettings
from ledger.services.cache import LedgerCache
from ledger.services.storage import StoreCredentials


AUTH_QUERY_PARAM = "auth"
ERROR_QUERY_PARAM = "error"

# Default lifetime when the provider omits expires_in
DEFAULT_EXPIRES_IN_SECONDS = 3600


class SessionStatus(str, Enum):
    CHECKING_AUTH = "checking_auth"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class AuthPayloadError(ValueError):
    """The callback payload could not be decoded."""
    pass


class AuthSession(BaseModel):
    """Credential blob; all fields null means logged out."""
    model_config = ConfigDict(populate_by_name=True)

    access_token: Optional[str] = Field(default=None, alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    email: Optional[str] = None
    expires_at: Optional[int] = Field(
        default=None,
        alias="expiresAt",
        description="Expiry as epoch milliseconds"
    )


class LoginProvider(Protocol):
    """Anything able to send the user to the auth provider's entry point."""

    def redirect_to_login(self, url: str) -> None:
        ...


class BrowserLoginProvider:
    """Opens the auth provider's entry point in the user's browser."""

    def redirect_to_login(self, url: str) -> None:
        webbrowser.open(url)


def build_login_url(settings: Optional[LedgerApiSettings] = None) -> str:
    settings = settings or LedgerApiSettings()
    return f"{settings.base_url}{settings.login_path}"


def decode_auth_payload(blob: str, now_ms: int) -> AuthSession:
    """
    Decode the base64 query-string bundle the auth provider redirects with.

    Exactly four fields are read: access_token, refresh_token,
    expires_in (seconds) and email. expires_at = now + expires_in * 1000.

    Raises:
        AuthPayloadError: Not base64, not a query string, or no access token
    """
    # Query-string decoding turns "+" into a space
    blob = blob.strip().replace(" ", "+")
    padded = blob + "=" * (-len(blob) % 4)
    try:
        decoded = base64.b64decode(padded, altchars=b"-_", validate=False).decode("utf-8")
    except ValueError as e:  # binascii.Error, UnicodeDecodeError, non-ASCII input
        raise AuthPayloadError(f"Auth payload is not valid base64: {e}")

    fields = parse_qs(decoded, keep_blank_values=True)

    def first(name: str) -> str:
        values = fields.get(name)
        return values[0] if values else ""

    access_token = first("access_token")
    if not access_token:
        raise AuthPayloadError("Auth payload carries no access_token")

    try:
        expires_in = int(first("expires_in") or DEFAULT_EXPIRES_IN_SECONDS)
    except ValueError:
        raise AuthPayloadError(f"Invalid expires_in: {first('expires_in')!r}")

    return AuthSession(
        access_token=access_token,
        refresh_token=first("refresh_token") or None,
        email=first("email") or None,
        expires_at=now_ms + expires_in * 1000,
    )


def strip_auth_params(url: str) -> str:
    """Remove the auth payload (and any auth error) from a URL's query."""
    parts = urlsplit(url)
    query = parse_qs(parts.query, keep_blank_values=True)
    query.pop(AUTH_QUERY_PARAM, None)
    query.pop(ERROR_QUERY_PARAM, None)
    return urlunsplit(parts._replace(query=urlencode(query, doseq=True)))


class SessionState:
    """
    Process-wide credential holder with load / save / clear lifecycle.

    Persistence goes through the LedgerCache; the clock is injectable so
    expiry arithmetic can be tested.
    """

    def __init__(
        self,
        cache: LedgerCache,
        clock: Callable[[], float] = time.time,
        audit_logger: Optional[AuditLogger] = None,
        login_url: Optional[str] = None,
    ):
        self._cache = cache
        self._clock = clock
        self._audit = audit_logger or AuditLogger()
        self._login_url = login_url
        self._session = AuthSession()
        self._status = SessionStatus.CHECKING_AUTH

    # --- read access --------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def session(self) -> AuthSession:
        return self._session

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token

    @property
    def refresh_token(self) -> Optional[str]:
        return self._session.refresh_token

    @property
    def email(self) -> Optional[str]:
        return self._session.email

    @property
    def expires_at(self) -> Optional[int]:
        return self._session.expires_at

    def is_authenticated(self) -> bool:
        return self._session.access_token is not None

    def credentials(self) -> StoreCredentials:
        """Credentials for a store call. Only valid while authenticated."""
        if self._session.access_token is None:
            raise RuntimeError("Not authenticated")
        return StoreCredentials(
            access_token=self._session.access_token,
            refresh_token=self._session.refresh_token,
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _set(self, session: AuthSession) -> None:
        self._session = session
        self._status = (
            SessionStatus.AUTHENTICATED
            if session.access_token is not None
            else SessionStatus.UNAUTHENTICATED
        )

    def _persist(self) -> None:
        self._cache.save_session(self._session.model_dump(mode="json", by_alias=True))

    # --- bootstrap ----------------------------------------------------------

    def bootstrap(self, url: Optional[str] = None) -> Optional[str]:
        """
        Resolve the initial session state.

        A callback payload in url wins; otherwise the cached session is
        restored. Returns url with the auth parameters stripped, so the
        caller can replace the visible address with it.
        """
        if url:
            query = parse_qs(urlsplit(url).query)
            if AUTH_QUERY_PARAM in query:
                self.bootstrap_from_callback(query[AUTH_QUERY_PARAM][0])
                return strip_auth_params(url)
            if ERROR_QUERY_PARAM in query:
                self._audit.log_login_failed(query[ERROR_QUERY_PARAM][0])
                self.bootstrap_from_cache()
                return strip_auth_params(url)

        self.bootstrap_from_cache()
        return url

    def bootstrap_from_callback(self, blob: str) -> bool:
        """
        Populate the session from an encoded callback payload and persist it.

        Returns True if the payload was accepted.
        """
        try:
            session = decode_auth_payload(blob, self._now_ms())
        except AuthPayloadError as e:
            self._audit.log_login_failed(str(e))
            self._set(AuthSession())
            return False

        self._set(session)
        self._persist()
        self._audit.log_session_started(session.email, "callback")
        return True

    def bootstrap_from_cache(self) -> bool:
        """
        Restore the session from the cache.

        An unreadable blob means "not authenticated", never an error.
        """
        data = self._cache.load_session()
        session = AuthSession()
        if data is not None:
            try:
                session = AuthSession.model_validate(data)
            except ValidationError as e:
                self._audit.log_cache_corrupt("auth", e)

        self._set(session)
        if self.is_authenticated():
            self._audit.log_session_started(session.email, "cache")
        return self.is_authenticated()

    # --- transitions --------------------------------------------------------

    def login(self, provider: Optional[LoginProvider] = None) -> None:
        """Send the user to the auth provider. Completion arrives via bootstrap()."""
        provider = provider or BrowserLoginProvider()
        provider.redirect_to_login(self._login_url or build_login_url())

    def logout(self) -> None:
        """
        Reset to logged out and wipe the auth blob and both cached collections.

        Cached financial data must not survive logout.
        """
        email = self._session.email
        self._set(AuthSession())
        self._cache.clear_session()
        self._audit.log_session_ended(email)

    def replace_access_token(self, access_token: str) -> None:
        """Swap in a freshly minted access token and persist it."""
        self._set(self._session.model_copy(update={"access_token": access_token}))
        self._persist()
