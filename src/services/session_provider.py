"""
Session providers: who is signed in for one browser view session.

OAuth is consumed as-is. OAuthSessionProvider runs Google's authorization code
flow with authlib over httpx; DevSessionProvider signs in a fixed local
identity for development without any network call.
"""
import logging
import secrets
from collections.abc import Awaitable, Callable
from typing import Protocol
from urllib.parse import urlencode

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from schemas.identity import Identity, IdentityMetadata
from services.exceptions import AuthError

logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
OAUTH_SCOPES = "openid email profile"

IdentityListener = Callable[[Identity | None], Awaitable[None]]


class SessionProvider(Protocol):
    """Holds the current identity and announces changes to it."""

    async def get_identity(self) -> Identity | None:
        """Current identity, or None when signed out."""

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        """Register listener; returns a function that unregisters it."""

    async def begin_sign_in(self, redirect_to: str) -> str:
        """Return the URL the browser must visit to sign in."""

    async def complete_sign_in(self, code: str, state: str) -> Identity:
        """Finish sign-in from the provider's callback parameters."""

    async def sign_out(self) -> None:
        """Drop the current identity."""


class BaseSessionProvider:
    """Identity holder with change listeners shared by the concrete providers."""

    def __init__(self) -> None:
        self._identity: Identity | None = None
        self._listeners: list[IdentityListener] = []

    async def get_identity(self) -> Identity | None:
        return self._identity

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _set_identity(self, identity: Identity | None) -> None:
        self._identity = identity
        for listener in list(self._listeners):
            await listener(identity)


def identity_from_userinfo(userinfo: object) -> Identity:
    """Build an Identity from an OpenID Connect userinfo payload."""
    if not isinstance(userinfo, dict) or not userinfo.get("sub"):
        raise ValueError("provider did not return an account id")
    return Identity(
        id=userinfo["sub"],
        email=userinfo.get("email"),
        user_metadata=IdentityMetadata(
            avatar_url=userinfo.get("picture"),
            full_name=userinfo.get("name"),
        ),
    )


class OAuthSessionProvider(BaseSessionProvider):
    """
    Google OAuth 2.0 authorization code flow, via authlib's httpx client.

    The pending `state` lives on the provider, which belongs to one view
    session, so no server-side session middleware is needed. `transport` is
    passed through to httpx (tests mount a mock transport).
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__()
        self._client_id = client_id
        self._client_secret = client_secret
        self._transport = transport
        self._timeout = timeout
        self._pending_state: str | None = None
        self._redirect_uri: str | None = None
        self._token: dict | None = None

    def _oauth_client(self, **kwargs: object) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self._client_id,
            client_secret=self._client_secret,
            scope=OAUTH_SCOPES,
            token_endpoint_auth_method="client_secret_post",
            transport=self._transport,
            timeout=self._timeout,
            **kwargs,
        )

    async def begin_sign_in(self, redirect_to: str) -> str:
        if not (self._client_id and self._client_secret):
            raise AuthError("Sign in is not configured")
        async with self._oauth_client(redirect_uri=redirect_to) as client:
            url, state = client.create_authorization_url(
                GOOGLE_AUTHORIZE_URL,
                prompt="select_account",
            )
        self._pending_state = state
        self._redirect_uri = redirect_to
        return url

    async def complete_sign_in(self, code: str, state: str) -> Identity:
        expected = self._pending_state
        self._pending_state = None
        if expected is None or not secrets.compare_digest(expected, state):
            raise AuthError("Sign in expired or was not started here. Please try again.")

        try:
            async with self._oauth_client(redirect_uri=self._redirect_uri) as client:
                token = await client.fetch_token(GOOGLE_TOKEN_URL, code=code)
                response = await client.get(GOOGLE_USERINFO_URL)
                response.raise_for_status()
                identity = identity_from_userinfo(response.json())
        except (AuthlibBaseError, httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning("oauth_exchange_failed: %s", e)
            raise AuthError(f"Sign in error: {e}") from e

        self._token = dict(token)
        logger.info("signed_in", extra={"identity_id": identity.id})
        await self._set_identity(identity)
        return identity

    async def sign_out(self) -> None:
        token = self._token
        self._token = None
        await self._set_identity(None)
        if token is None:
            return
        try:
            async with self._oauth_client(token=token) as client:
                response = await client.revoke_token(
                    GOOGLE_REVOKE_URL,
                    token=token["access_token"],
                )
                response.raise_for_status()
        except (AuthlibBaseError, httpx.HTTPError) as e:
            logger.warning("oauth_revoke_failed: %s", e)
            raise AuthError("Signed out, but the provider could not revoke the session") from e


class DevSessionProvider(BaseSessionProvider):
    """Signs in a fixed identity; only used when dev_mode is on."""

    def __init__(self, identity: Identity) -> None:
        super().__init__()
        self._dev_identity = identity
        self._pending_state: str | None = None

    async def begin_sign_in(self, redirect_to: str) -> str:
        self._pending_state = secrets.token_urlsafe(16)
        return f"{redirect_to}?{urlencode({'code': 'dev', 'state': self._pending_state})}"

    async def complete_sign_in(self, code: str, state: str) -> Identity:  # noqa: ARG002
        if self._pending_state is None or state != self._pending_state:
            raise AuthError("Sign in expired or was not started here. Please try again.")
        self._pending_state = None
        await self._set_identity(self._dev_identity)
        return self._dev_identity

    async def sign_out(self) -> None:
        await self._set_identity(None)
