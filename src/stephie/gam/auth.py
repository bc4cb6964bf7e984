"""Service account credentials for Google Ad Manager.

``CredentialCache`` hands out bearer tokens while keeping the number of
handshakes and token exchanges to a minimum:

- The signing client is built and authorized once, then reused.
- A fetched token is recorded with a lifetime shorter than the provider's
  (55 of 60 minutes by default) and treated as expired once it is within the
  safety margin (5 minutes) of that recorded expiry.

``ServiceAccountSigner`` is the concrete signing client: it signs an RS256
JWT-bearer assertion with the service account key and exchanges it at the
OAuth token endpoint.
"""

import asyncio
from collections.abc import Callable, Sequence
from typing import Protocol

import httpx
import jwt
import structlog

from stephie import config as config_module
from stephie.clock import Clock, system_clock
from stephie.errors import AuthorizationError, ConfigurationError, TokenFetchError
from stephie.models import CachedToken, TokenGrant

log = structlog.get_logger()

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"


class SigningClient(Protocol):
    """Authorized handle able to mint bearer tokens."""

    async def authorize(self) -> None: ...

    async def fetch_token(self) -> TokenGrant: ...


SignerFactory = Callable[[str, str], SigningClient]


def normalize_private_key(private_key: str) -> str:
    """Turn escaped ``\\n`` sequences from env files into real newlines."""
    return private_key.replace("\\n", "\n")


class ServiceAccountSigner:
    """OAuth 2.0 JWT-bearer client for a Google service account."""

    def __init__(
        self,
        email: str,
        private_key: str,
        *,
        scopes: Sequence[str] | None = None,
        token_uri: str | None = None,
        assertion_lifetime: float = 3600.0,
        eager_refresh_seconds: float = 300.0,
        clock: Clock = system_clock,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        cfg = config_module.settings
        self.email = email
        self._private_key = normalize_private_key(private_key)
        self.scopes = list(scopes if scopes is not None else cfg.gam_scopes)
        self.token_uri = token_uri or cfg.google_token_uri
        self.assertion_lifetime = assertion_lifetime
        self.eager_refresh_seconds = eager_refresh_seconds
        self._clock = clock
        self._transport = transport
        self._timeout = timeout or cfg.http_timeout_seconds
        self._token: str | None = None
        self._token_expires_at = 0.0

    def _build_assertion(self, now: float) -> str:
        claims = {
            "iss": self.email,
            "scope": " ".join(self.scopes),
            "aud": self.token_uri,
            "iat": int(now),
            "exp": int(now + self.assertion_lifetime),
        }
        return jwt.encode(claims, self._private_key, algorithm="RS256")

    async def _exchange(self) -> TokenGrant:
        now = self._clock.now()
        try:
            assertion = self._build_assertion(now)
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise AuthorizationError(
                f"Failed to sign service account assertion: {e}",
                details={"service_account": self.email},
            ) from e

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self.token_uri,
                    data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                )
        except httpx.HTTPError as e:
            raise AuthorizationError(
                f"Token endpoint unreachable: {e}",
                details={"service_account": self.email},
            ) from e

        if not response.is_success:
            raise AuthorizationError(
                f"Token exchange rejected with status {response.status_code}",
                details={
                    "service_account": self.email,
                    "status_code": response.status_code,
                    "body": response.text[:500],
                },
            )

        body = response.json()
        token = body.get("access_token")
        expires_in = body.get("expires_in")
        expires_in = float(expires_in) if expires_in is not None else self.assertion_lifetime

        self._token = token or None
        self._token_expires_at = now + expires_in
        return TokenGrant(token=self._token, expires_in=expires_in)

    async def authorize(self) -> None:
        """Perform the initial exchange, proving the key and scopes are accepted."""
        await self._exchange()
        log.debug("Service account authorized", service_account=self.email)

    async def fetch_token(self) -> TokenGrant:
        """Return the current token, exchanging again once it nears expiry."""
        now = self._clock.now()
        if self._token and now + self.eager_refresh_seconds < self._token_expires_at:
            return TokenGrant(token=self._token, expires_in=self._token_expires_at - now)
        return await self._exchange()


def default_signer_factory(email: str, private_key: str) -> SigningClient:
    cfg = config_module.settings
    return ServiceAccountSigner(
        email,
        private_key,
        assertion_lifetime=cfg.token_provider_lifetime_seconds,
        eager_refresh_seconds=cfg.token_safety_margin_seconds,
    )


class CredentialCache:
    """Caches the signing client and the bearer token it produces."""

    def __init__(
        self,
        email: str | None = None,
        private_key: str | None = None,
        *,
        signer_factory: SignerFactory | None = None,
        clock: Clock = system_clock,
        safety_margin: float | None = None,
        cached_lifetime: float | None = None,
        provider_lifetime: float | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            email: Service account identity. Defaults to settings at call time.
            private_key: PEM private key. Defaults to settings at call time.
            signer_factory: Builds a signing client from (email, private_key).
            clock: Time source for expiry checks.
            safety_margin: Seconds before recorded expiry a token counts as expired.
            cached_lifetime: Lifetime recorded for a fresh token.
            provider_lifetime: Lifetime the provider actually grants.
        """
        cfg = config_module.settings
        self._email = email
        self._private_key = private_key
        self._signer_factory = signer_factory or default_signer_factory
        self._clock = clock
        self.safety_margin = (
            safety_margin if safety_margin is not None else cfg.token_safety_margin_seconds
        )
        self.cached_lifetime = (
            cached_lifetime if cached_lifetime is not None else cfg.token_cached_lifetime_seconds
        )
        self.provider_lifetime = (
            provider_lifetime
            if provider_lifetime is not None
            else cfg.token_provider_lifetime_seconds
        )
        self._signing_client: SigningClient | None = None
        self._token: CachedToken | None = None
        self._lock = asyncio.Lock()
        self._stats = {"handshakes": 0, "token_fetches": 0, "cache_hits": 0}

    def _credentials(self) -> tuple[str, str]:
        cfg = config_module.settings
        email = self._email or cfg.google_service_account_email
        private_key = self._private_key or cfg.google_private_key.get_secret_value()
        if not email or not private_key:
            raise ConfigurationError(
                "Google service account credentials not configured. Set "
                "GOOGLE_SERVICE_ACCOUNT_EMAIL and GOOGLE_PRIVATE_KEY environment variables.",
                details={
                    "email_set": bool(email),
                    "private_key_set": bool(private_key),
                },
            )
        return email, private_key

    async def _signing_client_locked(self) -> SigningClient:
        if self._signing_client is not None:
            return self._signing_client

        email, private_key = self._credentials()
        client = self._signer_factory(email, private_key)
        try:
            await client.authorize()
        except AuthorizationError:
            raise
        except Exception as e:
            raise AuthorizationError(
                f"Service account handshake failed: {e}",
                details={"service_account": email},
            ) from e

        self._stats["handshakes"] += 1
        self._signing_client = client
        log.info("Service account handshake complete", service_account=email)
        return client

    async def get_signing_client(self) -> SigningClient:
        """Return the authorized signing client, building it on first use.

        Raises:
            ConfigurationError: If the email or private key is missing.
            AuthorizationError: If the handshake fails. Not retried.
        """
        if self._signing_client is not None:
            return self._signing_client
        async with self._lock:
            return await self._signing_client_locked()

    def _cached_token(self) -> str | None:
        cached = self._token
        if cached is not None and cached.is_usable(self._clock.now(), self.safety_margin):
            return cached.token
        return None

    async def get_access_token(self) -> str:
        """Return a bearer token usable for at least one more request.

        Raises:
            ConfigurationError: If the email or private key is missing.
            AuthorizationError: If the handshake fails.
            TokenFetchError: If the provider returns no token.
        """
        token = self._cached_token()
        if token is not None:
            self._stats["cache_hits"] += 1
            log.debug("Using cached access token")
            return token

        async with self._lock:
            # Another task may have refreshed while we waited
            token = self._cached_token()
            if token is not None:
                self._stats["cache_hits"] += 1
                return token

            log.info("Fetching new access token")
            client = await self._signing_client_locked()
            grant = await client.fetch_token()
            if not grant.token:
                raise TokenFetchError("Failed to get Google Ad Manager access token")

            now = self._clock.now()
            lifetime = self.cached_lifetime
            if grant.expires_in is not None:
                headroom = self.provider_lifetime - self.cached_lifetime
                lifetime = min(lifetime, grant.expires_in - headroom)

            self._token = CachedToken(
                token=grant.token,
                expires_at=now + lifetime,
                signing_client=client,
            )
            self._stats["token_fetches"] += 1
            return grant.token

    def invalidate(self) -> None:
        """Drop the cached token and signing client."""
        self._token = None
        self._signing_client = None
        log.info("Credential cache invalidated")

    @property
    def expires_at(self) -> float | None:
        return self._token.expires_at if self._token else None

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)


# Global credential cache
_credential_cache: CredentialCache | None = None


def get_credential_cache() -> CredentialCache:
    """Get the global credential cache."""
    global _credential_cache  # noqa: PLW0603
    if _credential_cache is None:
        _credential_cache = CredentialCache()
    return _credential_cache


def reset_credential_cache() -> None:
    """Drop the global credential cache."""
    global _credential_cache  # noqa: PLW0603
    if _credential_cache is not None:
        _credential_cache.invalidate()
    _credential_cache = None
