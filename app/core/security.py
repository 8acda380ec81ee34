"""Bearer token verification against the identity platform's published signing keys."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import jwt

from app.core.errors import InsufficientScope, InvalidToken, MissingToken, UpstreamUnavailable

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

# Entra External ID signs access tokens with RS256 only.
ALGORITHMS = ("RS256",)

REQUIRED_CLAIMS = ["exp", "iss", "aud", "sub"]

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from an 'Authorization: Bearer <token>' header value."""
    header = (authorization or "").strip()
    if not _BEARER_PREFIX.match(header):
        raise MissingToken("authorization header is not a bearer credential")
    token = _BEARER_PREFIX.sub("", header, count=1).strip()
    if not token:
        raise MissingToken("bearer token is empty")
    return token


@dataclass(frozen=True)
class VerifiedToken:
    """Verified claim set plus diagnostics about which key and issuer matched."""

    claims: dict[str, Any]
    kid: str
    matched_issuer: str

    @property
    def subject(self) -> str:
        sub = self.claims.get("sub")
        return sub.strip() if isinstance(sub, str) else ""

    @property
    def scopes(self) -> list[str]:
        scp = self.claims.get("scp")
        if isinstance(scp, str):
            return scp.split()
        if isinstance(scp, list):
            return [s for s in scp if isinstance(s, str)]
        return []


@dataclass
class _KeySnapshot:
    keys: dict[str, jwt.PyJWK] = field(default_factory=dict)
    fetched_at: float | None = None


class JwksCache:
    """
    Caches the JWKS published by the identity platform.

    Keys are refetched when the cache is older than `lifespan` seconds, or when a
    token names an unknown kid (key rotation), at most once per
    `min_refresh_interval` seconds since the last attempt. During an outage the
    cached keys stay in use. Refreshes are serialized by a lock; readers
    only ever see a complete snapshot.
    """

    def __init__(
        self,
        url: str,
        *,
        lifespan: float = 3600,
        min_refresh_interval: float = 30,
        timeout: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url
        self._lifespan = lifespan
        self._min_refresh_interval = min_refresh_interval
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None
        self._clock = clock
        self._snapshot = _KeySnapshot()
        self._last_attempt: float | None = None
        self._lock = asyncio.Lock()

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def _age(self, snapshot: _KeySnapshot) -> float | None:
        if snapshot.fetched_at is None:
            return None
        return self._clock() - snapshot.fetched_at

    def _is_fresh(self, snapshot: _KeySnapshot) -> bool:
        age = self._age(snapshot)
        return age is not None and age < self._lifespan

    def _should_refresh(self, snapshot: _KeySnapshot, kid: str) -> bool:
        """
        Refetch when the snapshot is stale or lacks kid, at most once per
        min_refresh_interval since the last attempt, successful or not.

        A stale snapshot without kid is always refetched.
        """
        throttled = (
            self._last_attempt is not None
            and self._clock() - self._last_attempt < self._min_refresh_interval
        )
        if not self._is_fresh(snapshot):
            return not (throttled and kid in snapshot.keys)
        return kid not in snapshot.keys and not throttled

    async def get_signing_key(self, kid: str) -> jwt.PyJWK:
        snapshot = self._snapshot
        if self._is_fresh(snapshot) and kid in snapshot.keys:
            return snapshot.keys[kid]

        async with self._lock:
            snapshot = self._snapshot
            if self._should_refresh(snapshot, kid):
                self._last_attempt = self._clock()
                try:
                    snapshot = await self._refresh()
                except UpstreamUnavailable:
                    # Cached keys stay usable while the endpoint is down.
                    if kid not in snapshot.keys:
                        raise
                    logger.warning(
                        "JWKS refresh failed; using cached keys",
                        extra={"jwks_url": self.url, "kid": kid},
                    )

        key = snapshot.keys.get(kid)
        if key is None:
            raise InvalidToken(f"no signing key with kid={kid}")
        return key

    async def _refresh(self) -> _KeySnapshot:
        try:
            response = await self.http_client.get(self.url, timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error("JWKS fetch failed", extra={"jwks_url": self.url, "reason": str(e)})
            raise UpstreamUnavailable(f"JWKS fetch failed: {e}") from e
        except ValueError as e:
            logger.error("JWKS response is not JSON", extra={"jwks_url": self.url})
            raise UpstreamUnavailable("JWKS response is not JSON") from e
        if not isinstance(data, dict):
            raise UpstreamUnavailable("JWKS response is not a key set")

        try:
            jwk_set = jwt.PyJWKSet.from_dict(data)
        except jwt.PyJWTError as e:
            logger.error("JWKS has no usable keys", extra={"jwks_url": self.url, "reason": str(e)})
            raise UpstreamUnavailable(f"JWKS has no usable keys: {e}") from e

        keys = {k.key_id: k for k in jwk_set.keys if k.key_id}
        self._snapshot = _KeySnapshot(keys=keys, fetched_at=self._clock())
        logger.info("JWKS refreshed", extra={"jwks_url": self.url, "key_count": len(keys)})
        return self._snapshot


class TokenVerifier:
    """Verifies bearer access tokens: signature by kid, issuer allow-list, audience, lifetime."""

    def __init__(
        self,
        jwks: JwksCache,
        *,
        audience: str,
        issuers: tuple[str, ...],
        leeway: int = 60,
        required_scope: str = "",
    ) -> None:
        self._jwks = jwks
        self._audience = audience
        self._issuers = issuers
        self._leeway = leeway
        self._required_scope = required_scope

    @classmethod
    def from_settings(
        cls, settings: "Settings", http_client: httpx.AsyncClient | None = None
    ) -> "TokenVerifier":
        jwks = JwksCache(
            settings.jwks_url,
            lifespan=settings.JWKS_CACHE_LIFESPAN_SEC,
            min_refresh_interval=settings.JWKS_MIN_REFRESH_INTERVAL_SEC,
            timeout=settings.JWKS_REQUEST_TIMEOUT_SEC,
            http_client=http_client,
        )
        return cls(
            jwks,
            audience=settings.API_AUDIENCE,
            issuers=settings.allowed_issuers,
            leeway=settings.CLOCK_SKEW_SEC,
            required_scope=settings.REQUIRED_SCOPE,
        )

    async def close(self) -> None:
        await self._jwks.close()

    async def verify(self, authorization: str | None) -> VerifiedToken:
        """Verify the token carried in an Authorization header value."""
        return await self.verify_token(extract_bearer_token(authorization))

    async def verify_token(self, token: str) -> VerifiedToken:
        if not token or not token.strip():
            raise MissingToken("bearer token is empty")
        try:
            return await self._verify(token.strip())
        except InvalidToken as e:
            logger.warning("Token rejected", extra={"reason": e.detail[:200]})
            raise

    async def _verify(self, token: str) -> VerifiedToken:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise InvalidToken(f"malformed token: {e}") from e

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise InvalidToken("token header has no kid")
        if header.get("alg") not in ALGORITHMS:
            raise InvalidToken(f"unsupported alg {header.get('alg')!r}")

        signing_key = await self._jwks.get_signing_key(kid)

        try:
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=list(ALGORITHMS),
                # An unset audience rejects every token that carries aud.
                audience=self._audience or None,
                leeway=self._leeway,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.PyJWTError as e:
            raise InvalidToken(f"{type(e).__name__}: {e}") from e

        issuer = claims.get("iss")
        if issuer not in self._issuers:
            raise InvalidToken(f"issuer not allowed: {issuer!r}")

        verified = VerifiedToken(claims=claims, kid=kid, matched_issuer=issuer)
        if self._required_scope and self._required_scope not in verified.scopes:
            logger.warning(
                "Token lacks required scope",
                extra={"required_scope": self._required_scope, "sub": verified.subject},
            )
            raise InsufficientScope(f"scope {self._required_scope!r} not granted")
        return verified


def claims_view(claims: Mapping[str, Any]) -> dict[str, Any]:
    """Subset of claims that is safe to echo back for diagnostics."""
    keys = ("sub", "oid", "tid", "iss", "aud", "scp", "preferred_username", "name")
    return {k: claims.get(k) for k in keys if k in claims}
