"""Shared fixtures for tests: signing keys, a fake JWKS endpoint, settings and an in-memory store."""

import json
import time
from typing import Any

import httpx
import jwt
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.database import create_session_factory
from app.core.security import TokenVerifier
from app.models import Base

TENANT_ID = "11111111-2222-3333-4444-555555555555"
CIAM_DOMAIN = "contoso.ciamlogin.com"
AUDIENCE = "86e5f581-aaaa-bbbb-cccc-3a987016f841"
ISSUER_GUID_HOST = f"https://{TENANT_ID}.ciamlogin.com/{TENANT_ID}/v2.0"
ISSUER_BRANDED_HOST = f"https://{CIAM_DOMAIN}/{TENANT_ID}/v2.0"
JWKS_URL = f"https://{CIAM_DOMAIN}/{TENANT_ID}/discovery/v2.0/keys"
ADMIN_EMAIL = "admin@example.com"
FRONTEND_ORIGIN = "https://app.example.com"


class SigningKey:
    """RSA key pair published in the fake JWKS under `kid`."""

    def __init__(self, kid: str) -> None:
        self.kid = kid
        self.private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    def jwk(self) -> dict[str, Any]:
        data = json.loads(RSAAlgorithm.to_jwk(self.private_key.public_key()))
        data.update({"kid": self.kid, "use": "sig", "alg": "RS256"})
        return data

    def sign(self, claims: dict[str, Any], headers: dict[str, Any] | None = None) -> str:
        return jwt.encode(
            claims,
            self.private_key,
            algorithm="RS256",
            headers={"kid": self.kid, **(headers or {})},
        )


# 2048-bit key generation is slow; share one key across tests.
PRIMARY_KEY = SigningKey("kid-primary")


def token_claims(**overrides: Any) -> dict[str, Any]:
    """Valid access-token claims; pass name=None to drop a claim."""
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": ISSUER_GUID_HOST,
        "aud": AUDIENCE,
        "sub": "S1",
        "iat": now,
        "nbf": now,
        "exp": now + 600,
        "scp": "access_as_user",
        "preferred_username": "a@example.com",
        "name": "Alice Example",
    }
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


def bearer(claims: dict[str, Any] | None = None, key: SigningKey = PRIMARY_KEY) -> dict[str, str]:
    """Authorization header for a token signed with key."""
    return {"Authorization": f"Bearer {key.sign(claims or token_claims())}"}


class FakeJwksEndpoint:
    """httpx MockTransport handler serving the public halves of `keys`."""

    def __init__(self, *keys: SigningKey) -> None:
        self.keys = list(keys)
        self.calls = 0
        self.fail = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.fail:
            return httpx.Response(503, json={"error": "unavailable"})
        return httpx.Response(200, json={"keys": [k.jwk() for k in self.keys]})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "API_AUDIENCE": AUDIENCE,
        "CIAM_TENANT_ID": TENANT_ID,
        "CIAM_DOMAIN": CIAM_DOMAIN,
        "ADMIN_EMAIL": ADMIN_EMAIL,
        "FRONTEND_ORIGIN": FRONTEND_ORIGIN,
        "DATABASE_URL": "sqlite://",
        "REQUIRED_SCOPE": "",
        "DEBUG": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_verifier(settings: Settings, endpoint: FakeJwksEndpoint) -> TokenVerifier:
    return TokenVerifier.from_settings(settings, http_client=endpoint.client())


def make_session_factory() -> sessionmaker[Session]:
    """In-memory SQLite shared across threads (FastAPI runs sync routes in a threadpool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return create_session_factory(engine)
