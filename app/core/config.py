"""Application configuration loaded from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url

# Allowed URL schemes for DATABASE_URL (module-level so validators can use it).
# sqlite is accepted for local runs and tests.
VALID_DATABASE_URL_PREFIXES = (
    "postgresql://",
    "postgresql+psycopg2://",
    "postgres://",
    "postgres+psycopg2://",
    "sqlite://",
)

# Auth settings that must be present for token verification to work at all.
REQUIRED_AUTH_SETTINGS = ("API_AUDIENCE", "CIAM_TENANT_ID", "CIAM_DOMAIN")


class Settings(BaseSettings):
    """Validated application settings from env and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    APP_ENV: Literal["dev", "prod"] = "dev"
    DEBUG: bool = False
    PORT: int = 8080
    API_PREFIX: str = "/api"

    # Identity platform (Entra External ID / CIAM)
    API_AUDIENCE: str = ""
    CIAM_TENANT_ID: str = ""
    CIAM_DOMAIN: str = ""
    # Comma-separated issuers accepted in addition to the two CIAM host forms
    EXTRA_ISSUERS: str = ""
    JWKS_URL: str | None = None
    JWKS_CACHE_LIFESPAN_SEC: int = 3600
    JWKS_MIN_REFRESH_INTERVAL_SEC: int = 30
    JWKS_REQUEST_TIMEOUT_SEC: float = 5.0
    CLOCK_SKEW_SEC: int = 60
    # When set, the access token's scp claim must contain this scope
    REQUIRED_SCOPE: str = ""

    # Single administrator, compared against the caller's resolved email
    ADMIN_EMAIL: str = ""

    # CORS
    FRONTEND_ORIGIN: str = ""
    CORS_ALLOW_LOCALHOST: bool = True
    CORS_PREVIEW_SUFFIX: str = "azurestaticapps.net"

    # Postgres: DATABASE_URL wins when set, otherwise built from PG* parameters
    DATABASE_URL: str | None = None
    PGHOST: str = "localhost"
    PGPORT: int = 5432
    PGDATABASE: str = "gatekeeper"
    PGUSER: str = "postgres"
    PGPASSWORD: SecretStr = SecretStr("")
    PGSSLMODE: str | None = None
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT_SEC: float = 5.0
    DB_CONNECT_TIMEOUT_SEC: int = 5
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    LIST_USERS_LIMIT: int = 200

    @field_validator(
        "API_AUDIENCE", "CIAM_TENANT_ID", "EXTRA_ISSUERS", "REQUIRED_SCOPE", "PGHOST"
    )
    @classmethod
    def strip_value(cls, v: str) -> str:
        return v.strip()

    @field_validator("CIAM_DOMAIN")
    @classmethod
    def validate_ciam_domain(cls, v: str) -> str:
        # Accept "contoso.ciamlogin.com" as well as "https://contoso.ciamlogin.com/"
        s = v.strip().rstrip("/")
        for scheme in ("https://", "http://"):
            if s.lower().startswith(scheme):
                s = s[len(scheme):]
        return s

    @field_validator("JWKS_URL")
    @classmethod
    def validate_jwks_url(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        if not v.strip().lower().startswith(("https://", "http://")):
            raise ValueError("JWKS_URL must use http or https")
        return v.strip()

    @field_validator("ADMIN_EMAIL")
    @classmethod
    def normalize_admin_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("FRONTEND_ORIGIN")
    @classmethod
    def validate_frontend_origin(cls, v: str) -> str:
        s = v.strip().rstrip("/")
        if s and not s.lower().startswith(("https://", "http://")):
            raise ValueError(
                "FRONTEND_ORIGIN must use http or https (e.g. https://app.example.com)"
            )
        return s

    @field_validator("CORS_PREVIEW_SUFFIX")
    @classmethod
    def validate_preview_suffix(cls, v: str) -> str:
        return v.strip().strip(".").lower()

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        if not any(v.strip().startswith(prefix) for prefix in VALID_DATABASE_URL_PREFIXES):
            raise ValueError(
                "DATABASE_URL must be a PostgreSQL or SQLite URL (e.g. postgresql+psycopg2:// or sqlite://)"
            )
        return v.strip()

    @field_validator("JWKS_CACHE_LIFESPAN_SEC")
    @classmethod
    def validate_jwks_lifespan(cls, v: int) -> int:
        if v < 60 or v > 86400:
            raise ValueError("JWKS_CACHE_LIFESPAN_SEC must be between 60 and 86400")
        return v

    @field_validator("JWKS_MIN_REFRESH_INTERVAL_SEC")
    @classmethod
    def validate_jwks_min_refresh(cls, v: int) -> int:
        if v < 0 or v > 3600:
            raise ValueError("JWKS_MIN_REFRESH_INTERVAL_SEC must be between 0 and 3600")
        return v

    @field_validator("JWKS_REQUEST_TIMEOUT_SEC", "DB_POOL_TIMEOUT_SEC")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0 or v > 60:
            raise ValueError("timeouts must be greater than 0 and at most 60 seconds")
        return v

    @field_validator("CLOCK_SKEW_SEC")
    @classmethod
    def validate_clock_skew(cls, v: int) -> int:
        if v < 0 or v > 300:
            raise ValueError("CLOCK_SKEW_SEC must be between 0 and 300")
        return v

    @field_validator("LIST_USERS_LIMIT")
    @classmethod
    def validate_list_limit(cls, v: int) -> int:
        if v < 1 or v > 1000:
            raise ValueError("LIST_USERS_LIMIT must be between 1 and 1000")
        return v

    @property
    def database_url(self) -> str | URL:
        """DATABASE_URL when given, else a psycopg2 URL built from the PG* parameters."""
        if self.DATABASE_URL:
            url = make_url(self.DATABASE_URL)
            if url.drivername in ("postgres", "postgres+psycopg2"):
                url = url.set(drivername="postgresql+psycopg2")
            return url
        query = {"sslmode": self.PGSSLMODE} if self.PGSSLMODE else {}
        return URL.create(
            "postgresql+psycopg2",
            username=self.PGUSER,
            password=self.PGPASSWORD.get_secret_value() or None,
            host=self.PGHOST,
            port=self.PGPORT,
            database=self.PGDATABASE,
            query=query,
        )

    @property
    def jwks_url(self) -> str:
        if self.JWKS_URL:
            return self.JWKS_URL
        return f"https://{self.CIAM_DOMAIN}/{self.CIAM_TENANT_ID}/discovery/v2.0/keys"

    @property
    def allowed_issuers(self) -> tuple[str, ...]:
        """Issuer forms CIAM presents: tenant-GUID host and branded domain host."""
        tenant = self.CIAM_TENANT_ID
        issuers = [
            f"https://{tenant}.ciamlogin.com/{tenant}/v2.0",
            f"https://{self.CIAM_DOMAIN}/{tenant}/v2.0",
        ]
        issuers.extend(i.strip() for i in self.EXTRA_ISSUERS.split(",") if i.strip())
        return tuple(dict.fromkeys(issuers))

    def missing_auth_settings(self) -> list[str]:
        """Names of required auth settings that are empty."""
        return [name for name in REQUIRED_AUTH_SETTINGS if not getattr(self, name)]


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance (safe to call from entrypoints)."""
    return Settings()
