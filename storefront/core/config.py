"""
Application configuration

SECURITY: Defaults are fail-safe for production.
- DEBUG defaults to False
- SECRET_KEY has no default (will fail if not set)
- Runtime validation catches insecure configurations

One settings object is shared by the three services; each service only
reads the fields it needs.
"""
import json
import logging
from typing import List, Union

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

STORAGE_BACKENDS = ("memory", "postgres")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # App - defaults are PRODUCTION safe
    APP_NAME: str = "Storefront"
    APP_VERSION: str = "2.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # Persistence: "memory" (seeded stub stores) or "postgres"
    STORAGE_BACKEND: str = "memory"
    SEED_DEMO_DATA: bool = True

    # Database - only required when STORAGE_BACKEND=postgres
    DATABASE_URL: str = ""

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def convert_database_url(cls, v):
        """Convert plain postgres:// URLs to the asyncpg driver form."""
        if not v:
            return v
        if v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+asyncpg://", 1)
        elif v.startswith("postgresql://") and "+asyncpg" not in v:
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @field_validator("STORAGE_BACKEND", mode="before")
    @classmethod
    def normalize_storage_backend(cls, v):
        value = (v or "memory").strip().lower()
        if value not in STORAGE_BACKENDS:
            raise ValueError(f"STORAGE_BACKEND must be one of {STORAGE_BACKENDS}, got {v!r}")
        return value

    # Database Pool Configuration
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 3600
    DB_CONNECT_TIMEOUT_SECONDS: float = 2.0

    # Auth - NO DEFAULT SECRET KEY (will fail if not set)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    PASSWORD_MIN_LENGTH: int = 6

    # Service-to-service
    USERS_SERVICE_URL: str = "http://localhost:8081"
    PRODUCTS_SERVICE_URL: str = "http://localhost:8080"
    ORDERS_SERVICE_URL: str = "http://localhost:8083"
    SERVICE_TIMEOUT_SECONDS: float = 5.0
    INTERNAL_API_TOKEN: str = ""

    # CORS - accepts JSON array or comma-separated string
    CORS_ORIGINS: Union[str, List[str]] = DEFAULT_CORS_ORIGINS

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            if not v or v.strip() == "":
                return DEFAULT_CORS_ORIGINS
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/minute"
    RATE_LIMIT_AUTH: str = "5/minute"
    RATE_LIMIT_CHECKOUT: str = "10/minute"

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    @model_validator(mode="after")
    def validate_production_config(self):
        """Runtime validation to catch insecure production configurations."""
        if self.ENVIRONMENT == "production":
            errors = []

            if self.DEBUG:
                errors.append(
                    "DEBUG=True is forbidden in production. "
                    "Set DEBUG=false or ENVIRONMENT=development"
                )

            insecure_secrets = [
                "your-secret-key",
                "your-super-secret",
                "change-in-production",
                "changeme",
            ]
            if any(bad in self.SECRET_KEY.lower() for bad in insecure_secrets):
                errors.append(
                    "Insecure SECRET_KEY detected in production. "
                    "Generate a secure key: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
                )

            if self.STORAGE_BACKEND == "postgres" and not self.DATABASE_URL:
                errors.append("STORAGE_BACKEND=postgres requires DATABASE_URL.")

            if errors:
                raise ValueError("Insecure production configuration: " + " | ".join(errors))

        elif self.STORAGE_BACKEND == "postgres" and not self.DATABASE_URL:
            logger.warning("STORAGE_BACKEND=postgres but DATABASE_URL is empty")

        return self

    @property
    def uses_database(self) -> bool:
        return self.STORAGE_BACKEND == "postgres"


settings = Settings()
