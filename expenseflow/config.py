"""
Application configuration.

Read once from environment variables at startup. create_app() hands the
database settings to database.configure_pool().
"""

import os
from dataclasses import dataclass
from typing import Optional

from core.services.currency_service import (
    DEFAULT_API_URL, DEFAULT_CACHE_SECONDS, DEFAULT_COUNTRIES_API_URL,
)


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).lower() == 'true'


@dataclass
class AppConfig:
    """Service settings."""

    DATABASE_URL: Optional[str] = None
    DB_POOL_MIN_CONN: int = 2
    DB_POOL_MAX_CONN: int = 8

    SECRET_KEY: Optional[str] = None
    DEBUG: bool = False
    TESTING: bool = False
    LOG_LEVEL: str = 'INFO'

    # Currency conversion
    EXCHANGE_RATE_API_URL: str = DEFAULT_API_URL
    EXCHANGE_RATE_CACHE_SECONDS: int = DEFAULT_CACHE_SECONDS
    COUNTRIES_API_URL: str = DEFAULT_COUNTRIES_API_URL

    # Listings
    DEFAULT_PAGE_SIZE: int = 10

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Load configuration from environment variables."""
        return cls(
            DATABASE_URL=os.environ.get('DATABASE_URL'),
            DB_POOL_MIN_CONN=int(os.environ.get('DB_POOL_MIN_CONN', '2')),
            DB_POOL_MAX_CONN=int(os.environ.get('DB_POOL_MAX_CONN', '8')),
            SECRET_KEY=os.environ.get('FLASK_SECRET_KEY', os.environ.get('SECRET_KEY')),
            DEBUG=_env_bool('FLASK_DEBUG'),
            LOG_LEVEL=os.environ.get('LOG_LEVEL', 'INFO'),
            EXCHANGE_RATE_API_URL=os.environ.get('EXCHANGE_RATE_API_URL', DEFAULT_API_URL),
            EXCHANGE_RATE_CACHE_SECONDS=int(os.environ.get(
                'EXCHANGE_RATE_CACHE_SECONDS', str(DEFAULT_CACHE_SECONDS)
            )),
            COUNTRIES_API_URL=os.environ.get('COUNTRIES_API_URL', DEFAULT_COUNTRIES_API_URL),
            DEFAULT_PAGE_SIZE=int(os.environ.get('DEFAULT_PAGE_SIZE', '10')),
        )

    def resolve_secret_key(self) -> str:
        """Secret key, with a development fallback only when DEBUG or TESTING."""
        if self.SECRET_KEY:
            return self.SECRET_KEY
        if self.DEBUG or self.TESTING:
            return 'dev-secret-key-for-local-only'
        raise RuntimeError('FLASK_SECRET_KEY environment variable is required')
