"""
Configuration management for OpsBoard.

Loads settings from environment variables with sensible defaults.
Both the backend service and the dashboard client read from here.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration."""
    url: str = os.getenv('DATABASE_URL', 'sqlite:///opsboard.db')

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class AuthConfig:
    """Managed auth settings."""
    session_ttl_hours: int = int(os.getenv('SESSION_TTL_HOURS', '12'))
    password_reset_redirect: str = os.getenv(
        'PASSWORD_RESET_REDIRECT', 'http://localhost:5000/auth'
    )
    min_password_length: int = 8


@dataclass(frozen=True)
class ClientConfig:
    """Dashboard client settings."""
    api_url: str = os.getenv('OPSBOARD_API_URL', 'http://localhost:5000')
    request_timeout: float = float(os.getenv('REQUEST_TIMEOUT_SECONDS', '30'))


@dataclass(frozen=True)
class SyncConfig:
    """List synchronization settings."""
    # Liveness check only; push events are the primary sync path
    liveness_seconds: float = float(os.getenv('SYNC_LIVENESS_SECONDS', '30'))
    flights_limit: int = int(os.getenv('FLIGHTS_LIMIT', '10'))


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    database: DatabaseConfig
    auth: AuthConfig
    client: ClientConfig
    sync: SyncConfig

    # Flask settings
    secret_key: str
    debug: bool


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        database=DatabaseConfig(),
        auth=AuthConfig(),
        client=ClientConfig(),
        sync=SyncConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
