"""Database configuration and credentials management"""
from dataclasses import dataclass
from typing import Optional

from listening_analytics.config import Settings, settings

SQLITE_URL = 'sqlite:///listening_analytics.db'

# Environment-specific database configurations
PRODUCTION_CONFIG = {
    'HOST': 'analytics-db.internal',
    'PORT': '5432',
    'NAME': 'listening_analytics',
    'USER': 'analytics',
    'SSL_MODE': 'require'
}

LOCAL_CONFIG = {
    'HOST': 'localhost',
    'PORT': '5432',
    'NAME': 'listening_analytics',
    'USER': 'analytics',
    'SSL_MODE': 'disable'
}

def determine_network_config(config: Settings) -> Optional[dict]:
    """Pick the connection preset for DB_ENV, None for SQLite."""
    if config.DB_ENV == 'production':
        return PRODUCTION_CONFIG
    elif config.DB_ENV == 'local':
        return LOCAL_CONFIG
    elif config.DB_ENV == 'sqlite':
        return None
    else:
        raise ValueError(f"Invalid DB_ENV {config.DB_ENV}. Must be production, local or sqlite")

@dataclass
class DatabaseCredentials:
    """Database credentials container with validation"""
    host: str
    port: str
    name: str
    user: str
    password: str
    ssl_mode: str = 'require'

    def to_connection_string(self) -> str:
        """Generate database connection string"""
        return (
            f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/"
            f"{self.name}?sslmode={self.ssl_mode}"
        )

    @classmethod
    def from_config(cls, preset: dict, config: Settings) -> 'DatabaseCredentials':
        """Create credentials from a preset, letting DB_* settings override it"""
        if not config.DB_PASSWORD:
            raise ValueError("DB_PASSWORD setting is required")
        return cls(
            host=config.DB_HOST or preset['HOST'],
            port=config.DB_PORT or preset['PORT'],
            name=config.DB_NAME or preset['NAME'],
            user=config.DB_USER or preset['USER'],
            password=config.DB_PASSWORD,
            ssl_mode=config.DB_SSL_MODE or preset['SSL_MODE']
        )

class DatabaseManager:
    """Resolves the connection string for the configured environment"""

    @classmethod
    def initialize_from_env(cls, config: Settings = settings) -> str:
        """
        Build the database connection string from settings

        Returns:
            SQLAlchemy URL string

        Raises:
            ValueError: If a PostgreSQL preset is selected without DB_PASSWORD
        """
        if config.DATABASE_URL:
            return config.DATABASE_URL

        preset = determine_network_config(config)
        if preset is None:
            return SQLITE_URL
        return DatabaseCredentials.from_config(preset, config).to_connection_string()
