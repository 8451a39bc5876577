"""Application configuration and environment settings"""
from typing import Literal, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class RecommendationSettings(BaseModel):
    """Recommendation engine tuning"""
    similarity_threshold: int = Field(..., description="Minimum shared tracks for a similar user")
    default_limit: int = Field(..., description="Result count when the caller gives none")
    timeout_seconds: float = Field(..., description="Default deadline, 0 disables it")
    check_interval: int = Field(..., description="Rows streamed between deadline checks")

class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    # Database
    DATABASE_URL: Optional[str] = Field(None, description="Full SQLAlchemy URL, overrides the DB_* fields")
    DB_ENV: Literal["sqlite", "local", "production"] = Field("sqlite", description="Connection preset")
    DB_HOST: Optional[str] = Field(None, description="Database host override")
    DB_PORT: Optional[str] = Field(None, description="Database port override")
    DB_NAME: Optional[str] = Field(None, description="Database name override")
    DB_USER: Optional[str] = Field(None, description="Database user override")
    DB_PASSWORD: Optional[str] = Field(None, description="Database password")
    DB_SSL_MODE: Optional[str] = Field(None, description="sslmode passed to PostgreSQL")

    # Recommendation
    SIMILARITY_THRESHOLD: int = Field(2, ge=1, description="Minimum overlap for a similar user")
    RECOMMEND_DEFAULT_LIMIT: int = Field(10, ge=1, description="Default number of recommendations")
    RECOMMEND_TIMEOUT_SECONDS: float = Field(30.0, ge=0, description="Default recommendation deadline")
    DEADLINE_CHECK_INTERVAL: int = Field(500, ge=1, description="Rows between deadline checks")

    # Event log / aggregation
    QUERY_BATCH_SIZE: int = Field(1000, ge=1, description="Rows fetched per round trip when streaming events")
    DUPLICATE_LIKE_POLICY: Literal["reject", "ignore"] = Field(
        "reject", description="'reject' raises DuplicateError, 'ignore' is a no-op"
    )
    STATS_PRUNE_STALE: bool = Field(False, description="Delete daily rows whose track had no plays that day")

    LOG_LEVEL: str = Field("INFO", description="Root log level for the CLI")

    @property
    def recommendation_settings(self) -> RecommendationSettings:
        """Get recommendation tuning as a separate model"""
        return RecommendationSettings(
            similarity_threshold=self.SIMILARITY_THRESHOLD,
            default_limit=self.RECOMMEND_DEFAULT_LIMIT,
            timeout_seconds=self.RECOMMEND_TIMEOUT_SECONDS,
            check_interval=self.DEADLINE_CHECK_INTERVAL
        )

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )

settings = Settings()
