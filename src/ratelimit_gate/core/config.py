"""Configuration management for ratelimit-gate."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven defaults for logging and rate limiting."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Logging format: json or text")

    # Rate limiting configuration
    RATE_LIMIT_MAX_REQUESTS: int = Field(default=100, ge=0, description="Default requests per window")
    RATE_LIMIT_WINDOW_SECONDS: float = Field(default=60, gt=0, description="Default window in seconds")
    RATE_LIMIT_GROUPING: str = Field(
        default="global",
        pattern="^(global|hostname)$",
        description="Built-in grouping strategy",
    )
    RATE_LIMIT_THROW_ON_DENY: bool = Field(default=True, description="Raise instead of returning a 429 response")
    RATE_LIMIT_AUTO_NEGOTIATE: bool = Field(default=True, description="Tune policies from upstream headers")

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator('LOG_FORMAT')
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format"""
        valid_formats = ['json', 'text']
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of {valid_formats}")
        return v.lower()


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get library settings"""
    return settings
