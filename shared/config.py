"""
Shared configuration management for Tile Rules.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="TILE_RULES_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class EvaluatorConfig(BaseConfig):
    """Input bounds for condition evaluation and template rendering."""

    max_template_length: int = Field(default=10000, gt=0)
    max_pattern_length: int = Field(default=1000, gt=0)


def get_config() -> EvaluatorConfig:
    """Get evaluator configuration from the environment."""
    return EvaluatorConfig()
