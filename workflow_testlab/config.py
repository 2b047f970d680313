# workflow_testlab/config.py
"""Settings loaded from the environment (prefix ``TESTLAB_``) or a ``.env`` file."""
from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TESTLAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=True, description="Emit JSON log lines")

    # playback
    node_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Artificial per-node delay at 1x speed",
    )
    default_speed: float = Field(default=1.0, gt=0, description="Initial speed multiplier")
    strict_conditions: bool = Field(
        default=False,
        description="Fail condition nodes whose predicate shape is not recognized instead of passing them",
    )

    # best-effort external services used by domain connectors
    collaborator_base_url: Optional[str] = Field(
        default=None,
        description="REST base URL for document/record/auth services; unset means mock only",
    )
    collaborator_api_key: Optional[SecretStr] = None
    collaborator_timeout_s: float = Field(default=10.0, gt=0)
    collaborator_user_id: Optional[str] = Field(
        default=None,
        description="User id to attribute writes to when the auth service has no session",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
