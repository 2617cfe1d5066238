"""
Settings loaded from the environment and ``.env``.
"""
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024


class ObjectStoreSettings(BaseModel):
    endpoint: Optional[str] = None
    region: str = "us-east-1"
    # Transfer tuning
    part_size: int = 8 * MIB
    min_part_size: int = 5 * MIB
    max_parts: int = 10000
    concurrency: int = 4
    retry_budget: int = 3
    backoff_multiplier: float = 0.5
    backoff_max: float = 8.0
    page_size: int = 1000
    read_chunk_size: int = 64 * 1024
    timeout: float = 30.0
    retry_complete: bool = False
    # Signing: none, bearer, sigv4
    signer: str = "none"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    bearer_token: Optional[str] = None


class Settings(BaseSettings):
    """Process-level settings."""

    DEBUG: bool = Field(default=False)

    objstore: ObjectStoreSettings = Field(default_factory=ObjectStoreSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


def load_settings() -> Settings:
    return Settings()
