"""Storage client configuration model."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import MAX_PART_NUMBER

MIB = 1024 * 1024


class SignerType(str, Enum):
    """Request signer types."""
    NONE = "none"
    BEARER = "bearer"
    SIGV4 = "sigv4"


class ObjectStoreConfig(BaseModel):
    """Object storage client configuration."""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    # Connection
    endpoint: Optional[str] = None
    region: str = "us-east-1"
    timeout: float = Field(default=30.0, gt=0)

    # Credentials
    signer: SignerType = SignerType.NONE
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    bearer_token: Optional[str] = None

    # Multipart upload
    part_size: int = Field(default=8 * MIB, ge=1)
    min_part_size: int = Field(default=5 * MIB, ge=1)  # service minimum for non-final parts
    max_parts: int = Field(default=MAX_PART_NUMBER, ge=1, le=MAX_PART_NUMBER)
    concurrency: int = Field(default=4, ge=1)
    retry_complete: bool = False

    # Retry policy
    retry_budget: int = Field(default=3, ge=0)
    backoff_multiplier: float = Field(default=0.5, ge=0)
    backoff_max: float = Field(default=8.0, ge=0)

    # Reads and listings
    page_size: int = Field(default=1000, ge=1, le=1000)
    read_chunk_size: int = Field(default=64 * 1024, ge=1)

    @model_validator(mode="after")
    def _check_part_size(self):
        if self.part_size < self.min_part_size:
            raise ValueError(
                f"part_size ({self.part_size}) must be at least "
                f"min_part_size ({self.min_part_size})"
            )
        return self
