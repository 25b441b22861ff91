"""Configuration for FastAPI application."""

from pydantic_settings import BaseSettings
from pydantic import validator
from typing import List, Optional, Union
import json


def _parse_list(v):
    """Parse a list setting from a JSON array string, comma list or list."""
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [v]
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


class Settings(BaseSettings):
    # API Configuration
    api_prefix: str = "/api/v1"
    api_title: str = "asset-vault API"
    api_version: str = "1.0.0"
    allowed_origins: Union[str, List[str]] = ["*"]

    # Shared secret for the scheduled backup trigger
    cron_secret: Optional[str] = None

    # Roles allowed to restore
    restore_roles: Union[str, List[str]] = ["OWNER"]

    # Read caller identity from X-User-* headers set by a trusted proxy
    trust_identity_headers: bool = False

    @validator('allowed_origins', 'restore_roles', pre=True)
    def parse_lists(cls, v):
        return _parse_list(v)

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra environment variables


settings = Settings()
