"""Runtime configuration loaded from the environment."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_API_URL = "https://base44.app/api"
DEFAULT_TIMEOUT = 15


@dataclass(frozen=True)
class Settings:
    """Connection settings for the hosted backend."""
    app_id: str
    api_url: str = DEFAULT_API_URL
    api_key: Optional[str] = None
    timeout: int = DEFAULT_TIMEOUT

    @property
    def base_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/apps/{self.app_id}"


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build settings from KARMA_* environment variables (and a .env file)."""
    load_dotenv(env_file)

    app_id = os.getenv("KARMA_APP_ID")
    if not app_id:
        raise ValueError("KARMA_APP_ID not found in environment")

    timeout = os.getenv("KARMA_TIMEOUT")
    try:
        timeout = int(timeout) if timeout else DEFAULT_TIMEOUT
    except ValueError:
        raise ValueError(f"KARMA_TIMEOUT must be an integer, got {timeout!r}")

    return Settings(
        app_id=app_id,
        api_url=os.getenv("KARMA_API_URL") or DEFAULT_API_URL,
        api_key=os.getenv("KARMA_API_KEY"),
        timeout=timeout,
    )
