"""Project configuration and paths.

Loads settings from config/settings.yaml and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# === Paths ===
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
DATA_DIR = PROJECT_ROOT / "data"

# Load .env from project root
load_dotenv(PROJECT_ROOT / ".env")


class DatabaseSettings(BaseModel):
    """Database connection settings."""
    db_path: str = str(DATA_DIR / "content_ops.db")


class EnhancementSettings(BaseModel):
    """Field enhancement service settings."""
    api_url: str = ""
    endpoint: str = "/api/v1/content/enhance-fields"
    timeout_seconds: float = 60.0


class WebflowSettings(BaseModel):
    """Webflow Data API settings."""
    api_base: str = "https://api.webflow.com/v2"
    timeout_seconds: float = 30.0
    requests_per_minute: int = 60
    max_retries: int = 3


class WorkflowSettings(BaseModel):
    """Publishing workflow behaviour."""
    store: str = "sqlite"  # sqlite | supabase
    strict_links: bool = False
    stale_publishing_minutes: int = 15
    task_lease_seconds: int = 300
    worker_poll_seconds: float = 5.0


class Settings(BaseModel):
    """Top-level application settings."""
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    enhancement: EnhancementSettings = Field(default_factory=EnhancementSettings)
    webflow: WebflowSettings = Field(default_factory=WebflowSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)

    @classmethod
    def load(cls) -> Settings:
        """Load settings from config/settings.yaml, falling back to defaults."""
        settings_path = CONFIG_DIR / "settings.yaml"
        if settings_path.exists():
            with open(settings_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return cls(**data)
        return cls()


def get_supabase_url() -> str:
    """Get Supabase project URL from environment."""
    url = os.getenv("SUPABASE_URL", "")
    if not url:
        raise ValueError("SUPABASE_URL not set in environment")
    return url


def get_supabase_service_key() -> str:
    """Get Supabase service-role key from environment."""
    key = os.getenv("SUPABASE_SERVICE_KEY", "")
    if not key:
        raise ValueError("SUPABASE_SERVICE_KEY not set in environment")
    return key


def get_enhancement_api_url() -> str:
    """Get the Blog Writer API base URL (empty when enhancement is disabled)."""
    return os.getenv("BLOG_WRITER_API_URL", "") or settings.enhancement.api_url


def get_enhancement_api_key() -> str:
    """Get the Blog Writer API key. Optional: the service may run unauthenticated."""
    return os.getenv("BLOG_WRITER_API_KEY", "")


# Singleton settings instance
settings = Settings.load()
