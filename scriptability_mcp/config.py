from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the ScriptAbility MCP server.

    All values are loaded from environment variables with `MCP_` prefix.
    You can also use a `.env` file in the working directory during development.
    """

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        extra="ignore",
    )

    # General
    env: str = "dev"
    server_port: int = 3333
    server_host: str = "0.0.0.0"
    transport: str = "stdio"  # "stdio" or "http"
    log_level: str = "INFO"

    # Upstream ScriptAbility services
    sig_endpoint: str = "https://normalizesig-z4vamvc43a-uc.a.run.app"
    sig_origin: str = "https://scriptability-patient-access.web.app"
    sig_model: str = "gpt-4.1-mini"
    sig_prompt_id: str = "pmpt_68d1aac7137081978a62cfad87ffd3730b5be593908223a0"
    sig_prompt_version: str = "7"
    ndc_endpoint: str = "https://ndcanalysis.scriptability.net/ndc_descriptor.php"
    medcast_base_url: str = "https://medcast.scriptability.net"
    medcast_timeout_seconds: float = 180.0
    picanalysis_endpoint: str = "https://picanalysis.scriptability.net/analyze"

    # Podcast output
    output_dir: str = "mcp_outputs/medcast"
    output_bucket: Optional[str] = None
    output_object_prefix: str = "medcast"
    signed_url_expiry_seconds: int = 3600
    output_public_read: bool = False
    download_force_attachment: bool = False
    public_base_url: Optional[str] = None
    auto_wait_ms: int = 0

    # Firebase
    firebase_project_id: Optional[str] = None
    firebase_credentials_file: Optional[str] = None

    # Upload bucket housekeeping (lifecycle CLI)
    upload_bucket: Optional[str] = None
    upload_object_prefix: str = "uploads"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache settings from environment."""
    return Settings()
