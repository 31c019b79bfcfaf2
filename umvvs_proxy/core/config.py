"""
Configuration management using Pydantic Settings.
Loads from environment variables and .env file.
"""

from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


DEFAULT_DROPDOWN_CONTROLS = {
    "make": "ctl00$MainContent$ddlMake",
    "model": "ctl00$MainContent$ddlModel",
    "year": "ctl00$MainContent$ddlYear",
    "country": "ctl00$MainContent$ddlCountry",
    "fuel_type": "ctl00$MainContent$ddlFuelType",
    "engine": "ctl00$MainContent$ddlEngine",
}


class Settings(BaseSettings):
    """Application configuration loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Upstream site
    upstream_origin: str = Field(
        default="https://umvvs.tra.go.tz",
        description="Scheme and host of the Web Forms site"
    )
    upstream_path: str = Field(
        default="/",
        description="Path of the lookup page on the upstream site"
    )
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36"
        ),
        description="User-Agent sent upstream"
    )
    request_timeout: float = Field(default=30.0, description="Upstream timeout in seconds")

    # Rate limiting
    postback_delay: float = Field(
        default=1.0,
        description="Fixed delay in seconds before every postback"
    )
    max_requests_per_minute: int = Field(
        default=60,
        description="Maximum requests per minute to the upstream site"
    )

    # ASP.NET AJAX wiring
    script_manager_id: str = Field(
        default="ctl00$ScriptManager1",
        description="Form field name of the page's ScriptManager"
    )
    update_panel_id: str = Field(
        default="ctl00$MainContent$UpdatePanel1",
        description="UniqueID of the UpdatePanel wrapping the dropdowns"
    )
    dropdown_controls: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_DROPDOWN_CONTROLS),
        description="ASP.NET control name per cascade level"
    )
    placeholder_values: list[str] = Field(
        default_factory=lambda: ["", "-1", "0"],
        description="Option values treated as 'please select' placeholders"
    )

    # Sessions
    session_ttl: int = Field(default=900, description="Idle session lifetime in seconds")
    max_sessions: int = Field(default=1000, description="Maximum cached sessions")

    # Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=3000, description="API port")

    # Logging
    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum loguru level"
    )

    @property
    def page_url(self) -> str:
        """Absolute URL of the lookup page."""
        return self.upstream_origin.rstrip("/") + "/" + self.upstream_path.lstrip("/")


# Global settings instance
settings = Settings()
