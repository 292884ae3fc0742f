"""
Gateway Configuration Module

Provides configuration for the GeoServices gateway:
- Root URL of the ArcGIS Server / Portal instance
- Optional static token appended to every request
- URL length limit that decides when a GET request is too large
- HTTP timeout and User-Agent for the default transport

Environment Variables:
    Required:
    - GEOSERVICES_ROOT_URL: Server root, e.g. https://sampleserver6.arcgisonline.com/arcgis/

    Optional:
    - GEOSERVICES_TOKEN: Access token sent as the "token" parameter
    - GEOSERVICES_MAX_URL_LENGTH: Maximum encoded GET url length (default: 2047)
    - GEOSERVICES_TIMEOUT_SECONDS: HTTP timeout (default: 60)
    - GEOSERVICES_USER_AGENT: User-Agent header (default: geoservices-gateway/0.1)

Values may also come from a .env file in the working directory.

Usage:
    from config import get_gateway_settings

    settings = get_gateway_settings()
    gateway = PortalGateway(settings=settings)
"""

import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

SERVICES_ROOT_SEGMENT = "/rest/services"
DEFAULT_MAX_URL_LENGTH = 2047


def contains_services_root(path: str) -> bool:
    """True if "rest/services" appears as two whole path segments (case-insensitive)."""
    segments = [segment.lower() for segment in path.split("/") if segment]
    return any(
        first == "rest" and second == "services"
        for first, second in zip(segments, segments[1:])
    )


def normalize_root_url(root_url: str) -> str:
    """
    Validate and normalize a server root URL.

    The root must be an http(s) URL, it always ends with "/", and it must
    stop above the services root: requests append "rest/services/<endpoint>".

    Args:
        root_url: Server root as supplied by the caller

    Returns:
        str: Root URL ending with "/"

    Raises:
        ValueError: If the URL is not http(s) or already contains /rest/services
    """
    root_url = (root_url or "").strip()
    parsed = urlparse(root_url)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Root url must be an absolute http(s) url, got {root_url!r}")

    if contains_services_root(parsed.path):
        raise ValueError(
            f"Root url must not contain '{SERVICES_ROOT_SEGMENT}'; "
            f"pass the server root (e.g. https://host/arcgis/), got {root_url!r}"
        )

    if not root_url.endswith("/"):
        root_url += "/"
    return root_url


class GatewaySettings(BaseSettings):
    """
    Gateway configuration loaded from GEOSERVICES_* environment variables.

    Attributes:
        root_url: Server root URL (normalized to end with "/")
        token: Optional access token
        max_url_length: Maximum encoded GET url length
        timeout_seconds: HTTP request timeout
        user_agent: User-Agent header for the default transport
    """
    model_config = SettingsConfigDict(
        env_prefix="GEOSERVICES_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True
    )

    root_url: str = Field(..., description="ArcGIS Server root url")
    token: Optional[str] = Field(default=None, description="Access token")
    max_url_length: int = Field(
        default=DEFAULT_MAX_URL_LENGTH,
        ge=1,
        description="Maximum encoded GET url length before RequestTooLarge"
    )
    timeout_seconds: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")
    user_agent: str = Field(default="geoservices-gateway/0.1", description="User-Agent header")

    @field_validator("root_url")
    @classmethod
    def validate_root_url(cls, v: str) -> str:
        return normalize_root_url(v)

    @field_validator("token")
    @classmethod
    def blank_token_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


@lru_cache(maxsize=1)
def get_gateway_settings() -> GatewaySettings:
    """
    Get singleton gateway settings from the environment.

    Returns:
        GatewaySettings: Validated configuration object

    Raises:
        ValidationError: If GEOSERVICES_ROOT_URL is missing or invalid
    """
    settings = GatewaySettings()
    logger.info(
        f"Gateway settings loaded: root={settings.root_url} "
        f"max_url_length={settings.max_url_length} token={'set' if settings.token else 'none'}"
    )
    return settings
