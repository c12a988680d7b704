"""
Configuration module for the Sign-In Widget login service.

This module uses Pydantic Settings to load and validate the identity provider
client configuration, session cookie settings and server options.

Sources, highest rank first:
    1. Keyword arguments
    2. A ``.env`` file with ``OKTA_IDX_`` prefixed names
    3. ``okta.yaml`` (``okta.idx.clientId`` etc.) from ``$HOME/.okta`` or the
       working directory
    4. Environment variables prefixed with ``OKTA_IDX_``
    5. The older ``OKTA_IDX_CLIENTID``, ``OKTA_IDX_CLIENTSECRET`` and
       ``OKTA_IDX_REDIRECTURI`` environment variables

Empty values are ignored everywhere, so an environment variable only fills a
setting that the config files leave empty.
"""

import logging
import re
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type
from urllib.parse import urlparse

from pydantic import Field, ValidationError, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    EnvSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from siwlogin.errors import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Okta Config File and Legacy Environment Names
# =============================================================================

OKTA_YAML_NAMES = ("okta.yaml", "okta.yml")

# okta.idx.<key> in okta.yaml -> Settings field
OKTA_YAML_KEYS = {
    "clientId": "CLIENT_ID",
    "clientSecret": "CLIENT_SECRET",
    "issuer": "ISSUER",
    "scopes": "SCOPES",
    "redirectUri": "REDIRECT_URI",
}

# Variable names used by existing deployments, read after the OKTA_IDX_ ones.
LEGACY_ENV_NAMES = {
    "CLIENT_ID": "OKTA_IDX_CLIENTID",
    "CLIENT_SECRET": "OKTA_IDX_CLIENTSECRET",
    "REDIRECT_URI": "OKTA_IDX_REDIRECTURI",
}


def find_okta_yaml() -> Optional[Path]:
    """
    Locate okta.yaml, looking in ``$HOME/.okta`` first and then the working
    directory.

    Returns:
        Path of the first file found, or None
    """
    for directory in (Path.home() / ".okta", Path.cwd()):
        for name in OKTA_YAML_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


class OktaYamlSettingsSource(YamlConfigSettingsSource):
    """
    Reads the ``okta.idx`` block of an okta.yaml file.

    Empty values are skipped so a lower ranked source can fill them. A scopes
    list is joined with commas.
    """

    def __call__(self) -> Dict[str, Any]:
        document = super().__call__()
        okta = document.get("okta") if isinstance(document, dict) else None
        idx = okta.get("idx") if isinstance(okta, dict) else None
        if not isinstance(idx, dict):
            return {}

        values: Dict[str, Any] = {}
        for key, field_name in OKTA_YAML_KEYS.items():
            value = idx.get(key)
            if isinstance(value, list):
                value = ",".join(str(item) for item in value if item)
            if value:
                values[field_name] = value
        return values


class LegacyEnvSettingsSource(EnvSettingsSource):
    """Environment source for the ``OKTA_IDX_CLIENTID`` style variable names."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        env_name = LEGACY_ENV_NAMES.get(field_name)
        if env_name is None:
            return None, field_name, False
        return self.env_vars.get(env_name.lower()), field_name, False


class Settings(BaseSettings):
    """
    Application settings loaded from the config file and environment.

    The five identity provider options are required; everything else has a
    development-friendly default.
    """

    # =========================================================================
    # Identity Provider (Okta Identity Engine) Configuration
    # =========================================================================

    CLIENT_ID: str = Field(
        ...,
        description="OAuth client ID of the application registered with the provider",
        min_length=1,
    )

    CLIENT_SECRET: str = Field(
        ...,
        description="OAuth client secret used for the interaction_code grant",
        min_length=1,
    )

    ISSUER: str = Field(
        ...,
        description="Base URL of the identity provider (e.g., https://dev-123456.okta.com)",
        min_length=1,
    )

    SCOPES: str = Field(
        ...,
        description="Comma or space separated scopes (e.g., 'openid,profile,email')",
        min_length=1,
    )

    REDIRECT_URI: str = Field(
        ...,
        description="Callback URI registered with the provider (e.g., http://localhost:8080/login/callback)",
        min_length=1,
    )

    # =========================================================================
    # Session Cookie Configuration
    # =========================================================================

    SESSION_SECRET: str = Field(
        default="",
        description="Secret used to sign session cookies (random per process when empty)",
    )

    SESSION_COOKIE_NAME: str = Field(
        default="okta-self-hosted-session-store",
        description="Name of the session cookie",
        min_length=1,
    )

    SESSION_MAX_AGE_SECONDS: int = Field(
        default=28800,
        description="Lifetime of the session cookie in seconds",
        ge=60,
        le=604800,
    )

    SESSION_COOKIE_SECURE: bool = Field(
        default=False,
        description="Only send the session cookie over HTTPS",
    )

    # =========================================================================
    # Provider Communication
    # =========================================================================

    JWKS_CACHE_SECONDS: int = Field(
        default=3600,
        description="Time to cache the provider signing keys in seconds",
        ge=0,
        le=86400,
    )

    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for each call to the identity provider",
        gt=0,
        le=60,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(default="127.0.0.1", description="Host to bind the server")

    PORT: int = Field(default=8080, description="Port to bind the server", ge=1, le=65535)

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_prefix="OKTA_IDX_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Config files outrank the environment.
        return (
            init_settings,
            dotenv_settings,
            OktaYamlSettingsSource(settings_cls, yaml_file=find_okta_yaml()),
            env_settings,
            LegacyEnvSettingsSource(settings_cls),
            file_secret_settings,
        )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def scopes_list(self) -> List[str]:
        """
        Parse and return SCOPES as a clean list.

        Returns:
            List of scope strings without whitespace.
        """
        return [scope for scope in re.split(r"[,\s]+", self.SCOPES) if scope]

    @property
    def issuer_url(self) -> str:
        """Issuer without a trailing slash, ready for endpoint concatenation."""
        return self.ISSUER.rstrip("/")

    @property
    def base_url(self) -> str:
        """
        Origin of the identity provider, handed to the sign-in widget.

        Returns:
            Scheme and network location of ISSUER (e.g., https://dev-123456.okta.com)
        """
        # netloc keeps a non-default port, which the widget needs to reach the issuer
        parts = urlparse(self.issuer_url)
        return f"{parts.scheme}://{parts.netloc}"

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("ISSUER", "REDIRECT_URI")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """
        Validate that provider URLs are absolute http(s) URLs.

        Raises:
            ValueError: If the value is not an absolute http(s) URL
        """
        parts = urlparse(v.strip())
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(
                f"Invalid URL: '{v}'. Expected format: 'https://example.okta.com'"
            )
        return v.strip()

    @field_validator("SCOPES")
    @classmethod
    def validate_scopes(cls, v: str) -> str:
        """Validate that SCOPES contains at least one scope."""
        if not [scope for scope in re.split(r"[,\s]+", v) if scope]:
            raise ValueError("SCOPES must contain at least one scope")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}, got: {v}")
        return v.upper()


# =============================================================================
# Settings Singleton
# =============================================================================

def load_settings(**overrides) -> Settings:
    """
    Build a Settings instance, converting validation failures into
    ConfigurationError so the process refuses to start.

    Args:
        **overrides: Values that take precedence over file and environment

    Returns:
        Validated Settings instance

    Raises:
        ConfigurationError: If a required setting is missing or invalid
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        missing = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise ConfigurationError(
            f"Invalid or missing configuration: {', '.join(missing)}"
        ) from e

    if not settings.SESSION_SECRET:
        logger.warning(
            "SESSION_SECRET is not set; using a random per-process secret, "
            "sessions will not survive a restart"
        )
        settings.SESSION_SECRET = secrets.token_urlsafe(48)

    return settings


@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ConfigurationError: If required settings are missing or invalid.

    Example:
        >>> from siwlogin.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.ISSUER)
    """
    return load_settings()
