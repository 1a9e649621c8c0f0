"""Configuration system for solidauth using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.solidauth] section (project-level)
3. ./solidauth.toml (project-level, explicit)
4. ~/.config/solidauth/config.toml (user-level, overrides project)
5. Environment variables (highest priority)

Environment variables use SOLIDAUTH_ prefix with nested delimiter __.
Example: SOLIDAUTH_CLIENT__SCOPE, SOLIDAUTH_STORE__PATH
"""

from __future__ import annotations

import logging
import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib  # type: ignore[import-not-found]
    except ImportError:
        tomllib = None


logger = logging.getLogger("solidauth.config")


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    solidauth_toml = Path("solidauth.toml")
    if solidauth_toml.exists():
        files.append(solidauth_toml)

    if sys.platform == "win32":
        user_config = Path(os.environ.get("APPDATA", "~")) / "solidauth" / "config.toml"
    else:
        user_config = Path("~/.config/solidauth/config.toml")
    user_config = user_config.expanduser()
    if user_config.exists():
        files.append(user_config)

    env_config = os.environ.get("SOLIDAUTH_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    if tomllib is None:
        return {}

    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Ignoring unreadable config file %s: %s", config_file, exc)
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("solidauth", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class ClientSettings(BaseSettings):
    """Relying party client registration settings.

    Environment prefix: SOLIDAUTH_CLIENT__
    Example: SOLIDAUTH_CLIENT__SCOPE="openid profile email"
    """

    model_config = SettingsConfigDict(
        env_prefix="SOLIDAUTH_CLIENT__",
        extra="ignore",
    )

    redirect_uri: str | None = Field(
        default=None,
        description="Callback redirect URI registered with providers (default: current location)",
    )
    scope: str = Field(
        default="openid profile",
        description="Space-separated scopes requested at registration",
    )
    response_type: str = Field(
        default="id_token token",
        description="OIDC response type used for the implicit flow",
    )
    grant_types: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["implicit"],
        description="Grant types requested at registration",
    )

    @field_validator("grant_types", mode="before")
    @classmethod
    def _parse_grant_types(cls, v: Any) -> list[str]:
        """Accept a comma-separated string (from env var) or a list."""
        if isinstance(v, str):
            v = [p.strip() for p in v.split(",") if p.strip()]
        return v


class PopupSettings(BaseSettings):
    """Provider selection popup settings.

    Environment prefix: SOLIDAUTH_POPUP__
    Example: SOLIDAUTH_POPUP__URL=https://app.example/select-provider.html
    """

    model_config = SettingsConfigDict(
        env_prefix="SOLIDAUTH_POPUP__",
        extra="ignore",
    )

    name: str = "selectProviderWindow"
    width: int = Field(default=300, ge=100)
    height: int = Field(default=300, ge=100)
    url: str | None = Field(
        default=None,
        description="Provider picker page (default: built-in page as a data: URI)",
    )
    providers: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Provider URIs offered as suggestions in the built-in picker",
    )

    @field_validator("providers", mode="before")
    @classmethod
    def _parse_providers(cls, v: Any) -> list[str]:
        """Accept a comma-separated string (from env var) or a list."""
        if isinstance(v, str):
            v = [p.strip() for p in v.split(",") if p.strip()]
        return v

    def features(self) -> str:
        """Build the window features string passed to ``open()``."""
        return f"menubar=no,resizable=yes,width={self.width},height={self.height}"


class StoreSettings(BaseSettings):
    """Durable store settings.

    Environment prefix: SOLIDAUTH_STORE__
    Example: SOLIDAUTH_STORE__BACKEND=file
    """

    model_config = SettingsConfigDict(
        env_prefix="SOLIDAUTH_STORE__",
        extra="ignore",
    )

    backend: Literal["memory", "file"] = "memory"
    path: str = Field(
        default="~/.local/share/solidauth/store.json",
        description="JSON file used by the file backend",
    )
    correlation_ttl_seconds: int = Field(
        default=86400,
        ge=0,
        description="Age after which unused state records are pruned (0 disables pruning)",
    )


class HttpSettings(BaseSettings):
    """HTTP settings for the bundled relying party.

    Environment prefix: SOLIDAUTH_HTTP__
    """

    model_config = SettingsConfigDict(
        env_prefix="SOLIDAUTH_HTTP__",
        extra="ignore",
    )

    timeout: float = Field(default=10.0, gt=0)
    verify: bool = True


class LogSettings(BaseSettings):
    """Logging settings.

    The ``solidauth`` command applies these on startup. Applications
    embedding ``SolidAuth`` call ``solidauth.configure_logging(settings.log)``
    themselves.

    Environment prefix: SOLIDAUTH_LOG__
    Example: SOLIDAUTH_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="SOLIDAUTH_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"


_SECTIONS: list[tuple[str, str, str]] = [
    ("Client Registration", "client", "CLIENT"),
    ("Provider Popup", "popup", "POPUP"),
    ("Store", "store", "STORE"),
    ("HTTP", "http", "HTTP"),
    ("Logging", "log", "LOG"),
]


class SolidAuthSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: SOLIDAUTH__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.solidauth] section
    3. ./solidauth.toml (project-level)
    4. ~/.config/solidauth/config.toml (user-level, overrides project)
    5. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="SOLIDAUTH__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    client: ClientSettings = Field(default_factory=ClientSettings)
    popup: PopupSettings = Field(default_factory=PopupSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    def __init__(self, **data: Any) -> None:
        merged = _deep_merge(_load_toml_config(), data)
        super().__init__(**merged)

    def to_toml(self) -> str:
        """Export settings as TOML."""
        lines = ["# solidauth configuration", ""]
        all_data = self.model_dump()

        for _, attr_name, _ in _SECTIONS:
            lines.append(f"[{attr_name}]")
            for field_name, field_value in all_data[attr_name].items():
                if field_value is None:
                    continue
                if isinstance(field_value, list):
                    value_str = "[" + ", ".join(f'"{v}"' for v in field_value) + "]"
                elif isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                elif isinstance(field_value, str):
                    value_str = f'"{field_value}"'
                else:
                    value_str = str(field_value)
                lines.append(f"{field_name} = {value_str}")
            lines.append("")

        return "\n".join(lines)

    def to_env(self) -> str:
        """Export settings as shell environment variables."""
        lines = ["# solidauth environment variables", ""]
        all_data = self.model_dump()

        for _, attr_name, env_prefix in _SECTIONS:
            for field_name, field_value in all_data[attr_name].items():
                if field_value is None:
                    continue
                env_name = f"SOLIDAUTH_{env_prefix}__{field_name.upper()}"
                if isinstance(field_value, list):
                    value_str = ",".join(str(v) for v in field_value)
                elif isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                else:
                    value_str = str(field_value)
                lines.append(f'export {env_name}="{value_str}"')

        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["solidauth Configuration", "=" * 60]
        all_data = self.model_dump()

        for display_name, attr_name, _ in _SECTIONS:
            lines.append(f"\n{display_name}")
            lines.append("-" * 40)
            for field_name, field_value in all_data[attr_name].items():
                value_str = str(field_value)
                if len(value_str) > 50:
                    value_str = value_str[:47] + "..."
                lines.append(f"  {field_name:24} = {value_str}")

        return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> SolidAuthSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return SolidAuthSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> SolidAuthSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
