"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (PODPROXY__SERVER__PORT=9090)
  2. podproxy.yaml          (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

The config file is optional. The subscription list itself lives in a separate
file (``subscriptions.path``) because it is watched and reloaded at runtime,
while these settings are read once at startup.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("podproxy")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.sqlite3")


def _find_config_file() -> str | None:
    """Return the path of the first podproxy.yaml found, or None."""
    candidates = [
        Path("podproxy.yaml"),
        Path(platformdirs.user_config_dir("podproxy")) / "podproxy.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    host: str = "127.0.0.1"
    port: int = 8080


class SubscriptionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str = "podcasts.yaml"


class WatcherSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    poll_interval_seconds: float = 2.0


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    backend: Literal["sqlite", "memory"] = "sqlite"
    db_path: str = _DEFAULT_DB_PATH


class FetcherSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0
    max_redirects: int = 5
    user_agent: str = "podproxy/0.1 (+https://github.com/podproxy/podproxy)"


class ProxySettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Fetch and cache feeds that are not in the subscription list on first request.
    fetch_on_miss: bool = False
    mirror_cache_headers: bool = True


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: PODPROXY__SERVER__PORT=9090
        env_prefix="PODPROXY__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    subscriptions: SubscriptionSettings = SubscriptionSettings()
    watcher: WatcherSettings = WatcherSettings()
    cache: CacheSettings = CacheSettings()
    fetcher: FetcherSettings = FetcherSettings()
    proxy: ProxySettings = ProxySettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
