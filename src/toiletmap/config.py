"""Configuration loader for toiletmap.toml."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from .errors import ConfigError
from .images import DEFAULT_MAX_BYTES

CONFIG_FILENAME = "toiletmap.toml"


@dataclass
class StoreConfig:
    """Blob store configuration."""
    backend: str = "github"  # "github" | "fs"
    token: str | None = None
    owner: str | None = None
    repo: str | None = None
    branch: str = "main"
    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"
    root: Path = Path("./store")  # fs backend only
    public_base_url: str | None = None  # fs backend only
    records_dir: str = "data/toilets"
    images_dir: str = "data/images"
    timeout: float = 10.0
    upload_timeout: float = 30.0


@dataclass
class ImageConfig:
    """Image upload limits."""
    max_bytes: int = DEFAULT_MAX_BYTES


@dataclass
class GeocodeConfig:
    """Reverse geocoding (Nominatim) configuration."""
    base_url: str = "https://nominatim.openstreetmap.org/reverse"
    user_agent: str = "ToiletMap/1.0"
    email: str | None = None
    min_interval: float = 1.1
    cache_ttl: float = 24 * 60 * 60
    failure_ttl: float = 5 * 60
    timeout: float = 10.0


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "127.0.0.1"
    port: int = 8888


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"


@dataclass
class ToiletMapConfig:
    """Complete toiletmap configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    images: ImageConfig = field(default_factory=ImageConfig)
    geocode: GeocodeConfig = field(default_factory=GeocodeConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def validate(self) -> None:
        """Raise ConfigError if the selected backend cannot be used."""
        store = self.store
        if store.backend == "github":
            missing = [
                name
                for name, value in (
                    ("GITHUB_TOKEN", store.token),
                    ("GITHUB_REPO_OWNER", store.owner),
                    ("GITHUB_REPO_NAME", store.repo),
                )
                if not value
            ]
            if missing:
                raise ConfigError(
                    f"Missing GitHub configuration: {', '.join(missing)}"
                )
        elif store.backend != "fs":
            raise ConfigError(f"Unknown store backend: {store.backend}")
        if self.images.max_bytes <= 0:
            raise ConfigError("images.max_bytes must be positive")


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ToiletMapConfig:
    """
    Load configuration from toiletmap.toml, then apply environment overrides.

    Search order:
    1. config_path (if provided)
    2. cwd/toiletmap.toml

    Environment variables GITHUB_TOKEN, GITHUB_REPO_OWNER, GITHUB_REPO_NAME,
    GITHUB_BRANCH and TOILETMAP_LOG_LEVEL take precedence over the file.

    Args:
        config_path: Explicit path to config file
        env: Environment mapping (defaults to os.environ)

    Returns:
        ToiletMapConfig with resolved settings
    """
    if env is None:
        env = os.environ

    toml_data: dict[str, Any] = {}

    search_paths = []
    if config_path:
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        search_paths.append(config_path)
    search_paths.append(Path.cwd() / CONFIG_FILENAME)

    for path in search_paths:
        if path.exists():
            try:
                with open(path, "rb") as f:
                    toml_data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid config file {path}: {e}") from e
            break

    # Store
    store_data = toml_data.get("store", {})
    defaults = StoreConfig()
    store_config = StoreConfig(
        backend=store_data.get("backend", defaults.backend),
        token=store_data.get("token"),
        owner=store_data.get("owner"),
        repo=store_data.get("repo"),
        branch=store_data.get("branch", defaults.branch),
        api_url=store_data.get("api_url", defaults.api_url),
        raw_url=store_data.get("raw_url", defaults.raw_url),
        root=Path(store_data.get("root", defaults.root)),
        public_base_url=store_data.get("public_base_url"),
        records_dir=store_data.get("records_dir", defaults.records_dir).strip("/"),
        images_dir=store_data.get("images_dir", defaults.images_dir).strip("/"),
        timeout=float(store_data.get("timeout", defaults.timeout)),
        upload_timeout=float(store_data.get("upload_timeout", defaults.upload_timeout)),
    )
    store_config.token = env.get("GITHUB_TOKEN") or store_config.token
    store_config.owner = env.get("GITHUB_REPO_OWNER") or store_config.owner
    store_config.repo = env.get("GITHUB_REPO_NAME") or store_config.repo
    store_config.branch = env.get("GITHUB_BRANCH") or store_config.branch

    # Images
    images_data = toml_data.get("images", {})
    images_config = ImageConfig(
        max_bytes=int(images_data.get("max_bytes", DEFAULT_MAX_BYTES))
    )

    # Geocoding
    geo_data = toml_data.get("geocode", {})
    geo_defaults = GeocodeConfig()
    geocode_config = GeocodeConfig(
        base_url=geo_data.get("base_url", geo_defaults.base_url),
        user_agent=geo_data.get("user_agent", geo_defaults.user_agent),
        email=geo_data.get("email"),
        min_interval=float(geo_data.get("min_interval", geo_defaults.min_interval)),
        cache_ttl=float(geo_data.get("cache_ttl", geo_defaults.cache_ttl)),
        failure_ttl=float(geo_data.get("failure_ttl", geo_defaults.failure_ttl)),
        timeout=float(geo_data.get("timeout", geo_defaults.timeout)),
    )

    # Server
    server_data = toml_data.get("server", {})
    server_config = ServerConfig(
        host=server_data.get("host", "127.0.0.1"),
        port=int(server_data.get("port", 8888)),
    )

    # Logging
    log_data = toml_data.get("log", {})
    log_config = LogConfig(
        level=env.get("TOILETMAP_LOG_LEVEL") or log_data.get("level", "INFO"),
    )

    return ToiletMapConfig(
        store=store_config,
        images=images_config,
        geocode=geocode_config,
        server=server_config,
        log=log_config,
    )
