"""Runtime wiring helper for the CLI and the API server."""

from dataclasses import dataclass
from pathlib import Path

from .adapters.fs_store import FsStore
from .adapters.geocoder import NominatimGeocoder
from .adapters.github_store import GitHubStore
from .adapters.record_codec import MarkdownRecordCodec
from .config import ToiletMapConfig, load_config
from .core.ports import BlobStore
from .core.service import ToiletRepository


@dataclass
class Runtime:
    """Container for all wired components."""
    config: ToiletMapConfig
    store: BlobStore
    codec: MarkdownRecordCodec
    repository: ToiletRepository
    geocoder: NominatimGeocoder

    async def aclose(self) -> None:
        close = getattr(self.store, "aclose", None)
        if close is not None:
            await close()
        await self.geocoder.aclose()


def build_store(config: ToiletMapConfig) -> BlobStore:
    if config.store.backend == "fs":
        return FsStore(config.store.root, public_base_url=config.store.public_base_url)
    return GitHubStore(config.store)


def build_runtime(
    config: ToiletMapConfig | None = None,
    config_path: Path | None = None,
) -> Runtime:
    """Build and wire all components from an explicit or loaded configuration."""
    if config is None:
        config = load_config(config_path=config_path)
    config.validate()

    store = build_store(config)
    codec = MarkdownRecordCodec()
    repository = ToiletRepository(store, codec, config.store, config.images)
    geocoder = NominatimGeocoder(config.geocode)

    return Runtime(
        config=config,
        store=store,
        codec=codec,
        repository=repository,
        geocoder=geocoder,
    )
