"""Shared fixtures: a directory-backed store and a repository with a fixed clock."""

from datetime import datetime, timedelta, timezone

import pytest

from toiletmap.adapters.fs_store import FsStore
from toiletmap.adapters.record_codec import MarkdownRecordCodec
from toiletmap.config import ImageConfig, StoreConfig
from toiletmap.core.service import ToiletRepository

PUBLIC_BASE = "https://raw.example.test/owner/repo/main"


class Clock:
    """Deterministic timestamps: each call returns the next second."""

    def __init__(self):
        self._next = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> str:
        now, self._next = self._next, self._next + timedelta(seconds=1)
        return now.strftime("%Y-%m-%dT%H:%M:%S.000Z")


@pytest.fixture
def make_repository():
    """Factory for a repository over any store, with an optional image limit."""

    def _make(store, max_bytes: int = 10 * 1024 * 1024) -> ToiletRepository:
        return ToiletRepository(
            store,
            MarkdownRecordCodec(),
            StoreConfig(backend="fs"),
            ImageConfig(max_bytes=max_bytes),
            now=Clock(),
            millis=lambda: 1700000000000,
        )

    return _make


@pytest.fixture
def public_base():
    return PUBLIC_BASE


@pytest.fixture
def store(tmp_path, public_base):
    return FsStore(tmp_path / "store", public_base_url=public_base)


@pytest.fixture
def repository(store, make_repository):
    return make_repository(store)
