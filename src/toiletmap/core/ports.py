from dataclasses import dataclass, field
from typing import Any, Protocol

from .model import ToiletRecord


@dataclass(frozen=True)
class Blob:
    content: bytes
    revision: str  # opaque token required for the next write


@dataclass(frozen=True)
class BlobEntry:
    name: str
    is_file: bool


@dataclass(frozen=True)
class PutResult:
    revision: str
    commit: dict[str, Any] = field(default_factory=dict)


class BlobStore(Protocol):
    """
    Versioned key-value blob store with optimistic concurrency.

    Every write to an existing path must carry the revision token from the
    latest read; a stale or missing token raises ConflictError.
    """

    async def get(self, path: str) -> Blob:
        """Raise NotFound if the path does not exist."""
        ...

    async def put(
        self,
        path: str,
        content: bytes,
        revision: str | None,
        message: str,
        timeout: float | None = None,
    ) -> PutResult:
        """revision=None creates a new blob; raises ConflictError on mismatch."""
        ...

    async def delete(self, path: str, revision: str, message: str) -> None:
        """Raise NotFound if the path does not exist."""
        ...

    async def list(self, directory: str) -> list[BlobEntry]:
        """Entries directly under directory; empty if it does not exist."""
        ...

    def public_url(self, path: str) -> str:
        """Stable public-read URL for a written blob."""
        ...


class RecordCodec(Protocol):
    """
    Text form of a single toilet record: a delimited metadata block followed
    by a descriptive body that is never parsed back.
    """

    def encode(self, record: ToiletRecord) -> str:
        ...

    def decode(self, text: str) -> ToiletRecord:
        """Raise MalformedRecord or MissingRequiredField on bad input."""
        ...
