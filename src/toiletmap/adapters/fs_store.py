import asyncio
import hashlib
from pathlib import Path

from ..core.ports import Blob, BlobEntry, BlobStore, PutResult
from ..errors import ConflictError, NotFound, StoreError


def revision_of(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


class FsStore(BlobStore):
    """
    Directory-backed blob store for local development and tests.

    Revision tokens are content hashes, so a writer holding an older read
    is rejected exactly like a stale sha against the GitHub API. File I/O
    runs in a worker thread via asyncio.to_thread; the revision check and
    the write are not atomic across processes.
    """

    def __init__(self, root: Path, public_base_url: str | None = None):
        self.root = root
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def _path(self, path: str) -> Path:
        rel = Path(path.strip("/"))
        if rel.is_absolute() or ".." in rel.parts:
            raise StoreError(f"Invalid blob path: {path}")
        return self.root / rel

    def _read(self, path: str) -> Blob:
        p = self._path(path)
        if not p.is_file():
            raise NotFound(f"{path} not found")
        content = p.read_bytes()
        return Blob(content=content, revision=revision_of(content))

    def _write(self, path: str, content: bytes, revision: str | None, message: str) -> PutResult:
        p = self._path(path)
        if p.is_file():
            current = revision_of(p.read_bytes())
            if revision != current:
                raise ConflictError(f"{path} does not match {revision}")
        elif revision is not None:
            raise ConflictError(f"{path} does not exist at {revision}")
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(content)
        new_revision = revision_of(content)
        return PutResult(revision=new_revision, commit={"message": message, "sha": new_revision})

    def _remove(self, path: str, revision: str) -> None:
        p = self._path(path)
        if not p.is_file():
            raise NotFound(f"{path} not found")
        if revision_of(p.read_bytes()) != revision:
            raise ConflictError(f"{path} does not match {revision}")
        p.unlink()

    def _entries(self, directory: str) -> list[BlobEntry]:
        d = self._path(directory)
        if not d.is_dir():
            return []
        return [BlobEntry(name=p.name, is_file=p.is_file()) for p in sorted(d.iterdir())]

    async def get(self, path: str) -> Blob:
        return await asyncio.to_thread(self._read, path)

    async def put(
        self,
        path: str,
        content: bytes,
        revision: str | None,
        message: str,
        timeout: float | None = None,
    ) -> PutResult:
        return await asyncio.to_thread(self._write, path, content, revision, message)

    async def delete(self, path: str, revision: str, message: str) -> None:
        await asyncio.to_thread(self._remove, path, revision)

    async def list(self, directory: str) -> list[BlobEntry]:
        return await asyncio.to_thread(self._entries, directory)

    def public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{path.strip('/')}"
        return self._path(path).resolve().as_uri()
