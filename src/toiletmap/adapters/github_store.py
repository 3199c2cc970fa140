"""Blob store backed by the GitHub repository contents API."""

import base64
import logging
from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx

from ..config import StoreConfig
from ..core.ports import Blob, BlobEntry, BlobStore, PutResult
from ..errors import ConflictError, NotFound, StoreError, StoreUnavailable

logger = logging.getLogger(__name__)


class GitHubStore(BlobStore):
    """
    Treats one branch of a GitHub repository as a versioned blob store.

    Every write is a commit; the blob sha returned by the API is the
    revision token.

    Usage:
        async with GitHubStore(config.store) as store:
            blob = await store.get("data/toilets/1.md")
    """

    def __init__(self, config: StoreConfig, client: httpx.AsyncClient | None = None):
        self.owner = config.owner
        self.repo = config.repo
        self.branch = config.branch
        self.raw_url = config.raw_url.rstrip("/")
        self.timeout = config.timeout
        self._client = client or httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.timeout,
        )
        self._headers = {
            "Authorization": f"token {config.token}",
            "Accept": "application/vnd.github.v3+json",
        }

    async def __aenter__(self) -> "GitHubStore":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{quote(path.strip('/'))}"

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(
                method,
                self._contents_url(path),
                params=params,
                json=json,
                headers=self._headers,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise StoreUnavailable(f"Timed out talking to GitHub API ({method} {path})") from e
        except httpx.TransportError as e:
            raise StoreUnavailable(f"Network error - could not reach GitHub API: {e}") from e

    @staticmethod
    def _error(response: httpx.Response) -> StoreError:
        try:
            message = response.json().get("message", "")
        except ValueError:
            message = response.text
        return StoreError(f"GitHub API error: {response.status_code} - {message}")

    @staticmethod
    def _json(response: httpx.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f"Unexpected GitHub API response for {path}: {e}") from e

    async def get(self, path: str) -> Blob:
        response = await self._send("GET", path, params={"ref": self.branch})
        if response.status_code == 404:
            raise NotFound(f"{path} not found")
        if response.status_code != 200:
            raise self._error(response)
        data = self._json(response, path)
        if not isinstance(data, dict) or "sha" not in data:
            raise StoreError(f"{path} is not a file")
        try:
            content = base64.b64decode(data.get("content", ""))
        except ValueError as e:
            raise StoreError(f"{path}: content is not valid base64") from e
        return Blob(content=content, revision=data["sha"])

    async def put(
        self,
        path: str,
        content: bytes,
        revision: str | None,
        message: str,
        timeout: float | None = None,
    ) -> PutResult:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if revision is not None:
            body["sha"] = revision
        response = await self._send("PUT", path, json=body, timeout=timeout)
        if response.status_code in (409, 422):
            # 409: sha does not match; 422: sha missing for an existing file
            raise ConflictError(f"{path}: {self._error(response)}")
        if response.status_code not in (200, 201):
            raise self._error(response)
        data = self._json(response, path)
        try:
            revision = data["content"]["sha"]
        except (KeyError, TypeError) as e:
            raise StoreError(f"Unexpected GitHub API response for {path}: no content sha") from e
        logger.debug("Committed %s (%s)", path, message)
        return PutResult(revision=revision, commit=data.get("commit") or {})

    async def delete(self, path: str, revision: str, message: str) -> None:
        body = {"message": message, "sha": revision, "branch": self.branch}
        response = await self._send("DELETE", path, json=body)
        if response.status_code == 404:
            raise NotFound(f"{path} not found")
        if response.status_code in (409, 422):
            raise ConflictError(f"{path}: {self._error(response)}")
        if response.status_code != 200:
            raise self._error(response)

    async def list(self, directory: str) -> list[BlobEntry]:
        response = await self._send("GET", directory, params={"ref": self.branch})
        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise self._error(response)
        data = self._json(response, directory)
        if not isinstance(data, list):
            raise StoreError(f"{directory} is not a directory")
        return [BlobEntry(name=item["name"], is_file=item.get("type") == "file") for item in data]

    def public_url(self, path: str) -> str:
        return f"{self.raw_url}/{self.owner}/{self.repo}/{self.branch}/{path.strip('/')}"
