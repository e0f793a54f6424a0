"""GitHub contents API tree store over httpx"""

import base64
import logging
from typing import Any, Optional, Union
from urllib.parse import quote

import httpx

from mdcms.config import Settings, parse_repo_url
from mdcms.core.models import WriteResult
from mdcms.errors import AppError, ErrorTag
from mdcms.store.tree import Listing, RemoteEntry, RemoteFile, TreeStore

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
DEFAULT_BRANCH = "main"


def encode_path(path: str) -> str:
    """URL-encode each segment of a repo path, keeping the separators."""
    return "/".join(quote(seg, safe="") for seg in path.strip("/").split("/"))


def _retry_after(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("retry-after")
    if value and value.isdigit():
        return int(value)
    return None


def _remote_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase


class GitHubTreeStore(TreeStore):
    """TreeStore backed by the GitHub repository contents API.

    One instance is scoped to a single repo and branch; every request carries
    the bearer token. Non-2xx responses are classified into AppError kinds.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        branch: str = DEFAULT_BRANCH,
        api_url: str = "https://api.github.com",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
        ):
        if not token:
            raise AppError.internal("GitHub token is not configured", tag=ErrorTag.ENV)
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "Authorization": f"Bearer {token}",
            },
            transport=transport,
            timeout=timeout,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "GitHubTreeStore":
        try:
            repo = parse_repo_url(settings.repo_url)
        except ValueError as e:
            raise AppError.internal(str(e), tag=ErrorTag.ENV) from e
        return cls(
            owner=repo.owner,
            repo=repo.repo,
            token=settings.github_token,
            branch=settings.branch or repo.branch or DEFAULT_BRANCH,
            api_url=settings.github_api_url,
            transport=transport,
        )

    def _url(self, path: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{encode_path(path)}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, self._url(path), **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"GitHub {method} {path} failed: {e}")
            raise AppError.from_unknown(e, tag=ErrorTag.FETCH, message=f"GitHub request failed: {path}") from e
        if response.is_success:
            return response
        message = _remote_message(response)
        logger.warning(f"GitHub {method} {path} -> {response.status_code}: {message}")
        raise AppError.from_status(response.status_code, message, retry_after=_retry_after(response))

    async def get_content(self, path: str) -> Union[RemoteFile, Listing]:
        response = await self._request("GET", path, params={"ref": self.branch})
        body = response.json()
        if isinstance(body, list):
            return [
                RemoteEntry(
                    name=item["name"],
                    path=item["path"],
                    type="dir" if item.get("type") == "dir" else "file",
                    sha=item.get("sha"),
                )
                for item in body
            ]
        if body.get("type") != "file":
            raise AppError.not_found(f"Not found: {path}")
        content = base64.b64decode(body.get("content") or "").decode("utf-8")
        return RemoteFile(path=body.get("path", path), content=content, sha=body["sha"])

    async def put_content(self, path: str, content: str, message: str, sha: Optional[str] = None) -> WriteResult:
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if sha:
            payload["sha"] = sha
        response = await self._request("PUT", path, json=payload)
        body = response.json()
        return WriteResult(path=path, sha=body["content"]["sha"], commit=body["commit"]["sha"])

    async def delete_content(self, path: str, sha: str, message: str) -> Optional[str]:
        response = await self._request("DELETE", path, json={"message": message, "sha": sha, "branch": self.branch})
        try:
            return response.json()["commit"]["sha"]
        except (ValueError, KeyError, TypeError):
            return None

    async def aclose(self) -> None:
        await self._client.aclose()
