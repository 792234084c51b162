"""GitHub client for README content and repository metadata.

Only public, unauthenticated endpoints are required; a token (if configured)
raises GitHub's API rate limits.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

GITHUB_URL_PATTERN = re.compile(r"^https://github\.com/([^/]+)/([^/]+)(/.*)?$")

README_BRANCHES = ("main", "master")


@dataclass(frozen=True)
class RepositoryMetadata:
    """Optional repository facts; any field may be missing."""

    stars: int | None = None
    latest_version: str | None = None
    website_url: str | None = None
    license: str | None = None


def parse_github_url(url: str) -> tuple[str, str] | None:
    """Extract ``(owner, repo)`` from a GitHub repository URL.

    Examples:
        >>> parse_github_url("https://github.com/psf/requests")
        ('psf', 'requests')
        >>> parse_github_url("https://github.com/psf/requests/tree/main/docs")
        ('psf', 'requests')
        >>> parse_github_url("https://gitlab.com/psf/requests") is None
        True
    """
    match = GITHUB_URL_PATTERN.match(url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


class GitHubClient:
    """Async client over GitHub's raw content and REST API."""

    def __init__(
        self,
        *,
        api_base_url: str = "https://api.github.com",
        raw_base_url: str = "https://raw.githubusercontent.com",
        token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_base_url: REST API base URL.
            raw_base_url: Raw content base URL.
            token: Optional GitHub token.
            timeout_seconds: Per-request timeout.
            transport: Optional httpx transport (used by tests).
        """
        self._api_base_url = api_base_url.rstrip("/")
        self._raw_base_url = raw_base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._transport = transport
        self._headers = {"User-Agent": "repo-summarizer-api"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        )

    async def fetch_readme(self, owner: str, repo: str) -> str | None:
        """Fetch README content, trying ``main`` then ``master`` then the API.

        Returns:
            README text, or None when not found or GitHub is unreachable.
        """
        try:
            async with self._client() as client:
                for branch in README_BRANCHES:
                    response = await client.get(
                        f"{self._raw_base_url}/{owner}/{repo}/{branch}/README.md"
                    )
                    if response.status_code == 200:
                        return response.text

                response = await client.get(
                    f"{self._api_base_url}/repos/{owner}/{repo}/readme",
                    headers={"Accept": "application/vnd.github.v3.raw"},
                )
                if response.status_code == 200:
                    return response.text
        except httpx.HTTPError as exc:
            logger.warning(
                "github.readme_fetch_failed",
                extra={"owner": owner, "repo": repo, "error_type": type(exc).__name__},
            )
            return None

        logger.info("github.readme_not_found", extra={"owner": owner, "repo": repo})
        return None

    async def fetch_metadata(self, owner: str, repo: str) -> RepositoryMetadata:
        """Fetch stars, website, license and latest version concurrently.

        Failed sub-requests leave their fields empty.
        """
        base = f"{self._api_base_url}/repos/{owner}/{repo}"
        async with self._client() as client:
            repo_res, release_res, tags_res = await asyncio.gather(
                client.get(base),
                client.get(f"{base}/releases/latest"),
                client.get(f"{base}/tags"),
                return_exceptions=True,
            )

        stars = website = license_name = latest_version = None

        repo_data = _json_if_ok(repo_res)
        if isinstance(repo_data, dict):
            stars = repo_data.get("stargazers_count")
            website = repo_data.get("homepage") or None
            license_info = repo_data.get("license")
            if isinstance(license_info, dict):
                license_name = license_info.get("spdx_id") or license_info.get("name")

        release_data = _json_if_ok(release_res)
        if isinstance(release_data, dict):
            latest_version = release_data.get("tag_name")
        else:
            tags_data = _json_if_ok(tags_res)
            if isinstance(tags_data, list) and tags_data:
                latest_version = tags_data[0].get("name")

        return RepositoryMetadata(
            stars=stars,
            latest_version=latest_version,
            website_url=website,
            license=license_name,
        )


def _json_if_ok(result: httpx.Response | BaseException) -> Any:
    if isinstance(result, BaseException):
        logger.debug("github.metadata_request_failed", extra={"error_type": type(result).__name__})
        return None
    if result.status_code != 200:
        return None
    try:
        return result.json()
    except ValueError:
        return None
