"""Tests for the GitHub client using httpx.MockTransport."""

import httpx
import pytest

from app.adapters.github.client import GitHubClient, parse_github_url


def _client(handler) -> GitHubClient:
    return GitHubClient(transport=httpx.MockTransport(handler))


class TestParseGithubUrl:
    """Test repository URL parsing."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://github.com/psf/requests", ("psf", "requests")),
            ("https://github.com/psf/requests/tree/main", ("psf", "requests")),
            ("  https://github.com/a/b  ", ("a", "b")),
            ("http://github.com/psf/requests", None),
            ("https://github.com/psf", None),
            ("not a url", None),
        ],
    )
    def test_parse(self, url: str, expected) -> None:
        assert parse_github_url(url) == expected


class TestFetchReadme:
    """Test README retrieval fallbacks."""

    @pytest.mark.asyncio
    async def test_main_branch(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/octo/hello/main/README.md":
                return httpx.Response(200, text="# main")
            return httpx.Response(404)

        assert await _client(handler).fetch_readme("octo", "hello") == "# main"

    @pytest.mark.asyncio
    async def test_falls_back_to_master_then_api(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(f"{request.url.host}{request.url.path}")
            if request.url.host == "api.github.com":
                assert request.headers["Accept"] == "application/vnd.github.v3.raw"
                return httpx.Response(200, text="# from api")
            return httpx.Response(404)

        assert await _client(handler).fetch_readme("octo", "hello") == "# from api"
        assert seen == [
            "raw.githubusercontent.com/octo/hello/main/README.md",
            "raw.githubusercontent.com/octo/hello/master/README.md",
            "api.github.com/repos/octo/hello/readme",
        ]

    @pytest.mark.asyncio
    async def test_not_found_everywhere(self) -> None:
        assert await _client(lambda request: httpx.Response(404)).fetch_readme("o", "r") is None

    @pytest.mark.asyncio
    async def test_network_error_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("boom", request=request)

        assert await _client(handler).fetch_readme("o", "r") is None

    @pytest.mark.asyncio
    async def test_token_is_sent(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer gh-token"
            return httpx.Response(200, text="ok")

        client = GitHubClient(token="gh-token", transport=httpx.MockTransport(handler))

        assert await client.fetch_readme("o", "r") == "ok"


class TestFetchMetadata:
    """Test concurrent metadata retrieval."""

    @pytest.mark.asyncio
    async def test_collects_fields(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/repos/o/r":
                return httpx.Response(
                    200,
                    json={
                        "stargazers_count": 42,
                        "homepage": "https://example.com",
                        "license": {"spdx_id": "MIT", "name": "MIT License"},
                    },
                )
            if path == "/repos/o/r/releases/latest":
                return httpx.Response(200, json={"tag_name": "v2.0.0"})
            return httpx.Response(200, json=[{"name": "v1.0.0"}])

        metadata = await _client(handler).fetch_metadata("o", "r")

        assert metadata.stars == 42
        assert metadata.website_url == "https://example.com"
        assert metadata.license == "MIT"
        assert metadata.latest_version == "v2.0.0"

    @pytest.mark.asyncio
    async def test_falls_back_to_tags_and_tolerates_failures(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/repos/o/r":
                raise httpx.ConnectError("boom", request=request)
            if path == "/repos/o/r/releases/latest":
                return httpx.Response(404)
            return httpx.Response(200, json=[{"name": "v0.9.1"}, {"name": "v0.9.0"}])

        metadata = await _client(handler).fetch_metadata("o", "r")

        assert metadata.stars is None
        assert metadata.license is None
        assert metadata.latest_version == "v0.9.1"
