"""Unit tests for the README summarization service."""

from unittest.mock import AsyncMock, Mock

import pytest

from app.adapters.github.client import GitHubClient, RepositoryMetadata
from app.adapters.llm.base import AbstractLLMClient
from app.core.errors import LLMAppError, NotFoundAppError, ValidationAppError
from app.services.summary_service import SummaryService, build_prompt
from app.utils.simple_cache import SimpleTTLCache

URL = "https://github.com/octo/hello"


@pytest.fixture
def llm() -> Mock:
    client = Mock(spec=AbstractLLMClient)
    client.generate_json = AsyncMock(
        return_value={"summary": "Greets people.", "cool_facts": ["Tiny", "Friendly"]}
    )
    return client


@pytest.fixture
def github() -> Mock:
    client = Mock(spec=GitHubClient)
    client.fetch_readme = AsyncMock(return_value="# Hello\nA greeting library.")
    client.fetch_metadata = AsyncMock(
        return_value=RepositoryMetadata(stars=12, latest_version="v1.2.0", license="MIT")
    )
    return client


@pytest.fixture
def service(llm: Mock, github: Mock) -> SummaryService:
    return SummaryService(llm=llm, github=github, cache=SimpleTTLCache(ttl_seconds=60, max_entries=10))


class TestSummarize:
    """Test the full summarize flow."""

    @pytest.mark.asyncio
    async def test_returns_summary_with_metadata(self, service: SummaryService, github: Mock) -> None:
        result = await service.summarize(URL)

        assert result.repository.owner == "octo"
        assert result.repository.name == "hello"
        assert result.summary == "Greets people."
        assert result.cool_facts == ["Tiny", "Friendly"]
        assert result.stars == 12
        assert result.latest_version == "v1.2.0"
        assert result.license == "MIT"
        assert result.cached is False
        github.fetch_readme.assert_awaited_once_with("octo", "hello")

    @pytest.mark.asyncio
    async def test_second_call_uses_cache(self, service: SummaryService, llm: Mock) -> None:
        await service.summarize(URL)
        result = await service.summarize(URL)

        assert result.cached is True
        llm.generate_json.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", [None, "", "   "])
    async def test_missing_url(self, service: SummaryService, url) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            await service.summarize(url)

        assert exc_info.value.code == "github_url_required"

    @pytest.mark.asyncio
    async def test_invalid_url(self, service: SummaryService, github: Mock) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            await service.summarize("https://gitlab.com/octo/hello")

        assert exc_info.value.code == "github_url_invalid"
        github.fetch_readme.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_readme(self, service: SummaryService, github: Mock, llm: Mock) -> None:
        github.fetch_readme.return_value = None

        with pytest.raises(NotFoundAppError):
            await service.summarize(URL)

        llm.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_llm_output_with_extra_fields_rejected(self, service: SummaryService, llm: Mock) -> None:
        llm.generate_json.return_value = {"summary": "x", "cool_facts": [], "secret": "leak"}

        with pytest.raises(LLMAppError) as exc_info:
            await service.summarize(URL)

        assert exc_info.value.code == "llm_schema_mismatch"

    @pytest.mark.asyncio
    async def test_llm_errors_propagate(self, service: SummaryService, llm: Mock) -> None:
        llm.generate_json.side_effect = LLMAppError(code="llm_provider_error", message="down")

        with pytest.raises(LLMAppError):
            await service.summarize(URL)


def test_build_prompt_embeds_readme() -> None:
    prompt = build_prompt("# Title")

    assert "# Title" in prompt
    assert '"summary"' in prompt
    assert '"cool_facts"' in prompt
