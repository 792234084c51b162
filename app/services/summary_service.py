"""GitHub README summarization service.

Orchestrates the protected operation behind admission control:
- URL validation
- README and metadata retrieval from GitHub
- Prompt construction and LLM call with strict output validation
- Caching by README content hash
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from app.adapters.github.client import GitHubClient, RepositoryMetadata, parse_github_url
from app.adapters.llm.base import AbstractLLMClient
from app.core.config import settings
from app.core.errors import LLMAppError, NotFoundAppError, ValidationAppError
from app.schemas.summary import ReadmeSummary, RepositoryInfo, RepositorySummary
from app.utils.simple_cache import SimpleTTLCache, build_cache_key

logger = logging.getLogger(__name__)

# Bump when the prompt changes so cached summaries are not reused
PROMPT_VERSION = "v1"

SYSTEM_PROMPT = (
    "You are a helpful assistant that summarizes GitHub repository README files. "
    "Provide a concise, informative summary that highlights the key features, purpose, "
    "and usage of the repository. You must respond with ONLY the fields \"summary\" "
    "(string) and \"cool_facts\" (array of strings). Do not include any other fields "
    "or metadata."
)


def build_prompt(readme: str) -> str:
    """Build the user prompt for README summarization."""
    return (
        "Summarize this github repo from readme file content:\n\n"
        f"{readme}\n\n"
        'Return only a JSON object with exactly these two fields: "summary" and "cool_facts".'
    )


class SummaryService:
    """Summarizes a GitHub repository from its README.

    Attributes:
        llm: LLM client adapter producing JSON.
        github: GitHub client.
        cache: TTL cache keyed by README hash.
    """

    def __init__(
        self,
        llm: AbstractLLMClient,
        github: GitHubClient,
        cache: SimpleTTLCache,
    ) -> None:
        self.llm = llm
        self.github = github
        self.cache = cache

    async def _summarize_readme(self, readme: str) -> tuple[ReadmeSummary, bool]:
        readme = readme[: settings.app.max_readme_chars]
        cache_key = build_cache_key(readme, salt=f"{PROMPT_VERSION}:{settings.llm.model}")

        cached = self.cache.get(cache_key)
        if cached is not None:
            return ReadmeSummary.model_validate(cached), True

        raw = await self.llm.generate_json(
            build_prompt(readme),
            system_prompt=SYSTEM_PROMPT,
            schema=ReadmeSummary.model_json_schema(),
        )
        try:
            summary = ReadmeSummary.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "summary.invalid_llm_output",
                extra={"error_count": exc.error_count(), "fields": sorted(raw)},
            )
            raise LLMAppError(
                code="llm_schema_mismatch",
                message="LLM output did not match the summary schema",
                details={"model": settings.llm.model},
            ) from exc

        self.cache.set(cache_key, summary.model_dump())
        return summary, False

    async def summarize(self, url: str | None) -> RepositorySummary:
        """Summarize the repository at ``url``.

        Raises:
            ValidationAppError: Missing or malformed URL.
            NotFoundAppError: README not found.
            LLMAppError: LLM failure or malformed output.
        """
        if not url or not url.strip():
            raise ValidationAppError(
                code="github_url_required",
                message='GitHub URL is required. Provide it as "url" or "githubUrl".',
            )

        url = url.strip()
        parsed = parse_github_url(url)
        if parsed is None:
            raise ValidationAppError(
                code="github_url_invalid",
                message="Invalid GitHub URL format. Expected format: https://github.com/owner/repo",
                details={"url": url},
            )
        owner, repo = parsed

        readme = await self.github.fetch_readme(owner, repo)
        if not readme:
            raise NotFoundAppError(
                code="readme_not_found",
                message="README.md file not found in the repository or repository does not exist.",
                details={"url": url},
            )

        summary, cached = await self._summarize_readme(readme)
        metadata: RepositoryMetadata = await self.github.fetch_metadata(owner, repo)

        logger.info(
            "summary.completed",
            extra={
                "owner": owner,
                "repo": repo,
                "readme_length": len(readme),
                "cached": cached,
            },
        )

        return RepositorySummary(
            repository=RepositoryInfo(url=url, owner=owner, name=repo),
            readme_length=len(readme),
            summary=summary.summary,
            cool_facts=summary.cool_facts,
            stars=metadata.stars,
            latest_version=metadata.latest_version,
            website_url=metadata.website_url,
            license=metadata.license,
            cached=cached,
        )
