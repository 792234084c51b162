"""Metered GitHub README summarization endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.adapters.github.client import GitHubClient
from app.adapters.llm.factory import create_llm_client
from app.core.config import settings
from app.core.rate_limit import Admission, enforce_quota
from app.schemas.summary import SummarizeRequest, SummarizeResponse
from app.services.admission_service import AuthMode
from app.services.summary_service import SummaryService
from app.utils.simple_cache import SimpleTTLCache

router = APIRouter(prefix="/github-summarizer", tags=["Summarizer"])

# Initialize dependencies for the summarizer endpoints
_llm_client = create_llm_client()
_github_client = GitHubClient(
    api_base_url=settings.github.api_base_url,
    raw_base_url=settings.github.raw_base_url,
    token=settings.github.token,
    timeout_seconds=settings.github.timeout_seconds,
)
_cache = SimpleTTLCache(
    ttl_seconds=settings.app.summary_cache_ttl_seconds,
    max_entries=settings.app.summary_cache_max_entries,
)
_summary_service = SummaryService(llm=_llm_client, github=_github_client, cache=_cache)

AdmissionDep = Annotated[
    Admission,
    Depends(enforce_quota(AuthMode(settings.app.summarizer_auth_mode))),
]


@router.post("", response_model=SummarizeResponse)
async def summarize_repository(body: SummarizeRequest, admission: AdmissionDep) -> SummarizeResponse:
    """Summarize a GitHub repository from its README.

    Requires an API key (``Authorization: Bearer <key>``) unless the route
    runs in public mode. Each admitted call counts once against the key's
    quota; rejected calls are not counted.

    Raises:
        AppError subclasses mapped by the global handlers: 400 invalid URL,
        401 missing/invalid key, 404 README not found, 429 quota exhausted,
        500 LLM failure, 503 key store unavailable.
    """
    summary = await _summary_service.summarize(body.url)
    return SummarizeResponse(data=summary)


@router.get("", response_model=SummarizeResponse)
async def summarize_repository_query(
    admission: AdmissionDep,
    url: Annotated[str | None, Query(description="GitHub repository URL")] = None,
) -> SummarizeResponse:
    """Query-string variant of the summarizer endpoint."""
    summary = await _summary_service.summarize(url)
    return SummarizeResponse(data=summary)
