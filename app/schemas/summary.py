"""Pydantic schemas for GitHub README summarization."""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ReadmeSummary(BaseModel):
    """Structured LLM output for a README.

    Extra fields are rejected so the model cannot smuggle unexpected data
    into responses.
    """

    model_config = ConfigDict(extra="forbid")

    summary: str = Field(
        ...,
        min_length=1,
        description="A concise summary of the repository based on its README.",
    )
    cool_facts: list[str] = Field(
        ...,
        description="Interesting or notable facts about the repository.",
    )


class SummarizeRequest(BaseModel):
    """Summarizer request body; ``url`` and ``githubUrl`` are aliases."""

    url: str | None = Field(None, description="GitHub repository URL.")
    githubUrl: str | None = Field(None, description="Alias of url.")

    @model_validator(mode="after")
    def _resolve_url(self) -> "SummarizeRequest":
        if not self.url and self.githubUrl:
            self.url = self.githubUrl
        return self


class RepositoryInfo(BaseModel):
    url: str
    owner: str
    name: str


class RepositorySummary(BaseModel):
    """Summary payload returned to callers."""

    repository: RepositoryInfo
    readme_length: int = Field(..., ge=0)
    summary: str
    cool_facts: list[str]
    stars: int | None = None
    latest_version: str | None = None
    website_url: str | None = None
    license: str | None = None
    cached: bool = False


class SummarizeResponse(BaseModel):
    success: bool = True
    data: RepositorySummary
