"""GitHub access adapter (README content and repository metadata)."""

from app.adapters.github.client import GitHubClient, RepositoryMetadata, parse_github_url

__all__ = ["GitHubClient", "RepositoryMetadata", "parse_github_url"]
