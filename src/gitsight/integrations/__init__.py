"""Integrations with code hosting services."""

from .github_fetcher import FetchResult, GitHubFetcher, write_active_tables

__all__ = ["FetchResult", "GitHubFetcher", "write_active_tables"]
