"""GitHub contents client for the remote tier."""

from template_repository.client.github_client import GitHubContentsClient, RemoteFetcher

__all__ = ["GitHubContentsClient", "RemoteFetcher"]
