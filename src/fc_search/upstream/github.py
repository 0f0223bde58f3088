"""Branch head lookup through the GitHub REST API."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
import logging

import httpx

from fc_search.domain.branch import Branch, Revision, RevisionUpdate
from fc_search.errors import UpstreamError


logger = logging.getLogger(__name__)

USER_AGENT = "fc-search"


def _parse_last_modified(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring unparsable Last-Modified header %r", value)
        return None


class GitHubRevisionSource:
    """Resolve a branch to its head commit, using conditional requests when possible."""

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    def branch_url(self, branch: Branch) -> str:
        return f"{self.api_url}/repos/{branch.owner}/{branch.name}/branches/{branch.branch}"

    def _headers(self, branch: Branch) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if branch.last_modified is not None:
            last_modified = branch.last_modified
            if last_modified.tzinfo is None:
                last_modified = last_modified.replace(tzinfo=timezone.utc)
            headers["If-Modified-Since"] = format_datetime(last_modified.astimezone(timezone.utc), usegmt=True)
        if branch.etag:
            headers["If-None-Match"] = branch.etag
        return headers

    async def get_latest_revision(self, branch: Branch) -> RevisionUpdate:
        url = self.branch_url(branch)
        try:
            if self._client is not None:
                response = await self._client.get(url, headers=self._headers(branch))
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, headers=self._headers(branch))
        except httpx.HTTPError as exc:
            raise UpstreamError(f"GET {url} failed: {exc}") from exc

        if response.status_code == httpx.codes.NOT_MODIFIED:
            logger.debug("%s not modified since %s", branch.branch, branch.last_modified)
            return RevisionUpdate.not_modified()
        if not response.is_success:
            raise UpstreamError(f"GET {url} returned HTTP {response.status_code}")

        try:
            payload = response.json()
            name = payload["name"]
            sha = payload["commit"]["sha"]
        except (ValueError, KeyError, TypeError) as exc:
            raise UpstreamError(f"Unexpected branch payload from {url}: {exc}") from exc

        if name != branch.branch:
            raise UpstreamError(f"Asked for branch {branch.branch!r} but GitHub answered {name!r}")

        return RevisionUpdate(
            modified=True,
            revision=Revision.specific(sha),
            last_modified=_parse_last_modified(response.headers.get("Last-Modified")),
            etag=response.headers.get("ETag"),
        )
