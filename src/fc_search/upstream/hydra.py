"""Discover the served branches from the Hydra jobsets of the platform project."""

from __future__ import annotations

import logging

import httpx

from fc_search.domain.branch import Branch
from fc_search.errors import UpstreamError
from fc_search.upstream.branches import resolve_branch
from fc_search.upstream.ports import RevisionSource


logger = logging.getLogger(__name__)

JOBSET_PREFIX = "fc-"
JOBSET_SUFFIXES = ("production", "dev", "staging")
BRANCH_INPUT = "fc"


def is_channel_jobset(jobset: str) -> bool:
    return jobset.startswith(JOBSET_PREFIX) and jobset.endswith(JOBSET_SUFFIXES)


class HydraBranchSource:
    """``BranchSource`` reading jobset inputs from Hydra.

    Only the newest ``max_branches`` branches are kept (dev, staging and
    production of the three latest releases by default); each is resolved
    to its head commit, or marked ``fallback_to_cached`` when that fails.
    """

    def __init__(
        self,
        revisions: RevisionSource,
        *,
        base_url: str = "https://hydra.flyingcircus.io",
        project: str = "flyingcircus",
        owner: str = "flyingcircusio",
        repository: str = "fc-nixos",
        max_branches: int = 9,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.revisions = revisions
        self.base_url = base_url.rstrip("/")
        self.project = project
        self.owner = owner
        self.repository = repository
        self.max_branches = max_branches
        self._timeout = timeout
        self._client = client

    async def discover_branches(self) -> list[Branch]:
        if self._client is not None:
            names = await self._fetch_branch_names(self._client)
        else:
            async with httpx.AsyncClient(timeout=self._timeout, headers={"Accept": "application/json"}) as client:
                names = await self._fetch_branch_names(client)

        names = sorted(set(names), reverse=True)[: self.max_branches]
        logger.info("Fetched branches %s from hydra", names)
        return [
            await resolve_branch(self.revisions, Branch(owner=self.owner, name=self.repository, branch=name))
            for name in names
        ]

    async def _get_json(self, client: httpx.AsyncClient, url: str) -> dict:
        try:
            response = await client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamError(f"GET {url} failed: {exc}") from exc
        if not isinstance(payload, dict):
            raise UpstreamError(f"GET {url} returned {type(payload).__name__}, expected an object")
        return payload

    async def _fetch_branch_names(self, client: httpx.AsyncClient) -> list[str]:
        project = await self._get_json(client, f"{self.base_url}/project/{self.project}")
        listed = project.get("jobsets") or []
        if not isinstance(listed, list):
            raise UpstreamError(f"Project {self.project} lists jobsets as {type(listed).__name__}, expected a list")
        jobsets = sorted(jobset for jobset in listed if isinstance(jobset, str) and is_channel_jobset(jobset))

        names: list[str] = []
        for jobset_id in jobsets:
            jobset = await self._get_json(client, f"{self.base_url}/jobset/{self.project}/{jobset_id}")
            inputs = jobset.get("inputs") or {}
            if not isinstance(inputs, dict):
                logger.warning("Jobset %s has malformed inputs %r", jobset_id, inputs)
                continue
            fc_input = inputs.get(BRANCH_INPUT)
            if not isinstance(fc_input, dict):
                nixpkgs = inputs.get("nixpkgs")
                if fc_input is not None:
                    logger.warning("Jobset %s has malformed fc input %r", jobset_id, fc_input)
                elif isinstance(nixpkgs, dict):
                    logger.warning("Jobset %s with nixpkgs %r has no input fc", jobset_id, nixpkgs.get("value"))
                continue

            repo, _, branch = str(fc_input.get("value", "")).partition(" ")
            if not branch:
                logger.warning("Jobset %s has malformed fc input %r", jobset_id, fc_input.get("value"))
                continue
            if not repo.rstrip("/").endswith(f"/{self.owner}/{self.repository}"):
                logger.warning("Jobset %s tracks %s, expected %s/%s", jobset_id, repo, self.owner, self.repository)
                continue
            names.append(branch.strip())
        return names

