"""Filesystem-backed cache of a channel's records and branch descriptor."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from pathlib import Path

import anyio
from pydantic import TypeAdapter

from fc_search.domain.branch import Branch
from fc_search.domain.records import OptionRecord, PackageRecord
from fc_search.errors import CacheError
from fc_search.utils.json_files import atomic_write_json, read_json


logger = logging.getLogger(__name__)

OPTIONS_FILENAME = "options.json"
PACKAGES_FILENAME = "packages.json"
BRANCH_FILENAME = "flake_info.json"
OPTIONS_INDEX_DIR = "options_index"
PACKAGES_INDEX_DIR = "packages_index"

_OPTIONS = TypeAdapter(dict[str, OptionRecord])
_PACKAGES = TypeAdapter(dict[str, PackageRecord])


@dataclass(frozen=True)
class CachedChannel:
    branch: Branch
    options: dict[str, OptionRecord]
    packages: dict[str, PackageRecord]


class ChannelCache:
    """Persist the last successful build of one channel.

    Every artifact is replaced atomically; ``flake_info.json`` is written
    last so it only ever names a revision whose records are on disk.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def options_index_path(self) -> Path:
        return self.root / OPTIONS_INDEX_DIR

    @property
    def packages_index_path(self) -> Path:
        return self.root / PACKAGES_INDEX_DIR

    async def load(self) -> CachedChannel | None:
        """Return the cached build, or ``None`` when any artifact is missing or unreadable."""
        try:
            return await anyio.to_thread.run_sync(self._load_sync)
        except FileNotFoundError:
            logger.debug("No complete cache in %s", self.root)
            return None
        except (OSError, ValueError) as err:
            logger.debug("Failed to load cache from %s: %s", self.root, err)
            return None

    async def load_branch(self) -> Branch | None:
        """Return the cached branch descriptor alone."""
        try:
            data = await anyio.to_thread.run_sync(read_json, self.root / BRANCH_FILENAME)
            return Branch.model_validate(data)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as err:
            logger.debug("Failed to read %s: %s", self.root / BRANCH_FILENAME, err)
            return None

    async def save(
        self,
        branch: Branch,
        options: Mapping[str, OptionRecord],
        packages: Mapping[str, PackageRecord],
    ) -> None:
        try:
            await anyio.to_thread.run_sync(self._save_sync, branch, dict(options), dict(packages))
        except OSError as err:
            raise CacheError(f"Failed to write cache in {self.root}: {err}") from err

    def _load_sync(self) -> CachedChannel:
        branch = Branch.model_validate(read_json(self.root / BRANCH_FILENAME))
        options = _OPTIONS.validate_python(read_json(self.root / OPTIONS_FILENAME))
        packages = _PACKAGES.validate_python(read_json(self.root / PACKAGES_FILENAME))
        return CachedChannel(branch=branch, options=options, packages=packages)

    def _save_sync(
        self,
        branch: Branch,
        options: dict[str, OptionRecord],
        packages: dict[str, PackageRecord],
    ) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        atomic_write_json(self.root / OPTIONS_FILENAME, _OPTIONS.dump_python(options, mode="json"))
        atomic_write_json(self.root / PACKAGES_FILENAME, _PACKAGES.dump_python(packages, mode="json"))
        atomic_write_json(self.root / BRANCH_FILENAME, branch.model_dump(mode="json"))
