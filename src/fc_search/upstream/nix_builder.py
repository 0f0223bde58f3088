"""Build option and package records for a branch with nix.

``nix-instantiate`` evaluates the bundled ``eval.nix`` against the branch's
flake and yields a derivation; ``nix-build`` realises it into a store path
holding ``options.json``, ``packages.json`` and the store paths of the
nixpkgs and fc-nixos sources used for the evaluation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from contextlib import suppress
import logging
from pathlib import Path
from typing import Any
from urllib.parse import urljoin, urlparse

import anyio
from markdown_it import MarkdownIt
import orjson
from pydantic import ValidationError

from fc_search.domain.branch import Branch
from fc_search.domain.records import Declaration, OptionRecord, PackageRecord
from fc_search.errors import BuildError
from fc_search.upstream.ports import BuiltRecords


logger = logging.getLogger(__name__)

EVAL_NIX = Path(__file__).parent / "nix" / "eval.nix"

CommandRunner = Callable[[list[str], float], Awaitable[str]]

# raw HTML embedded in option docs is escaped, not passed through
_MARKDOWN = MarkdownIt("commonmark", {"html": False})


def _log_subprocess_stream(payload: bytes | None, *, prefix: str, level: int) -> None:
    if not payload:
        return
    for line in payload.decode(errors="replace").splitlines():
        logger.log(level, "%s %s", prefix, line)


async def run_command(cmd: list[str], timeout: float) -> str:
    """Run ``cmd`` and return its stripped stdout; the process is killed on timeout."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise BuildError(f"Could not start {cmd[0]}: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        proc.kill()
        with suppress(ProcessLookupError):
            await proc.wait()
        raise

    if proc.returncode:
        _log_subprocess_stream(stderr, prefix=f"[{cmd[0]}]", level=logging.ERROR)
        raise BuildError(f"{cmd[0]} exited with status {proc.returncode}")
    _log_subprocess_stream(stderr, prefix=f"[{cmd[0]}]", level=logging.DEBUG)
    return stdout.decode().strip()


def rewrite_declaration(
    declaration: str,
    *,
    nixpkgs_path: str,
    nixpkgs_url: str,
    fc_nixos_path: str,
    fc_nixos_url: str,
) -> str:
    """Replace the store path prefix of a declaration with a browsable base URL."""
    if declaration.startswith(nixpkgs_path):
        return declaration.replace(nixpkgs_path, nixpkgs_url, 1)
    return declaration.replace(fc_nixos_path, fc_nixos_url, 1)


def to_declaration(text: str) -> Declaration:
    """Turn a rewritten declaration into a record; directories point at their ``default.nix``."""
    parsed = urlparse(text)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return Declaration(text=text)
    url = text
    if not parsed.path.endswith(".nix"):
        url = urljoin(text if text.endswith("/") else f"{text}/", "default.nix")
    return Declaration(text=text, url=url)


def render_markdown(text: str) -> str:
    """Render nix documentation markdown to HTML."""
    if not text:
        return ""
    return _MARKDOWN.render(text).rstrip("\n")


def _doc_text(value: Any) -> str:
    if isinstance(value, Mapping):
        return str(value.get("text") or "")
    return str(value) if value else ""


def render_expression(value: Any) -> str:
    """Render a default or example; ``literalMD`` values are markdown, other literals stay verbatim."""
    if value is None:
        return ""
    if isinstance(value, Mapping) and "text" in value:
        if value.get("_type") == "literalMD":
            return render_markdown(str(value["text"]))
        return str(value["text"])
    if isinstance(value, str):
        return value
    return orjson.dumps(value).decode()


def convert_options(
    raw: Mapping[str, Mapping[str, Any]],
    *,
    nixpkgs_path: str,
    nixpkgs_url: str,
    fc_nixos_path: str,
    fc_nixos_url: str,
) -> dict[str, OptionRecord]:
    options: dict[str, OptionRecord] = {}
    for name, option in raw.items():
        declarations = tuple(
            to_declaration(
                rewrite_declaration(
                    declaration,
                    nixpkgs_path=nixpkgs_path,
                    nixpkgs_url=nixpkgs_url,
                    fc_nixos_path=fc_nixos_path,
                    fc_nixos_url=fc_nixos_url,
                )
            )
            for declaration in option.get("declarations") or ()
        )
        options[name] = OptionRecord(
            name=name,
            declarations=declarations,
            description=render_markdown(_doc_text(option.get("description"))),
            default=render_expression(option.get("default")),
            example=render_expression(option.get("example")),
            option_type=option.get("type") or "",
            read_only=bool(option.get("readOnly", False)),
        )
    return options


def convert_packages(raw: Mapping[str, Mapping[str, Any]]) -> dict[str, PackageRecord]:
    packages: dict[str, PackageRecord] = {}
    for attribute_name, package in raw.items():
        try:
            values = {"attribute_name": attribute_name, "name": attribute_name, **package}
            record = PackageRecord.model_validate(values)
        except (ValidationError, TypeError) as exc:
            logger.warning("Skipping package %s: %s", attribute_name, exc)
            continue
        packages[record.attribute_name] = record
    return packages


class NixRecordBuilder:
    """``RecordBuilder`` backed by ``nix-instantiate`` and ``nix-build``."""

    def __init__(
        self,
        *,
        nixpkgs_url: str = "https://github.com/nixos/nixpkgs/blob/master",
        timeout: float = 3600.0,
        runner: CommandRunner | None = None,
        eval_nix: Path = EVAL_NIX,
    ) -> None:
        self.nixpkgs_url = nixpkgs_url
        self.timeout = timeout
        self._runner = runner or run_command
        self._eval_nix = eval_nix

    async def build_records(self, branch: Branch) -> BuiltRecords:
        flake_uri = branch.flake_uri
        logger.debug("Instantiating %s", flake_uri)
        try:
            derivation = await self._runner(
                ["nix-instantiate", str(self._eval_nix), "--argstr", "flake", flake_uri],
                self.timeout,
            )
            logger.debug("Building %s", derivation)
            out_path = await self._runner(["nix-build", "--no-out-link", derivation], self.timeout)
        except asyncio.TimeoutError as exc:
            raise BuildError(f"nix build of {flake_uri} timed out after {self.timeout:.0f}s") from exc

        if not out_path:
            raise BuildError(f"nix-build of {flake_uri} produced no output path")
        logger.debug("Build output path is %s", out_path)
        return await anyio.to_thread.run_sync(self._read_output, Path(out_path.splitlines()[-1]), branch)

    def _read_output(self, path: Path, branch: Branch) -> BuiltRecords:
        try:
            raw_options = orjson.loads((path / "options.json").read_bytes())
            raw_packages = orjson.loads((path / "packages.json").read_bytes())
            nixpkgs_path = (path / "nixpkgs").read_text().strip()
            fc_nixos_path = (path / "fc-nixos").read_text().strip()
        except (OSError, orjson.JSONDecodeError) as exc:
            raise BuildError(f"Unreadable build output in {path}: {exc}") from exc

        try:
            options = convert_options(
                raw_options,
                nixpkgs_path=nixpkgs_path,
                nixpkgs_url=self.nixpkgs_url,
                fc_nixos_path=fc_nixos_path,
                fc_nixos_url=branch.github_blob_url,
            )
        except (ValidationError, AttributeError, TypeError) as exc:
            raise BuildError(f"Unexpected options.json layout in {path}: {exc}") from exc
        if not isinstance(raw_packages, Mapping):
            raise BuildError(f"Unexpected packages.json layout in {path}")
        return options, convert_packages(raw_packages)
