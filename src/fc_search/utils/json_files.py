"""orjson helpers for small on-disk JSON artifacts."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson


def atomic_write_json(path: Path, payload: Any) -> None:
    """Serialize ``payload`` next to ``path`` and rename it into place.

    Readers see either the previous file or the complete new one.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp") if path.suffix else path.with_name(path.name + ".tmp")
    tmp_path.write_bytes(orjson.dumps(payload))
    tmp_path.replace(path)


def read_json(path: Path) -> Any:
    """Load a JSON file; raises ``FileNotFoundError`` or ``orjson.JSONDecodeError``."""
    return orjson.loads(path.read_bytes())
