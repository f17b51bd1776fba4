"""JSON file persistence shared by the stores.

Stores keep their state in memory and mirror it to a JSON file after every
write. Any filesystem or decode failure is raised as StorageUnreachable so
the orchestrator can stop the run.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional

from content_sync.errors import StorageUnreachable


def read_json(path: Optional[Path]) -> Optional[Any]:
    """Load a store file. Returns None when persistence is off or the file is new."""
    if path is None or not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise StorageUnreachable(f"Cannot read {path}: {e}") from e


def write_json(path: Optional[Path], data: Any) -> None:
    """Atomically replace a store file with ``data``."""
    if path is None:
        return
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        raise StorageUnreachable(f"Cannot write {path}: {e}") from e
