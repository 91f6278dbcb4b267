"""JSON file-based storage adapter implementing StoragePort."""

import json
import os
import tempfile
from pathlib import Path


class JsonStorage:
    """File-based JSON document storage implementing StoragePort protocol.

    ``load`` returns an empty document for a missing file and raises
    ``OSError`` / ``ValueError`` when the file cannot be read or parsed,
    leaving the failure policy to the caller.
    """

    def __init__(self, storage_dir: str = "memory"):
        self._storage_dir = Path(storage_dir)
        self._storage_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self._storage_dir / f"{key}.json"

    def load(self, key: str) -> dict:
        path = self.path_for(key)
        if not path.exists():
            return {}
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"{path} does not hold a JSON object")
        return raw

    def save(self, key: str, data: dict) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, ensure_ascii=False, indent=2)
        # Atomic write
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent), suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_path, str(path))
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
