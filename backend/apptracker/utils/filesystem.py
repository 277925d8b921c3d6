import json
import os
import tempfile
from pathlib import Path

from apptracker.errors import StorageError


def ensure_parent_dir(file_path: Path) -> Path:
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError(f"Could not create directory {file_path.parent}: {exc}") from exc
    return file_path


def write_json_atomic(file_path: Path, data: dict):
    """Write ``data`` next to ``file_path`` first, then swap it into place."""
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{file_path.name}.", suffix=".tmp", dir=file_path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, file_path)
    except OSError as exc:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise StorageError(f"Could not write {file_path}: {exc}") from exc
