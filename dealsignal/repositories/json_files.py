import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)


def ensure_file(path: Path, factory: Callable[[], Any]) -> None:
    """Creates the parent directory and an initial document when missing."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        write_json_atomic(path, factory())
        logger.info(f"Created store file {path}")


def read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()
    return json.loads(raw) if raw.strip() else {}


def backup_file(path: Path) -> None:
    """Copies path to a .bak sibling. Failures are logged, never raised."""
    try:
        if path.exists():
            shutil.copyfile(path, path.with_name(path.name + ".bak"))
    except OSError as e:
        logger.warning(f"Backup of {path} failed: {e}")


def write_json_atomic(path: Path, data: Any) -> None:
    """Serializes to a temp sibling, then swaps it in with os.replace."""
    fd, tmp_name = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
