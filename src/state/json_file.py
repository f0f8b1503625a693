"""JSON file helpers: tolerant reads and atomic write-temp-then-rename writes."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Union

from .errors import StateFileError


logger = logging.getLogger("state")


def read_json(path: Union[str, Path], default: Any) -> Any:
    """
    Load JSON from path.

    Returns default when the file is missing or blank. Raises StateFileError
    when it exists but cannot be read or decoded.
    """
    path = Path(path)
    if not path.exists():
        logger.debug(f"{path} does not exist, using default")
        return default
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise StateFileError(path, f"unreadable: {e}") from e
    if not raw.strip():
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise StateFileError(path, f"corrupt JSON: {e}") from e


def write_json_atomic(path: Union[str, Path], data: Any) -> None:
    """Write data as JSON so readers see either the old file or the new one."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as temp_file:
            json.dump(data, temp_file, indent=2, ensure_ascii=False)
            temp_file.write("\n")
            temp_file.flush()
            os.fsync(temp_file.fileno())
        os.replace(temp_name, path)
    except BaseException:
        try:
            os.remove(temp_name)
        except OSError:
            pass  # already renamed or never created
        raise
    logger.debug(f"Wrote {path}")
