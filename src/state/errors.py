from pathlib import Path
from typing import Union


class StateFileError(Exception):
    """A persisted state or catalog file exists but cannot be read or parsed.

    Missing and empty files are a first run, not an error. This is raised only
    when defaulting would throw away data, so the run must stop before writing.
    """

    def __init__(self, path: Union[str, Path], message: str):
        super().__init__(f"{path}: {message}")
        self.path = Path(path)
