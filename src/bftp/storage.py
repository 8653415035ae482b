from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

from .errors import PathEscapeError

logger = logging.getLogger(__name__)


class Storage:
    """Server-side file store rooted at ``base_dir``.

    Client filenames are joined onto the base directory and normalised. A
    name whose result is not strictly below the base directory (``..``
    components, absolute paths, the base directory itself) is refused with
    ``PathEscapeError``. Symlinks inside the base directory are not followed
    for this check.
    """

    def __init__(self, base_dir: str | os.PathLike[str]):
        self.base_dir = Path(os.path.abspath(base_dir))

    def ensure_base_dir(self) -> None:
        if not self.base_dir.is_dir():
            logger.warning("base directory %s does not exist; creating it", self.base_dir)
            self.base_dir.mkdir(parents=True, exist_ok=True)

    def resolve(self, filename: str) -> Path:
        if "\x00" in filename:
            raise PathEscapeError(f"filename contains a NUL character: {filename!r}")
        target = Path(os.path.normpath(os.path.join(self.base_dir, filename)))
        if self.base_dir not in target.parents:
            raise PathEscapeError(f"filename resolves outside the base directory: {filename!r}")
        try:
            os.fsencode(target)
        except UnicodeEncodeError as e:
            raise PathEscapeError(f"filename cannot be encoded as a path: {filename!r}") from e
        return target

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def read_bytes(self, path: Path) -> bytes:
        return path.read_bytes()

    def write_bytes(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    def delete(self, path: Path) -> None:
        if path.is_dir():
            path.rmdir()
        else:
            path.unlink()

    def listing(self) -> List[str]:
        """Regular files below the base directory, relative, ``/``-separated."""
        entries: List[str] = []
        for root, _dirs, files in os.walk(self.base_dir):
            for name in files:
                full = Path(root, name)
                if full.is_file():
                    entries.append(full.relative_to(self.base_dir).as_posix())
        return entries
