import os
from pathlib import Path
from typing import Iterable, Generator

class FileScanner:
    """Recursively lists files under a root, skipping ignored directory names."""

    def __init__(self, ignored_dirs: Iterable[str] = ()):
        self.ignored_dirs = set(ignored_dirs)

    def scan(self, root: Path) -> Generator[Path, None, None]:
        """Yields every regular file under root (or root itself if it is a file).

        Raises FileNotFoundError if root does not exist.
        """
        root = Path(root)
        if root.is_file():
            yield root
            return
        if not root.is_dir():
            raise FileNotFoundError(f"Path does not exist: {root}")
        if root.name in self.ignored_dirs:
            return

        for dirpath, dirs, files in os.walk(str(root)):
            dir_path = Path(dirpath)

            # Ensure deterministic traversal: sort directories and files
            dirs[:] = sorted(d for d in dirs if d not in self.ignored_dirs)
            files.sort()

            for file_name in files:
                file_path = dir_path / file_name
                if file_path.is_file():
                    yield file_path
