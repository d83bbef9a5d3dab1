"""Storage backends for cache file I/O.

All cache modules talk to disk through a ``StorageBackend`` so that the
engine can run against ``MemoryStorageBackend`` in tests.
"""

import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Set


class StorageBackend:
    """Handles all file I/O for the cache on the local filesystem.

    Provides a small blob interface:
    - File system operations (exists, mkdir, join_paths, delete, list/remove dirs)
    - JSON I/O, either as a direct overwrite or as an atomic replace

    Examples:
        >>> storage = StorageBackend()
        >>> storage.write_json('/path/to/data.json', {'key': 'value'})
        >>> data = storage.read_json('/path/to/data.json')
    """

    def exists(self, path: str) -> bool:
        """Check if a path exists.

        Args:
            path: Path to check

        Returns:
            True if path exists
        """
        return Path(path).exists()

    def mkdir(self, path: str, parents: bool = True, exist_ok: bool = True) -> None:
        """Create a directory.

        Args:
            path: Directory path to create
            parents: Create parent directories if needed
            exist_ok: Don't error if directory exists
        """
        Path(path).mkdir(parents=parents, exist_ok=exist_ok)

    def join_paths(self, *parts: str) -> str:
        """Join path components.

        Examples:
            >>> storage = StorageBackend()
            >>> storage.join_paths('path', 'to', 'file.txt')
            'path/to/file.txt'
        """
        return str(Path(*parts))

    def delete_file(self, path: str) -> bool:
        """Delete a file.

        Args:
            path: File path to delete

        Returns:
            True if a file was removed, False if it was already absent
        """
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        return True

    def list_dirs(self, path: str) -> List[str]:
        """List the immediate subdirectories of a directory.

        Returns:
            Full paths of subdirectories, empty if the directory is missing
        """
        root = Path(path)
        if not root.is_dir():
            return []
        return sorted(str(child) for child in root.iterdir() if child.is_dir())

    def remove_dir(self, path: str) -> None:
        """Recursively remove a directory and everything below it."""
        shutil.rmtree(path)

    # =========================================================================
    # JSON I/O
    # =========================================================================

    def read_json(self, path: str) -> Any:
        """Read JSON data from file.

        Raises:
            OSError: If the file cannot be read
            orjson.JSONDecodeError: If the content is not valid JSON
        """
        import orjson

        with open(path, "rb") as f:
            return orjson.loads(f.read())

    def write_json(self, path: str, data: Any) -> None:
        """Write JSON data to file, overwriting any prior content in place.

        Args:
            path: File path
            data: Data to serialize
        """
        import orjson

        content = orjson.dumps(data, option=orjson.OPT_INDENT_2)
        with open(path, "wb") as f:
            f.write(content)

    def write_json_atomic(self, path: str, data: Any) -> None:
        """Write JSON data so readers never observe a partial file.

        Content goes to a temporary file unique to this process, which is then
        renamed over ``path``. On failure the temporary file is removed and the
        original error is re-raised.
        """
        import orjson

        content = orjson.dumps(data, option=orjson.OPT_INDENT_2)
        temp_path = f"{path}.tmp.{os.getpid()}"
        try:
            with open(temp_path, "wb") as f:
                f.write(content)
            os.replace(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except FileNotFoundError:
                pass
            raise


class MemoryStorageBackend(StorageBackend):
    """In-memory storage backend with the same interface.

    Paths are plain strings; directories are tracked explicitly. Useful for
    exercising the cache engine without touching disk.
    """

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.dirs: Set[str] = set()

    def exists(self, path: str) -> bool:
        path = str(path)
        return path in self.files or path in self.dirs

    def mkdir(self, path: str, parents: bool = True, exist_ok: bool = True) -> None:
        path = str(path)
        if path in self.dirs and not exist_ok:
            raise FileExistsError(path)
        self.dirs.add(path)

    def join_paths(self, *parts: str) -> str:
        return "/".join(str(p).rstrip("/") for p in parts)

    def delete_file(self, path: str) -> bool:
        return self.files.pop(str(path), None) is not None

    def list_dirs(self, path: str) -> List[str]:
        prefix = str(path).rstrip("/") + "/"
        return sorted(
            d for d in self.dirs if d.startswith(prefix) and "/" not in d[len(prefix) :]
        )

    def remove_dir(self, path: str) -> None:
        path = str(path)
        if path not in self.dirs:
            raise FileNotFoundError(path)
        prefix = path.rstrip("/") + "/"
        self.dirs = {d for d in self.dirs if d != path and not d.startswith(prefix)}
        self.files = {
            name: blob for name, blob in self.files.items() if not name.startswith(prefix)
        }

    def read_json(self, path: str) -> Any:
        import orjson

        try:
            content = self.files[str(path)]
        except KeyError:
            raise FileNotFoundError(path) from None
        return orjson.loads(content)

    def write_json(self, path: str, data: Any) -> None:
        import orjson

        self.files[str(path)] = orjson.dumps(data, option=orjson.OPT_INDENT_2)

    def write_json_atomic(self, path: str, data: Any) -> None:
        self.write_json(path, data)
