"""Local filesystem adapter for the file port."""

import shutil
from pathlib import Path


class LocalFileSystem:
    """File port backed by the local disk.

    Methods are coroutines so the orchestration loop can await them like any
    other port; the work itself is plain pathlib I/O.
    """

    async def exists(self, path: Path) -> bool:
        return Path(path).exists()

    async def read_file(self, path: Path) -> str:
        return Path(path).read_text(encoding="utf-8")

    async def write_file(self, path: Path, content: str) -> None:
        Path(path).write_text(content, encoding="utf-8")

    async def ensure_dir(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    async def remove_dir(self, path: Path) -> None:
        """Remove a directory tree. Safe to call if it doesn't exist."""
        shutil.rmtree(path, ignore_errors=True)

    async def copy_dir(self, source: Path, target: Path) -> None:
        shutil.copytree(source, target, dirs_exist_ok=True)
