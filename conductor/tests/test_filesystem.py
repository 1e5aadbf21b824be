"""Tests for the local filesystem adapter."""

import pytest

from conductor.filesystem import LocalFileSystem


class TestLocalFileSystem:
    """Test LocalFileSystem operations."""

    @pytest.mark.asyncio
    async def test_write_read_exists(self, tmp_path):
        fs = LocalFileSystem()
        target = tmp_path / "a" / "b.md"

        assert await fs.exists(target) is False
        await fs.ensure_dir(target.parent)
        await fs.write_file(target, "hello\n")

        assert await fs.exists(target) is True
        assert await fs.read_file(target) == "hello\n"

    @pytest.mark.asyncio
    async def test_ensure_dir_idempotent(self, tmp_path):
        fs = LocalFileSystem()
        await fs.ensure_dir(tmp_path / "x" / "y")
        await fs.ensure_dir(tmp_path / "x" / "y")

        assert (tmp_path / "x" / "y").is_dir()

    @pytest.mark.asyncio
    async def test_copy_and_remove_dir(self, tmp_path):
        """copy_dir copies a tree; remove_dir tolerates missing directories."""
        fs = LocalFileSystem()
        source = tmp_path / "src"
        (source / "nested").mkdir(parents=True)
        (source / "nested" / "f.txt").write_text("x")

        await fs.copy_dir(source, tmp_path / "dst")
        assert (tmp_path / "dst" / "nested" / "f.txt").read_text() == "x"

        await fs.remove_dir(tmp_path / "dst")
        await fs.remove_dir(tmp_path / "dst")
        assert not (tmp_path / "dst").exists()
