"""Tests for the Cleanup registry."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

from flasher.lifecycle.cleanup import Cleanup
from flasher.models import CommandFailure


class TestCleanup:
    def test_temp_dir_registered(self):
        cleanup = Cleanup("darwin")
        path = cleanup.temp_dir("factory")
        try:
            assert path.is_dir()
            assert path.name.startswith("device-flasher-extracted-factory")
            assert cleanup.directories == [path]
        finally:
            path.rmdir()

    async def test_removes_directories_and_kills_adb(self):
        cleanup = Cleanup("darwin")
        path = cleanup.temp_dir("platformtools")
        (path / "file").write_text("x")
        cleanup.adb = AsyncMock()

        await cleanup.run()

        assert not path.exists()
        cleanup.adb.kill_server.assert_awaited_once()

    async def test_adb_failure_logged(self, caplog):
        cleanup = Cleanup("darwin")
        cleanup.adb = AsyncMock()
        cleanup.adb.kill_server.side_effect = CommandFailure("no server", tool="adb")
        await cleanup.run()
        assert "cleanup error killing adb server" in caplog.text

    async def test_runs_once(self):
        cleanup = Cleanup("darwin")
        cleanup.adb = AsyncMock()
        await cleanup.run()
        await cleanup.run()
        cleanup.adb.kill_server.assert_awaited_once()

    async def test_missing_directory_ignored(self, tmp_path):
        cleanup = Cleanup("darwin")
        cleanup.directories.append(tmp_path / "gone")
        await cleanup.run()

    async def test_linux_removes_udev_rules(self):
        with patch("flasher.lifecycle.cleanup.remove_udev_rules") as remove:
            await Cleanup("linux").run()
            remove.assert_called_once()

    async def test_other_os_leaves_udev(self):
        with patch("flasher.lifecycle.cleanup.remove_udev_rules") as remove:
            await Cleanup("windows").run()
            remove.assert_not_called()
