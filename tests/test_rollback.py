"""Tests for rollback.py - best-effort recovery after a failed install."""

import os

from dangerprep_installer.lib.files import backup_file
from dangerprep_installer.rollback import CLEANUP_SCRIPT, SystemRollback


def _make_script(root):
    script = root / CLEANUP_SCRIPT
    script.parent.mkdir(parents=True)
    script.write_text("#!/bin/bash\n")
    return script


class TestSystemRollback:
    def test_prefers_cleanup_script(self, fake_cmd, tmp_path):
        script = _make_script(tmp_path)

        SystemRollback(str(tmp_path))(backup_dir=str(tmp_path / "b"), reason="boom")

        assert fake_cmd.ran("bash", str(script), "--preserve-data")
        assert not fake_cmd.ran("systemctl", "stop", "docker")

    def test_basic_rollback_restores_backups(self, fake_cmd, tmp_path):
        target = tmp_path / "sshd_config"
        target.write_text("Port 22\n")
        backup_file(target, tmp_path / "b")
        target.write_text("Port 2222\n")

        rollback = SystemRollback(str(tmp_path / "opt"), restore_targets={"sshd_config": str(target)})
        rollback(backup_dir=str(tmp_path / "b"), reason="boom")

        assert fake_cmd.ran("systemctl", "stop", "docker")
        assert target.read_text() == "Port 22\n"

    def test_failed_script_falls_back(self, fake_cmd, tmp_path):
        _make_script(tmp_path)
        fake_cmd.on("bash", returncode=1)

        SystemRollback(str(tmp_path), restore_targets={})(backup_dir=str(tmp_path / "b"), reason="boom")

        assert fake_cmd.ran("systemctl", "stop", "docker")

    def test_errors_are_not_raised(self, mocker, tmp_path, caplog):
        mocker.patch("dangerprep_installer.rollback.run_cmd", side_effect=OSError("no systemctl"))

        SystemRollback(str(tmp_path / "opt"))(backup_dir=str(tmp_path / "b"), reason="boom")

        assert "Rollback encountered an error" in caplog.text
        assert not os.path.exists(tmp_path / "b")
