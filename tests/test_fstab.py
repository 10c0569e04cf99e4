"""Tests for lib/fstab.py - UUID entries with validate-or-revert."""

from dangerprep_installer.lib.fstab import FstabEntry, merge_entries, update_fstab

EXISTING = (
    "# /etc/fstab\n"
    "UUID=root / ext4 defaults 0 1\n"
    "/dev/nvme0n1p1 /data ext4 defaults 0 2\n"
)


class TestMergeEntries:
    def test_replaces_same_mountpoint(self):
        merged = merge_entries(EXISTING, [FstabEntry("UUID=1111-aaaa", "/data")])

        assert "/dev/nvme0n1p1 /data" not in merged
        assert "UUID=root / ext4 defaults 0 1" in merged
        assert "# /etc/fstab" in merged
        assert merged.endswith("UUID=1111-aaaa /data ext4 defaults,noatime,nofail 0 2\n")


class TestUpdateFstab:
    def test_valid_edit_is_kept(self, fake_cmd, tmp_path):
        fstab = tmp_path / "fstab"
        fstab.write_text(EXISTING)

        assert update_fstab([FstabEntry("UUID=1111-aaaa", "/data")], backup_dir=str(tmp_path / "b"), fstab_path=str(fstab))

        assert "UUID=1111-aaaa /data" in fstab.read_text()
        assert fake_cmd.ran("mount", "-a", "--fake")
        backups = list((tmp_path / "b").iterdir())
        assert len(backups) == 1
        assert backups[0].read_text() == EXISTING

    def test_invalid_edit_is_reverted(self, fake_cmd, tmp_path):
        fstab = tmp_path / "fstab"
        fstab.write_text(EXISTING)
        fake_cmd.on("mount", "-a", "--fake", returncode=1)

        assert not update_fstab([FstabEntry("UUID=1111-aaaa", "/data")], backup_dir=str(tmp_path / "b"), fstab_path=str(fstab))

        assert fstab.read_text() == EXISTING
