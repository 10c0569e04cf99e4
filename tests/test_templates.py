"""Tests for templates.py - {{NAME}} rendering with backup-before-overwrite."""

import pytest

from dangerprep_installer.errors import TemplateNotFoundError
from dangerprep_installer.templates import package_template, render_template, substitute


@pytest.fixture
def template(tmp_path):
    p = tmp_path / "sshd.tmpl"
    p.write_text("Port={{SSH_PORT}}\n")
    return p


class TestSubstitute:
    def test_unmatched_markers_are_kept(self):
        assert substitute("a={{A}} b={{B}}", {"A": "1"}) == "a=1 b={{B}}"

    def test_substitution_is_not_recursive(self):
        assert substitute("{{A}}", {"A": "{{B}}", "B": "x"}) == "{{B}}"

    def test_literal_values(self):
        assert substitute("{{A}}", {"A": r"\1 $HOME"}) == r"\1 $HOME"


class TestRenderTemplate:
    """Tests for render_template()."""

    def test_rerender_backs_up_previous_output(self, tmp_path, template):
        out = tmp_path / "etc" / "ssh" / "sshd_config"
        backups = tmp_path / "backups"

        first = render_template(template, out, {"SSH_PORT": "2222"}, backup_dir=backups)
        assert first is None
        assert out.read_text() == "Port=2222\n"

        backup = render_template(template, out, {"SSH_PORT": "2200"}, backup_dir=backups)

        assert out.read_text() == "Port=2200\n"
        assert backup.read_text() == "Port=2222\n"
        assert backup.name.startswith("sshd_config.backup-")
        assert len(list(backups.iterdir())) == 1

    def test_missing_template(self, tmp_path):
        with pytest.raises(TemplateNotFoundError):
            render_template(tmp_path / "missing.tmpl", tmp_path / "out", backup_dir=tmp_path)

    def test_explicit_bindings_win_over_well_known(self, tmp_path, template):
        out = tmp_path / "out"

        render_template(template, out, {"SSH_PORT": "2200"}, backup_dir=tmp_path, well_known={"SSH_PORT": "22"})

        assert out.read_text() == "Port=2200\n"

    def test_empty_well_known_values_leave_marker(self, tmp_path, template):
        out = tmp_path / "out"

        render_template(template, out, backup_dir=tmp_path, well_known={"SSH_PORT": ""})

        assert out.read_text() == "Port={{SSH_PORT}}\n"

    def test_failed_backup_does_not_abort(self, mocker, tmp_path, template):
        out = tmp_path / "out"
        out.write_text("old\n")
        mocker.patch("dangerprep_installer.templates.backup_file", side_effect=OSError("read-only"))

        assert render_template(template, out, {"SSH_PORT": "2222"}, backup_dir=tmp_path / "b") is None
        assert out.read_text() == "Port=2222\n"

    def test_dry_run_writes_nothing(self, tmp_path, template):
        out = tmp_path / "out"

        render_template(template, out, {"SSH_PORT": "2222"}, backup_dir=tmp_path, dry_run=True)

        assert not out.exists()


class TestPackagedTemplates:
    @pytest.mark.parametrize("name", ["sshd_config.tmpl", "jail.local.tmpl"])
    def test_shipped(self, name):
        assert package_template(name).is_file()

    def test_sshd_template_uses_port(self):
        assert "Port {{SSH_PORT}}" in package_template("sshd_config.tmpl").read_text()
