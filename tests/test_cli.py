"""
Tests for CLI commands.

Uses typer's CliRunner against a throwaway project with a file-backed DuckDB.
"""

import pytest
from typer.testing import CliRunner

from keel import __version__
from keel.cli.main import app

runner = CliRunner()

KEEL_YAML = """\
connections:
  main:
    type: duckdb
    path: data/{env}.duckdb
migrations:
  source: migrations
logging:
  console_enabled: false
"""


@pytest.fixture
def project(tmp_path):
    (tmp_path / "keel.yaml").write_text(KEEL_YAML)
    for version, table in (("20210101", "t1"), ("20210202", "t2")):
        install = tmp_path / "migrations" / version / "install"
        rollback = tmp_path / "migrations" / version / "rollback"
        install.mkdir(parents=True)
        rollback.mkdir(parents=True)
        (install / "10-create.sql").write_text(f"CREATE TABLE {table} (id INTEGER)")
        (rollback / "10-drop.sql").write_text(f"DROP TABLE {table}")
    return tmp_path


def invoke(project, *args):
    return runner.invoke(app, ["--project-dir", str(project), *args])


class TestVersion:
    """Tests for --version flag."""

    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"keel version {__version__}" in result.output

    def test_version_short_flag(self):
        result = runner.invoke(app, ["-v"])
        assert result.exit_code == 0
        assert "keel version" in result.output


class TestHelp:
    """Tests for help output."""

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "install" in result.output
        assert "rollback" in result.output

    @pytest.mark.parametrize("command", ["install", "rollback", "status", "current", "log"])
    def test_command_help(self, command):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0


class TestCommands:
    """Tests running commands end to end."""

    def test_install_status_rollback(self, project):
        result = invoke(project, "install")
        assert result.exit_code == 0, result.output
        assert "Installed 2 version(s):" in result.output
        assert (project / "data" / "dev.duckdb").is_file()

        result = invoke(project, "current")
        assert result.exit_code == 0
        assert "20210202" in result.output

        result = invoke(project, "status")
        assert result.exit_code == 0
        assert "20210101" in result.output
        assert "installed" in result.output

        result = invoke(project, "rollback", "--target", "20210101")
        assert result.exit_code == 0
        assert "Rolled back 1 version(s):" in result.output
        assert "20210202" in result.output

        result = invoke(project, "current")
        assert "20210101" in result.output

    def test_install_nothing_to_do(self, project):
        invoke(project, "install")
        result = invoke(project, "install")
        assert result.exit_code == 0
        assert "No versions to install" in result.output

    def test_dry_run(self, project):
        result = invoke(project, "install", "--dry-run", "--target", "20210101")
        assert result.exit_code == 0
        assert "[DRY RUN] Would install 1 version(s):" in result.output

        result = invoke(project, "current")
        assert "(none)" in result.output

    def test_log(self, project):
        invoke(project, "install")
        result = invoke(project, "log", "20210101")
        assert result.exit_code == 0
        assert "Execute SQL script: 10-create.sql" in result.output

    def test_log_unknown_version(self, project):
        invoke(project, "install")
        result = invoke(project, "log", "19990101")
        assert result.exit_code == 1

    def test_env_selects_database(self, project):
        result = invoke(project, "--env", "prod", "install")
        assert result.exit_code == 0
        assert (project / "data" / "prod.duckdb").is_file()

    def test_source_override(self, project, tmp_path_factory):
        empty = tmp_path_factory.mktemp("empty")
        result = invoke(project, "--source", str(empty), "install")
        assert result.exit_code == 0
        assert "No versions to install" in result.output

    def test_failing_script_exits_1(self, project):
        (project / "migrations" / "20210303" / "install").mkdir(parents=True)
        (project / "migrations" / "20210303" / "install" / "10-bad.sql").write_text("SELEC 1")
        result = invoke(project, "install")
        assert result.exit_code == 1
        assert "Error:" in result.output

        result = invoke(project, "current")
        assert "20210202" in result.output

    def test_undecodable_script_exits_1(self, project):
        (project / "migrations" / "20210303" / "install").mkdir(parents=True)
        (project / "migrations" / "20210303" / "install" / "10-latin1.sql").write_bytes(b"SELECT '\xff'")
        result = invoke(project, "install")
        assert result.exit_code == 1
        assert "not valid UTF-8" in result.output

    def test_missing_config_exits_1(self, tmp_path):
        result = invoke(tmp_path, "status")
        assert result.exit_code == 1
        assert "Configuration file not found" in result.output
