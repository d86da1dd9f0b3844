import io

import pytest
from click.testing import CliRunner

from file_gateway.cli import cli
from file_gateway.settings import get_settings
from file_gateway.storage import LocalBlobStore
from file_gateway.users import SQLiteUserDirectory


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DEPLOYMENT_MODE", "local-dev")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


def test__show_config(cli_env):
    result = CliRunner().invoke(cli, ["show-config"])

    assert result.exit_code == 0
    assert "storage_backend: local" in result.output


def test__init_db_and_add_user(cli_env):
    runner = CliRunner()

    assert runner.invoke(cli, ["init-db"]).exit_code == 0
    result = runner.invoke(cli, ["add-user", "u1", "u1@example.com"])

    assert result.exit_code == 0
    directory = SQLiteUserDirectory(str(cli_env / "cli.db"))
    assert directory.resolve_owner("u1").address == "u1@example.com"


def test__reconcile__deletes_orphans(cli_env):
    runner = CliRunner()
    runner.invoke(cli, ["init-db"])
    LocalBlobStore(cli_env / "storage").put("orphan-x.txt", "text/plain", io.BytesIO(b"x"))

    result = runner.invoke(cli, ["reconcile", "--delete-orphans", "--grace-seconds", "0"])

    assert result.exit_code == 0
    assert "Orphaned blobs: 1" in result.output
    assert "Deleted: 1, failed: 0" in result.output
    assert list(LocalBlobStore(cli_env / "storage").iter_keys()) == []


def test__reconcile__default_grace_keeps_fresh_blobs(cli_env):
    runner = CliRunner()
    runner.invoke(cli, ["init-db"])
    LocalBlobStore(cli_env / "storage").put("orphan-x.txt", "text/plain", io.BytesIO(b"x"))

    result = runner.invoke(cli, ["reconcile", "--delete-orphans"])

    assert result.exit_code == 0
    assert "Orphaned blobs: 0" in result.output
    assert "Skipped recent unreferenced blobs: 1" in result.output
    assert list(LocalBlobStore(cli_env / "storage").iter_keys()) == ["orphan-x.txt"]
