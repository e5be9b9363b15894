import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from main import LibraryManager, app

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_library(lib, monkeypatch):
    monkeypatch.setattr(LibraryManager, "_instance", lib)
    # setenv so that whatever --output writes is undone after the test
    monkeypatch.setenv("LIB_CLI_OUTPUT", "plain")
    return lib


def test_list_no_books():
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_add_then_list(lib):
    result = runner.invoke(app, ["add", "Dune", "Frank Herbert"])
    assert result.exit_code == 0
    assert "Successfully added: Dune by Frank Herbert" in result.stdout

    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "Dune by Frank Herbert" in result.stdout


def test_list_json_output(lib):
    lib.add_book("Neuromancer", "William Gibson")
    result = runner.invoke(app, ["--output", "json", "list"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout.strip().splitlines()[-1])
    assert payload[0]["title"] == "Neuromancer"
    assert payload[0]["author"]["name"] == "William Gibson"


def test_add_blank_title_fails():
    result = runner.invoke(app, ["add", " ", "Frank Herbert"])
    assert result.exit_code == 1
    assert "Error: Title cannot be empty." in result.stdout


def test_list_with_store_down(store):
    store.close()
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 1
    assert "Error:" in result.stdout


def test_seed_refused_by_default(monkeypatch):
    monkeypatch.setattr("seed.default_settings.enable_dev_seed", False)
    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 2
    assert "Seed refused" in result.stdout


def test_seed_when_enabled(lib, monkeypatch):
    monkeypatch.setattr("seed.default_settings.enable_dev_seed", True)
    monkeypatch.setattr("seed.default_settings.environment", "development")
    monkeypatch.setattr("seed.default_settings.password_hash_rounds", 4)

    result = runner.invoke(app, ["seed"])
    assert result.exit_code == 0
    assert "Users created: admin, user" in result.stdout
    assert len(lib.list_books()) == 2


def test_init_db():
    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0
    assert "Constraints ensured." in result.stdout


@patch("main.subprocess.run")
def test_serve_command(mock_subprocess_run):
    result = runner.invoke(app, ["serve", "--port", "9001"])
    assert result.exit_code == 0
    assert "Starting API on" in result.stdout
    args = mock_subprocess_run.call_args[0][0]
    assert "uvicorn" in args
    assert "api:app" in args
    assert args[args.index("--port") + 1] == "9001"
