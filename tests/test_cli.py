"""
Tests for the command line interface.

Each test points --store at its own tmp_path.
"""

import json

import pytest
from typer.testing import CliRunner

import telescope.cli as cli_module
from telescope.cli import app
from telescope.entry_store import EntryStore


@pytest.fixture
def cli(tmp_path):
    runner = CliRunner()

    def invoke(*args):
        return runner.invoke(app, ["--store", str(tmp_path), *args])

    return invoke


class TestRecordAndList:

    def test_record_prints_uuid(self, cli):
        result = cli("record", "request", "-t", "status:403")
        assert result.exit_code == 0
        uuid = result.output.strip()
        shown = cli("--json", "show", uuid)
        assert json.loads(shown.output)["tags"] == ["status:403"]

    def test_entries_with_tag_query(self, cli):
        cli("record", "request", "-t", "status:403", "--created-at", "2024-03-15 10:00:00")
        cli("record", "request", "-t", "status:200", "--created-at", "2024-04-15 10:00:00")
        cli("record", "query", "-t", "slow")

        result = cli("--json", "entries", "request", "--tag", "created:2024-03|status:500")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [e["tags"] for e in data] == [["status:403"]]

    def test_entries_hidden_until_scoped(self, cli):
        cli("record", "query", "--hidden", "--family-hash", "fam")
        assert cli("entries").output.strip() == "No entries found."
        data = json.loads(cli("--json", "entries", "--family-hash", "fam").output)
        assert len(data) == 1

    def test_entries_pagination(self, cli):
        for _ in range(3):
            cli("record", "job")
        data = json.loads(cli("--json", "entries", "job", "--before", "3", "--limit", "1").output)
        assert [e["sequence"] for e in data] == [2]

    def test_record_content(self, cli):
        uuid = cli("record", "request", "-c", '{"uri": "/admin"}').output.strip()
        assert json.loads(cli("--json", "show", uuid).output)["content"] == {"uri": "/admin"}

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
    def test_record_rejects_bad_content(self, cli, content):
        assert cli("record", "request", "-c", content).exit_code == 1

    def test_record_rejects_bad_created_at(self, cli):
        assert cli("record", "request", "--created-at", "today").exit_code == 1

    def test_show_missing(self, cli):
        assert cli("show", "missing").exit_code == 1

    def test_prune(self, cli):
        cli("record", "request", "--created-at", "2020-01-01 00:00:00")
        cli("record", "request", "--created-at", "2024-01-01 00:00:00")
        result = cli("prune", "2023-01-01 00:00:00")
        assert result.exit_code == 0
        assert "Pruned 1 entries." in result.output


class TestGuess:

    def test_guess(self, cli):
        result = cli("guess", "2/4-22")
        assert result.exit_code == 0
        assert "format: j#n#y" in result.output
        assert "2022-04-02T00:00:00+02:00" in result.output

    def test_guess_json_with_timezone(self, cli):
        result = cli("--json", "guess", "2024-01-15 08:00", "--timezone", "UTC")
        data = json.loads(result.output)
        assert data == {
            "format": "Y#m#d H#i",
            "date": "2024-01-15T08:00:00+00:00",
            "error": None,
        }

    def test_guess_failure(self, cli):
        result = cli("guess", "not-a-date")
        assert result.exit_code == 1


class TestConfig:

    def test_config_json(self, cli, tmp_path):
        data = json.loads(cli("--json", "config").output)
        assert data["timezone"] == "Europe/Copenhagen"
        assert data["database"] == str(tmp_path / "telescope.db")


class TestStoreLifecycle:

    def test_each_command_closes_its_store(self, cli, tmp_path, monkeypatch):
        closed = []
        original = EntryStore.close

        def close(store):
            if store._conn is not None and store._db_path.parent == tmp_path:
                closed.append(store)
            original(store)

        monkeypatch.setattr(EntryStore, "close", close)
        uuid = cli("record", "request").output.strip()
        cli("show", uuid)
        cli("entries")
        cli("prune", "2000-01-01 00:00:00")
        assert len(closed) == 4
        assert all(store._conn is None for store in closed)


class TestMain:
    """Exit codes and the error log of the console entry point."""

    @pytest.fixture
    def failing_app(self, monkeypatch, tmp_path):
        def fail():
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(cli_module, "app", fail)
        monkeypatch.setattr(cli_module, "_store_override", tmp_path / "store")
        monkeypatch.setenv("TELESCOPE_STORE_PATH", str(tmp_path / "env"))

    def test_error_is_logged_to_store_in_use(self, failing_app, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli_module.main()
        assert exc_info.value.code == 1

        log_path = tmp_path / "store" / "telescope-errors.log"
        assert "RuntimeError: disk on fire" in log_path.read_text()
        assert not (tmp_path / "env").exists()

        err = capsys.readouterr().err
        assert "Error: disk on fire" in err
        assert f"Details logged to {log_path}" in err

    def test_keyboard_interrupt(self, monkeypatch):
        def interrupt():
            raise KeyboardInterrupt

        monkeypatch.setattr(cli_module, "app", interrupt)
        with pytest.raises(SystemExit) as exc_info:
            cli_module.main()
        assert exc_info.value.code == 130

    def test_exit_codes_pass_through(self, monkeypatch):
        def done():
            raise SystemExit(2)

        monkeypatch.setattr(cli_module, "app", done)
        with pytest.raises(SystemExit) as exc_info:
            cli_module.main()
        assert exc_info.value.code == 2
