"""Tests for CLI commands.

These tests verify that all CLI commands are properly registered and callable.
"""

from pathlib import Path

from ledger_import.runner.main import create_cli, main
from ledger_import.state_store import StateStore


class TestCLICommandRegistry:
    """Tests for CLI command registration."""

    def test_process_command(self):
        args = create_cli().parse_args(["process", "statement.csv", "--output", "out.json"])
        assert args.command == "process"
        assert args.csv == Path("statement.csv")
        assert args.account == "Amex"
        assert args.output == Path("out.json")

    def test_execute_command(self):
        args = create_cli().parse_args(["execute", "confirmed.json"])
        assert args.json_file == Path("confirmed.json")

    def test_corrections_command(self):
        args = create_cli().parse_args(["corrections", "--min-confidence", "0.8"])
        assert args.min_confidence == 0.8
        assert args.limit == 50

    def test_no_command_prints_help(self):
        assert main([]) == 1


class TestCLICommands:
    """Commands that need no network."""

    def test_init_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        assert main(["-c", str(path), "init-config"]) == 0
        assert path.exists()
        assert main(["-c", str(path), "init-config"]) == 1

    def test_corrections_and_usage(self, tmp_path, monkeypatch, capsys):
        db = tmp_path / "state.db"
        monkeypatch.setenv("LEDGER_IMPORT_STATE_DB", str(db))
        store = StateStore(db)
        store.save_correction("COLES 12", entity_id="c-id", entity_name="Coles")
        store.record_ai_usage("ROW", "Shop", "Shopping", 10, 2, 0.00002)

        assert main(["-c", str(tmp_path / "none.yaml"), "corrections"]) == 0
        assert main(["-c", str(tmp_path / "none.yaml"), "ai-usage"]) == 0

        output = capsys.readouterr().out
        assert "COLES" in output
        assert "API calls:        1" in output

    def test_process_without_token_fails(self, tmp_path, monkeypatch, capsys):
        """Missing credentials are reported, not raised."""
        monkeypatch.delenv("NOTION_API_TOKEN", raising=False)
        monkeypatch.setenv("LEDGER_IMPORT_STATE_DB", str(tmp_path / "state.db"))
        monkeypatch.setenv("LEDGER_IMPORT_AI_ENABLED", "false")
        csv_path = tmp_path / "amex.csv"
        csv_path.write_text("Date,Description,Amount\n03/02/2025,COLES,1.00\n")

        assert main(["-c", str(tmp_path / "none.yaml"), "process", str(csv_path)]) == 1
        assert "Configuration error" in capsys.readouterr().out

    def test_missing_file(self, tmp_path):
        assert main(["-c", str(tmp_path / "none.yaml"), "execute", str(tmp_path / "x.json")]) == 1
