"""
Tests for the command-line interface.
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from tradebook.cli import main
from tradebook.export import ExportError, save_trades
from tradebook.models import Side

from conftest import FakeBroker, make_fill


@pytest.fixture
def runner():
    return CliRunner()


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text)
    return str(path)


class TestDetect:
    """Tests for the detect command."""

    def test_detect_robinhood(self, runner, tmp_path, robinhood_csv):
        path = write(tmp_path, "activity.csv", robinhood_csv)

        result = runner.invoke(main, ["detect", path])

        assert result.exit_code == 0
        assert "Detected dialect: robinhood (Robinhood)" in result.output
        assert "Data rows: 3" in result.output

    def test_detect_empty_file(self, runner, tmp_path):
        path = write(tmp_path, "empty.csv", "")

        result = runner.invoke(main, ["detect", path])

        assert result.exit_code == 1


class TestImport:
    """Tests for the import command."""

    def test_import_generic(self, runner, tmp_path, generic_csv):
        """Test a successful import writes trades and the import log."""
        path = write(tmp_path, "journal.csv", generic_csv)
        out_dir = tmp_path / "out"

        result = runner.invoke(main, ["import", path, "--output-dir", str(out_dir)])

        assert result.exit_code == 0
        assert "Import successful" in result.output
        assert "Broker: generic" in result.output
        assert "Realized P&L: $250.00" in result.output
        assert (out_dir / "trades_journal.csv").exists()

        log_lines = (out_dir / "import_log.jsonl").read_text().splitlines()
        actions = [json.loads(line)["action_type"] for line in log_lines]
        assert actions == ["CSV_PARSED", "TRADES_EXPORTED"]

    def test_import_json(self, runner, tmp_path, td_statement_csv):
        path = write(tmp_path, "statement.csv", td_statement_csv)

        result = runner.invoke(
            main, ["import", path, "--json", "--output-dir", str(tmp_path / "out")]
        )

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["detected_broker"] == "tdameritrade"
        assert data["trades"][0]["realized_pl"] == "250.00"

    def test_import_with_config(self, runner, tmp_path, generic_csv):
        """Test that config supplies the output directory and note prefix."""
        path = write(tmp_path, "journal.csv", generic_csv)
        out_dir = tmp_path / "journal_out"
        config = write(
            tmp_path,
            "import.yaml",
            f"output_dir: {out_dir}\nnotes_prefix: Uploaded from\n",
        )

        result = runner.invoke(main, ["import", path, "--config", config, "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["trades"][0]["notes"] == "Uploaded from Generic CSV"
        assert (out_dir / "trades_journal.csv").exists()

    def test_import_failure_exits_nonzero(self, runner, tmp_path):
        path = write(tmp_path, "header.csv", "Time,Ticker,Quantity,Entry,Exit\n")

        result = runner.invoke(main, ["import", path, "--output-dir", str(tmp_path / "out")])

        assert result.exit_code == 1
        assert "No valid trades found in file" in result.output

    def test_invalid_date(self, runner, tmp_path, generic_csv):
        path = write(tmp_path, "journal.csv", generic_csv)

        result = runner.invoke(main, ["import", path, "--date", "01/02/2024"])

        assert result.exit_code == 1
        assert "Invalid date format" in result.output

    def test_broker_choice_validated(self, runner, tmp_path, generic_csv):
        path = write(tmp_path, "journal.csv", generic_csv)

        result = runner.invoke(main, ["import", path, "--broker", "etrade"])

        assert result.exit_code != 0


class TestReconstruct:
    """Tests for the reconstruct command."""

    def test_reconstruct_fills(self, runner, tmp_path, fills_csv):
        path = write(tmp_path, "fills.csv", fills_csv)
        out_dir = tmp_path / "out"

        result = runner.invoke(main, ["reconstruct", path, "--output-dir", str(out_dir)])

        assert result.exit_code == 0
        assert "Fills: 4" in result.output
        assert "Closed trades: 1" in result.output
        assert "Open long MSFT: 10 @ 370.0000" in result.output
        assert (out_dir / "trades_fills.csv").exists()

    def test_reconstruct_nothing_closed(self, runner, tmp_path):
        path = write(tmp_path, "fills.csv", "Time,Symbol,Side,Quantity,Price\n2024-01-02 09:30,AAPL,BUY,1,10\n")

        result = runner.invoke(main, ["reconstruct", path, "--output-dir", str(tmp_path / "out")])

        assert result.exit_code == 1
        assert "No closed trades" in result.output

    def test_reconstruct_save_failure(self, runner, tmp_path, fills_csv):
        """Test that a write failure is reported instead of a traceback."""
        path = write(tmp_path, "fills.csv", fills_csv)

        with patch("tradebook.cli.save_trades", side_effect=ExportError("disk full")):
            result = runner.invoke(main, ["reconstruct", path, "--output-dir", str(tmp_path / "out")])

        assert result.exit_code == 1
        assert "Error saving trades: disk full" in result.output


class TestSync:
    """Tests for the sync command."""

    def test_sync_alpaca(self, runner, tmp_path, round_trip_fills):
        with patch("tradebook.cli.AlpacaClient") as mock_client:
            mock_client.return_value = FakeBroker(round_trip_fills)

            result = runner.invoke(main, ["sync", "alpaca", "--output-dir", str(tmp_path)])

        assert result.exit_code == 0
        assert "Trades: 1" in result.output
        assert "Realized P&L: $200.00" in result.output

    def test_sync_without_closed_trades(self, runner, tmp_path):
        open_fill = make_fill(Side.BUY, "1", "10", "2024-01-02 09:30")
        with patch("tradebook.cli.WebullClient") as mock_client:
            mock_client.return_value = FakeBroker([open_fill])

            result = runner.invoke(main, ["sync", "webull", "--output-dir", str(tmp_path)])

        assert result.exit_code == 1
        assert "No closed trades found in broker fills" in result.output

    def test_sync_save_failure(self, runner, tmp_path, round_trip_fills):
        with patch("tradebook.cli.AlpacaClient") as mock_client, \
                patch("tradebook.cli.save_trades", side_effect=ExportError("disk full")):
            mock_client.return_value = FakeBroker(round_trip_fills)

            result = runner.invoke(main, ["sync", "alpaca", "--output-dir", str(tmp_path)])

        assert result.exit_code == 1
        assert "Error saving trades: disk full" in result.output


class TestSummary:
    """Tests for the summary command."""

    def test_summary_of_export(self, runner, tmp_path, sample_trades):
        path = save_trades(sample_trades, tmp_path / "trades.csv")

        result = runner.invoke(main, ["summary", str(path), "--date", "2024-01-02"])

        assert result.exit_code == 0
        assert "Trades: 4" in result.output
        assert "Total P&L: $249.00" in result.output
        assert "Win rate: 50.0%" in result.output
        assert "10:00    2 trades" in result.output

    def test_summary_missing_trades(self, runner, tmp_path):
        path = write(tmp_path, "empty.csv", "Time,Ticker,Quantity,Entry,Exit\n")

        result = runner.invoke(main, ["summary", path])

        assert result.exit_code == 1
        assert "Error loading trades" in result.output
