"""Test the click CLI against an in-memory ledger."""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from theta_connector.chain.memory_ledger import MemoryLedger
from theta_connector.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _quiet_logging():
    with patch("theta_connector.main.setup_logging"):
        yield


@pytest.fixture
def memory_chain():
    ledger = MemoryLedger()
    with patch("theta_connector.connector.create_chain_client", lambda p, s: ledger):
        yield ledger


class TestOfflineCommands:
    def test_networks(self, runner):
        result = runner.invoke(main, ["networks"])
        assert result.exit_code == 0
        assert "theta_privatenet" in result.output
        assert "chain=366" in result.output

    def test_encode_key(self, runner):
        result = runner.invoke(main, ["encode-key", "hello"])
        assert result.exit_code == 0
        assert result.output.strip().startswith("0x1c8aff95")


class TestChainCommands:
    def test_allocate(self, runner, memory_chain):
        result = runner.invoke(main, ["allocate", "session-1", "pw"])
        assert result.exit_code == 0, result.output
        assert "user_id=1" in result.output

    def test_add_to_line_and_peek(self, runner, memory_chain):
        assert "turn=1" in runner.invoke(main, ["add-to-line", "5"]).output
        assert "removed=5" in runner.invoke(main, ["peek"]).output

    def test_rewards(self, runner, memory_chain):
        assert "token_id=1" in runner.invoke(main, ["reward-token", "2", "ipfs://a"]).output
        assert "points=8" in runner.invoke(main, ["reward-points", "2", "8"]).output

    def test_sync_user(self, runner, memory_chain):
        runner.invoke(main, ["add-to-line", "1"])
        runner.invoke(main, ["add-to-line", "2"])

        assert "turn=2" in runner.invoke(main, ["sync-user", "2"]).output
        assert "up to date" in runner.invoke(main, ["sync-user", "1"]).output

    def test_chain_error_is_reported(self, runner, memory_chain):
        result = runner.invoke(main, ["peek"])
        assert result.exit_code == 1
        assert "line is empty" in result.output

    def test_connection_failure(self, runner, monkeypatch):
        monkeypatch.delenv("PRIVATE_KEY", raising=False)
        result = runner.invoke(main, ["--network", "theta_privatenet", "peek"])
        assert result.exit_code == 1
        assert "Could not connect to theta_privatenet" in result.output
