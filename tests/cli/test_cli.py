"""Tests for the command-line interface.

Commands run in-process through main() with a temporary config
directory. Most run with --offline; the sync commands talk to a real
sync server on a local port.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Generator, List
from unittest.mock import MagicMock, patch

import pytest
from werkzeug.serving import make_server

from trackr.cli import build_parser, main
from trackr.core.merge_service import RemoteMergeService
from trackr.core.sync_server import create_sync_server, endpoint_path


class Cli:
    """Runs CLI commands against one config directory."""

    def __init__(self, config_dir: Path, capsys: pytest.CaptureFixture, offline: bool = True) -> None:
        self.config_dir = config_dir
        self.capsys = capsys
        self.offline = offline

    def run(self, *args: str) -> int:
        argv: List[str] = ["--config-dir", str(self.config_dir)]
        if self.offline:
            argv.append("--offline")
        return main(argv + list(args))

    def json(self, *args: str):
        self.capsys.readouterr()
        assert self.run("--format", "json", *args) == 0
        return json.loads(self.capsys.readouterr().out)


@pytest.fixture
def cli(test_config_dir: Path, capsys: pytest.CaptureFixture) -> Cli:
    return Cli(test_config_dir, capsys)


@pytest.fixture
def registered(cli: Cli) -> str:
    """Register a company; returns the admin id."""
    return cli.json(
        "register", "--company", "Acme", "--name", "Alice",
        "--email", "alice@acme.test", "--password", "secret", "--pin", "4321",
    )["id"]


class TestParser:
    """Test argument parsing."""

    def test_no_command_prints_help(self, cli: Cli, capsys: pytest.CaptureFixture) -> None:
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_post_arguments(self) -> None:
        args = build_parser().parse_args(
            ["post", "INCOME", "50", "--account", "a1", "--payment-status", "CREDIT"]
        )
        assert args.type == "INCOME"
        assert args.amount == 50.0
        assert args.payment_status == "CREDIT"

    def test_rejects_unknown_collection(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["list", "invoices"])


class TestBookkeeping:
    """Test local bookkeeping commands."""

    def test_register(self, cli: Cli, registered: str) -> None:
        status = cli.json("status")
        assert status["user"] == "alice@acme.test"
        assert status["role"] == "ADMIN"
        assert status["locked"] is False
        assert status["online"] is False

    def test_duplicate_registration(self, cli: Cli, registered: str, capsys: pytest.CaptureFixture) -> None:
        exit_code = cli.run(
            "register", "--company", "Other", "--name", "Mal",
            "--email", "ALICE@acme.test", "--password", "pw",
        )
        assert exit_code == 1
        assert "already registered" in capsys.readouterr().err
        assert len(cli.json("list", "companies")) == 1

    def test_post_and_balance(self, cli: Cli, registered: str) -> None:
        cash = cli.json("list", "accounts")[0]["id"]
        cli.json("post", "INCOME", "100", "--account", cash)
        cli.json("post", "INCOME", "50", "--account", cash)
        cli.json("post", "INCOME", "70", "--payment-status", "CREDIT")

        accounts = cli.json("list", "accounts")
        assert accounts[0]["balance"] == 150.0
        assert len(cli.json("list", "transactions")) == 3

    def test_delete_transaction(self, cli: Cli, registered: str) -> None:
        cash = cli.json("list", "accounts")[0]["id"]
        tx_id = cli.json("post", "EXPENSE", "30", "--account", cash)["id"]
        assert cli.run("delete-transaction", tx_id) == 0
        assert cli.json("list", "accounts")[0]["balance"] == 0.0
        assert cli.run("delete-transaction", tx_id) == 1

    def test_validation_error(self, cli: Cli, registered: str, capsys: pytest.CaptureFixture) -> None:
        capsys.readouterr()
        assert cli.run("post", "INCOME", "10", "--account", "missing") == 1
        assert "Invalid account_id" in capsys.readouterr().err

    def test_products_parties_users(self, cli: Cli, registered: str) -> None:
        cli.json("add-product", "Widget", "--stock", "10")
        cli.json("add-party", "Globex", "--type", "VENDOR")
        cli.json("add-user", "Sam Staff", "2468", "--role", "MANAGER")
        cli.json("add-account", "Savings", "--balance", "25")

        assert cli.json("list", "products")[0]["sku"].startswith("SKU-")
        assert cli.json("list", "entities")[0]["type"] == "VENDOR"
        emails = [u["email"] for u in cli.json("list", "users")]
        assert "samstaff@trackr.com" in emails
        assert cli.json("list", "accounts")[-1]["balance"] == 25.0

    def test_lock_unlock(self, cli: Cli, registered: str) -> None:
        assert cli.run("lock") == 0
        assert cli.json("status")["locked"] is True
        assert cli.run("unlock", "0000") == 1
        assert cli.run("unlock", "4321") == 0
        assert cli.json("status")["locked"] is False

    def test_login_logout(self, cli: Cli, registered: str) -> None:
        assert cli.run("logout") == 0
        assert cli.json("status")["user"] is None
        assert cli.run("login", "alice@acme.test", "wrong") == 1
        assert cli.run("login", "alice@acme.test", "secret") == 0

    def test_approve_and_reject(self, cli: Cli, registered: str) -> None:
        assert cli.run("approve-user", registered) == 0
        users = {u["id"]: u for u in cli.json("list", "users")}
        assert users[registered]["status"] == "ACTIVE"
        assert cli.json("list", "companies")[0]["status"] == "ACTIVE"
        assert cli.run("reject-user", registered) == 0
        assert cli.run("reject-user", "missing") == 1

    def test_list_text(self, cli: Cli, registered: str, capsys: pytest.CaptureFixture) -> None:
        capsys.readouterr()
        assert cli.run("list", "accounts") == 0
        out = capsys.readouterr().out
        assert "Cash in Hand" in out
        assert "Bank Account" in out

    def test_list_empty(self, cli: Cli, capsys: pytest.CaptureFixture) -> None:
        assert cli.run("list", "transactions") == 0
        assert "No transactions found." in capsys.readouterr().out


class TestJsonOutput:
    """Test that session and admin commands honor --format json."""

    def test_session_commands(self, cli: Cli, registered: str) -> None:
        assert cli.json("lock") == {"action": "lock", "success": True}
        assert cli.json("unlock", "4321") == {"action": "unlock", "success": True, "user_id": registered}
        assert cli.json("logout") == {"action": "logout", "success": True}
        assert cli.json("login", "alice@acme.test", "secret") == {
            "action": "login", "success": True, "user_id": registered,
        }

    def test_failure_reported_on_stdout(self, cli: Cli, registered: str, capsys: pytest.CaptureFixture) -> None:
        capsys.readouterr()
        assert cli.run("--format", "json", "unlock", "0000") == 1
        output = json.loads(capsys.readouterr().out)
        assert output["success"] is False
        assert output["error"] == "Incorrect PIN"

    def test_record_commands(self, cli: Cli, registered: str) -> None:
        approved = cli.json("approve-user", registered)
        assert approved == {"action": "approve-user", "success": True, "id": registered}
        assert cli.json("reject-user", registered)["action"] == "reject-user"

        cash = cli.json("list", "accounts")[0]["id"]
        tx_id = cli.json("post", "INCOME", "10", "--account", cash)["id"]
        assert cli.json("delete-transaction", tx_id) == {
            "action": "delete-transaction", "success": True, "id": tx_id,
        }


class TestSyncCommands:
    """Test push/pull against a real sync server."""

    @pytest.fixture
    def server(self) -> Generator[tuple, None, None]:
        service = RemoteMergeService()
        app = create_sync_server(service=service, deployment_id="cli-test")
        http_server = make_server("127.0.0.1", 0, app, threaded=True)
        thread = threading.Thread(target=http_server.serve_forever, daemon=True)
        thread.start()
        try:
            yield service, f"http://127.0.0.1:{http_server.server_port}{endpoint_path('cli-test')}"
        finally:
            http_server.shutdown()
            thread.join(timeout=5)

    def test_push_without_endpoint_is_skipped(self, cli: Cli, registered: str) -> None:
        result = cli.json("push")
        assert result["attempted"] is False

    def test_mutation_flushes_auto_push(
        self, test_config_dir: Path, capsys: pytest.CaptureFixture, server: tuple
    ) -> None:
        service, endpoint = server
        cli = Cli(test_config_dir, capsys, offline=False)
        assert cli.run("set-endpoint", endpoint) == 0

        admin_id = cli.json(
            "register", "--company", "Acme", "--name", "Alice",
            "--email", "alice@acme.test", "--password", "secret",
        )["id"]

        company_id = service.find_user_by_email("alice@acme.test")["companyId"]
        assert service.pull(company_id)["users"][-1]["id"] == admin_id
        assert service.outbox[0]["type"] == "NEW_REGISTRATION"

    def test_push_and_pull(
        self, test_config_dir: Path, tmp_path: Path, capsys: pytest.CaptureFixture, server: tuple
    ) -> None:
        service, endpoint = server
        first = Cli(test_config_dir, capsys, offline=False)
        first.run("set-endpoint", endpoint)
        first.json(
            "register", "--company", "Acme", "--name", "Alice",
            "--email", "alice@acme.test", "--password", "secret",
        )
        cash = first.json("list", "accounts")[0]["id"]
        first.json("post", "INCOME", "75", "--account", cash)
        assert first.json("push")["success"] is True

        second = Cli(tmp_path / "second", capsys, offline=False)
        second.run("set-endpoint", endpoint)
        assert second.run("login", "alice@acme.test", "secret") == 0
        pulled = second.json("pull")
        assert pulled["success"] is True
        assert "transactions" in pulled["merged"]
        assert second.json("list", "transactions")[0]["amount"] == 75.0


class TestServe:
    """Test the serve command."""

    def test_runs_server_with_config(self, test_config_dir: Path) -> None:
        app = MagicMock()
        with patch("trackr.cli.create_sync_server", return_value=app) as mock_create:
            exit_code = main(["--config-dir", str(test_config_dir), "serve", "--port", "9123"])

        assert exit_code == 0
        mock_create.assert_called_once()
        app.run.assert_called_once_with(host="0.0.0.0", port=9123)
