"""Command line interface tests."""

import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from fleet_engine.models import EscrowAccount


def output(cli_out) -> dict:
    return json.loads(cli_out.getvalue().strip().splitlines()[-1])


class TestCatalogCommands:
    def test_init_db(self, cli, cli_out):
        assert cli.run(["init-db"]) == 0
        assert output(cli_out) == {"status": "ok"}

    def test_seed_is_idempotent(self, cli, cli_out):
        assert cli.run(["seed-catalog"]) == 0
        first = output(cli_out)["created"]
        assert first["role"] == 4
        assert first["role_permission"] > 0

        cli.run(["seed-catalog"])
        assert output(cli_out)["created"] == {"role": 0, "permission": 0, "role_permission": 0}

    def test_seed_without_grants(self, cli, cli_out):
        cli.run(["seed-catalog", "--no-default-grants"])
        assert output(cli_out)["created"]["role_permission"] == 0

    def test_no_command_prints_help(self, cli):
        assert cli.run([]) == 1


class TestAuthorizeCommand:
    def test_granted_and_denied(self, cli, cli_out, driver):
        cli.run(["authorize", "--user-id", str(driver.id), "--permission", "fuel.create"])
        assert output(cli_out)["granted"] is True

        cli.run(["authorize", "--user-id", str(driver.id), "--permission", "fuel.approve"])
        assert output(cli_out)["granted"] is False

    def test_malformed_user_id(self, cli):
        with pytest.raises(SystemExit):
            cli.run(["authorize", "--user-id", "abc", "--permission", "trips.read"])


class TestReplayBalance:
    def test_consistent_balance(self, cli, cli_out, escrow, escrow_account):
        escrow.post_transaction(escrow_account.id, "deposit", Decimal("120.00"))
        assert cli.run(["replay-balance", "--account-id", str(escrow_account.id)]) == 0
        data = output(cli_out)
        assert data["ok"] is True
        assert Decimal(data["replayed_balance"]) == Decimal("120.00")

    def test_drift_exit_code(self, cli, cli_out, session, escrow, escrow_account):
        escrow.post_transaction(escrow_account.id, "deposit", Decimal("120.00"))
        session.execute(
            update(EscrowAccount)
            .where(EscrowAccount.id == escrow_account.id)
            .values(balance=Decimal("100.00"))
        )
        assert cli.run(["replay-balance", "--account-id", str(escrow_account.id)]) == 2
        assert Decimal(output(cli_out)["drift"]) == Decimal("-20.00")

    def test_missing_account(self, cli, cli_out):
        assert cli.run(["replay-balance", "--account-id", str(uuid4())]) == 1
        assert output(cli_out)["error"] == "NOT_FOUND"


class TestCheckValidity:
    def test_document_as_of(self, cli, cli_out, documents):
        permit = documents.create_document("permits", "Oversize permit", expiry_date=date(2025, 3, 1))
        code = cli.run([
            "check-validity",
            "--kind", "document",
            "--entity-id", str(permit.id),
            "--as-of", "2025-02-20T00:00:00Z",
        ])
        assert code == 0
        data = output(cli_out)
        assert data["is_expired"] is False
        assert data["is_expiring_soon"] is True
        assert data["days_until"] == 9

    def test_unknown_kind_rejected_by_parser(self, cli):
        with pytest.raises(SystemExit):
            cli.run(["check-validity", "--kind", "spaceship", "--entity-id", str(uuid4())])
