"""Fleet engine command line interface.

Provides operational tools for:
- Schema creation and catalog seeding
- Permission checks
- Escrow balance replay
- Validity checks

Usage:
    python -m fleet_engine.cli init-db
    python -m fleet_engine.cli seed-catalog
    python -m fleet_engine.cli authorize --user-id X --permission trips.read
    python -m fleet_engine.cli replay-balance --account-id X
    python -m fleet_engine.cli check-validity --kind document --entity-id X

Every command prints one JSON object on stdout.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import datetime
from typing import IO, Any
from uuid import UUID

from sqlalchemy.orm import Session

from fleet_engine.config import get_settings
from fleet_engine.core import CoreConfig, FleetCore
from fleet_engine.database import create_schema, session_scope
from fleet_engine.runtime import as_utc
from fleet_engine.services.catalog import seed_catalog
from fleet_engine.services.validity import EntityKind

SessionScope = Callable[[], AbstractContextManager[Session]]


def parse_datetime(s: str) -> datetime:
    """Parse ISO datetime string."""
    return as_utc(datetime.fromisoformat(s.replace("Z", "+00:00")))


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class FleetCli:
    """Fleet engine command line interface."""

    def __init__(
        self,
        scope: SessionScope = session_scope,
        out: IO[str] | None = None,
        create_schema_fn: Callable[[], None] = create_schema,
    ) -> None:
        self.scope = scope
        self.out = out or sys.stdout
        self.create_schema_fn = create_schema_fn
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m fleet_engine.cli",
            description="Fleet engine operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create missing tables")

        seed = subparsers.add_parser("seed-catalog", help="Create roles, permissions and grants")
        seed.add_argument(
            "--no-default-grants",
            action="store_true",
            help="Only create roles and permissions",
        )

        authorize = subparsers.add_parser("authorize", help="Check a user's permission")
        authorize.add_argument("--user-id", type=parse_uuid, required=True)
        authorize.add_argument("--permission", type=str, required=True)

        replay = subparsers.add_parser(
            "replay-balance",
            help="Recompute an escrow balance from its transaction log",
        )
        replay.add_argument("--account-id", type=parse_uuid, required=True)

        validity = subparsers.add_parser("check-validity", help="Expiry report for an entity")
        validity.add_argument(
            "--kind",
            choices=[k.value for k in EntityKind],
            required=True,
        )
        validity.add_argument("--entity-id", type=parse_uuid, required=True)
        validity.add_argument(
            "--as-of",
            type=parse_datetime,
            help="Evaluate at this instant (ISO format, default now)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "init-db": self._cmd_init_db,
            "seed-catalog": self._cmd_seed_catalog,
            "authorize": self._cmd_authorize,
            "replay-balance": self._cmd_replay_balance,
            "check-validity": self._cmd_check_validity,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _print(self, payload: dict[str, Any]) -> None:
        print(json.dumps(payload, default=str, sort_keys=True), file=self.out)

    def _core(self, session: Session) -> FleetCore:
        return FleetCore(session, config=CoreConfig.from_settings(get_settings()))

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        self.create_schema_fn()
        self._print({"status": "ok"})
        return 0

    def _cmd_seed_catalog(self, args: argparse.Namespace) -> int:
        with self.scope() as session:
            created = seed_catalog(session, with_default_grants=not args.no_default_grants)
        self._print({"status": "ok", "created": created})
        return 0

    def _cmd_authorize(self, args: argparse.Namespace) -> int:
        with self.scope() as session:
            granted = self._core(session).authorize(args.user_id, args.permission)
        self._print({"user_id": args.user_id, "permission": args.permission, "granted": granted})
        return 0

    def _cmd_replay_balance(self, args: argparse.Namespace) -> int:
        with self.scope() as session:
            result = self._core(session).verify_escrow_balance(args.account_id)
        if not result.ok:
            self._print({"error": result.error_code, "detail": str(result.error)})
            return 1
        check = result.value
        self._print({
            "account_id": args.account_id,
            "stored_balance": check.stored,
            "replayed_balance": check.replayed,
            "drift": check.drift,
            "transaction_count": check.transaction_count,
            "ok": check.ok,
        })
        return 0 if check.ok else 2

    def _cmd_check_validity(self, args: argparse.Namespace) -> int:
        with self.scope() as session:
            result = self._core(session).check_validity(args.entity_id, args.kind, as_of=args.as_of)
        if not result.ok:
            self._print({"error": result.error_code, "detail": str(result.error)})
            return 1
        self._print({"entity_kind": args.kind, "entity_id": args.entity_id, **result.value.to_dict()})
        return 0


def main() -> int:
    """CLI entry point."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, stream=sys.stderr)
    cli = FleetCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
