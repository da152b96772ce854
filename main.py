from __future__ import annotations

import argparse
import asyncio
import json
import sys

from riskledger.service.bootstrap import build_app
from riskledger.service.coordinator import PersistenceCoordinator
from riskledger.utils.config import get_settings
from riskledger.utils.exceptions import RiskLedgerError
from riskledger.utils.logger import setup_logging


async def _status(app: PersistenceCoordinator, args: argparse.Namespace) -> int:
    state = app.state
    print(await app.storage_status())
    print(f"Recovery: {state.recovery_status.value}")
    print(json.dumps(app.get_trading_statistics(), indent=2))
    if args.verbose:
        print(json.dumps(await app.backups.check_startup_data(), indent=2))
    if state.error_message:
        print(f"\n⚠️  {state.error_message}")
    return 0


async def _recover(app: PersistenceCoordinator, args: argparse.Namespace) -> int:
    outcome = await app.recover(merge=args.merge)
    print(outcome.message)
    return 0 if outcome.success else 1


async def _export(app: PersistenceCoordinator, args: argparse.Namespace) -> int:
    outcome = await app.export_data(args.path)
    print(outcome.message)
    return 0


async def _import(app: PersistenceCoordinator, args: argparse.Namespace) -> int:
    outcome = await app.import_data(args.path)
    print(outcome.message)
    return 0 if outcome.success else 1


async def _preview(app: PersistenceCoordinator, args: argparse.Namespace) -> int:
    preview = await app.preview_import(args.path)
    print(json.dumps(preview.to_dict(), indent=2))
    return 0 if preview.valid else 1


async def _run(args: argparse.Namespace) -> int:
    app = build_app(get_settings())
    try:
        await app.initialize()
        return await args.func(app, args)
    except RiskLedgerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    finally:
        await app.close()


def main() -> int:
    parser = argparse.ArgumentParser(prog="riskledger", description="Risk ledger storage operations")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    sub = parser.add_subparsers(dest="command", required=True)

    status_p = sub.add_parser("status", help="Show storage tiers and risk statistics")
    status_p.add_argument("--verbose", "-v", action="store_true", help="Dump the per-tier startup report")
    status_p.set_defaults(func=_status)

    recover_p = sub.add_parser("recover", help="Restore state from the backup tiers")
    recover_p.add_argument("--merge", action="store_true", help="Merge trades from every tier")
    recover_p.set_defaults(func=_recover)

    export_p = sub.add_parser("export", help="Write a backup file")
    export_p.add_argument("path", nargs="?", default=None)
    export_p.set_defaults(func=_export)

    import_p = sub.add_parser("import", help="Replace all data with a backup file")
    import_p.add_argument("path")
    import_p.set_defaults(func=_import)

    preview_p = sub.add_parser("preview", help="Validate a backup file and summarize its contents")
    preview_p.add_argument("path")
    preview_p.set_defaults(func=_preview)

    args = parser.parse_args()
    setup_logging(level=args.log_level, console=True)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
