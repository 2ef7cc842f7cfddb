"""Operator commands for the Ignis CRM local store.

Usage:
  # Create or upgrade the store schema
  python scripts/ignis_backup.py migrate

  # Write a full backup into a directory
  python scripts/ignis_backup.py export --out ./backups

  # Merge a backup into the store (existing lead stages are kept)
  python scripts/ignis_backup.py import ./backups/ignis-backup-2026-01-05_12-00-00-000.json

  # Wipe the imported tables and load the backup instead
  python scripts/ignis_backup.py import FILE --mode replace --confirm-replace

The store location comes from DATABASE_URL or IGNIS_DATA_DIR/IGNIS_PROFILE.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Resolve project root so imports work when run from any cwd
_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_ROOT))

from db.backup import export_backup_to_file, import_backup_from_file
from db.connection import dispose_engine, get_db, init_db
from db.exceptions import CrmError
from schemas.backup import ImportOptions

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def run_migrate() -> None:
    try:
        await init_db()
    finally:
        await dispose_engine()


async def run_export(out_dir: str) -> Path:
    try:
        await init_db()
        async with get_db() as session:
            path = await export_backup_to_file(session, out_dir)
    finally:
        await dispose_engine()
    print(path)
    return path


async def run_import(path: str, mode: str, confirm_replace: bool, move_stages: bool) -> None:
    options = ImportOptions(
        mode=mode,
        confirm_replace=confirm_replace,
        keep_existing_lead_stage=not move_stages,
    )
    try:
        await init_db()
        async with get_db() as session:
            result = await import_backup_from_file(session, path, options)
    finally:
        await dispose_engine()

    print(f"{'table':<14} {'incoming':>8} {'added':>6} {'updated':>8} {'skipped':>8}")
    for t in result.tables:
        print(f"{t.name:<14} {t.incoming:>8} {t.added:>6} {t.updated:>8} {t.skipped:>8}")


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ignis CRM store maintenance: migrations, backup export and import"
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("migrate", help="Create or upgrade the store schema")

    export = sub.add_parser("export", help="Write a full backup file")
    export.add_argument("--out", default=".", help="Directory for the backup file")

    imp = sub.add_parser("import", help="Import a backup file")
    imp.add_argument("file", help="Path to an ignis-backup-*.json file")
    imp.add_argument("--mode", choices=["merge", "replace"], default="merge")
    imp.add_argument(
        "--confirm-replace",
        action="store_true",
        help="Required with --mode replace; existing rows in imported tables are deleted",
    )
    imp.add_argument(
        "--move-stages",
        action="store_true",
        help="On merge, let the backup move existing leads to its stage",
    )
    return parser


if __name__ == "__main__":
    parser = _build_arg_parser()
    args = parser.parse_args()

    try:
        if args.command == "migrate":
            asyncio.run(run_migrate())

        elif args.command == "export":
            asyncio.run(run_export(args.out))

        elif args.command == "import":
            asyncio.run(run_import(args.file, args.mode, args.confirm_replace, args.move_stages))

        else:
            parser.print_help()
            sys.exit(1)
    except CrmError as exc:
        logger.error("%s", exc)
        sys.exit(2)
