"""Full-store backup export and merge/replace import.

The engine works on the Core tables behind the ORM models, reading and
writing rows by their wire (column) names, so it bypasses the repository
rules. Lead rows are reconciled by natural key (board + username) on
merge because row ids are generated per device and mean nothing across
copies of the store. Tasks and events that arrive with a merged lead are
re-pointed at the id the lead is stored under.

Usage:
    async with get_db() as db:
        envelope = await export_backup(db)

    async with get_db() as db:
        result = await import_backup_from_json(db, text, ImportOptions(mode="merge"))

The import runs inside the caller's session, so get_db() commits it as a
whole or rolls every table back.
"""
import json
import logging
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Integer, MetaData, Table, UniqueConstraint, delete, insert, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from db.connection import DB_NAME
from db.exceptions import DestructiveOperationBlockedError, InvalidFormatError
from db.models import BOARDS, Base, now_ms
from schemas.backup import (
    BACKUP_FORMAT,
    BACKUP_VERSION,
    AppInfo,
    BackupEnvelope,
    ImportOptions,
    ImportResult,
    IndexInfo,
    PrimaryKeyInfo,
    TableDump,
    TableImportResult,
)

logger = logging.getLogger(__name__)

APP_NAME = "CRM IGNIS"
PACKAGE_NAME = "ignis-crm"

# Older exports used other field names; first non-null wins
_USERNAME_FIELDS = ("username", "igUsername", "instagramUsername", "handle", "user")
_BOARD_FIELDS = ("boardId", "board", "funnel", "boardName", "pipeline")
_DEFAULT_BOARD = "default"


# ---------------------------------------------------------------------------
# Row and schema helpers
# ---------------------------------------------------------------------------


def _first_present(row: dict, fields: tuple[str, ...], default: Any = None) -> Any:
    for field in fields:
        value = row.get(field)
        if value is not None:
            return value
    return default


def _lower(value: Any) -> str:
    return str(value if value is not None else "").strip().lower()


def lead_natural_key(row: dict) -> str:
    """'<board>::<username>', both lowercased; the username half may be empty."""
    username = _first_present(row, _USERNAME_FIELDS, "")
    board = _first_present(row, _BOARD_FIELDS, _DEFAULT_BOARD)
    return f"{_lower(board)}::{_lower(username)}"


def _is_lead_table(table: Table) -> bool:
    return "lead" in table.name.lower()


def _single_pk(table: Table):
    cols = list(table.primary_key.columns)
    return cols[0] if len(cols) == 1 else None


def _is_auto_key(table: Table) -> bool:
    """True when the store generates the primary key (integer rowid style)."""
    pk = _single_pk(table)
    if pk is None or pk.default is not None:
        return False
    return pk.autoincrement is True or (
        pk.autoincrement == "auto" and isinstance(pk.type, Integer)
    )


def _primary_key_info(table: Table) -> PrimaryKeyInfo:
    names = [c.name for c in table.primary_key.columns]
    key_path = names[0] if len(names) == 1 else names
    return PrimaryKeyInfo(key_path=key_path or None, auto=_is_auto_key(table))


def _key_path(columns) -> Union[str, list[str]]:
    names = [c.name for c in columns]
    return names[0] if len(names) == 1 else names


def _index_info(table: Table) -> list[IndexInfo]:
    infos = [IndexInfo(name=ix.name, key_path=_key_path(ix.columns)) for ix in table.indexes]
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint):
            infos.append(IndexInfo(name=constraint.name, key_path=_key_path(constraint.columns)))
    return sorted(infos, key=lambda i: i.name)


def _row_to_dict(table: Table, mapping) -> dict:
    return {c.name: mapping[c] for c in table.columns}


def _column_default(column) -> Any:
    default = column.default
    if default is None:
        return None
    if default.is_callable:
        return default.arg(None)
    if default.is_scalar:
        return default.arg
    return None


def _to_params(table: Table, row: dict, strip_auto: bool = False) -> dict:
    """Wire-named row -> bind parameters keyed by column key.

    Every column gets a value so a batch shares one parameter set; missing
    fields take the column default. Unknown fields are dropped.
    """
    auto_pk = _single_pk(table) if strip_auto and _is_auto_key(table) else None
    params = {}
    for column in table.columns:
        if column is auto_pk:
            continue
        value = row.get(column.name)
        params[column.key] = value if value is not None else _column_default(column)
    return params


def _has_pk_value(table: Table, row: dict) -> bool:
    cols = list(table.primary_key.columns)
    return bool(cols) and all(row.get(c.name) is not None for c in cols)


def _upsert_stmt(table: Table):
    stmt = sqlite_insert(table)
    return stmt.on_conflict_do_update(
        index_elements=list(table.primary_key.columns),
        set_={c: stmt.excluded[c.key] for c in table.columns if not c.primary_key},
    )


async def _insert_rows(session: AsyncSession, table: Table, rows: list[dict]) -> None:
    if rows:
        await session.execute(insert(table), [_to_params(table, r, strip_auto=True) for r in rows])


async def _upsert_rows(session: AsyncSession, table: Table, rows: list[dict]) -> None:
    if rows:
        await session.execute(_upsert_stmt(table), [_to_params(table, r) for r in rows])


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def _package_version() -> Optional[str]:
    try:
        return version(PACKAGE_NAME)
    except PackageNotFoundError:
        return None


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def export_backup(session: AsyncSession, metadata: Optional[MetaData] = None) -> BackupEnvelope:
    """Snapshot every table: key and index descriptors, count and all rows."""
    metadata = metadata or Base.metadata
    tables = {}
    for table in metadata.sorted_tables:
        result = await session.execute(select(table))
        rows = [_row_to_dict(table, m) for m in result.mappings().all()]
        dump = TableDump(
            primary_key=_primary_key_info(table),
            indexes=_index_info(table),
            count=len(rows),
            rows=rows,
        )
        tables[table.name] = dump.model_dump(by_alias=True)

    envelope = BackupEnvelope(
        format=BACKUP_FORMAT,
        backup_version=BACKUP_VERSION,
        exported_at=_iso_now(),
        app=AppInfo(name=APP_NAME, extension_version=_package_version(), db_name=DB_NAME),
        tables=tables,
    )
    logger.info(
        "Exported backup: %s",
        ", ".join(f"{name}={dump['count']}" for name, dump in tables.items()),
    )
    return envelope


def backup_filename(exported_at: str) -> str:
    """ignis-backup-<timestamp>.json with ':' and '.' as '-', 'T' as '_', no 'Z'."""
    stamp = exported_at.replace(":", "-").replace(".", "-").replace("T", "_", 1).replace("Z", "", 1)
    return f"ignis-backup-{stamp}.json"


async def export_backup_to_file(session: AsyncSession, directory: Union[str, Path]) -> Path:
    envelope = await export_backup(session)
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / backup_filename(envelope.exported_at)
    path.write_text(
        json.dumps(envelope.to_wire(), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    logger.info("Backup written to %s", path)
    return path


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def parse_envelope(data: Any) -> BackupEnvelope:
    """Validate a decoded backup document; raises InvalidFormatError."""
    if not isinstance(data, dict):
        raise InvalidFormatError("backup is not a JSON object")
    if not isinstance(data.get("tables"), dict):
        raise InvalidFormatError("backup has no tables mapping")
    try:
        return BackupEnvelope.model_validate(data)
    except PydanticValidationError as exc:
        raise InvalidFormatError(f"unsupported backup: {exc}") from exc


def _incoming_rows(dump: Any) -> list:
    rows = dump.get("rows") if isinstance(dump, dict) else None
    return rows if isinstance(rows, list) else []


def _prepare_lead_row(row: dict) -> dict:
    """Resolve legacy username/board fields onto the current column names.

    The board is uppercased to its stored form and usernameLower recomputed.
    """
    row = dict(row)
    username = _first_present(row, _USERNAME_FIELDS)
    if username is not None:
        row["username"] = str(username).strip()
        row["usernameLower"] = row["username"].lower()
    board = _first_present(row, _BOARD_FIELDS)
    if board is not None:
        row["board"] = str(board).strip().upper()
    else:
        row.pop("board", None)
    return row


def _has_known_board(row: dict) -> bool:
    return row.get("board") in BOARDS


def _lead_match_keys(row: dict, pk_name: Optional[str]) -> list[tuple]:
    keys = [("natural", lead_natural_key(row))]
    if row.get("workspaceId") is not None and row.get("usernameLower"):
        keys.append(("workspace-user", row["workspaceId"], row["usernameLower"]))
    if pk_name and row.get(pk_name) is not None:
        keys.append(("pk", row[pk_name]))
    return keys


def _merge_lead(target: dict, incoming: dict, pk_name: Optional[str], keep_stage: bool) -> dict:
    merged = {**target, **incoming}

    old_stage, new_stage = target.get("stageId"), incoming.get("stageId")
    if keep_stage and old_stage and new_stage and str(old_stage) != str(new_stage):
        merged["stageId"] = old_stage

    if pk_name:
        if target.get(pk_name) is not None:
            merged[pk_name] = target[pk_name]
        else:
            merged.pop(pk_name, None)

    if incoming.get("createdAt") is None:
        merged["createdAt"] = target.get("createdAt")
    return merged


async def _merge_leads(
    session: AsyncSession,
    table: Table,
    rows: list,
    options: ImportOptions,
    stats: TableImportResult,
) -> dict:
    """Reconcile lead rows by natural key against the stored ones.

    A row matching a stored lead (or a row earlier in the same batch) is
    merged onto it; everything else is added as a fresh lead. Rows whose
    board is not a known board are skipped.

    Returns a map from each incoming lead id to the id the lead is stored
    under, so dependent rows can follow a merged lead.
    """
    pk = _single_pk(table)
    pk_name = pk.name if pk is not None else None
    auto = _is_auto_key(table)

    # match key -> {"row": dict, "stored": bool, "queued": bool}
    slots: dict[tuple, dict] = {}
    existing = await session.execute(select(table))
    for mapping in existing.mappings().all():
        slot = {"row": _row_to_dict(table, mapping), "stored": True, "queued": False}
        for key in _lead_match_keys(slot["row"], pk_name):
            slots.setdefault(key, slot)

    to_update: list[dict] = []
    to_add: list[dict] = []
    id_map: dict = {}
    now = now_ms()

    for raw in rows:
        if not isinstance(raw, dict):
            stats.skipped += 1
            continue
        incoming = _prepare_lead_row(raw)
        natural = lead_natural_key(incoming)
        if not natural.split("::", 1)[1]:
            logger.debug("Skipping %s row without a username", table.name)
            stats.skipped += 1
            continue
        if "board" in incoming and not _has_known_board(incoming):
            logger.warning(
                "Skipping %s row %r with unknown board %r",
                table.name,
                incoming.get("username"),
                incoming.get("board"),
            )
            stats.skipped += 1
            continue

        match_keys = _lead_match_keys(incoming, None if auto else pk_name)
        slot = next((slots[k] for k in match_keys if k in slots), None)

        if slot is None and "board" not in incoming:
            logger.warning(
                "Skipping new %s row %r without a board", table.name, incoming.get("username")
            )
            stats.skipped += 1
            continue

        if slot is None:
            fresh = dict(incoming)
            if auto and pk_name:
                fresh.pop(pk_name, None)
            if fresh.get("createdAt") is None:
                fresh["createdAt"] = now
            for field in ("updatedAt", "lastTouchedAt"):
                if fresh.get(field) is None:
                    fresh[field] = fresh["createdAt"]
            slot = {"row": fresh, "stored": False, "queued": True}
            to_add.append(slot)
            stats.added += 1
        else:
            current_ws, incoming_ws = slot["row"].get("workspaceId"), incoming.get("workspaceId")
            if incoming_ws is not None and current_ws != incoming_ws:
                logger.info(
                    "Lead %r moves from workspace %r to %r on merge",
                    slot["row"].get("username"),
                    current_ws,
                    incoming_ws,
                )
            slot["row"] = _merge_lead(slot["row"], incoming, pk_name, options.keep_existing_lead_stage)
            if slot["stored"] and not slot["queued"]:
                slot["queued"] = True
                to_update.append(slot)
            stats.updated += 1

        # Store-generated ids of new rows are unknown until insert
        if pk_name and raw.get(pk_name) is not None and slot["row"].get(pk_name) is not None:
            id_map[raw[pk_name]] = slot["row"][pk_name]

        for key in _lead_match_keys(slot["row"], pk_name):
            slots.setdefault(key, slot)

    await _upsert_rows(session, table, [s["row"] for s in to_update])
    await _insert_rows(session, table, [s["row"] for s in to_add])
    return id_map


def _follow_lead_ids(rows: list, id_map: dict) -> list:
    """Point leadId of dependent rows at the stored id of their lead."""
    remapped = []
    for row in rows:
        if isinstance(row, dict) and row.get("leadId") in id_map:
            target = id_map[row["leadId"]]
            if target != row["leadId"]:
                row = {**row, "leadId": target}
        remapped.append(row)
    return remapped


async def _merge_generic(
    session: AsyncSession, table: Table, rows: list, stats: TableImportResult
) -> None:
    with_key, without_key = [], []
    for row in rows:
        if not isinstance(row, dict):
            stats.skipped += 1
        elif _has_pk_value(table, row):
            with_key.append(row)
        else:
            without_key.append(row)

    await _upsert_rows(session, table, with_key)
    # Upserts count as updates even when the key was new
    stats.updated += len(with_key)
    await _insert_rows(session, table, without_key)
    stats.added += len(without_key)


async def _replace_table(
    session: AsyncSession, table: Table, rows: list, stats: TableImportResult
) -> None:
    fresh = []
    for row in rows:
        if not isinstance(row, dict):
            stats.skipped += 1
            continue
        if _is_lead_table(table):
            row = _prepare_lead_row(row)
            if not _has_known_board(row):
                logger.warning(
                    "Skipping %s row %r with unknown board %r",
                    table.name,
                    row.get("username"),
                    row.get("board"),
                )
                stats.skipped += 1
                continue
        fresh.append(row)
    await _insert_rows(session, table, fresh)
    stats.added += len(fresh)


async def import_backup(
    session: AsyncSession,
    envelope: Union[BackupEnvelope, dict],
    options: Optional[ImportOptions] = None,
    metadata: Optional[MetaData] = None,
) -> ImportResult:
    """Import a backup into the store within the session's transaction.

    Tables the store does not have are ignored. Replace mode clears every
    imported table first and refuses to run unless confirm_replace is set.
    Raises InvalidFormatError or DestructiveOperationBlockedError before
    any table is touched.
    """
    if not isinstance(envelope, BackupEnvelope):
        envelope = parse_envelope(envelope)
    options = options or ImportOptions()
    metadata = metadata or Base.metadata

    if options.mode == "replace" and not options.confirm_replace:
        raise DestructiveOperationBlockedError(
            "replace import clears existing tables; pass confirm_replace=True"
        )

    # Leads first so dependent rows can be pointed at merged leads
    targets = sorted(
        (t for t in metadata.sorted_tables if t.name in envelope.tables),
        key=lambda t: not _is_lead_table(t),
    )
    ignored = sorted(set(envelope.tables) - {t.name for t in targets})
    if ignored:
        logger.info("Ignoring unknown backup tables: %s", ", ".join(ignored))

    if options.mode == "replace":
        for table in targets:
            await session.execute(delete(table))

    result = ImportResult()
    lead_ids: dict = {}
    for table in targets:
        rows = _incoming_rows(envelope.tables[table.name])
        stats = TableImportResult(name=table.name, incoming=len(rows))
        if options.mode == "replace":
            await _replace_table(session, table, rows, stats)
        elif _is_lead_table(table):
            lead_ids.update(await _merge_leads(session, table, rows, options, stats))
        else:
            await _merge_generic(session, table, _follow_lead_ids(rows, lead_ids), stats)
        result.tables.append(stats)
        logger.info(
            "Imported %s (%s): incoming=%d added=%d updated=%d skipped=%d",
            stats.name,
            options.mode,
            stats.incoming,
            stats.added,
            stats.updated,
            stats.skipped,
        )

    await session.flush()
    return result


async def import_backup_from_json(
    session: AsyncSession, text: str, options: Optional[ImportOptions] = None
) -> ImportResult:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidFormatError(f"backup is not valid JSON: {exc}") from exc
    return await import_backup(session, data, options)


async def import_backup_from_file(
    session: AsyncSession, path: Union[str, Path], options: Optional[ImportOptions] = None
) -> ImportResult:
    text = Path(path).read_text(encoding="utf-8-sig")
    return await import_backup_from_json(session, text, options)
