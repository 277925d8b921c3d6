"""Idempotent schema upgrades for the SQLite store.

Three repairs run every time a database is opened:

* the status vocabulary baked into the ``applications`` CHECK constraint is
  rewritten to the active vocabulary, remapping stored statuses on the way;
* dependent tables whose foreign keys still point at a renamed intermediate
  table (left behind by older releases) are rebuilt against the live tables;
* tables created before ids became AUTOINCREMENT are rebuilt so deleted ids
  are never handed out again.

All of them go through :func:`rebuild_table`. Running :func:`migrate` on an up to
date database changes nothing.
"""
import logging
import re
import sqlite3
from typing import Callable

from apptracker.database import (
    DEPENDENT_TABLES,
    TAGS_TABLE_SQL,
    applications_table_sql,
    build_schema_sql,
)
from apptracker.errors import StorageError
from apptracker.statuses import is_mis_encoded, map_status

logger = logging.getLogger("apptracker.migrations")

REBUILD_SUFFIX = "__rebuild"

_STATUS_CHECK = re.compile(r"CHECK\s*\(\s*status\s+IN\s*\((?P<values>[^)]*)\)", re.IGNORECASE)
_LITERAL = re.compile(r"'((?:[^']|'')*)'")
_AUTOINCREMENT = re.compile(r"\bAUTOINCREMENT\b", re.IGNORECASE)

RowTransform = Callable[[dict], dict]


def _table_sql(conn: sqlite3.Connection, table: str) -> str | None:
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    return row[0] if row else None


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    return _table_sql(conn, table) is not None


def _columns(conn: sqlite3.Connection, table: str) -> list[str]:
    return [row[1] for row in conn.execute(f'PRAGMA table_info("{table}")')]


def _pragma(conn: sqlite3.Connection, name: str) -> bool:
    return bool(conn.execute(f"PRAGMA {name}").fetchone()[0])


def _sequence(conn: sqlite3.Connection, table: str) -> int | None:
    if not _table_exists(conn, "sqlite_sequence"):
        return None
    row = conn.execute("SELECT seq FROM sqlite_sequence WHERE name=?", (table,)).fetchone()
    return row[0] if row else None


def _restore_sequence(conn: sqlite3.Connection, table: str, seq: int):
    if not _table_exists(conn, "sqlite_sequence"):
        return
    updated = conn.execute(
        "UPDATE sqlite_sequence SET seq = MAX(seq, ?) WHERE name=?", (seq, table)
    ).rowcount
    if not updated:
        conn.execute("INSERT INTO sqlite_sequence(name, seq) VALUES (?, ?)", (table, seq))


def rebuild_table(
    conn: sqlite3.Connection,
    table: str,
    create_sql: str,
    transform: RowTransform | None = None,
):
    """Recreate ``table`` from ``create_sql`` keeping its rows.

    Rename aside, create, copy, drop, all in one transaction with foreign key
    enforcement switched off. Columns missing on either side are skipped. On
    failure the transaction is rolled back, the original table is back under
    its own name and StorageError is raised.
    """
    aside = f"{table}{REBUILD_SUFFIX}"
    previous_isolation = conn.isolation_level
    conn.isolation_level = None
    foreign_keys = _pragma(conn, "foreign_keys")
    legacy_alter = _pragma(conn, "legacy_alter_table")
    conn.execute("PRAGMA foreign_keys=OFF")
    # Keep child REFERENCES clauses pointing at the original name during the rename.
    conn.execute("PRAGMA legacy_alter_table=ON")
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            seq = _sequence(conn, table)
            conn.execute(f'ALTER TABLE "{table}" RENAME TO "{aside}"')
            conn.execute(create_sql)
            kept = set(_columns(conn, aside))
            columns = [c for c in _columns(conn, table) if c in kept]
            column_list = ", ".join(f'"{c}"' for c in columns)
            rows = [
                dict(zip(columns, row))
                for row in conn.execute(f'SELECT {column_list} FROM "{aside}" ORDER BY rowid')
            ]
            if transform is not None:
                rows = [transform(row) for row in rows]
            placeholders = ", ".join("?" for _ in columns)
            conn.executemany(
                f'INSERT INTO "{table}" ({column_list}) VALUES ({placeholders})',
                [tuple(row[c] for c in columns) for row in rows],
            )
            conn.execute(f'DROP TABLE "{aside}"')
            # Dropping the aside table takes its AUTOINCREMENT high-water mark along.
            if seq is not None and _AUTOINCREMENT.search(create_sql):
                _restore_sequence(conn, table, seq)
            conn.execute("COMMIT")
        except Exception as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            if _table_exists(conn, aside) and not _table_exists(conn, table):
                conn.execute(f'ALTER TABLE "{aside}" RENAME TO "{table}"')
            raise StorageError(f"Rebuilding table '{table}' failed: {exc}") from exc
    except sqlite3.Error as exc:
        raise StorageError(f"Rebuilding table '{table}' failed: {exc}") from exc
    finally:
        conn.execute(f"PRAGMA legacy_alter_table={'ON' if legacy_alter else 'OFF'}")
        conn.execute(f"PRAGMA foreign_keys={'ON' if foreign_keys else 'OFF'}")
        conn.isolation_level = previous_isolation


def stored_statuses(conn: sqlite3.Connection) -> list[str] | None:
    """Status literals of the stored ``applications`` CHECK constraint, if any."""
    sql = _table_sql(conn, "applications")
    if sql is None:
        return None
    match = _STATUS_CHECK.search(sql)
    if match is None:
        return None
    return [value.replace("''", "'") for value in _LITERAL.findall(match.group("values"))]


def migrate_statuses(conn: sqlite3.Connection, statuses: list[str]) -> bool:
    stored = stored_statuses(conn)
    if stored is None or stored == list(statuses):
        return False

    if any(is_mis_encoded(value) for value in stored):
        logger.info("Repairing mis-encoded status labels: %s", stored)

    def remap(row: dict) -> dict:
        row["status"] = map_status(row["status"], statuses)
        return row

    rebuild_table(conn, "applications", applications_table_sql(statuses), remap)
    logger.info("Migrated application statuses to: %s", ", ".join(statuses))
    return True


def stale_foreign_keys(conn: sqlite3.Connection) -> dict[str, set[str]]:
    """Dependent tables whose foreign keys reference something other than a live parent."""
    stale = {}
    for table, (_, parents) in DEPENDENT_TABLES.items():
        if not _table_exists(conn, table):
            continue
        targets = {row[2] for row in conn.execute(f'PRAGMA foreign_key_list("{table}")')}
        if not targets <= parents:
            stale[table] = targets - parents
    return stale


def repair_foreign_keys(conn: sqlite3.Connection) -> list[str]:
    repaired = []
    for table in stale_foreign_keys(conn):
        create_sql, _ = DEPENDENT_TABLES[table]
        rebuild_table(conn, table, create_sql)
        repaired.append(table)
    return repaired


def upgrade_autoincrement(conn: sqlite3.Connection, statuses: list[str]) -> list[str]:
    tables = {
        "applications": applications_table_sql(statuses),
        "tags": TAGS_TABLE_SQL,
        **{table: create_sql for table, (create_sql, _) in DEPENDENT_TABLES.items()},
    }
    upgraded = []
    for table, create_sql in tables.items():
        sql = _table_sql(conn, table)
        if sql is None or not _AUTOINCREMENT.search(create_sql) or _AUTOINCREMENT.search(sql):
            continue
        rebuild_table(conn, table, create_sql)
        upgraded.append(table)
    return upgraded


def _apply_schema(conn: sqlite3.Connection, statuses: list[str]):
    try:
        conn.executescript(build_schema_sql(statuses))
    except sqlite3.Error as exc:
        raise StorageError(f"Could not apply schema: {exc}") from exc


def migrate(conn: sqlite3.Connection, statuses: list[str]):
    migrate_statuses(conn, statuses)
    _apply_schema(conn, statuses)

    # The applications table is consistent from here on; later failures only warn.
    rebuilt = []
    try:
        repaired = repair_foreign_keys(conn)
    except StorageError as exc:
        logger.warning("Foreign key repair failed: %s", exc)
    else:
        if repaired:
            logger.info("Repaired foreign keys on: %s", ", ".join(repaired))
        rebuilt += repaired
    try:
        upgraded = upgrade_autoincrement(conn, statuses)
    except StorageError as exc:
        logger.warning("AUTOINCREMENT upgrade failed: %s", exc)
    else:
        if upgraded:
            logger.info("Switched to AUTOINCREMENT ids on: %s", ", ".join(upgraded))
        rebuilt += upgraded
    if rebuilt:
        _apply_schema(conn, statuses)
