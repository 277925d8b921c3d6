import logging
import sqlite3
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = logging.getLogger("apptracker.database")

MEMORY = ":memory:"


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path: Path | str = MEMORY) -> Engine:
    if str(db_path) == MEMORY:
        # One shared connection, otherwise every checkout sees an empty database.
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False},
        )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def applications_table_sql(statuses: list[str]) -> str:
    allowed = ", ".join(_quote(s) for s in statuses)
    return f"""\
CREATE TABLE applications (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    company    TEXT NOT NULL,
    role       TEXT,
    status     TEXT NOT NULL DEFAULT {_quote(statuses[0])}
               CHECK(status IN ({allowed})),
    url        TEXT,
    notes      TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ','now'))
)"""


CONTACTS_TABLE_SQL = """\
CREATE TABLE contacts (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    application_id INTEGER NOT NULL REFERENCES applications(id) ON DELETE CASCADE,
    name           TEXT NOT NULL,
    email          TEXT,
    phone          TEXT,
    title          TEXT,
    linkedin       TEXT,
    created_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ','now'))
)"""

ACTIVITIES_TABLE_SQL = """\
CREATE TABLE activities (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    application_id INTEGER NOT NULL REFERENCES applications(id) ON DELETE CASCADE,
    type           TEXT NOT NULL,
    date           TEXT,
    notes          TEXT,
    created_at     TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ','now'))
)"""

TAGS_TABLE_SQL = """\
CREATE TABLE tags (
    id   INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
)"""

APPLICATION_TAGS_TABLE_SQL = """\
CREATE TABLE application_tags (
    application_id INTEGER NOT NULL REFERENCES applications(id) ON DELETE CASCADE,
    tag_id         INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (application_id, tag_id)
)"""

# Tables whose foreign keys point at applications, with the parents they may reference.
DEPENDENT_TABLES = {
    "contacts": (CONTACTS_TABLE_SQL, {"applications"}),
    "activities": (ACTIVITIES_TABLE_SQL, {"applications"}),
    "application_tags": (APPLICATION_TAGS_TABLE_SQL, {"applications", "tags"}),
}

INDEXES_SQL = """\
CREATE INDEX IF NOT EXISTS idx_applications_created ON applications(created_at);
CREATE INDEX IF NOT EXISTS idx_applications_status ON applications(status);
CREATE INDEX IF NOT EXISTS idx_contacts_application ON contacts(application_id);
CREATE INDEX IF NOT EXISTS idx_activities_application ON activities(application_id);
CREATE INDEX IF NOT EXISTS idx_activities_date ON activities(date);
CREATE INDEX IF NOT EXISTS idx_application_tags_tag ON application_tags(tag_id);
"""


def _if_not_exists(create_sql: str) -> str:
    return create_sql.replace("CREATE TABLE ", "CREATE TABLE IF NOT EXISTS ", 1)


def build_schema_sql(statuses: list[str]) -> str:
    tables = [
        applications_table_sql(statuses),
        CONTACTS_TABLE_SQL,
        ACTIVITIES_TABLE_SQL,
        TAGS_TABLE_SQL,
        APPLICATION_TAGS_TABLE_SQL,
    ]
    return ";\n\n".join(_if_not_exists(sql) for sql in tables) + ";\n\n" + INDEXES_SQL


def init_db(engine: Engine, statuses: list[str]):
    """Bring the database behind ``engine`` to the current schema and vocabulary."""
    from apptracker.migrations import migrate

    raw = engine.raw_connection()
    try:
        conn: sqlite3.Connection = raw.driver_connection
        migrate(conn, statuses)
    finally:
        raw.close()
