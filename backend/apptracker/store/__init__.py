import asyncio
import logging
import sqlite3
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from apptracker.config import settings
from apptracker.database import MEMORY, get_engine, init_db
from apptracker.errors import StorageError
from apptracker.statuses import statuses_for
from apptracker.store.base import Store
from apptracker.store.json_store import JsonStore, empty_document, load_document
from apptracker.store.sql_store import SqlStore
from apptracker.utils.filesystem import ensure_parent_dir

logger = logging.getLogger("apptracker.store")

BACKENDS = ("sqlite", "json")

__all__ = ["MEMORY", "BACKENDS", "Store", "SqlStore", "JsonStore", "open_store"]


def _resolve_backend(path: Path | str | None, backend: str | None) -> str:
    if backend is None:
        if path is not None and str(path) != MEMORY and str(path).endswith(".json"):
            backend = "json"
        elif path is not None and str(path) != MEMORY:
            backend = "sqlite"
        else:
            backend = settings.backend
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend '{backend}'. Known: {', '.join(BACKENDS)}")
    return backend


def _open_sqlite(path: Path | None, statuses: list[str], timeout: float | None) -> SqlStore:
    engine = get_engine(path or MEMORY)
    try:
        init_db(engine, statuses)
    except (SQLAlchemyError, sqlite3.Error) as exc:
        engine.dispose()
        raise StorageError(f"Could not open database: {exc}") from exc
    except StorageError:
        engine.dispose()
        raise
    return SqlStore(engine, statuses, timeout)


def _open_json(path: Path | None, statuses: list[str], timeout: float | None) -> JsonStore:
    document = load_document(path, statuses) if path is not None else empty_document()
    return JsonStore(path, statuses, timeout, document)


def _open(path, backend: str, statuses: list[str], timeout: float | None) -> Store:
    target = None if str(path) == MEMORY else ensure_parent_dir(Path(path))
    opener = _open_json if backend == "json" else _open_sqlite
    store = opener(target, statuses, timeout)
    logger.info("Opened %s store at %s", backend, target or MEMORY)
    return store


async def open_store(
    path: Path | str | None = None,
    backend: str | None = None,
    locale: str | None = None,
    statuses: list[str] | None = None,
    timeout: float | None = None,
) -> Store:
    """Open (creating if needed) a store and bring it up to date.

    ``path`` is a file path or ``":memory:"``; when omitted the configured
    data directory is used. The backend follows ``backend``, else the file
    suffix (``.json`` selects the document store), else settings. The status
    vocabulary is ``statuses`` if given, else the one for ``locale``.
    Migrations finish before the store is returned.
    """
    backend = _resolve_backend(path, backend)
    if path is None:
        path = settings.json_path if backend == "json" else settings.db_path
    active = list(statuses) if statuses else statuses_for(locale or settings.locale)
    return await asyncio.to_thread(_open, path, backend, active, timeout)
