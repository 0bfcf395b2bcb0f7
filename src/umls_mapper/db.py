"""
Database plumbing shared by the store synchronizer and the query engine.

- Engine creation from settings (SQLAlchemy; any backend it supports).
- The MRCONSO table definition, bound to a per-file table name.
- Scoped connections that always close and turn backend errors into StoreError.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from sqlalchemy import Column, Engine, MetaData, Table, Text, create_engine, inspect
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, get_settings
from .errors import StoreError


def create_store_engine(settings: Optional[Settings] = None) -> Engine:
    """Create the engine for `settings.database_url` (default settings if omitted)."""
    settings = settings or get_settings()
    url = make_url(settings.database_url)

    # File-backed SQLite needs its directory to exist
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        parent = os.path.dirname(os.path.abspath(url.database))
        os.makedirs(parent, exist_ok=True)

    return create_engine(url, pool_pre_ping=True)


def concept_table(name: str, columns: Sequence[str], metadata: Optional[MetaData] = None) -> Table:
    """All columns are TEXT; the reference file is carried through verbatim."""
    metadata = metadata if metadata is not None else MetaData()
    return Table(name, metadata, *[Column(c, Text) for c in columns])


def has_table(conn: Connection, name: str) -> bool:
    return inspect(conn).has_table(name)


@contextmanager
def scoped_connection(engine: Engine, table: str, intent: str) -> Iterator[Connection]:
    """
    Check a connection out of the pool for one unit of work.

    The connection is returned on every exit path. Backend failures surface as
    StoreError naming the table and the operation; nothing is retried.
    """
    try:
        with engine.connect() as conn:
            yield conn
    except SQLAlchemyError as exc:
        raise StoreError(table, intent, str(exc)) from exc
