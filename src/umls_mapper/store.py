"""
Keeps the persisted MRCONSO table in step with the reference file.

The table is named after the file's SHA-256, so a new release always lands
in a new table. A table is accepted as current only when its row count
equals the file's; anything else is rebuilt from scratch:

    create staging -> batched inserts -> indexes -> drop old table + rename

Only the final rename gives the table its real name, so an interrupted
build can never be picked up as current on the next run. Until then the
old table stays readable.
"""

from __future__ import annotations

import enum
import logging
import re
import threading
import uuid
from typing import Dict, List, Optional

from sqlalchemy import Engine, Index, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from tqdm import tqdm

from .config import Settings, get_settings
from .db import concept_table, has_table, scoped_connection
from .errors import StoreError
from .loader import RowSource

logger = logging.getLogger(__name__)

# Columns used for equality lookups
INDEXED_COLUMNS = ["SAB", "CODE"]

# Hex digits of the fingerprint kept in the table name
FINGERPRINT_CHARS = 32
STAGING_SUFFIX = "_stg"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_table_locks: Dict[str, threading.Lock] = {}
_table_locks_guard = threading.Lock()


class StoreStatus(enum.Enum):
    CURRENT = "current"
    ABSENT = "absent"
    STALE = "stale"


def table_name(prefix: str, fingerprint: str) -> str:
    """`{prefix}_{fingerprint[:32]}`, e.g. MRCONSO_3f5a..."""
    name = f"{prefix}_{fingerprint[:FINGERPRINT_CHARS]}"
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Not a usable table name: {name!r}")
    return name


def index_name(table: str, column: str, token: str) -> str:
    # index names share one namespace per schema, and the old table keeps
    # its indexes until the rename, so every build gets its own token
    return f"IX_{table}_{column}_{token}"


def table_lock(name: str) -> threading.Lock:
    """One lock per table name, shared by every synchronizer in the process."""
    with _table_locks_guard:
        return _table_locks.setdefault(name, threading.Lock())


class StoreSynchronizer:
    def __init__(
        self,
        engine: Engine,
        row_source: RowSource,
        table: str,
        settings: Optional[Settings] = None,
    ):
        self.engine = engine
        self.row_source = row_source
        self.table = table
        self.staging_table = f"{table}{STAGING_SUFFIX}"
        self.settings = settings or get_settings()
        self.rebuilds = 0

        limit = engine.dialect.max_identifier_length
        longest = max(
            [self.staging_table] + [index_name(table, c, "0" * 8) for c in INDEXED_COLUMNS],
            key=len,
        )
        if limit and len(longest) > limit:
            raise ValueError(
                f"Identifier {longest!r} is {len(longest)} characters; "
                f"{engine.dialect.name} allows {limit}. Use a shorter table prefix."
            )

    def row_count(self) -> Optional[int]:
        """Rows currently in the table, or None if it does not exist."""
        with scoped_connection(self.engine, self.table, "count") as conn:
            if not has_table(conn, self.table):
                return None
            t = concept_table(self.table, self.row_source.columns)
            return conn.execute(select(func.count()).select_from(t)).scalar_one()

    def status(self) -> StoreStatus:
        present = self.row_count()
        if present is None:
            return StoreStatus.ABSENT
        if present == self.row_source.row_count():
            return StoreStatus.CURRENT
        return StoreStatus.STALE

    def ensure_store(self) -> StoreStatus:
        """
        Make sure the table is current, rebuilding it if needed.

        Returns:
            The status observed before any rebuild.
        """
        with table_lock(self.table):
            status = self.status()
            if status is StoreStatus.CURRENT:
                logger.info(f"Concept table {self.table} has {self.row_source.row_count()} rows.")
                return status

            logger.info(
                f"Concept table {self.table} is {status.value}; regenerating "
                f"from {getattr(self.row_source, 'filename', 'row source')}."
            )
            self._rebuild()
            return status

    def _rebuild(self) -> None:
        try:
            loaded = self._load()
        except Exception:
            self._drop_staging()
            raise

        self.rebuilds += 1
        logger.info(f"Concept table {self.table} regenerated with {loaded} rows.")

    def _log_flush(self, count: int, expected: int) -> None:
        percentage = count / expected * 100 if expected else 100.0
        logger.info(f"Batched {count} rows out of {expected} ({percentage:.2f}%), committed.")

    def _load(self) -> int:
        columns = list(self.row_source.columns)
        expected = self.row_source.row_count()
        batch_size = self.settings.insert_batch_size
        target = concept_table(self.table, columns)
        staging = concept_table(self.staging_table, columns)
        insert = staging.insert()
        token = uuid.uuid4().hex[:8]

        with scoped_connection(self.engine, self.table, "create") as conn:
            staging.drop(conn, checkfirst=True)
            staging.create(conn)
            conn.commit()

        count = 0
        batch: List[Dict[str, str]] = []
        with scoped_connection(self.engine, self.table, "insert") as conn:
            rows = tqdm(
                self.row_source.rows(),
                total=expected,
                unit="row",
                desc=self.table[:24],
                disable=not self.settings.show_progress,
            )
            for row in rows:
                batch.append(dict(zip(columns, row)))
                count += 1
                if count % batch_size == 0:
                    conn.execute(insert, batch)
                    conn.commit()
                    batch = []
                    self._log_flush(count, expected)
            if batch:
                conn.execute(insert, batch)
                conn.commit()
                self._log_flush(count, expected)

        if count != expected:
            raise StoreError(self.table, "verify", f"loaded {count} rows, expected {expected}")

        with scoped_connection(self.engine, self.table, "index") as conn:
            for col in INDEXED_COLUMNS:
                Index(index_name(self.table, col, token), staging.c[col]).create(conn)
            conn.commit()

        with scoped_connection(self.engine, self.table, "rename") as conn:
            quote = conn.dialect.identifier_preparer.quote
            target.drop(conn, checkfirst=True)
            conn.execute(text(f"ALTER TABLE {quote(self.staging_table)} RENAME TO {quote(self.table)}"))
            conn.commit()

        return count

    def _drop_staging(self) -> None:
        """Best-effort cleanup after a failed build; the original error wins."""
        try:
            with self.engine.connect() as conn:
                concept_table(self.staging_table, self.row_source.columns).drop(conn, checkfirst=True)
                conn.commit()
        except SQLAlchemyError as exc:
            logger.warning(f"Could not drop {self.staging_table} after failed build: {exc}")
