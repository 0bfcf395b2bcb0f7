from __future__ import annotations

import logging

import pytest
from sqlalchemy import inspect, text

from umls_mapper.errors import MalformedRowError, StoreError
from umls_mapper.loader import RRFFile
from umls_mapper.store import (
    INDEXED_COLUMNS,
    STAGING_SUFFIX,
    StoreStatus,
    StoreSynchronizer,
    index_name,
    table_name,
)

from rrf_helpers import SAMPLE_ROWS, mrconso_line, write_mrconso


def _sync(engine, rrf, settings):
    return StoreSynchronizer(engine, rrf, table_name("MRCONSO", rrf.fingerprint()), settings)


def test_first_sync_builds_second_is_noop(engine, mrconso, settings):
    rrf = RRFFile(mrconso)

    first = _sync(engine, rrf, settings)
    assert first.status() is StoreStatus.ABSENT
    assert first.ensure_store() is StoreStatus.ABSENT
    assert first.rebuilds == 1
    assert first.row_count() == rrf.row_count()

    second = _sync(engine, rrf, settings)
    assert second.ensure_store() is StoreStatus.CURRENT
    assert second.rebuilds == 0
    assert second.row_count() == rrf.row_count()


def test_table_is_indexed_and_staging_is_gone(engine, mrconso, settings):
    sync = _sync(engine, RRFFile(mrconso), settings)
    sync.ensure_store()

    insp = inspect(engine)
    assert insp.has_table(sync.table)
    assert not insp.has_table(sync.staging_table)
    indexed = {tuple(ix["column_names"]) for ix in insp.get_indexes(sync.table)}
    assert ("SAB",) in indexed
    assert ("CODE",) in indexed


def test_row_count_mismatch_is_stale_and_rebuilt(engine, mrconso, settings):
    rrf = RRFFile(mrconso)
    sync = _sync(engine, rrf, settings)
    sync.ensure_store()

    with engine.begin() as conn:
        conn.execute(text(f'DELETE FROM "{sync.table}" WHERE "CODE" = \'X1\''))

    assert sync.status() is StoreStatus.STALE
    assert sync.ensure_store() is StoreStatus.STALE
    assert sync.rebuilds == 2
    assert sync.status() is StoreStatus.CURRENT


def test_batch_size_larger_than_file(engine, mrconso, settings):
    settings.insert_batch_size = 1000
    sync = _sync(engine, RRFFile(mrconso), settings)
    sync.ensure_store()

    assert sync.row_count() == len(SAMPLE_ROWS)


def test_malformed_row_aborts_build(engine, tmp_path, settings):
    path = tmp_path / "MRCONSO.RRF"
    good = [mrconso_line(*r) for r in SAMPLE_ROWS]
    path.write_text("\n".join(good[:3] + ["C9|broken|"] + good[3:]) + "\n", encoding="utf-8")
    rrf = RRFFile(str(path))
    sync = _sync(engine, rrf, settings)

    with pytest.raises(MalformedRowError):
        sync.ensure_store()

    insp = inspect(engine)
    assert not insp.has_table(sync.table)
    assert not insp.has_table(sync.staging_table)
    assert sync.status() is StoreStatus.ABSENT


def test_new_file_version_gets_its_own_table(engine, tmp_path, settings):
    old = RRFFile(write_mrconso(tmp_path / "old.RRF", SAMPLE_ROWS[:2]))
    new = RRFFile(write_mrconso(tmp_path / "new.RRF", SAMPLE_ROWS))

    old_sync = _sync(engine, old, settings)
    new_sync = _sync(engine, new, settings)
    old_sync.ensure_store()
    new_sync.ensure_store()

    assert old_sync.table != new_sync.table
    assert old_sync.row_count() == 2
    assert new_sync.row_count() == len(SAMPLE_ROWS)


def test_table_name_rejects_bad_identifiers():
    assert table_name("MRCONSO", "abc123") == "MRCONSO_abc123"
    with pytest.raises(ValueError):
        table_name("MRCONSO; DROP TABLE x", "abc")


class _ShortRowSource:
    """Declares one row more than it yields."""

    def __init__(self, rrf):
        self.rrf = rrf
        self.columns = rrf.columns

    def row_count(self):
        return self.rrf.row_count() + 1

    def rows(self):
        return self.rrf.rows()

    def fingerprint(self):
        return self.rrf.fingerprint()


class _WatchingRowSource(_ShortRowSource):
    """Records whether the target table is still readable when loading starts."""

    def __init__(self, rrf, engine, table):
        super().__init__(rrf)
        self.engine = engine
        self.table = table
        self.target_seen_during_load = None

    def row_count(self):
        return self.rrf.row_count()

    def rows(self):
        for i, row in enumerate(self.rrf.rows()):
            if i == 0:
                self.target_seen_during_load = inspect(self.engine).has_table(self.table)
            yield row


def test_count_mismatch_fails_before_rename(engine, mrconso, settings):
    src = _ShortRowSource(RRFFile(mrconso))
    sync = _sync(engine, src, settings)

    with pytest.raises(StoreError) as err:
        sync.ensure_store()

    assert err.value.intent == "verify"
    insp = inspect(engine)
    assert not insp.has_table(sync.table)
    assert not insp.has_table(sync.staging_table)


def test_whitespace_line_does_not_break_build(engine, tmp_path, mrconso, settings):
    path = tmp_path / "nbsp.RRF"
    path.write_text(open(mrconso, encoding="utf-8").read() + " \n", encoding="utf-8")
    sync = _sync(engine, RRFFile(str(path)), settings)

    sync.ensure_store()
    assert sync.row_count() == len(SAMPLE_ROWS)
    assert sync.status() is StoreStatus.CURRENT


def test_stale_table_stays_readable_while_rebuilding(engine, mrconso, settings):
    rrf = RRFFile(mrconso)
    sync = _sync(engine, rrf, settings)
    sync.ensure_store()
    with engine.begin() as conn:
        conn.execute(text(f'DELETE FROM "{sync.table}" WHERE "CODE" = \'X1\''))

    watcher = _WatchingRowSource(rrf, engine, sync.table)
    rebuild = _sync(engine, watcher, settings)
    assert rebuild.ensure_store() is StoreStatus.STALE

    assert watcher.target_seen_during_load is True
    assert rebuild.row_count() == len(SAMPLE_ROWS)
    indexed = {tuple(ix["column_names"]) for ix in inspect(engine).get_indexes(sync.table)}
    assert indexed == {("SAB",), ("CODE",)}


def test_every_flush_logs_progress(engine, mrconso, settings, caplog):
    caplog.set_level(logging.INFO, logger="umls_mapper.store")
    _sync(engine, RRFFile(mrconso), settings).ensure_store()

    flushes = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Batched")]
    # batch size 2 over 7 rows: 2, 4, 6 and the remainder
    assert len(flushes) == 4
    assert flushes[-1].startswith(f"Batched {len(SAMPLE_ROWS)} rows out of {len(SAMPLE_ROWS)} (100.00%)")


def test_names_fit_postgres_and_mysql_limits(mrconso):
    name = table_name("MRCONSO", RRFFile(mrconso).fingerprint())
    longest = max(
        [name + STAGING_SUFFIX] + [index_name(name, c, "abcdef12") for c in INDEXED_COLUMNS],
        key=len,
    )

    assert len(name) == len("MRCONSO_") + 32
    assert len(longest) <= 63


def test_synchronizer_rejects_names_over_dialect_limit(engine, mrconso, settings, monkeypatch):
    monkeypatch.setattr(engine.dialect, "max_identifier_length", 63)
    rrf = RRFFile(mrconso)

    with pytest.raises(ValueError):
        StoreSynchronizer(engine, rrf, table_name("MRCONSO_RELEASE_2024AB_FULL", rrf.fingerprint()), settings)
    StoreSynchronizer(engine, rrf, table_name("MRCONSO", rrf.fingerprint()), settings)
