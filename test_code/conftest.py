from __future__ import annotations

import pytest
from sqlalchemy import create_engine

from umls_mapper.config import Settings

from rrf_helpers import SAMPLE_ROWS, QueryCounter, write_mrconso


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'store.sqlite'}",
        insert_batch_size=2,
        query_windows=10,
        show_progress=False,
    )


@pytest.fixture
def engine(settings):
    eng = create_engine(settings.database_url)
    yield eng
    eng.dispose()


@pytest.fixture
def counter(engine):
    return QueryCounter(engine)


@pytest.fixture
def mrconso(tmp_path):
    return write_mrconso(tmp_path / "MRCONSO.RRF", SAMPLE_ROWS)
