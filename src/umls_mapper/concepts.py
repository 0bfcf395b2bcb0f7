"""
Half-map lookups over a persisted MRCONSO table.

ConceptStore wraps one reference file: on construction it makes sure the
file's table is loaded, then answers lookups by source/code, by CUI and by
AUI. Per-code results go through a (source, code) cache; the other lookups
are memoized by argument.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import Engine, func, select

from .cache import HalfMapCache, InMemoryCache, half_map_key, memoized
from .config import Settings, get_settings
from .crossmap import cross_map
from .db import concept_table, create_store_engine, scoped_connection
from .loader import RowSource
from .models import HalfMap, Mapping
from .store import StoreSynchronizer, table_name

logger = logging.getLogger(__name__)


def split_windows(values: Sequence[str], count: int) -> List[List[str]]:
    """
    Split `values` into consecutive windows of len(values) // count + 1.
    The last window takes whatever is left, so it may be shorter.
    """
    if not values:
        return []
    size = len(values) // count + 1
    return [list(values[i:i + size]) for i in range(0, len(values), size)]


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


class ConceptStore:
    """
    Args:
        row_source: The reference file (normally an RRFFile for MRCONSO.RRF).
        engine: SQLAlchemy engine; built from settings when omitted.
        cache: (source, code) -> half-maps cache; a fresh InMemoryCache by default.
        memo: Cache for memoized lookups; a fresh InMemoryCache by default.
        settings: Overrides get_settings().
    """

    def __init__(
        self,
        row_source: RowSource,
        engine: Optional[Engine] = None,
        cache: Optional[HalfMapCache] = None,
        memo: Optional[HalfMapCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.engine = engine if engine is not None else create_store_engine(self.settings)
        self.row_source = row_source
        self.table_name = table_name(self.settings.table_prefix, row_source.fingerprint())
        self.table = concept_table(self.table_name, row_source.columns)
        self.cache = cache if cache is not None else InMemoryCache()
        self.memo = memo if memo is not None else InMemoryCache()

        self.synchronizer = StoreSynchronizer(self.engine, row_source, self.table_name, self.settings)
        self.initial_status = self.synchronizer.ensure_store()

    def _half_map_columns(self):
        t = self.table
        return (t.c.CUI, t.c.AUI, t.c.SAB, t.c.CODE, t.c.STR)

    def _cache_half_maps(self, half_maps: Iterable[HalfMap]) -> None:
        grouped: Dict[str, List[HalfMap]] = defaultdict(list)
        for hm in half_maps:
            grouped[half_map_key(hm.source, hm.code)].append(hm)
        for key, hms in grouped.items():
            self.cache.put(key, tuple(hms))

    def sources(self) -> List[Tuple[str, int]]:
        """(SAB, row count) for every source in the table, largest first."""
        t = self.table
        count = func.count().label("count")
        query = select(t.c.SAB, count).group_by(t.c.SAB).order_by(count.desc())
        with scoped_connection(self.engine, self.table_name, "query:sources") as conn:
            return [(sab, n) for sab, n in conn.execute(query)]

    def half_maps_for_codes(self, source: str, codes: Sequence[str]) -> List[HalfMap]:
        """
        All half-maps for `codes` in `source`; every code of the source when
        `codes` is empty.

        Cached codes are answered from the cache. The rest are fetched in
        `settings.query_windows` windows to keep IN lists bounded, and the
        results are written back to the cache.
        """
        ids = _unique(codes)
        if not ids:
            return list(self._all_half_maps(source))

        cached: List[HalfMap] = []
        uncached: List[str] = []
        for code in ids:
            hit = self.cache.get(half_map_key(source, code))
            if hit is None:
                uncached.append(code)
            else:
                cached.extend(hit)

        if len(uncached) < len(ids):
            logger.info(
                f"Halfmaps for {len(ids) - len(uncached)} identifiers have been previously cached; "
                f"loading halfmaps from {source} for {len(uncached)} identifiers."
            )

        fetched: List[HalfMap] = []
        windows = split_windows(uncached, self.settings.query_windows)
        if windows:
            with scoped_connection(self.engine, self.table_name, "query:half_maps_for_codes") as conn:
                for i, window in enumerate(windows, 1):
                    query = (
                        select(*self._half_map_columns())
                        .where(self.table.c.SAB == source, self.table.c.CODE.in_(window))
                        .distinct()
                    )
                    fetched.extend(HalfMap(*row) for row in conn.execute(query))
                    logger.debug(f"Window {i}/{len(windows)}: loaded {len(fetched)} halfmaps.")

        logger.debug(f"{len(fetched)} new halfmaps loaded.")
        self._cache_half_maps(fetched)
        return fetched + cached

    @memoized
    def _all_half_maps(self, source: str) -> List[HalfMap]:
        logger.debug(f"Loading halfmaps for {source}")
        query = select(*self._half_map_columns()).where(self.table.c.SAB == source)

        half_maps: List[HalfMap] = []
        with scoped_connection(self.engine, self.table_name, "query:half_maps_for_source") as conn:
            result = conn.execution_options(stream_results=True).execute(query)
            for row in result:
                half_maps.append(HalfMap(*row))
                if len(half_maps) % 100_000 == 0:
                    logger.debug(f"Loaded {len(half_maps)} halfmaps.")

        logger.debug(f"{len(half_maps)} halfmaps loaded.")
        self._cache_half_maps(half_maps)
        return half_maps

    @memoized
    def half_maps_by_concept_ids(self, concept_ids: Iterable[str], source: Optional[str] = None) -> List[HalfMap]:
        """Half-maps for a set of CUIs (optionally only from `source`), in one query."""
        cuis = sorted(set(concept_ids))
        if not cuis:
            return []

        t = self.table
        query = select(*self._half_map_columns()).where(t.c.CUI.in_(cuis))
        if source is not None:
            query = query.where(t.c.SAB == source)
        with scoped_connection(self.engine, self.table_name, "query:half_maps_by_concept_ids") as conn:
            return [HalfMap(*row) for row in conn.execute(query.distinct())]

    # Labels

    @memoized
    def labels_for_code(self, source: str, code: str) -> FrozenSet[str]:
        return frozenset(hm.label for hm in self.half_maps_for_codes(source, [code]))

    @memoized
    def labels_for_codes(self, source: str, codes: Sequence[str]) -> FrozenSet[str]:
        labels: Set[str] = set()
        for code in codes:
            labels |= self.labels_for_code(source, code)
        return frozenset(labels)

    @memoized
    def labels_for_concept_id(self, cui: str) -> FrozenSet[str]:
        return frozenset(hm.label for hm in self.half_maps_by_concept_ids({cui}))

    # Identifier lookups

    @memoized
    def concept_ids_for_atom_ids(self, atom_ids: Sequence[str]) -> FrozenSet[str]:
        auis = _unique(atom_ids)
        if not auis:
            return frozenset()
        t = self.table
        query = select(t.c.CUI).where(t.c.AUI.in_(auis)).distinct()
        with scoped_connection(self.engine, self.table_name, "query:concept_ids_for_atom_ids") as conn:
            return frozenset(conn.execute(query).scalars())

    @memoized
    def atom_ids_for_concept_ids(self, concept_ids: Sequence[str]) -> FrozenSet[str]:
        cuis = _unique(concept_ids)
        if not cuis:
            return frozenset()
        t = self.table
        query = select(t.c.AUI).where(t.c.CUI.in_(cuis)).distinct()
        with scoped_connection(self.engine, self.table_name, "query:atom_ids_for_concept_ids") as conn:
            return frozenset(conn.execute(query).scalars())

    @memoized
    def concept_ids_for_codes(self, source: str, codes: Sequence[str]) -> Dict[str, List[str]]:
        """code -> CUIs it belongs to in `source`; codes with no match are left out."""
        ids = _unique(codes)
        if not ids:
            return {}
        t = self.table
        query = select(t.c.CODE, t.c.CUI).where(t.c.SAB == source, t.c.CODE.in_(ids)).distinct()

        results: Dict[str, List[str]] = defaultdict(list)
        with scoped_connection(self.engine, self.table_name, "query:concept_ids_for_codes") as conn:
            for code, cui in conn.execute(query):
                results[code].append(cui)
        return dict(results)

    def cross_map(
        self,
        from_source: str,
        from_codes: Sequence[str],
        to_source: str,
        to_codes: Sequence[str],
    ) -> List[Mapping]:
        """See crossmap.cross_map."""
        return cross_map(self, from_source, from_codes, to_source, to_codes)
