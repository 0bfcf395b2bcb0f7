"""
Cross-mapping between two source vocabularies through shared CUIs.

Codes are not joined directly: every half-map is grouped by concept, and
within one concept each code from the "from" source is paired with each code
from the "to" source. One concept can have several atoms and codes per
source, so this over-generates (many-to-many); callers that need precision
filter the result, e.g. on the labels carried by each mapping.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Sequence

import pandas as pd

from .models import HalfMap, Mapping

MAPPING_COLUMNS = [
    "from_source", "from_code", "to_source", "to_code",
    "concept_ids", "atom_ids", "labels",
]


def build_mappings(from_source: str, to_source: str, half_maps: Iterable[HalfMap]) -> List[Mapping]:
    """
    Join half-maps on CUI and emit every from-code x to-code pair per concept.

    Each Mapping carries the CUIs, AUIs and labels of the whole concept group,
    not just of the two codes. A concept with codes on only one side emits
    nothing.
    """
    by_cui: Dict[str, List[HalfMap]] = defaultdict(list)
    for hm in half_maps:
        by_cui[hm.cui].append(hm)

    mappings: List[Mapping] = []
    for entries in by_cui.values():
        # everything in entries is the "same" concept according to MRCONSO
        cuis = frozenset(hm.cui for hm in entries)
        auis = frozenset(hm.aui for hm in entries)
        labels = frozenset(hm.label for hm in entries)
        from_codes = list(dict.fromkeys(hm.code for hm in entries if hm.source == from_source))
        to_codes = list(dict.fromkeys(hm.code for hm in entries if hm.source == to_source))

        for from_code in from_codes:
            for to_code in to_codes:
                mappings.append(
                    Mapping(from_source, from_code, to_source, to_code, cuis, auis, labels)
                )
    return mappings


def cross_map(
    store,
    from_source: str,
    from_codes: Sequence[str],
    to_source: str,
    to_codes: Sequence[str],
) -> List[Mapping]:
    """
    Map `from_codes` in `from_source` onto `to_codes` in `to_source`.
    An empty code list stands for every code of that source.

    Args:
        store: Anything with half_maps_for_codes(source, codes), i.e. a ConceptStore.
    """
    from_half_maps = store.half_maps_for_codes(from_source, from_codes)
    to_half_maps = store.half_maps_for_codes(to_source, to_codes)
    return build_mappings(from_source, to_source, list(from_half_maps) + list(to_half_maps))


def mappings_to_frame(mappings: Iterable[Mapping]) -> pd.DataFrame:
    """
    One row per mapping, set-valued columns joined with "|" (sorted), ready
    for to_csv().
    """
    rows = [
        {
            "from_source": m.from_source,
            "from_code": m.from_code,
            "to_source": m.to_source,
            "to_code": m.to_code,
            "concept_ids": "|".join(sorted(m.concept_ids)),
            "atom_ids": "|".join(sorted(m.atom_ids)),
            "labels": "|".join(sorted(m.labels)),
        }
        for m in mappings
    ]
    if not rows:
        return pd.DataFrame(columns=MAPPING_COLUMNS)

    df = pd.DataFrame(rows, columns=MAPPING_COLUMNS)
    return df.sort_values(["from_code", "to_code"], kind="stable").reset_index(drop=True)
