from __future__ import annotations
from dataclasses import dataclass
from typing import FrozenSet


@dataclass(frozen=True)
class HalfMap:
    """
    One MRCONSO assertion: concept `cui`, expressed by atom `aui` in `source`
    under `code`, carries `label`.
    Details: https://www.ncbi.nlm.nih.gov/books/NBK9685/#ch03.sec3.3.4

    Args:
        cui: Concept identifier (the join key between sources).
        aui: Atom identifier.
        source: Abbreviated source name (e.g. "SNOMEDCT_US", or versioned "AIR93").
        code: The source-asserted identifier.
        label: The string used for this concept by this atom.
    """
    cui: str
    aui: str
    source: str
    code: str
    label: str


@dataclass(frozen=True)
class Mapping:
    """A code in one source paired with a code in another through shared concepts."""
    from_source: str
    from_code: str
    to_source: str
    to_code: str
    concept_ids: FrozenSet[str]
    atom_ids: FrozenSet[str]
    labels: FrozenSet[str]
