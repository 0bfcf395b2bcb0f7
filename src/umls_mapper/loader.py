from __future__ import annotations
import csv
import hashlib
import os
from typing import Iterator, List, Optional, Protocol, Sequence, Tuple

import pandas as pd

from .errors import MalformedRowError

# Column layout of MRCONSO.RRF (https://www.ncbi.nlm.nih.gov/books/NBK9685/)
MRCONSO_COLUMNS = [
    "CUI", "LAT", "TS", "LUI", "STT", "SUI", "ISPREF", "AUI", "SAUI",
    "SCUI", "SDUI", "SAB", "TTY", "CODE", "STR", "SRL", "SUPPRESS", "CVF",
]

class RowSource(Protocol):
    """What the store synchronizer needs from a reference file."""

    columns: Sequence[str]

    def row_count(self) -> int: ...

    def rows(self) -> Iterator[List[str]]: ...

    def fingerprint(self) -> str: ...


class RRFFile:
    """
    A pipe-delimited UMLS Rich Release Format file.

    Args:
        path: Path to the file (e.g., META/MRCONSO.RRF).
        columns: Column names, in file order.
        delimiter: Field separator ("|" for every RRF file).
    """

    def __init__(self, path: str, columns: Sequence[str] = MRCONSO_COLUMNS, delimiter: str = "|"):
        if not os.path.exists(path):
            raise FileNotFoundError(f"RRF file not found: {path}")
        self.path = path
        self.columns = list(columns)
        self.delimiter = delimiter
        self._row_count: Optional[int] = None
        self._fingerprint: Optional[str] = None

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)

    def _lines(self) -> Iterator[Tuple[int, str]]:
        """(line number, line) for every non-blank line; row_count() and rows() both read through here."""
        with open(self.path, "r", encoding="utf-8", newline="") as f:
            for line_number, line in enumerate(f, 1):
                line = line.rstrip("\r\n")
                if line.strip():
                    yield line_number, line

    def row_count(self) -> int:
        """Number of non-blank lines; computed once."""
        if self._row_count is None:
            self._row_count = sum(1 for _ in self._lines())
        return self._row_count

    def fingerprint(self) -> str:
        """SHA-256 of the file contents, so each release gets its own table."""
        if self._fingerprint is None:
            h = hashlib.sha256()
            with open(self.path, "rb") as f:
                for block in iter(lambda: f.read(1 << 20), b""):
                    h.update(block)
            self._fingerprint = h.hexdigest()
        return self._fingerprint

    def _split(self, line: str) -> List[str]:
        # RRF lines end with a trailing delimiter
        if line.endswith(self.delimiter):
            line = line[: -len(self.delimiter)]
        return line.split(self.delimiter)

    def rows(self) -> Iterator[List[str]]:
        """
        Lazily yield one list of field strings per line.

        Raises:
            MalformedRowError: a line does not have exactly len(columns) fields.
        """
        expected = len(self.columns)
        for line_number, line in self._lines():
            fields = self._split(line)
            if len(fields) != expected:
                raise MalformedRowError(line_number, expected, len(fields))
            yield fields


def read_rrf_frame(path: str, columns: Sequence[str] = MRCONSO_COLUMNS) -> pd.DataFrame:
    """
    Load a whole RRF file into a DataFrame (all columns as strings).
    Meant for small extracts; the concept store streams via RRFFile.rows().
    """
    names = list(columns) + ["_END"]
    df = pd.read_csv(
        path,
        sep="|",
        header=None,
        names=names,
        index_col=False,
        dtype=str,
        keep_default_na=False,
        quoting=csv.QUOTE_NONE,
        encoding="utf-8",
    )
    df = df.drop(columns=["_END"])

    for c in columns:
        df[c] = df[c].astype(str)

    return df
