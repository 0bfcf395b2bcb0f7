"""Small MRCONSO extracts and a statement counter shared by the tests."""

from __future__ import annotations

from sqlalchemy import event

from umls_mapper.loader import MRCONSO_COLUMNS


def mrconso_line(cui: str, aui: str, sab: str, code: str, label: str, tty: str = "PT") -> str:
    fields = dict.fromkeys(MRCONSO_COLUMNS, "")
    fields.update(CUI=cui, LAT="ENG", AUI=aui, SAB=sab, TTY=tty, CODE=code, STR=label, SUPPRESS="N")
    return "|".join(fields[c] for c in MRCONSO_COLUMNS) + "|"


def write_mrconso(path, rows) -> str:
    path.write_text("".join(mrconso_line(*r) + "\n" for r in rows), encoding="utf-8")
    return str(path)


class QueryCounter:
    def __init__(self, engine):
        self.statements = []
        event.listen(engine, "before_cursor_execute", self._record)

    def _record(self, conn, cursor, statement, parameters, context, executemany):
        self.statements.append(statement)

    @property
    def count(self) -> int:
        return len(self.statements)

    def reset(self) -> None:
        self.statements.clear()


# C1, C2 shared by SRC1/SRC2; C3 only in SRC1; C4 only in SRC2
SAMPLE_ROWS = [
    ("C1", "A1", "SRC1", "X1", "label1"),
    ("C1", "A2", "SRC2", "Y1", "label2"),
    ("C2", "A3", "SRC1", "X2", "heart attack"),
    ("C2", "A4", "SRC1", "X3", "myocardial infarction"),
    ("C2", "A5", "SRC2", "Y2", "MI"),
    ("C3", "A6", "SRC1", "X4", "lonely concept"),
    ("C4", "A7", "SRC2", "Y3", "other side only"),
]
