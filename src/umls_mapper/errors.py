"""
Error types raised by the concept store.

A staleness mismatch is not an error (it triggers a rebuild) and an empty
lookup is a normal empty result, so neither has a type here.
"""

from __future__ import annotations


class UmlsMapperError(Exception):
    """Base class for every error raised by umls_mapper."""


class StoreError(UmlsMapperError):
    """A backend statement failed; `intent` names what we were trying to do."""

    def __init__(self, table: str, intent: str, message: str):
        super().__init__(f"{intent} on {table} failed: {message}")
        self.table = table
        self.intent = intent


class MalformedRowError(UmlsMapperError):
    def __init__(self, line_number: int, expected: int, actual: int):
        super().__init__(
            f"Line {line_number}: expected {expected} fields, found {actual}"
        )
        self.line_number = line_number
        self.expected = expected
        self.actual = actual
