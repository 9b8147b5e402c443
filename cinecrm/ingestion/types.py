"""Type definitions for import operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ImportStatus(str, Enum):
    """Overall status of one workbook import."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    SKIPPED = "SKIPPED"


@dataclass
class RowOutcome:
    """Result of importing one spreadsheet row.

    Either ``ok`` with a label for the stored record, or not ``ok`` with the
    failure message.
    """

    row_index: int
    ok: bool
    label: str
    message: str = ""
    skipped: bool = False  # Already present; counted as success

    @classmethod
    def success(cls, row_index: int, label: str, message: str = "") -> RowOutcome:
        return cls(row_index=row_index, ok=True, label=label, message=message)

    @classmethod
    def already_exists(cls, row_index: int, label: str) -> RowOutcome:
        return cls(row_index=row_index, ok=True, label=label, skipped=True)

    @classmethod
    def failure(cls, row_index: int, label: str, message: str) -> RowOutcome:
        return cls(row_index=row_index, ok=False, label=label, message=message)


@dataclass
class ImportStats:
    """Per-workbook counts and failures."""

    source_name: str
    outcomes: list[RowOutcome] = field(default_factory=list)
    file_error: str | None = None  # Workbook rejected before any row was read

    def add(self, outcome: RowOutcome) -> RowOutcome:
        self.outcomes.append(outcome)
        return outcome

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def success(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    @property
    def errors(self) -> list[str]:
        return [f"{o.label}: {o.message}" for o in self.outcomes if not o.ok]

    @property
    def status(self) -> ImportStatus:
        if self.file_error is not None:
            return ImportStatus.FAILED
        if self.total == 0:
            return ImportStatus.SKIPPED
        if self.failed == 0:
            return ImportStatus.SUCCESS
        if self.success == 0:
            return ImportStatus.FAILED
        return ImportStatus.PARTIAL_SUCCESS
