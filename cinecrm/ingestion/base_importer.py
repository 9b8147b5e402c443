"""Base class for all workbook importers.

Defines the per-row contract and the isolation/timing wrapper shared by the
master-data and case importers.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cinecrm.ingestion.reader import read_sheet
from cinecrm.ingestion.types import ImportStats, RowOutcome

logger = logging.getLogger(__name__)


class BaseSheetImporter(ABC):
    """Abstract base class for one-workbook importers.

    Key principles:
    1. Each importer handles exactly ONE workbook
    2. Every row is its own unit of work (commit on success, rollback on failure)
    3. A failing row never stops the remaining rows
    4. A missing workbook is an empty import, not an error
    """

    filename: str = ""
    source_name: str = ""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def import_row(self, index: int, row: dict[str, Any], label: str) -> RowOutcome:
        """Import a single row.

        Raises:
            Exception: Any error (caught and recorded by run())
        """

    @abstractmethod
    def label(self, row: dict[str, Any]) -> str:
        """Human identifier for the row, used in messages."""

    async def run(
        self,
        data_dir: Path | None = None,
        rows: list[dict[str, Any]] | None = None,
        max_file_size_mb: int = 50,
        max_rows: int = 50000,
    ) -> ImportStats:
        """Import every row of the workbook (or of ``rows`` when given).

        A workbook rejected by the reader (bad format, too large) is reported
        through ``ImportStats.file_error`` instead of raising.

        Returns:
            ImportStats with one outcome per row
        """
        stats = ImportStats(source_name=self.source_name)

        if rows is None:
            try:
                rows = read_sheet(
                    data_dir or Path("data"),
                    self.filename,
                    max_file_size_mb=max_file_size_mb,
                    max_rows=max_rows,
                )
            except ValueError as e:
                self.logger.error(f"{self.filename} rejected: {e}")
                stats.file_error = str(e)
                return stats

        start_time = time.time()
        self.logger.info(f"Importing {self.source_name}: {len(rows)} rows")

        for index, row in enumerate(rows):
            label = self.label(row)
            try:
                outcome = await self.import_row(index, row, label)
                await self.session.commit()
            except Exception as e:
                await self.session.rollback()
                outcome = RowOutcome.failure(index, label, str(e))
                self.logger.warning(f"Failed: {label} - {e}")
            else:
                if outcome.skipped:
                    self.logger.debug(f"Skipped (already exists): {label}")
                elif outcome.message:
                    self.logger.info(f"Created {label}: {outcome.message}")
                else:
                    self.logger.info(f"Created {label}")

            stats.add(outcome)

        self.logger.info(
            f"{self.source_name}: {stats.success}/{stats.total} ok, "
            f"{stats.failed} failed in {time.time() - start_time:.1f}s"
        )
        return stats
