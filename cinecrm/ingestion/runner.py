"""Bulk import runner.

Runs the workbook importers in dependency order: a failing workbook never
halts the ones after it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from cinecrm.config import ImportConfig
from cinecrm.ingestion.base_importer import BaseSheetImporter
from cinecrm.ingestion.cases import DTRCaseImporter, RMACaseImporter
from cinecrm.ingestion.master_data import (
    AudiImporter,
    ProjectorImporter,
    ProjectorModelImporter,
    SiteImporter,
)
from cinecrm.ingestion.types import ImportStats

logger = logging.getLogger(__name__)


def build_importers(
    session: AsyncSession, config: ImportConfig | None = None
) -> list[BaseSheetImporter]:
    """Importers in the order their references require."""
    config = config or ImportConfig()
    return [
        SiteImporter(session),
        ProjectorModelImporter(session),
        ProjectorImporter(session),
        AudiImporter(session),
        RMACaseImporter(session, default_creator_email=config.default_creator_email),
        DTRCaseImporter(session, default_creator_email=config.default_creator_email),
    ]


async def run_importer(
    importer: BaseSheetImporter,
    data_dir: Path,
    config: ImportConfig | None = None,
) -> ImportStats:
    config = config or ImportConfig()
    return await importer.run(
        data_dir=data_dir,
        max_file_size_mb=config.max_file_size_mb,
        max_rows=config.max_rows,
    )


async def run_bulk_import(
    session: AsyncSession,
    data_dir: Path | None = None,
    config: ImportConfig | None = None,
) -> dict[str, ImportStats]:
    """Import all six workbooks.

    Returns:
        Per-workbook stats keyed by source name, in import order
    """
    config = config or ImportConfig()
    data_dir = Path(data_dir or config.data_dir)
    logger.info(f"Starting bulk import from {data_dir}")

    results: dict[str, ImportStats] = {}
    for importer in build_importers(session, config):
        stats = await run_importer(importer, data_dir, config)
        results[importer.source_name] = stats

    total = sum(s.total for s in results.values())
    failed = sum(s.failed for s in results.values())
    logger.info(f"Bulk import finished: {total - failed}/{total} rows ok")
    return results
