"""Workbook ingestion: reading, cross-referencing and per-row importers."""

from cinecrm.ingestion.cases import DTRCaseImporter, RMACaseImporter
from cinecrm.ingestion.crossref import build_cross_reference, load_cross_reference
from cinecrm.ingestion.master_data import (
    AudiImporter,
    ProjectorImporter,
    ProjectorModelImporter,
    SiteImporter,
)
from cinecrm.ingestion.runner import run_bulk_import
from cinecrm.ingestion.types import ImportStats, ImportStatus, RowOutcome

__all__ = [
    "AudiImporter",
    "DTRCaseImporter",
    "ImportStats",
    "ImportStatus",
    "ProjectorImporter",
    "ProjectorModelImporter",
    "RMACaseImporter",
    "RowOutcome",
    "SiteImporter",
    "build_cross_reference",
    "load_cross_reference",
    "run_bulk_import",
]
