"""Serial-number cross reference built from the field workbooks."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from cinecrm.canonical.normalize import normalize_serial
from cinecrm.ingestion.reader import (
    AUDIS_FILE,
    DTR_CASES_FILE,
    PROJECTORS_FILE,
    RMA_CASES_FILE,
    first_text,
    first_value,
    read_sheet,
)
from cinecrm.models import ProjectorLocation

logger = logging.getLogger(__name__)

# Highest priority first
CROSS_REFERENCE_FILES = (AUDIS_FILE, PROJECTORS_FILE, DTR_CASES_FILE, RMA_CASES_FILE)
# Sheets that place projectors; case sheets only echo what was typed on a ticket
PLACEMENT_FILES = (AUDIS_FILE, PROJECTORS_FILE)

_MERGE_FIELDS = ("site_name", "audi_no", "unit_model")


def extract_location(row: dict[str, Any]) -> ProjectorLocation | None:
    """Pull (serial, site, audi, model) out of one row; None without a serial."""
    serial = normalize_serial(first_value(row, "serial_number"))
    if not serial:
        return None
    return ProjectorLocation(
        serial_number=serial,
        site_name=first_text(row, "site_name"),
        audi_no=first_text(row, "audi_no"),
        unit_model=first_text(row, "unit_model") or first_text(row, "product_name"),
    )


def build_cross_reference(
    sources: Sequence[Iterable[dict[str, Any]]],
) -> dict[str, ProjectorLocation]:
    """Merge row sets (in priority order) into one entry per serial.

    The first sheet to mention a serial creates its entry; later sheets only
    fill sub-fields that are still missing.
    """
    crossref: dict[str, ProjectorLocation] = {}

    for rows in sources:
        for row in rows:
            location = extract_location(row)
            if location is None:
                continue

            existing = crossref.get(location.serial_number)
            if existing is None:
                crossref[location.serial_number] = location
                continue

            for field in _MERGE_FIELDS:
                if getattr(existing, field) is None and getattr(location, field) is not None:
                    setattr(existing, field, getattr(location, field))

    return crossref


def load_cross_reference(
    data_dir: Path, files: Sequence[str] = CROSS_REFERENCE_FILES
) -> dict[str, ProjectorLocation]:
    """Read the workbooks that carry serial numbers and merge them."""
    sources = [read_sheet(data_dir, filename) for filename in files]
    crossref = build_cross_reference(sources)
    logger.info(f"Cross reference holds {len(crossref)} serial numbers")
    return crossref
