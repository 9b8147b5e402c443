"""Normalization of spreadsheet keys and enumerated case fields."""

from cinecrm.canonical.case_fields import (
    normalize_call_status,
    normalize_rma_status,
    normalize_rma_type,
    normalize_severity,
)
from cinecrm.canonical.normalize import (
    SITE_NAME_CORRECTIONS,
    cell_text,
    correct_site_name,
    normalize_identifier,
    normalize_serial,
    normalize_site_name,
)

__all__ = [
    "SITE_NAME_CORRECTIONS",
    "cell_text",
    "correct_site_name",
    "normalize_identifier",
    "normalize_serial",
    "normalize_site_name",
    "normalize_call_status",
    "normalize_rma_status",
    "normalize_rma_type",
    "normalize_severity",
]
