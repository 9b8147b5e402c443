"""Enumerated case-field normalization.

Free-text spreadsheet values are mapped onto the stored enums through fixed
substitution tables; anything unrecognized falls back to a safe baseline.
"""

from __future__ import annotations

import re

from cinecrm.canonical.normalize import cell_text
from cinecrm.models import CallStatus, RMAStatus, RMAType, Severity

_SEPARATORS = re.compile(r"[\s\-]+")

CALL_STATUS_MAP = {
    "observation": CallStatus.OPEN,
    "waiting_cust_responses": CallStatus.IN_PROGRESS,
    "rma_part_return_to_cds": CallStatus.CLOSED,
}

SEVERITY_MAP = {
    "major": Severity.HIGH,
    "minor": Severity.MEDIUM,
}

RMA_TYPE_FIXES = {
    "RMA CI": "RMA_CL",
    "RMA_CI": "RMA_CL",
    "RMA CL": "RMA_CL",
}

RMA_STATUS_MAP = {
    "rma_part_return_to_cds": RMAStatus.FAULTY_IN_TRANSIT_TO_CDS,
    "faulty_in_transit_to_ascomp": RMAStatus.FAULTY_IN_TRANSIT_TO_CDS,
}


def _slug(value: object) -> str:
    return _SEPARATORS.sub("_", cell_text(value).lower())


def normalize_call_status(value: object) -> str:
    slug = _slug(value)
    if not slug:
        return CallStatus.OPEN.value
    if slug in CALL_STATUS_MAP:
        return CALL_STATUS_MAP[slug].value
    try:
        return CallStatus(slug).value
    except ValueError:
        return CallStatus.OPEN.value


def normalize_severity(value: object) -> str:
    key = cell_text(value).lower()
    if key in SEVERITY_MAP:
        return SEVERITY_MAP[key].value
    try:
        return Severity(key).value
    except ValueError:
        return Severity.MEDIUM.value


def normalize_rma_type(value: object) -> str:
    """Fix the recurring ``RMA CI`` typo, default anything else unknown to RMA."""
    text = cell_text(value) or RMAType.RMA.value
    for typo, fixed in RMA_TYPE_FIXES.items():
        text = text.replace(typo, fixed)
    try:
        return RMAType(text).value
    except ValueError:
        return RMAType.RMA.value


def normalize_rma_status(value: object) -> str:
    slug = _slug(value)
    if slug in RMA_STATUS_MAP:
        return RMA_STATUS_MAP[slug].value
    try:
        return RMAStatus(slug).value
    except ValueError:
        return RMAStatus.OPEN.value
