"""Removal of suffixed duplicate cases.

Re-importing a workbook stores each already-present case again under a
suffixed identifier (``C`` becomes ``C-1``, then ``C-2``). Those copies are
import artifacts: a case is one when its identifier is ``<base>-<n>``,
another case holds ``<base>`` and the suffixed value itself is not listed in
the spreadsheet.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from cinecrm.canonical.normalize import normalize_identifier
from cinecrm.db.models import DTRCaseModel, RMACaseModel
from cinecrm.ingestion.reader import DTR_CASES_FILE, RMA_CASES_FILE, first_value, read_sheet
from cinecrm.models import CaseType
from cinecrm.reconcile.resolver import delete_cases

logger = logging.getLogger(__name__)

SUFFIXED = re.compile(r"^(?P<base>.+)-(?P<n>\d+)$")

IDENTIFIER_COLUMNS: dict[CaseType, tuple[InstrumentedAttribute, ...]] = {
    CaseType.DTR: (DTRCaseModel.case_number,),
    CaseType.RMA: (RMACaseModel.call_log_number, RMACaseModel.rma_number),
}

IDENTIFIER_FIELDS: dict[CaseType, tuple[str, ...]] = {
    CaseType.DTR: ("case_number",),
    CaseType.RMA: ("call_log_number", "rma_number"),
}


@dataclass
class DuplicateCase:
    case_type: CaseType
    case_id: UUID
    identifier: str
    original: str


@dataclass
class DuplicateReport:
    dry_run: bool
    duplicates: list[DuplicateCase] = field(default_factory=list)
    deleted: int = 0
    remaining: dict[CaseType, int] = field(default_factory=dict)
    skipped: list[CaseType] = field(default_factory=list)  # No workbook rows to check against


def split_suffix(identifier: str) -> str | None:
    """Base of a ``<base>-<n>`` identifier, None when unsuffixed."""
    match = SUFFIXED.match(identifier)
    return match.group("base") if match else None


def excel_identifiers(rows: Iterable[dict], case_type: CaseType) -> set[str]:
    """Every identifier the workbook lists for this case type."""
    listed: set[str] = set()
    for row in rows:
        for name in IDENTIFIER_FIELDS[case_type]:
            identifier = normalize_identifier(first_value(row, name))
            if identifier:
                listed.add(identifier)
    return listed


async def find_suffixed_duplicates(
    session: AsyncSession,
    case_type: CaseType,
    listed: set[str],
) -> list[DuplicateCase]:
    """Cases of one type whose every identifier is a suffixed duplicate.

    An RMA whose call-log number was suffixed but whose RMA number is its
    own is a distinct ticket sharing a call log, and is kept.
    """
    columns = IDENTIFIER_COLUMNS[case_type]
    model = columns[0].class_
    result = await session.execute(select(model.id, *columns).order_by(model.created_at))
    rows = result.all()

    held: list[set[str]] = [
        {row[i + 1] for row in rows if row[i + 1]} for i in range(len(columns))
    ]

    duplicates: list[DuplicateCase] = []
    for row in rows:
        case_id, values = row[0], row[1:]
        bases = []
        for i, value in enumerate(values):
            if not value:
                continue
            base = split_suffix(value)
            if base is None or base not in held[i] or value in listed:
                bases = []
                break
            bases.append((value, base))

        if bases:
            identifier, original = bases[0]
            duplicates.append(DuplicateCase(case_type, case_id, identifier, original))

    return duplicates


async def remove_suffixed_duplicates(
    session: AsyncSession,
    data_dir: Path,
    dry_run: bool = False,
) -> DuplicateReport:
    """Delete suffixed duplicate DTR and RMA cases with their audit logs.

    A case type whose workbook is missing or empty is skipped: without the
    listed identifiers a legitimately suffixed case cannot be told apart.
    """
    report = DuplicateReport(dry_run=dry_run)

    for case_type, filename in ((CaseType.DTR, DTR_CASES_FILE), (CaseType.RMA, RMA_CASES_FILE)):
        rows = read_sheet(data_dir, filename)
        if not rows:
            logger.warning(f"No rows in {filename}; leaving {case_type.value} cases untouched")
            report.skipped.append(case_type)
            continue

        listed = excel_identifiers(rows, case_type)
        duplicates = await find_suffixed_duplicates(session, case_type, listed)
        report.duplicates.extend(duplicates)
        logger.info(f"{case_type.value}: {len(duplicates)} suffixed duplicates")

        if duplicates and not dry_run:
            report.deleted += await delete_cases(
                session, case_type, [d.case_id for d in duplicates]
            )

    if not dry_run:
        await session.commit()

    for case_type, columns in IDENTIFIER_COLUMNS.items():
        model = columns[0].class_
        count = await session.execute(select(func.count(model.id)))
        report.remaining[case_type] = count.scalar_one()

    return report
