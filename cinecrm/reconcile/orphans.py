"""Orphaned-case cleanup.

A case is kept while any evidence of its projector survives:

(a) its audi holds a projector with the case's serial
(b) some other audi holds a projector with that serial
(c) the spreadsheets place that serial
(d) a projector with that serial exists at all

Cases with none of the four are deleted along with their audit logs. Cases
missing only (a) are kept and reported for manual follow-up. Cases with no
serial are never touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinecrm.canonical.normalize import normalize_serial
from cinecrm.db.models import AudiModel, DTRCaseModel, ProjectorModel, RMACaseModel
from cinecrm.models import CaseType, ProjectorLocation
from cinecrm.reconcile.resolver import delete_cases

logger = logging.getLogger(__name__)


@dataclass
class CaseTypeCleanup:
    """Findings for one case table."""

    case_type: CaseType
    checked: int = 0
    valid: int = 0
    no_serial: int = 0
    orphaned_kept: list[str] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)
    deleted: int = 0


@dataclass
class OrphanCleanupReport:
    dry_run: bool
    dtr: CaseTypeCleanup = field(default_factory=lambda: CaseTypeCleanup(CaseType.DTR))
    rma: CaseTypeCleanup = field(default_factory=lambda: CaseTypeCleanup(CaseType.RMA))

    @property
    def total_deleted(self) -> int:
        return self.dtr.deleted + self.rma.deleted


async def _linked_serials(session: AsyncSession) -> set[str]:
    result = await session.execute(
        select(ProjectorModel.serial_number).join(
            AudiModel, AudiModel.projector_id == ProjectorModel.id
        )
    )
    return {normalize_serial(s) for s in result.scalars()}


async def _all_serials(session: AsyncSession) -> set[str]:
    result = await session.execute(select(ProjectorModel.serial_number))
    return {normalize_serial(s) for s in result.scalars()}


async def _scan(
    session: AsyncSession,
    findings: CaseTypeCleanup,
    excel_serials: set[str],
    linked_serials: set[str],
    projector_serials: set[str],
) -> list[UUID]:
    if findings.case_type is CaseType.DTR:
        case_model, serial_column, label_column = (
            DTRCaseModel, DTRCaseModel.unit_serial, DTRCaseModel.case_number,
        )
    else:
        case_model, serial_column, label_column = (
            RMACaseModel, RMACaseModel.serial_number, RMACaseModel.rma_number,
        )

    result = await session.execute(
        select(case_model.id, label_column, serial_column, ProjectorModel.serial_number)
        .outerjoin(AudiModel, case_model.audi_id == AudiModel.id)
        .outerjoin(ProjectorModel, AudiModel.projector_id == ProjectorModel.id)
    )

    doomed: list[UUID] = []
    for case_id, case_label, case_serial, audi_serial in result.all():
        findings.checked += 1
        serial = normalize_serial(case_serial)
        if not serial:
            findings.no_serial += 1
            continue

        label = f"{findings.case_type.value} {case_label or case_id} (Serial: {serial})"
        if normalize_serial(audi_serial) == serial:
            findings.valid += 1
        elif serial in linked_serials or serial in excel_serials or serial in projector_serials:
            findings.orphaned_kept.append(label)
        else:
            findings.to_delete.append(label)
            doomed.append(case_id)

    return doomed


async def cleanup_orphaned_cases(
    session: AsyncSession,
    crossref: dict[str, ProjectorLocation],
    dry_run: bool = False,
) -> OrphanCleanupReport:
    """Delete cases with no surviving evidence of their projector.

    Args:
        crossref: Spreadsheet placements; only the serial keys are consulted
        dry_run: Report what would be deleted without deleting
    """
    report = OrphanCleanupReport(dry_run=dry_run)
    excel_serials = set(crossref)
    linked_serials = await _linked_serials(session)
    projector_serials = await _all_serials(session)

    for findings in (report.dtr, report.rma):
        doomed = await _scan(session, findings, excel_serials, linked_serials, projector_serials)
        logger.info(
            f"{findings.case_type.value}: {findings.checked} checked, "
            f"{len(findings.orphaned_kept)} orphaned but kept, {len(doomed)} to delete"
        )
        if doomed and not dry_run:
            findings.deleted = await delete_cases(session, findings.case_type, doomed)

    if not dry_run:
        await session.commit()
    return report
