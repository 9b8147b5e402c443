"""Create audis the sheets describe and repoint cases at them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cinecrm.canonical.normalize import normalize_serial
from cinecrm.db.models import AudiModel, DTRCaseModel, ProjectorModel, RMACaseModel
from cinecrm.models import ProjectorLocation
from cinecrm.reconcile.resolver import (
    find_audi_for_projector,
    find_projector,
    link_audi,
    resolve_projector,
    resolve_site,
)

logger = logging.getLogger(__name__)


@dataclass
class MissingAudiReport:
    created: int = 0
    linked: int = 0
    already_linked: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class RelinkReport:
    dtr_fixed: int = 0
    rma_fixed: int = 0
    unresolved: int = 0

    @property
    def total_fixed(self) -> int:
        return self.dtr_fixed + self.rma_fixed


async def create_missing_audis(
    session: AsyncSession,
    crossref: dict[str, ProjectorLocation],
) -> MissingAudiReport:
    """Place every cross-referenced projector that no audi holds yet."""
    report = MissingAudiReport()

    for serial, location in crossref.items():
        if not location.is_placeable:
            report.skipped += 1
            continue

        try:
            projector = await find_projector(session, serial)
            if projector is not None and await find_audi_for_projector(session, projector.id):
                report.already_linked += 1
                continue

            site = await resolve_site(session, location.site_name)
            projector, _ = await resolve_projector(
                session,
                serial,
                model_no=location.unit_model,
                notes="Auto-created from spreadsheet placement",
            )
            result = await link_audi(session, site, location.audi_no, projector)
            await session.commit()
        except Exception as e:
            await session.rollback()
            report.errors.append(f"{serial}: {e}")
            logger.warning(f"Could not place {serial}: {e}")
            continue

        if result.created:
            report.created += 1
            logger.info(f"Created audi {location.audi_no} for {serial} at {location.site_name}")
        else:
            report.linked += 1
            logger.info(f"Linked {serial} to audi {location.audi_no} at {location.site_name}")

    return report


async def _audi_by_serial(session: AsyncSession) -> dict[str, tuple[UUID, UUID]]:
    """Normalized serial -> (audi_id, site_id) of the audi holding it."""
    result = await session.execute(
        select(AudiModel.id, AudiModel.site_id, ProjectorModel.serial_number)
        .join(ProjectorModel, AudiModel.projector_id == ProjectorModel.id)
        .order_by(AudiModel.created_at)
    )
    holders: dict[str, tuple[UUID, UUID]] = {}
    for audi_id, site_id, serial in result.all():
        holders.setdefault(normalize_serial(serial), (audi_id, site_id))
    return holders


async def relink_orphaned_cases(session: AsyncSession) -> RelinkReport:
    """Point each case whose audi holds a different projector at the right audi.

    The right audi is whichever one holds the case's serial; the case's site
    follows it.
    """
    holders = await _audi_by_serial(session)
    report = RelinkReport()

    for case_model, serial_column in (
        (DTRCaseModel, DTRCaseModel.unit_serial),
        (RMACaseModel, RMACaseModel.serial_number),
    ):
        result = await session.execute(
            select(case_model.id, serial_column, ProjectorModel.serial_number)
            .outerjoin(AudiModel, case_model.audi_id == AudiModel.id)
            .outerjoin(ProjectorModel, AudiModel.projector_id == ProjectorModel.id)
        )
        for case_id, case_serial, audi_serial in result.all():
            serial = normalize_serial(case_serial)
            if not serial or normalize_serial(audi_serial) == serial:
                continue

            holder = holders.get(serial)
            if holder is None:
                report.unresolved += 1
                continue

            audi_id, site_id = holder
            await session.execute(
                update(case_model)
                .where(case_model.id == case_id)
                .values(audi_id=audi_id, site_id=site_id)
            )
            if case_model is DTRCaseModel:
                report.dtr_fixed += 1
            else:
                report.rma_fixed += 1

    await session.commit()
    logger.info(
        f"Relinked {report.dtr_fixed} DTR and {report.rma_fixed} RMA cases "
        f"({report.unresolved} without a holding audi)"
    )
    return report
