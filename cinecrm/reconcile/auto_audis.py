"""Reconcile ``AUTO-*`` placeholder audis against the spreadsheets.

A placeholder is created when a case arrives for a projector nobody has
placed yet. Once the sheets say where that projector really is, the
placeholder is either renamed/moved into place or, when the real audi
already exists, merged into it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinecrm.canonical.normalize import normalize_serial, normalize_site_name
from cinecrm.db.models import AudiModel, ProjectorModel, SiteModel
from cinecrm.models import AUTO_AUDI_PREFIX, UNKNOWN_MODEL_NO, ProjectorLocation
from cinecrm.reconcile.resolver import (
    find_audi,
    find_site,
    move_cases,
    resolve_projector_model,
)

logger = logging.getLogger(__name__)


@dataclass
class AutoAudiReport:
    """Counts from one ``fix_auto_audis`` pass."""

    total: int = 0
    fixed: int = 0
    merged: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


async def find_or_create_site(session: AsyncSession, name: str) -> SiteModel:
    """Normalized match, then a containment match, then a new site."""
    site = await find_site(session, name)
    if site is not None:
        return site

    key = normalize_site_name(name)
    result = await session.execute(select(SiteModel).order_by(SiteModel.created_at))
    for candidate in result.scalars():
        existing = normalize_site_name(candidate.site_name)
        if existing and (key in existing or existing in key):
            return candidate

    site = SiteModel(site_name=name.strip())
    session.add(site)
    await session.flush()
    logger.info(f"Created site: {site.site_name}")
    return site


async def fix_auto_audi(
    session: AsyncSession,
    audi_id: UUID,
    crossref: dict[str, ProjectorLocation],
    report: AutoAudiReport,
) -> None:
    audi = await session.get(AudiModel, audi_id)
    if audi is None:
        return
    if audi.projector_id is None:
        logger.info(f"Skipping {audi.audi_no}: no projector")
        report.skipped += 1
        return

    projector = await session.get(ProjectorModel, audi.projector_id)
    serial = normalize_serial(projector.serial_number)
    location = crossref.get(serial)
    if location is None or not location.is_placeable:
        logger.info(f"Skipping {audi.audi_no} (Serial: {serial}): no spreadsheet placement")
        report.skipped += 1
        return

    site = await find_or_create_site(session, location.site_name)
    existing = await find_audi(session, site.id, location.audi_no)

    if existing is not None and existing.id != audi.id:
        moved = await move_cases(session, audi.id, existing.id, existing.site_id)
        existing.projector_id = projector.id
        await session.delete(audi)
        await session.flush()
        logger.info(
            f"Merged {audi.audi_no} into {location.audi_no} at {site.site_name} "
            f"({moved} cases moved)"
        )
        report.merged += 1
        return

    if location.unit_model and location.unit_model != UNKNOWN_MODEL_NO:
        model = await resolve_projector_model(session, location.unit_model)
        if model is not None:
            projector.projector_model_id = model.id

    old_no = audi.audi_no
    audi.audi_no = location.audi_no
    audi.site_id = site.id
    await session.flush()
    # Cases follow their audi to the corrected site
    await move_cases(session, audi.id, audi.id, site.id)
    logger.info(f"{old_no} -> {location.audi_no} at {site.site_name} (Serial: {serial})")
    report.fixed += 1


async def fix_auto_audis(
    session: AsyncSession,
    crossref: dict[str, ProjectorLocation],
) -> AutoAudiReport:
    """Rename, move or merge every placeholder audi the sheets can place.

    Each placeholder is its own unit of work; a failure is recorded and the
    pass continues.
    """
    result = await session.execute(
        select(AudiModel.id, AudiModel.audi_no)
        .where(AudiModel.audi_no.startswith(AUTO_AUDI_PREFIX))
        .order_by(AudiModel.created_at)
    )
    placeholders = result.all()

    report = AutoAudiReport(total=len(placeholders))
    logger.info(f"Found {report.total} placeholder audis")

    for audi_id, audi_no in placeholders:
        try:
            await fix_auto_audi(session, audi_id, crossref, report)
            await session.commit()
        except Exception as e:
            await session.rollback()
            report.errors.append(f"{audi_no}: {e}")
            logger.warning(f"Error fixing {audi_no}: {e}")

    return report
