"""Site-name typo repair and site merging."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cinecrm.canonical.normalize import correct_site_name, normalize_site_name
from cinecrm.db.models import AudiModel, DTRCaseModel, RMACaseModel, SiteModel
from cinecrm.reconcile.resolver import find_audi, move_cases

logger = logging.getLogger(__name__)


@dataclass
class SiteMergeResult:
    audis_moved: int = 0
    audis_merged: int = 0
    cases_moved: int = 0


@dataclass
class SiteTypoReport:
    renamed: list[str] = field(default_factory=list)
    merged: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


async def merge_sites(
    session: AsyncSession,
    source: SiteModel,
    target: SiteModel,
) -> SiteMergeResult:
    """Fold ``source`` into ``target`` and delete ``source``.

    Audis move across; an audi whose number already exists at the target is
    merged into that twin (cases moved, projector adopted when the twin has
    none). Remaining cases of the source site are repointed.
    """
    if source.id == target.id:
        raise ValueError(f'Cannot merge site "{source.site_name}" into itself')

    merge = SiteMergeResult()
    audis = await session.execute(select(AudiModel).where(AudiModel.site_id == source.id))
    for audi in audis.scalars().all():
        twin = await find_audi(session, target.id, audi.audi_no)
        if twin is None:
            audi.site_id = target.id
            merge.audis_moved += 1
            continue

        merge.cases_moved += await move_cases(session, audi.id, twin.id, target.id)
        if twin.projector_id is None:
            twin.projector_id = audi.projector_id
        await session.delete(audi)
        merge.audis_merged += 1
        logger.info(f"Merged audi {audi.audi_no} into its twin at {target.site_name}")

    await session.flush()

    for case_model in (DTRCaseModel, RMACaseModel):
        result = await session.execute(
            update(case_model)
            .where(case_model.site_id == source.id)
            .values(site_id=target.id)
        )
        merge.cases_moved += result.rowcount or 0

    await session.delete(source)
    await session.flush()
    logger.info(
        f'Merged site "{source.site_name}" into "{target.site_name}": '
        f"{merge.audis_moved} audis moved, {merge.audis_merged} merged, "
        f"{merge.cases_moved} cases moved"
    )
    return merge


async def _corrected_twin(
    session: AsyncSession, site_id: UUID, corrected: str
) -> SiteModel | None:
    """Oldest other site sharing the corrected name's matching key."""
    key = normalize_site_name(corrected)
    result = await session.execute(
        select(SiteModel).where(SiteModel.id != site_id).order_by(SiteModel.created_at)
    )
    for candidate in result.scalars():
        if normalize_site_name(candidate.site_name) == key:
            return candidate
    return None


async def fix_site_typos(session: AsyncSession) -> SiteTypoReport:
    """Correct known misspellings in site names.

    A site whose corrected name is already taken is merged into that site;
    otherwise it is renamed in place.
    """
    report = SiteTypoReport()
    result = await session.execute(select(SiteModel.id, SiteModel.site_name))
    sites = result.all()

    for site_id, site_name in sites:
        corrected = correct_site_name(site_name)
        if corrected == site_name:
            continue

        try:
            site = await session.get(SiteModel, site_id)
            if site is None:
                continue

            target = await _corrected_twin(session, site_id, corrected)
            if target is not None:
                await merge_sites(session, site, target)
                report.merged.append(f"{site_name} -> {corrected}")
            else:
                site.site_name = corrected
                await session.flush()
                report.renamed.append(f"{site_name} -> {corrected}")
                logger.info(f'Renamed site "{site_name}" -> "{corrected}"')
            await session.commit()
        except Exception as e:
            await session.rollback()
            report.errors.append(f"{site_name}: {e}")
            logger.warning(f'Could not fix site "{site_name}": {e}')

    return report
