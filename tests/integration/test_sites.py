"""Integration tests for site typo repair and site merging."""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinecrm.db.models import AudiModel, SiteModel
from cinecrm.reconcile.sites import fix_site_typos, merge_sites

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_typo_renamed_in_place(db_session: AsyncSession, factory):
    site = await factory.site("Ghandhinagar  Mall")
    await db_session.commit()

    report = await fix_site_typos(db_session)

    assert report.renamed == ["Ghandhinagar  Mall -> Gandhinagar Mall"]
    await db_session.refresh(site)
    assert site.site_name == "Gandhinagar Mall"


@pytest.mark.asyncio
async def test_typo_merged_into_corrected_site(db_session: AsyncSession, factory):
    correct = await factory.site("Cinepolis Gujarat")
    typo = await factory.site("Cinepolis Gurjrat")
    projector = await factory.projector("SN-1")
    twin = await factory.audi(correct, "A1")
    colliding = await factory.audi(typo, "A1", projector)
    lonely = await factory.audi(typo, "B1")
    moved_case = await factory.dtr(colliding, "C1", "SN-1")
    site_case = await factory.dtr(lonely, "C2", "SN-9")
    await db_session.commit()

    report = await fix_site_typos(db_session)

    assert report.merged == ["Cinepolis Gurjrat -> Cinepolis Gujarat"]
    assert report.errors == []
    names = (await db_session.execute(select(SiteModel.site_name))).scalars().all()
    assert names == ["Cinepolis Gujarat"]

    assert await db_session.get(AudiModel, colliding.id) is None
    for record in (twin, lonely, moved_case, site_case):
        await db_session.refresh(record)
    assert twin.projector_id == projector.id
    assert lonely.site_id == correct.id
    assert (moved_case.audi_id, moved_case.site_id) == (twin.id, correct.id)
    assert site_case.site_id == correct.id


@pytest.mark.asyncio
async def test_typo_merged_into_twin_differing_in_case(db_session: AsyncSession, factory):
    correct = await factory.site("Gujarat Mall")
    typo = await factory.site("GURJRAT MALL")
    audi = await factory.audi(typo, "1")
    await db_session.commit()

    report = await fix_site_typos(db_session)

    assert report.renamed == []
    assert report.merged == ["GURJRAT MALL -> Gujarat MALL"]
    names = (await db_session.execute(select(SiteModel.site_name))).scalars().all()
    assert names == ["Gujarat Mall"]
    await db_session.refresh(audi)
    assert audi.site_id == correct.id


@pytest.mark.asyncio
async def test_clean_names_untouched(db_session: AsyncSession, factory):
    await factory.site("PVR Ahmedabad")
    await db_session.commit()

    report = await fix_site_typos(db_session)

    assert (report.renamed, report.merged) == ([], [])


@pytest.mark.asyncio
async def test_site_cannot_merge_into_itself(db_session: AsyncSession, factory):
    site = await factory.site()

    with pytest.raises(ValueError, match="into itself"):
        await merge_sites(db_session, site, site)


@pytest.mark.asyncio
async def test_merge_counts(db_session: AsyncSession, factory):
    source = await factory.site("Old Name")
    target = await factory.site("New Name")
    await factory.audi(target, "1")
    audi_1 = await factory.audi(source, "1")
    await factory.audi(source, "2")
    await factory.dtr(audi_1, "C1", "SN-1")

    result = await merge_sites(db_session, source, target)

    assert (result.audis_moved, result.audis_merged, result.cases_moved) == (1, 1, 1)
    assert await db_session.get(SiteModel, source.id) is None
