"""Integration tests for the find-or-create helpers and audi linking."""

from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cinecrm.db.models import (
    AudiModel,
    AuditLogModel,
    DTRCaseModel,
    ProjectorModelModel,
    SiteModel,
    UserModel,
)
from cinecrm.models import CaseType
from cinecrm.reconcile.resolver import (
    create_auto_audi,
    delete_cases,
    find_site,
    link_audi,
    next_auto_audi_no,
    resolve_projector,
    resolve_projector_model,
    resolve_site,
    unique_identifier,
)

pytestmark = pytest.mark.integration


async def _count(session: AsyncSession, model) -> int:
    return (await session.execute(select(func.count(model.id)))).scalar_one()


async def _dtr(session: AsyncSession, audi: AudiModel, user: UserModel, number: str) -> DTRCaseModel:
    case = DTRCaseModel(
        case_number=number,
        error_date=datetime(2024, 1, 1),
        site_id=audi.site_id,
        audi_id=audi.id,
        unit_model="M1",
        unit_serial="SN-1",
        nature_of_problem="No picture",
        created_by=user.id,
    )
    session.add(case)
    await session.flush()
    return case


@pytest.mark.asyncio
async def test_resolve_site_is_idempotent_across_spellings(db_session: AsyncSession):
    first = await resolve_site(db_session, "Cinepolis Gujarat")
    again = await resolve_site(db_session, "  cinepolis   GURJRAT ")

    assert again.id == first.id
    assert await _count(db_session, SiteModel) == 1


@pytest.mark.asyncio
async def test_find_site_blank_name(db_session: AsyncSession):
    assert await find_site(db_session, "   ") is None
    with pytest.raises(ValueError):
        await resolve_site(db_session, "")


@pytest.mark.asyncio
async def test_resolve_projector_model_skips_placeholder(db_session: AsyncSession):
    assert await resolve_projector_model(db_session, "UNKNOWN") is None
    assert await resolve_projector_model(db_session, "  ") is None

    model = await resolve_projector_model(db_session, "CP2220")
    assert model.manufacturer == "Unknown"
    assert (await resolve_projector_model(db_session, "CP2220")).id == model.id


@pytest.mark.asyncio
async def test_resolve_projector_falls_back_to_unknown_model(db_session: AsyncSession):
    projector, created = await resolve_projector(db_session, " sn-1 ")
    assert created
    assert projector.serial_number == "SN-1"

    model = await db_session.get(ProjectorModelModel, projector.projector_model_id)
    assert model.model_no == "UNKNOWN"

    same, created_again = await resolve_projector(db_session, "SN-1", model_no="M1")
    assert same.id == projector.id
    assert not created_again


@pytest.mark.asyncio
async def test_resolve_projector_requires_serial(db_session: AsyncSession):
    with pytest.raises(ValueError, match="Serial number is required"):
        await resolve_projector(db_session, None)


@pytest.mark.asyncio
async def test_auto_audi_numbers_follow_count(db_session: AsyncSession):
    site = await resolve_site(db_session, "Demo Cinema")
    projector, _ = await resolve_projector(db_session, "SN-1")

    db_session.add(AudiModel(site_id=site.id, audi_no="A1"))
    await db_session.flush()
    assert await next_auto_audi_no(db_session) == "AUTO-2"

    audi = await create_auto_audi(db_session, site.id, projector.id)
    assert audi.audi_no == "AUTO-2"
    assert audi.projector_id == projector.id


@pytest.mark.asyncio
async def test_auto_audi_number_skips_taken_values(db_session: AsyncSession):
    site = await resolve_site(db_session, "Demo Cinema")
    db_session.add(AudiModel(site_id=site.id, audi_no="AUTO-1"))
    await db_session.flush()

    assert await next_auto_audi_no(db_session) == "AUTO-2"


@pytest.mark.asyncio
async def test_link_audi_merges_placeholder(db_session: AsyncSession, admin_user: UserModel):
    site = await resolve_site(db_session, "Demo Cinema")
    projector, _ = await resolve_projector(db_session, "SN-1")
    placeholder = await create_auto_audi(db_session, site.id, projector.id)
    case = await _dtr(db_session, placeholder, admin_user, "C1")

    result = await link_audi(db_session, site, "A1", projector)
    await db_session.commit()

    assert result.created
    assert result.merged_audi_nos == [placeholder.audi_no]
    assert result.cases_moved == 1
    assert await db_session.get(AudiModel, placeholder.id) is None

    await db_session.refresh(case)
    assert case.audi_id == result.audi.id


@pytest.mark.asyncio
async def test_link_audi_detaches_real_previous_holder(db_session: AsyncSession):
    site = await resolve_site(db_session, "Demo Cinema")
    projector, _ = await resolve_projector(db_session, "SN-1")
    old = AudiModel(site_id=site.id, audi_no="A1", projector_id=projector.id)
    db_session.add(old)
    await db_session.flush()

    result = await link_audi(db_session, site, "A2", projector)
    await db_session.commit()

    assert result.detached_audi_nos == ["A1"]
    await db_session.refresh(old)
    assert old.projector_id is None
    assert result.audi.projector_id == projector.id


@pytest.mark.asyncio
async def test_link_audi_overwrites_existing_target(db_session: AsyncSession):
    site = await resolve_site(db_session, "Demo Cinema")
    first, _ = await resolve_projector(db_session, "SN-1")
    second, _ = await resolve_projector(db_session, "SN-2")
    target = AudiModel(site_id=site.id, audi_no="A1", projector_id=first.id)
    db_session.add(target)
    await db_session.flush()

    result = await link_audi(db_session, site, "A1", second)

    assert not result.created
    assert result.audi.id == target.id
    assert target.projector_id == second.id
    assert await _count(db_session, AudiModel) == 1


@pytest.mark.asyncio
async def test_unique_identifier_appends_suffixes(db_session: AsyncSession, admin_user: UserModel):
    site = await resolve_site(db_session, "Demo Cinema")
    audi = AudiModel(site_id=site.id, audi_no="A1")
    db_session.add(audi)
    await db_session.flush()

    assert await unique_identifier(db_session, DTRCaseModel.case_number, "C") == "C"
    await _dtr(db_session, audi, admin_user, "C")
    assert await unique_identifier(db_session, DTRCaseModel.case_number, "C") == "C-1"
    await _dtr(db_session, audi, admin_user, "C-1")
    assert await unique_identifier(db_session, DTRCaseModel.case_number, "C") == "C-2"


@pytest.mark.asyncio
async def test_delete_cases_removes_audit_logs(db_session: AsyncSession, admin_user: UserModel):
    site = await resolve_site(db_session, "Demo Cinema")
    audi = AudiModel(site_id=site.id, audi_no="A1")
    db_session.add(audi)
    await db_session.flush()
    doomed = await _dtr(db_session, audi, admin_user, "C1")
    kept = await _dtr(db_session, audi, admin_user, "C2")
    db_session.add_all(
        [
            AuditLogModel(case_id=doomed.id, case_type="DTR", action="created"),
            AuditLogModel(case_id=kept.id, case_type="DTR", action="created"),
            AuditLogModel(case_id=doomed.id, case_type="RMA", action="created"),
        ]
    )
    await db_session.commit()

    deleted = await delete_cases(db_session, CaseType.DTR, [doomed.id])
    await db_session.commit()

    assert deleted == 1
    assert await _count(db_session, DTRCaseModel) == 1
    remaining = (await db_session.execute(select(AuditLogModel.case_type))).scalars().all()
    # The RMA-typed row belongs to a different case table
    assert sorted(remaining) == ["DTR", "RMA"]
