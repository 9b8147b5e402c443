"""Integration tests for the DTR and RMA case importers."""

from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinecrm.db.models import (
    AudiModel,
    DTRCaseModel,
    PartModel,
    ProjectorModel,
    ProjectorModelModel,
    RMACaseModel,
    SiteModel,
    UserModel,
)
from cinecrm.ingestion.cases import DTRCaseImporter, RMACaseImporter

pytestmark = pytest.mark.integration


async def _site(session: AsyncSession, name: str = "Demo Cinema") -> SiteModel:
    site = SiteModel(site_name=name)
    session.add(site)
    await session.commit()
    return site


def _dtr_row(case_number="C", serial="SN-1", **extra) -> dict:
    row = {
        "caseNumber": case_number,
        "unitSerial": serial,
        "natureOfProblem": "No picture",
        "errorDate": 45000,
    }
    row.update(extra)
    return row


@pytest.mark.asyncio
async def test_case_numbers_are_suffixed(db_session: AsyncSession, admin_user: UserModel):
    await _site(db_session)
    importer = DTRCaseImporter(db_session)

    stats = await importer.run(rows=[_dtr_row(), _dtr_row(), _dtr_row()])

    assert stats.success == 3, stats.errors
    numbers = (await db_session.execute(select(DTRCaseModel.case_number))).scalars().all()
    assert sorted(numbers) == ["C", "C-1", "C-2"]


@pytest.mark.asyncio
async def test_dtr_without_audi_gets_placeholder(db_session: AsyncSession, admin_user: UserModel):
    site = await _site(db_session)

    stats = await DTRCaseImporter(db_session).run(
        rows=[_dtr_row(serial=" sn-7 ", unitModel="CP2220", callStatus="Observation",
                       caseSeverity="urgent")]
    )

    assert stats.success == 1, stats.errors
    dtr = (await db_session.execute(select(DTRCaseModel))).scalar_one()
    audi = await db_session.get(AudiModel, dtr.audi_id)
    projector = await db_session.get(ProjectorModel, audi.projector_id)

    assert audi.audi_no == "AUTO-1"
    assert audi.site_id == site.id
    assert projector.serial_number == "SN-7"
    assert dtr.unit_serial == "SN-7"
    assert dtr.unit_model == "CP2220"
    assert dtr.call_status == "open"
    assert dtr.case_severity == "medium"
    assert dtr.error_date == datetime(2023, 3, 15)


@pytest.mark.asyncio
async def test_dtr_prefers_site_named_on_row(db_session: AsyncSession, admin_user: UserModel):
    await _site(db_session, "First Site")
    named = await _site(db_session, "Cinepolis Gujarat")

    await DTRCaseImporter(db_session).run(rows=[_dtr_row(siteName="Cinepolis Gurjrat")])

    dtr = (await db_session.execute(select(DTRCaseModel))).scalar_one()
    assert dtr.site_id == named.id


@pytest.mark.asyncio
async def test_dtr_fails_without_sites(db_session: AsyncSession, admin_user: UserModel):
    stats = await DTRCaseImporter(db_session).run(rows=[_dtr_row()])

    assert stats.failed == 1
    assert "No sites available" in stats.errors[0]


@pytest.mark.asyncio
async def test_row_failures_are_isolated(db_session: AsyncSession, admin_user: UserModel):
    await _site(db_session)
    rows = [
        _dtr_row(case_number="OK-1"),
        _dtr_row(case_number="BAD", serial=None),
        _dtr_row(case_number="BAD-DATE", errorDate="not a date"),
        _dtr_row(case_number="NOBODY", createdBy="ghost@crm.com"),
        _dtr_row(case_number="OK-2", assignedTo="ghost@crm.com"),
    ]

    stats = await DTRCaseImporter(db_session).run(rows=rows)

    assert stats.total == 5
    assert stats.success == 2
    messages = " | ".join(stats.errors)
    assert "Serial number is required" in messages
    assert "Invalid date" in messages
    assert 'User "ghost@crm.com" not found' in messages

    numbers = (await db_session.execute(select(DTRCaseModel.case_number))).scalars().all()
    assert sorted(numbers) == ["OK-1", "OK-2"]
    ok2 = (
        await db_session.execute(select(DTRCaseModel).where(DTRCaseModel.case_number == "OK-2"))
    ).scalar_one()
    assert ok2.assigned_to is None


@pytest.mark.asyncio
async def test_failed_row_leaves_no_projector_behind(
    db_session: AsyncSession, admin_user: UserModel
):
    await _site(db_session)

    await DTRCaseImporter(db_session).run(rows=[_dtr_row(serial="SN-X", natureOfProblem=None)])

    projectors = (await db_session.execute(select(ProjectorModel))).scalars().all()
    assert projectors == []


@pytest.mark.asyncio
async def test_rma_with_site_but_no_audi(db_session: AsyncSession, admin_user: UserModel):
    site = await _site(db_session)
    row = {
        "serialNumber": "SN-5",
        "siteName": "Demo Cinema",
        "rmaNumber": "R-100",
        "callLogNumber": "-",
        "rmaRaisedDate": 45000,
        "status": "RMA Part return to CDS",
        "shippedDate": "DNR",
        "trackingNumberOut": '"-"',
        "isDefectivePartDNR": "Yes",
        "productName": "Lamp Unit",
    }

    stats = await RMACaseImporter(db_session).run(rows=[row])

    assert stats.success == 1, stats.errors
    rma = (await db_session.execute(select(RMACaseModel))).scalar_one()
    assert rma.site_id == site.id
    assert rma.audi_id is None
    assert rma.rma_number == "R-100"
    assert rma.call_log_number is None
    assert rma.status == "faulty_in_transit_to_cds"
    assert rma.shipped_date is None
    assert rma.tracking_number_out is None
    assert rma.is_defective_part_dnr is True
    assert rma.product_name == "Lamp Unit"
    assert rma.customer_error_date == datetime(2023, 3, 15)


@pytest.mark.asyncio
async def test_rma_unknown_site_fails(db_session: AsyncSession, admin_user: UserModel):
    await _site(db_session)

    stats = await RMACaseImporter(db_session).run(
        rows=[{"serialNumber": "SN-5", "siteName": "Nowhere Multiplex"}]
    )

    assert stats.failed == 1
    assert 'Site "Nowhere Multiplex" not found' in stats.errors[0]


@pytest.mark.asyncio
async def test_rma_identifiers_are_suffixed(db_session: AsyncSession, admin_user: UserModel):
    await _site(db_session)
    row = {"serialNumber": "SN-5", "rmaNumber": "R-1", "callLogNumber": "CL-1"}

    await RMACaseImporter(db_session).run(rows=[row, dict(row)])

    result = await db_session.execute(
        select(RMACaseModel.rma_number, RMACaseModel.call_log_number).order_by(
            RMACaseModel.rma_number
        )
    )
    assert [tuple(r) for r in result.all()] == [("R-1", "CL-1"), ("R-1-1", "CL-1-1")]


@pytest.mark.asyncio
async def test_rma_uses_canonical_part_name(db_session: AsyncSession, admin_user: UserModel):
    await _site(db_session)
    model = ProjectorModelModel(model_no="M1")
    db_session.add(model)
    await db_session.flush()
    db_session.add(PartModel(part_name="Light Engine", part_number="P-1", projector_model_id=model.id))
    await db_session.commit()

    await RMACaseImporter(db_session).run(
        rows=[
            {
                "serialNumber": "SN-5",
                "productName": "M1",
                "defectivePartNumber": "P-1",
                "defectivePartName": "light engin",
            }
        ]
    )

    rma = (await db_session.execute(select(RMACaseModel))).scalar_one()
    assert rma.defective_part_name == "Light Engine"
    assert rma.product_name == "M1"
