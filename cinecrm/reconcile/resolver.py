"""Find-or-create helpers for the master-data hierarchy.

All lookups go to the database; nothing is cached between rows so that a
rolled-back row never leaves stale objects behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from cinecrm.canonical.normalize import normalize_serial, normalize_site_name
from cinecrm.db.models import (
    AudiModel,
    AuditLogModel,
    DTRCaseModel,
    ProjectorModel,
    ProjectorModelModel,
    RMACaseModel,
    SiteModel,
)
from cinecrm.models import AUTO_AUDI_PREFIX, UNKNOWN_MODEL_NO, CaseType, is_auto_audi

logger = logging.getLogger(__name__)


@dataclass
class LinkResult:
    """Outcome of ``link_audi``."""

    audi: AudiModel
    created: bool = False
    merged_audi_nos: list[str] | None = None
    detached_audi_nos: list[str] | None = None
    cases_moved: int = 0


# --- Sites ---------------------------------------------------------------


async def find_site(session: AsyncSession, name: str | None) -> SiteModel | None:
    """Exact name match first, then the normalized (typo-tolerant) key."""
    if not name or not name.strip():
        return None

    result = await session.execute(
        select(SiteModel).where(SiteModel.site_name == name.strip()).limit(1)
    )
    site = result.scalar_one_or_none()
    if site is not None:
        return site

    key = normalize_site_name(name)
    result = await session.execute(select(SiteModel).order_by(SiteModel.created_at))
    for candidate in result.scalars():
        if normalize_site_name(candidate.site_name) == key:
            return candidate
    return None


async def resolve_site(session: AsyncSession, name: str) -> SiteModel:
    """Find a site by name or create it under the name as given."""
    site = await find_site(session, name)
    if site is not None:
        return site

    if not name or not name.strip():
        raise ValueError("Site name is required")

    site = SiteModel(site_name=name.strip())
    session.add(site)
    await session.flush()
    logger.info(f"Created site: {site.site_name}")
    return site


async def first_site(session: AsyncSession) -> SiteModel | None:
    result = await session.execute(select(SiteModel).order_by(SiteModel.created_at).limit(1))
    return result.scalar_one_or_none()


# --- Projector models ----------------------------------------------------


async def find_projector_model(
    session: AsyncSession, model_no: str | None
) -> ProjectorModelModel | None:
    if not model_no:
        return None
    result = await session.execute(
        select(ProjectorModelModel).where(ProjectorModelModel.model_no == model_no.strip())
    )
    return result.scalar_one_or_none()


async def resolve_projector_model(
    session: AsyncSession, model_no: str | None
) -> ProjectorModelModel | None:
    """Find or lazily create a model; None when no real model number is given."""
    model_no = (model_no or "").strip()
    if not model_no or model_no == UNKNOWN_MODEL_NO:
        return None

    model = await find_projector_model(session, model_no)
    if model is not None:
        return model

    model = ProjectorModelModel(
        model_no=model_no,
        manufacturer="Unknown",
        specifications="Auto-created from Excel data",
    )
    session.add(model)
    await session.flush()
    logger.info(f"Created projector model: {model_no}")
    return model


async def unknown_model(session: AsyncSession) -> ProjectorModelModel:
    """The shared placeholder model for projectors with no derivable model."""
    model = await find_projector_model(session, UNKNOWN_MODEL_NO)
    if model is None:
        model = ProjectorModelModel(
            model_no=UNKNOWN_MODEL_NO,
            manufacturer="Unknown",
            specifications="Auto-created default model",
        )
        session.add(model)
        await session.flush()
    return model


# --- Projectors ----------------------------------------------------------


async def find_projector(session: AsyncSession, serial: object) -> ProjectorModel | None:
    serial = normalize_serial(serial)
    if not serial:
        return None

    result = await session.execute(
        select(ProjectorModel).where(ProjectorModel.serial_number == serial)
    )
    projector = result.scalar_one_or_none()
    if projector is not None:
        return projector

    # Rows written before serials were normalized
    result = await session.execute(
        select(ProjectorModel)
        .where(func.upper(func.trim(ProjectorModel.serial_number)) == serial)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def resolve_projector(
    session: AsyncSession,
    serial: object,
    model_no: str | None = None,
    notes: str | None = None,
) -> tuple[ProjectorModel, bool]:
    """Find a projector by serial or create it.

    Returns:
        Tuple of (projector, created)

    Raises:
        ValueError: If the serial number is blank
    """
    serial = normalize_serial(serial)
    if not serial:
        raise ValueError("Serial number is required")

    projector = await find_projector(session, serial)
    if projector is not None:
        return projector, False

    model = await resolve_projector_model(session, model_no)
    if model is None:
        model = await unknown_model(session)

    projector = ProjectorModel(
        serial_number=serial,
        projector_model_id=model.id,
        status="active",
        notes=notes,
    )
    session.add(projector)
    await session.flush()
    logger.info(f"Auto-created projector: {serial} ({model.model_no})")
    return projector, True


async def model_no_for(session: AsyncSession, projector: ProjectorModel) -> str:
    model = await session.get(ProjectorModelModel, projector.projector_model_id)
    return model.model_no if model is not None else UNKNOWN_MODEL_NO


# --- Audis ---------------------------------------------------------------


async def find_audi_for_projector(
    session: AsyncSession, projector_id: UUID
) -> AudiModel | None:
    result = await session.execute(
        select(AudiModel)
        .where(AudiModel.projector_id == projector_id)
        .order_by(AudiModel.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_audi(session: AsyncSession, site_id: UUID, audi_no: str) -> AudiModel | None:
    result = await session.execute(
        select(AudiModel).where(AudiModel.site_id == site_id, AudiModel.audi_no == audi_no)
    )
    return result.scalar_one_or_none()


async def next_auto_audi_no(session: AsyncSession) -> str:
    """``AUTO-<n>`` with n = audi count + 1, bumped past existing numbers.

    Computed from a plain count with no lock: two imports running at once
    can pick the same number.
    """
    count = (await session.execute(select(func.count(AudiModel.id)))).scalar_one()
    n = count + 1
    while True:
        audi_no = f"{AUTO_AUDI_PREFIX}{n}"
        taken = await session.execute(
            select(AudiModel.id).where(AudiModel.audi_no == audi_no).limit(1)
        )
        if taken.first() is None:
            return audi_no
        n += 1


async def create_auto_audi(
    session: AsyncSession, site_id: UUID, projector_id: UUID
) -> AudiModel:
    audi = AudiModel(
        site_id=site_id,
        audi_no=await next_auto_audi_no(session),
        projector_id=projector_id,
    )
    session.add(audi)
    await session.flush()
    logger.info(f"Auto-created audi: {audi.audi_no}")
    return audi


async def link_audi(
    session: AsyncSession,
    site: SiteModel,
    audi_no: str,
    projector: ProjectorModel,
) -> LinkResult:
    """Attach ``projector`` to audi (site, audi_no), creating the audi if needed.

    Any other audi still holding the projector loses it: ``AUTO-*``
    placeholders hand their cases over to the target and are deleted,
    real audis are just detached.
    """
    audi_no = audi_no.strip()
    target = await find_audi(session, site.id, audi_no)
    created = target is None

    if target is None:
        target = AudiModel(site_id=site.id, audi_no=audi_no, projector_id=projector.id)
        session.add(target)
        await session.flush()
    else:
        target.projector_id = projector.id

    result = LinkResult(audi=target, created=created, merged_audi_nos=[], detached_audi_nos=[])

    holders = await session.execute(
        select(AudiModel).where(
            AudiModel.projector_id == projector.id,
            AudiModel.id != target.id,
        )
    )
    for previous in holders.scalars().all():
        if is_auto_audi(previous.audi_no):
            moved = await move_cases(session, previous.id, target.id, target.site_id)
            result.cases_moved += moved
            result.merged_audi_nos.append(previous.audi_no)
            await session.delete(previous)
            logger.info(
                f"Merged placeholder {previous.audi_no} into {audi_no} ({moved} cases moved)"
            )
        else:
            previous.projector_id = None
            result.detached_audi_nos.append(previous.audi_no)
            logger.info(f"Detached projector {projector.serial_number} from audi {previous.audi_no}")

    await session.flush()
    return result


async def move_cases(
    session: AsyncSession,
    from_audi_id: UUID,
    to_audi_id: UUID,
    to_site_id: UUID | None = None,
) -> int:
    """Repoint every DTR/RMA case of one audi at another. Returns the count moved."""
    values: dict = {"audi_id": to_audi_id}
    if to_site_id is not None:
        values["site_id"] = to_site_id

    moved = 0
    for case_model in (DTRCaseModel, RMACaseModel):
        result = await session.execute(
            update(case_model)
            .where(case_model.audi_id == from_audi_id)
            .values(**values)
        )
        moved += result.rowcount or 0
    return moved


# --- Cases ---------------------------------------------------------------


async def unique_identifier(
    session: AsyncSession, column: InstrumentedAttribute, value: str
) -> str:
    """Append ``-1``, ``-2``... to ``value`` until no row holds it in ``column``."""
    model = column.class_
    candidate = value
    suffix = 0
    while True:
        hit = await session.execute(select(model.id).where(column == candidate).limit(1))
        if hit.first() is None:
            return candidate
        suffix += 1
        candidate = f"{value}-{suffix}"


DELETE_BATCH = 500


async def delete_cases(
    session: AsyncSession,
    case_type: CaseType,
    case_ids: list[UUID],
) -> int:
    """Delete cases of one type together with their audit-log rows.

    Audit logs carry no foreign key to the case tables, so they go first and
    explicitly. Returns the number of cases deleted.
    """
    case_model = DTRCaseModel if case_type is CaseType.DTR else RMACaseModel
    deleted = 0
    for start in range(0, len(case_ids), DELETE_BATCH):
        batch = case_ids[start : start + DELETE_BATCH]
        await session.execute(
            delete(AuditLogModel)
            .where(AuditLogModel.case_id.in_(batch), AuditLogModel.case_type == case_type.value)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(
            delete(case_model)
            .where(case_model.id.in_(batch))
            .execution_options(synchronize_session=False)
        )
        deleted += result.rowcount or 0
    return deleted
