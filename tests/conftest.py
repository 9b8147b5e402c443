"""Pytest configuration and fixtures for CineCRM tests.

Provides an in-memory database session, a seeded creator account and a
helper that writes workbooks into a temporary data directory.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cinecrm.config import reset_config
from cinecrm.db.models import (
    AudiModel,
    Base,
    DTRCaseModel,
    ProjectorModel,
    ProjectorModelModel,
    RMACaseModel,
    SiteModel,
    UserModel,
)

ADMIN_EMAIL = "admin@crm.com"


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    """Create in-memory database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest_asyncio.fixture()
async def admin_user(db_session: AsyncSession) -> UserModel:
    """The default creator every case import falls back to."""
    user = UserModel(email=ADMIN_EMAIL, name="Admin", role="admin")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Empty workbook directory."""
    directory = tmp_path / "data"
    directory.mkdir()
    return directory


@pytest.fixture
def write_workbook(data_dir: Path) -> Callable[[str, list[dict]], Path]:
    """Write rows as the first sheet of ``data_dir/<filename>``."""

    def _write(filename: str, rows: list[dict]) -> Path:
        path = data_dir / filename
        pd.DataFrame(rows).to_excel(path, index=False)
        return path

    return _write


class RecordFactory:
    """Inserts master data and cases directly, bypassing the importers."""

    def __init__(self, session: AsyncSession, user: UserModel):
        self.session = session
        self.user = user

    async def _add(self, record):
        self.session.add(record)
        await self.session.flush()
        return record

    async def site(self, name: str = "Demo Cinema") -> SiteModel:
        return await self._add(SiteModel(site_name=name))

    async def projector(self, serial: str, model_no: str = "M1") -> ProjectorModel:
        result = await self.session.execute(
            select(ProjectorModelModel).where(ProjectorModelModel.model_no == model_no)
        )
        model = result.scalar_one_or_none() or await self._add(ProjectorModelModel(model_no=model_no))
        return await self._add(ProjectorModel(serial_number=serial, projector_model_id=model.id))

    async def audi(
        self, site: SiteModel, audi_no: str, projector: ProjectorModel | None = None
    ) -> AudiModel:
        return await self._add(
            AudiModel(
                site_id=site.id,
                audi_no=audi_no,
                projector_id=projector.id if projector is not None else None,
            )
        )

    async def dtr(self, audi: AudiModel, case_number: str, serial: str | None) -> DTRCaseModel:
        return await self._add(
            DTRCaseModel(
                case_number=case_number,
                error_date=datetime(2024, 1, 1),
                site_id=audi.site_id,
                audi_id=audi.id,
                unit_model="M1",
                unit_serial=serial,
                nature_of_problem="No picture",
                created_by=self.user.id,
            )
        )

    async def rma(
        self,
        site: SiteModel,
        serial: str,
        audi: AudiModel | None = None,
        rma_number: str | None = None,
        call_log_number: str | None = None,
    ) -> RMACaseModel:
        return await self._add(
            RMACaseModel(
                rma_type="RMA",
                rma_number=rma_number,
                call_log_number=call_log_number,
                rma_raised_date=datetime(2024, 1, 1),
                customer_error_date=datetime(2024, 1, 1),
                site_id=site.id,
                audi_id=audi.id if audi is not None else None,
                product_name="M1",
                serial_number=serial,
                status="open",
                created_by=self.user.id,
            )
        )


@pytest_asyncio.fixture()
async def factory(db_session: AsyncSession, admin_user: UserModel) -> RecordFactory:
    return RecordFactory(db_session, admin_user)
