"""Master-data workbook importers: sites, projector models, projectors, audis."""

from __future__ import annotations

from typing import Any

from cinecrm.canonical.normalize import normalize_serial
from cinecrm.db.models import AudiModel, ProjectorModel, ProjectorModelModel, SiteModel
from cinecrm.ingestion.base_importer import BaseSheetImporter
from cinecrm.ingestion.reader import (
    AUDIS_FILE,
    PROJECTOR_MODELS_FILE,
    PROJECTORS_FILE,
    SITES_FILE,
    first_text,
    first_value,
    parse_excel_date,
)
from cinecrm.ingestion.types import RowOutcome
from cinecrm.reconcile.resolver import (
    find_audi,
    find_projector,
    find_projector_model,
    find_site,
    link_audi,
    resolve_projector_model,
    resolve_site,
    unknown_model,
)


class SiteImporter(BaseSheetImporter):
    filename = SITES_FILE
    source_name = "Sites"

    def label(self, row: dict[str, Any]) -> str:
        return f'Site "{first_text(row, "site_name") or "Unknown"}"'

    async def import_row(self, index: int, row: dict[str, Any], label: str) -> RowOutcome:
        site_name = first_text(row, "site_name")
        if not site_name:
            raise ValueError("Site name is required")

        if await find_site(self.session, site_name) is not None:
            return RowOutcome.already_exists(index, label)

        self.session.add(SiteModel(site_name=site_name))
        await self.session.flush()
        return RowOutcome.success(index, label)


class ProjectorModelImporter(BaseSheetImporter):
    filename = PROJECTOR_MODELS_FILE
    source_name = "Projector Models"

    def label(self, row: dict[str, Any]) -> str:
        return f'Model "{first_text(row, "model_no") or "Unknown"}"'

    async def import_row(self, index: int, row: dict[str, Any], label: str) -> RowOutcome:
        model_no = first_text(row, "model_no")
        if not model_no:
            raise ValueError("Model number is required")

        if await find_projector_model(self.session, model_no) is not None:
            return RowOutcome.already_exists(index, label)

        self.session.add(
            ProjectorModelModel(
                model_no=model_no,
                manufacturer=first_text(row, "manufacturer"),
                specifications=first_text(row, "specifications"),
            )
        )
        await self.session.flush()
        return RowOutcome.success(index, label)


class ProjectorImporter(BaseSheetImporter):
    filename = PROJECTORS_FILE
    source_name = "Projectors"

    def label(self, row: dict[str, Any]) -> str:
        serial = normalize_serial(first_value(row, "serial_number"))
        return f'Projector "{serial or "Unknown"}"'

    async def import_row(self, index: int, row: dict[str, Any], label: str) -> RowOutcome:
        serial = normalize_serial(first_value(row, "serial_number"))
        if not serial:
            raise ValueError("Serial number is required")

        if await find_projector(self.session, serial) is not None:
            return RowOutcome.already_exists(index, label)

        model = await resolve_projector_model(self.session, first_text(row, "model_no"))
        if model is None:
            model = await unknown_model(self.session)

        installation_date = first_value(row, "installation_date")
        self.session.add(
            ProjectorModel(
                serial_number=serial,
                projector_model_id=model.id,
                status=(first_text(row, "status") or "active").lower(),
                installation_date=(
                    parse_excel_date(installation_date) if installation_date is not None else None
                ),
                notes=first_text(row, "notes"),
            )
        )
        await self.session.flush()
        return RowOutcome.success(index, label)


class AudiImporter(BaseSheetImporter):
    filename = AUDIS_FILE
    source_name = "Audis"

    def label(self, row: dict[str, Any]) -> str:
        audi_no = first_text(row, "audi_no") or "Unknown"
        site_name = first_text(row, "site_name") or "Unknown"
        return f'Audi "{audi_no}" at "{site_name}"'

    async def import_row(self, index: int, row: dict[str, Any], label: str) -> RowOutcome:
        audi_no = first_text(row, "audi_no")
        if not audi_no:
            raise ValueError("Audi number is required")
        site_name = first_text(row, "site_name")
        if not site_name:
            raise ValueError("Site name is required")

        site = await resolve_site(self.session, site_name)
        projector = await find_projector(self.session, first_value(row, "serial_number"))

        existing = await find_audi(self.session, site.id, audi_no)
        if projector is None:
            if existing is not None:
                return RowOutcome.already_exists(index, label)
            self.session.add(AudiModel(site_id=site.id, audi_no=audi_no))
            await self.session.flush()
            return RowOutcome.success(index, label)

        if existing is not None and existing.projector_id == projector.id:
            return RowOutcome.already_exists(index, label)

        result = await link_audi(self.session, site, audi_no, projector)
        message = ""
        if result.merged_audi_nos:
            message = f"merged {', '.join(result.merged_audi_nos)} ({result.cases_moved} cases moved)"
        return RowOutcome.success(index, label, message)
