"""DTR and RMA case importers.

Per row: require a serial, resolve (or auto-create) the projector and its
audi, resolve the users, de-duplicate human identifiers with numeric
suffixes, normalize enumerated fields and insert the case.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinecrm.canonical.case_fields import (
    normalize_call_status,
    normalize_rma_status,
    normalize_rma_type,
    normalize_severity,
)
from cinecrm.canonical.normalize import normalize_identifier, normalize_serial
from cinecrm.db.models import (
    AudiModel,
    DTRCaseModel,
    PartModel,
    ProjectorModel,
    RMACaseModel,
    UserModel,
)
from cinecrm.ingestion.base_importer import BaseSheetImporter
from cinecrm.ingestion.reader import (
    DTR_CASES_FILE,
    RMA_CASES_FILE,
    first_text,
    first_value,
    parse_bool,
    parse_excel_date,
    parse_optional_date,
)
from cinecrm.ingestion.types import RowOutcome
from cinecrm.models import UNKNOWN_MODEL_NO, CaseType
from cinecrm.reconcile.resolver import (
    create_auto_audi,
    find_audi_for_projector,
    find_site,
    first_site,
    model_no_for,
    resolve_projector,
    unique_identifier,
)

DEFAULT_CREATOR_EMAIL = "admin@crm.com"


class CaseImporter(BaseSheetImporter):
    """Steps shared by the DTR and RMA importers."""

    case_type: CaseType
    model_field: str = "unit_model"

    def __init__(
        self,
        session: AsyncSession,
        default_creator_email: str = DEFAULT_CREATOR_EMAIL,
    ):
        super().__init__(session)
        self.default_creator_email = default_creator_email

    def serial(self, row: dict[str, Any]) -> str:
        return normalize_serial(first_value(row, "serial_number"))

    async def resolve_projector(self, row: dict[str, Any]) -> ProjectorModel:
        serial = self.serial(row)
        if not serial:
            raise ValueError("Serial number is required")

        projector, created = await resolve_projector(
            self.session,
            serial,
            model_no=first_text(row, self.model_field),
            notes=f"Auto-created during {self.case_type.value} import",
        )
        if created:
            self.logger.info(f"Auto-created projector: {serial}")
        return projector

    async def auto_audi(self, row: dict[str, Any], projector: ProjectorModel) -> AudiModel:
        """Placeholder audi at the row's site, or the first site on record."""
        site = await find_site(self.session, first_text(row, "site_name"))
        if site is None:
            site = await first_site(self.session)
        if site is None:
            raise ValueError("No sites available in database. Please import sites first.")

        audi = await create_auto_audi(self.session, site.id, projector.id)
        self.logger.info(f"Auto-created audi: {audi.audi_no} for projector {projector.serial_number}")
        return audi

    async def resolve_users(self, row: dict[str, Any]) -> tuple[UUID, UUID | None]:
        """Creator must exist; an unknown assignee is silently dropped."""
        creator_email = first_text(row, "created_by") or self.default_creator_email
        creator = await self._user_by_email(creator_email)
        if creator is None:
            raise ValueError(f'User "{creator_email}" not found')

        assignee_id = None
        assignee_email = first_text(row, "assigned_to")
        if assignee_email:
            assignee = await self._user_by_email(assignee_email)
            if assignee is not None:
                assignee_id = assignee.id

        return creator.id, assignee_id

    async def _user_by_email(self, email: str) -> UserModel | None:
        result = await self.session.execute(select(UserModel).where(UserModel.email == email))
        return result.scalar_one_or_none()

    async def dedupe(self, column, value: str | None) -> str | None:
        if value is None:
            return None
        unique = await unique_identifier(self.session, column, value)
        if unique != value:
            self.logger.info(f"{value} already exists, using {unique}")
        return unique


class DTRCaseImporter(CaseImporter):
    filename = DTR_CASES_FILE
    source_name = "DTR Cases"
    case_type = CaseType.DTR
    model_field = "unit_model"

    def label(self, row: dict[str, Any]) -> str:
        case_number = first_text(row, "case_number") or "N/A"
        return f'DTR "{case_number}" (Serial: {self.serial(row) or "Unknown"})'

    async def import_row(self, index: int, row: dict[str, Any], label: str) -> RowOutcome:
        projector = await self.resolve_projector(row)

        audi = await find_audi_for_projector(self.session, projector.id)
        if audi is None:
            audi = await self.auto_audi(row, projector)

        creator_id, assignee_id = await self.resolve_users(row)

        case_number = normalize_identifier(first_value(row, "case_number"))
        if case_number is None:
            raise ValueError("caseNumber is required")
        case_number = await self.dedupe(DTRCaseModel.case_number, case_number)

        nature_of_problem = first_text(row, "nature_of_problem")
        if not nature_of_problem:
            raise ValueError("natureOfProblem is required")

        error_date = first_value(row, "error_date")
        dtr = DTRCaseModel(
            case_number=case_number,
            error_date=parse_excel_date(error_date) if error_date is not None else datetime.utcnow(),
            site_id=audi.site_id,
            audi_id=audi.id,
            unit_model=await model_no_for(self.session, projector),
            unit_serial=projector.serial_number,
            nature_of_problem=nature_of_problem,
            action_taken=first_text(row, "action_taken") or "",
            remarks=first_text(row, "remarks"),
            call_status=normalize_call_status(first_value(row, "call_status")),
            case_severity=normalize_severity(first_value(row, "case_severity")),
            created_by=creator_id,
            assigned_to=assignee_id,
        )
        self.session.add(dtr)
        await self.session.flush()
        return RowOutcome.success(index, f'DTR "{case_number}" (Serial: {projector.serial_number})')


class RMACaseImporter(CaseImporter):
    filename = RMA_CASES_FILE
    source_name = "RMA Cases"
    case_type = CaseType.RMA
    model_field = "product_name"

    def label(self, row: dict[str, Any]) -> str:
        identifier = (
            normalize_identifier(first_value(row, "rma_number"))
            or normalize_identifier(first_value(row, "call_log_number"))
            or "N/A"
        )
        return f'RMA "{identifier}" (Serial: {self.serial(row) or "Unknown"})'

    async def resolve_location(
        self, row: dict[str, Any], projector: ProjectorModel
    ) -> tuple[UUID, UUID | None]:
        """(site_id, audi_id); the audi is optional when the row names a site."""
        audi = await find_audi_for_projector(self.session, projector.id)
        if audi is not None:
            return audi.site_id, audi.id

        site_name = first_text(row, "site_name")
        if site_name:
            site = await find_site(self.session, site_name)
            if site is None:
                raise ValueError(f'Site "{site_name}" not found')
            return site.id, None

        audi = await self.auto_audi(row, projector)
        return audi.site_id, audi.id

    async def canonical_part_name(
        self, projector: ProjectorModel, part_number: str | None, part_name: str | None
    ) -> str | None:
        if not part_number:
            return part_name
        result = await self.session.execute(
            select(PartModel).where(
                PartModel.part_number == part_number,
                PartModel.projector_model_id == projector.projector_model_id,
            )
        )
        part = result.scalar_one_or_none()
        if part is None:
            return part_name
        if part.part_name != part_name:
            self.logger.info(f'Using part name "{part.part_name}" for part number "{part_number}"')
        return part.part_name

    async def import_row(self, index: int, row: dict[str, Any], label: str) -> RowOutcome:
        projector = await self.resolve_projector(row)
        site_id, audi_id = await self.resolve_location(row, projector)
        creator_id, assignee_id = await self.resolve_users(row)

        call_log_number = await self.dedupe(
            RMACaseModel.call_log_number, normalize_identifier(first_value(row, "call_log_number"))
        )
        rma_number = await self.dedupe(
            RMACaseModel.rma_number, normalize_identifier(first_value(row, "rma_number"))
        )

        defective_part_number = first_text(row, "defective_part_number")
        defective_part_name = await self.canonical_part_name(
            projector, defective_part_number, first_text(row, "defective_part_name")
        )

        raised = first_value(row, "rma_raised_date")
        rma_raised_date = parse_excel_date(raised) if raised is not None else datetime.utcnow()
        customer_error = first_value(row, "customer_error_date")
        customer_error_date = (
            parse_excel_date(customer_error) if customer_error is not None else rma_raised_date
        )

        model_no = await model_no_for(self.session, projector)
        if model_no == UNKNOWN_MODEL_NO:
            product_name = first_text(row, "product_name") or model_no
        else:
            product_name = model_no

        rma = RMACaseModel(
            rma_type=normalize_rma_type(first_value(row, "rma_type")),
            call_log_number=call_log_number,
            rma_number=rma_number,
            rma_order_number=normalize_identifier(first_value(row, "rma_order_number")),
            rma_raised_date=rma_raised_date,
            customer_error_date=customer_error_date,
            site_id=site_id,
            audi_id=audi_id,
            product_name=product_name,
            product_part_number=first_text(row, "product_part_number"),
            serial_number=projector.serial_number,
            defect_details=first_text(row, "defect_details"),
            defective_part_name=defective_part_name,
            defective_part_number=defective_part_number,
            defective_part_serial=first_text(row, "defective_part_serial"),
            is_defective_part_dnr=parse_bool(first_value(row, "is_defective_part_dnr")),
            defective_part_dnr_reason=first_text(row, "defective_part_dnr_reason"),
            replaced_part_number=first_text(row, "replaced_part_number"),
            replaced_part_serial=first_text(row, "replaced_part_serial"),
            symptoms=first_text(row, "symptoms"),
            shipping_carrier=first_text(row, "shipping_carrier"),
            tracking_number_out=normalize_identifier(first_value(row, "tracking_number_out")),
            shipped_date=parse_optional_date(first_value(row, "shipped_date")),
            return_tracking_number=normalize_identifier(first_value(row, "return_tracking_number")),
            return_shipped_date=parse_optional_date(first_value(row, "return_shipped_date")),
            return_shipped_through=first_text(row, "return_shipped_through"),
            status=normalize_rma_status(first_value(row, "status")),
            created_by=creator_id,
            assigned_to=assignee_id,
            notes=first_text(row, "notes"),
        )
        self.session.add(rma)
        await self.session.flush()
        identifier = rma_number or call_log_number or "N/A"
        return RowOutcome.success(index, f'RMA "{identifier}" (Serial: {projector.serial_number})')
