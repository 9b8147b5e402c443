"""Workbook loading and loosely-typed row access.

Field workbooks spell the same column several ways (``serialNumber``,
``SerialNumber``, ``serial_number``...). Every lookup goes through the
``COLUMN_ALIASES`` table and ``first_value``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import pandas as pd

from cinecrm.canonical.normalize import cell_text

logger = logging.getLogger(__name__)

SITES_FILE = "sites.xlsx"
PROJECTOR_MODELS_FILE = "projector_models.xlsx"
PROJECTORS_FILE = "projectors.xlsx"
AUDIS_FILE = "audis.xlsx"
DTR_CASES_FILE = "dtr_cases.xlsx"
RMA_CASES_FILE = "rma_cases.xlsx"

# Excel's day zero once the 1900 leap-year bug is accounted for
EXCEL_EPOCH = datetime(1899, 12, 30)

COLUMN_ALIASES: dict[str, list[str]] = {
    "serial_number": [
        "serialNumber", "SerialNumber", "serial_number",
        "unitSerial", "UnitSerial", "unit_serial",
    ],
    "site_name": ["siteName", "SiteName", "site_name"],
    "audi_no": ["audiNo", "AudiNo", "audi_no", "audiNumber", "AudiNumber"],
    "model_no": ["modelNo", "ModelNo", "model_no", "unitModel", "UnitModel", "unit_model"],
    "unit_model": ["unitModel", "UnitModel", "unit_model", "modelNo", "ModelNo", "model_no"],
    "product_name": ["productName", "ProductName", "product_name"],
    "manufacturer": ["manufacturer", "Manufacturer"],
    "specifications": ["specifications", "Specifications"],
    "status": ["status", "Status"],
    "installation_date": ["installationDate", "InstallationDate", "installation_date"],
    "notes": ["notes", "Notes"],
    "created_by": ["createdBy", "CreatedBy", "created_by"],
    "assigned_to": ["assignedTo", "AssignedTo", "assigned_to"],
    # DTR
    "case_number": ["caseNumber", "CaseNumber", "case_number"],
    "error_date": ["errorDate", "ErrorDate", "error_date"],
    "nature_of_problem": ["natureOfProblem", "NatureOfProblem", "nature_of_problem"],
    "action_taken": ["actionTaken", "ActionTaken", "action_taken"],
    "remarks": ["remarks", "Remarks"],
    "call_status": ["callStatus", "CallStatus", "call_status"],
    "case_severity": ["caseSeverity", "CaseSeverity", "case_severity"],
    # RMA
    "rma_type": ["rmaType", "RmaType", "RMAType", "rma_type"],
    "call_log_number": ["callLogNumber", "CallLogNumber", "call_log_number"],
    "rma_number": ["rmaNumber", "RmaNumber", "RMANumber", "rma_number"],
    "rma_order_number": ["rmaOrderNumber", "RmaOrderNumber", "rma_order_number"],
    "rma_raised_date": ["rmaRaisedDate", "RmaRaisedDate", "rma_raised_date"],
    "customer_error_date": ["customerErrorDate", "CustomerErrorDate", "customer_error_date"],
    "product_part_number": ["productPartNumber", "ProductPartNumber", "product_part_number"],
    "defect_details": ["defectDetails", "DefectDetails", "defect_details"],
    "defective_part_name": ["defectivePartName", "DefectivePartName", "defective_part_name"],
    "defective_part_number": ["defectivePartNumber", "DefectivePartNumber", "defective_part_number"],
    "defective_part_serial": ["defectivePartSerial", "DefectivePartSerial", "defective_part_serial"],
    "is_defective_part_dnr": ["isDefectivePartDNR", "IsDefectivePartDNR", "is_defective_part_dnr"],
    "defective_part_dnr_reason": [
        "defectivePartDNRReason", "DefectivePartDNRReason", "defective_part_dnr_reason",
    ],
    "replaced_part_number": ["replacedPartNumber", "ReplacedPartNumber", "replaced_part_number"],
    "replaced_part_serial": ["replacedPartSerial", "ReplacedPartSerial", "replaced_part_serial"],
    "symptoms": ["symptoms", "Symptoms"],
    "shipping_carrier": ["shippingCarrier", "ShippingCarrier", "shipping_carrier"],
    "tracking_number_out": ["trackingNumberOut", "TrackingNumberOut", "tracking_number_out"],
    "shipped_date": ["shippedDate", "ShippedDate", "shipped_date"],
    "return_tracking_number": [
        "returnTrackingNumber", "ReturnTrackingNumber", "return_tracking_number",
    ],
    "return_shipped_date": ["returnShippedDate", "ReturnShippedDate", "return_shipped_date"],
    "return_shipped_through": [
        "returnShippedThrough", "ReturnShippedThrough", "return_shipped_through",
    ],
}


def read_sheet(
    data_dir: Path,
    filename: str,
    max_file_size_mb: int = 50,
    max_rows: int = 50000,
) -> list[dict[str, Any]]:
    """Load the first worksheet of ``data_dir/filename`` as row dicts.

    A missing workbook is not an error: it simply contributes no rows.

    Raises:
        ValueError: If the file is too large, has too many rows or is not xlsx
    """
    file_path = Path(data_dir) / filename
    if not file_path.exists():
        logger.warning(f"File not found: {file_path}")
        return []

    if file_path.suffix.lower() != ".xlsx":
        raise ValueError(f"Unsupported file format: {file_path.suffix}. Use XLSX.")

    file_size_mb = file_path.stat().st_size / (1024 * 1024)
    if file_size_mb > max_file_size_mb:
        raise ValueError(
            f"File too large ({file_size_mb:.1f}MB). Maximum allowed: {max_file_size_mb}MB"
        )

    # dtype=object keeps openpyxl's native values (ints stay ints, dates stay datetimes)
    df = pd.read_excel(file_path, sheet_name=0, dtype=object)

    if len(df) > max_rows:
        raise ValueError(f"Too many rows ({len(df):,}). Maximum allowed: {max_rows:,}")

    df = df.astype(object).where(pd.notna(df), None)
    rows = df.to_dict(orient="records")
    logger.info(f"Loaded {len(rows)} rows from {filename}")
    return rows


def first_value(row: dict[str, Any], field: str) -> Any:
    """Return the first non-empty value among the field's column aliases."""
    for column in COLUMN_ALIASES.get(field, [field]):
        value = row.get(column)
        if value is None:
            continue
        if isinstance(value, float) and pd.isna(value):
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def first_text(row: dict[str, Any], field: str) -> str | None:
    """``first_value`` rendered as trimmed text, None when absent."""
    text = cell_text(first_value(row, field))
    return text or None


def parse_excel_date(value: Any) -> datetime:
    """Normalize a spreadsheet date cell to a datetime.

    Accepts native dates, parseable strings and Excel day serials
    (fractional time-of-day is dropped).

    Raises:
        ValueError: If the value cannot be interpreted as a date
    """
    if value is None or value is pd.NaT:
        raise ValueError("Cannot convert date: missing value")
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Invalid date: empty string")
        try:
            return _excel_serial_to_datetime(float(text))
        except ValueError:
            pass
        try:
            parsed = pd.to_datetime(text)
        except (ValueError, TypeError, OverflowError) as e:
            raise ValueError(f"Invalid date: {value}") from e
        if pd.isna(parsed):
            raise ValueError(f"Invalid date: {value}")
        return parsed.to_pydatetime()

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _excel_serial_to_datetime(float(value))

    raise ValueError(f"Cannot convert date: {value!r}")


def parse_optional_date(value: Any) -> datetime | None:
    """Like ``parse_excel_date`` but None for blanks and unparseable text (e.g. "DNR")."""
    if value is None:
        return None
    try:
        return parse_excel_date(value)
    except ValueError:
        return None


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return cell_text(value).lower() in {"true", "yes", "y", "1"}


def _excel_serial_to_datetime(serial: float) -> datetime:
    if serial != serial or serial in (float("inf"), float("-inf")):
        raise ValueError(f"Invalid date serial: {serial}")
    return EXCEL_EPOCH + timedelta(days=int(serial // 1))
