"""CineCRM Pydantic models and enumerations shared across the import tooling."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, field_validator

UNKNOWN_MODEL_NO = "UNKNOWN"
AUTO_AUDI_PREFIX = "AUTO-"


class CaseType(str, Enum):
    """Case kinds; also the discriminator stored on audit log rows."""

    DTR = "DTR"
    RMA = "RMA"


class CallStatus(str, Enum):
    """DTR call status."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    ESCALATED = "escalated"


class Severity(str, Enum):
    """DTR case severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RMAType(str, Enum):
    """RMA ticket type."""

    RMA = "RMA"
    SRMA = "SRMA"
    RMA_CL = "RMA_CL"
    LAMPS = "Lamps"


class RMAStatus(str, Enum):
    """RMA lifecycle status."""

    OPEN = "open"
    RMA_RAISED_YET_TO_DELIVER = "rma_raised_yet_to_deliver"
    FAULTY_IN_TRANSIT_TO_CDS = "faulty_in_transit_to_cds"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class ProjectorLocation(BaseModel):
    """Where the spreadsheets say a projector lives.

    One entry per normalized serial number, merged across sheets.
    """

    serial_number: str
    site_name: str | None = None
    audi_no: str | None = None
    unit_model: str | None = None

    @field_validator("site_name", "audi_no", "unit_model", mode="before")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @property
    def is_placeable(self) -> bool:
        """True when both the site and the audi number are known."""
        return bool(self.site_name and self.audi_no)


def is_auto_audi(audi_no: str | None) -> bool:
    """Placeholder audis synthesized during case import."""
    return bool(audi_no) and audi_no.startswith(AUTO_AUDI_PREFIX)
