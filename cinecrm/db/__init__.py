"""Database layer for CineCRM with async SQLAlchemy."""

from cinecrm.db.connection import close_db, get_session, init_db
from cinecrm.db.models import (
    AudiModel,
    AuditLogModel,
    Base,
    DTRCaseModel,
    PartModel,
    ProjectorModel,
    ProjectorModelModel,
    RMACaseModel,
    SiteModel,
    UserModel,
)

__all__ = [
    "Base",
    "SiteModel",
    "ProjectorModelModel",
    "ProjectorModel",
    "AudiModel",
    "UserModel",
    "PartModel",
    "DTRCaseModel",
    "RMACaseModel",
    "AuditLogModel",
    "get_session",
    "init_db",
    "close_db",
]
