"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from app.models.user import User
from app.models.property import Property, Room, Photo, Resource
from app.models.activity_provider import ActivityProvider, ActivityProviderTag, PropertyActivityProvider
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "Property",
    "Room",
    "Photo",
    "Resource",
    "ActivityProvider",
    "ActivityProviderTag",
    "PropertyActivityProvider",
    "AuditLog",
]
