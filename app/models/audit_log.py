"""Append-only audit log for the immutable audit trail.
No updates or deletes - every record is permanent and outlives the entity it describes."""
import enum

from sqlalchemy import Column, Integer, String, DateTime, Index
from sqlalchemy.sql import func
from app.database import Base, JSONType


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LINK = "LINK"
    UNLINK = "UNLINK"
    IMPORT = "IMPORT"


class EntityType(str, enum.Enum):
    property = "property"
    room = "room"
    photo = "photo"
    resource = "resource"
    activity_provider = "activity-provider"


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    id = Column(Integer, primary_key=True, index=True)

    # Who did it (null for system actions such as seeding). No foreign key: the entry
    # keeps the original actor id even after the user row is deleted
    user_id = Column(Integer, nullable=True, index=True)

    action = Column(String(32), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    # No foreign key: the referenced row may be deleted later
    entity_id = Column(String(64), nullable=False)

    # UPDATE: {field: {"old": ..., "new": ...}}; CREATE/DELETE: full snapshot
    changes = Column(JSONType, nullable=True)
    metadata_ = Column("metadata", JSONType, nullable=True)

    # UTC only - server_default
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
