"""Audit log read-side schemas."""
from datetime import datetime
from typing import Any
from pydantic import BaseModel


class AuditLogEntry(BaseModel):
    """Single append-only audit log entry."""
    id: int
    user_id: int | None
    action: str
    entity_type: str
    entity_id: str
    changes: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime


class AuditLogListItem(AuditLogEntry):
    entity_name: str  # resolved for display; "<id> (deleted)" when the entity is gone


class AuditLogDetail(AuditLogEntry):
    entity_details: dict[str, Any] | None = None  # null when the entity no longer resolves


class AuditLogPage(BaseModel):
    items: list[AuditLogListItem]
    total: int
    page: int
    total_pages: int
