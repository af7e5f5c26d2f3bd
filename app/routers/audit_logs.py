"""Audit trail (read only). Entries are never updated or deleted through the API."""
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.dependencies import can_see_internal_notes, get_current_user
from app.models.user import User
from app.schemas.audit_log import AuditLogDetail, AuditLogEntry, AuditLogListItem, AuditLogPage
from app.services import audit_resolver

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


@router.get("", response_model=AuditLogPage)
def list_audit_logs(
    entity_type: str | None = None,
    entity_id: str | None = None,
    action: str | None = None,
    user_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Newest first. Each item carries entity_name ("<id> (deleted)" once the entity is gone)."""
    items, total, total_pages = audit_resolver.list_entries(
        db,
        page=page,
        limit=limit or get_settings().audit_page_size_default,
        include_internal=can_see_internal_notes(current_user),
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    return AuditLogPage(
        items=[AuditLogListItem(**item) for item in items],
        total=total,
        page=page,
        total_pages=total_pages,
    )


@router.get("/entity/{entity_type}/{entity_id}", response_model=list[AuditLogEntry])
def entity_audit_history(
    entity_type: str,
    entity_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Full history of one entity, oldest first. Works after the entity is deleted."""
    include_internal = can_see_internal_notes(current_user)
    return [
        AuditLogEntry(**audit_resolver.entry_to_dict(entry, include_internal=include_internal))
        for entry in audit_resolver.entity_history(db, entity_type, entity_id)
    ]


@router.get("/{entry_id}", response_model=AuditLogDetail)
def get_audit_log(
    entry_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Entry plus entity_details, or entity_details=null when the entity no longer resolves."""
    entry = audit_resolver.get_entry(db, entry_id)
    return AuditLogDetail(
        **audit_resolver.resolve_entry(db, entry, include_internal=can_see_internal_notes(current_user))
    )
