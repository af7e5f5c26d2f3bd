"""Read side of the audit trail: filtered listing and entity resolution.

Each audit entry names its entity by (entity_type, entity_id). Resolution dispatches on
the EntityType enum through _LOOKUPS, a closed table with one entry per member; adding
a member without a lookup fails at import time. Each lookup returns a small display
projection, never the full entity.

The ledger outlives the entities it describes, so a lookup that fails for any reason
(entity deleted, malformed id, unknown tag, store error) yields entity_details=None and
the raw entry is still returned. lookup_entity() is the only place that happens.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from app.models.activity_provider import ActivityProvider
from app.models.audit_log import AuditLog, EntityType
from app.models.property import Photo, Property, Resource, Room
from app.services.activity_providers import like_term
from app.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

AUDIT_PAGE_SIZE_MAX = 100

# Fields dropped from changes payloads for callers below manager
_STAFF_ONLY_FIELDS = {
    EntityType.activity_provider.value: ("internal_notes",),
}


@dataclass(frozen=True)
class LookupResult:
    details: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.details is not None


def _int_id(entity_id: str) -> int:
    return int(entity_id)


def _parent(prop: Property | None) -> dict[str, Any] | None:
    if prop is None:
        return None
    return {"id": prop.id, "name": prop.name}


def _lookup_property(db: Session, entity_id: str) -> dict[str, Any] | None:
    prop = db.get(Property, _int_id(entity_id))
    if prop is None:
        return None
    return {
        "id": prop.id,
        "name": prop.name,
        "status": prop.status.value if prop.status else None,
        "city": prop.city,
        "display_name": prop.name,
    }


def _lookup_room(db: Session, entity_id: str) -> dict[str, Any] | None:
    room = db.get(Room, _int_id(entity_id))
    if room is None:
        return None
    parent = _parent(room.property)
    return {
        "id": room.id,
        "name": room.name,
        "room_type": room.room_type,
        "property": parent,
        "display_name": f"{room.name} ({parent['name']})" if parent else room.name,
    }


def _lookup_photo(db: Session, entity_id: str) -> dict[str, Any] | None:
    photo = db.get(Photo, _int_id(entity_id))
    if photo is None:
        return None
    parent = _parent(photo.property)
    label = photo.caption or "Photo"
    return {
        "id": photo.id,
        "caption": photo.caption,
        "url": photo.url,
        "property": parent,
        "display_name": f"{label} ({parent['name']})" if parent else label,
    }


def _lookup_resource(db: Session, entity_id: str) -> dict[str, Any] | None:
    resource = db.get(Resource, _int_id(entity_id))
    if resource is None:
        return None
    parent = _parent(resource.property)
    return {
        "id": resource.id,
        "name": resource.name,
        "resource_type": resource.resource_type,
        "url": resource.url,
        "property": parent,
        "display_name": f"{resource.name} ({parent['name']})" if parent else resource.name,
    }


def _lookup_activity_provider(db: Session, entity_id: str) -> dict[str, Any] | None:
    provider = db.get(ActivityProvider, entity_id)
    if provider is None:
        return None
    return {
        "id": provider.id,
        "name": provider.name,
        "category": provider.category,
        "city": provider.city,
        "display_name": provider.name,
    }


_LOOKUPS: dict[EntityType, Callable[[Session, str], dict[str, Any] | None]] = {
    EntityType.property: _lookup_property,
    EntityType.room: _lookup_room,
    EntityType.photo: _lookup_photo,
    EntityType.resource: _lookup_resource,
    EntityType.activity_provider: _lookup_activity_provider,
}

_missing = set(EntityType) - set(_LOOKUPS)
if _missing:
    raise RuntimeError(f"No audit lookup registered for entity types: {sorted(m.value for m in _missing)}")


def lookup_entity(db: Session, entity_type: str, entity_id: str) -> LookupResult:
    try:
        kind = EntityType(entity_type)
        details = _LOOKUPS[kind](db, entity_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Audit lookup %s/%s failed on the store: %s", entity_type, entity_id, e)
        return LookupResult(error=f"store error: {e.__class__.__name__}")
    except (KeyError, ValueError) as e:
        # Unknown entity tag or malformed id
        logger.warning("Audit lookup %s/%s failed: %s", entity_type, entity_id, e)
        return LookupResult(error=str(e) or e.__class__.__name__)
    if details is None:
        return LookupResult(error="not found")
    return LookupResult(details=details)


def _strip_staff_only(entity_type: str, changes: dict[str, Any] | None) -> dict[str, Any] | None:
    hidden = _STAFF_ONLY_FIELDS.get(entity_type)
    if not changes or not hidden:
        return changes
    return {k: v for k, v in changes.items() if k not in hidden}


def entry_to_dict(entry: AuditLog, *, include_internal: bool = True) -> dict[str, Any]:
    """Entry fields. With include_internal=False, staff-only fields are removed from changes."""
    changes = entry.changes if include_internal else _strip_staff_only(entry.entity_type, entry.changes)
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "action": entry.action,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "changes": changes,
        "metadata": entry.metadata_,
        "created_at": entry.created_at,
    }


def resolve_entry(db: Session, entry: AuditLog, *, include_internal: bool = True) -> dict[str, Any]:
    """Entry fields plus entity_details (a display projection, or None when it no longer resolves)."""
    result = lookup_entity(db, entry.entity_type, entry.entity_id)
    return {**entry_to_dict(entry, include_internal=include_internal), "entity_details": result.details}


def entity_name(db: Session, entry: AuditLog) -> str:
    result = lookup_entity(db, entry.entity_type, entry.entity_id)
    if result.ok and result.details.get("display_name"):
        return result.details["display_name"]
    return f"{entry.entity_id} (deleted)"


def get_entry(db: Session, entry_id: int) -> AuditLog:
    entry = db.get(AuditLog, entry_id)
    if entry is None:
        raise NotFoundError("Audit log", entry_id)
    return entry


def query_entries(
    db: Session,
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    action: str | None = None,
    user_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
) -> Query:
    q = db.query(AuditLog)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)
    if action:
        q = q.filter(AuditLog.action == action.upper())
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)
    if start_date is not None:
        q = q.filter(AuditLog.created_at >= start_date)
    if end_date is not None:
        q = q.filter(AuditLog.created_at <= end_date)
    if search and search.strip():
        term = like_term(search.strip())
        q = q.filter(
            or_(
                AuditLog.entity_type.ilike(term, escape="\\"),
                AuditLog.action.ilike(term, escape="\\"),
                AuditLog.entity_id.ilike(term, escape="\\"),
            )
        )
    return q


def list_entries(
    db: Session, *, page: int = 1, limit: int = 20, include_internal: bool = True, **filters: Any
) -> tuple[list[dict[str, Any]], int, int]:
    """Newest first. Returns (items with entity_name, total, total_pages)."""
    if page < 1:
        raise ValidationError("Invalid page", errors=[{"field": "page", "message": "must be >= 1"}])
    if limit < 1 or limit > AUDIT_PAGE_SIZE_MAX:
        raise ValidationError("Invalid limit", errors=[{"field": "limit", "message": f"must be between 1 and {AUDIT_PAGE_SIZE_MAX}"}])
    if filters.get("start_date") and filters.get("end_date") and filters["start_date"] > filters["end_date"]:
        raise ValidationError("Invalid date range", errors=[{"field": "start_date", "message": "must be before end_date"}])
    q = query_entries(db, **filters)
    total = q.count()
    rows = (
        q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    items = [{**entry_to_dict(r, include_internal=include_internal), "entity_name": entity_name(db, r)} for r in rows]
    return items, total, math.ceil(total / limit)


def entity_history(db: Session, entity_type: str, entity_id: str) -> list[AuditLog]:
    """All entries for one entity in commit order (oldest first, ties by id)."""
    return (
        query_entries(db, entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        .all()
    )
