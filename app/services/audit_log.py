"""Append-only audit log service. Never update or delete - immutable audit trail.

record() adds the entry to the caller's session and flushes; it never commits. The
caller commits the domain write and its audit entry together, so a failed mutation
leaves no orphaned entry and a committed mutation is never unaudited.
"""
from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from app.models.activity_provider import ActivityProvider, PropertyActivityProvider
from app.models.audit_log import AuditAction, AuditLog, EntityType

# Column limits (match model)
_ENTITY_ID_LEN = 64

# Fields captured in provider snapshots (CREATE/DELETE payloads and UPDATE diffs)
PROVIDER_SNAPSHOT_FIELDS = (
    "name",
    "category",
    "description",
    "address",
    "city",
    "country",
    "postal_code",
    "latitude",
    "longitude",
    "phone",
    "email",
    "website",
    "opening_hours",
    "price_range",
    "amenities",
    "tags",
    "rating",
    "image_urls",
    "comments",
    "internal_notes",
)

LINK_METADATA_FIELDS = ("notes", "distance", "walking_time", "driving_time")


def _sanitize_value(v: Any) -> Any:
    """Convert to JSON-serializable value so changes/metadata never raise on INSERT."""
    if v is None:
        return None
    if isinstance(v, enum.Enum):
        return getattr(v, "value", str(v))
    if isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, dict):
        return {str(k): _sanitize_value(x) for k, x in v.items()}
    if isinstance(v, (set, frozenset)):
        return sorted(_sanitize_value(x) for x in v)
    if isinstance(v, (list, tuple)):
        return [_sanitize_value(x) for x in v]
    return str(v)


def _sanitize(data: dict[str, Any] | None) -> dict[str, Any] | None:
    if data is None:
        return None
    return {str(k): _sanitize_value(v) for k, v in data.items()}


def record(
    db: Session,
    *,
    user_id: int | None,
    action: AuditAction | str,
    entity_type: EntityType | str,
    entity_id: Any,
    changes: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLog:
    """Append one immutable audit log record inside the caller's transaction."""
    entry = AuditLog(
        user_id=user_id,
        action=_sanitize_value(action),
        entity_type=_sanitize_value(entity_type),
        entity_id=str(entity_id)[:_ENTITY_ID_LEN],
        changes=_sanitize(changes),
        metadata_=_sanitize(metadata),
    )
    db.add(entry)
    db.flush()  # get entry.id if caller needs it; commit remains with caller
    return entry


def snapshot_provider(provider: ActivityProvider, *, include_links: bool = False) -> dict[str, Any]:
    """Current provider fields (for CREATE/DELETE payloads and change detection)."""
    snap = {field: getattr(provider, field) for field in PROVIDER_SNAPSHOT_FIELDS}
    snap["amenities"] = list(provider.amenities or [])
    snap["image_urls"] = list(provider.image_urls or [])
    snap["tags"] = provider.tags
    if include_links:
        snap["property_ids"] = provider.property_ids
    return _sanitize(snap)


def snapshot_link(link: PropertyActivityProvider) -> dict[str, Any]:
    return _sanitize({field: getattr(link, field) for field in LINK_METADATA_FIELDS})


def diff_snapshots(old: dict[str, Any], new: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Changed fields only: {field: {"old": ..., "new": ...}}. Unchanged fields are omitted."""
    changes = {}
    for key in old:
        ov, nv = old[key], new.get(key)
        if ov != nv:
            changes[key] = {"old": ov, "new": nv}
    return changes
