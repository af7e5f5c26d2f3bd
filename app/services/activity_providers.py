"""Activity provider directory: CRUD, filtered/paginated listing, bulk delete.

Every mutation writes its audit entry through app.services.audit_log in the same
session and commits once (commit_or_rollback), so the provider row and its audit
entry are committed together or not at all.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Query, Session

from app.config import get_settings
from app.models.activity_provider import ActivityProvider, ActivityProviderTag, PropertyActivityProvider
from app.models.audit_log import AuditAction, EntityType
from app.schemas.activity_provider import ProviderCreate, ProviderFilters, ProviderUpdate
from app.services import audit_log
from app.services.errors import ConflictError, NotFoundError, ValidationError, commit_or_rollback
from app.services.provider_links import add_link

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "name": ActivityProvider.name,
    "category": ActivityProvider.category,
    "created_at": ActivityProvider.created_at,
    "updated_at": ActivityProvider.updated_at,
}

_LIST_FIELDS = ("amenities", "image_urls")


@dataclass
class ProviderListing:
    items: list[ActivityProvider]
    total_count: int
    page_count: int
    page: int
    page_size: int
    property_counts: dict[str, int] = field(default_factory=dict)


def _normalize_key_part(value: str | None) -> str:
    """Strip, collapse spaces, casefold."""
    if not value:
        return ""
    return " ".join(value.split()).casefold()


def provider_dedupe_key(name: str, category: str, city: str | None = None, strategy: str | None = None) -> str:
    """Normalized duplicate key. Strategy is settings.provider_duplicate_key unless given."""
    strategy = strategy or get_settings().provider_duplicate_key
    if strategy == "name":
        parts = [name]
    elif strategy == "name_city":
        parts = [name, city]
    else:
        parts = [name, category]
    return "|".join(_normalize_key_part(p) for p in parts)


def _duplicate_message() -> str:
    strategy = get_settings().provider_duplicate_key
    what = {"name": "name", "name_city": "name and city"}.get(strategy, "name and category")
    return f"An activity provider with the same {what} already exists"


def find_duplicate(db: Session, key: str, *, exclude_id: str | None = None) -> ActivityProvider | None:
    q = db.query(ActivityProvider).filter(ActivityProvider.dedupe_key == key)
    if exclude_id is not None:
        q = q.filter(ActivityProvider.id != exclude_id)
    return q.first()


def like_term(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _present(column):
    return and_(column.isnot(None), column != "")


def _absent(column):
    return or_(column.is_(None), column == "")


def apply_filters(q: Query, filters: ProviderFilters | None) -> Query:
    if filters is None:
        return q
    if filters.search and filters.search.strip():
        term = like_term(filters.search.strip())
        q = q.filter(
            or_(
                ActivityProvider.name.ilike(term, escape="\\"),
                ActivityProvider.description.ilike(term, escape="\\"),
                ActivityProvider.address.ilike(term, escape="\\"),
            )
        )
    if filters.category and filters.category.strip():
        q = q.filter(ActivityProvider.category == filters.category.strip())
    tags = [" ".join(t.split()) for t in filters.tags if t and t.strip()]
    if tags:
        q = q.filter(ActivityProvider.tag_rows.any(ActivityProviderTag.tag.in_(tags)))
    for flag, column in (
        (filters.has_website, ActivityProvider.website),
        (filters.has_phone, ActivityProvider.phone),
        (filters.has_email, ActivityProvider.email),
    ):
        if flag is True:
            q = q.filter(_present(column))
        elif flag is False:
            q = q.filter(_absent(column))
    if filters.property_id is not None:
        q = q.filter(ActivityProvider.links.any(PropertyActivityProvider.property_id == filters.property_id))
    return q


def apply_sort(q: Query, sort_by: str = "name", sort_order: str = "asc") -> Query:
    column = SORT_COLUMNS.get(sort_by)
    if column is None:
        raise ValidationError("Invalid sort field", errors=[{"field": "sort_by", "message": f"must be one of {', '.join(SORT_COLUMNS)}"}])
    if sort_order not in ("asc", "desc"):
        raise ValidationError("Invalid sort order", errors=[{"field": "sort_order", "message": "must be asc or desc"}])
    ordered = column.desc() if sort_order == "desc" else column.asc()
    # Ties broken by id for a stable page order
    return q.order_by(ordered, ActivityProvider.id.asc())


def property_counts(db: Session, provider_ids: list[str]) -> dict[str, int]:
    if not provider_ids:
        return {}
    rows = (
        db.query(PropertyActivityProvider.provider_id, func.count(PropertyActivityProvider.id))
        .filter(PropertyActivityProvider.provider_id.in_(provider_ids))
        .group_by(PropertyActivityProvider.provider_id)
        .all()
    )
    return {pid: count for pid, count in rows}


def list_providers(
    db: Session,
    filters: ProviderFilters | None = None,
    *,
    page: int = 1,
    page_size: int | None = None,
    sort_by: str = "name",
    sort_order: str = "asc",
) -> ProviderListing:
    """One page of providers. A page past the end is empty but still reports total_count."""
    settings = get_settings()
    page_size = page_size or settings.provider_page_size_default
    if page < 1:
        raise ValidationError("Invalid page", errors=[{"field": "page", "message": "must be >= 1"}])
    if page_size < 1 or page_size > settings.provider_page_size_max:
        raise ValidationError(
            "Invalid page size",
            errors=[{"field": "page_size", "message": f"must be between 1 and {settings.provider_page_size_max}"}],
        )
    q = apply_filters(db.query(ActivityProvider), filters)
    total_count = q.count()
    items = apply_sort(q, sort_by, sort_order).offset((page - 1) * page_size).limit(page_size).all()
    return ProviderListing(
        items=items,
        total_count=total_count,
        page_count=math.ceil(total_count / page_size),
        page=page,
        page_size=page_size,
        property_counts=property_counts(db, [p.id for p in items]),
    )


def get_provider(db: Session, provider_id: str) -> ActivityProvider:
    provider = db.get(ActivityProvider, provider_id)
    if provider is None:
        raise NotFoundError("Activity provider", provider_id)
    return provider


def insert_provider(
    db: Session,
    data: ProviderCreate,
    *,
    user_id: int | None,
    audit_metadata: dict | None = None,
) -> ActivityProvider:
    """Insert provider + CREATE entry (+ LINK entries for property_ids) in the caller's transaction."""
    key = provider_dedupe_key(data.name, data.category, data.city)
    if find_duplicate(db, key) is not None:
        raise ConflictError(_duplicate_message())
    provider = ActivityProvider(
        name=data.name,
        category=data.category,
        description=data.description,
        address=data.address,
        city=data.city,
        country=data.country,
        postal_code=data.postal_code,
        latitude=data.latitude,
        longitude=data.longitude,
        phone=data.phone,
        email=data.email,
        website=data.website,
        opening_hours=data.opening_hours,
        price_range=data.price_range,
        amenities=list(data.amenities),
        rating=data.rating,
        image_urls=list(data.image_urls),
        comments=data.comments,
        internal_notes=data.internal_notes,
        dedupe_key=key,
    )
    provider.set_tags(data.tags)
    db.add(provider)
    db.flush()
    audit_log.record(
        db,
        user_id=user_id,
        action=AuditAction.CREATE,
        entity_type=EntityType.activity_provider,
        entity_id=provider.id,
        changes=audit_log.snapshot_provider(provider),
        metadata={"provider_name": provider.name, **(audit_metadata or {})},
    )
    for property_id in dict.fromkeys(data.property_ids):
        add_link(db, provider, property_id, None, user_id=user_id, audit_metadata=audit_metadata)
    return provider


def create_provider(
    db: Session,
    data: ProviderCreate,
    *,
    user_id: int | None,
    audit_metadata: dict | None = None,
) -> ActivityProvider:
    with commit_or_rollback(db, "create activity provider"):
        provider = insert_provider(db, data, user_id=user_id, audit_metadata=audit_metadata)
    db.refresh(provider)
    logger.info("Created activity provider %s (%s)", provider.id, provider.name)
    return provider


def update_provider(db: Session, provider_id: str, patch: ProviderUpdate, *, user_id: int | None) -> ActivityProvider:
    """Apply only the fields present in the patch; the UPDATE entry lists changed fields only."""
    with commit_or_rollback(db, "update activity provider"):
        provider = get_provider(db, provider_id)
        old = audit_log.snapshot_provider(provider)

        for name in patch.model_fields_set:
            value = getattr(patch, name)
            if name == "tags":
                provider.set_tags(value or [])
            elif name in _LIST_FIELDS:
                setattr(provider, name, list(value or []))
            else:
                setattr(provider, name, value)

        key = provider_dedupe_key(provider.name, provider.category, provider.city)
        if key != provider.dedupe_key:
            if find_duplicate(db, key, exclude_id=provider.id) is not None:
                raise ConflictError(_duplicate_message())
            provider.dedupe_key = key

        changes = audit_log.diff_snapshots(old, audit_log.snapshot_provider(provider))
        if changes:
            db.flush()
            audit_log.record(
                db,
                user_id=user_id,
                action=AuditAction.UPDATE,
                entity_type=EntityType.activity_provider,
                entity_id=provider.id,
                changes=changes,
                metadata={"provider_name": provider.name},
            )
    db.refresh(provider)
    if changes:
        logger.info("Updated activity provider %s: %s", provider.id, ", ".join(sorted(changes)))
    return provider


def _remove_provider(db: Session, provider: ActivityProvider, *, user_id: int | None, audit_metadata: dict | None = None) -> None:
    snapshot = audit_log.snapshot_provider(provider, include_links=True)
    # Links go first so nothing ever references a missing provider
    provider.links.clear()
    db.flush()
    db.delete(provider)
    db.flush()
    audit_log.record(
        db,
        user_id=user_id,
        action=AuditAction.DELETE,
        entity_type=EntityType.activity_provider,
        entity_id=provider.id,
        changes=snapshot,
        metadata={"provider_name": snapshot["name"], "removed_links": len(snapshot["property_ids"]), **(audit_metadata or {})},
    )


def delete_provider(db: Session, provider_id: str, *, user_id: int | None) -> None:
    with commit_or_rollback(db, "delete activity provider"):
        provider = get_provider(db, provider_id)
        _remove_provider(db, provider, user_id=user_id)
    logger.info("Deleted activity provider %s", provider_id)


def bulk_delete_providers(db: Session, provider_ids: list[str], *, user_id: int | None) -> tuple[int, list[str]]:
    """Delete several providers in one transaction. Unknown ids are reported, not raised."""
    ids = [pid for pid in dict.fromkeys(provider_ids) if pid]
    if not ids:
        raise ValidationError(
            "At least one provider ID is required",
            errors=[{"field": "provider_ids", "message": "At least one provider ID is required"}],
        )
    deleted = 0
    not_found: list[str] = []
    with commit_or_rollback(db, "bulk delete activity providers"):
        for pid in ids:
            provider = db.get(ActivityProvider, pid)
            if provider is None:
                not_found.append(pid)
                continue
            _remove_provider(db, provider, user_id=user_id, audit_metadata={"bulk_delete": True})
            deleted += 1
    logger.info("Bulk delete: %d deleted, %d not found", deleted, len(not_found))
    return deleted, not_found
