"""Provider <-> property links.

At most one live link per (provider, property) pair. Linking a pair that is already
linked is a Conflict (callers unlink first) rather than a silent metadata overwrite.
The unique constraint on the link table settles concurrent attempts; the loser's
IntegrityError surfaces as ConflictError through commit_or_rollback.

Unlinking a pair that is not linked is a no-op that returns False and writes no
audit entry; the provider itself must exist.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.models.activity_provider import ActivityProvider, PropertyActivityProvider
from app.models.audit_log import AuditAction, EntityType
from app.models.property import Property
from app.schemas.activity_provider import LinkMetadata
from app.services import audit_log
from app.services.errors import ConflictError, NotFoundError, commit_or_rollback

logger = logging.getLogger(__name__)


def _get_provider(db: Session, provider_id: str) -> ActivityProvider:
    provider = db.get(ActivityProvider, provider_id)
    if provider is None:
        raise NotFoundError("Activity provider", provider_id)
    return provider


def _get_property(db: Session, property_id: int) -> Property:
    prop = db.get(Property, property_id)
    if prop is None:
        raise NotFoundError("Property", property_id)
    return prop


def find_link(db: Session, provider_id: str, property_id: int) -> PropertyActivityProvider | None:
    return (
        db.query(PropertyActivityProvider)
        .filter(
            PropertyActivityProvider.provider_id == provider_id,
            PropertyActivityProvider.property_id == property_id,
        )
        .first()
    )


def add_link(
    db: Session,
    provider: ActivityProvider,
    property_id: int,
    metadata: LinkMetadata | None,
    *,
    user_id: int | None,
    audit_metadata: dict | None = None,
) -> PropertyActivityProvider:
    """Create the link and its LINK audit entry in the caller's transaction (no commit)."""
    prop = _get_property(db, property_id)
    if find_link(db, provider.id, prop.id) is not None:
        raise ConflictError(f"Provider {provider.id} is already linked to property {prop.id}; unlink it first")
    meta = metadata or LinkMetadata()
    link = PropertyActivityProvider(
        property_id=prop.id,
        notes=meta.notes,
        distance=meta.distance,
        walking_time=meta.walking_time,
        driving_time=meta.driving_time,
    )
    provider.links.append(link)
    db.flush()
    audit_log.record(
        db,
        user_id=user_id,
        action=AuditAction.LINK,
        entity_type=EntityType.activity_provider,
        entity_id=provider.id,
        changes=audit_log.snapshot_link(link),
        metadata={"property_id": prop.id, "property_name": prop.name, "provider_name": provider.name, **(audit_metadata or {})},
    )
    return link


def link_provider(
    db: Session,
    provider_id: str,
    property_id: int,
    metadata: LinkMetadata | None = None,
    *,
    user_id: int | None,
) -> PropertyActivityProvider:
    with commit_or_rollback(db, "link provider to property"):
        provider = _get_provider(db, provider_id)
        link = add_link(db, provider, property_id, metadata, user_id=user_id)
    db.refresh(link)
    logger.info("Linked provider %s to property %s", provider_id, property_id)
    return link


def unlink_provider(db: Session, provider_id: str, property_id: int, *, user_id: int | None) -> bool:
    """Hard-delete the link. Returns False (and records nothing) when the pair was not linked."""
    with commit_or_rollback(db, "unlink provider from property"):
        provider = _get_provider(db, provider_id)
        link = find_link(db, provider.id, property_id)
        if link is None:
            return False
        removed = audit_log.snapshot_link(link)
        prop = db.get(Property, property_id)
        provider.links.remove(link)
        db.flush()
        audit_log.record(
            db,
            user_id=user_id,
            action=AuditAction.UNLINK,
            entity_type=EntityType.activity_provider,
            entity_id=provider.id,
            changes=removed,
            metadata={
                "property_id": property_id,
                "property_name": prop.name if prop else None,
                "provider_name": provider.name,
            },
        )
    logger.info("Unlinked provider %s from property %s", provider_id, property_id)
    return True


def list_links(db: Session, provider_id: str) -> list[PropertyActivityProvider]:
    _get_provider(db, provider_id)
    return (
        db.query(PropertyActivityProvider)
        .filter(PropertyActivityProvider.provider_id == provider_id)
        .order_by(PropertyActivityProvider.property_id.asc())
        .all()
    )
