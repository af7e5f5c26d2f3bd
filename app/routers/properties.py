"""Properties and their rooms, photos and resources. Every mutation writes an audit entry."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, require_manager
from app.models.audit_log import AuditAction, EntityType
from app.models.property import Photo, Property, Resource, Room
from app.models.user import User
from app.schemas.property import (
    PhotoCreate,
    PhotoResponse,
    PropertyCreate,
    PropertyResponse,
    PropertyUpdate,
    ResourceCreate,
    ResourceResponse,
    RoomCreate,
    RoomResponse,
)
from app.services import audit_log
from app.services.errors import NotFoundError, commit_or_rollback

router = APIRouter(tags=["properties"])


def _snapshot_property(prop: Property) -> dict:
    """Current property fields that can be updated (for change detection)."""
    return {
        "name": prop.name,
        "street": prop.street,
        "city": prop.city,
        "state": prop.state,
        "zip_code": prop.zip_code,
        "region_code": prop.region_code,
        "status": prop.status.value if prop.status else None,
    }


def _get_property(db: Session, property_id: int) -> Property:
    prop = db.get(Property, property_id)
    if not prop:
        raise NotFoundError("Property", property_id)
    return prop


@router.get("/properties", response_model=list[PropertyResponse])
def list_properties(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return db.query(Property).order_by(Property.name.asc(), Property.id.asc()).all()


@router.post("/properties", response_model=PropertyResponse, status_code=201)
def create_property(
    data: PropertyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    with commit_or_rollback(db, "create property"):
        prop = Property(
            name=data.name,
            street=data.street,
            city=data.city,
            state=data.state,
            zip_code=data.zip_code,
            region_code=data.region_code.upper()[:20] if data.region_code else None,
        )
        db.add(prop)
        db.flush()
        audit_log.record(
            db,
            user_id=current_user.id,
            action=AuditAction.CREATE,
            entity_type=EntityType.property,
            entity_id=prop.id,
            changes=_snapshot_property(prop),
            metadata={"property_name": prop.name},
        )
    db.refresh(prop)
    return PropertyResponse.model_validate(prop)


@router.get("/properties/{property_id}", response_model=PropertyResponse)
def get_property(property_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return PropertyResponse.model_validate(_get_property(db, property_id))


@router.patch("/properties/{property_id}", response_model=PropertyResponse)
def update_property(
    property_id: int,
    data: PropertyUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    with commit_or_rollback(db, "update property"):
        prop = _get_property(db, property_id)
        old = _snapshot_property(prop)

        if data.name is not None and data.name.strip():
            prop.name = data.name.strip()
        if data.street is not None:
            prop.street = data.street
        if data.city is not None:
            prop.city = data.city
        if data.state is not None:
            prop.state = data.state
        if data.zip_code is not None:
            prop.zip_code = data.zip_code
        if data.region_code is not None:
            prop.region_code = data.region_code.upper()[:20]
        if data.status is not None:
            prop.status = data.status

        changes = audit_log.diff_snapshots(old, _snapshot_property(prop))
        if changes:
            db.flush()
            audit_log.record(
                db,
                user_id=current_user.id,
                action=AuditAction.UPDATE,
                entity_type=EntityType.property,
                entity_id=prop.id,
                changes=changes,
                metadata={"property_name": prop.name},
            )
    db.refresh(prop)
    return PropertyResponse.model_validate(prop)


@router.delete("/properties/{property_id}")
def delete_property(
    property_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    """Hard delete. Rooms, photos, resources and provider links go with the property."""
    with commit_or_rollback(db, "delete property"):
        prop = _get_property(db, property_id)
        snapshot = _snapshot_property(prop)
        # Each dropped provider link is recorded on the provider's own history
        for link in list(prop.provider_links):
            audit_log.record(
                db,
                user_id=current_user.id,
                action=AuditAction.UNLINK,
                entity_type=EntityType.activity_provider,
                entity_id=link.provider_id,
                changes=audit_log.snapshot_link(link),
                metadata={"property_id": prop.id, "property_name": prop.name, "reason": "property_deleted"},
            )
        db.delete(prop)
        db.flush()
        audit_log.record(
            db,
            user_id=current_user.id,
            action=AuditAction.DELETE,
            entity_type=EntityType.property,
            entity_id=property_id,
            changes=snapshot,
            metadata={"property_name": snapshot["name"]},
        )
    return {"status": "success", "message": "Property deleted."}


def _add_child(db: Session, child, entity_type: EntityType, changes: dict, user: User, prop: Property):
    db.add(child)
    db.flush()
    audit_log.record(
        db,
        user_id=user.id,
        action=AuditAction.CREATE,
        entity_type=entity_type,
        entity_id=child.id,
        changes=changes,
        metadata={"property_id": prop.id, "property_name": prop.name},
    )


def _delete_child(db: Session, model, entity_type: EntityType, child_id: int, changes_of, user: User) -> None:
    with commit_or_rollback(db, f"delete {entity_type.value}"):
        child = db.get(model, child_id)
        if not child:
            raise NotFoundError(entity_type.value.capitalize(), child_id)
        prop = child.property
        changes = changes_of(child)
        db.delete(child)
        db.flush()
        audit_log.record(
            db,
            user_id=user.id,
            action=AuditAction.DELETE,
            entity_type=entity_type,
            entity_id=child_id,
            changes=changes,
            metadata={"property_id": prop.id if prop else None, "property_name": prop.name if prop else None},
        )


def _room_fields(room: Room) -> dict:
    return {"property_id": room.property_id, "name": room.name, "room_type": room.room_type}


def _photo_fields(photo: Photo) -> dict:
    return {"property_id": photo.property_id, "url": photo.url, "caption": photo.caption}


def _resource_fields(resource: Resource) -> dict:
    return {
        "property_id": resource.property_id,
        "name": resource.name,
        "resource_type": resource.resource_type,
        "url": resource.url,
    }


@router.post("/properties/{property_id}/rooms", response_model=RoomResponse, status_code=201)
def add_room(
    property_id: int,
    data: RoomCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    with commit_or_rollback(db, "add room"):
        prop = _get_property(db, property_id)
        room = Room(property_id=prop.id, name=data.name.strip(), room_type=data.room_type)
        _add_child(db, room, EntityType.room, _room_fields(room), current_user, prop)
    db.refresh(room)
    return RoomResponse.model_validate(room)


@router.post("/properties/{property_id}/photos", response_model=PhotoResponse, status_code=201)
def add_photo(
    property_id: int,
    data: PhotoCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    with commit_or_rollback(db, "add photo"):
        prop = _get_property(db, property_id)
        photo = Photo(property_id=prop.id, url=data.url.strip(), caption=data.caption)
        _add_child(db, photo, EntityType.photo, _photo_fields(photo), current_user, prop)
    db.refresh(photo)
    return PhotoResponse.model_validate(photo)


@router.post("/properties/{property_id}/resources", response_model=ResourceResponse, status_code=201)
def add_resource(
    property_id: int,
    data: ResourceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    with commit_or_rollback(db, "add resource"):
        prop = _get_property(db, property_id)
        resource = Resource(property_id=prop.id, name=data.name.strip(), resource_type=data.resource_type, url=data.url)
        _add_child(db, resource, EntityType.resource, _resource_fields(resource), current_user, prop)
    db.refresh(resource)
    return ResourceResponse.model_validate(resource)


@router.delete("/rooms/{room_id}")
def delete_room(room_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_manager)):
    _delete_child(db, Room, EntityType.room, room_id, _room_fields, current_user)
    return {"status": "success"}


@router.delete("/photos/{photo_id}")
def delete_photo(photo_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_manager)):
    _delete_child(db, Photo, EntityType.photo, photo_id, _photo_fields, current_user)
    return {"status": "success"}


@router.delete("/resources/{resource_id}")
def delete_resource(resource_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_manager)):
    _delete_child(db, Resource, EntityType.resource, resource_id, _resource_fields, current_user)
    return {"status": "success"}
