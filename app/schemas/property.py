"""Property, room, photo and resource schemas."""
from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from app.models.property import PropertyStatus


class PropertyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    region_code: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class PropertyUpdate(BaseModel):
    """All optional; only provided fields are updated."""
    name: str | None = None
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    region_code: str | None = None
    status: PropertyStatus | None = None


class PropertyResponse(BaseModel):
    id: int
    name: str
    street: str | None
    city: str | None
    state: str | None
    zip_code: str | None
    region_code: str | None
    status: PropertyStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    room_type: str | None = None


class RoomResponse(BaseModel):
    id: int
    property_id: int
    name: str
    room_type: str | None

    class Config:
        from_attributes = True


class PhotoCreate(BaseModel):
    url: str = Field(..., min_length=1, max_length=1000)
    caption: str | None = None


class PhotoResponse(BaseModel):
    id: int
    property_id: int
    url: str
    caption: str | None

    class Config:
        from_attributes = True


class ResourceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    resource_type: str | None = None  # document, video, link
    url: str | None = None


class ResourceResponse(BaseModel):
    id: int
    property_id: int
    name: str
    resource_type: str | None
    url: str | None

    class Config:
        from_attributes = True
