"""Properties and the sub-entities the back office tracks for them (rooms, photos, resources)."""
from sqlalchemy import Column, Integer, String, ForeignKey, Enum as SQLEnum, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum


class PropertyStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(255), nullable=False)  # e.g. "Villa Mimosa"
    street = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip_code = Column(String(20), nullable=True)
    region_code = Column(String(20), nullable=True)
    status = Column(SQLEnum(PropertyStatus), nullable=False, default=PropertyStatus.active)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    rooms = relationship("Room", back_populates="property", cascade="all, delete-orphan", passive_deletes=True)
    photos = relationship("Photo", back_populates="property", cascade="all, delete-orphan", passive_deletes=True)
    resources = relationship("Resource", back_populates="property", cascade="all, delete-orphan", passive_deletes=True)
    provider_links = relationship(
        "PropertyActivityProvider", back_populates="property", cascade="all, delete-orphan", passive_deletes=True
    )


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    room_type = Column(String(50), nullable=True)  # bedroom, bathroom, kitchen, ...

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    property = relationship("Property", back_populates="rooms")


class Photo(Base):
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String(1000), nullable=False)
    caption = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    property = relationship("Property", back_populates="photos")


class Resource(Base):
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    resource_type = Column(String(50), nullable=True)  # document, video, link
    url = Column(String(1000), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    property = relationship("Property", back_populates="resources")
