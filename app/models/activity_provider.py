"""Activity provider directory: external vendors (bakeries, pharmacies, tour operators...) near our properties."""
import uuid

from sqlalchemy import Column, Integer, String, Float, Text, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, JSONType


def _new_provider_id() -> str:
    return str(uuid.uuid4())


class ActivityProvider(Base):
    __tablename__ = "activity_providers"

    id = Column(String(36), primary_key=True, default=_new_provider_id)

    name = Column(String(255), nullable=False, index=True)
    category = Column(String(100), nullable=False, index=True)  # BAKERY, PHARMACY, RESTAURANT, ...
    description = Column(Text, nullable=True)

    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(1000), nullable=True)

    opening_hours = Column(String(500), nullable=True)
    price_range = Column(String(50), nullable=True)
    amenities = Column(JSONType, nullable=False, default=list)  # sorted, deduplicated
    rating = Column(Float, nullable=True)  # 0..5
    image_urls = Column(JSONType, nullable=False, default=list)  # ordered

    comments = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)  # staff only; hidden from viewers

    # Normalized duplicate key (strategy from settings.provider_duplicate_key); unique so
    # concurrent imports cannot both insert the same provider
    dedupe_key = Column(String(600), nullable=False, unique=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    tag_rows = relationship(
        "ActivityProviderTag",
        back_populates="provider",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ActivityProviderTag.tag",
    )
    links = relationship(
        "PropertyActivityProvider",
        back_populates="provider",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PropertyActivityProvider.property_id",
    )

    @property
    def tags(self) -> list[str]:
        return sorted(r.tag for r in self.tag_rows)

    def set_tags(self, tags: list[str]) -> None:
        """Replace the tag set, keeping rows for tags that stay (avoids delete+insert of the same unique pair)."""
        wanted = sorted(set(tags))
        keep = [r for r in self.tag_rows if r.tag in wanted]
        have = {r.tag for r in keep}
        self.tag_rows = keep + [ActivityProviderTag(tag=t) for t in wanted if t not in have]

    @property
    def property_ids(self) -> list[int]:
        return sorted(link.property_id for link in self.links)


class ActivityProviderTag(Base):
    __tablename__ = "activity_provider_tags"
    __table_args__ = (UniqueConstraint("provider_id", "tag", name="uq_activity_provider_tags_provider_tag"),)

    id = Column(Integer, primary_key=True)
    provider_id = Column(String(36), ForeignKey("activity_providers.id", ondelete="CASCADE"), nullable=False, index=True)
    tag = Column(String(100), nullable=False, index=True)

    provider = relationship("ActivityProvider", back_populates="tag_rows")


class PropertyActivityProvider(Base):
    """Link between a provider and a property, with relationship-specific metadata."""
    __tablename__ = "property_activity_providers"
    __table_args__ = (UniqueConstraint("provider_id", "property_id", name="uq_property_activity_providers_pair"),)

    id = Column(Integer, primary_key=True)
    provider_id = Column(String(36), ForeignKey("activity_providers.id", ondelete="CASCADE"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)

    notes = Column(String(500), nullable=True)
    distance = Column(Float, nullable=True)  # km
    walking_time = Column(Integer, nullable=True)  # minutes
    driving_time = Column(Integer, nullable=True)  # minutes

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    provider = relationship("ActivityProvider", back_populates="links")
    property = relationship("Property", back_populates="provider_links")
