"""Activity provider directory schemas."""
from datetime import datetime
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator, model_validator

# Accept the field names used by the old directory export / front end (camelCase, "type")
_INPUT_ALIASES = {
    "type": "category",
    "postalCode": "postal_code",
    "openingHours": "opening_hours",
    "priceRange": "price_range",
    "imageUrls": "image_urls",
    "internalNotes": "internal_notes",
    "notes": "comments",
    "propertyIds": "property_ids",
}

_OPTIONAL_TEXT_FIELDS = (
    "description",
    "address",
    "city",
    "country",
    "postal_code",
    "phone",
    "email",
    "website",
    "opening_hours",
    "price_range",
    "comments",
    "internal_notes",
)

TAG_MAX_LEN = 100


def _check_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid URL format")
    return value


def _normalize_string_set(values: list[str] | None, max_len: int = TAG_MAX_LEN) -> list[str]:
    """Strip, drop blanks, dedupe; returned sorted because the set is unordered."""
    out = set()
    for v in values or []:
        s = " ".join(str(v).split())
        if not s:
            continue
        if len(s) > max_len:
            raise ValueError(f"entries must be at most {max_len} characters")
        out.add(s)
    return sorted(out)


def _rename_input_keys(data: Any) -> Any:
    if not isinstance(data, dict):
        return data
    out = dict(data)
    for alias, field in _INPUT_ALIASES.items():
        if alias in out and field not in out:
            out[field] = out.pop(alias)
    return out


class _ProviderFields(BaseModel):
    """Shared field rules for create and update."""

    @model_validator(mode="before")
    @classmethod
    def rename_aliases(cls, data: Any) -> Any:
        return _rename_input_keys(data)

    @field_validator(*_OPTIONAL_TEXT_FIELDS, mode="before", check_fields=False)
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("website", check_fields=False)
    @classmethod
    def website_url(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _check_url(v)

    @field_validator("image_urls", check_fields=False)
    @classmethod
    def image_urls_valid(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        return [_check_url(u.strip()) for u in v if u and u.strip()]

    @field_validator("tags", "amenities", check_fields=False)
    @classmethod
    def string_sets(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        return _normalize_string_set(v)


class ProviderCreate(_ProviderFields):
    name: str = Field(..., max_length=255)
    category: str = Field(..., max_length=100)
    description: str | None = Field(None, max_length=1000)
    address: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=100)
    country: str | None = Field(None, max_length=100)
    postal_code: str | None = Field(None, max_length=20)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    phone: str | None = Field(None, max_length=50)
    email: EmailStr | None = None
    website: str | None = Field(None, max_length=1000)
    opening_hours: str | None = Field(None, max_length=500)
    price_range: str | None = Field(None, max_length=50)
    amenities: list[str] = []
    tags: list[str] = []
    rating: float | None = Field(None, ge=0, le=5)
    image_urls: list[str] = []
    comments: str | None = Field(None, max_length=2000)
    internal_notes: str | None = Field(None, max_length=2000)
    property_ids: list[int] = []  # linked right after creation, same transaction

    @field_validator("name", "category", mode="before")
    @classmethod
    def strip_required(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("category")
    @classmethod
    def category_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Category is required")
        return v


class ProviderUpdate(_ProviderFields):
    """All optional; only provided fields are updated. Explicit null clears an optional field."""
    name: str | None = Field(None, max_length=255)
    category: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=1000)
    address: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=100)
    country: str | None = Field(None, max_length=100)
    postal_code: str | None = Field(None, max_length=20)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    phone: str | None = Field(None, max_length=50)
    email: EmailStr | None = None
    website: str | None = Field(None, max_length=1000)
    opening_hours: str | None = Field(None, max_length=500)
    price_range: str | None = Field(None, max_length=50)
    amenities: list[str] | None = None
    tags: list[str] | None = None
    rating: float | None = Field(None, ge=0, le=5)
    image_urls: list[str] | None = None
    comments: str | None = Field(None, max_length=2000)
    internal_notes: str | None = Field(None, max_length=2000)

    @field_validator("name", "category", mode="before")
    @classmethod
    def strip_required(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("name", "category")
    @classmethod
    def cannot_clear(cls, v: str | None, info) -> str | None:
        if not v:
            raise ValueError(f"{info.field_name.capitalize()} cannot be empty")
        return v


class LinkMetadata(BaseModel):
    notes: str | None = Field(None, max_length=500)
    distance: float | None = Field(None, ge=0)  # km
    walking_time: int | None = Field(None, ge=0, validation_alias=AliasChoices("walking_time", "walkingTime"))
    driving_time: int | None = Field(None, ge=0, validation_alias=AliasChoices("driving_time", "drivingTime"))

    @field_validator("notes", mode="before")
    @classmethod
    def blank_notes(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip() or None
        return v


class ProviderLinkCreate(LinkMetadata):
    property_id: int = Field(..., validation_alias=AliasChoices("property_id", "propertyId"))


class ProviderLinkResponse(BaseModel):
    id: int
    provider_id: str
    property_id: int
    property_name: str | None = None
    notes: str | None = None
    distance: float | None = None
    walking_time: int | None = None
    driving_time: int | None = None
    created_at: datetime | None = None


class UnlinkResult(BaseModel):
    status: str = "success"
    removed: bool


class ProviderResponse(BaseModel):
    id: str
    name: str
    category: str
    description: str | None = None
    address: str | None = None
    city: str | None = None
    country: str | None = None
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    opening_hours: str | None = None
    price_range: str | None = None
    amenities: list[str] = []
    tags: list[str] = []
    rating: float | None = None
    image_urls: list[str] = []
    comments: str | None = None
    internal_notes: str | None = None  # only for manager/admin
    property_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class ProviderDetail(ProviderResponse):
    links: list[ProviderLinkResponse] = []


SortField = Literal["name", "category", "created_at", "updated_at"]
SortOrder = Literal["asc", "desc"]


class ProviderFilters(BaseModel):
    search: str | None = None
    category: str | None = None
    tags: list[str] = []
    has_website: bool | None = None
    has_phone: bool | None = None
    has_email: bool | None = None
    property_id: int | None = None


class ProviderPage(BaseModel):
    items: list[ProviderResponse]
    total_count: int
    page_count: int
    page: int
    page_size: int


class BulkImportRequest(BaseModel):
    # Raw rows: each one is validated on its own so a bad row cannot reject the batch
    providers: list[Any]
    skip_duplicates: bool = Field(False, validation_alias=AliasChoices("skip_duplicates", "skipDuplicates"))


class BulkImportRowError(BaseModel):
    row: int  # 0-based position in the submitted batch
    error: str


class BulkImportResult(BaseModel):
    imported: int = 0
    skipped: int = 0
    errors: list[BulkImportRowError] = []


class BulkDeleteRequest(BaseModel):
    provider_ids: list[str] = Field(..., validation_alias=AliasChoices("provider_ids", "providerIds"))


class BulkDeleteResult(BaseModel):
    deleted: int
    not_found: list[str] = []
