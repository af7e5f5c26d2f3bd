"""Export activity providers as CSV (flattened, Excel friendly) or JSON (nested with linked properties)."""
from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timezone

from sqlalchemy.orm import Session, selectinload

from app.models.activity_provider import ActivityProvider, PropertyActivityProvider
from app.schemas.activity_provider import ProviderFilters
from app.services.activity_providers import apply_filters
from app.services.errors import ValidationError

EXPORT_FORMATS = ("csv", "json")

CSV_COLUMNS = (
    "id",
    "name",
    "category",
    "description",
    "address",
    "city",
    "country",
    "phone",
    "email",
    "website",
    "tags",
    "rating",
    "properties",
    "created_at",
    "updated_at",
)

# Excel needs the BOM to read UTF-8 CSV
_BOM = "\ufeff"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def fetch_for_export(
    db: Session,
    *,
    ids: list[str] | None = None,
    filters: ProviderFilters | None = None,
) -> list[ActivityProvider]:
    """Explicit ids win over filters. Ordered by name."""
    q = db.query(ActivityProvider).options(
        selectinload(ActivityProvider.tag_rows),
        selectinload(ActivityProvider.links).selectinload(PropertyActivityProvider.property),
    )
    if ids:
        q = q.filter(ActivityProvider.id.in_(ids))
    else:
        q = apply_filters(q, filters)
    return q.order_by(ActivityProvider.name.asc(), ActivityProvider.id.asc()).all()


def _provider_dict(p: ActivityProvider, include_internal: bool) -> dict:
    data = {
        "id": p.id,
        "name": p.name,
        "category": p.category,
        "description": p.description,
        "address": p.address,
        "city": p.city,
        "country": p.country,
        "postal_code": p.postal_code,
        "latitude": p.latitude,
        "longitude": p.longitude,
        "phone": p.phone,
        "email": p.email,
        "website": p.website,
        "opening_hours": p.opening_hours,
        "price_range": p.price_range,
        "amenities": list(p.amenities or []),
        "tags": p.tags,
        "rating": p.rating,
        "image_urls": list(p.image_urls or []),
        "comments": p.comments,
        "properties": [
            {
                "id": link.property_id,
                "name": link.property.name if link.property else None,
                "distance": link.distance,
                "walking_time": link.walking_time,
                "driving_time": link.driving_time,
                "notes": link.notes,
            }
            for link in p.links
        ],
        "created_at": _iso(p.created_at),
        "updated_at": _iso(p.updated_at),
    }
    if include_internal:
        data["internal_notes"] = p.internal_notes
    return data


def export_json(providers: list[ActivityProvider], *, include_internal: bool = False) -> str:
    return json.dumps([_provider_dict(p, include_internal) for p in providers], indent=2, ensure_ascii=False)


def export_csv(providers: list[ActivityProvider]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS, lineterminator="\r\n")
    writer.writeheader()
    for p in providers:
        writer.writerow({
            "id": p.id,
            "name": p.name,
            "category": p.category,
            "description": p.description or "",
            "address": p.address or "",
            "city": p.city or "",
            "country": p.country or "",
            "phone": p.phone or "",
            "email": p.email or "",
            "website": p.website or "",
            "tags": ", ".join(p.tags),
            "rating": "" if p.rating is None else p.rating,
            "properties": ", ".join(link.property.name for link in p.links if link.property),
            "created_at": _iso(p.created_at) or "",
            "updated_at": _iso(p.updated_at) or "",
        })
    return _BOM + buf.getvalue()


def export_providers(
    db: Session,
    fmt: str,
    *,
    ids: list[str] | None = None,
    filters: ProviderFilters | None = None,
    include_internal: bool = False,
) -> tuple[str, str, str]:
    """Returns (body, media_type, filename)."""
    fmt = (fmt or "csv").lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationError("Invalid format. Use 'csv' or 'json'", errors=[{"field": "format", "message": "must be csv or json"}])
    providers = fetch_for_export(db, ids=ids, filters=filters)
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    if fmt == "json":
        return export_json(providers, include_internal=include_internal), "application/json", f"activity-providers-{stamp}.json"
    return export_csv(providers), "text/csv; charset=utf-8", f"activity-providers-{stamp}.csv"
