"""Bulk import of activity providers.

Rows are independent: each one is validated, checked for duplicates and committed on
its own. A failing row is reported in errors[] and rolls back only itself; rows
committed earlier in the batch stay. Only batch-level problems (empty or oversized
batch, unreadable CSV) raise.

Invariant: imported + skipped + len(errors) == len(rows), and errors[].row is the
row's position in the submitted batch.
"""
from __future__ import annotations

import csv
import io
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.schemas.activity_provider import BulkImportResult, BulkImportRowError, ProviderCreate
from app.services.activity_providers import create_provider, find_duplicate, provider_dedupe_key
from app.services.errors import ServiceError, ValidationError, describe_field_errors, field_errors

logger = logging.getLogger(__name__)

# CSV cells holding lists ("wifi, parking")
_LIST_COLUMNS = ("tags", "amenities", "image_urls")
_FLOAT_COLUMNS = ("latitude", "longitude", "rating")

# Normalized CSV header -> field name
_HEADER_ALIASES = {
    "type": "category",
    "postalcode": "postal_code",
    "zip": "postal_code",
    "zip_code": "postal_code",
    "openinghours": "opening_hours",
    "pricerange": "price_range",
    "imageurls": "image_urls",
    "images": "image_urls",
    "internalnotes": "internal_notes",
    "notes": "comments",
    "lat": "latitude",
    "lng": "longitude",
    "lon": "longitude",
}


def import_providers(
    db: Session,
    rows: list[Any],
    *,
    skip_duplicates: bool = False,
    user_id: int | None,
) -> BulkImportResult:
    settings = get_settings()
    if not rows:
        raise ValidationError("Import batch is empty", errors=[{"field": "providers", "message": "At least one row is required"}])
    if len(rows) > settings.bulk_import_max_rows:
        raise ValidationError(
            "Import batch is too large",
            errors=[{"field": "providers", "message": f"At most {settings.bulk_import_max_rows} rows per import"}],
        )

    result = BulkImportResult()
    seen_keys: set[str] = set()

    for idx, row in enumerate(rows):
        if not isinstance(row, Mapping):
            _row_failed(result, idx, "Row must be an object")
            continue
        try:
            data = ProviderCreate.model_validate(dict(row))
        except PydanticValidationError as e:
            _row_failed(result, idx, describe_field_errors(field_errors(e)))
            continue

        key = provider_dedupe_key(data.name, data.category, data.city)
        is_duplicate = key in seen_keys or find_duplicate(db, key) is not None
        if is_duplicate and skip_duplicates:
            result.skipped += 1
            continue

        try:
            create_provider(db, data, user_id=user_id, audit_metadata={"source": "bulk_import", "row": idx})
        except ServiceError as e:
            # create_provider already rolled back this row only
            _row_failed(result, idx, e.message)
            continue
        seen_keys.add(key)
        result.imported += 1

    logger.info(
        "Bulk import: %d imported, %d skipped, %d failed (of %d rows)",
        result.imported, result.skipped, len(result.errors), len(rows),
    )
    return result


def _row_failed(result: BulkImportResult, idx: int, message: str) -> None:
    logger.debug("Bulk import row %d failed: %s", idx, message)
    result.errors.append(BulkImportRowError(row=idx, error=message))


def _normalize_header(h: str) -> str:
    key = h.strip().lower().replace(" ", "_").replace("-", "_")
    return _HEADER_ALIASES.get(key.replace("_", ""), _HEADER_ALIASES.get(key, key))


def _split_list_cell(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_provider_csv(content: bytes) -> list[dict[str, Any]]:
    """Turn an uploaded CSV into raw rows for import_providers. Empty cells are dropped."""
    if not content:
        raise ValidationError("File is empty.")
    try:
        text = content.decode("utf-8-sig").strip()
    except UnicodeDecodeError:
        raise ValidationError("File must be UTF-8 encoded.")

    reader = csv.DictReader(io.StringIO(text))
    orig_headers = [h for h in (reader.fieldnames or []) if h is not None]
    if not orig_headers:
        raise ValidationError("CSV has no header row.")
    header_map = {h: _normalize_header(h) for h in orig_headers}

    rows = []
    for raw in reader:
        row: dict[str, Any] = {}
        for orig, field_name in header_map.items():
            cell = raw.get(orig)
            if cell is None or not str(cell).strip():
                continue
            value: Any = str(cell).strip()
            if field_name in _LIST_COLUMNS:
                value = _split_list_cell(value)
            elif field_name in _FLOAT_COLUMNS:
                # Leave unparsable numbers as text so row validation reports them
                try:
                    value = float(value)
                except ValueError:
                    pass
            row[field_name] = value
        rows.append(row)
    if not rows:
        raise ValidationError("CSV has no data rows.")
    return rows
