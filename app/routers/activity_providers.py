"""Activity provider directory: CRUD, property links, bulk import/delete, export."""
from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from sqlalchemy.orm import Session
from app.database import get_db
from app.dependencies import can_see_internal_notes, get_current_user, require_admin, require_manager
from app.models.activity_provider import ActivityProvider, PropertyActivityProvider
from app.models.user import User
from app.schemas.activity_provider import (
    BulkDeleteRequest,
    BulkDeleteResult,
    BulkImportRequest,
    BulkImportResult,
    ProviderCreate,
    ProviderDetail,
    ProviderFilters,
    ProviderLinkCreate,
    ProviderLinkResponse,
    ProviderPage,
    ProviderResponse,
    ProviderUpdate,
    SortField,
    SortOrder,
    UnlinkResult,
)
from app.services import activity_providers as providers_service
from app.services import provider_links
from app.services.errors import ValidationError
from app.services.provider_export import export_providers
from app.services.provider_import import import_providers, parse_provider_csv

router = APIRouter(prefix="/activity-providers", tags=["activity-providers"])


def _split_multi(values: list[str] | None) -> list[str]:
    """Accept ?tags=a&tags=b as well as ?tags=a,b."""
    out = []
    for v in values or []:
        out.extend(part.strip() for part in v.split(",") if part.strip())
    return out


def _filters(
    search: str | None = None,
    category: str | None = None,
    tags: list[str] | None = Query(None),
    has_website: bool | None = None,
    has_phone: bool | None = None,
    has_email: bool | None = None,
    property_id: int | None = None,
) -> ProviderFilters:
    return ProviderFilters(
        search=search,
        category=category,
        tags=_split_multi(tags),
        has_website=has_website,
        has_phone=has_phone,
        has_email=has_email,
        property_id=property_id,
    )


def _provider_response(provider: ActivityProvider, user: User, property_count: int | None = None) -> ProviderResponse:
    resp = ProviderResponse.model_validate(provider)
    update = {"property_count": len(provider.links) if property_count is None else property_count}
    if not can_see_internal_notes(user):
        update["internal_notes"] = None
    return resp.model_copy(update=update)


def _link_response(link: PropertyActivityProvider) -> ProviderLinkResponse:
    return ProviderLinkResponse(
        id=link.id,
        provider_id=link.provider_id,
        property_id=link.property_id,
        property_name=link.property.name if link.property else None,
        notes=link.notes,
        distance=link.distance,
        walking_time=link.walking_time,
        driving_time=link.driving_time,
        created_at=link.created_at,
    )


def _provider_detail(provider: ActivityProvider, user: User) -> ProviderDetail:
    base = _provider_response(provider, user)
    return ProviderDetail(**base.model_dump(), links=[_link_response(link) for link in provider.links])


@router.get("", response_model=ProviderPage)
def list_activity_providers(
    filters: ProviderFilters = Depends(_filters),
    sort_by: SortField = "name",
    sort_order: SortOrder = "asc",
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Filtered, sorted, 1-indexed page of providers. A page past the end is empty with the real total_count."""
    listing = providers_service.list_providers(
        db, filters, page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order
    )
    return ProviderPage(
        items=[
            _provider_response(p, current_user, listing.property_counts.get(p.id, 0))
            for p in listing.items
        ],
        total_count=listing.total_count,
        page_count=listing.page_count,
        page=listing.page,
        page_size=listing.page_size,
    )


@router.post("", response_model=ProviderDetail, status_code=201)
def create_activity_provider(
    data: ProviderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    provider = providers_service.create_provider(db, data, user_id=current_user.id)
    return _provider_detail(provider, current_user)


@router.post("/import", response_model=BulkImportResult)
def bulk_import_activity_providers(
    data: BulkImportRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    """Import a batch of providers. Bad rows are reported in errors[] (row = position in the batch); good rows are kept."""
    return import_providers(db, data.providers, skip_duplicates=data.skip_duplicates, user_id=current_user.id)


@router.post("/import/csv", response_model=BulkImportResult)
def bulk_import_activity_providers_csv(
    file: UploadFile = File(...),
    skip_duplicates: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    """Import providers from CSV. Required columns: name, category (or type). List columns (tags, amenities, image_urls) are comma separated."""
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise ValidationError("Please upload a CSV file.")
    rows = parse_provider_csv(file.file.read())
    return import_providers(db, rows, skip_duplicates=skip_duplicates, user_id=current_user.id)


@router.post("/bulk-delete", response_model=BulkDeleteResult)
def bulk_delete_activity_providers(
    data: BulkDeleteRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    deleted, not_found = providers_service.bulk_delete_providers(db, data.provider_ids, user_id=current_user.id)
    return BulkDeleteResult(deleted=deleted, not_found=not_found)


@router.get("/export")
def export_activity_providers(
    format: str = "csv",
    ids: str | None = None,
    filters: ProviderFilters = Depends(_filters),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Export as CSV or JSON. ids (comma separated) takes precedence over the list filters."""
    id_list = [i.strip() for i in (ids or "").split(",") if i.strip()]
    body, media_type, filename = export_providers(
        db,
        format,
        ids=id_list or None,
        filters=filters,
        include_internal=can_see_internal_notes(current_user),
    )
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{provider_id}", response_model=ProviderDetail)
def get_activity_provider(
    provider_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    provider = providers_service.get_provider(db, provider_id)
    return _provider_detail(provider, current_user)


@router.patch("/{provider_id}", response_model=ProviderDetail)
@router.put("/{provider_id}", response_model=ProviderDetail)
def update_activity_provider(
    provider_id: str,
    data: ProviderUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    """Partial update: only fields present in the body change."""
    provider = providers_service.update_provider(db, provider_id, data, user_id=current_user.id)
    return _provider_detail(provider, current_user)


@router.delete("/{provider_id}")
def delete_activity_provider(
    provider_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    """Hard delete: the provider's property links are removed with it."""
    providers_service.delete_provider(db, provider_id, user_id=current_user.id)
    return {"status": "success", "message": "Activity provider deleted."}


@router.get("/{provider_id}/links", response_model=list[ProviderLinkResponse])
def list_activity_provider_links(
    provider_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [_link_response(link) for link in provider_links.list_links(db, provider_id)]


@router.post("/{provider_id}/link", response_model=ProviderLinkResponse, status_code=201)
def link_activity_provider(
    provider_id: str,
    data: ProviderLinkCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    """Link to a property. 409 if the pair is already linked (unlink first to change link details)."""
    link = provider_links.link_provider(db, provider_id, data.property_id, data, user_id=current_user.id)
    return _link_response(link)


@router.delete("/{provider_id}/unlink/{property_id}", response_model=UnlinkResult)
def unlink_activity_provider(
    provider_id: str,
    property_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    """Remove the link. Unlinking a pair that is not linked succeeds with removed=false."""
    removed = provider_links.unlink_provider(db, provider_id, property_id, user_id=current_user.id)
    return UnlinkResult(removed=removed)
