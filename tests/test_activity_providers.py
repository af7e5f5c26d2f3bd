"""
Activity provider directory: CRUD, listing, validation, visibility, export.
"""
import csv
import io
import json

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import OperationalError

from app.models.activity_provider import ActivityProvider, PropertyActivityProvider
from app.models.audit_log import AuditLog
from app.schemas.activity_provider import ProviderCreate, ProviderFilters, ProviderUpdate
from app.services import activity_providers as service
from app.services import audit_log, audit_resolver
from app.services.errors import ConflictError, NotFoundError, StorageError, ValidationError
from app.services.provider_links import link_provider


BAKERY = {
    "name": "Boulangerie du Port",
    "category": "BAKERY",
    "description": "Fresh bread every morning",
    "address": "3 quai Lunel",
    "city": "Nice",
    "country": "France",
    "phone": "+33 4 93 00 00 00",
    "email": "contact@boulangerie-du-port.fr",
    "website": "https://boulangerie.example",
    "tags": ["bread", "breakfast"],
    "amenities": ["takeaway"],
    "rating": 4.5,
    "image_urls": ["https://img.example/1.jpg"],
    "comments": "Opens at 7",
    "internal_notes": "Owner is a friend of the manager",
}


def _create(db, user_id=None, **overrides):
    return service.create_provider(db, ProviderCreate(**{**BAKERY, **overrides}), user_id=user_id)


def _entries(db, entity_id, action=None):
    q = db.query(AuditLog).filter(AuditLog.entity_id == entity_id)
    if action:
        q = q.filter(AuditLog.action == action)
    return q.order_by(AuditLog.id.asc()).all()


# --- service level ---


def test_create_then_get_returns_supplied_fields(db, manager):
    created = _create(db, user_id=manager.id)
    fetched = service.get_provider(db, created.id)
    for field, value in BAKERY.items():
        assert getattr(fetched, field) == value, field

    creates = _entries(db, created.id, "CREATE")
    assert len(creates) == 1
    assert creates[0].entity_type == "activity-provider"
    assert creates[0].user_id == manager.id
    assert creates[0].changes["name"] == BAKERY["name"]


def test_tags_are_a_set(db):
    provider = _create(db, tags=["wine", " bread ", "wine", ""])
    assert provider.tags == ["bread", "wine"]


def test_create_with_property_ids_links_them(db, make_property):
    villa = make_property("Villa Mimosa")
    loft = make_property("Loft Garibaldi")
    provider = _create(db, property_ids=[villa.id, loft.id])
    assert provider.property_ids == sorted([villa.id, loft.id])
    assert len(_entries(db, provider.id, "LINK")) == 2


def test_create_with_unknown_property_leaves_nothing(db):
    with pytest.raises(NotFoundError):
        _create(db, property_ids=[999])
    assert db.query(ActivityProvider).count() == 0
    assert db.query(AuditLog).count() == 0


def test_duplicate_name_and_category_conflicts(db):
    _create(db)
    with pytest.raises(ConflictError):
        _create(db, name="  boulangerie   du PORT ", city="Antibes")
    # Same name, different category is a different provider
    other = _create(db, category="CAFE")
    assert other.id


def test_get_unknown_provider(db):
    with pytest.raises(NotFoundError):
        service.get_provider(db, "does-not-exist")


def test_patch_phone_only_records_phone_diff(db, manager):
    provider = _create(db)
    service.update_provider(db, provider.id, ProviderUpdate(phone="+33 6 00 00 00 00"), user_id=manager.id)

    updates = _entries(db, provider.id, "UPDATE")
    assert len(updates) == 1
    assert updates[0].changes == {"phone": {"old": BAKERY["phone"], "new": "+33 6 00 00 00 00"}}
    assert service.get_provider(db, provider.id).name == BAKERY["name"]


def test_patch_without_changes_writes_no_entry(db):
    provider = _create(db)
    service.update_provider(db, provider.id, ProviderUpdate(city="Nice"), user_id=None)
    assert _entries(db, provider.id, "UPDATE") == []


def test_patch_explicit_null_clears_field(db):
    provider = _create(db)
    updated = service.update_provider(db, provider.id, ProviderUpdate(website=None), user_id=None)
    assert updated.website is None
    assert updated.phone == BAKERY["phone"]


def test_patch_into_existing_key_conflicts(db):
    _create(db)
    second = _create(db, name="Pharmacie Centrale", category="PHARMACY")
    with pytest.raises(ConflictError):
        service.update_provider(db, second.id, ProviderUpdate(name="Boulangerie du Port", category="BAKERY"), user_id=None)
    assert service.get_provider(db, second.id).name == "Pharmacie Centrale"


def test_delete_provider_with_two_links(db, manager, make_property):
    villa = make_property("Villa Mimosa")
    loft = make_property("Loft Garibaldi")
    provider = _create(db)
    link_provider(db, provider.id, villa.id, user_id=manager.id)
    link_provider(db, provider.id, loft.id, user_id=manager.id)
    provider_id = provider.id

    service.delete_provider(db, provider_id, user_id=manager.id)

    with pytest.raises(NotFoundError):
        service.get_provider(db, provider_id)
    assert db.query(PropertyActivityProvider).filter(PropertyActivityProvider.provider_id == provider_id).count() == 0

    entry = _entries(db, provider_id, "DELETE")[0]
    resolved = audit_resolver.resolve_entry(db, entry)
    assert resolved["entity_details"] is None
    assert resolved["changes"]["name"] == BAKERY["name"]
    assert resolved["changes"]["property_ids"] == sorted([villa.id, loft.id])


def test_pagination_past_the_end(db):
    for i in range(25):
        _create(db, name=f"Provider {i:02d}")

    first = service.list_providers(db, page=1, page_size=10)
    assert len(first.items) == 10
    assert first.page_count == 3
    assert first.total_count == 25

    beyond = service.list_providers(db, page=4, page_size=10)
    assert beyond.items == []
    assert beyond.total_count == 25


def test_pagination_rejects_bad_page_size(db):
    with pytest.raises(ValidationError):
        service.list_providers(db, page=1, page_size=500)
    with pytest.raises(ValidationError):
        service.list_providers(db, page=0)


def test_sort_by_name_desc(db):
    for name in ("Alpha", "Charlie", "Bravo"):
        _create(db, name=name)
    listing = service.list_providers(db, sort_by="name", sort_order="desc")
    assert [p.name for p in listing.items] == ["Charlie", "Bravo", "Alpha"]


def test_filters(db, make_property):
    villa = make_property()
    _create(db, property_ids=[villa.id])
    _create(db, name="Pharmacie Centrale", category="PHARMACY", tags=["health"], description=None, website=None, email=None)
    _create(db, name="Wine Bar 100%", category="BAR", tags=["wine"], description=None)

    def names(**kw):
        return sorted(p.name for p in service.list_providers(db, ProviderFilters(**kw)).items)

    assert names(search="bread") == ["Boulangerie du Port"]
    assert names(search="100%") == ["Wine Bar 100%"]
    assert names(category="PHARMACY") == ["Pharmacie Centrale"]
    assert names(tags=["wine", "health"]) == ["Pharmacie Centrale", "Wine Bar 100%"]
    assert names(has_website=False) == ["Pharmacie Centrale"]
    assert names(has_email=True) == ["Boulangerie du Port", "Wine Bar 100%"]
    assert names(property_id=villa.id) == ["Boulangerie du Port"]


def test_filter_tags_collapse_whitespace(db):
    _create(db, tags=["wine bar"])
    listing = service.list_providers(db, ProviderFilters(tags=["  wine   bar "]))
    assert [p.name for p in listing.items] == ["Boulangerie du Port"]


def test_failed_audit_write_rolls_back_create(db, monkeypatch):
    def failing_record(*args, **kwargs):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))

    monkeypatch.setattr(audit_log, "record", failing_record)
    with pytest.raises(StorageError):
        _create(db)
    assert db.query(ActivityProvider).count() == 0
    assert db.query(AuditLog).count() == 0


def test_bulk_delete_reports_missing_ids(db, manager):
    a = _create(db, name="A")
    b = _create(db, name="B")
    deleted, not_found = service.bulk_delete_providers(db, [a.id, "missing", b.id], user_id=manager.id)
    assert deleted == 2
    assert not_found == ["missing"]
    assert db.query(ActivityProvider).count() == 0


def test_bulk_delete_requires_ids(db):
    with pytest.raises(ValidationError):
        service.bulk_delete_providers(db, [], user_id=None)


# --- validation ---


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "  "},
        {"category": ""},
        {"email": "not-an-email"},
        {"website": "ftp://example.com"},
        {"latitude": 91},
        {"rating": 6},
        {"image_urls": ["not a url"]},
    ],
)
def test_create_rejects_invalid_input(overrides):
    with pytest.raises(PydanticValidationError):
        ProviderCreate(**{**BAKERY, **overrides})


def test_create_accepts_legacy_field_names():
    data = ProviderCreate(name="Le Bistrot", type="RESTAURANT", postalCode="06300", notes="Book ahead")
    assert data.category == "RESTAURANT"
    assert data.postal_code == "06300"
    assert data.comments == "Book ahead"


# --- API ---


def test_api_create_get_and_delete(client, auth_headers):
    response = client.post("/activity-providers", json=BAKERY, headers=auth_headers("manager"))
    assert response.status_code == 201
    provider_id = response.json()["id"]

    detail = client.get(f"/activity-providers/{provider_id}", headers=auth_headers("viewer"))
    assert detail.status_code == 200
    assert detail.json()["tags"] == ["bread", "breakfast"]
    assert detail.json()["links"] == []

    deleted = client.delete(f"/activity-providers/{provider_id}", headers=auth_headers("manager"))
    assert deleted.status_code == 200
    assert deleted.json()["status"] == "success"
    assert client.get(f"/activity-providers/{provider_id}", headers=auth_headers("viewer")).status_code == 404


def test_api_duplicate_is_409(client, auth_headers):
    client.post("/activity-providers", json=BAKERY, headers=auth_headers("manager"))
    response = client.post("/activity-providers", json=BAKERY, headers=auth_headers("manager"))
    assert response.status_code == 409


def test_api_missing_name_is_422(client, auth_headers):
    response = client.post("/activity-providers", json={"category": "BAKERY"}, headers=auth_headers("manager"))
    assert response.status_code == 422


def test_api_patch_and_put(client, auth_headers):
    provider_id = client.post("/activity-providers", json=BAKERY, headers=auth_headers("manager")).json()["id"]
    patched = client.patch(f"/activity-providers/{provider_id}", json={"phone": "112"}, headers=auth_headers("manager"))
    assert patched.status_code == 200
    assert patched.json()["phone"] == "112"
    assert patched.json()["city"] == "Nice"

    put = client.put(f"/activity-providers/{provider_id}", json={"city": "Antibes"}, headers=auth_headers("manager"))
    assert put.status_code == 200
    assert put.json()["city"] == "Antibes"

    cleared = client.patch(f"/activity-providers/{provider_id}", json={"name": ""}, headers=auth_headers("manager"))
    assert cleared.status_code == 422


def test_api_internal_notes_hidden_from_viewer(client, auth_headers):
    provider_id = client.post("/activity-providers", json=BAKERY, headers=auth_headers("manager")).json()["id"]

    as_viewer = client.get(f"/activity-providers/{provider_id}", headers=auth_headers("viewer")).json()
    as_manager = client.get(f"/activity-providers/{provider_id}", headers=auth_headers("manager")).json()
    assert as_viewer["internal_notes"] is None
    assert as_manager["internal_notes"] == BAKERY["internal_notes"]

    listed = client.get("/activity-providers", headers=auth_headers("viewer")).json()
    assert listed["items"][0]["internal_notes"] is None


def test_api_list_page_and_property_count(client, auth_headers, make_property):
    villa = make_property()
    body = {**BAKERY, "property_ids": [villa.id]}
    client.post("/activity-providers", json=body, headers=auth_headers("manager"))
    for i in range(11):
        client.post("/activity-providers", json={"name": f"Shop {i:02d}", "category": "SHOP"}, headers=auth_headers("manager"))

    page = client.get("/activity-providers?page=2&page_size=5&sort_by=name", headers=auth_headers("viewer")).json()
    assert page["total_count"] == 12
    assert page["page_count"] == 3
    assert page["page"] == 2
    assert len(page["items"]) == 5

    linked = client.get(f"/activity-providers?property_id={villa.id}", headers=auth_headers("viewer")).json()
    assert linked["total_count"] == 1
    assert linked["items"][0]["property_count"] == 1

    tagged = client.get("/activity-providers?tags=bread,nothing", headers=auth_headers("viewer")).json()
    assert tagged["total_count"] == 1


def test_api_bulk_delete_as_admin(client, auth_headers):
    ids = [
        client.post("/activity-providers", json={"name": n, "category": "SHOP"}, headers=auth_headers("manager")).json()["id"]
        for n in ("One", "Two")
    ]
    response = client.post("/activity-providers/bulk-delete", json={"providerIds": ids + ["nope"]}, headers=auth_headers("admin"))
    assert response.status_code == 200
    assert response.json() == {"deleted": 2, "not_found": ["nope"]}


def test_api_export_csv_honours_filters(client, auth_headers):
    client.post("/activity-providers", json=BAKERY, headers=auth_headers("manager"))
    client.post("/activity-providers", json={"name": "Pharmacie", "category": "PHARMACY"}, headers=auth_headers("manager"))

    response = client.get("/activity-providers/export?format=csv&category=BAKERY", headers=auth_headers("viewer"))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(response.content.decode("utf-8-sig"))))
    assert [r["name"] for r in rows] == ["Boulangerie du Port"]
    assert rows[0]["tags"] == "bread, breakfast"


def test_api_export_json_by_ids(client, auth_headers):
    first = client.post("/activity-providers", json=BAKERY, headers=auth_headers("manager")).json()["id"]
    client.post("/activity-providers", json={"name": "Pharmacie", "category": "PHARMACY"}, headers=auth_headers("manager"))

    response = client.get(f"/activity-providers/export?format=json&ids={first}", headers=auth_headers("viewer"))
    data = json.loads(response.content)
    assert [p["id"] for p in data] == [first]
    assert "internal_notes" not in data[0]

    as_manager = json.loads(client.get(f"/activity-providers/export?format=json&ids={first}", headers=auth_headers("manager")).content)
    assert as_manager[0]["internal_notes"] == BAKERY["internal_notes"]


def test_api_export_bad_format(client, auth_headers):
    response = client.get("/activity-providers/export?format=xml", headers=auth_headers("viewer"))
    assert response.status_code == 422
