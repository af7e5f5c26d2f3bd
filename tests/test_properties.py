"""
Properties and their rooms, photos and resources. Every mutation is audited.
"""
from app.models.audit_log import AuditLog
from app.models.property import Room


def _actions(db, entity_type):
    rows = db.query(AuditLog).filter(AuditLog.entity_type == entity_type).order_by(AuditLog.id.asc()).all()
    return [r.action for r in rows]


def test_property_crud_is_audited(client, db, auth_headers):
    headers = auth_headers("manager")
    response = client.post("/properties", json={"name": " Villa Mimosa ", "city": "Nice", "region_code": "paca"}, headers=headers)
    assert response.status_code == 201
    prop = response.json()
    assert prop["name"] == "Villa Mimosa"
    assert prop["region_code"] == "PACA"
    assert prop["status"] == "active"

    patched = client.patch(f"/properties/{prop['id']}", json={"status": "inactive"}, headers=headers)
    assert patched.json()["status"] == "inactive"

    listed = client.get("/properties", headers=auth_headers("viewer")).json()
    assert [p["id"] for p in listed] == [prop["id"]]

    assert client.delete(f"/properties/{prop['id']}", headers=headers).status_code == 200
    assert client.get(f"/properties/{prop['id']}", headers=headers).status_code == 404
    assert _actions(db, "property") == ["CREATE", "UPDATE", "DELETE"]

    update = db.query(AuditLog).filter(AuditLog.action == "UPDATE").one()
    assert update.changes == {"status": {"old": "active", "new": "inactive"}}


def test_children_are_audited_and_resolve(client, db, auth_headers, make_property):
    villa = make_property()
    headers = auth_headers("manager")

    room = client.post(f"/properties/{villa.id}/rooms", json={"name": "Blue bedroom", "room_type": "bedroom"}, headers=headers)
    photo = client.post(f"/properties/{villa.id}/photos", json={"url": "https://img.example/p.jpg", "caption": "Pool"}, headers=headers)
    resource = client.post(f"/properties/{villa.id}/resources", json={"name": "House manual", "resource_type": "document"}, headers=headers)
    assert room.status_code == photo.status_code == resource.status_code == 201

    entries = client.get("/audit-logs", headers=headers).json()["items"]
    names = {e["entity_type"]: e["entity_name"] for e in entries}
    assert names["room"] == "Blue bedroom (Villa Mimosa)"
    assert names["photo"] == "Pool (Villa Mimosa)"
    assert names["resource"] == "House manual (Villa Mimosa)"

    assert client.delete(f"/rooms/{room.json()['id']}", headers=headers).status_code == 200
    assert db.query(Room).count() == 0
    assert _actions(db, "room") == ["CREATE", "DELETE"]
    assert client.delete(f"/rooms/{room.json()['id']}", headers=headers).status_code == 404


def test_deleting_property_cascades_children(client, db, auth_headers, make_property):
    villa = make_property()
    headers = auth_headers("manager")
    client.post(f"/properties/{villa.id}/rooms", json={"name": "Kitchen"}, headers=headers)
    client.delete(f"/properties/{villa.id}", headers=headers)
    assert db.query(Room).count() == 0


def test_viewer_cannot_mutate_properties(client, auth_headers):
    response = client.post("/properties", json={"name": "Villa"}, headers=auth_headers("viewer"))
    assert response.status_code == 403


def test_missing_property_is_404(client, auth_headers):
    response = client.post("/properties/999/rooms", json={"name": "Kitchen"}, headers=auth_headers("manager"))
    assert response.status_code == 404
    assert response.json()["detail"] == "Property not found: 999"
