"""
Bulk import (JSON batch and CSV upload).
"""
import pytest

from app.models.activity_provider import ActivityProvider
from app.models.audit_log import AuditLog
from app.schemas.activity_provider import ProviderCreate
from app.services.activity_providers import create_provider
from app.services.errors import ValidationError
from app.services.provider_import import import_providers, parse_provider_csv


def _row(i):
    return {"name": f"Provider {i}", "category": "SHOP"}


def test_bad_rows_are_reported_by_position(db, manager):
    rows = [_row(i) for i in range(7)]
    rows[2] = {"category": "SHOP"}
    rows[5] = {**_row(5), "email": "not-an-email"}

    result = import_providers(db, rows, user_id=manager.id)

    assert [e.row for e in result.errors] == [2, 5]
    assert "name" in result.errors[0].error
    assert "email" in result.errors[1].error
    assert result.imported + result.skipped + len(result.errors) == len(rows)
    assert db.query(ActivityProvider).count() == 5


def test_imported_rows_are_audited(db, manager):
    import_providers(db, [_row(0), _row(1)], user_id=manager.id)
    entries = db.query(AuditLog).filter(AuditLog.action == "CREATE").all()
    assert len(entries) == 2
    assert {e.metadata_["row"] for e in entries} == {0, 1}
    assert all(e.metadata_["source"] == "bulk_import" for e in entries)


def test_duplicates_skipped_when_asked(db):
    create_provider(db, ProviderCreate(**_row(0)), user_id=None)
    rows = [_row(0), _row(1), {"name": "provider 1 ", "category": "shop"}]

    result = import_providers(db, rows, skip_duplicates=True, user_id=None)
    assert (result.imported, result.skipped, result.errors) == (1, 2, [])


def test_duplicates_are_errors_otherwise(db):
    create_provider(db, ProviderCreate(**_row(0)), user_id=None)
    result = import_providers(db, [_row(0), _row(1)], user_id=None)
    assert result.imported == 1
    assert [e.row for e in result.errors] == [0]
    assert "already exists" in result.errors[0].error


def test_non_object_row(db):
    result = import_providers(db, ["oops", _row(1)], user_id=None)
    assert result.imported == 1
    assert result.errors[0].row == 0


def test_empty_batch_rejected(db):
    with pytest.raises(ValidationError):
        import_providers(db, [], user_id=None)


def test_csv_headers_are_normalized():
    content = (
        "\ufeffName,Type,Postal Code,Tags,Lat,Website\n"
        'Boulangerie,BAKERY,06300,"bread, breakfast",43.7,https://b.example\n'
        "Pharmacie,PHARMACY,,,,\n"
    ).encode("utf-8")
    rows = parse_provider_csv(content)
    assert rows[0] == {
        "name": "Boulangerie",
        "category": "BAKERY",
        "postal_code": "06300",
        "tags": ["bread", "breakfast"],
        "latitude": 43.7,
        "website": "https://b.example",
    }
    assert rows[1] == {"name": "Pharmacie", "category": "PHARMACY"}


@pytest.mark.parametrize("content", [b"", b"name,category\n", b"\xff\xfe\x00bad"])
def test_unusable_csv_rejected(content):
    with pytest.raises(ValidationError):
        parse_provider_csv(content)


def test_api_import_json(client, auth_headers):
    body = {"providers": [_row(0), {"name": ""}, _row(2)], "skipDuplicates": True}
    response = client.post("/activity-providers/import", json=body, headers=auth_headers("manager"))
    assert response.status_code == 200
    data = response.json()
    assert data["imported"] == 2
    assert data["skipped"] == 0
    assert [e["row"] for e in data["errors"]] == [1]


def test_api_import_csv(client, auth_headers):
    content = b"name,category,city\nLe Bistrot,RESTAURANT,Nice\nLe Bistrot,RESTAURANT,Nice\n"
    response = client.post(
        "/activity-providers/import/csv?skip_duplicates=true",
        files={"file": ("providers.csv", content, "text/csv")},
        headers=auth_headers("manager"),
    )
    assert response.status_code == 200
    assert response.json() == {"imported": 1, "skipped": 1, "errors": []}


def test_api_import_rejects_non_csv(client, auth_headers):
    response = client.post(
        "/activity-providers/import/csv",
        files={"file": ("providers.txt", b"name\n", "text/plain")},
        headers=auth_headers("manager"),
    )
    assert response.status_code == 422
    assert response.json()["detail"]["message"] == "Please upload a CSV file."
