"""
Test CSV imports of users and courses
"""

from decimal import Decimal

import pytest

from app.core.decorator import ValidationFailed
from app.models.course import Course
from app.models.user import User, UserLicense
from app.services.bulk_import import BulkImportService, extract_states, parse_csv
from app.services.identity import SupabaseIdentityProvider
from conftest import auth_headers, make_course, make_user
from test_identity import FakeResponse, StaticProvider

USERS_CSV = (
    "Email,Password,First Name,Last Name,Role,CPA License,CFP_License\n"
    "grace@example.com,longenough1,Grace,Hopper,admin,CPA-123,\n"
    "ALAN@example.com,,Alan,Turing,,,CFP-9\n"
    "not-an-email,longenough1,Bad,Row,,,\n"
    "short@example.com,abc,Short,Password,,,\n"
)

COURSES_CSV = (
    "Title,SKU,Online Price,Hardcopy Price,CPA Credits,CPA Course Number,CFP Credits,States\n"
    "Ethics for CPAs,ETH100,$29.00,45,4,ETH-CPA,,Texas|California\n"
    "Duplicate,BHF001,,,,,,\n"
    ",NOTITLE,10,,,,,\n"
    "Retirement Planning,RET200,,,,,2.5,\"All|TX, NY\"\n"
)


def upload(client, path, content, headers, filename="import.csv", content_type="text/csv"):
    return client.post(path, files={"file": (filename, content, content_type)}, headers=headers)


# ==================== Parsing ====================


def test_parse_csv_normalizes_headers():
    rows = parse_csv("\ufeffFirst  Name,ONLINE_price\n Ada ,15\n,\n".encode("utf-8"))
    assert rows == [(2, {"first_name": "Ada", "online_price": "15"})]


@pytest.mark.parametrize("content", [b"", b"email\n", b"\xff\xfeemail\n"])
def test_parse_csv_rejects_empty_or_undecodable(content):
    with pytest.raises(ValidationFailed):
        parse_csv(content)


def test_extract_states():
    assert extract_states("All|Texas|ca|Texas") == ["TX", "CA"]
    assert extract_states("New York, Utah, Atlantis") == ["NY", "UT"]
    assert extract_states(None) == []


# ==================== Users ====================


def test_import_users_reports_bad_rows_and_continues(db):
    provider = StaticProvider([])
    result = BulkImportService(db).import_users(USERS_CSV.encode("utf-8"), provider)

    assert result.total == 4
    assert result.created == 2
    assert [(e.row, e.key) for e in result.errors] == [
        (4, "not-an-email"),
        (5, "short@example.com"),
    ]
    assert result.errors[0].error == "Valid email is required"

    grace = db.query(User).filter(User.email == "grace@example.com").one()
    assert grace.id == "static-1"
    assert grace.name == "Grace Hopper"
    assert grace.role == "admin"
    licenses = [(lic.license_type, lic.license_number) for lic in grace.licenses]
    assert licenses == [("CPA", "CPA-123")]

    alan = db.query(User).filter(User.email == "alan@example.com").one()
    assert alan.role == "user"
    assert [lic.license_type for lic in alan.licenses] == ["CFP"]
    assert [u.email for u in provider.users] == ["grace@example.com", "alan@example.com"]


def test_import_users_skips_existing_email(db, learner):
    provider = StaticProvider([])
    result = BulkImportService(db).import_users(
        b"email,password\nA@Example.com,longenough1\nnew@example.com,longenough1\n", provider
    )

    assert result.created == 1
    [error] = result.errors
    assert error.error == "A user with this email already exists"
    assert provider.users[0].email == "new@example.com"


def test_import_users_provider_failure_is_row_error(db):
    class FailingSession:
        def post(self, url, json=None, headers=None, timeout=None):
            return FakeResponse({"msg": "already registered"}, status=422)

    provider = SupabaseIdentityProvider(
        "https://project.supabase.co", "service-key", session=FailingSession()
    )
    result = BulkImportService(db).import_users(
        b"email,password\ntaken@example.com,longenough1\n", provider
    )

    assert result.created == 0
    assert result.errors[0].error.startswith("Auth error")
    assert db.query(User).filter(User.email == "taken@example.com").count() == 0


def test_supabase_create_user_request(db):
    class RecordingSession:
        def __init__(self):
            self.calls = []

        def post(self, url, json=None, headers=None, timeout=None):
            self.calls.append({"url": url, "json": json})
            return FakeResponse({"id": "gotrue-1", "email": json["email"]})

    session = RecordingSession()
    provider = SupabaseIdentityProvider("https://project.supabase.co", "key", session=session)
    account = provider.create_user("new@example.com", "longenough1", "New Person")

    assert account.id == "gotrue-1"
    [call] = session.calls
    assert call["url"] == "https://project.supabase.co/auth/v1/admin/users"
    assert call["json"]["email_confirm"] is True
    assert call["json"]["user_metadata"] == {"name": "New Person"}


def test_import_users_endpoint(client, db, admin):
    response = upload(client, "/admin/import/users", USERS_CSV.encode("utf-8"), auth_headers(admin))

    assert response.status_code == 200
    data = response.json()
    assert data["created"] == 2
    assert len(data["errors"]) == 2
    assert db.query(UserLicense).count() == 2


# ==================== Courses ====================


def test_import_courses_continues_past_failed_rows(db):
    make_course(db, sku="BHF001")

    result = BulkImportService(db).import_courses(COURSES_CSV.encode("utf-8"))

    assert result.total == 4
    assert result.imported == 2
    assert [c.sku for c in result.courses] == ["ETH100", "RET200"]
    assert [(e.row, e.key) for e in result.errors] == [(3, "BHF001"), (4, None)]
    assert "already exists" in result.errors[0].error
    assert result.errors[1].error == "Missing or invalid title"

    ethics = db.query(Course).filter(Course.sku == "ETH100").one()
    assert {f.format: f.price for f in ethics.formats} == {
        "online": Decimal("29.00"),
        "hardcopy": Decimal("45"),
    }
    assert [(c.credit_type, c.amount, c.course_number) for c in ethics.credits] == [
        ("CPA", Decimal("4"), "ETH-CPA")
    ]
    assert sorted(s.state_code for s in ethics.states) == ["CA", "TX"]

    retirement = db.query(Course).filter(Course.sku == "RET200").one()
    assert {f.format: f.price for f in retirement.formats} == {"online": Decimal("15")}
    assert [c.credit_type for c in retirement.credits] == ["CFP"]
    assert sorted(s.state_code for s in retirement.states) == ["NY", "TX"]


def test_import_courses_generates_missing_sku(db):
    result = BulkImportService(db).import_courses(b"Course Title\nNo Sku Course\n")

    assert result.imported == 1
    assert result.courses[0].sku.startswith("BH-")


def test_import_courses_bad_price_is_row_error(db):
    result = BulkImportService(db).import_courses(
        b"title,sku,online_price\nPriced,P1,free\nOk,P2,20\n"
    )

    assert result.imported == 1
    assert result.errors[0].error == "Invalid online price: free"
    assert db.query(Course).filter(Course.sku == "P1").count() == 0


def test_import_courses_endpoint(client, admin):
    response = upload(
        client, "/admin/import/courses", COURSES_CSV.encode("utf-8"), auth_headers(admin)
    )

    assert response.status_code == 200
    assert response.json()["imported"] == 3
    assert [e["row"] for e in response.json()["errors"]] == [4]


# ==================== Endpoint guards ====================


def test_import_requires_admin(client, learner):
    for path in ("/admin/import/users", "/admin/import/courses"):
        response = upload(client, path, b"email\nx@example.com\n", auth_headers(learner))
        assert response.status_code == 403


def test_import_rejects_non_csv_upload(client, admin):
    response = upload(
        client,
        "/admin/import/courses",
        b"PK\x03\x04",
        auth_headers(admin),
        filename="courses.xlsx",
        content_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid file type. Please upload a CSV file."


def test_import_rejects_empty_file(client, admin):
    response = upload(client, "/admin/import/users", b"email,password\n", auth_headers(admin))
    assert response.status_code == 400


def test_existing_user_row_untouched_by_import(db):
    existing = make_user(db, "keep@example.com", name="Keep Me")
    BulkImportService(db).import_users(
        b"email,first_name\nkeep@example.com,Changed\n", StaticProvider([])
    )
    db.refresh(existing)
    assert existing.name == "Keep Me"
