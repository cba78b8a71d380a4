"""
Test identity sync, role sync and enrollment reconciliation
"""

from datetime import datetime, timezone

import pytest
import requests

from app.core.decorator import NotFound, UpstreamError
from app.models.course_enrollment import Enrollment
from app.models.user import User
from app.schemas.user import ProviderUser
from app.services.course_enrollment import CourseEnrollmentService
from app.services.identity import IdentityProvider, SupabaseIdentityProvider
from app.services.user import UserService
from conftest import auth_headers, make_course, make_profile, make_user

CANONICAL_ID = "0f4b8f7e-1111-4c1e-9a6d-000000000001"


class StaticProvider(IdentityProvider):
    def __init__(self, users):
        self.users = users

    def list_users(self):
        return list(self.users)

    def create_user(self, email, password, name=None):
        user = ProviderUser(id=f"static-{len(self.users) + 1}", email=email, name=name)
        self.users.append(user)
        return user


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self.payload


class FakeSession:
    """Serves pages of GoTrue admin users and records the requests made."""

    def __init__(self, pages, status=200):
        self.pages = pages
        self.status = status
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers})
        page = params["page"] - 1
        users = self.pages[page] if page < len(self.pages) else []
        return FakeResponse({"users": users}, self.status)


def gotrue_user(user_id, email):
    return {
        "id": user_id,
        "email": email,
        "user_metadata": {"name": email.split("@")[0]},
        "created_at": "2024-01-05T10:00:00Z",
        "last_sign_in_at": None,
    }


# ==================== Supabase provider ====================


def test_supabase_provider_paginates():
    session = FakeSession(
        [
            [gotrue_user("u1", "one@example.com"), gotrue_user("u2", "two@example.com")],
            [gotrue_user("u3", "three@example.com")],
        ]
    )
    provider = SupabaseIdentityProvider(
        "https://project.supabase.co/", "service-key", page_size=2, session=session
    )

    users = provider.list_users()

    assert [u.id for u in users] == ["u1", "u2", "u3"]
    assert session.calls[0]["url"] == "https://project.supabase.co/auth/v1/admin/users"
    assert session.calls[0]["headers"]["apikey"] == "service-key"
    assert len(session.calls) == 2
    assert provider.get_user_by_email("TWO@example.com").id == "u2"


def test_supabase_provider_failure_is_upstream_error():
    provider = SupabaseIdentityProvider(
        "https://project.supabase.co", "service-key", session=FakeSession([], status=500)
    )
    with pytest.raises(UpstreamError):
        provider.list_users()


def test_unconfigured_supabase_provider():
    with pytest.raises(UpstreamError):
        SupabaseIdentityProvider("", "").list_users()


# ==================== Reconciliation ====================


def test_reconcile_moves_alias_enrollments(db):
    canonical = make_user(db, "drift@example.com", user_id=CANONICAL_ID)
    alias = make_user(db, "Drift@Example.com")
    course = make_course(db, sku="REC001")
    CourseEnrollmentService(db).create_enrollment(alias.id, course.id)

    provider = StaticProvider([ProviderUser(id=canonical.id, email="drift@example.com")])
    result = CourseEnrollmentService(db).reconcile_identity("drift@example.com", provider)

    assert result.canonical_user_id == CANONICAL_ID
    assert result.alias_ids == [alias.id]
    assert result.fixed_enrollments == 1
    assert result.errors == []
    assert db.query(Enrollment).one().user_id == CANONICAL_ID


def test_reconcile_reports_conflicts_and_continues(db):
    canonical = make_user(db, "drift@example.com", user_id=CANONICAL_ID)
    alias = make_user(db, "drift@example.com")
    first = make_course(db, sku="REC001")
    second = make_course(db, sku="REC002")
    service = CourseEnrollmentService(db)
    service.create_enrollment(canonical.id, first.id)
    service.create_enrollment(alias.id, first.id)
    service.create_enrollment(alias.id, second.id)

    provider = StaticProvider([ProviderUser(id=canonical.id, email="drift@example.com")])
    result = service.reconcile_identity("drift@example.com", provider)

    assert result.fixed_enrollments == 1
    assert len(result.errors) == 1
    owners = {
        (e.user_id, e.course_id)
        for e in db.query(Enrollment).all()
    }
    assert (CANONICAL_ID, second.id) in owners
    assert (alias.id, first.id) in owners


def test_reconcile_includes_profile_ids(db):
    make_user(db, "legacy@example.com", user_id=CANONICAL_ID)
    profile = make_profile(db, "legacy@example.com")
    # Legacy rows recorded the profile id as the user id
    db.add(User(id=profile.id, email=None))
    db.commit()
    course = make_course(db, sku="REC003")
    CourseEnrollmentService(db).create_enrollment(profile.id, course.id)

    result = CourseEnrollmentService(db).reconcile_identity("legacy@example.com")

    assert profile.id in result.alias_ids
    assert result.fixed_enrollments == 1


def test_reconcile_unknown_email(db):
    with pytest.raises(NotFound):
        CourseEnrollmentService(db).reconcile_identity("ghost@example.com")


def test_reconcile_endpoint_requires_admin(client, learner):
    response = client.post(
        "/enrollments/reconcile", json={"email": "a@example.com"}, headers=auth_headers(learner)
    )
    assert response.status_code == 403


def test_reconcile_endpoint(client, db, admin):
    canonical = make_user(db, "drift@example.com", user_id=CANONICAL_ID)
    # The local provider treats the oldest row for an email as canonical
    canonical.created_at = datetime(2020, 1, 1, tzinfo=timezone.utc)
    db.commit()
    alias = make_user(db, "drift@example.com")
    course = make_course(db, sku="REC004")
    CourseEnrollmentService(db).create_enrollment(alias.id, course.id)

    response = client.post(
        "/enrollments/reconcile", json={"email": "drift@example.com"}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["canonical_user_id"] == CANONICAL_ID
    assert response.json()["fixed_enrollments"] == 1


# ==================== User & role sync ====================


def test_sync_creates_canonical_rows_and_reconciles(db):
    stale = make_user(db, "moved@example.com")
    course = make_course(db, sku="SYNC01")
    CourseEnrollmentService(db).create_enrollment(stale.id, course.id)

    provider = StaticProvider(
        [
            ProviderUser(id=CANONICAL_ID, email="Moved@Example.com", name="Moved"),
            ProviderUser(id="no-email-user", email=None),
        ]
    )
    result = UserService(db).sync_users(provider)

    assert result.total == 2
    assert result.created == 1
    assert result.skipped == 1
    assert result.reconciled_enrollments == 1
    assert result.errors == []
    assert db.query(User).filter(User.id == CANONICAL_ID).one().email == "moved@example.com"
    assert db.query(Enrollment).one().user_id == CANONICAL_ID


def test_sync_updates_existing_rows(db):
    make_user(db, "old@example.com", user_id=CANONICAL_ID)
    provider = StaticProvider([ProviderUser(id=CANONICAL_ID, email="new@example.com")])

    result = UserService(db).sync_users(provider)

    assert result.updated == 1
    assert db.query(User).filter(User.id == CANONICAL_ID).one().email == "new@example.com"


def test_sync_roles(db):
    user = make_user(db, "boss@example.com")
    make_profile(db, "boss@example.com", role="admin", profile_id=user.id)
    odd = make_user(db, "odd@example.com")
    make_profile(db, "odd@example.com", role="superuser", profile_id=odd.id)
    make_profile(db, "orphan@example.com", role="admin")

    result = UserService(db).sync_roles()

    assert result.total == 2
    assert result.updated == 1
    assert len(result.errors) == 1
    db.refresh(user)
    assert user.role == "admin"


def test_sync_endpoints(client, db, admin):
    make_user(db, "learner2@example.com")

    users = client.post("/admin/users/sync", headers=auth_headers(admin))
    roles = client.post("/admin/users/sync-roles", headers=auth_headers(admin))

    assert users.status_code == 200
    assert users.json()["errors"] == []
    assert roles.status_code == 200


def test_sync_endpoints_require_admin(client, learner):
    assert client.post("/admin/users/sync", headers=auth_headers(learner)).status_code == 403
