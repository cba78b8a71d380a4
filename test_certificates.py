"""
Test certificate issuance, edits, revocation and templates
"""

import re
from decimal import Decimal

import pytest

from app.core.decorator import Conflict, NotFound, ValidationFailed
from app.models.certificate import Certificate, CertificateEdit
from app.services.certificate import CertificateService
from app.services.course_enrollment import CourseEnrollmentService
from conftest import auth_headers, make_course, make_user

NUMBER_PATTERN = re.compile(r"^CERT-\d{4}-[0-9A-F]{8}$")


@pytest.fixture
def enrollment_id(db, learner, course):
    return CourseEnrollmentService(db).create_enrollment(learner.id, course.id).enrollment_id


@pytest.fixture
def issued(db, learner, course, enrollment_id):
    return CertificateService(db).auto_generate_certificates(
        learner.id, course.id, enrollment_id, Decimal("85")
    )


# ==================== Issuance ====================


def test_one_certificate_per_credit_type(db, learner, course, issued):
    assert sorted(c.credit_type for c in issued) == ["CFP", "CPA"]
    for certificate in issued:
        assert NUMBER_PATTERN.match(certificate.certificate_number)
        assert certificate.exam_score == Decimal("85")
        assert certificate.recipient_name == "Ada Learner"
        assert certificate.course_title == course.title
        assert certificate.is_revoked is False
        assert certificate.title == f"{certificate.credit_type} Certificate of Completion"

    credits = {c.credit_type: c.credits_earned for c in issued}
    assert credits["CPA"] == Decimal("2.0")
    assert credits["CFP"] == Decimal("1.5")
    assert len({c.certificate_number for c in issued}) == 2


def test_below_passing_score_issues_nothing(db, learner, course, enrollment_id):
    certificates = CertificateService(db).auto_generate_certificates(
        learner.id, course.id, enrollment_id, Decimal("69.5"), passing_score=Decimal("70")
    )
    assert certificates == []
    assert db.query(Certificate).count() == 0


def test_rerun_skips_held_credit_types(db, learner, course, enrollment_id, issued):
    again = CertificateService(db).auto_generate_certificates(
        learner.id, course.id, enrollment_id, Decimal("90")
    )
    assert again == []
    assert db.query(Certificate).count() == 2


def test_missing_template_falls_back_to_default_title(db, learner):
    course = make_course(db, sku="NOTPL1", credits=(("ERPA", "3"),))
    service = CertificateService(db)
    for template in service.list_templates("ERPA"):
        db.delete(template)
    db.commit()

    enrollment = CourseEnrollmentService(db).create_enrollment(learner.id, course.id)
    [certificate] = service.auto_generate_certificates(
        learner.id, course.id, enrollment.enrollment_id, Decimal("100")
    )
    assert certificate.title == "Certificate of Completion"
    assert certificate.template_id is None


def test_enrollment_must_match_user_and_course(db, learner, course, enrollment_id):
    other = make_user(db, "other@example.com")
    with pytest.raises(ValidationFailed):
        CertificateService(db).auto_generate_certificates(
            other.id, course.id, enrollment_id, Decimal("90")
        )


def test_generate_endpoint(client, admin, learner, course, enrollment_id):
    response = client.post(
        "/certificates/generate",
        json={
            "user_id": learner.id,
            "course_id": course.id,
            "enrollment_id": enrollment_id,
            "exam_score": "88",
        },
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    assert len(data["certificates"]) == 2
    assert data["certificates"][0]["course_sku"] == course.sku


def test_generate_requires_admin(client, learner, course, enrollment_id):
    response = client.post(
        "/certificates/generate",
        json={
            "user_id": learner.id,
            "course_id": course.id,
            "enrollment_id": enrollment_id,
            "exam_score": "88",
        },
        headers=auth_headers(learner),
    )
    assert response.status_code == 403


# ==================== Edits ====================


def test_edit_records_audit_entry(client, db, admin, issued):
    certificate = issued[0]
    response = client.put(
        f"/certificates/{certificate.id}/edit",
        json={
            "field_name": "recipient_name",
            "new_value": "Ada B. Learner",
            "old_value": "Ada Learner",
            "edit_reason": "Legal name",
        },
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["recipient_name"] == "Ada B. Learner"
    [edit] = data["edits"]
    assert edit["field_name"] == "recipient_name"
    assert edit["old_value"] == "Ada Learner"
    assert edit["new_value"] == "Ada B. Learner"
    assert edit["edited_by"] == admin.id
    assert edit["edit_reason"] == "Legal name"


def test_edit_leaves_other_fields_untouched(db, admin, issued):
    columns = [
        c.name
        for c in Certificate.__table__.columns
        if c.name not in ("recipient_name", "updated_at")
    ]

    def snapshot(certificate_id):
        db.expire_all()
        certificate = db.query(Certificate).filter(Certificate.id == certificate_id).one()
        return {name: getattr(certificate, name) for name in columns}

    target, other = issued
    before, other_before = snapshot(target.id), snapshot(other.id)

    CertificateService(db).edit_certificate(
        target.id, admin.id, "recipient_name", "Ada B. Learner", old_value="Ada Learner"
    )

    assert snapshot(target.id) == before
    assert snapshot(other.id) == other_before
    db.expire_all()
    assert db.get(Certificate, target.id).recipient_name == "Ada B. Learner"


def test_edit_numeric_field(db, admin, issued):
    service = CertificateService(db)
    certificate = service.edit_certificate(
        issued[0].id, admin.id, "exam_score", "91.5", old_value="85"
    )
    assert certificate.exam_score == Decimal("91.5")
    assert certificate.edits[-1].old_value == "85"


def test_edit_completion_date(db, admin, issued):
    certificate = CertificateService(db).edit_certificate(
        issued[0].id, admin.id, "completion_date", "2024-03-01T00:00:00+00:00"
    )
    assert certificate.completion_date.year == 2024
    assert certificate.completion_date.month == 3


def test_edit_rejects_non_editable_field(db, admin, issued):
    with pytest.raises(ValidationFailed):
        CertificateService(db).edit_certificate(
            issued[0].id, admin.id, "certificate_number", "CERT-2000-00000000"
        )
    assert db.query(CertificateEdit).count() == 0


def test_edit_endpoint_rejects_non_editable_field(client, admin, issued):
    response = client.put(
        f"/certificates/{issued[0].id}/edit",
        json={"field_name": "user_id", "new_value": "someone-else"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 422


def test_stale_old_value_is_conflict(db, admin, issued):
    with pytest.raises(Conflict):
        CertificateService(db).edit_certificate(
            issued[0].id, admin.id, "recipient_name", "New", old_value="Somebody Else"
        )


def test_invalid_values_are_rejected(db, admin, issued):
    service = CertificateService(db)
    with pytest.raises(ValidationFailed):
        service.edit_certificate(issued[0].id, admin.id, "exam_score", "abc")
    with pytest.raises(ValidationFailed):
        service.edit_certificate(issued[0].id, admin.id, "exam_score", "150")
    with pytest.raises(ValidationFailed):
        service.edit_certificate(issued[0].id, admin.id, "course_title", "   ")


# ==================== Revocation ====================


def test_revoke_then_revoke_again(client, admin, issued):
    certificate = issued[0]
    headers = auth_headers(admin)

    response = client.put(
        f"/certificates/{certificate.id}/revoke",
        json={"reason": "Issued in error"},
        headers=headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["is_revoked"] is True
    assert data["revoked_by"] == admin.id
    assert data["revoked_reason"] == "Issued in error"
    assert data["revoked_at"] is not None
    assert data["edits"][-1]["field_name"] == "is_revoked"

    again = client.put(
        f"/certificates/{certificate.id}/revoke",
        json={"reason": "Still wrong"},
        headers=headers,
    )
    assert again.status_code == 409


def test_revoke_requires_reason(client, admin, issued):
    headers = auth_headers(admin)
    blank = client.put(
        f"/certificates/{issued[0].id}/revoke", json={"reason": "  "}, headers=headers
    )
    missing = client.put(f"/certificates/{issued[0].id}/revoke", json={}, headers=headers)

    assert blank.status_code == 400
    assert blank.json()["error"] == "A revocation reason is required"
    assert missing.status_code == 400


def test_reinstate_requires_reason(client, db, admin, issued):
    CertificateService(db).revoke_certificate(issued[0].id, admin.id, "Fraud")
    response = client.put(
        f"/certificates/{issued[0].id}/reinstate",
        json={"reason": ""},
        headers=auth_headers(admin),
    )
    assert response.status_code == 400


def test_revoked_certificate_is_kept_and_frozen(db, admin, issued):
    service = CertificateService(db)
    service.revoke_certificate(issued[0].id, admin.id, "Fraud")

    assert db.query(Certificate).count() == 2
    with pytest.raises(Conflict):
        service.edit_certificate(issued[0].id, admin.id, "recipient_name", "X")


def test_reinstate(db, admin, issued):
    service = CertificateService(db)
    service.revoke_certificate(issued[0].id, admin.id, "Fraud")
    certificate = service.reinstate_certificate(issued[0].id, admin.id, "Appeal upheld")

    assert certificate.is_revoked is False
    assert certificate.revoked_at is None
    assert [e.new_value for e in certificate.edits] == ["true", "false"]

    with pytest.raises(Conflict):
        service.reinstate_certificate(issued[0].id, admin.id, "Again")


def test_revoke_unknown_certificate(db, admin):
    with pytest.raises(NotFound):
        CertificateService(db).revoke_certificate("missing", admin.id, "reason")


# ==================== Listing ====================


def test_user_listing_hides_revoked_by_default(client, db, admin, learner, issued):
    CertificateService(db).revoke_certificate(issued[0].id, admin.id, "Fraud")
    headers = auth_headers(learner)

    visible = client.get(f"/certificates/user/{learner.id}", headers=headers).json()
    everything = client.get(
        f"/certificates/user/{learner.id}", params={"include_revoked": True}, headers=headers
    ).json()

    assert visible["total"] == 1
    assert everything["total"] == 2


def test_learner_cannot_list_or_read_others(client, db, learner, issued):
    other = make_user(db, "other@example.com")
    headers = auth_headers(other)

    assert client.get(f"/certificates/user/{learner.id}", headers=headers).status_code == 403
    assert client.get(f"/certificates/{issued[0].id}", headers=headers).status_code == 403


def test_owner_reads_certificate(client, learner, issued):
    response = client.get(f"/certificates/{issued[0].id}", headers=auth_headers(learner))
    assert response.status_code == 200
    assert response.json()["template"]["credit_type"] == issued[0].credit_type


def test_admin_lists_with_filters(client, admin, issued):
    response = client.get(
        "/certificates", params={"credit_type": "CPA"}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["total"] == 1


# ==================== Templates ====================


def test_templates_seeded_for_every_credit_type(client):
    templates = client.get("/certificates/templates").json()
    assert {t["credit_type"] for t in templates} == {
        "CPA", "CFP", "CDFA", "EA", "OTRP", "EA/OTRP", "ERPA",
    }


def test_upsert_template(client, admin):
    payload = {
        "name": "CPA Ethics",
        "credit_type": "CPA",
        "title": "CPA Continuing Professional Education",
        "issuer_name": "CE Courses",
    }
    response = client.put("/certificates/templates", json=payload, headers=auth_headers(admin))
    assert response.status_code == 200

    templates = client.get("/certificates/templates", params={"credit_type": "CPA"}).json()
    assert len(templates) == 1
    assert templates[0]["title"] == "CPA Continuing Professional Education"
