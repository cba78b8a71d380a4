"""
Shared fixtures: an in-memory SQLite database bound through get_db,
bearer tokens for learners and admins, and small data builders.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("IDENTITY_PROVIDER", "local")
os.environ.setdefault("LOG_FILE", "logs/test.log")

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.core.database import Base, build_engine, get_db  # noqa: E402
from app.core.dependencies import get_identity_provider  # noqa: E402
from app.core.init import initialize_application  # noqa: E402
from app.core.security import jwt_manager  # noqa: E402
from app.models.user import Profile, User  # noqa: E402
from app.schemas.course import CourseCreate  # noqa: E402
from app.schemas.exam import ExamCreate  # noqa: E402
from app.services.course import CourseService  # noqa: E402
from app.services.exam import ExamService  # noqa: E402
from app.services.identity import LocalIdentityProvider  # noqa: E402
from main import app  # noqa: E402

test_engine = build_engine("sqlite://")
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()
    initialize_application(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(db):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    def override_identity_provider():
        return LocalIdentityProvider(db)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_provider] = override_identity_provider
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ==================== Builders ====================


def make_user(db, email, role="user", user_id=None, name=None):
    user = User(email=email, role=role, name=name)
    if user_id:
        user.id = user_id
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_profile(db, email, role="user", profile_id=None):
    profile = Profile(email=email, role=role)
    if profile_id:
        profile.id = profile_id
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def make_course(db, sku="BHF001", credits=(("CPA", "2.0"), ("CFP", "1.5"))):
    course_in = CourseCreate(
        sku=sku,
        title=f"Course {sku}",
        author="Jane Author",
        formats=[{"format": "online", "price": "49.00"}],
        credits=[
            {"credit_type": credit_type, "amount": amount, "course_number": f"{sku}-{credit_type}"}
            for credit_type, amount in credits
        ],
        states=[{"state_code": "tx"}],
    )
    return CourseService(db).create_course(course_in)


def make_exam(db, course, passing_score=70, attempt_limit=None, questions=4):
    exam_in = ExamCreate(
        title=f"{course.sku} Final Exam",
        passing_score=Decimal(passing_score),
        attempt_limit=attempt_limit,
        questions=[
            {
                "question_text": f"Question {i + 1}",
                "options": {"a": "Alpha", "b": "Beta", "c": "Gamma"},
                "correct_options": ["a"] if i % 2 == 0 else ["b", "c"],
            }
            for i in range(questions)
        ],
    )
    return ExamService(db).create_exam(course.id, exam_in)


def auth_headers(user):
    token = jwt_manager.create_access_token(user.id, email=user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def learner(db):
    return make_user(db, "a@example.com", name="Ada Learner")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", role="admin", name="Site Admin")


@pytest.fixture
def course(db):
    return make_course(db)
