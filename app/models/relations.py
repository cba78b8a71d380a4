# app/models/relations.py

from sqlalchemy.orm import relationship

# Import all relevant models
from .certificate import Certificate, CertificateEdit, CertificateTemplate
from .course import Course, CourseCredit, CourseFormat, CourseState
from .course_enrollment import Enrollment
from .exam import Exam, ExamQuestion
from .exam_attempt import ExamAnswer, ExamAttempt
from .user import User, UserLicense


def setup_relationships():
    """
    Configure all SQLAlchemy relationships between models.
    """

    # --- Catalog ---

    # 1. Course to its child rows (One-to-Many, owned)
    Course.formats = relationship(
        "CourseFormat", cascade="all, delete-orphan", order_by=CourseFormat.format
    )
    Course.credits = relationship(
        "CourseCredit", cascade="all, delete-orphan", order_by=CourseCredit.credit_type
    )
    Course.states = relationship(
        "CourseState", cascade="all, delete-orphan", order_by=CourseState.state_code
    )

    # 2. Course to Exams
    Course.exams = relationship(
        "Exam", back_populates="course", cascade="all, delete-orphan"
    )
    Exam.course = relationship("Course", back_populates="exams")

    # 3. Exam to Questions, ordered as presented
    Exam.questions = relationship(
        "ExamQuestion",
        cascade="all, delete-orphan",
        order_by=(ExamQuestion.position, ExamQuestion.id),
    )

    # --- Users ---
    User.licenses = relationship(
        "UserLicense", cascade="all, delete-orphan", order_by=UserLicense.license_type
    )

    # --- Enrollments ---
    Enrollment.user = relationship("User")
    Enrollment.course = relationship("Course")

    # --- Exam attempts ---
    ExamAttempt.exam = relationship("Exam")
    ExamAttempt.answers = relationship(
        "ExamAnswer",
        back_populates="attempt",
        cascade="all, delete-orphan",
    )
    ExamAnswer.attempt = relationship("ExamAttempt", back_populates="answers")
    ExamAnswer.question = relationship("ExamQuestion")

    # --- Certificates ---
    Certificate.user = relationship("User")
    Certificate.course = relationship("Course")
    Certificate.template = relationship("CertificateTemplate")
    Certificate.edits = relationship(
        "CertificateEdit",
        order_by=(CertificateEdit.created_at, CertificateEdit.id),
        viewonly=True,
    )
