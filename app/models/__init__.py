"""
Models package initialization
Import all models and setup relationships
"""

from .certificate import Certificate, CertificateEdit, CertificateTemplate
from .course import Course, CourseCredit, CourseFormat, CourseState
from .course_enrollment import Enrollment
from .exam import Exam, ExamQuestion
from .exam_attempt import ExamAnswer, ExamAttempt

# Import and setup relationships
from .relations import setup_relationships
from .user import Profile, User, UserLicense

# Setup all relationships after models are imported
setup_relationships()

# Make models available at package level
__all__ = [
    "Certificate",
    "CertificateEdit",
    "CertificateTemplate",
    "Course",
    "CourseCredit",
    "CourseFormat",
    "CourseState",
    "Enrollment",
    "Exam",
    "ExamAnswer",
    "ExamAttempt",
    "ExamQuestion",
    "Profile",
    "User",
    "UserLicense",
]
