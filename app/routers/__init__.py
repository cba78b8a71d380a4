from .admin import router as admin_router
from .certificate import router as certificate_router
from .course import router as course_router
from .course_enrollment import router as course_enrollment_router
from .exam import router as exam_router
from .exam_attempt import router as exam_attempt_router
from .user import router as user_router
from .webhook import router as webhook_router

routes = [
    admin_router,
    user_router,
    course_router,
    exam_router,
    exam_attempt_router,
    course_enrollment_router,
    certificate_router,
    webhook_router,
]
