# app/services/course.py
import logging
import math
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.decorator import Conflict, NotFound, db_exception
from app.models.course import Course, CourseCredit, CourseFormat, CourseState
from app.schemas.course import CourseCreate

logger = logging.getLogger(__name__)


class CourseService:
    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(Course).options(
            selectinload(Course.formats),
            selectinload(Course.credits),
            selectinload(Course.states),
        )

    @db_exception
    def create_course(self, course_in: CourseCreate) -> Course:
        """
        Create a course together with its formats, credits and states.
        Everything is written in one transaction: either the whole
        course exists afterwards or nothing does.
        """
        existing = self.db.query(Course.id).filter(Course.sku == course_in.sku).first()
        if existing:
            raise Conflict(
                f"A course with SKU '{course_in.sku}' already exists",
                course_id=existing.id,
            )

        course = Course(
            sku=course_in.sku,
            title=course_in.title,
            description=course_in.description,
            author=course_in.author,
            main_subject=course_in.main_subject,
            table_of_contents_url=course_in.table_of_contents_url,
            course_content_url=course_in.course_content_url,
        )
        course.formats = [
            CourseFormat(format=f.format, price=f.price) for f in course_in.formats
        ]
        course.credits = [
            CourseCredit(
                credit_type=c.credit_type,
                amount=c.amount,
                course_number=c.course_number,
            )
            for c in course_in.credits
        ]
        course.states = [CourseState(state_code=s.state_code) for s in course_in.states]

        self.db.add(course)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Course '{course_in.sku}' rejected: {e.orig}")
            raise Conflict(
                "Course could not be created: duplicate SKU or repeated format/credit/state entry"
            )

        self.db.refresh(course)
        logger.info(
            f"Created course {course.sku} with {len(course.credits)} credit type(s)"
        )
        return course

    def get_courses(
        self, page: int = 1, size: int = 20, search: Optional[str] = None
    ) -> Tuple[List[Course], dict]:
        query = self._query()

        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                or_(Course.title.ilike(pattern), Course.sku.ilike(pattern))
            )

        total = query.count()
        offset = (page - 1) * size
        courses = query.order_by(Course.title).offset(offset).limit(size).all()

        pagination = {
            "total": total,
            "page": page,
            "size": size,
            "total_pages": math.ceil(total / size) if size > 0 else 0,
        }
        return courses, pagination

    def get_course(self, course_id_or_sku: str) -> Course:
        course = (
            self._query()
            .filter(or_(Course.id == course_id_or_sku, Course.sku == course_id_or_sku))
            .first()
        )
        if not course:
            raise NotFound("Course not found")
        return course
