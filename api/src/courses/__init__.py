"""Course catalog (read-only): courses, modules and lesson units."""

from .models import COURSES_TABLES_CQL, Course, CourseModule, CourseVideo, LessonUnit


__all__ = [
    "COURSES_TABLES_CQL",
    "Course",
    "CourseModule",
    "CourseVideo",
    "LessonUnit",
]
