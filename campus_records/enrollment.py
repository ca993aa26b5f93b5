"""Enrollment bookkeeping between students and courses.

A student's ``courses`` list and a course's ``enrolledStudents`` counter
describe the same relationship from both sides. The manager checks every
precondition before writing anything, then persists the student and the
course in two separate writes.

The two writes are not wrapped in a transaction. If the course write fails
after the student write succeeded, the student keeps (or loses) the course
reference while the counter is stale, and the ``StoreUnavailable`` error is
raised without rolling the student back. Two requests racing on the last
seat can also both pass the capacity check. Both windows are accepted.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

from .db import RecordStore
from .errors import AlreadyEnrolled, CourseFull, NotEnrolled

logger = logging.getLogger(__name__)

Pair = Tuple[Dict[str, Any], Dict[str, Any]]


class EnrollmentManager:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def _load(self, student_id: Any, course_id: Any) -> Pair:
        student = self.store.get_student(student_id)
        course = self.store.get_course(course_id)
        return student, course

    def enroll(self, student_id: Any, course_id: Any) -> Pair:
        """Add the course to the student's list and bump the course counter.

        Returns the updated ``(student, course)`` documents.
        """

        student, course = self._load(student_id, course_id)
        enrolled = int(course.get("enrolledStudents") or 0)
        capacity = int(course.get("capacity") or 0)
        courses = list(student.get("courses") or [])

        if enrolled >= capacity:
            raise CourseFull()
        if course["_id"] in courses:
            raise AlreadyEnrolled()

        courses.append(course["_id"])
        self.store.save_student_courses(student["_id"], courses)
        student["courses"] = courses

        self.store.save_enrolled_count(course["_id"], enrolled + 1)
        course["enrolledStudents"] = enrolled + 1

        logger.info(
            "Enrolled %s in %s (%d/%d)",
            student.get("studentId"),
            course.get("courseCode"),
            enrolled + 1,
            capacity,
        )
        return student, course

    def unenroll(self, student_id: Any, course_id: Any) -> Pair:
        """Remove the course from the student's list and drop the counter."""

        student, course = self._load(student_id, course_id)
        courses = list(student.get("courses") or [])

        if course["_id"] not in courses:
            raise NotEnrolled()

        remaining = [oid for oid in courses if oid != course["_id"]]
        self.store.save_student_courses(student["_id"], remaining)
        student["courses"] = remaining

        enrolled = max(0, int(course.get("enrolledStudents") or 0) - 1)
        self.store.save_enrolled_count(course["_id"], enrolled)
        course["enrolledStudents"] = enrolled

        logger.info(
            "Unenrolled %s from %s (%d/%s)",
            student.get("studentId"),
            course.get("courseCode"),
            enrolled,
            course.get("capacity"),
        )
        return student, course


__all__ = ["EnrollmentManager"]
