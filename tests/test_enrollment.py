"""Enrollment bookkeeping between students and courses."""

from __future__ import annotations

import unittest
from unittest import mock

import mongomock
from bson import ObjectId
from pymongo.errors import PyMongoError

from campus_records.enrollment import EnrollmentManager
from campus_records.errors import (
    AlreadyEnrolled,
    BusinessRuleViolation,
    CourseFull,
    NotEnrolled,
    NotFound,
    StoreUnavailable,
)
from support import create_course, create_student, make_store


class EnrollmentManagerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = make_store()
        self.manager = EnrollmentManager(self.store)

    def _assert_consistent(self, course_id: ObjectId) -> None:
        course = self.store.get_course(course_id)
        self.assertEqual(
            self.store.count_students_enrolled_in(course_id), course["enrolledStudents"]
        )
        self.assertGreaterEqual(course["enrolledStudents"], 0)
        self.assertLessEqual(course["enrolledStudents"], course["capacity"])

    def test_enroll_updates_both_sides(self) -> None:
        student = create_student(self.store)
        course = create_course(self.store)

        self.manager.enroll(student["_id"], course["_id"])

        stored_student = self.store.get_student(student["_id"])
        self.assertEqual([course["_id"]], stored_student["courses"])
        self.assertEqual(1, self.store.get_course(course["_id"])["enrolledStudents"])
        self._assert_consistent(course["_id"])

    def test_enroll_accepts_string_ids(self) -> None:
        student = create_student(self.store)
        course = create_course(self.store)

        updated_student, updated_course = self.manager.enroll(
            str(student["_id"]), str(course["_id"])
        )

        self.assertEqual([course["_id"]], updated_student["courses"])
        self.assertEqual(1, updated_course["enrolledStudents"])

    def test_capacity_scenario(self) -> None:
        course = create_course(self.store, "CS101", capacity=2)
        first, second, third = (create_student(self.store, index) for index in (1, 2, 3))

        self.manager.enroll(first["_id"], course["_id"])
        self.assertEqual(1, self.store.get_course(course["_id"])["enrolledStudents"])
        self.manager.enroll(second["_id"], course["_id"])
        self.assertEqual(2, self.store.get_course(course["_id"])["enrolledStudents"])

        with self.assertRaises(CourseFull):
            self.manager.enroll(third["_id"], course["_id"])

        self.assertEqual(2, self.store.get_course(course["_id"])["enrolledStudents"])
        self.assertEqual([], self.store.get_student(third["_id"])["courses"])
        self._assert_consistent(course["_id"])

    def test_full_course_is_checked_before_duplicate_enrollment(self) -> None:
        course = create_course(self.store, capacity=1)
        student = create_student(self.store)
        self.manager.enroll(student["_id"], course["_id"])

        with self.assertRaises(CourseFull):
            self.manager.enroll(student["_id"], course["_id"])

    def test_already_enrolled_changes_nothing(self) -> None:
        course = create_course(self.store, capacity=5)
        student = create_student(self.store)
        self.manager.enroll(student["_id"], course["_id"])
        before_student = self.store.get_student(student["_id"])

        with self.assertRaises(AlreadyEnrolled):
            self.manager.enroll(student["_id"], course["_id"])

        self.assertEqual(before_student, self.store.get_student(student["_id"]))
        self.assertEqual(1, self.store.get_course(course["_id"])["enrolledStudents"])

    def test_business_rule_errors_share_a_base(self) -> None:
        for error in (CourseFull(), AlreadyEnrolled(), NotEnrolled()):
            with self.subTest(error=type(error).__name__):
                self.assertIsInstance(error, BusinessRuleViolation)
                self.assertEqual(400, error.status_code)

    def test_missing_records_raise_not_found_without_writes(self) -> None:
        student = create_student(self.store)
        course = create_course(self.store)

        with self.assertRaises(NotFound):
            self.manager.enroll(student["_id"], ObjectId())
        with self.assertRaises(NotFound):
            self.manager.enroll(ObjectId(), course["_id"])
        with self.assertRaises(NotFound):
            self.manager.unenroll("bogus", course["_id"])

        self.assertEqual([], self.store.get_student(student["_id"])["courses"])
        self.assertEqual(0, self.store.get_course(course["_id"])["enrolledStudents"])

    def test_unenroll_updates_both_sides(self) -> None:
        course = create_course(self.store)
        keep, leave = create_student(self.store, 1), create_student(self.store, 2)
        self.manager.enroll(keep["_id"], course["_id"])
        self.manager.enroll(leave["_id"], course["_id"])

        self.manager.unenroll(leave["_id"], course["_id"])

        self.assertEqual([], self.store.get_student(leave["_id"])["courses"])
        self.assertEqual([course["_id"]], self.store.get_student(keep["_id"])["courses"])
        self.assertEqual(1, self.store.get_course(course["_id"])["enrolledStudents"])
        self._assert_consistent(course["_id"])

    def test_unenroll_keeps_order_of_other_courses(self) -> None:
        student = create_student(self.store)
        courses = [create_course(self.store, code) for code in ("CS101", "CS102", "CS103")]
        for course in courses:
            self.manager.enroll(student["_id"], course["_id"])

        self.manager.unenroll(student["_id"], courses[1]["_id"])

        self.assertEqual(
            [courses[0]["_id"], courses[2]["_id"]],
            self.store.get_student(student["_id"])["courses"],
        )

    def test_unenroll_when_not_enrolled(self) -> None:
        student = create_student(self.store)
        course = create_course(self.store)

        with self.assertRaises(NotEnrolled):
            self.manager.unenroll(student["_id"], course["_id"])
        self.assertEqual(0, self.store.get_course(course["_id"])["enrolledStudents"])

    def test_unenroll_counter_never_drops_below_zero(self) -> None:
        student = create_student(self.store)
        course = create_course(self.store)
        self.manager.enroll(student["_id"], course["_id"])
        self.store.save_enrolled_count(course["_id"], 0)

        _, updated = self.manager.unenroll(student["_id"], course["_id"])

        self.assertEqual(0, updated["enrolledStudents"])
        self.assertEqual(0, self.store.get_course(course["_id"])["enrolledStudents"])

    def test_concurrent_enrollments_can_both_take_the_last_seat(self) -> None:
        course = create_course(self.store, capacity=1)
        first, second = create_student(self.store, 1), create_student(self.store, 2)
        # Both requests read the course before either one writes.
        stale = self.store.get_course(course["_id"])

        self.manager.enroll(first["_id"], course["_id"])
        with mock.patch.object(self.store, "get_course", return_value=dict(stale)):
            _, racing = EnrollmentManager(self.store).enroll(second["_id"], course["_id"])

        stored = self.store.get_course(course["_id"])
        self.assertEqual(1, racing["enrolledStudents"])
        self.assertEqual(1, stored["enrolledStudents"])
        self.assertEqual(2, self.store.count_students_enrolled_in(course["_id"]))
        self.assertEqual([course["_id"]], self.store.get_student(second["_id"])["courses"])

    def test_course_write_failure_is_not_rolled_back(self) -> None:
        student = create_student(self.store)
        course = create_course(self.store)
        original_update_one = mongomock.Collection.update_one

        def failing_update_one(collection, filter, update, *args, **kwargs):
            if collection.name == "courses":
                raise PyMongoError("connection reset")
            return original_update_one(collection, filter, update, *args, **kwargs)

        with mock.patch.object(mongomock.Collection, "update_one", failing_update_one):
            with self.assertLogs("campus_records.db", level="ERROR"):
                with self.assertRaises(StoreUnavailable):
                    self.manager.enroll(student["_id"], course["_id"])

        # The student write landed; the counter did not.
        self.assertEqual([course["_id"]], self.store.get_student(student["_id"])["courses"])
        self.assertEqual(0, self.store.get_course(course["_id"])["enrolledStudents"])


if __name__ == "__main__":
    unittest.main()
