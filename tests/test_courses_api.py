"""HTTP behaviour of the course endpoints."""

from __future__ import annotations

import unittest

from bson import ObjectId

from support import course_payload, make_client, make_store, student_payload


class CourseApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = make_store()
        self.client = make_client(self.store)

    def _create(self, code: str = "CS101", **overrides):
        response = self.client.post("/api/courses", json=course_payload(code, **overrides))
        self.assertEqual(201, response.status_code, response.get_json())
        return response.get_json()

    def _create_student(self, index: int = 1):
        response = self.client.post("/api/students", json=student_payload(index))
        self.assertEqual(201, response.status_code, response.get_json())
        return response.get_json()

    def test_create_normalises_and_derives(self) -> None:
        body = self._create("cs101", instructor={"name": "Dr. Ada", "email": "ADA@Example.edu"})

        self.assertEqual("CS101", body["courseCode"])
        self.assertEqual("ada@example.edu", body["instructor"]["email"])
        self.assertEqual(0, body["enrolledStudents"])
        self.assertTrue(body["isAvailable"])
        self.assertEqual(30, body["remainingSeats"])
        self.assertEqual("Active", body["status"])

    def test_create_rejects_out_of_range_values(self) -> None:
        response = self.client.post(
            "/api/courses", json=course_payload(credits=9, year=2019, capacity=0)
        )

        self.assertEqual(400, response.status_code)
        fields = {error["field"] for error in response.get_json()["errors"]}
        self.assertEqual({"credits", "year", "capacity"}, fields)

    def test_oversized_capacity_returns_400(self) -> None:
        response = self.client.post(
            "/api/courses", json=course_payload(capacity=int("9" * 400))
        )

        self.assertEqual(400, response.status_code)
        fields = {error["field"] for error in response.get_json()["errors"]}
        self.assertEqual({"capacity"}, fields)

    def test_enrolled_counter_cannot_be_written(self) -> None:
        created = self._create()

        response = self.client.put(
            f"/api/courses/{created['_id']}", json={"enrolledStudents": 25, "capacity": 40}
        )

        self.assertEqual(200, response.status_code)
        self.assertEqual(0, response.get_json()["enrolledStudents"])
        self.assertEqual(40, response.get_json()["capacity"])

    def test_duplicate_code_returns_400(self) -> None:
        self._create("CS101")

        response = self.client.post("/api/courses", json=course_payload("CS101"))

        self.assertEqual(400, response.status_code)
        self.assertEqual("courseCode", response.get_json()["errors"][0]["field"])

    def test_detail_lists_enrolled_students_and_prerequisites(self) -> None:
        intro = self._create("CS101", description="Basics")
        advanced = self._create("CS201", prerequisites=[intro["_id"]])
        student = self._create_student()
        self.client.post(f"/api/courses/{advanced['_id']}/enroll/{student['_id']}")

        body = self.client.get(f"/api/courses/{advanced['_id']}").get_json()

        self.assertEqual(1, body["course"]["enrolledStudents"])
        (prerequisite,) = body["course"]["prerequisites"]
        self.assertEqual(intro["_id"], prerequisite["_id"])
        self.assertEqual("CS101", prerequisite["courseCode"])
        self.assertEqual("Basics", prerequisite["description"])
        self.assertEqual(["STU001"], [s["studentId"] for s in body["enrolledStudents"]])
        self.assertEqual(student["_id"], body["enrolledStudents"][0]["_id"])

    def test_missing_course_returns_404(self) -> None:
        for path in (f"/api/courses/{ObjectId()}", "/api/courses/xyz"):
            with self.subTest(path=path):
                response = self.client.get(path)
                self.assertEqual(404, response.status_code)
                self.assertEqual("Course not found", response.get_json()["message"])

    def test_pagination_and_filters(self) -> None:
        for number in range(1, 13):
            department = "Mathematics" if number % 3 == 0 else "Computer Science"
            self._create(f"C{number:03d}", department=department, courseName=f"Topic {number}")
        self._create("SPR100", semester="Spring", courseName="Spring Seminar",
                     instructor={"name": "Prof. Grace Hopper"})

        page = self.client.get("/api/courses?page=2&limit=5&sort=courseCode").get_json()
        self.assertEqual(13, page["totalCount"])
        self.assertEqual(3, page["totalPages"])
        self.assertEqual(
            ["C006", "C007", "C008", "C009", "C010"], [c["courseCode"] for c in page["items"]]
        )
        self.assertIs(None, page.get("students"))
        self.assertEqual(page["items"], page["courses"])

        maths = self.client.get("/api/courses?department=math&limit=50").get_json()
        self.assertEqual(4, maths["totalCount"])

        spring = self.client.get("/api/courses?semester=Spring").get_json()
        self.assertEqual(["SPR100"], [c["courseCode"] for c in spring["items"]])

        by_instructor = self.client.get("/api/courses?search=hopper").get_json()
        self.assertEqual(["SPR100"], [c["courseCode"] for c in by_instructor["items"]])

    def test_enroll_from_course_side(self) -> None:
        course = self._create(capacity=1)
        first, second = self._create_student(1), self._create_student(2)

        response = self.client.post(f"/api/courses/{course['_id']}/enroll/{first['_id']}")
        self.assertEqual(200, response.status_code)
        body = response.get_json()
        self.assertEqual("Student enrolled successfully", body["message"])
        self.assertEqual(1, body["course"]["enrolledStudents"])
        self.assertFalse(body["course"]["isAvailable"])

        response = self.client.post(f"/api/courses/{course['_id']}/enroll/{second['_id']}")
        self.assertEqual(400, response.status_code)
        self.assertEqual("Course is full", response.get_json()["message"])

        response = self.client.delete(f"/api/courses/{course['_id']}/enroll/{first['_id']}")
        self.assertEqual(200, response.status_code)
        self.assertEqual(0, response.get_json()["course"]["enrolledStudents"])

    def test_delete_blocked_while_students_enrolled(self) -> None:
        course = self._create()
        student = self._create_student()
        self.client.post(f"/api/courses/{course['_id']}/enroll/{student['_id']}")

        response = self.client.delete(f"/api/courses/{course['_id']}")
        self.assertEqual(400, response.status_code)
        self.assertIn("1 student(s) are enrolled", response.get_json()["message"])

        self.client.delete(f"/api/courses/{course['_id']}/enroll/{student['_id']}")
        response = self.client.delete(f"/api/courses/{course['_id']}")
        self.assertEqual({"message": "Course deleted successfully"}, response.get_json())

    def test_capacity_update_below_enrollment(self) -> None:
        course = self._create(capacity=2)
        for index in (1, 2):
            student = self._create_student(index)
            self.client.post(f"/api/courses/{course['_id']}/enroll/{student['_id']}")

        response = self.client.put(f"/api/courses/{course['_id']}", json={"capacity": 1})

        self.assertEqual(400, response.status_code)
        self.assertEqual(2, self.store.get_course(course["_id"])["capacity"])

    def test_stats_and_available_endpoints(self) -> None:
        full = self._create("CS101", capacity=1, courseName="Algorithms")
        self._create("CS102", courseName="Databases")
        self._create("CS103", courseName="Compilers", status="Inactive")
        student = self._create_student()
        self.client.post(f"/api/courses/{full['_id']}/enroll/{student['_id']}")

        stats = self.client.get("/api/courses/stats/overview").get_json()
        self.assertEqual(3, stats["totalCourses"])
        self.assertEqual(2, stats["activeCourses"])
        self.assertEqual("CS101", stats["mostEnrolledCourses"][0]["courseCode"])

        available = self.client.get("/api/courses/available/enrollment").get_json()
        self.assertEqual(["CS102"], [c["courseCode"] for c in available])
        self.assertEqual(30, available[0]["remainingSeats"])


if __name__ == "__main__":
    unittest.main()
