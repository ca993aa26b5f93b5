"""Dashboard aggregates computed over the full collections on each call."""

from __future__ import annotations

from typing import Any, Dict, List

from pymongo import ASCENDING, DESCENDING

from .db import RecordStore, store_errors, serialize_course, summarize
from .validation import STUDENT_STATUSES


TOP_COURSES_LIMIT = 5
TOP_COURSE_FIELDS = ("courseCode", "courseName", "enrolledStudents", "capacity")
AVAILABLE_COURSE_FIELDS = (
    "courseCode",
    "courseName",
    "credits",
    "department",
    "instructor",
    "schedule",
    "enrolledStudents",
    "capacity",
)


def _grouped_counts(field: str) -> List[Dict[str, Any]]:
    return [
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]


def _average(collection, field: str) -> float:
    pipeline = [{"$group": {"_id": None, "average": {"$avg": f"${field}"}}}]
    result = list(collection.aggregate(pipeline))
    if not result or result[0].get("average") is None:
        return 0
    return result[0]["average"]


class StatsReporter:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def student_overview(self) -> Dict[str, Any]:
        collection = self.store.students_collection()

        with store_errors("Failed to load student stats"):
            total = collection.count_documents({})
            counts_by_status = {status: 0 for status in STUDENT_STATUSES}
            for row in collection.aggregate(_grouped_counts("status")):
                if row.get("_id") in counts_by_status:
                    counts_by_status[row["_id"]] = int(row.get("count", 0))
            average_gpa = _average(collection, "gpa")
            by_major = [
                {"_id": row.get("_id"), "count": int(row.get("count", 0))}
                for row in collection.aggregate(_grouped_counts("major"))
            ]

        return {
            "totalStudents": total,
            "countsByStatus": counts_by_status,
            "activeStudents": counts_by_status["Active"],
            "inactiveStudents": counts_by_status["Inactive"],
            "graduatedStudents": counts_by_status["Graduated"],
            "suspendedStudents": counts_by_status["Suspended"],
            "averageGPA": average_gpa,
            "studentsByMajor": by_major,
        }

    def course_overview(self) -> Dict[str, Any]:
        collection = self.store.courses_collection()

        with store_errors("Failed to load course stats"):
            total = collection.count_documents({})
            active = collection.count_documents({"status": "Active"})
            completed = collection.count_documents({"status": "Completed"})
            average_enrollment = _average(collection, "enrolledStudents")
            by_department = [
                {"_id": row.get("_id"), "count": int(row.get("count", 0))}
                for row in collection.aggregate(_grouped_counts("department"))
            ]
            top_cursor = (
                collection.find({}, projection={field: 1 for field in TOP_COURSE_FIELDS})
                .sort([("enrolledStudents", DESCENDING), ("courseCode", ASCENDING)])
                .limit(TOP_COURSES_LIMIT)
            )
            most_enrolled = [summarize(doc, TOP_COURSE_FIELDS) for doc in top_cursor]

        return {
            "totalCourses": total,
            "activeCourses": active,
            "completedCourses": completed,
            "averageEnrollment": average_enrollment,
            "coursesByDepartment": by_department,
            "mostEnrolledCourses": most_enrolled,
        }

    def available_courses(self) -> List[Dict[str, Any]]:
        """Active courses that still have free seats, by name."""

        collection = self.store.courses_collection()
        with store_errors("Failed to list available courses"):
            cursor = collection.find({"status": "Active"}).sort("courseName", ASCENDING)
            documents = list(cursor)

        available = []
        for doc in documents:
            if int(doc.get("enrolledStudents") or 0) >= int(doc.get("capacity") or 0):
                continue
            serialized = serialize_course(doc)
            available.append(
                {
                    key: serialized[key]
                    for key in ("_id", "id", *AVAILABLE_COURSE_FIELDS, "remainingSeats")
                }
            )
        return available


__all__ = ["StatsReporter"]
