"""Shared helpers for the test suites: an in-memory store and sample payloads."""

from __future__ import annotations

from typing import Any, Dict

import mongomock

from campus_records.app import create_app
from campus_records.db import RecordStore
from campus_records.validation import validate_course_payload, validate_student_payload


def make_store() -> RecordStore:
    return RecordStore(mongomock.MongoClient()["campus_records_test"])


def make_client(store: RecordStore | None = None):
    app = create_app(store=store or make_store())
    app.config["TESTING"] = True
    return app.test_client()


def student_payload(index: int = 1, **overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "studentId": f"STU{index:03d}",
        "firstName": "Student",
        "lastName": f"Number{index}",
        "email": f"student{index}@example.edu",
        "phone": "555-0100",
        "dateOfBirth": "2000-01-15",
        "gender": "Female",
        "address": {"street": "1 Campus Way", "city": "Springfield", "country": "USA"},
        "major": "Computer Science",
        "gpa": 3.2,
    }
    payload.update(overrides)
    return payload


def course_payload(code: str = "CS101", **overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "courseCode": code,
        "courseName": f"Course {code}",
        "credits": 3,
        "department": "Computer Science",
        "instructor": {"name": "Dr. Ada Lovelace", "email": "ada@example.edu"},
        "semester": "Fall",
        "year": 2024,
        "capacity": 30,
        "schedule": {
            "days": ["Monday", "Wednesday"],
            "startTime": "09:00",
            "endTime": "10:30",
            "room": "Room 101",
        },
    }
    payload.update(overrides)
    return payload


def create_student(store: RecordStore, index: int = 1, **overrides: Any) -> Dict[str, Any]:
    cleaned, errors = validate_student_payload(
        student_payload(index, **overrides), require_all=True
    )
    assert not errors, errors
    return store.create_student(cleaned)


def create_course(store: RecordStore, code: str = "CS101", **overrides: Any) -> Dict[str, Any]:
    cleaned, errors = validate_course_payload(course_payload(code, **overrides), require_all=True)
    assert not errors, errors
    return store.create_course(cleaned)
