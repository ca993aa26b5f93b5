"""Seed helper that loads sample students and courses into MongoDB."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from pymongo.errors import PyMongoError

from campus_records.config import ConfigError
from campus_records.db import RecordStore
from campus_records.enrollment import EnrollmentManager
from campus_records.errors import RecordsError
from campus_records.validation import validate_course_payload, validate_student_payload

SEED_PATH = Path(__file__).resolve().parent / "seed.json"

logger = logging.getLogger("seed")


def read_seed_file(path: Path = SEED_PATH) -> Dict[str, List[Dict[str, Any]]]:
    with path.open("r", encoding="utf-8") as seed_file:
        data = json.load(seed_file)
    if not isinstance(data, dict):
        raise ValueError("Seed file must contain an object of collections")
    for name in ("courses", "students"):
        if not isinstance(data.get(name, []), list):
            raise ValueError(f"Seed data for '{name}' must be a list")
    return data


def _validated(result, label: str) -> Dict[str, Any]:
    cleaned, errors = result
    if errors:
        raise ValueError(f"Invalid seed record {label}: {errors}")
    return cleaned


def seed(store: RecordStore, data: Dict[str, List[Dict[str, Any]]]) -> Dict[str, int]:
    """Replace both collections with ``data``.

    Every student is enrolled in the first course through the enrollment
    manager so the course counter matches the student lists.
    """

    store.students_collection().delete_many({})
    store.courses_collection().delete_many({})

    courses = []
    for raw in data.get("courses", []):
        cleaned = _validated(
            validate_course_payload(raw, require_all=True), raw.get("courseCode", "?")
        )
        courses.append(store.create_course(cleaned))
        logger.info("Created course: %s", cleaned["courseCode"])

    manager = EnrollmentManager(store)
    students = 0
    for raw in data.get("students", []):
        cleaned = _validated(
            validate_student_payload(raw, require_all=True), raw.get("studentId", "?")
        )
        student = store.create_student(cleaned)
        students += 1
        logger.info("Created student: %s", cleaned["studentId"])
        if courses:
            manager.enroll(student["_id"], courses[0]["_id"])

    return {"courses": len(courses), "students": students}


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    try:
        store = RecordStore.from_config()
    except ConfigError as exc:  # pragma: no cover - simple CLI utility
        logger.error("Configuration error: %s", exc)
        raise SystemExit(1)

    try:
        counts = seed(store, read_seed_file())
        logger.info(
            "Seeding complete: %d course(s), %d student(s).",
            counts["courses"],
            counts["students"],
        )
    except RecordsError as exc:  # pragma: no cover - requires Mongo connection
        logger.error("Seeding failed: %s", exc.message)
        raise SystemExit(1)
    except PyMongoError as exc:  # pragma: no cover - requires Mongo connection
        logger.error("MongoDB error: %s", exc)
        raise SystemExit(1)
    finally:
        store.database.client.close()


if __name__ == "__main__":
    main()
