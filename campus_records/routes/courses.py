"""Course endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from flask import Blueprint, jsonify, request

from ..db import (
    ENROLLED_STUDENT_FIELDS,
    PREREQUISITE_DETAIL_FIELDS,
    PREREQUISITE_FIELDS,
    serialize_course,
    summarize,
)
from ..errors import ValidationFailed
from ..utils.paging import (
    COURSE_SORT_FIELDS,
    build_course_filter,
    page_envelope,
    parse_paging_params,
)
from ..validation import validate_course_payload
from .common import get_enrollment_manager, get_stats_reporter, get_store, require_valid

courses_bp = Blueprint("courses", __name__, url_prefix="/api/courses")


def _serialize_populated(
    documents: List[Dict[str, Any]], fields: Sequence[str] = PREREQUISITE_FIELDS
) -> List[Dict[str, Any]]:
    prereq_ids = [oid for doc in documents for oid in doc.get("prerequisites") or []]
    prerequisites = get_store().courses_by_ids(prereq_ids, fields)
    return [serialize_course(doc, prerequisites, fields) for doc in documents]


@courses_bp.get("")
def list_courses():
    paging = parse_paging_params(request.args, allowed_sort_fields=COURSE_SORT_FIELDS)
    filters = build_course_filter(request.args)

    documents, total = get_store().find_courses(
        filters, page=paging.page, limit=paging.limit, sort=paging.sort
    )
    return jsonify(page_envelope(_serialize_populated(documents), total, paging, "courses"))


@courses_bp.get("/stats/overview")
def course_stats():
    return jsonify(get_stats_reporter().course_overview())


@courses_bp.get("/available/enrollment")
def available_courses():
    return jsonify(get_stats_reporter().available_courses())


@courses_bp.get("/<course_id>")
def get_course(course_id: str):
    store = get_store()
    document = store.get_course(course_id)
    enrolled = store.students_enrolled_in(document["_id"])
    return jsonify(
        {
            "course": _serialize_populated([document], PREREQUISITE_DETAIL_FIELDS)[0],
            "enrolledStudents": [
                summarize(student, ENROLLED_STUDENT_FIELDS) for student in enrolled
            ],
        }
    )


@courses_bp.post("")
def create_course():
    data = request.get_json(silent=True)
    cleaned = require_valid(validate_course_payload(data, require_all=True))
    document = get_store().create_course(cleaned)
    return jsonify(_serialize_populated([document])[0]), 201


@courses_bp.put("/<course_id>")
def update_course(course_id: str):
    data = request.get_json(silent=True)
    cleaned = require_valid(validate_course_payload(data, require_all=False))
    if not cleaned:
        raise ValidationFailed({}, "No changes supplied.")

    document = get_store().update_course(course_id, cleaned)
    return jsonify(_serialize_populated([document])[0])


@courses_bp.delete("/<course_id>")
def delete_course(course_id: str):
    get_store().delete_course(course_id)
    return jsonify({"message": "Course deleted successfully"})


@courses_bp.post("/<course_id>/enroll/<student_id>")
def enroll_student(course_id: str, student_id: str):
    _, course = get_enrollment_manager().enroll(student_id, course_id)
    return jsonify(
        {
            "message": "Student enrolled successfully",
            "course": _serialize_populated([course])[0],
        }
    )


@courses_bp.delete("/<course_id>/enroll/<student_id>")
def unenroll_student(course_id: str, student_id: str):
    _, course = get_enrollment_manager().unenroll(student_id, course_id)
    return jsonify(
        {
            "message": "Student removed from course successfully",
            "course": _serialize_populated([course])[0],
        }
    )


__all__ = ["courses_bp"]
