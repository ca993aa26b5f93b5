"""Student endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from flask import Blueprint, jsonify, request

from ..db import (
    STUDENT_COURSE_FIELDS,
    STUDENT_DETAIL_COURSE_FIELDS,
    serialize_student,
)
from ..errors import ValidationFailed
from ..utils.paging import (
    STUDENT_SORT_FIELDS,
    build_student_filter,
    page_envelope,
    parse_paging_params,
)
from ..validation import validate_student_payload
from .common import get_enrollment_manager, get_stats_reporter, get_store, require_valid

students_bp = Blueprint("students", __name__, url_prefix="/api/students")


def _serialize_populated(
    documents: List[Dict[str, Any]], fields: Sequence[str]
) -> List[Dict[str, Any]]:
    course_ids = [oid for doc in documents for oid in doc.get("courses") or []]
    courses = get_store().courses_by_ids(course_ids, fields)
    return [serialize_student(doc, courses, fields) for doc in documents]


@students_bp.get("")
def list_students():
    paging = parse_paging_params(request.args, allowed_sort_fields=STUDENT_SORT_FIELDS)
    filters = build_student_filter(request.args)

    documents, total = get_store().find_students(
        filters, page=paging.page, limit=paging.limit, sort=paging.sort
    )
    items = _serialize_populated(documents, STUDENT_COURSE_FIELDS)
    return jsonify(page_envelope(items, total, paging, "students"))


@students_bp.get("/stats/overview")
def student_stats():
    return jsonify(get_stats_reporter().student_overview())


@students_bp.get("/<student_id>")
def get_student(student_id: str):
    document = get_store().get_student(student_id)
    return jsonify(_serialize_populated([document], STUDENT_DETAIL_COURSE_FIELDS)[0])


@students_bp.post("")
def create_student():
    data = request.get_json(silent=True)
    cleaned = require_valid(validate_student_payload(data, require_all=True))
    document = get_store().create_student(cleaned)
    return jsonify(serialize_student(document, {})), 201


@students_bp.put("/<student_id>")
def update_student(student_id: str):
    data = request.get_json(silent=True)
    cleaned = require_valid(validate_student_payload(data, require_all=False))
    if not cleaned:
        raise ValidationFailed({}, "No changes supplied.")

    document = get_store().update_student(student_id, cleaned)
    return jsonify(_serialize_populated([document], STUDENT_COURSE_FIELDS)[0])


@students_bp.delete("/<student_id>")
def delete_student(student_id: str):
    get_store().delete_student(student_id)
    return jsonify({"message": "Student deleted successfully"})


@students_bp.post("/<student_id>/enroll/<course_id>")
def enroll_in_course(student_id: str, course_id: str):
    student, _ = get_enrollment_manager().enroll(student_id, course_id)
    return jsonify(_serialize_populated([student], STUDENT_COURSE_FIELDS)[0])


@students_bp.delete("/<student_id>/enroll/<course_id>")
def unenroll_from_course(student_id: str, course_id: str):
    student, _ = get_enrollment_manager().unenroll(student_id, course_id)
    return jsonify(_serialize_populated([student], STUDENT_COURSE_FIELDS)[0])


__all__ = ["students_bp"]
