"""Utilities for parsing pagination, sorting and filter query parameters."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from pymongo import ASCENDING, DESCENDING

from ..errors import ValidationFailed

STUDENT_SEARCH_FIELDS = ("firstName", "lastName", "email", "studentId")
COURSE_SEARCH_FIELDS = ("courseCode", "courseName", "instructor.name")

STUDENT_SORT_FIELDS = {
    "createdAt": "createdAt",
    "lastName": "lastName",
    "firstName": "firstName",
    "studentId": "studentId",
    "gpa": "gpa",
    "major": "major",
}
COURSE_SORT_FIELDS = {
    "createdAt": "createdAt",
    "courseCode": "courseCode",
    "courseName": "courseName",
    "department": "department",
    "enrolledStudents": "enrolledStudents",
    "year": "year",
}
DEFAULT_SORT = "-createdAt"


class PagingParamError(ValidationFailed):
    """Raised when pagination or sort query parameters are invalid."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__({field: message}, message)


@dataclass
class PagingParams:
    page: int
    limit: int
    sort: Tuple[str, int]
    normalized_sort: str


def _clean_string(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _parse_int_arg(
    raw_value: str | None,
    *,
    name: str,
    default: int,
    minimum: int | None = None,
) -> int:
    if raw_value in (None, ""):
        value = default
    else:
        try:
            value = int(raw_value)
        except (TypeError, ValueError):
            raise PagingParamError(name, f"{name} must be an integer.") from None

    if minimum is not None and value < minimum:
        raise PagingParamError(name, f"{name} must be ≥ {minimum}.")

    return value


def _parse_sort_arg(
    raw_sort: str | None,
    *,
    allowed_fields: Mapping[str, str],
    default_sort: str,
) -> Tuple[Tuple[str, int], str]:
    sort_value = _clean_string(raw_sort) or default_sort
    direction = ASCENDING
    field_key = sort_value

    if sort_value.startswith("-"):
        direction = DESCENDING
        field_key = sort_value[1:]

    if field_key not in allowed_fields:
        field_names = sorted(allowed_fields.keys())
        options = [
            value
            for field in field_names
            for value in (field, f"-{field}")
        ]
        raise PagingParamError(
            "sort", "sort must be one of: " + ", ".join(options) + "."
        )

    return (allowed_fields[field_key], direction), (
        f"-{field_key}" if direction == DESCENDING else field_key
    )


def parse_paging_params(
    args: Mapping[str, str],
    *,
    default_page: int = 1,
    default_limit: int = 10,
    allowed_sort_fields: Mapping[str, str],
    default_sort: str = DEFAULT_SORT,
) -> PagingParams:
    """Parse page/limit/sort from a request args mapping.

    ``page`` has no upper bound; a page past the last one yields no items.
    """

    page = _parse_int_arg(args.get("page"), name="page", default=default_page, minimum=1)
    limit = _parse_int_arg(
        args.get("limit"), name="limit", default=default_limit, minimum=1
    )

    sort_tuple, normalized_sort = _parse_sort_arg(
        args.get("sort"),
        allowed_fields=allowed_sort_fields,
        default_sort=default_sort,
    )

    return PagingParams(
        page=page,
        limit=limit,
        sort=sort_tuple,
        normalized_sort=normalized_sort,
    )


def _contains(text: str) -> Dict[str, str]:
    return {"$regex": re.escape(text), "$options": "i"}


def _search_clause(search: str, fields: Sequence[str]) -> List[Dict[str, Any]]:
    return [{field: _contains(search)} for field in fields]


def build_student_filter(args: Mapping[str, str]) -> Dict[str, Any]:
    filters: Dict[str, Any] = {}

    search = _clean_string(args.get("search"))
    status = _clean_string(args.get("status"))
    major = _clean_string(args.get("major"))

    if search:
        filters["$or"] = _search_clause(search, STUDENT_SEARCH_FIELDS)
    if status:
        filters["status"] = status
    if major:
        filters["major"] = _contains(major)
    return filters


def build_course_filter(args: Mapping[str, str]) -> Dict[str, Any]:
    filters: Dict[str, Any] = {}

    search = _clean_string(args.get("search"))
    department = _clean_string(args.get("department"))
    semester = _clean_string(args.get("semester"))
    status = _clean_string(args.get("status"))

    if search:
        filters["$or"] = _search_clause(search, COURSE_SEARCH_FIELDS)
    if department:
        filters["department"] = _contains(department)
    if semester:
        filters["semester"] = semester
    if status:
        filters["status"] = status
    return filters


def page_envelope(
    items: List[Dict[str, Any]], total: int, paging: PagingParams, key: str
) -> Dict[str, Any]:
    """Wrap one page of results; ``key`` repeats the items under the entity name."""

    return {
        "items": items,
        key: items,
        "totalPages": math.ceil(total / paging.limit),
        "currentPage": paging.page,
        "totalCount": total,
        "total": total,
        "sort": paging.normalized_sort,
    }


__all__ = [
    "PagingParamError",
    "PagingParams",
    "STUDENT_SORT_FIELDS",
    "COURSE_SORT_FIELDS",
    "parse_paging_params",
    "build_student_filter",
    "build_course_filter",
    "page_envelope",
]
