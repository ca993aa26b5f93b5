"""Payload validation for student and course submissions.

Each validator returns ``(cleaned, errors)``: ``cleaned`` holds the
normalised values ready to be written, ``errors`` maps a field name to a
human readable message. ``require_all`` is used for creation; updates only
check the fields present in the payload.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Tuple

from bson import ObjectId
from bson.errors import InvalidId

STUDENT_GENDERS = ("Male", "Female", "Other")
STUDENT_STATUSES = ("Active", "Inactive", "Graduated", "Suspended")
COURSE_SEMESTERS = ("Fall", "Spring", "Summer")
COURSE_STATUSES = ("Active", "Inactive", "Completed")
WEEKDAYS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

ADDRESS_FIELDS = ("street", "city", "state", "zipCode", "country")
EMERGENCY_CONTACT_FIELDS = ("name", "relationship", "phone", "email")
GRADING_POLICY_DEFAULTS = {"assignments": 30, "midterm": 30, "final": 40}

MIN_COURSE_YEAR = 2020
BSON_INT64_MIN = -(2**63)
BSON_INT64_MAX = 2**63 - 1

# Keys a client may echo back from a fetched record; they are never written.
READ_ONLY_FIELDS = frozenset(
    {
        "_id",
        "id",
        "courses",
        "enrolledStudents",
        "fullName",
        "age",
        "isAvailable",
        "remainingSeats",
        "createdAt",
        "updatedAt",
    }
)

GLOBAL_ERROR_KEY = "_global"


def _clean_string(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _clean_string_or_none(value: Any) -> str | None:
    cleaned = _clean_string(value)
    return cleaned if cleaned else None


def _is_blank(value: Any) -> bool:
    return value is None or _clean_string(value) == ""


def _looks_like_email(value: str) -> bool:
    return "@" in value and "." in value.split("@")[-1]


def parse_date(value: Any) -> datetime:
    """Parse an ISO-8601 date or datetime into a naive UTC datetime."""

    if isinstance(value, datetime):
        parsed = value
    else:
        text = _clean_string(value)
        if not text:
            raise ValueError("empty date")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("booleans are not numbers")
    if isinstance(value, int):
        number = value
    else:
        as_float = _as_float(value)
        if not as_float.is_integer():
            raise ValueError("not an integer")
        number = int(as_float)
    if not BSON_INT64_MIN <= number <= BSON_INT64_MAX:
        raise ValueError("out of range")
    return number


def _as_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("booleans are not numbers")
    try:
        number = float(value)
    except OverflowError:
        raise ValueError("out of range") from None
    if not math.isfinite(number):
        raise ValueError("not a finite number")
    return number


def parse_object_id(value: Any) -> ObjectId:
    """Return ``value`` as an ObjectId or raise ``ValueError``."""

    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(_clean_string(value))
    except (InvalidId, TypeError):
        raise ValueError(f"{value!r} is not a valid id") from None


def _clean_subrecord(
    value: Any,
    *,
    field: str,
    keys: Iterable[str],
    errors: Dict[str, str],
) -> Dict[str, str] | None:
    if value in (None, ""):
        return {}
    if not isinstance(value, dict):
        errors[field] = f"{field} must be an object."
        return None
    return {key: _clean_string(value.get(key)) for key in keys if key in value}


def _start(payload: Any) -> Tuple[Dict[str, Any] | None, Dict[str, str]]:
    if payload is None or not isinstance(payload, dict):
        return None, {GLOBAL_ERROR_KEY: "Request body must be a JSON object."}
    return {k: v for k, v in payload.items() if k not in READ_ONLY_FIELDS}, {}


def validate_student_payload(
    payload: Dict[str, Any] | None, *, require_all: bool
) -> Tuple[Dict[str, Any], Dict[str, str]]:
    data, errors = _start(payload)
    if data is None:
        return {}, errors

    cleaned: Dict[str, Any] = {}

    def require_field(field: str, message: str) -> bool:
        if field not in data or _is_blank(data.get(field)):
            errors[field] = message
            return False
        return True

    for field, message in (
        ("studentId", "Student ID is required"),
        ("firstName", "First name is required"),
        ("lastName", "Last name is required"),
        ("major", "Major is required"),
    ):
        if require_all or field in data:
            if require_field(field, message):
                cleaned[field] = _clean_string(data.get(field))

    if require_all or "email" in data:
        if require_field("email", "Valid email is required"):
            email = _clean_string(data.get("email")).lower()
            if _looks_like_email(email):
                cleaned["email"] = email
            else:
                errors["email"] = "Valid email is required"

    if require_all or "dateOfBirth" in data:
        if require_field("dateOfBirth", "Valid date of birth is required"):
            try:
                cleaned["dateOfBirth"] = parse_date(data.get("dateOfBirth"))
            except (TypeError, ValueError):
                errors["dateOfBirth"] = "Valid date of birth is required"

    if require_all or "gender" in data:
        gender = _clean_string(data.get("gender"))
        if gender in STUDENT_GENDERS:
            cleaned["gender"] = gender
        else:
            errors["gender"] = "Valid gender is required"

    if "phone" in data:
        cleaned["phone"] = _clean_string(data.get("phone"))

    if "status" in data and not _is_blank(data.get("status")):
        status = _clean_string(data.get("status"))
        if status in STUDENT_STATUSES:
            cleaned["status"] = status
        else:
            errors["status"] = "Status must be one of: " + ", ".join(STUDENT_STATUSES)

    if "gpa" in data and not _is_blank(data.get("gpa")):
        try:
            gpa = _as_float(data.get("gpa"))
            if gpa < 0 or gpa > 4:
                raise ValueError
            cleaned["gpa"] = round(gpa, 2)
        except (TypeError, ValueError):
            errors["gpa"] = "GPA must be between 0 and 4"

    for field in ("enrollmentDate", "graduationDate"):
        if field not in data:
            continue
        if _is_blank(data.get(field)):
            # An explicit blank clears an optional date on update.
            if field == "graduationDate" and not require_all:
                cleaned[field] = None
            continue
        try:
            cleaned[field] = parse_date(data.get(field))
        except (TypeError, ValueError):
            errors[field] = f"{field} must be an ISO-8601 date"

    if "address" in data:
        address = _clean_subrecord(
            data.get("address"), field="address", keys=ADDRESS_FIELDS, errors=errors
        )
        if address is not None:
            cleaned["address"] = address

    if "emergencyContact" in data:
        contact = _clean_subrecord(
            data.get("emergencyContact"),
            field="emergencyContact",
            keys=EMERGENCY_CONTACT_FIELDS,
            errors=errors,
        )
        if contact is not None:
            if contact.get("email"):
                contact["email"] = contact["email"].lower()
            cleaned["emergencyContact"] = contact

    if require_all:
        cleaned = {k: v for k, v in cleaned.items() if v is not None}
    return cleaned, errors


def _clean_prerequisites(
    value: Any, errors: Dict[str, str]
) -> List[ObjectId] | None:
    if value in (None, ""):
        return []
    if isinstance(value, str):
        raw_items: List[Any] = [part for part in value.split(",")]
    elif isinstance(value, list):
        raw_items = list(value)
    else:
        errors["prerequisites"] = "Prerequisites must be an array of course ids."
        return None

    result: List[ObjectId] = []
    for item in raw_items:
        # Populated references come back as objects carrying their id.
        if isinstance(item, dict):
            item = item.get("_id") or item.get("id")
        if _is_blank(item):
            continue
        try:
            oid = parse_object_id(item)
        except ValueError:
            errors["prerequisites"] = f"Invalid prerequisite id: {item}"
            return None
        if oid not in result:
            result.append(oid)
    return result


def _clean_schedule(value: Any, errors: Dict[str, str]) -> Dict[str, Any] | None:
    if value in (None, ""):
        return {}
    if not isinstance(value, dict):
        errors["schedule"] = "Schedule must be an object."
        return None

    schedule: Dict[str, Any] = {}
    days = value.get("days", [])
    if days in (None, ""):
        days = []
    if not isinstance(days, list):
        errors["schedule.days"] = "Schedule days must be an array."
    else:
        normalized_days: List[str] = []
        for day in days:
            day_name = _clean_string(day)
            if day_name not in WEEKDAYS:
                errors["schedule.days"] = f"Invalid day: {day_name or day}"
                break
            if day_name not in normalized_days:
                normalized_days.append(day_name)
        schedule["days"] = normalized_days

    for key in ("startTime", "endTime", "room"):
        if key in value:
            schedule[key] = _clean_string(value.get(key))
    return schedule


def _clean_grading_policy(
    value: Any, errors: Dict[str, str]
) -> Dict[str, float] | None:
    if value in (None, ""):
        return dict(GRADING_POLICY_DEFAULTS)
    if not isinstance(value, dict):
        errors["gradingPolicy"] = "Grading policy must be an object."
        return None

    policy: Dict[str, float] = {}
    for key, default in GRADING_POLICY_DEFAULTS.items():
        raw = value.get(key)
        if _is_blank(raw):
            policy[key] = default
            continue
        try:
            weight = _as_float(raw)
            if weight < 0 or weight > 100:
                raise ValueError
        except (TypeError, ValueError):
            errors[f"gradingPolicy.{key}"] = f"{key} weight must be between 0 and 100"
            continue
        policy[key] = int(weight) if weight.is_integer() else weight
    return policy


def validate_course_payload(
    payload: Dict[str, Any] | None, *, require_all: bool
) -> Tuple[Dict[str, Any], Dict[str, str]]:
    data, errors = _start(payload)
    if data is None:
        return {}, errors

    cleaned: Dict[str, Any] = {}

    def require_field(field: str, message: str) -> bool:
        if field not in data or _is_blank(data.get(field)):
            errors[field] = message
            return False
        return True

    if require_all or "courseCode" in data:
        if require_field("courseCode", "Course code is required"):
            cleaned["courseCode"] = _clean_string(data.get("courseCode")).upper()

    if require_all or "courseName" in data:
        if require_field("courseName", "Course name is required"):
            cleaned["courseName"] = _clean_string(data.get("courseName"))

    if require_all or "department" in data:
        if require_field("department", "Department is required"):
            cleaned["department"] = _clean_string(data.get("department"))

    for field in ("description", "syllabus"):
        if field in data:
            cleaned[field] = _clean_string(data.get(field))

    int_rules = (
        ("credits", 1, 6, "Credits must be between 1 and 6"),
        ("year", MIN_COURSE_YEAR, None, "Valid year is required"),
        ("capacity", 1, None, "Capacity must be at least 1"),
    )
    for field, minimum, maximum, message in int_rules:
        if not (require_all or field in data):
            continue
        try:
            value = _as_int(data.get(field))
            if value < minimum or (maximum is not None and value > maximum):
                raise ValueError
            cleaned[field] = value
        except (TypeError, ValueError):
            errors[field] = message

    if require_all or "semester" in data:
        semester = _clean_string(data.get("semester"))
        if semester in COURSE_SEMESTERS:
            cleaned["semester"] = semester
        else:
            errors["semester"] = "Valid semester is required"

    if require_all or "instructor" in data:
        instructor = data.get("instructor")
        if not isinstance(instructor, dict) or _is_blank(instructor.get("name")):
            errors["instructor.name"] = "Instructor name is required"
        else:
            cleaned_instructor = {"name": _clean_string(instructor.get("name"))}
            email = _clean_string_or_none(instructor.get("email"))
            if email:
                if _looks_like_email(email):
                    cleaned_instructor["email"] = email.lower()
                else:
                    errors["instructor.email"] = "Instructor email is invalid"
            phone = _clean_string_or_none(instructor.get("phone"))
            if phone:
                cleaned_instructor["phone"] = phone
            cleaned["instructor"] = cleaned_instructor

    if "status" in data and not _is_blank(data.get("status")):
        status = _clean_string(data.get("status"))
        if status in COURSE_STATUSES:
            cleaned["status"] = status
        else:
            errors["status"] = "Status must be one of: " + ", ".join(COURSE_STATUSES)

    if "schedule" in data:
        schedule = _clean_schedule(data.get("schedule"), errors)
        if schedule is not None:
            cleaned["schedule"] = schedule

    if "prerequisites" in data:
        prerequisites = _clean_prerequisites(data.get("prerequisites"), errors)
        if prerequisites is not None:
            cleaned["prerequisites"] = prerequisites

    if "gradingPolicy" in data:
        policy = _clean_grading_policy(data.get("gradingPolicy"), errors)
        if policy is not None:
            cleaned["gradingPolicy"] = policy

    return cleaned, errors


__all__ = [
    "STUDENT_GENDERS",
    "STUDENT_STATUSES",
    "COURSE_SEMESTERS",
    "COURSE_STATUSES",
    "WEEKDAYS",
    "GLOBAL_ERROR_KEY",
    "parse_date",
    "parse_object_id",
    "validate_student_payload",
    "validate_course_payload",
]
