"""MongoDB record store for students and courses."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from .config import get_db_name, get_mongo_uri, get_server_selection_timeout_ms
from .errors import (
    CapacityBelowEnrollment,
    DeletionBlocked,
    DuplicateKey,
    NotFound,
    PrerequisiteCycle,
    StoreUnavailable,
    ValidationFailed,
)
from .validation import GRADING_POLICY_DEFAULTS, parse_object_id

logger = logging.getLogger(__name__)

Sort = Tuple[str, int]

DEFAULT_SORT: Sort = ("createdAt", DESCENDING)

STUDENT_COURSE_FIELDS = ("courseCode", "courseName", "credits")
STUDENT_DETAIL_COURSE_FIELDS = (
    "courseCode",
    "courseName",
    "credits",
    "instructor",
    "schedule",
)
PREREQUISITE_FIELDS = ("courseCode", "courseName")
PREREQUISITE_DETAIL_FIELDS = ("courseCode", "courseName", "description")
ENROLLED_STUDENT_FIELDS = ("studentId", "firstName", "lastName", "email", "major", "gpa")


def _now() -> datetime:
    # BSON dates carry millisecond precision and no zone.
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except DuplicateKeyError:
        raise
    except PyMongoError as exc:
        logger.exception("%s due to MongoDB error", action)
        raise StoreUnavailable() from exc


def _to_object_id(value: Any, entity: str) -> ObjectId:
    try:
        return parse_object_id(value)
    except ValueError:
        raise NotFound(entity) from None


class RecordStore:
    """Persistence handle for Student and Course documents.

    The handle is constructed explicitly and passed to every component that
    needs it; nothing in the package keeps a module-level connection.
    """

    def __init__(self, database: Database) -> None:
        self.database = database
        self._students_indexes_created = False
        self._courses_indexes_created = False

    @classmethod
    def from_config(cls) -> "RecordStore":
        client = MongoClient(
            get_mongo_uri(),
            serverSelectionTimeoutMS=get_server_selection_timeout_ms(),
        )
        return cls(client[get_db_name()])

    # -- collections -----------------------------------------------------

    def students_collection(self) -> Collection:
        collection = self.database["students"]
        if not self._students_indexes_created:
            with store_errors("Failed to create student indexes"):
                collection.create_index("studentId", unique=True, name="unique_student_id")
                collection.create_index("email", unique=True, name="unique_email")
                collection.create_index([("courses", ASCENDING)], name="courses_idx")
                collection.create_index([("createdAt", DESCENDING)], name="created_desc")
                collection.create_index(
                    [("status", ASCENDING), ("major", ASCENDING)],
                    name="status_major",
                )
            self._students_indexes_created = True
        return collection

    def courses_collection(self) -> Collection:
        collection = self.database["courses"]
        if not self._courses_indexes_created:
            with store_errors("Failed to create course indexes"):
                collection.create_index("courseCode", unique=True, name="unique_course_code")
                collection.create_index([("department", ASCENDING)], name="department_idx")
                collection.create_index([("createdAt", DESCENDING)], name="created_desc")
                collection.create_index(
                    [("enrolledStudents", DESCENDING)], name="enrolled_desc"
                )
            self._courses_indexes_created = True
        return collection

    # -- generic helpers -------------------------------------------------

    def _find_many(
        self,
        collection: Collection,
        filters: Mapping[str, Any],
        *,
        page: int,
        limit: int,
        sort: Sort,
        action: str,
    ) -> Tuple[List[Dict[str, Any]], int]:
        skip = (page - 1) * limit
        with store_errors(action):
            total = collection.count_documents(dict(filters))
            cursor = (
                collection.find(dict(filters))
                .sort([sort, ("_id", sort[1])])
                .skip(skip)
                .limit(limit)
            )
            return list(cursor), total

    def _get(self, collection: Collection, record_id: Any, entity: str) -> Dict[str, Any]:
        oid = _to_object_id(record_id, entity)
        with store_errors(f"Failed to load {entity.lower()}"):
            document = collection.find_one({"_id": oid})
        if document is None:
            raise NotFound(entity)
        return document

    def _find_collision(
        self,
        collection: Collection,
        fields: Mapping[str, Any],
        exclude_id: ObjectId | None,
    ) -> str | None:
        clauses = [{field: value} for field, value in fields.items()]
        if not clauses:
            return None
        query: Dict[str, Any] = {"$or": clauses}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        existing = collection.find_one(query)
        if existing is None:
            return None
        for field, value in fields.items():
            if existing.get(field) == value:
                return field
        return next(iter(fields))

    def _apply_update(
        self,
        collection: Collection,
        oid: ObjectId,
        patch: Mapping[str, Any],
    ) -> Dict[str, Any] | None:
        to_set = {k: v for k, v in patch.items() if v is not None}
        to_unset = {k: "" for k, v in patch.items() if v is None}
        to_set["updatedAt"] = _now()
        update: Dict[str, Any] = {"$set": to_set}
        if to_unset:
            update["$unset"] = to_unset
        return collection.find_one_and_update(
            {"_id": oid}, update, return_document=ReturnDocument.AFTER
        )

    # -- students --------------------------------------------------------

    def create_student(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        collection = self.students_collection()
        now = _now()
        document: Dict[str, Any] = dict(data)
        document.setdefault("gpa", 0.0)
        document.setdefault("status", "Active")
        document.setdefault("enrollmentDate", now)
        document["courses"] = []
        document["createdAt"] = now
        document["updatedAt"] = now

        with store_errors("Failed to create student"):
            collision = self._find_collision(
                collection,
                {"studentId": document.get("studentId"), "email": document.get("email")},
                None,
            )
            if collision:
                raise _student_duplicate(collision)
            try:
                result = collection.insert_one(document)
            except DuplicateKeyError:
                logger.exception("Duplicate key error while creating student")
                raise DuplicateKey(
                    "studentId", "Student with this ID or email already exists"
                ) from None

        document["_id"] = result.inserted_id
        logger.info("Created student %s", document.get("studentId"))
        return document

    def get_student(self, student_id: Any) -> Dict[str, Any]:
        return self._get(self.students_collection(), student_id, "Student")

    def update_student(self, student_id: Any, patch: Mapping[str, Any]) -> Dict[str, Any]:
        collection = self.students_collection()
        oid = _to_object_id(student_id, "Student")
        unique = {k: patch[k] for k in ("studentId", "email") if patch.get(k)}

        with store_errors("Failed to update student"):
            if collection.find_one({"_id": oid}, projection={"_id": 1}) is None:
                raise NotFound("Student")
            collision = self._find_collision(collection, unique, oid)
            if collision:
                raise _student_duplicate(collision)
            try:
                updated = self._apply_update(collection, oid, patch)
            except DuplicateKeyError as exc:
                logger.exception("Duplicate key error while updating student")
                raise _student_duplicate(_duplicate_field(exc)) from None

        if updated is None:
            raise NotFound("Student")
        return updated

    def delete_student(self, student_id: Any) -> Dict[str, Any]:
        document = self.get_student(student_id)
        with store_errors("Failed to delete student"):
            result = self.students_collection().delete_one({"_id": document["_id"]})
        if result.deleted_count == 0:
            raise NotFound("Student")

        orphaned = document.get("courses") or []
        if orphaned:
            # Course counters are left as they are; see DESIGN.md.
            logger.warning(
                "Deleted student %s while enrolled in %d course(s): %s",
                document.get("studentId"),
                len(orphaned),
                ", ".join(str(course_id) for course_id in orphaned),
            )
        return document

    def find_students(
        self,
        filters: Mapping[str, Any],
        page: int = 1,
        limit: int = 10,
        sort: Sort = DEFAULT_SORT,
    ) -> Tuple[List[Dict[str, Any]], int]:
        return self._find_many(
            self.students_collection(),
            filters,
            page=page,
            limit=limit,
            sort=sort,
            action="Failed to list students",
        )

    def students_enrolled_in(
        self, course_id: ObjectId, fields: Sequence[str] = ENROLLED_STUDENT_FIELDS
    ) -> List[Dict[str, Any]]:
        projection = {field: 1 for field in fields}
        with store_errors("Failed to list enrolled students"):
            cursor = self.students_collection().find(
                {"courses": course_id}, projection=projection
            ).sort([("lastName", ASCENDING), ("firstName", ASCENDING)])
            return list(cursor)

    def count_students_enrolled_in(self, course_id: ObjectId) -> int:
        with store_errors("Failed to count enrolled students"):
            return self.students_collection().count_documents({"courses": course_id})

    def save_student_courses(self, student_id: ObjectId, courses: List[ObjectId]) -> None:
        with store_errors("Failed to save student courses"):
            self.students_collection().update_one(
                {"_id": student_id},
                {"$set": {"courses": list(courses), "updatedAt": _now()}},
            )

    # -- courses ---------------------------------------------------------

    def _check_prerequisites(
        self, course_id: ObjectId | None, prerequisites: Sequence[ObjectId]
    ) -> None:
        if not prerequisites:
            return
        if course_id is not None and course_id in prerequisites:
            raise PrerequisiteCycle()

        collection = self.courses_collection()
        found = {
            doc["_id"]: doc.get("prerequisites") or []
            for doc in collection.find(
                {"_id": {"$in": list(prerequisites)}},
                projection={"prerequisites": 1},
            )
        }
        missing = [str(oid) for oid in prerequisites if oid not in found]
        if missing:
            raise ValidationFailed(
                {"prerequisites": "Unknown prerequisite course: " + ", ".join(missing)}
            )

        if course_id is None:
            return

        # Walk the prerequisite graph; reaching course_id means a cycle.
        seen = set()
        frontier = list(prerequisites)
        while frontier:
            current = frontier.pop()
            if current == course_id:
                raise PrerequisiteCycle()
            if current in seen:
                continue
            seen.add(current)
            if current in found:
                next_ids = found[current]
            else:
                doc = collection.find_one({"_id": current}, projection={"prerequisites": 1})
                next_ids = (doc or {}).get("prerequisites") or []
            frontier.extend(next_ids)

    def create_course(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        collection = self.courses_collection()
        now = _now()
        document: Dict[str, Any] = dict(data)
        document.setdefault("status", "Active")
        document.setdefault("prerequisites", [])
        document.setdefault("gradingPolicy", dict(GRADING_POLICY_DEFAULTS))
        document["enrolledStudents"] = 0
        document["createdAt"] = now
        document["updatedAt"] = now

        with store_errors("Failed to create course"):
            if self._find_collision(
                collection, {"courseCode": document.get("courseCode")}, None
            ):
                raise DuplicateKey("courseCode", "Course with this code already exists")
            self._check_prerequisites(None, document["prerequisites"])
            try:
                result = collection.insert_one(document)
            except DuplicateKeyError:
                logger.exception("Duplicate key error while creating course")
                raise DuplicateKey(
                    "courseCode", "Course with this code already exists"
                ) from None

        document["_id"] = result.inserted_id
        logger.info("Created course %s", document.get("courseCode"))
        return document

    def get_course(self, course_id: Any) -> Dict[str, Any]:
        return self._get(self.courses_collection(), course_id, "Course")

    def update_course(self, course_id: Any, patch: Mapping[str, Any]) -> Dict[str, Any]:
        collection = self.courses_collection()
        current = self.get_course(course_id)
        oid = current["_id"]

        if "capacity" in patch:
            enrolled = int(current.get("enrolledStudents") or 0)
            if patch["capacity"] < enrolled:
                raise CapacityBelowEnrollment(enrolled)

        with store_errors("Failed to update course"):
            code = patch.get("courseCode")
            if code and code != current.get("courseCode"):
                if self._find_collision(collection, {"courseCode": code}, oid):
                    raise DuplicateKey("courseCode", "Course code already exists")
            if "prerequisites" in patch:
                self._check_prerequisites(oid, patch["prerequisites"])
            try:
                updated = self._apply_update(collection, oid, patch)
            except DuplicateKeyError:
                logger.exception("Duplicate key error while updating course")
                raise DuplicateKey("courseCode", "Course code already exists") from None

        if updated is None:
            raise NotFound("Course")
        return updated

    def delete_course(self, course_id: Any) -> Dict[str, Any]:
        document = self.get_course(course_id)
        enrolled = self.count_students_enrolled_in(document["_id"])
        if enrolled > 0:
            raise DeletionBlocked(enrolled)

        with store_errors("Failed to delete course"):
            result = self.courses_collection().delete_one({"_id": document["_id"]})
        if result.deleted_count == 0:
            raise NotFound("Course")
        logger.info("Deleted course %s", document.get("courseCode"))
        return document

    def find_courses(
        self,
        filters: Mapping[str, Any],
        page: int = 1,
        limit: int = 10,
        sort: Sort = DEFAULT_SORT,
    ) -> Tuple[List[Dict[str, Any]], int]:
        return self._find_many(
            self.courses_collection(),
            filters,
            page=page,
            limit=limit,
            sort=sort,
            action="Failed to list courses",
        )

    def courses_by_ids(
        self, course_ids: Iterable[ObjectId], fields: Sequence[str]
    ) -> Dict[ObjectId, Dict[str, Any]]:
        ids = list({oid for oid in course_ids})
        if not ids:
            return {}
        projection = {field: 1 for field in fields}
        with store_errors("Failed to load referenced courses"):
            cursor = self.courses_collection().find(
                {"_id": {"$in": ids}}, projection=projection
            )
            return {doc["_id"]: doc for doc in cursor}

    def save_enrolled_count(self, course_id: ObjectId, count: int) -> None:
        with store_errors("Failed to save course enrollment count"):
            self.courses_collection().update_one(
                {"_id": course_id},
                {"$set": {"enrolledStudents": count, "updatedAt": _now()}},
            )


def _duplicate_field(exc: DuplicateKeyError) -> str:
    details = exc.details or {}
    key_pattern = details.get("keyPattern") or {}
    if "studentId" in key_pattern or "unique_student_id" in str(exc):
        return "studentId"
    return "email"


def _student_duplicate(field: str) -> DuplicateKey:
    if field == "email":
        return DuplicateKey("email", "Student with this email already exists")
    return DuplicateKey("studentId", "Student with this ID already exists")


# -- serialisation -------------------------------------------------------


def _iso(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
    return value


def compute_age(date_of_birth: Any, today: date | None = None) -> int | None:
    """Return whole years elapsed since ``date_of_birth``."""

    if not isinstance(date_of_birth, (date, datetime)):
        return None
    if isinstance(date_of_birth, datetime):
        date_of_birth = date_of_birth.date()
    today = today or date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def summarize(document: Mapping[str, Any], fields: Sequence[str]) -> Dict[str, Any]:
    """Pick ``fields`` from a referenced document, with a string id."""

    record_id = str(document.get("_id", ""))
    summary: Dict[str, Any] = {"_id": record_id, "id": record_id}
    for field in fields:
        if field in document:
            summary[field] = _iso(document.get(field))
    return summary


def _populate(
    ids: Iterable[Any],
    lookup: Mapping[ObjectId, Mapping[str, Any]] | None,
    fields: Sequence[str],
) -> List[Any]:
    if lookup is None:
        return [str(oid) for oid in ids]
    # References to records that no longer exist are dropped.
    return [summarize(lookup[oid], fields) for oid in ids if oid in lookup]


def serialize_student(
    document: Mapping[str, Any],
    courses: Mapping[ObjectId, Mapping[str, Any]] | None = None,
    course_fields: Sequence[str] = STUDENT_COURSE_FIELDS,
) -> Dict[str, Any]:
    """Convert a MongoDB student document into a JSON-serialisable dict."""

    student_id = str(document.get("_id", ""))
    first = document.get("firstName") or ""
    last = document.get("lastName") or ""

    student: Dict[str, Any] = {
        "_id": student_id,
        "id": student_id,
        "studentId": document.get("studentId"),
        "firstName": document.get("firstName"),
        "lastName": document.get("lastName"),
        "fullName": f"{first} {last}".strip(),
        "email": document.get("email"),
        "phone": document.get("phone"),
        "dateOfBirth": _iso(document.get("dateOfBirth")),
        "age": compute_age(document.get("dateOfBirth")),
        "gender": document.get("gender"),
        "address": document.get("address") or {},
        "emergencyContact": document.get("emergencyContact") or {},
        "major": document.get("major"),
        "gpa": document.get("gpa", 0.0),
        "enrollmentDate": _iso(document.get("enrollmentDate")),
        "graduationDate": _iso(document.get("graduationDate")),
        "status": document.get("status"),
        "courses": _populate(document.get("courses") or [], courses, course_fields),
        "createdAt": _iso(document.get("createdAt")),
        "updatedAt": _iso(document.get("updatedAt")),
    }
    return student


def serialize_course(
    document: Mapping[str, Any],
    prerequisites: Mapping[ObjectId, Mapping[str, Any]] | None = None,
    prerequisite_fields: Sequence[str] = PREREQUISITE_FIELDS,
) -> Dict[str, Any]:
    """Serialize a raw Mongo course document to JSON-friendly dict."""

    course_id = str(document.get("_id", ""))
    capacity = int(document.get("capacity") or 0)
    enrolled = int(document.get("enrolledStudents") or 0)

    return {
        "_id": course_id,
        "id": course_id,
        "courseCode": document.get("courseCode"),
        "courseName": document.get("courseName"),
        "description": document.get("description"),
        "credits": document.get("credits"),
        "department": document.get("department"),
        "instructor": document.get("instructor") or {},
        "semester": document.get("semester"),
        "year": document.get("year"),
        "capacity": capacity,
        "enrolledStudents": enrolled,
        "isAvailable": enrolled < capacity,
        "remainingSeats": capacity - enrolled,
        "schedule": document.get("schedule") or {},
        "prerequisites": _populate(
            document.get("prerequisites") or [], prerequisites, prerequisite_fields
        ),
        "status": document.get("status"),
        "syllabus": document.get("syllabus"),
        "gradingPolicy": document.get("gradingPolicy") or dict(GRADING_POLICY_DEFAULTS),
        "createdAt": _iso(document.get("createdAt")),
        "updatedAt": _iso(document.get("updatedAt")),
    }


__all__ = [
    "RecordStore",
    "DEFAULT_SORT",
    "STUDENT_COURSE_FIELDS",
    "STUDENT_DETAIL_COURSE_FIELDS",
    "PREREQUISITE_FIELDS",
    "PREREQUISITE_DETAIL_FIELDS",
    "ENROLLED_STUDENT_FIELDS",
    "store_errors",
    "compute_age",
    "summarize",
    "serialize_student",
    "serialize_course",
]
