"""Error types raised by the record store, enrollment and validation layers."""

from __future__ import annotations

from typing import Any, Dict, List


class RecordsError(Exception):
    """Base class for errors that map onto an HTTP JSON error response."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"message": self.message}


class ValidationFailed(RecordsError):
    """A field is missing, malformed or out of range."""

    status_code = 400

    def __init__(
        self, errors: Dict[str, str], message: str = "Validation failed."
    ) -> None:
        super().__init__(message)
        self.errors = dict(errors)

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        field_errors: List[Dict[str, str]] = [
            {"field": field, "message": text}
            for field, text in self.errors.items()
        ]
        if field_errors:
            payload["errors"] = field_errors
        return payload


class DuplicateKey(RecordsError):
    status_code = 400

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["errors"] = [{"field": self.field, "message": self.message}]
        return payload


class NotFound(RecordsError):
    status_code = 404

    def __init__(self, entity: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity


class BusinessRuleViolation(RecordsError):
    status_code = 400


class CourseFull(BusinessRuleViolation):
    def __init__(self) -> None:
        super().__init__("Course is full")


class AlreadyEnrolled(BusinessRuleViolation):
    def __init__(self) -> None:
        super().__init__("Student already enrolled in this course")


class NotEnrolled(BusinessRuleViolation):
    def __init__(self) -> None:
        super().__init__("Student is not enrolled in this course")


class DeletionBlocked(BusinessRuleViolation):
    def __init__(self, enrolled: int) -> None:
        super().__init__(
            f"Cannot delete course. {enrolled} student(s) are enrolled."
        )
        self.enrolled = enrolled


class CapacityBelowEnrollment(BusinessRuleViolation):
    def __init__(self, enrolled: int) -> None:
        super().__init__(
            f"Capacity cannot be lower than the {enrolled} student(s) already enrolled."
        )
        self.enrolled = enrolled


class PrerequisiteCycle(BusinessRuleViolation):
    def __init__(self) -> None:
        super().__init__("Prerequisites cannot form a cycle.")


class StoreUnavailable(RecordsError):
    """The document store could not complete the request."""

    status_code = 503

    def __init__(
        self, message: str = "Database unavailable. Please try again later."
    ) -> None:
        super().__init__(message)


__all__ = [
    "RecordsError",
    "ValidationFailed",
    "DuplicateKey",
    "NotFound",
    "BusinessRuleViolation",
    "CourseFull",
    "AlreadyEnrolled",
    "NotEnrolled",
    "DeletionBlocked",
    "CapacityBelowEnrollment",
    "PrerequisiteCycle",
    "StoreUnavailable",
]
