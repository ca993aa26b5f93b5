"""Application route blueprints and helpers."""

from .courses import courses_bp
from .students import students_bp

__all__ = ["courses_bp", "students_bp"]
