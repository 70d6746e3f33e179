"""FormRelay database models."""

from .base import Base
from .form import Form, Submission
from .job import NotificationJob

__all__ = [
    "Base",
    "Form",
    "Submission",
    "NotificationJob",
]
