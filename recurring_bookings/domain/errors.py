from dataclasses import dataclass
from typing import List

PROBLEM_TYPE_BASE = "https://example.com/problems"


@dataclass
class DomainError(Exception):
    detail: str
    title: str = "Domain Error"
    type: str = f"{PROBLEM_TYPE_BASE}/domain-error"
    errors: List[dict] | None = None
    status: int = 400

    def __str__(self) -> str:
        return self.detail


@dataclass
class InvalidPattern(DomainError):
    title: str = "Invalid Pattern"
    type: str = f"{PROBLEM_TYPE_BASE}/invalid-pattern"
    status: int = 422


@dataclass
class InvalidDateFormat(DomainError):
    title: str = "Invalid Date Format"
    type: str = f"{PROBLEM_TYPE_BASE}/invalid-date-format"
    status: int = 422


@dataclass
class InvalidDate(DomainError):
    title: str = "Invalid Date"
    type: str = f"{PROBLEM_TYPE_BASE}/invalid-date"
    status: int = 422


@dataclass
class ScheduleConflict(DomainError):
    title: str = "Schedule Conflict"
    type: str = f"{PROBLEM_TYPE_BASE}/schedule-conflict"
    status: int = 409


@dataclass
class ConflictCheckUnavailable(DomainError):
    title: str = "Conflict Check Unavailable"
    type: str = f"{PROBLEM_TYPE_BASE}/conflict-check-unavailable"
    status: int = 503


@dataclass
class InvalidTransition(DomainError):
    title: str = "Invalid Transition"
    type: str = f"{PROBLEM_TYPE_BASE}/invalid-transition"
    status: int = 409


@dataclass
class SeriesNotFound(DomainError):
    title: str = "Series Not Found"
    type: str = f"{PROBLEM_TYPE_BASE}/not-found"
    status: int = 404


@dataclass
class InstanceNotFound(DomainError):
    title: str = "Instance Not Found"
    type: str = f"{PROBLEM_TYPE_BASE}/not-found"
    status: int = 404


@dataclass
class ActionNotAllowed(DomainError):
    title: str = "Action Not Allowed"
    type: str = f"{PROBLEM_TYPE_BASE}/action-not-allowed"
    status: int = 403
