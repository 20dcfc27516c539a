from __future__ import annotations

from enum import Enum


class SeriesStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class InstanceStatus(str, Enum):
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class InstanceAction(str, Enum):
    SKIP = "skip"
    RESCHEDULE = "reschedule"
    COMPLETE = "complete"
    CANCEL = "cancel"


TERMINAL_STATUSES = frozenset(
    {InstanceStatus.COMPLETED, InstanceStatus.SKIPPED, InstanceStatus.CANCELLED}
)
OPEN_STATUSES = frozenset({InstanceStatus.SCHEDULED, InstanceStatus.RESCHEDULED})

# A rescheduled instance is still bookable, so it accepts the same actions as a scheduled one.
TRANSITIONS: dict[InstanceAction, tuple[frozenset[InstanceStatus], InstanceStatus]] = {
    InstanceAction.SKIP: (OPEN_STATUSES, InstanceStatus.SKIPPED),
    InstanceAction.RESCHEDULE: (OPEN_STATUSES, InstanceStatus.RESCHEDULED),
    InstanceAction.COMPLETE: (OPEN_STATUSES, InstanceStatus.COMPLETED),
    InstanceAction.CANCEL: (OPEN_STATUSES, InstanceStatus.CANCELLED),
}


def allowed_sources(action: InstanceAction) -> frozenset[InstanceStatus]:
    return TRANSITIONS[action][0]


def target_status(action: InstanceAction) -> InstanceStatus:
    return TRANSITIONS[action][1]
