"""
Ride lifecycle rules (State Pattern, table driven).

The table in ``enums.RIDE_TRANSITIONS`` says *what* may follow *what*;
this module adds *who* may trigger it and *which* event records it.
Persistence (the compare-and-swap write) lives in the services.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from .enums import (
    RIDE_TRANSITIONS,
    TERMINAL_STATUSES,
    RideStatus,
    UserRole,
)
from .events import EventType
from .exceptions import InvalidTransition

TRANSITION_EVENTS: dict[RideStatus, EventType] = {
    RideStatus.DRIVER_ASSIGNED: EventType.DRIVER_ASSIGNED,
    RideStatus.DRIVER_ARRIVING: EventType.DRIVER_ARRIVING,
    RideStatus.IN_PROGRESS: EventType.RIDE_STARTED,
    RideStatus.COMPLETED: EventType.RIDE_COMPLETED,
    RideStatus.CANCELLED_BY_RIDER: EventType.RIDE_CANCELLED,
    RideStatus.CANCELLED_BY_DRIVER: EventType.RIDE_CANCELLED,
}


class RideStateMachine:
    @staticmethod
    def initial_status(scheduled_for: Optional[datetime] = None) -> RideStatus:
        return RideStatus.SCHEDULED if scheduled_for else RideStatus.REQUESTED

    @staticmethod
    def is_terminal(status: RideStatus) -> bool:
        return RideStatus(status) in TERMINAL_STATUSES

    @staticmethod
    def can_transition(current: RideStatus, target: RideStatus) -> bool:
        try:
            return RideStatus(target) in RIDE_TRANSITIONS[RideStatus(current)]
        except (KeyError, ValueError):
            return False

    @classmethod
    def ensure_transition(cls, current: RideStatus, target: RideStatus) -> None:
        """Raise ``InvalidTransition`` unless *current* -> *target* is legal."""
        current = RideStatus(current)
        if cls.is_terminal(current):
            raise InvalidTransition(
                f"Ride is already {current.value}; no further transitions"
            )
        if not cls.can_transition(current, target):
            raise InvalidTransition(
                f"Cannot transition from {current.value} to {RideStatus(target).value}"
            )

    @staticmethod
    def cancellation_status(role: UserRole) -> RideStatus:
        """The terminal value depends on who cancels, not on the ride."""
        if role == UserRole.RIDER:
            return RideStatus.CANCELLED_BY_RIDER
        return RideStatus.CANCELLED_BY_DRIVER

    @staticmethod
    def event_for(target: RideStatus) -> EventType:
        return TRANSITION_EVENTS[RideStatus(target)]
