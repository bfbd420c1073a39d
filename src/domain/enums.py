"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    REQUESTED = "requested"
    SCHEDULED = "scheduled"
    DRIVER_ASSIGNED = "driver_assigned"
    DRIVER_ARRIVING = "driver_arriving"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED_BY_RIDER = "cancelled_by_rider"
    CANCELLED_BY_DRIVER = "cancelled_by_driver"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.REQUESTED: {
        RideStatus.DRIVER_ASSIGNED,
        RideStatus.CANCELLED_BY_RIDER,
        RideStatus.CANCELLED_BY_DRIVER,
    },
    RideStatus.SCHEDULED: {
        RideStatus.DRIVER_ASSIGNED,
        RideStatus.CANCELLED_BY_RIDER,
        RideStatus.CANCELLED_BY_DRIVER,
    },
    RideStatus.DRIVER_ASSIGNED: {
        RideStatus.DRIVER_ARRIVING,
        RideStatus.CANCELLED_BY_RIDER,
        RideStatus.CANCELLED_BY_DRIVER,
    },
    RideStatus.DRIVER_ARRIVING: {
        RideStatus.IN_PROGRESS,
        RideStatus.CANCELLED_BY_RIDER,
        RideStatus.CANCELLED_BY_DRIVER,
    },
    RideStatus.IN_PROGRESS: {
        RideStatus.COMPLETED,
        RideStatus.CANCELLED_BY_RIDER,
        RideStatus.CANCELLED_BY_DRIVER,
    },
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED_BY_RIDER: set(),
    RideStatus.CANCELLED_BY_DRIVER: set(),
}

TERMINAL_STATUSES = frozenset(
    s for s, allowed in RIDE_TRANSITIONS.items() if not allowed
)

# Statuses in which a driver is "on" a ride and streams location
ACTIVE_STATUSES = frozenset(
    {
        RideStatus.DRIVER_ASSIGNED,
        RideStatus.DRIVER_ARRIVING,
        RideStatus.IN_PROGRESS,
    }
)

# driver_id is set if and only if the ride is in one of these
DRIVER_BOUND_STATUSES = ACTIVE_STATUSES | {
    RideStatus.COMPLETED,
    RideStatus.CANCELLED_BY_DRIVER,
}

# Targets the assigned driver reaches through advance_status
DRIVER_PROGRESS_STATUSES = frozenset(
    {
        RideStatus.DRIVER_ARRIVING,
        RideStatus.IN_PROGRESS,
        RideStatus.COMPLETED,
    }
)


class UserRole(str, enum.Enum):
    RIDER = "rider"
    DRIVER = "driver"
    ADMIN = "admin"


class DriverApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BackgroundCheckStatus(str, enum.Enum):
    CLEAR = "clear"
    PENDING = "pending"
    FAILED = "failed"
