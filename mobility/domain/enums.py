"""Domain enumerations and state-transition rules."""

import enum


class ServiceType(str, enum.Enum):
    CARPOOL = "carpool"
    SCOOTER = "scooter"
    PACKAGE = "package"
    SCHOOL = "school"
    LAUNDRY = "laundry"
    MEDICAL = "medical"
    PET = "pet"
    LUXURY = "luxury"
    FREIGHT = "freight"
    CAR_RENTAL = "car-rental"
    SHUTTLE = "shuttle"
    HOSPITALITY = "hospitality"


class RequestState(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# State machine: maps current state -> set of valid next states
REQUEST_TRANSITIONS: dict[RequestState, set[RequestState]] = {
    RequestState.PENDING: {RequestState.ASSIGNED, RequestState.CANCELLED},
    RequestState.ASSIGNED: {RequestState.CONFIRMED, RequestState.CANCELLED},
    RequestState.CONFIRMED: {RequestState.ACTIVE, RequestState.CANCELLED},
    RequestState.ACTIVE: {RequestState.COMPLETED},
    RequestState.COMPLETED: set(),
    RequestState.CANCELLED: set(),
}

TERMINAL_STATES = frozenset({RequestState.COMPLETED, RequestState.CANCELLED})

# States in which a request is bound to a provider
PROVIDER_BOUND_STATES = frozenset(
    {
        RequestState.ASSIGNED,
        RequestState.CONFIRMED,
        RequestState.ACTIVE,
        RequestState.COMPLETED,
    }
)


class LocationRequirement(str, enum.Enum):
    """Which geographic points a service type needs at creation."""

    ROUTE = "route"  # origin and destination
    ORIGIN = "origin"
    NONE = "none"


LOCATION_REQUIREMENTS: dict[ServiceType, LocationRequirement] = {
    ServiceType.CARPOOL: LocationRequirement.ROUTE,
    ServiceType.PACKAGE: LocationRequirement.ROUTE,
    ServiceType.MEDICAL: LocationRequirement.ROUTE,
    ServiceType.PET: LocationRequirement.ROUTE,
    ServiceType.LUXURY: LocationRequirement.ROUTE,
    ServiceType.FREIGHT: LocationRequirement.ROUTE,
    ServiceType.SHUTTLE: LocationRequirement.ROUTE,
    ServiceType.SCOOTER: LocationRequirement.ORIGIN,
    ServiceType.SCHOOL: LocationRequirement.ORIGIN,
    ServiceType.LAUNDRY: LocationRequirement.ORIGIN,
    ServiceType.CAR_RENTAL: LocationRequirement.ORIGIN,
    ServiceType.HOSPITALITY: LocationRequirement.NONE,
}


class PackageSize(str, enum.Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class LaundryMode(str, enum.Enum):
    ONE_WAY = "one_way"
    ROUND_TRIP = "round_trip"


class Weekday(str, enum.Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"
