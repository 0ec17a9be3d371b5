"""
Service-specific request details as a tagged union.

Each service type has its own strongly-typed model; the ``service_type``
field is the discriminator.  Validation happens once, when a request is
created, so the state machine never has to look inside the bag.

Field names are snake_case; camelCase aliases (``femaleOnly``,
``weightKg``, ...) are accepted as well.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .enums import LaundryMode, PackageSize, ServiceType, Weekday
from .errors import InvalidRequest


class _Details(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class CarpoolDetails(_Details):
    service_type: Literal["carpool"] = Field(alias="service_type")
    seats: int = Field(..., ge=1, le=8)
    female_only: bool = False
    luggage_count: int = Field(0, ge=0, le=10)


class ScooterDetails(_Details):
    service_type: Literal["scooter"] = Field(alias="service_type")
    scooter_id: str = Field(..., min_length=1)


class PackageDetails(_Details):
    service_type: Literal["package"] = Field(alias="service_type")
    package_size: PackageSize
    weight_kg: Optional[float] = Field(None, gt=0)
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None


class SchoolDetails(_Details):
    service_type: Literal["school"] = Field(alias="service_type")
    school_name: str = Field(..., min_length=1)
    students: int = Field(..., ge=1)
    days: list[Weekday] = Field(..., min_length=1)

    @field_validator("days")
    @classmethod
    def _unique_days(cls, v: list[Weekday]) -> list[Weekday]:
        if len(set(v)) != len(v):
            raise ValueError("days must not repeat")
        return v


class LaundryDetails(_Details):
    service_type: Literal["laundry"] = Field(alias="service_type")
    service_mode: LaundryMode
    partner_id: str = Field(..., min_length=1)
    weight_kg: float = Field(..., gt=0)
    items: list[str] = []
    special_instructions: Optional[str] = None


class MedicalDetails(_Details):
    service_type: Literal["medical"] = Field(alias="service_type")
    wheelchair: bool = False
    companion: bool = False
    appointment_type: Optional[str] = None


class PetDetails(_Details):
    service_type: Literal["pet"] = Field(alias="service_type")
    pet_type: str = Field(..., min_length=1)
    pet_count: int = Field(1, ge=1)
    carrier: bool = False


class LuxuryDetails(_Details):
    service_type: Literal["luxury"] = Field(alias="service_type")
    vehicle_class: Literal["sedan", "suv", "limousine"]


class FreightDetails(_Details):
    service_type: Literal["freight"] = Field(alias="service_type")
    weight_kg: float = Field(..., gt=0)
    volume_m3: Optional[float] = Field(None, gt=0)


class CarRentalDetails(_Details):
    service_type: Literal["car-rental"] = Field(alias="service_type")
    vehicle_category: str = Field(..., min_length=1)
    rental_days: int = Field(..., ge=1)


class ShuttleDetails(_Details):
    service_type: Literal["shuttle"] = Field(alias="service_type")
    seats: int = Field(..., ge=1)


class HospitalityDetails(_Details):
    service_type: Literal["hospitality"] = Field(alias="service_type")
    guest_name: str = Field(..., min_length=1)
    guests: int = Field(1, ge=1)


ServiceDetails = Annotated[
    Union[
        CarpoolDetails,
        ScooterDetails,
        PackageDetails,
        SchoolDetails,
        LaundryDetails,
        MedicalDetails,
        PetDetails,
        LuxuryDetails,
        FreightDetails,
        CarRentalDetails,
        ShuttleDetails,
        HospitalityDetails,
    ],
    Field(discriminator="service_type"),
]

_TAGS = {t.value for t in ServiceType}

_adapter: TypeAdapter[ServiceDetails] = TypeAdapter(ServiceDetails)


def parse_details(service_type: ServiceType, payload: dict[str, Any]) -> ServiceDetails:
    """Validate *payload* as the details variant for *service_type*.

    A ``service_type`` key inside the payload must agree with the argument.
    """
    if not isinstance(payload, dict):
        raise InvalidRequest("details must be an object")
    declared = payload.get("service_type", payload.get("serviceType"))
    if declared is not None and declared != service_type.value:
        raise InvalidRequest(
            f"details declare service type {declared!r}, "
            f"request is {service_type.value!r}"
        )
    data = {k: v for k, v in payload.items() if k not in ("service_type", "serviceType")}
    data["service_type"] = service_type.value
    try:
        return _adapter.validate_python(data)
    except ValidationError as exc:
        raise InvalidRequest(_summarise(exc)) from exc


def dump_details(details: ServiceDetails) -> dict[str, Any]:
    return details.model_dump(mode="json")


def _summarise(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"] if p not in _TAGS)
        parts.append(f"{loc or 'details'}: {err['msg']}")
    return "; ".join(parts)


class Settlement(BaseModel):
    """Final actuals attached at completion.  Unknown keys are kept as-is."""

    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    actual_price: Optional[float] = Field(None, ge=0)
    duration_minutes: Optional[float] = Field(None, ge=0)
    rating: Optional[int] = Field(None, ge=1, le=5)


def parse_settlement(payload: Optional[Mapping[str, Any]]) -> Settlement:
    if payload is None:
        return Settlement()
    if not isinstance(payload, Mapping):
        raise InvalidRequest("settlement must be an object")
    try:
        return Settlement.model_validate(dict(payload))
    except ValidationError as exc:
        raise InvalidRequest(_summarise(exc)) from exc
