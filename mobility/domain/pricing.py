"""
Pricing Engine  (Strategy Pattern)
==================================

One ``PricingAdapter`` per service type, registered in a lookup table on
the engine.  Every adapter declares a pydantic parameter model; the engine
validates raw parameters against it and never fills in a missing required
field.

Formulas
--------
* Distance-metered rides (carpool, medical, pet, luxury, shuttle,
  hospitality, freight)::

      Total = (Base_Fare + Distance x Rate_Per_KM [+ Weight x Rate_Per_KG]) x Surge

  Carpool additionally reports ``price_per_seat = Total / seats``.
* Scooter:   Unlock_Fee + Minutes x Rate_Per_Minute
* Package:   Size_Base (small / medium / large) + Distance x Rate_Per_KM
* School:    Rate x Students x Active_Days x 4 weeks   (monthly)
* Laundry:   Base + KG x Rate_Per_KG + Captain_Fee + Partner_Fee, plus the
  platform commission on that subtotal
* Car rental: Daily_Rate x Days

* **Surge** = ``peak_surge_multiplier`` when the pricing instant's local
  hour falls inside one of ``peak_windows`` (bounds inclusive), else 1.0.

Every component is rounded to 2 decimals and ``total`` is the sum of the
components, so the breakdown always adds up.

Complexity: O(1) per price calculation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .entities import PriceBreakdown, PriceComponent
from .enums import LaundryMode, PackageSize, ServiceType, Weekday
from .errors import InvalidParameters, UnsupportedServiceType


# ── Parameter models ──────────────────────────────────────────────────


class PricingParams(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
        extra="ignore",
    )


class DistanceParams(PricingParams):
    distance_km: float = Field(..., gt=0)


class CarpoolParams(DistanceParams):
    seats: int = Field(..., ge=1, le=8)


class FreightParams(DistanceParams):
    weight_kg: float = Field(..., gt=0)


class ScooterParams(PricingParams):
    duration_minutes: float = Field(..., gt=0)
    price_per_minute: Optional[float] = Field(None, gt=0)


class PackageParams(DistanceParams):
    package_size: PackageSize


class SchoolParams(PricingParams):
    students: int = Field(..., ge=1)
    days: list[Weekday] = Field(..., min_length=1, max_length=7)

    @field_validator("days")
    @classmethod
    def _unique_days(cls, v: list[Weekday]) -> list[Weekday]:
        if len(set(v)) != len(v):
            raise ValueError("days must not repeat")
        return v


class LaundryParams(PricingParams):
    load_weight_kg: float = Field(..., gt=0)
    service_mode: LaundryMode
    partner_id: str = Field(..., min_length=1)
    partner_fee_per_kg: float = Field(0.0, ge=0)


class CarRentalParams(PricingParams):
    rental_days: int = Field(..., ge=1)


# ── Tariffs ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RideTariff:
    base_fare: float
    rate_per_km: float
    rate_per_kg: float = 0.0


DEFAULT_RIDE_TARIFFS: dict[ServiceType, RideTariff] = {
    ServiceType.CARPOOL: RideTariff(10.0, 2.0),
    ServiceType.MEDICAL: RideTariff(25.0, 3.5),
    ServiceType.PET: RideTariff(15.0, 2.5),
    ServiceType.LUXURY: RideTariff(50.0, 6.0),
    ServiceType.SHUTTLE: RideTariff(8.0, 1.5),
    ServiceType.HOSPITALITY: RideTariff(30.0, 4.0),
    ServiceType.FREIGHT: RideTariff(40.0, 3.0, rate_per_kg=0.5),
}

PACKAGE_SIZE_PRICES: dict[PackageSize, float] = {
    PackageSize.SMALL: 15.0,
    PackageSize.MEDIUM: 35.0,
    PackageSize.LARGE: 60.0,
}

LAUNDRY_CAPTAIN_FEES: dict[LaundryMode, float] = {
    LaundryMode.ONE_WAY: 20.0,
    LaundryMode.ROUND_TRIP: 40.0,
}


@dataclass(frozen=True)
class PeakPolicy:
    """Local wall-clock windows in which surge applies."""

    windows: tuple[tuple[int, int], ...] = ((7, 9), (17, 19))
    multiplier: float = 1.25

    def multiplier_at(self, at: datetime) -> float:
        hour = at.hour
        for start, end in self.windows:
            if start <= hour <= end:
                return self.multiplier
        return 1.0


def _money(value: float) -> float:
    return round(value, 2)


def _breakdown(
    service_type: ServiceType,
    currency: str,
    components: Sequence[tuple[str, float]],
    surge: float = 1.0,
    extras: Optional[dict[str, Any]] = None,
) -> PriceBreakdown:
    items = tuple(PriceComponent(name, _money(amount)) for name, amount in components)
    total = _money(sum(c.amount for c in items))
    return PriceBreakdown(
        service_type=service_type,
        currency=currency,
        base=items[0].amount,
        components=items,
        surge_multiplier=surge,
        total=total,
        extras=extras or {},
    )


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingAdapter(ABC):
    """Prices one service type from validated parameters."""

    params_model: type[PricingParams]

    def parse(self, params: Mapping[str, Any]) -> PricingParams:
        if not isinstance(params, Mapping):
            raise InvalidParameters("pricing parameters must be an object")
        try:
            return self.params_model.model_validate(dict(params))
        except ValidationError as exc:
            detail = "; ".join(
                f"{'.'.join(str(p) for p in e['loc']) or 'parameters'}: {e['msg']}"
                for e in exc.errors()
            )
            raise InvalidParameters(detail) from exc

    @abstractmethod
    def calculate(
        self,
        service_type: ServiceType,
        params: Any,
        surge: float,
        currency: str,
    ) -> PriceBreakdown: ...

    # Only distance-metered rides are subject to peak surge
    surge_applies = False


class DistancePricing(PricingAdapter):
    params_model = DistanceParams
    surge_applies = True

    def __init__(self, tariff: RideTariff):
        self.tariff = tariff

    def _components(self, params: Any) -> list[tuple[str, float]]:
        return [
            ("base_fare", self.tariff.base_fare),
            ("distance_charge", params.distance_km * self.tariff.rate_per_km),
        ]

    def calculate(self, service_type, params, surge, currency):
        components = self._components(params)
        if surge != 1.0:
            subtotal = sum(_money(amount) for _, amount in components)
            components.append(("surge_charge", subtotal * (surge - 1.0)))
        breakdown = _breakdown(service_type, currency, components, surge)
        breakdown.extras["distance_km"] = params.distance_km
        return breakdown


class CarpoolPricing(DistancePricing):
    """Trip price split evenly across the requested seats."""

    params_model = CarpoolParams

    def calculate(self, service_type, params, surge, currency):
        breakdown = super().calculate(service_type, params, surge, currency)
        breakdown.extras["seats"] = params.seats
        breakdown.extras["price_per_seat"] = _money(breakdown.total / params.seats)
        return breakdown


class FreightPricing(DistancePricing):
    params_model = FreightParams

    def _components(self, params):
        components = super()._components(params)
        components.append(("weight_charge", params.weight_kg * self.tariff.rate_per_kg))
        return components


class ScooterPricing(PricingAdapter):
    params_model = ScooterParams

    def __init__(self, unlock_fee: float = 5.0, rate_per_minute: float = 1.0):
        self.unlock_fee = unlock_fee
        self.rate_per_minute = rate_per_minute

    def calculate(self, service_type, params, surge, currency):
        rate = params.price_per_minute or self.rate_per_minute
        return _breakdown(
            service_type,
            currency,
            [
                ("unlock_fee", self.unlock_fee),
                ("time_charge", params.duration_minutes * rate),
            ],
            extras={"duration_minutes": params.duration_minutes, "price_per_minute": rate},
        )


class PackagePricing(PricingAdapter):
    params_model = PackageParams

    def __init__(self, rate_per_km: float = 2.0):
        self.rate_per_km = rate_per_km

    def calculate(self, service_type, params, surge, currency):
        return _breakdown(
            service_type,
            currency,
            [
                ("size_base", PACKAGE_SIZE_PRICES[params.package_size]),
                ("distance_charge", params.distance_km * self.rate_per_km),
            ],
            extras={"package_size": params.package_size.value, "distance_km": params.distance_km},
        )


class SchoolPricing(PricingAdapter):
    """Monthly subscription: per student, per active weekday, four weeks."""

    params_model = SchoolParams
    WEEKS_PER_MONTH = 4

    def __init__(self, rate_per_student_day: float = 25.0):
        self.rate_per_student_day = rate_per_student_day

    def calculate(self, service_type, params, surge, currency):
        active_days = len(params.days)
        monthly = (
            self.rate_per_student_day * params.students * active_days * self.WEEKS_PER_MONTH
        )
        breakdown = _breakdown(
            service_type,
            currency,
            [("subscription_fee", 0.0), ("student_days", monthly)],
            extras={
                "per_student_per_day": self.rate_per_student_day,
                "students": params.students,
                "active_days": active_days,
            },
        )
        breakdown.extras["monthly_total"] = breakdown.total
        return breakdown


class LaundryPricing(PricingAdapter):
    params_model = LaundryParams

    def __init__(
        self,
        base_price: float = 50.0,
        rate_per_kg: float = 5.0,
        commission_rate: float = 0.10,
    ):
        self.base_price = base_price
        self.rate_per_kg = rate_per_kg
        self.commission_rate = commission_rate

    def calculate(self, service_type, params, surge, currency):
        components = [
            ("base_price", self.base_price),
            ("weight_charge", params.load_weight_kg * self.rate_per_kg),
            ("captain_fee", LAUNDRY_CAPTAIN_FEES[params.service_mode]),
            ("partner_fee", params.load_weight_kg * params.partner_fee_per_kg),
        ]
        subtotal = sum(_money(amount) for _, amount in components)
        components.append(("platform_commission", subtotal * self.commission_rate))
        return _breakdown(
            service_type,
            currency,
            components,
            extras={
                "partner_id": params.partner_id,
                "service_mode": params.service_mode.value,
                "load_weight_kg": params.load_weight_kg,
            },
        )


class CarRentalPricing(PricingAdapter):
    params_model = CarRentalParams

    def __init__(self, daily_rate: float = 150.0):
        self.daily_rate = daily_rate

    def calculate(self, service_type, params, surge, currency):
        return _breakdown(
            service_type,
            currency,
            [("booking_fee", 0.0), ("daily_charge", params.rental_days * self.daily_rate)],
            extras={"rental_days": params.rental_days, "daily_rate": self.daily_rate},
        )


def default_adapters(
    tariffs: Optional[Mapping[ServiceType, RideTariff]] = None,
    commission_rate: float = 0.10,
) -> dict[ServiceType, PricingAdapter]:
    tariffs = {**DEFAULT_RIDE_TARIFFS, **(tariffs or {})}
    adapters: dict[ServiceType, PricingAdapter] = {
        ServiceType.CARPOOL: CarpoolPricing(tariffs[ServiceType.CARPOOL]),
        ServiceType.FREIGHT: FreightPricing(tariffs[ServiceType.FREIGHT]),
        ServiceType.SCOOTER: ScooterPricing(),
        ServiceType.PACKAGE: PackagePricing(),
        ServiceType.SCHOOL: SchoolPricing(),
        ServiceType.LAUNDRY: LaundryPricing(commission_rate=commission_rate),
        ServiceType.CAR_RENTAL: CarRentalPricing(),
    }
    for service_type in (
        ServiceType.MEDICAL,
        ServiceType.PET,
        ServiceType.LUXURY,
        ServiceType.SHUTTLE,
        ServiceType.HOSPITALITY,
    ):
        adapters[service_type] = DistancePricing(tariffs[service_type])
    return adapters


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the lifecycle controller and the API layer.

    Pure: no I/O, and identical inputs (including *at*) always yield an
    identical breakdown.
    """

    def __init__(
        self,
        adapters: Optional[Mapping[ServiceType, PricingAdapter]] = None,
        peak: Optional[PeakPolicy] = None,
        currency: str = "AED",
    ):
        self.adapters = dict(adapters if adapters is not None else default_adapters())
        self.peak = peak or PeakPolicy()
        self.currency = currency

    @classmethod
    def from_settings(cls, settings) -> "PricingEngine":
        return cls(
            adapters=default_adapters(commission_rate=settings.platform_commission_rate),
            peak=PeakPolicy(
                windows=tuple(tuple(w) for w in settings.peak_windows),
                multiplier=settings.peak_surge_multiplier,
            ),
            currency=settings.currency,
        )

    def adapter_for(self, service_type: ServiceType) -> PricingAdapter:
        adapter = self.adapters.get(service_type)
        if adapter is None:
            raise UnsupportedServiceType(f"No pricing adapter for {service_type.value}")
        return adapter

    def parse(self, service_type: ServiceType, params: Mapping[str, Any]) -> PricingParams:
        return self.adapter_for(service_type).parse(params)

    def quote(
        self,
        service_type: ServiceType,
        params: Mapping[str, Any],
        at: datetime,
    ) -> PriceBreakdown:
        adapter = self.adapter_for(service_type)
        parsed = adapter.parse(params)
        surge = self.peak.multiplier_at(at) if adapter.surge_applies else 1.0
        breakdown = adapter.calculate(service_type, parsed, surge, self.currency)
        if breakdown.total < 0:
            raise InvalidParameters(f"Computed a negative total for {service_type.value}")
        return breakdown
