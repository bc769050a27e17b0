"""
Pricing calculator for bookings.

Pure function of its inputs: no database, no clock, no settings lookups.
The caller passes the platform fee percent it read from PlatformSettings.

Rules:
    base        always charged
    materials   charged when the freelancer provides materials
                (policy freelancer_provides, or both and the client did
                not choose to bring their own)
    travel      charged only when the freelancer travels to the client
    fee         round_half_up(subtotal * fee_percent / 100)
    total       subtotal; the fee comes out of the freelancer's side and
                is never added to what the client pays

Usage:
    from bookings.pricing import calculate_price

    price = calculate_price(
        base_price_pence=10000,
        materials_price_pence=0,
        travel_price_pence=0,
        materials_policy="freelancer_provides",
        location_type="online",
        client_provides_materials=False,
        platform_fee_percent=10,
    )
    price.platform_fee_pence  # 1000
    price.total_pence         # 10000
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from core.helpers import percent_of

from bookings.models import LocationType, MaterialsPolicy


@dataclass(frozen=True)
class PriceBreakdown:
    base_price_pence: int
    materials_price_pence: int
    travel_price_pence: int
    subtotal_pence: int
    platform_fee_pence: int
    total_pence: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def charges_materials(materials_policy: str, client_provides_materials: bool) -> bool:
    if materials_policy == MaterialsPolicy.FREELANCER_PROVIDES:
        return True
    if materials_policy == MaterialsPolicy.BOTH:
        return not client_provides_materials
    return False


def calculate_price(
    base_price_pence: int,
    materials_price_pence: int,
    travel_price_pence: int,
    materials_policy: str,
    location_type: str,
    client_provides_materials: bool,
    platform_fee_percent: int,
) -> PriceBreakdown:
    materials = materials_price_pence if charges_materials(materials_policy, client_provides_materials) else 0
    travel = travel_price_pence if location_type == LocationType.FREELANCER_TRAVELS_TO_CLIENT else 0
    subtotal = base_price_pence + materials + travel

    return PriceBreakdown(
        base_price_pence=base_price_pence,
        materials_price_pence=materials,
        travel_price_pence=travel,
        subtotal_pence=subtotal,
        platform_fee_pence=percent_of(subtotal, platform_fee_percent),
        total_pence=subtotal,
    )


def price_for_service(
    service,
    location_type: str,
    client_provides_materials: bool,
    platform_fee_percent: int,
) -> PriceBreakdown:
    """calculate_price with the price inputs taken from a Service."""
    return calculate_price(
        base_price_pence=service.base_price_pence,
        materials_price_pence=service.materials_price_pence,
        travel_price_pence=service.travel_price_pence,
        materials_policy=service.materials_policy,
        location_type=location_type,
        client_provides_materials=client_provides_materials,
        platform_fee_percent=platform_fee_percent,
    )
