"""
Tests for the pricing calculator.
"""

import pytest

from bookings.models import LocationType, MaterialsPolicy
from bookings.pricing import calculate_price, charges_materials, price_for_service
from bookings.tests.factories import ServiceFactory


def price(**overrides):
    values = {
        "base_price_pence": 10000,
        "materials_price_pence": 1500,
        "travel_price_pence": 2000,
        "materials_policy": MaterialsPolicy.CLIENT_PROVIDES,
        "location_type": LocationType.ONLINE,
        "client_provides_materials": False,
        "platform_fee_percent": 10,
    }
    values.update(overrides)
    return calculate_price(**values)


class TestCalculatePrice:
    def test_base_only(self):
        result = price()

        assert result.subtotal_pence == 10000
        assert result.platform_fee_pence == 1000
        assert result.total_pence == 10000

    def test_fee_is_not_added_to_total(self):
        result = price(materials_policy=MaterialsPolicy.FREELANCER_PROVIDES)

        assert result.total_pence == result.subtotal_pence == 11500
        assert result.platform_fee_pence == 1150

    def test_travel_only_when_freelancer_travels(self):
        assert price(location_type=LocationType.FREELANCER_TRAVELS_TO_CLIENT).travel_price_pence == 2000
        assert price(location_type=LocationType.CLIENT_TRAVELS_TO_FREELANCER).travel_price_pence == 0

    def test_everything_charged(self):
        result = price(
            materials_policy=MaterialsPolicy.BOTH,
            location_type=LocationType.FREELANCER_TRAVELS_TO_CLIENT,
        )

        assert result.total_pence == 13500
        assert result.platform_fee_pence == 1350

    def test_fee_rounds_half_up(self):
        assert price(base_price_pence=1005, platform_fee_percent=10).platform_fee_pence == 101

    def test_zero_fee(self):
        assert price(platform_fee_percent=0).platform_fee_pence == 0


class TestChargesMaterials:
    @pytest.mark.parametrize(
        "policy,client_provides,expected",
        [
            (MaterialsPolicy.FREELANCER_PROVIDES, False, True),
            (MaterialsPolicy.FREELANCER_PROVIDES, True, True),
            (MaterialsPolicy.CLIENT_PROVIDES, False, False),
            (MaterialsPolicy.BOTH, False, True),
            (MaterialsPolicy.BOTH, True, False),
        ],
    )
    def test_policy(self, policy, client_provides, expected):
        assert charges_materials(policy, client_provides) is expected


class TestPriceForService:
    def test_reads_prices_from_service(self, db):
        service = ServiceFactory(base_price_pence=8000, materials_price_pence=500)

        result = price_for_service(
            service,
            location_type=LocationType.ONLINE,
            client_provides_materials=False,
            platform_fee_percent=10,
        )

        assert result.to_dict() == {
            "base_price_pence": 8000,
            "materials_price_pence": 500,
            "travel_price_pence": 0,
            "subtotal_pence": 8500,
            "platform_fee_pence": 850,
            "total_pence": 8500,
        }
