"""
Tests for purchase-unit conversion.

Pure functions over PurchaseLine; no application or database needed.
"""

from decimal import Decimal

from backoffice.services.lines import PurchaseLine
from backoffice.services.units import base_quantity, base_unit_cost, main_delta, multiplier


def line(**kwargs):
    kwargs.setdefault("product_id", 1)
    kwargs.setdefault("unit_price", Decimal("1"))
    return PurchaseLine(**kwargs)


class TestBaseQuantity:

    def test_kilo_is_quantity(self):
        assert base_quantity(line(quantity=Decimal("12.5"), unit_type="kilo")) == Decimal("12.5")

    def test_kilo_ignores_packaging(self):
        plain = line(quantity=Decimal("12.5"), unit_type="kilo")
        packed = line(
            quantity=Decimal("12.5"),
            unit_type="kilo",
            packaging_mode="carton",
            units_per_carton=10,
            weight_per_unit=Decimal("0.25"),
        )
        sachet = line(
            quantity=Decimal("12.5"),
            unit_type="kilo",
            packaging_mode="sachet",
            weight_per_unit=Decimal("0.5"),
        )
        assert base_quantity(plain) == base_quantity(packed) == base_quantity(sachet) == Decimal("12.5")

    def test_carton(self):
        carton = line(
            quantity=Decimal("10"), unit_type="carton", units_per_carton=24, weight_per_unit=Decimal("0.5")
        )
        assert base_quantity(carton) == Decimal("120")

    def test_paquet(self):
        paquet = line(quantity=Decimal("5"), unit_type="paquet", weight_per_unit=Decimal("2"))
        assert base_quantity(paquet) == Decimal("10")

    def test_sac(self):
        sac = line(quantity=Decimal("3"), unit_type="sac", weight_per_unit=Decimal("25"))
        assert base_quantity(sac) == Decimal("75")

    def test_missing_multipliers_default_to_one(self):
        carton = line(quantity=Decimal("4"), unit_type="carton")
        assert base_quantity(carton) == Decimal("4")

    def test_non_positive_quantity_is_zero(self):
        assert base_quantity(line(quantity=Decimal("0"), unit_type="carton", units_per_carton=24)) == 0
        assert base_quantity(line(quantity=Decimal("-3"), unit_type="kilo")) == 0


class TestMultiplier:

    def test_non_positive_and_missing(self):
        assert multiplier(None) == 1
        assert multiplier(0) == 1
        assert multiplier(Decimal("-2")) == 1

    def test_positive(self):
        assert multiplier(24) == 24


class TestMainDelta:

    def test_kilo_uses_base(self):
        assert main_delta(line(quantity=Decimal("7"), unit_type="kilo")) == Decimal("7")

    def test_carton_counts_cartons(self):
        carton = line(
            quantity=Decimal("10"), unit_type="carton", units_per_carton=24, weight_per_unit=Decimal("0.5")
        )
        assert main_delta(carton) == Decimal("10")


class TestBaseUnitCost:

    def test_kilo_is_unit_price(self):
        assert base_unit_cost(line(quantity=Decimal("50"), unit_price=Decimal("16"))) == Decimal("16")

    def test_carton_spreads_price_over_base_units(self):
        carton = line(
            quantity=Decimal("10"),
            unit_price=Decimal("24"),
            unit_type="carton",
            units_per_carton=24,
            weight_per_unit=Decimal("0.5"),
        )
        assert base_unit_cost(carton) == Decimal("2")
