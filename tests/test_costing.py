"""Tests for the weighted-average cost accumulator."""

from decimal import Decimal

from backoffice.services.costing import next_cost


class TestNextCost:

    def test_weighted_average(self):
        assert next_cost(Decimal("100"), Decimal("10"), Decimal("50"), Decimal("16")) == Decimal("12")

    def test_first_purchase_takes_price(self):
        assert next_cost(0, 0, Decimal("40"), Decimal("3.5")) == Decimal("3.5")

    def test_cost_preserved_when_stock_nets_to_zero(self):
        assert next_cost(Decimal("10"), Decimal("5"), Decimal("-10"), Decimal("7")) == Decimal("5")

    def test_cost_preserved_when_stock_goes_negative(self):
        assert next_cost(Decimal("10"), Decimal("5"), Decimal("-15"), Decimal("7")) == Decimal("5")

    def test_removing_a_contribution(self):
        # 150 @ 12 minus the 50 @ 16 that was added earlier
        assert next_cost(Decimal("150"), Decimal("12"), Decimal("-50"), Decimal("16")) == Decimal("10")

    def test_accepts_plain_numbers(self):
        assert next_cost(100, 10, 50, 16) == Decimal("12")
