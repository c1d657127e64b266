"""
Tests for packaging-variant synthesis.

The effect planning functions are pure; the synthesizer tests run against
the in-memory database through LedgerStore.
"""

from decimal import Decimal

from backoffice.extensions import db
from backoffice.models import ProductVariant
from backoffice.services.ledger_store import LedgerStore
from backoffice.services.lines import PurchaseLine
from backoffice.services.variant_service import (
    VariantSynthesizer,
    line_effects,
    net_effects,
    variant_name,
)


def carton_line(product_id=1, quantity="10", price="12"):
    return PurchaseLine(
        product_id=product_id,
        quantity=Decimal(quantity),
        unit_price=Decimal(price),
        unit_type="carton",
        units_per_carton=24,
        weight_per_unit=Decimal("0.5"),
    )


def kilo_line(product_id=1, quantity="50", price="2", **kwargs):
    return PurchaseLine(
        product_id=product_id, quantity=Decimal(quantity), unit_price=Decimal(price), unit_type="kilo", **kwargs
    )


def variants_by_type(product_id):
    rows = ProductVariant.query.filter_by(product_id=product_id).order_by(ProductVariant.id).all()
    return {row.unit_type: row for row in rows}


class TestVariantNames:

    def test_names(self):
        assert variant_name("kilo") == "Kilo"
        assert variant_name("carton", Decimal("24.0000")) == "Carton x24"
        assert variant_name("paquet", Decimal("2")) == "Paquet 2kg"
        assert variant_name("sac", Decimal("0.5")) == "Sac 0.5kg"
        assert variant_name("unit", Decimal("1")) == "Unit"


class TestLineEffects:

    def test_carton_derives_unit_variant(self):
        effects = {e.unit_type: e for e in line_effects(carton_line())}
        assert effects["carton"].stock_delta == Decimal("10")
        assert effects["carton"].quantity_contained == Decimal("24")
        assert effects["unit"].stock_delta == Decimal("240")
        assert effects["unit"].purchase_price == Decimal("0.5")

    def test_single_unit_carton_has_no_unit_variant(self):
        line = PurchaseLine(product_id=1, quantity=Decimal("3"), unit_price=Decimal("5"), unit_type="carton",
                            units_per_carton=1, weight_per_unit=Decimal("2"))
        assert [e.unit_type for e in line_effects(line)] == ["carton"]

    def test_kilo_with_carton_packaging(self):
        line = kilo_line(quantity="120", price="2", packaging_mode="carton", units_per_carton=24,
                         weight_per_unit=Decimal("0.5"))
        effects = {e.unit_type: e for e in line_effects(line)}
        assert effects["kilo"].stock_delta == Decimal("120")
        assert effects["carton"].stock_delta == Decimal("10")
        assert effects["carton"].purchase_price == Decimal("24")
        assert effects["unit"].stock_delta == Decimal("240")
        assert effects["unit"].purchase_price == Decimal("1")

    def test_plain_kilo_only_touches_base_row(self):
        assert [e.unit_type for e in line_effects(kilo_line())] == ["kilo"]

    def test_zero_quantity_has_no_effect(self):
        assert line_effects(kilo_line(quantity="0")) == []


class TestNetEffects:

    def test_unit_type_change_is_decrement_then_increment(self):
        netted = {e.unit_type: e for e in net_effects(line_effects(carton_line()), line_effects(kilo_line()))}
        assert netted["carton"].stock_delta == Decimal("-10")
        assert netted["unit"].stock_delta == Decimal("-240")
        assert netted["kilo"].stock_delta == Decimal("50")
        assert netted["carton"].purchase_price is None

    def test_same_type_nets_to_difference(self):
        old = line_effects(kilo_line(quantity="10"))
        new = line_effects(kilo_line(quantity="15", price="3"))
        (effect,) = net_effects(old, new)
        assert effect.stock_delta == Decimal("5")
        assert effect.purchase_price == Decimal("3")


class TestVariantSynthesizer:

    def test_first_variant_is_default(self, rice):
        synthesizer = VariantSynthesizer(LedgerStore())
        synthesizer.apply_line(carton_line(product_id=rice.id))
        db.session.commit()

        rows = variants_by_type(rice.id)
        assert rows["carton"].is_default is True
        assert rows["carton"].variant_name == "Carton x24"
        assert rows["carton"].stock == Decimal("10")
        assert rows["unit"].is_default is False
        assert rows["unit"].stock == Decimal("240")

    def test_repeat_purchase_updates_existing_row(self, rice):
        synthesizer = VariantSynthesizer(LedgerStore())
        synthesizer.apply_line(kilo_line(product_id=rice.id, quantity="50", price="2"))
        synthesizer.apply_line(kilo_line(product_id=rice.id, quantity="30", price="3"))
        db.session.commit()

        rows = ProductVariant.query.filter_by(product_id=rice.id).all()
        assert len(rows) == 1
        assert rows[0].stock == Decimal("80")
        assert rows[0].purchase_price == Decimal("3")

    def test_reversal_floors_at_zero_and_never_inserts(self, rice):
        synthesizer = VariantSynthesizer(LedgerStore())
        synthesizer.apply_line(kilo_line(product_id=rice.id, quantity="50"))
        synthesizer.apply_line(kilo_line(product_id=rice.id, quantity="80"), sign=-1)
        synthesizer.apply_line(carton_line(product_id=rice.id), sign=-1)
        db.session.commit()

        rows = variants_by_type(rice.id)
        assert set(rows) == {"kilo"}
        assert rows["kilo"].stock == Decimal("0")

    def test_carton_purchase_purges_stale_fractional_rows(self, rice):
        stale = ProductVariant(product_id=rice.id, variant_name="Kilo 0.5", unit_type="kilo",
                               quantity_contained=Decimal("0.5"), stock=Decimal("4"))
        base = ProductVariant(product_id=rice.id, variant_name="Kilo", unit_type="kilo",
                              quantity_contained=Decimal("1"), stock=Decimal("7"))
        db.session.add_all([stale, base])
        db.session.commit()
        stale_id, base_id = stale.id, base.id

        VariantSynthesizer(LedgerStore()).apply_line(carton_line(product_id=rice.id))
        db.session.commit()

        assert ProductVariant.query.filter_by(id=stale_id).count() == 0
        assert ProductVariant.query.filter_by(id=base_id).count() == 1

    def test_kilo_base_row_ignores_bulk_rows(self, rice):
        bulk = ProductVariant(product_id=rice.id, variant_name="Kilo x5", unit_type="kilo",
                              quantity_contained=Decimal("5"), stock=Decimal("2"))
        db.session.add(bulk)
        db.session.commit()

        VariantSynthesizer(LedgerStore()).apply_line(kilo_line(product_id=rice.id, quantity="10"))
        db.session.commit()

        rows = ProductVariant.query.filter_by(product_id=rice.id, unit_type="kilo").order_by(ProductVariant.id).all()
        assert len(rows) == 2
        assert rows[0].stock == Decimal("2")
        assert rows[1].stock == Decimal("10")
        assert rows[1].quantity_contained == Decimal("1")

    def test_purging_line_does_not_credit_stale_row(self, rice):
        stale = ProductVariant(product_id=rice.id, variant_name="Kilo 0.5", unit_type="kilo",
                               quantity_contained=Decimal("0.5"), stock=Decimal("3"))
        db.session.add(stale)
        db.session.commit()
        stale_id = stale.id

        line = kilo_line(product_id=rice.id, quantity="24", packaging_mode="carton", units_per_carton=12,
                         weight_per_unit=Decimal("2"))
        VariantSynthesizer(LedgerStore()).apply_line(line)
        db.session.commit()

        assert ProductVariant.query.filter_by(id=stale_id).count() == 0
        rows = variants_by_type(rice.id)
        assert rows["kilo"].stock == Decimal("24")
        assert rows["kilo"].quantity_contained == Decimal("1")
        assert rows["carton"].stock == Decimal("1")
        assert rows["unit"].stock == Decimal("12")

    def test_plain_kilo_still_updates_fractional_row(self, rice):
        fractional = ProductVariant(product_id=rice.id, variant_name="Kilo 0.5", unit_type="kilo",
                                    quantity_contained=Decimal("0.5"), stock=Decimal("3"))
        db.session.add(fractional)
        db.session.commit()

        VariantSynthesizer(LedgerStore()).apply_line(kilo_line(product_id=rice.id, quantity="10"))
        db.session.commit()

        (row,) = ProductVariant.query.filter_by(product_id=rice.id).all()
        assert row.stock == Decimal("13")
