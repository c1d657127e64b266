"""
Tests for the ledger store adapter: error translation and the single
schema-tolerance retry.

The write retry tests use a recording session double so the failing
statement can be inspected. The drifted-schema tests drop real columns
from the in-memory SQLite tables and run reconciliations against them.
"""

import sqlite3
from contextlib import nullcontext
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import text
from sqlalchemy.exc import InvalidRequestError, OperationalError, ProgrammingError

from backoffice.exceptions import GeneratedColumnError, MissingColumnError, StoreError
from backoffice.extensions import db
from backoffice.models import Product, Purchase
from backoffice.services.ledger_store import LedgerStore, translate_store_error
from backoffice.services.lines import PurchaseLine
from backoffice.services.purchase_service import CreatePurchase, PurchaseHeader, PurchaseReconciler


class PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


def sqlite_error(message):
    return OperationalError("INSERT ...", {}, sqlite3.OperationalError(message))


def pg_error(message, pgcode):
    return ProgrammingError("INSERT ...", {}, PgError(message, pgcode))


class RecordingSession:
    """Records executed statements; raises queued errors first."""

    def __init__(self, errors=(), dialect="sqlite"):
        self.errors = list(errors)
        self.statements = []
        self.savepoints = 0
        self.dialect = dialect

    def get_bind(self):
        return SimpleNamespace(dialect=SimpleNamespace(name=self.dialect))

    def begin_nested(self):
        self.savepoints += 1
        return nullcontext()

    def execute(self, statement):
        self.statements.append(statement)
        if self.errors:
            raise self.errors.pop(0)
        return SimpleNamespace(inserted_primary_key=(7,))


def params(statement):
    return statement.compile().params


class TestTranslateStoreError:

    def test_sqlite_insert_missing_column(self):
        error = translate_store_error(sqlite_error("table products has no column named legacy_code"))
        assert isinstance(error, MissingColumnError)
        assert error.column == "legacy_code"

    def test_sqlite_update_missing_column(self):
        error = translate_store_error(sqlite_error("no such column: is_default"))
        assert isinstance(error, MissingColumnError)
        assert error.column == "is_default"

    def test_postgres_undefined_column(self):
        error = translate_store_error(
            pg_error('column "alert_threshold" of relation "product_variants" does not exist', "42703")
        )
        assert isinstance(error, MissingColumnError)
        assert error.column == "alert_threshold"

    def test_postgres_generated_column(self):
        error = translate_store_error(
            pg_error('cannot insert a non-DEFAULT value into column "line_total"', "428C9")
        )
        assert isinstance(error, GeneratedColumnError)
        assert error.column == "line_total"

    def test_other_errors_are_plain_store_errors(self):
        error = translate_store_error(sqlite_error("database is locked"))
        assert type(error) is StoreError
        assert "locked" in error.message

    def test_payload_key_fallback(self):
        error = translate_store_error(
            pg_error("column reference is ambiguous and does not exist: weight_per_unit", "42703"),
            payload={"weight_per_unit": 1, "quantity": 2},
        )
        assert isinstance(error, MissingColumnError)
        assert error.column == "weight_per_unit"


class TestWriteRetry:

    def test_drops_missing_column_and_retries_once(self, app):
        session = RecordingSession([sqlite_error("table product_variants has no column named is_default")])
        store = LedgerStore(session=session)

        new_id = store.write_variant({"product_id": 1, "stock": 5, "is_default": True})

        assert new_id == 7
        assert len(session.statements) == 2
        assert "is_default" in params(session.statements[0])
        assert "is_default" not in params(session.statements[1])
        assert params(session.statements[1])["stock"] == 5

    def test_second_schema_failure_is_fatal(self, app):
        session = RecordingSession([
            sqlite_error("table products has no column named cost_price"),
            sqlite_error("table products has no column named stock"),
        ])
        store = LedgerStore(session=session)

        with pytest.raises(MissingColumnError) as excinfo:
            store.write_product(1, {"stock": 5, "cost_price": 2})
        assert excinfo.value.column == "stock"
        assert len(session.statements) == 2

    def test_other_errors_are_not_retried(self, app):
        session = RecordingSession([sqlite_error("database is locked")])
        store = LedgerStore(session=session)

        with pytest.raises(StoreError):
            store.write_product(1, {"stock": 5})
        assert len(session.statements) == 1

    def test_unknown_column_outside_payload_is_not_retried(self, app):
        session = RecordingSession([sqlite_error("no such column: ghost")])
        store = LedgerStore(session=session)

        with pytest.raises(MissingColumnError):
            store.write_product(1, {"stock": 5})
        assert len(session.statements) == 1

    def test_postgres_attempts_run_in_savepoints(self, app):
        session = RecordingSession(
            [pg_error('column "is_default" of relation "product_variants" does not exist', "42703")],
            dialect="postgresql",
        )
        LedgerStore(session=session).write_variant({"product_id": 1, "is_default": True})
        assert session.savepoints == 2


def drop_column(table, column):
    db.session.execute(text(f"ALTER TABLE {table} DROP COLUMN {column}"))
    db.session.commit()


def receive_kilos(supplier, warehouse, product, quantity):
    line = PurchaseLine(product_id=product.id, quantity=Decimal(quantity), unit_price=Decimal("2"))
    header = PurchaseHeader(supplier_id=supplier.id, warehouse_id=warehouse.id)
    return PurchaseReconciler().create(CreatePurchase(header=header, lines=(line,)))


class TestDriftedSchema:
    """Real in-memory SQLite tables with an optional column removed."""

    def test_variant_reads_skip_missing_column(self, app, supplier, warehouse, rice):
        drop_column("product_variants", "alert_threshold")

        receive_kilos(supplier, warehouse, rice, "10")
        receive_kilos(supplier, warehouse, rice, "5")

        rows = db.session.execute(
            text("SELECT unit_type, stock FROM product_variants WHERE product_id = :pid"), {"pid": rice.id}
        ).all()
        assert [(row.unit_type, Decimal(str(row.stock))) for row in rows] == [("kilo", Decimal("15"))]
        stock = db.session.execute(text("SELECT stock FROM products WHERE id = :pid"), {"pid": rice.id}).scalar()
        assert Decimal(str(stock)) == Decimal("15")

    def test_warehouse_reads_skip_missing_column(self, app, supplier, warehouse, rice):
        drop_column("warehouse_stock", "cost_price")

        receive_kilos(supplier, warehouse, rice, "10")
        receive_kilos(supplier, warehouse, rice, "4")

        qty = db.session.execute(
            text("SELECT quantity_in_stock FROM warehouse_stock WHERE product_id = :pid"), {"pid": rice.id}
        ).scalar()
        assert Decimal(str(qty)) == Decimal("14")

    def test_skipped_column_raises_on_access(self, app, rice):
        drop_column("product_variants", "alert_threshold")
        db.session.execute(
            text("INSERT INTO product_variants (product_id, unit_type, stock) VALUES (:pid, 'kilo', 3)"),
            {"pid": rice.id},
        )

        (row,) = LedgerStore().read_variants(rice.id, lock=False)
        assert Decimal(str(row.stock)) == Decimal("3")
        with pytest.raises(InvalidRequestError):
            row.alert_threshold

    def test_second_missing_column_is_fatal(self, app, supplier, warehouse, rice):
        drop_column("product_variants", "alert_threshold")
        drop_column("product_variants", "is_default")

        with pytest.raises(MissingColumnError):
            receive_kilos(supplier, warehouse, rice, "10")
        assert Purchase.query.count() == 0

    def test_existence_check_reads_only_the_key(self, app, rice):
        drop_column("products", "is_active")
        assert LedgerStore().exists(Product, rice.id)
        assert not LedgerStore().exists(Product, rice.id + 100)
