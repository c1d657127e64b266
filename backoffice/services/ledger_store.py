"""
账务存储适配器

对账引擎只通过本模块读写商品、规格、分仓库存、采购单。
读取使用行锁 (SELECT ... FOR UPDATE，SQLite 下为空操作)，写入使用显式字段集，
以便在表结构落后于代码时去掉缺失字段后重试一次；读取同样只重试一次，重试时不再查询缺失字段。
数据库错误在 translate_store_error 中统一转换为带类型的异常。
"""
import re
from contextlib import nullcontext

from flask import current_app
from sqlalchemy import delete, func, insert, update
from sqlalchemy.orm import defer
from sqlalchemy.exc import SQLAlchemyError

from backoffice.extensions import db
from backoffice.exceptions import StoreError, MissingColumnError, GeneratedColumnError
from backoffice.models import (
    Product, ProductVariant, WarehouseStock, StockMovement, Purchase, PurchaseItem, PurchasePayment
)

# PostgreSQL SQLSTATE
UNDEFINED_COLUMN = '42703'
GENERATED_ALWAYS = '428C9'

_COLUMN_PATTERNS = (
    re.compile(r'has no column named "?(\w+)"?'),                       # SQLite INSERT
    re.compile(r'no such column: "?(?:\w+\.)?(\w+)"?'),                # SQLite UPDATE / SELECT
    re.compile(r'column "(\w+)" of relation "\w+" does not exist'),     # PostgreSQL
    re.compile(r'column (?:\w+\.)?"?(\w+)"? does not exist'),           # PostgreSQL SELECT
    re.compile(r'into column "(\w+)"'),                                 # PostgreSQL 生成列 INSERT
    re.compile(r'column "(\w+)" can only be updated to DEFAULT'),       # PostgreSQL 生成列 UPDATE
    re.compile(r'cannot (?:insert|update) .*?generated column "?(\w+)"?', re.IGNORECASE),  # SQLite 生成列
    re.compile(r"Could not find the '(\w+)' column"),                   # PostgREST 结构缓存
)


def _column_from_message(message, payload=None):
    for pattern in _COLUMN_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    # 兜底：消息中出现的载荷字段名
    for name in payload or ():
        if re.search(rf'\b{re.escape(name)}\b', message):
            return name
    return None


def translate_store_error(exc, payload=None):
    """
    把 SQLAlchemy / DBAPI 异常转换为带类型的存储异常
    - 缺失列   -> MissingColumnError(column)
    - 生成列   -> GeneratedColumnError(column)
    - 其他     -> StoreError
    """
    orig = getattr(exc, 'orig', None) or exc
    code = getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None) or getattr(orig, 'code', None)
    message = str(orig)
    lowered = message.lower()

    is_generated = (
        code == GENERATED_ALWAYS
        or 'generated column' in lowered
        or 'can only be updated to default' in lowered
        or ('cannot insert' in lowered and 'into column' in lowered)
    )
    is_missing = (
        code == UNDEFINED_COLUMN
        or 'no such column' in lowered
        or 'has no column named' in lowered
        or ('column' in lowered and 'does not exist' in lowered)
        or ('could not find the' in lowered and 'column' in lowered)
    )

    if is_generated or is_missing:
        column = _column_from_message(message, payload)
        if column:
            if is_generated:
                return GeneratedColumnError(column, message)
            return MissingColumnError(column, message)
    return StoreError(message)


class LedgerStore:
    """账务存储：对账引擎的唯一数据访问入口"""

    def __init__(self, session=None):
        self.session = session or db.session

    # ------------------------------------------------------------------
    # 通用
    # ------------------------------------------------------------------

    def _attempt(self):
        """
        单次读写的隔离范围。
        PostgreSQL 中语句失败会使整个事务失效，用 SAVEPOINT 隔离；
        pysqlite 的 SAVEPOINT 行为不可靠，且 SQLite 的缺失列错误发生在语句准备阶段，直接执行即可。
        """
        if self.session.get_bind().dialect.name == 'sqlite':
            return nullcontext()
        return self.session.begin_nested()

    def _write(self, statement, payload):
        """
        执行写入。遇到缺失列 / 生成列错误时去掉该字段重试一次，
        第二次失败或其他错误直接抛出。
        """
        payload = dict(payload)
        for attempt in (1, 2):
            try:
                with self._attempt():
                    return self.session.execute(statement.values(**payload))
            except SQLAlchemyError as exc:
                error = translate_store_error(exc, payload)
                retryable = isinstance(error, (MissingColumnError, GeneratedColumnError)) \
                    and error.column in payload
                if attempt == 1 and retryable:
                    current_app.logger.warning(
                        f'存储结构不一致，去掉字段 {error.column} 后重试: {error.message}'
                    )
                    payload.pop(error.column)
                    continue
                raise error from exc

    def _execute(self, statement):
        try:
            return self.session.execute(statement)
        except SQLAlchemyError as exc:
            raise translate_store_error(exc) from exc

    def _select(self, query, lock, fetch):
        """
        执行实体查询。
        表中缺少某个映射字段时，把该字段从查询中去掉 (访问时报错而非再次查库) 后重试一次；
        第二次失败、缺失的不是该实体的字段或其他错误直接抛出。
        """
        entity = query.column_descriptions[0]['entity']
        for attempt in (1, 2):
            stmt = query.populate_existing()
            if lock:
                stmt = stmt.with_for_update()
            try:
                with self._attempt():
                    return fetch(stmt)
            except SQLAlchemyError as exc:
                error = translate_store_error(exc)
                retryable = isinstance(error, MissingColumnError) \
                    and error.column in entity.__table__.c \
                    and not entity.__table__.c[error.column].primary_key
                if attempt == 1 and retryable:
                    current_app.logger.warning(
                        f'存储结构不一致，读取 {entity.__tablename__} 时去掉字段 {error.column} 后重试'
                    )
                    query = query.options(defer(getattr(entity, error.column), raiseload=True))
                    continue
                raise error from exc

    def _first(self, query, lock):
        return self._select(query, lock, lambda stmt: stmt.first())

    def _all(self, query, lock):
        return self._select(query, lock, lambda stmt: stmt.all())

    def exists(self, model, object_id):
        """校验用：引用的供应商 / 仓库 / 商品是否存在 (只查主键，不受其他字段缺失影响)"""
        if object_id is None:
            return False
        try:
            return self.session.query(model.id).filter(model.id == object_id).first() is not None
        except SQLAlchemyError as exc:
            raise translate_store_error(exc) from exc

    @staticmethod
    def _match_primary_variant(column, primary_variant_id):
        if primary_variant_id is None:
            return column.is_(None)
        return column == primary_variant_id

    # ------------------------------------------------------------------
    # 商品
    # ------------------------------------------------------------------

    def read_product(self, product_id, lock=True):
        query = self.session.query(Product).filter(Product.id == product_id)
        return self._first(query, lock)

    def write_product(self, product_id, payload):
        table = Product.__table__
        self._write(update(table).where(table.c.id == product_id), payload)

    # ------------------------------------------------------------------
    # 规格
    # ------------------------------------------------------------------

    def read_variants(self, product_id, primary_variant_id=None, unit_type=None, lock=True):
        query = self.session.query(ProductVariant).filter(
            ProductVariant.product_id == product_id,
            self._match_primary_variant(ProductVariant.primary_variant_id, primary_variant_id),
        )
        if unit_type:
            query = query.filter(ProductVariant.unit_type == unit_type)
        return self._all(query.order_by(ProductVariant.id.asc()), lock)

    def count_variants(self, product_id):
        try:
            return self.session.query(func.count(ProductVariant.id)) \
                .filter(ProductVariant.product_id == product_id).scalar()
        except SQLAlchemyError as exc:
            raise translate_store_error(exc) from exc

    def write_variant(self, payload, variant_id=None):
        """新增 (variant_id 为空) 或更新规格，返回规格 ID"""
        table = ProductVariant.__table__
        if variant_id is None:
            result = self._write(insert(table), payload)
            return result.inserted_primary_key[0]
        self._write(update(table).where(table.c.id == variant_id), payload)
        return variant_id

    def delete_variant(self, variant_id):
        table = ProductVariant.__table__
        self._execute(delete(table).where(table.c.id == variant_id))

    # ------------------------------------------------------------------
    # 分仓库存
    # ------------------------------------------------------------------

    def read_warehouse_stock(self, product_id, warehouse_id, primary_variant_id=None, lock=True):
        query = self.session.query(WarehouseStock).filter(
            WarehouseStock.product_id == product_id,
            WarehouseStock.warehouse_id == warehouse_id,
            self._match_primary_variant(WarehouseStock.primary_variant_id, primary_variant_id),
        )
        return self._first(query, lock)

    def list_warehouse_stock(self, product_id, primary_variant_id=None, lock=True):
        query = self.session.query(WarehouseStock).filter(
            WarehouseStock.product_id == product_id,
            self._match_primary_variant(WarehouseStock.primary_variant_id, primary_variant_id),
        )
        return self._all(query.order_by(WarehouseStock.id.asc()), lock)

    def write_warehouse_stock(self, payload, record_id=None):
        table = WarehouseStock.__table__
        if record_id is None:
            result = self._write(insert(table), payload)
            return result.inserted_primary_key[0]
        self._write(update(table).where(table.c.id == record_id), payload)
        return record_id

    # ------------------------------------------------------------------
    # 库存流水
    # ------------------------------------------------------------------

    def record_movement(self, payload):
        self._write(insert(StockMovement.__table__), payload)

    # ------------------------------------------------------------------
    # 采购单
    # ------------------------------------------------------------------

    def read_purchase(self, purchase_id, lock=False):
        query = self.session.query(Purchase).filter(Purchase.id == purchase_id)
        return self._first(query, lock)

    def read_purchase_items(self, purchase_id):
        query = self.session.query(PurchaseItem).filter(PurchaseItem.purchase_id == purchase_id)
        return self._all(query.order_by(PurchaseItem.position.asc(), PurchaseItem.id.asc()), False)

    def write_purchase(self, payload, purchase_id=None):
        """新增或更新采购单表头，返回采购单 ID"""
        table = Purchase.__table__
        if purchase_id is None:
            result = self._write(insert(table), payload)
            return result.inserted_primary_key[0]
        self._write(update(table).where(table.c.id == purchase_id), payload)
        return purchase_id

    def replace_purchase_items(self, purchase_id, item_payloads):
        """整体替换采购单明细"""
        table = PurchaseItem.__table__
        self._execute(delete(table).where(table.c.purchase_id == purchase_id))
        for position, payload in enumerate(item_payloads):
            row = dict(payload, purchase_id=purchase_id, position=position)
            self._write(insert(table), row)

    def add_payment(self, payload):
        self._write(insert(PurchasePayment.__table__), payload)

    def delete_purchase(self, purchase_id):
        """删除采购单及其明细、付款记录"""
        for child in (PurchasePayment.__table__, PurchaseItem.__table__):
            self._execute(delete(child).where(child.c.purchase_id == purchase_id))
        table = Purchase.__table__
        self._execute(delete(table).where(table.c.id == purchase_id))
