"""
采购对账服务

负责采购单的创建、编辑、收货、取消、删除与付款，
并把每行明细的库存影响依次写入分仓库存、商品汇总 (加权平均成本) 与包装规格。

状态机：pending -> received (影响库存)，pending -> cancelled。
received 与 cancelled 对库存而言是终态；编辑已收货的采购单只按差额调整库存。

事务：RECONCILE_ATOMIC=True 时整张单据一次提交，出错全部回滚；
为 False 时逐行提交，中途失败抛出 PartialReconciliationError，已提交的行不会回滚。
"""
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from flask import current_app

from backoffice.exceptions import ValidationError, NotFound, PartialReconciliationError
from backoffice.models import Purchase, Product, Supplier, Warehouse, StockMovement
from .costing import next_cost
from .ledger_store import LedgerStore
from .lines import (
    PurchaseLine, merge_lines, to_decimal, ZERO,
    UNIT_TYPES, UNIT_CARTON, UNIT_KILO, PACKAGING_MODES, PACKAGING_CARTON, PACKAGING_SACHET,
)
from .units import base_quantity, base_unit_cost
from .variant_service import VariantSynthesizer
from .warehouse_ledger import WarehouseLedger

HUNDRED = Decimal('100')

STATUSES = (Purchase.STATUS_PENDING, Purchase.STATUS_RECEIVED, Purchase.STATUS_CANCELLED)

# 允许的状态迁移 (旧状态 -> 新状态)
TRANSITIONS = {
    Purchase.STATUS_PENDING: {Purchase.STATUS_PENDING, Purchase.STATUS_RECEIVED, Purchase.STATUS_CANCELLED},
    Purchase.STATUS_RECEIVED: {Purchase.STATUS_RECEIVED},
    Purchase.STATUS_CANCELLED: {Purchase.STATUS_CANCELLED},
}

COST_POLICY_RESET = 'reset'
COST_POLICY_KEEP = 'keep'


# ----------------------------------------------------------------------
# 请求对象 (不可变)
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class PurchaseHeader:
    """采购单表头"""
    supplier_id: Optional[int]
    warehouse_id: Optional[int]
    status: str = Purchase.STATUS_RECEIVED
    tax_rate: Decimal = ZERO
    payment_type: str = 'cash'
    paid_amount: Optional[Decimal] = None
    purchase_date: Optional[date] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class CreatePurchase:
    header: PurchaseHeader
    lines: Tuple[PurchaseLine, ...]


@dataclass(frozen=True)
class EditPurchase:
    """编辑：旧状态从存储读取，header / lines 为编辑后的完整内容"""
    purchase_id: int
    header: PurchaseHeader
    lines: Tuple[PurchaseLine, ...]


@dataclass(frozen=True)
class DeletePurchase:
    purchase_id: int


# ----------------------------------------------------------------------
# 金额
# ----------------------------------------------------------------------

def payment_fields(total, paid):
    """已付 / 未付 / 付款状态"""
    remaining = max(ZERO, total - paid)
    if paid >= total:
        status = Purchase.PAYMENT_PAID
    elif paid > 0:
        status = Purchase.PAYMENT_PARTIAL
    else:
        status = Purchase.PAYMENT_PENDING
    return {'paid_amount': paid, 'remaining_amount': remaining, 'payment_status': status}


def compute_totals(lines, tax_rate, payment_type, paid_amount=None):
    """
    采购单合计
    现金采购在未指定已付金额时视为全额付清
    """
    subtotal = sum((line.line_total for line in lines), ZERO)
    tax_rate = to_decimal(tax_rate, ZERO)
    tax_amount = subtotal * tax_rate / HUNDRED
    total = subtotal + tax_amount
    if paid_amount is None:
        paid = total if payment_type == 'cash' else ZERO
    else:
        paid = to_decimal(paid_amount, ZERO)
    totals = {
        'subtotal': subtotal,
        'tax_rate': tax_rate,
        'tax_amount': tax_amount,
        'total_amount': total,
    }
    totals.update(payment_fields(total, paid))
    return totals


def generate_purchase_number():
    """生成采购单号"""
    prefix = current_app.config.get('PURCHASE_NUMBER_PREFIX', 'ACH')
    date_str = datetime.now().strftime('%Y%m%d')
    random_str = uuid.uuid4().hex[:4].upper()
    return f"{prefix}-{date_str}-{random_str}"


def item_payload(line):
    data = line.to_dict()
    data['base_quantity'] = base_quantity(line)
    return data


# ----------------------------------------------------------------------
# 校验
# ----------------------------------------------------------------------

def validate_line(line, index):
    """单行明细校验，任何写库之前执行"""
    def fail(message, field):
        raise ValidationError(message, payload={'line': index, 'field': field})

    if not line.product_id:
        fail('请选择商品', 'product_id')
    if line.unit_type not in UNIT_TYPES:
        fail(f'不支持的采购单位: {line.unit_type}', 'unit_type')
    if line.packaging_mode not in PACKAGING_MODES:
        fail(f'不支持的包装方式: {line.packaging_mode}', 'packaging_mode')
    if line.unit_price < 0:
        fail('单价不能为负', 'unit_price')

    needs_carton_fields = line.unit_type == UNIT_CARTON or (
        line.unit_type == UNIT_KILO and line.packaging_mode == PACKAGING_CARTON
    )
    if needs_carton_fields:
        if not line.units_per_carton or line.units_per_carton <= 0:
            fail('请填写每箱件数', 'units_per_carton')
        if line.weight_per_unit is None or line.weight_per_unit <= 0:
            fail('请填写单件重量', 'weight_per_unit')
    if line.unit_type == UNIT_KILO and line.packaging_mode == PACKAGING_SACHET:
        if line.weight_per_unit is None or line.weight_per_unit <= 0:
            fail('请填写每袋重量', 'weight_per_unit')


def validate_header(header):
    if not header.supplier_id:
        raise ValidationError('请选择供应商', payload={'field': 'supplier_id'})
    if not header.warehouse_id:
        raise ValidationError('请选择仓库', payload={'field': 'warehouse_id'})
    if header.status not in STATUSES:
        raise ValidationError(f'无效的状态值: {header.status}', payload={'field': 'status'})
    if header.payment_type not in Purchase.PAYMENT_TYPES:
        raise ValidationError(f'无效的付款方式: {header.payment_type}', payload={'field': 'payment_type'})
    if to_decimal(header.tax_rate, ZERO) < 0:
        raise ValidationError('税率不能为负', payload={'field': 'tax_rate'})
    if header.paid_amount is not None and to_decimal(header.paid_amount, ZERO) < 0:
        raise ValidationError('已付金额不能为负', payload={'field': 'paid_amount'})


class PurchaseReconciler:
    """采购对账器"""

    def __init__(self, store=None, atomic=None, delete_cost_policy=None):
        self.store = store or LedgerStore()
        self.session = self.store.session
        self.ledger = WarehouseLedger(self.store)
        self.variants = VariantSynthesizer(self.store)
        config = current_app.config
        self.atomic = config.get('RECONCILE_ATOMIC', True) if atomic is None else atomic
        self.delete_cost_policy = delete_cost_policy or config.get('PURCHASE_DELETE_COST_POLICY', COST_POLICY_RESET)

    # ------------------------------------------------------------------
    # 对外操作
    # ------------------------------------------------------------------

    def create(self, request):
        """创建采购单；状态为 received 时逐行入库"""
        header = request.header
        lines = merge_lines(request.lines)
        self._validate(header, lines)

        purchase_number = generate_purchase_number()
        state = {}

        def write_header():
            payload = self._header_payload(header, lines, header.paid_amount)
            payload['purchase_number'] = purchase_number
            state['id'] = self.store.write_purchase(payload)
            self.store.replace_purchase_items(state['id'], [item_payload(line) for line in lines])

        steps = [('header', write_header)]
        if header.status == Purchase.STATUS_RECEIVED:
            for index, line in enumerate(lines):
                steps.append((index, self._bind(
                    self._receive_line, state, purchase_number, header.warehouse_id, line)))

        current_app.logger.info(f'创建采购单 {purchase_number}: {len(lines)} 行, 状态 {header.status}')
        self._execute(purchase_number, steps)
        return self.store.read_purchase(state['id'])

    def edit(self, request):
        """
        编辑采购单
        已收货 -> 已收货：按 (商品, 主规格) 匹配新旧明细，只写入差额；
        待收货 -> 已收货：视为收货，整单入库；
        其余迁移不影响库存。
        """
        purchase = self._load(request.purchase_id)
        header = request.header
        new_lines = merge_lines(request.lines)
        self._validate(header, new_lines)

        old_status = purchase.status
        if header.status not in TRANSITIONS.get(old_status, ()):
            raise ValidationError(
                f'采购单状态不允许从 {old_status} 变更为 {header.status}',
                payload={'field': 'status'}
            )

        old_lines = merge_lines(PurchaseLine.from_model(item) for item in self.store.read_purchase_items(purchase.id))
        old_warehouse_id = purchase.warehouse_id
        paid = header.paid_amount if header.paid_amount is not None else to_decimal(purchase.paid_amount, ZERO)
        state = {'id': purchase.id}
        reference = purchase.purchase_number

        def write_header():
            self.store.write_purchase(self._header_payload(header, new_lines, paid), purchase_id=purchase.id)
            self.store.replace_purchase_items(purchase.id, [item_payload(line) for line in new_lines])

        steps = [('header', write_header)]
        if old_status == Purchase.STATUS_RECEIVED:
            old_by_key = {line.key: line for line in old_lines}
            new_by_key = {line.key: line for line in new_lines}
            keys = list(new_by_key) + [key for key in old_by_key if key not in new_by_key]
            for index, key in enumerate(keys):
                old_line, new_line = old_by_key.get(key), new_by_key.get(key)
                if old_line == new_line and old_warehouse_id == header.warehouse_id:
                    continue
                steps.append((index, self._bind(
                    self._edit_line, state, reference, old_warehouse_id, header.warehouse_id, old_line, new_line)))
        elif header.status == Purchase.STATUS_RECEIVED:
            for index, line in enumerate(new_lines):
                steps.append((index, self._bind(
                    self._receive_line, state, reference, header.warehouse_id, line)))

        current_app.logger.info(f'编辑采购单 {reference}: {old_status} -> {header.status}, {len(new_lines)} 行')
        self._execute(reference, steps)
        return self.store.read_purchase(purchase.id)

    def delete(self, request):
        """删除采购单；已收货的单据先逐行冲回库存 (各记录以 0 为下限)"""
        purchase = self._load(request.purchase_id)
        reference = purchase.purchase_number
        state = {'id': purchase.id}
        lines = [PurchaseLine.from_model(item) for item in self.store.read_purchase_items(purchase.id)]

        steps = []
        if purchase.status == Purchase.STATUS_RECEIVED:
            for index, line in enumerate(lines):
                steps.append((index, self._bind(
                    self._reverse_line, state, reference, purchase.warehouse_id, line)))
        steps.append(('delete', lambda: self.store.delete_purchase(purchase.id)))

        current_app.logger.info(f'删除采购单 {reference}: {len(lines)} 行, 状态 {purchase.status}')
        self._execute(reference, steps)

    def receive(self, purchase_id):
        """收货：pending -> received"""
        return self._change_status(purchase_id, Purchase.STATUS_RECEIVED)

    def cancel(self, purchase_id):
        """取消：pending -> cancelled"""
        return self._change_status(purchase_id, Purchase.STATUS_CANCELLED)

    def add_payment(self, purchase_id, amount, payment_method='cash', payment_date=None, notes=None):
        """登记供应商付款并重算未付金额与付款状态"""
        purchase = self._load(purchase_id)
        amount = to_decimal(amount, ZERO)
        if amount <= 0:
            raise ValidationError('付款金额必须大于0', payload={'field': 'amount'})
        if payment_method not in Purchase.PAYMENT_TYPES:
            raise ValidationError(f'无效的付款方式: {payment_method}', payload={'field': 'payment_method'})

        total = to_decimal(purchase.total_amount, ZERO)
        paid = to_decimal(purchase.paid_amount, ZERO) + amount

        def write():
            payment = {
                'purchase_id': purchase.id,
                'amount': amount,
                'payment_method': payment_method,
                'notes': notes,
            }
            if payment_date:
                payment['payment_date'] = payment_date
            self.store.add_payment(payment)
            self.store.write_purchase(payment_fields(total, paid), purchase_id=purchase.id)

        self._execute(purchase.purchase_number, [('payment', write)])
        return self.store.read_purchase(purchase.id)

    # ------------------------------------------------------------------
    # 单行库存处理
    # ------------------------------------------------------------------

    def _receive_line(self, state, reference, warehouse_id, line):
        """入库：分仓 +base，商品加权平均成本与库存，规格同步"""
        base = base_quantity(line)
        self.ledger.upsert(line.product_id, line.primary_variant_id, warehouse_id, base, line.unit_price)

        product = self._product(line.product_id)
        cost = next_cost(product.stock, product.cost_price, base, base_unit_cost(line))
        self._move_product(product, base, cost, StockMovement.TYPE_IN, state, reference, warehouse_id, line)

        self.variants.apply_line(line)

    def _edit_line(self, state, reference, old_warehouse_id, new_warehouse_id, old_line, new_line):
        """编辑：先扣除旧明细贡献，再加入新明细贡献"""
        line = new_line or old_line
        old_base = base_quantity(old_line) if old_line is not None else ZERO
        new_base = base_quantity(new_line) if new_line is not None else ZERO

        # 分仓库存
        if old_warehouse_id == new_warehouse_id and old_warehouse_id is not None:
            self.ledger.upsert(
                line.product_id, line.primary_variant_id, new_warehouse_id, new_base - old_base,
                new_line.unit_price if new_line is not None else None,
            )
        else:
            if old_line is not None:
                self._release_warehouse(old_line, old_warehouse_id, old_base)
            if new_line is not None:
                self.ledger.upsert(
                    line.product_id, line.primary_variant_id, new_warehouse_id, new_base, new_line.unit_price
                )

        # 商品汇总：先移除旧贡献再加入新贡献，成本与库存按同一个中间库存计算
        product = self._product(line.product_id)
        stock = to_decimal(product.stock, ZERO)
        cost = to_decimal(product.cost_price, ZERO)
        if old_line is not None:
            cost = next_cost(stock, cost, -old_base, base_unit_cost(old_line))
            stock = max(ZERO, stock - old_base)
        if new_line is not None:
            cost = next_cost(stock, cost, new_base, base_unit_cost(new_line))
            stock += new_base
        delta = stock - to_decimal(product.stock, ZERO)
        self._move_product(product, delta, cost, StockMovement.TYPE_ADJUST,
                           state, reference, new_warehouse_id, line)

        # 规格 (含单位类型变化)
        self.variants.apply_edit(old_line, new_line)

    def _reverse_line(self, state, reference, warehouse_id, line):
        """删除：分仓、商品、规格各自扣减，以 0 为下限"""
        base = base_quantity(line)
        self._release_warehouse(line, warehouse_id, base)

        product = self._product(line.product_id)
        if self.delete_cost_policy == COST_POLICY_KEEP:
            cost = to_decimal(product.cost_price, ZERO)
        else:
            cost = ZERO
        self._move_product(product, -base, cost, StockMovement.TYPE_OUT, state, reference, warehouse_id, line)

        self.variants.apply_line(line, sign=-1)

    def _release_warehouse(self, line, warehouse_id, amount):
        if warehouse_id is None:
            # 旧单据未记录仓库：从该商品所有分仓记录中扣减
            self.ledger.release_everywhere(line.product_id, line.primary_variant_id, amount)
        else:
            self.ledger.upsert(line.product_id, line.primary_variant_id, warehouse_id, -amount)

    def _move_product(self, product, delta, cost, move_type, state, reference, warehouse_id, line):
        """写入商品汇总库存 (以 0 为下限) 与成本，并追加库存流水"""
        old_stock = to_decimal(product.stock, ZERO)
        new_stock = max(ZERO, old_stock + delta)
        self.store.write_product(product.id, {'stock': new_stock, 'cost_price': cost})

        applied = new_stock - old_stock
        if applied != 0:
            self.store.record_movement({
                'reference': reference,
                'move_type': move_type,
                'product_id': product.id,
                'primary_variant_id': line.primary_variant_id,
                'warehouse_id': warehouse_id,
                'purchase_id': state.get('id'),
                'qty_change': applied,
                'balance_after': new_stock,
                'remark': f'{line.unit_type} x {line.quantity}',
            })

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------

    @staticmethod
    def _bind(func, *args):
        return lambda: func(*args)

    def _execute(self, reference, steps):
        """
        依次执行步骤。
        原子模式：全部成功后一次提交，任何异常回滚并原样抛出。
        逐行模式：每步提交；首个步骤之后的失败抛出 PartialReconciliationError。
        """
        applied = []
        for label, step in steps:
            try:
                step()
                if not self.atomic:
                    self.session.commit()
            except Exception as exc:
                self.session.rollback()
                if self.atomic or not applied:
                    current_app.logger.error(f'单据 {reference} 处理失败，已回滚: {exc}')
                    raise
                applied_lines = [label_ for label_ in applied if isinstance(label_, int)]
                failed_line = label if isinstance(label, int) else None
                current_app.logger.error(
                    f'单据 {reference} 对账中断: 已写入明细 {applied_lines}, 失败明细 {failed_line}: {exc}'
                )
                raise PartialReconciliationError(
                    f'单据 {reference} 部分处理成功，请人工核对商品与规格库存',
                    applied_lines=applied_lines,
                    failed_line=failed_line,
                    cause=exc,
                ) from exc
            applied.append(label)
        self.session.commit()

    def _validate(self, header, lines):
        validate_header(header)
        if not lines:
            raise ValidationError('请添加采购商品', payload={'field': 'items'})
        for index, line in enumerate(lines):
            validate_line(line, index)

        if not self.store.exists(Supplier, header.supplier_id):
            raise ValidationError('供应商不存在', payload={'field': 'supplier_id'})
        if not self.store.exists(Warehouse, header.warehouse_id):
            raise ValidationError('仓库不存在', payload={'field': 'warehouse_id'})
        for index, line in enumerate(lines):
            if not self.store.exists(Product, line.product_id):
                raise ValidationError(f'商品 {line.product_id} 不存在',
                                      payload={'line': index, 'field': 'product_id'})

    def _header_payload(self, header, lines, paid_amount):
        payload = {
            'supplier_id': header.supplier_id,
            'warehouse_id': header.warehouse_id,
            'status': header.status,
            'payment_type': header.payment_type,
            'notes': header.notes,
        }
        if header.purchase_date:
            payload['purchase_date'] = header.purchase_date
        payload.update(compute_totals(lines, header.tax_rate, header.payment_type, paid_amount))
        return payload

    def _load(self, purchase_id):
        purchase = self.store.read_purchase(purchase_id, lock=True)
        if purchase is None:
            raise NotFound('采购单不存在', payload={'purchase_id': purchase_id})
        return purchase

    def _product(self, product_id):
        product = self.store.read_product(product_id)
        if product is None:
            raise NotFound(f'商品 {product_id} 不存在', payload={'product_id': product_id})
        return product

    def _change_status(self, purchase_id, status):
        purchase = self._load(purchase_id)
        items = self.store.read_purchase_items(purchase.id)
        header = PurchaseHeader(
            supplier_id=purchase.supplier_id,
            warehouse_id=purchase.warehouse_id,
            status=status,
            tax_rate=to_decimal(purchase.tax_rate, ZERO),
            payment_type=purchase.payment_type or 'cash',
            paid_amount=to_decimal(purchase.paid_amount, ZERO),
            purchase_date=purchase.purchase_date,
            notes=purchase.notes,
        )
        lines = tuple(PurchaseLine.from_model(item) for item in items)
        return self.edit(EditPurchase(purchase_id=purchase.id, header=header, lines=lines))
