"""采购明细值对象"""
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Optional

UNIT_KILO = 'kilo'
UNIT_CARTON = 'carton'
UNIT_PAQUET = 'paquet'
UNIT_SAC = 'sac'
UNIT_TYPES = (UNIT_KILO, UNIT_CARTON, UNIT_PAQUET, UNIT_SAC)

PACKAGING_NONE = 'none'
PACKAGING_CARTON = 'carton'
PACKAGING_SACHET = 'sachet'
PACKAGING_MODES = (PACKAGING_NONE, PACKAGING_CARTON, PACKAGING_SACHET)

ZERO = Decimal('0')


def to_decimal(value, default=None):
    """把 int / float / str 安全转换为 Decimal；空值返回 default"""
    if value is None or value == '':
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def to_int(value, default=None):
    if value is None or value == '':
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class PurchaseLine:
    """
    一行采购明细 (不可变)
    quantity 以采购单位计 (公斤数 / 箱数 / 袋数)，unit_price 为每采购单位价格
    """
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    unit_type: str = UNIT_KILO
    primary_variant_id: Optional[int] = None
    units_per_carton: Optional[int] = None
    weight_per_unit: Optional[Decimal] = None
    packaging_mode: str = PACKAGING_NONE

    @property
    def key(self):
        """明细匹配键：(product_id, primary_variant_id)"""
        return (self.product_id, self.primary_variant_id)

    @property
    def line_total(self):
        return self.quantity * self.unit_price

    @classmethod
    def from_dict(cls, data):
        return cls(
            product_id=to_int(data.get('product_id')),
            quantity=to_decimal(data.get('quantity'), ZERO),
            unit_price=to_decimal(data.get('unit_price'), ZERO),
            unit_type=data.get('unit_type') or UNIT_KILO,
            primary_variant_id=to_int(data.get('primary_variant_id')),
            units_per_carton=to_int(data.get('units_per_carton')),
            weight_per_unit=to_decimal(data.get('weight_per_unit')),
            packaging_mode=data.get('packaging_mode') or PACKAGING_NONE,
        )

    @classmethod
    def from_model(cls, item):
        """从 PurchaseItem 模型构建"""
        return cls(
            product_id=item.product_id,
            quantity=to_decimal(item.quantity, ZERO),
            unit_price=to_decimal(item.unit_price, ZERO),
            unit_type=item.unit_type or UNIT_KILO,
            primary_variant_id=item.primary_variant_id,
            units_per_carton=item.units_per_carton,
            weight_per_unit=to_decimal(item.weight_per_unit),
            packaging_mode=item.packaging_mode or PACKAGING_NONE,
        )

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'primary_variant_id': self.primary_variant_id,
            'quantity': self.quantity,
            'unit_type': self.unit_type,
            'units_per_carton': self.units_per_carton,
            'weight_per_unit': self.weight_per_unit,
            'packaging_mode': self.packaging_mode,
            'unit_price': self.unit_price,
            'line_total': self.line_total,
        }


def merge_lines(lines):
    """
    合并同键明细，并丢弃数量 ≤ 0 的行。
    同键的数量与金额累加，单价取 合计金额 / 合计数量，其余字段以后出现的行为准。
    """
    merged = {}
    order = []
    for line in lines:
        if line.quantity <= 0:
            continue
        existing = merged.get(line.key)
        if existing is None:
            merged[line.key] = line
            order.append(line.key)
            continue
        quantity = existing.quantity + line.quantity
        total = existing.line_total + line.line_total
        merged[line.key] = replace(line, quantity=quantity, unit_price=total / quantity)
    return [merged[key] for key in order]
