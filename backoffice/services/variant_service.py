"""
规格同步服务

根据采购明细维护商品的包装规格行：
1. 采购单位对应的基础规格行 (kilo / carton / paquet / sac)
2. 整箱采购派生的单件规格 (unit)
3. 散装 + 整箱包装派生的整箱规格与单件规格
并在整箱类采购之后清理过期的散装小数行。
"""
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from flask import current_app

from backoffice.models import ProductVariant
from .lines import UNIT_KILO, UNIT_CARTON, UNIT_PAQUET, UNIT_SAC, PACKAGING_CARTON, ZERO, to_decimal
from .units import ONE, base_quantity, main_delta, multiplier

UNIT_UNIT = ProductVariant.UNIT_UNIT


@dataclass(frozen=True)
class VariantEffect:
    """对一个规格行的影响：库存变动量，以及要写入的进价与包含量 (为空表示不改)"""
    unit_type: str
    stock_delta: Decimal
    purchase_price: Optional[Decimal] = None
    quantity_contained: Optional[Decimal] = None

    def negated(self):
        # 冲回时只扣库存，不改写进价与包含量
        return VariantEffect(self.unit_type, -self.stock_delta)


def _fmt(value):
    return format(to_decimal(value, ZERO).normalize(), 'f')


def variant_name(unit_type, quantity_contained=None):
    """规格显示名"""
    if unit_type == UNIT_CARTON:
        return f'Carton x{_fmt(quantity_contained or ONE)}'
    if unit_type == UNIT_PAQUET:
        return f'Paquet {_fmt(quantity_contained or ONE)}kg'
    if unit_type == UNIT_SAC:
        return f'Sac {_fmt(quantity_contained or ONE)}kg'
    if unit_type == UNIT_UNIT:
        return 'Unit'
    return 'Kilo'


def base_contained(line):
    """基础规格行的 quantity_contained：整箱为箱规，袋装为单重，散装为 1"""
    if line.unit_type == UNIT_CARTON:
        return multiplier(line.units_per_carton)
    if line.unit_type in (UNIT_PAQUET, UNIT_SAC):
        return multiplier(line.weight_per_unit)
    return ONE


def has_carton_packaging(line):
    """散装采购但按整箱包装 (箱规与单重都已填写)"""
    return (
        line.unit_type == UNIT_KILO
        and line.packaging_mode == PACKAGING_CARTON
        and bool(line.units_per_carton) and line.units_per_carton > 0
        and line.weight_per_unit is not None and line.weight_per_unit > 0
    )


def purges_stale_rows(line):
    """该明细写入后是否需要清理过期的散装小数行"""
    if line.unit_type == UNIT_CARTON:
        return multiplier(line.units_per_carton) > 1
    return has_carton_packaging(line)


def line_effects(line):
    """一行明细对各规格行的 (正向) 影响"""
    base = base_quantity(line)
    if base <= 0:
        return []

    price = to_decimal(line.unit_price, ZERO)
    effects = [VariantEffect(line.unit_type, main_delta(line), price, base_contained(line))]

    if line.unit_type == UNIT_CARTON:
        units_per_carton = multiplier(line.units_per_carton)
        if units_per_carton > 1:
            effects.append(VariantEffect(
                UNIT_UNIT, line.quantity * units_per_carton, price / units_per_carton, ONE
            ))
    elif has_carton_packaging(line):
        units_per_carton = Decimal(line.units_per_carton)
        weight = line.weight_per_unit
        carton_weight = units_per_carton * weight
        effects.append(VariantEffect(UNIT_CARTON, base / carton_weight, price * carton_weight, units_per_carton))
        effects.append(VariantEffect(UNIT_UNIT, base / weight, price * weight, ONE))
    return effects


def net_effects(removed, added):
    """
    合并旧明细的冲回与新明细的写入，按规格类型求净变动。
    单位类型变化时，旧类型只剩负向变动，新类型只剩正向变动。
    """
    combined = OrderedDict()
    for effect in removed:
        current = combined.get(effect.unit_type, VariantEffect(effect.unit_type, ZERO))
        combined[effect.unit_type] = VariantEffect(effect.unit_type, current.stock_delta - effect.stock_delta)
    for effect in added:
        current = combined.get(effect.unit_type, VariantEffect(effect.unit_type, ZERO))
        combined[effect.unit_type] = VariantEffect(
            effect.unit_type,
            current.stock_delta + effect.stock_delta,
            effect.purchase_price,
            effect.quantity_contained,
        )
    return list(combined.values())


class VariantSynthesizer:
    """规格同步器"""

    def __init__(self, store):
        self.store = store

    def apply_line(self, line, sign=1):
        """单行写入 (sign=1) 或冲回 (sign=-1)"""
        effects = line_effects(line)
        if sign < 0:
            effects = [effect.negated() for effect in effects]
        self.apply(line.product_id, line.primary_variant_id, effects, purge=sign > 0 and purges_stale_rows(line))

    def apply_edit(self, old_line, new_line):
        """编辑：扣除旧明细贡献，加入新明细贡献"""
        removed = line_effects(old_line) if old_line is not None else []
        added = line_effects(new_line) if new_line is not None else []
        line = new_line or old_line
        purge = new_line is not None and purges_stale_rows(new_line)
        self.apply(line.product_id, line.primary_variant_id, net_effects(removed, added), purge=purge)

    def apply(self, product_id, primary_variant_id, effects, purge=False):
        for effect in effects:
            if effect.stock_delta == 0 and effect.purchase_price is None:
                continue
            row = self.find_base_row(product_id, primary_variant_id, effect.unit_type, skip_stale=purge)
            if row is not None:
                self._update_row(row, effect)
            elif effect.stock_delta > 0:
                self._insert_row(product_id, primary_variant_id, effect)
        if purge:
            self.purge_stale(product_id, primary_variant_id)

    def find_base_row(self, product_id, primary_variant_id, unit_type, skip_stale=False):
        """
        查找 (商品, 规格类型, 主规格) 的基础行。
        kilo 类型只认 quantity_contained 为空或 ≤1 的行，优先取恰好为 1 (或为空) 的行。
        skip_stale: 本次处理之后会清理小数行时，不把它们当作基础行
        """
        rows = self.store.read_variants(product_id, primary_variant_id, unit_type)
        if unit_type != UNIT_KILO:
            return rows[0] if rows else None
        candidates = [r for r in rows if r.quantity_contained is None or r.quantity_contained <= 1]
        if skip_stale:
            candidates = [r for r in candidates if not r.is_stale_derived]
        candidates.sort(key=lambda r: 0 if r.quantity_contained in (None, ONE) else 1)
        return candidates[0] if candidates else None

    def _update_row(self, row, effect):
        payload = {'stock': max(ZERO, to_decimal(row.stock, ZERO) + effect.stock_delta)}
        if effect.purchase_price is not None:
            payload['purchase_price'] = effect.purchase_price
        if effect.quantity_contained is not None:
            payload['quantity_contained'] = effect.quantity_contained
        self.store.write_variant(payload, variant_id=row.id)

    def _insert_row(self, product_id, primary_variant_id, effect):
        is_first = self.store.count_variants(product_id) == 0
        payload = {
            'product_id': product_id,
            'primary_variant_id': primary_variant_id,
            'variant_name': variant_name(effect.unit_type, effect.quantity_contained),
            'unit_type': effect.unit_type,
            'quantity_contained': effect.quantity_contained,
            'purchase_price': effect.purchase_price if effect.purchase_price is not None else ZERO,
            'stock': effect.stock_delta,
            'alert_threshold': ZERO,
            'is_active': True,
            'is_default': is_first,
        }
        variant_id = self.store.write_variant(payload)
        current_app.logger.info(
            f'新建规格 #{variant_id}: 商品 {product_id} {payload["variant_name"]} 库存 {effect.stock_delta}'
        )
        return variant_id

    def purge_stale(self, product_id, primary_variant_id):
        """删除过期的散装小数行 (kilo 且 0 < quantity_contained < 1)"""
        purged = 0
        for row in self.store.read_variants(product_id, primary_variant_id, UNIT_KILO):
            if row.is_stale_derived:
                self.store.delete_variant(row.id)
                purged += 1
        if purged:
            current_app.logger.info(f'清理商品 {product_id} 的 {purged} 个过期散装规格')
        return purged
