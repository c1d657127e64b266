"""
采购单位换算
把 kilo / carton / paquet / sac 各种采购单位统一折算为商品的基础单位数量。
纯函数，无 I/O，不抛异常；数值合法性由调用方在提交前校验。
"""
from decimal import Decimal

from .lines import UNIT_KILO, UNIT_CARTON, UNIT_PAQUET, UNIT_SAC, ZERO, to_decimal

ONE = Decimal('1')


def multiplier(value):
    """箱规 / 单重：未设置或 ≤0 时按 1 处理"""
    value = to_decimal(value)
    if value is None or value <= 0:
        return ONE
    return value


def base_quantity(line):
    """
    计算一行明细的基础单位数量
    kilo:         quantity
    carton:       quantity × units_per_carton × weight_per_unit
    paquet / sac: quantity × weight_per_unit
    packaging_mode 不影响基础数量，只影响规格生成
    """
    quantity = to_decimal(line.quantity, ZERO)
    if quantity <= 0:
        return ZERO

    if line.unit_type == UNIT_CARTON:
        return quantity * multiplier(line.units_per_carton) * multiplier(line.weight_per_unit)
    if line.unit_type in (UNIT_PAQUET, UNIT_SAC):
        return quantity * multiplier(line.weight_per_unit)
    if line.unit_type == UNIT_KILO:
        return quantity
    # 未知单位按散装处理
    return quantity


def main_delta(line):
    """基础规格行的库存变动量：kilo 按基础数量，其余按采购单位件数"""
    if line.unit_type == UNIT_KILO:
        return base_quantity(line)
    quantity = to_decimal(line.quantity, ZERO)
    return quantity if quantity > 0 else ZERO


def base_unit_cost(line):
    """每基础单位的成本，供商品加权平均成本使用"""
    base = base_quantity(line)
    if base <= 0:
        return to_decimal(line.unit_price, ZERO)
    return to_decimal(line.quantity, ZERO) * to_decimal(line.unit_price, ZERO) / base
