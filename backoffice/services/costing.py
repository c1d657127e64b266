"""商品汇总库存的加权平均成本"""
from .lines import ZERO, to_decimal


def next_cost(old_stock, old_cost, added_base_qty, unit_price):
    """
    加权平均成本
    new_stock = old_stock + added
    new_stock > 0 时: (old_stock × old_cost + added × unit_price) / new_stock
    否则保留 old_cost (避免除零，库存归零时保留最后已知成本)

    added 可以为负 (编辑时先扣除旧明细的贡献)。
    只用于商品汇总；分仓库存的 cost_price 直接覆盖为最近采购价。
    """
    old_stock = to_decimal(old_stock, ZERO)
    old_cost = to_decimal(old_cost, ZERO)
    added = to_decimal(added_base_qty, ZERO)
    price = to_decimal(unit_price, ZERO)

    new_stock = old_stock + added
    if new_stock > 0:
        return (old_stock * old_cost + added * price) / new_stock
    return old_cost
