"""分仓库存账"""
from flask import current_app

from .lines import ZERO, to_decimal


class WarehouseLedger:
    """
    分仓库存：按 (商品, 仓库[, 主规格]) 累加数量。
    cost_price 每次直接覆盖为传入的采购单价 (最近采购价快照)，不做加权平均。
    非幂等：每行明细的变动量只能提交一次。
    """

    def __init__(self, store):
        self.store = store

    def upsert(self, product_id, primary_variant_id, warehouse_id, delta, cost_price=None):
        """
        累加库存变动
        :param delta: 基础单位的带符号变动量，结果不低于 0
        :param cost_price: 为 None 时不改动已有成本 (冲回场景)
        :return: 变动后的库存数量
        """
        delta = to_decimal(delta, ZERO)
        record = self.store.read_warehouse_stock(product_id, warehouse_id, primary_variant_id)

        if record is not None:
            quantity = max(ZERO, to_decimal(record.quantity_in_stock, ZERO) + delta)
            payload = {'quantity_in_stock': quantity}
            if cost_price is not None:
                payload['cost_price'] = cost_price
            self.store.write_warehouse_stock(payload, record_id=record.id)
            return quantity

        quantity = max(ZERO, delta)
        if delta < 0:
            current_app.logger.warning(
                f'仓库 {warehouse_id} 无商品 {product_id} 的库存记录，以 0 新建'
            )

        self.store.write_warehouse_stock({
            'product_id': product_id,
            'primary_variant_id': primary_variant_id,
            'warehouse_id': warehouse_id,
            'quantity_in_stock': quantity,
            'cost_price': cost_price if cost_price is not None else ZERO,
        })
        return quantity

    def release_everywhere(self, product_id, primary_variant_id, amount):
        """
        从该商品的所有分仓记录中各自扣减 amount (各自以 0 为下限)。
        用于没有记录仓库的旧采购单。
        """
        amount = to_decimal(amount, ZERO)
        records = self.store.list_warehouse_stock(product_id, primary_variant_id)
        for record in records:
            quantity = max(ZERO, to_decimal(record.quantity_in_stock, ZERO) - amount)
            self.store.write_warehouse_stock({'quantity_in_stock': quantity}, record_id=record.id)
        return len(records)
