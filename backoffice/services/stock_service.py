"""库存查询服务：商品库存视图、低库存预警、流水漂移检测"""
from sqlalchemy import func

from backoffice.extensions import db
from backoffice.models import Product, ProductVariant, WarehouseStock, StockMovement
from .lines import ZERO, to_decimal


class StockService:
    """库存查询服务"""

    @staticmethod
    def product_view(product):
        """商品汇总 + 包装规格 + 分仓库存"""
        data = product.to_dict()
        data['variants'] = [v.to_dict() for v in product.variants.order_by(ProductVariant.id.asc())]
        data['warehouses'] = [
            dict(record.to_dict(), warehouse_name=record.warehouse.name if record.warehouse else None)
            for record in product.warehouse_stock.order_by(WarehouseStock.id.asc())
        ]
        data['movement_balance'] = float(StockService.fold_movements(product.id))
        return data

    @staticmethod
    def fold_movements(product_id):
        """按流水累加得到的库存"""
        total = db.session.query(func.coalesce(func.sum(StockMovement.qty_change), 0)).filter(
            StockMovement.product_id == product_id
        ).scalar()
        return to_decimal(total, ZERO)

    @staticmethod
    def find_drift():
        """
        找出汇总库存与流水累加不一致的商品
        出现漂移说明有绕过对账器的写入，或并发写入丢失了更新
        """
        folded = dict(
            db.session.query(StockMovement.product_id, func.sum(StockMovement.qty_change))
            .group_by(StockMovement.product_id)
            .all()
        )
        drifts = []
        for product in Product.query.order_by(Product.id.asc()).all():
            expected = to_decimal(folded.get(product.id), ZERO)
            actual = to_decimal(product.stock, ZERO)
            if expected != actual:
                drifts.append({
                    'product_id': product.id,
                    'sku': product.sku,
                    'name': product.name,
                    'stock': float(actual),
                    'movement_balance': float(expected),
                    'difference': float(actual - expected),
                })
        return drifts

    @staticmethod
    def low_stock_variants(limit=None):
        """库存不高于预警值的启用规格 (预警值为 0 的规格不参与)"""
        query = ProductVariant.query.filter(
            ProductVariant.is_active.is_(True),
            ProductVariant.alert_threshold > 0,
            ProductVariant.stock <= ProductVariant.alert_threshold,
        ).order_by(ProductVariant.product_id.asc(), ProductVariant.id.asc())
        if limit:
            query = query.limit(limit)
        return [
            dict(v.to_dict(), product_name=v.product.name if v.product else None)
            for v in query.all()
        ]
