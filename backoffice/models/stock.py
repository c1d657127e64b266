from backoffice.extensions import db
from .base import BaseModel, Quantity, Money


class Warehouse(BaseModel):
    """仓库"""
    __tablename__ = 'warehouses'
    name = db.Column(db.String(64))
    location = db.Column(db.String(128))
    is_active = db.Column(db.Boolean, default=True)


class WarehouseStock(BaseModel):
    """
    分仓库存表 (Product [+ PrimaryVariant] <-> Warehouse)
    cost_price 为最近一次采购的单价快照，不做加权平均
    """
    __tablename__ = 'warehouse_stock'

    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), index=True, nullable=False)
    primary_variant_id = db.Column(db.Integer, db.ForeignKey('product_primary_variants.id'), index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey('warehouses.id'), index=True, nullable=False)

    quantity_in_stock = db.Column(Quantity, default=0, nullable=False)
    cost_price = db.Column(Money, default=0)

    product = db.relationship('Product', backref=db.backref('warehouse_stock', lazy='dynamic'))
    warehouse = db.relationship('Warehouse', backref=db.backref('stock_records', lazy='dynamic'))


class StockMovement(BaseModel):
    """
    库存流水 (只追加)
    每次商品汇总库存变动都记录实际生效的变动量，用于审计与漂移检测
    """
    __tablename__ = 'stock_movements'

    TYPE_IN = 'inbound'      # 采购入库
    TYPE_OUT = 'outbound'    # 删除采购单冲回
    TYPE_ADJUST = 'adjust'   # 编辑采购单差额调整
    TYPE_OPENING = 'opening' # 期初库存

    reference = db.Column(db.String(32), index=True)  # 关联的单据号
    move_type = db.Column(db.String(20))

    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), index=True)
    primary_variant_id = db.Column(db.Integer)
    warehouse_id = db.Column(db.Integer, db.ForeignKey('warehouses.id'))
    purchase_id = db.Column(db.Integer)

    qty_change = db.Column(Quantity)     # 实际变动量 (已计入 0 下限)
    balance_after = db.Column(Quantity)  # 变动后结余 (快照)
    remark = db.Column(db.String(255))
