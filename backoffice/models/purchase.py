"""采购管理模型"""
from datetime import date
from backoffice.extensions import db
from .base import BaseModel, Quantity, Money


class Purchase(BaseModel):
    """采购单"""
    __tablename__ = 'purchases'

    STATUS_PENDING = 'pending'      # 待收货
    STATUS_RECEIVED = 'received'    # 已收货 (影响库存)
    STATUS_CANCELLED = 'cancelled'  # 已取消

    PAYMENT_PENDING = 'pending'
    PAYMENT_PARTIAL = 'partial'
    PAYMENT_PAID = 'paid'

    PAYMENT_TYPES = ('cash', 'credit', 'transfer', 'check')

    purchase_number = db.Column(db.String(32), unique=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey('suppliers.id'))
    warehouse_id = db.Column(db.Integer, db.ForeignKey('warehouses.id'))
    purchase_date = db.Column(db.Date, default=date.today)

    status = db.Column(db.String(20), default=STATUS_RECEIVED, index=True)

    subtotal = db.Column(Money, default=0)
    tax_rate = db.Column(Money, default=0)
    tax_amount = db.Column(Money, default=0)
    total_amount = db.Column(Money, default=0)

    payment_type = db.Column(db.String(20), default='cash')
    paid_amount = db.Column(Money, default=0)
    remaining_amount = db.Column(Money, default=0)
    payment_status = db.Column(db.String(20), default=PAYMENT_PENDING)

    notes = db.Column(db.Text)

    supplier = db.relationship('Supplier')
    warehouse = db.relationship('Warehouse')
    items = db.relationship('PurchaseItem', backref='purchase', order_by='PurchaseItem.position',
                            cascade='all, delete-orphan')
    payments = db.relationship('PurchasePayment', backref='purchase', cascade='all, delete-orphan')

    def to_dict(self, with_items=True):
        data = super().to_dict()
        if with_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data


class PurchaseItem(BaseModel):
    """采购单明细"""
    __tablename__ = 'purchase_items'

    purchase_id = db.Column(db.Integer, db.ForeignKey('purchases.id'), index=True)
    position = db.Column(db.Integer, default=0)  # 明细顺序

    product_id = db.Column(db.Integer, db.ForeignKey('products.id'))
    primary_variant_id = db.Column(db.Integer, db.ForeignKey('product_primary_variants.id'))

    quantity = db.Column(Quantity)           # 采购单位数量
    unit_type = db.Column(db.String(16))     # kilo / carton / paquet / sac
    units_per_carton = db.Column(db.Integer)
    weight_per_unit = db.Column(Quantity)
    packaging_mode = db.Column(db.String(16), default='none')

    unit_price = db.Column(Money)            # 每采购单位价格
    line_total = db.Column(Money)
    base_quantity = db.Column(Quantity)      # 折算后的基础单位数量

    product = db.relationship('Product')


class PurchasePayment(BaseModel):
    """供应商付款记录"""
    __tablename__ = 'purchase_payments'

    purchase_id = db.Column(db.Integer, db.ForeignKey('purchases.id'), index=True)
    amount = db.Column(Money)
    payment_method = db.Column(db.String(20), default='cash')
    payment_date = db.Column(db.Date, default=date.today)
    notes = db.Column(db.Text)
