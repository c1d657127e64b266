from backoffice.extensions import db
from .base import BaseModel, Quantity, Money


class Supplier(BaseModel):
    """供应商"""
    __tablename__ = 'suppliers'

    name = db.Column(db.String(128), index=True)
    contact_person = db.Column(db.String(64))
    phone = db.Column(db.String(32))
    email = db.Column(db.String(128))
    address = db.Column(db.String(256))


class Product(BaseModel):
    """
    产品主表
    stock 为基础单位 (公斤/件) 的汇总库存，cost_price 为基础单位的加权平均成本
    """
    __tablename__ = 'products'

    sku = db.Column(db.String(64), unique=True, index=True)
    name = db.Column(db.String(128), index=True)

    stock = db.Column(Quantity, default=0, nullable=False)
    cost_price = db.Column(Money, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True)

    variants = db.relationship('ProductVariant', backref='product', lazy='dynamic')
    primary_variants = db.relationship('PrimaryVariant', backref='product', lazy='dynamic')


class PrimaryVariant(BaseModel):
    """主规格 (如口味、颜色)，包装规格挂在主规格之下"""
    __tablename__ = 'product_primary_variants'

    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), index=True)
    name = db.Column(db.String(128))


class ProductVariant(BaseModel):
    """
    包装规格 (散装公斤 / 整箱 / 单件 / 袋)
    quantity_contained: 一个规格单位包含的基础单位数量；kilo 类型 ≤1 (或空) 表示基础行
    stock: 以该规格单位计的库存
    """
    __tablename__ = 'product_variants'

    UNIT_KILO = 'kilo'
    UNIT_CARTON = 'carton'
    UNIT_PAQUET = 'paquet'
    UNIT_SAC = 'sac'
    UNIT_UNIT = 'unit'

    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), index=True, nullable=False)
    primary_variant_id = db.Column(db.Integer, db.ForeignKey('product_primary_variants.id'), index=True)

    variant_name = db.Column(db.String(64))
    unit_type = db.Column(db.String(16), index=True)
    quantity_contained = db.Column(Quantity)
    purchase_price = db.Column(Money, default=0)
    stock = db.Column(Quantity, default=0, nullable=False)

    alert_threshold = db.Column(Quantity, default=0)
    is_active = db.Column(db.Boolean, default=True)
    is_default = db.Column(db.Boolean, default=False)

    @property
    def is_stale_derived(self):
        """由整箱采购替代的散装小数行 (0 < quantity_contained < 1)"""
        if self.unit_type != self.UNIT_KILO or self.quantity_contained is None:
            return False
        return 0 < self.quantity_contained < 1
