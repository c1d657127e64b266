# 按照依赖顺序导入
from .base import BaseModel
from .catalog import Supplier, Product, PrimaryVariant, ProductVariant
from .stock import Warehouse, WarehouseStock, StockMovement

# 采购管理
from .purchase import Purchase, PurchaseItem, PurchasePayment
