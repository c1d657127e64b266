import os
from backoffice import create_app, db
from backoffice.models import (
    Supplier, Product, PrimaryVariant, ProductVariant,
    Warehouse, WarehouseStock, StockMovement,
    Purchase, PurchaseItem, PurchasePayment,
)
from backoffice.services.purchase_service import PurchaseReconciler

# 从环境变量获取配置模式
# 支持 FLASK_ENV 或 FLASK_CONFIG
config_name = os.getenv('FLASK_ENV') or os.getenv('FLASK_CONFIG') or 'default'
if config_name in ('development', 'dev'):
    config_name = 'development'

app = create_app(config_name)


@app.shell_context_processor
def make_shell_context():
    """
    配置 Flask Shell 上下文。
    允许在命令行中使用 'flask shell' 时自动导入 db 和模型。
    """
    return dict(
        db=db,
        app=app,
        Supplier=Supplier,
        Product=Product,
        PrimaryVariant=PrimaryVariant,
        ProductVariant=ProductVariant,
        Warehouse=Warehouse,
        WarehouseStock=WarehouseStock,
        StockMovement=StockMovement,
        Purchase=Purchase,
        PurchaseItem=PurchaseItem,
        PurchasePayment=PurchasePayment,
        PurchaseReconciler=PurchaseReconciler,
    )


if __name__ == '__main__':
    print("-------------------------------------------------------")
    print("   BACKOFFICE LEDGER STARTUP                           ")
    print("   Target: Localhost:5000                              ")
    print("-------------------------------------------------------")
    app.run(host='0.0.0.0', port=5000)
