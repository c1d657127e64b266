import click
import random
from decimal import Decimal
from flask.cli import with_appcontext
from sqlalchemy import inspect, text
from backoffice.extensions import db
from backoffice.models import (
    Supplier, Product, ProductVariant, Warehouse, StockMovement, Purchase
)
from backoffice.services.lines import PurchaseLine
from backoffice.services.purchase_service import PurchaseReconciler, PurchaseHeader, CreatePurchase
from backoffice.services.stock_service import StockService
from backoffice.utils.fake_gen import fake


@click.command('status')
@with_appcontext
def status():
    """
    [验证指令] 查看当前数据库中的数据统计。
    """
    click.echo(click.style('📊 后台数据库状态:', fg='cyan', bold=True))

    try:
        p_count = Product.query.count()
        v_count = ProductVariant.query.count()
        w_count = Warehouse.query.count()
        po_count = Purchase.query.count()
        m_count = StockMovement.query.count()

        click.echo(f" - 商品 (Products): \t{p_count}")
        click.echo(f" - 规格 (Variants): \t{v_count}")
        click.echo(f" - 仓库 (Warehouses): \t{w_count}")
        click.echo(f" - 采购单 (Purchases): \t{po_count}")
        click.echo(f" - 库存流水 (Movements): \t{m_count}")

        if p_count > 0:
            click.echo(click.style('✔ 数据库连接正常，数据已存在。', fg='green'))
        else:
            click.echo(click.style('⚠ 数据库为空，请运行 flask forge 生成数据。', fg='yellow'))

    except Exception as e:
        click.echo(click.style(f'✘ 数据库读取失败: {str(e)}', fg='red'))
        click.echo("请检查是否执行了 'flask db upgrade' 或 'flask fix-schema'")


@click.command('forge')
@click.option('--products', default=20, help='商品数量 (默认20)')
@click.option('--purchases', default=10, help='采购单数量 (默认10)')
@with_appcontext
def forge(products, purchases):
    """
    [演示数据] 重建数据库并生成供应商、仓库、商品与采购单。
    警告：这将清除数据库中的现有数据！
    """
    click.echo(click.style('⚡ 正在生成演示数据...', fg='cyan', bold=True))

    # 1. 清除旧数据
    db.drop_all()
    db.create_all()

    # 2. 基础资料
    click.echo('正在注册供应商与仓库...')
    suppliers = [Supplier(name=fake.supplier_company(), contact_person=fake.name(), phone=fake.phone_number())
                 for _ in range(5)]
    warehouses = [Warehouse(name=name, location=fake.city()) for name in ('主仓', '冷库', '门店仓')]
    db.session.add_all(suppliers + warehouses)
    db.session.commit()

    # 3. 商品 (期初库存记入流水)
    click.echo(f'  → 创建 {products} 个商品...')
    catalog = []
    for _ in range(products):
        opening = Decimal(random.randint(0, 200))
        product = Product(
            sku=fake.unique.sku_code(),
            name=fake.grocery_product_name(),
            stock=opening,
            cost_price=Decimal(random.randint(5, 80)) / 10,
        )
        db.session.add(product)
        db.session.flush()
        if opening:
            db.session.add(StockMovement(
                reference='OPENING',
                move_type=StockMovement.TYPE_OPENING,
                product_id=product.id,
                qty_change=opening,
                balance_after=opening,
                remark='期初库存',
            ))
        catalog.append(product)
    db.session.commit()

    # 4. 采购单 (经由对账器入库)
    click.echo(f'  → 创建 {purchases} 张采购单...')
    reconciler = PurchaseReconciler(atomic=True)
    for _ in range(purchases):
        lines = []
        for product in random.sample(catalog, k=min(len(catalog), random.randint(1, 4))):
            unit_type, units_per_carton, weight = fake.packaging()
            lines.append(PurchaseLine(
                product_id=product.id,
                quantity=Decimal(random.randint(1, 20)),
                unit_price=Decimal(random.randint(10, 500)) / 10,
                unit_type=unit_type,
                units_per_carton=units_per_carton,
                weight_per_unit=Decimal(weight) if weight else None,
            ))
        header = PurchaseHeader(
            supplier_id=random.choice(suppliers).id,
            warehouse_id=random.choice(warehouses).id,
            status=random.choice([Purchase.STATUS_RECEIVED, Purchase.STATUS_RECEIVED, Purchase.STATUS_PENDING]),
            payment_type=random.choice(Purchase.PAYMENT_TYPES),
        )
        reconciler.create(CreatePurchase(header=header, lines=tuple(lines)))

    click.echo(click.style('✔ 演示数据构建完成！', fg='green', bold=True))
    click.echo(f"数据统计: {len(suppliers)} 供应商, {products} 商品, {purchases} 采购单")


@click.command('stock-drift')
@with_appcontext
def stock_drift():
    """[审计指令] 对比商品汇总库存与库存流水累加值"""
    drifts = StockService.find_drift()
    if not drifts:
        click.echo(click.style('✔ 所有商品库存与流水一致。', fg='green'))
        return

    click.echo(click.style(f'⚠ 发现 {len(drifts)} 个商品库存与流水不一致:', fg='yellow', bold=True))
    for row in drifts:
        click.echo(
            f" - #{row['product_id']} {row['name']} ({row['sku']}): "
            f"库存 {row['stock']} / 流水 {row['movement_balance']} / 差额 {row['difference']}"
        )
    click.get_current_context().exit(1)


@click.command('fix-schema')
@click.option('--dry-run', is_flag=True, help='只列出缺失的表与字段，不修改数据库')
@with_appcontext
def fix_schema(dry_run):
    """
    [修复指令] 补齐数据库中缺失的表和可空字段。
    非空字段无法自动补齐，需要通过 flask db upgrade 迁移。
    """
    engine = db.engine
    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())

    click.echo(click.style('🔍 正在检查数据库表结构...', fg='cyan', bold=True))

    missing_tables = [t for t in db.metadata.sorted_tables if t.name not in existing_tables]
    for table in missing_tables:
        click.echo(f"ℹ️  缺失表: {table.name}")
    if missing_tables and not dry_run:
        db.metadata.create_all(engine, tables=missing_tables)
        click.echo(click.style(f'✅ 已创建 {len(missing_tables)} 张表', fg='green'))

    added = 0
    for table in db.metadata.sorted_tables:
        if table.name not in existing_tables:
            continue
        present = {col['name'] for col in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in present:
                continue
            if not column.nullable or column.primary_key:
                click.echo(click.style(
                    f'⚠️ {table.name}.{column.name} 为非空字段，请使用迁移补齐', fg='yellow'))
                continue
            col_type = column.type.compile(dialect=engine.dialect)
            click.echo(f"ℹ️  缺失字段: {table.name}.{column.name} ({col_type})")
            if dry_run:
                continue
            db.session.execute(text(f'ALTER TABLE {table.name} ADD COLUMN {column.name} {col_type}'))
            added += 1
    db.session.commit()

    if dry_run:
        click.echo('（dry-run 模式，未修改数据库）')
    else:
        click.echo(click.style(f'🎉 表结构检查完成，新增字段 {added} 个。', fg='green'))
