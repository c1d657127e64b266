"""库存查询路由 (只读)"""
from flask import request, jsonify
from backoffice.extensions import db
from backoffice.blueprints.stock import stock_bp
from backoffice.exceptions import NotFound
from backoffice.models import Product
from backoffice.services.stock_service import StockService


@stock_bp.route('/products/<int:product_id>')
def product_stock(product_id):
    """商品汇总库存、包装规格与分仓库存"""
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound('商品不存在', payload={'product_id': product_id})
    return jsonify({'success': True, 'product': StockService.product_view(product)})


@stock_bp.route('/alerts')
def alerts():
    """低库存规格"""
    limit = request.args.get('limit', 0, type=int)
    items = StockService.low_stock_variants(limit=limit or None)
    return jsonify({'success': True, 'items': items, 'total': len(items)})


@stock_bp.route('/drift')
def drift():
    """汇总库存与库存流水不一致的商品"""
    items = StockService.find_drift()
    return jsonify({'success': True, 'items': items, 'total': len(items)})
