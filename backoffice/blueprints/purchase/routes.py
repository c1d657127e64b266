"""采购管理路由 (JSON API)"""
from flask import request, jsonify, current_app
from backoffice.extensions import db
from backoffice.blueprints.purchase import purchase_bp
from backoffice.blueprints.purchase.forms import PurchaseForm, PurchaseItemForm, PaymentForm, to_formdata
from backoffice.exceptions import ValidationError, NotFound
from backoffice.models import Purchase
from backoffice.services.lines import PurchaseLine
from backoffice.services.purchase_service import (
    PurchaseReconciler, PurchaseHeader, CreatePurchase, EditPurchase, DeletePurchase
)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('请求体必须是 JSON 对象')
    return data


def _form_errors(form, **extra):
    payload = {'errors': form.errors}
    payload.update(extra)
    return payload


def parse_purchase(data):
    """请求体 -> (表头, 明细)"""
    form = PurchaseForm(formdata=to_formdata(data))
    if not form.validate():
        raise ValidationError('采购单数据有误', payload=_form_errors(form))

    items = data.get('items')
    if not isinstance(items, list) or not items:
        raise ValidationError('请添加采购商品', payload={'field': 'items'})

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError('明细格式错误', payload={'line': index})
        item_form = PurchaseItemForm(formdata=to_formdata(item))
        if not item_form.validate():
            raise ValidationError('采购明细数据有误', payload=_form_errors(item_form, line=index))
        lines.append(PurchaseLine.from_dict(item_form.data))

    header = PurchaseHeader(
        supplier_id=form.supplier_id.data,
        warehouse_id=form.warehouse_id.data,
        status=form.status.data or Purchase.STATUS_RECEIVED,
        tax_rate=form.tax_rate.data or 0,
        payment_type=form.payment_type.data or 'cash',
        paid_amount=form.paid_amount.data,
        purchase_date=form.purchase_date.data,
        notes=form.notes.data or None,
    )
    return header, tuple(lines)


@purchase_bp.route('/')
def index():
    """采购单列表"""
    page = request.args.get('page', 1, type=int)
    status = request.args.get('status', '')
    supplier_id = request.args.get('supplier_id', 0, type=int)

    query = Purchase.query
    if status:
        query = query.filter_by(status=status)
    if supplier_id:
        query = query.filter_by(supplier_id=supplier_id)

    pagination = query.order_by(Purchase.created_at.desc(), Purchase.id.desc()).paginate(
        page=page, per_page=current_app.config.get('PURCHASES_PER_PAGE', 15), error_out=False
    )
    return jsonify({
        'success': True,
        'items': [p.to_dict(with_items=False) for p in pagination.items],
        'page': pagination.page,
        'pages': pagination.pages,
        'total': pagination.total,
    })


@purchase_bp.route('/<int:purchase_id>')
def detail(purchase_id):
    """采购单详情"""
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFound('采购单不存在', payload={'purchase_id': purchase_id})
    data = purchase.to_dict()
    data['payments'] = [p.to_dict() for p in purchase.payments]
    return jsonify({'success': True, 'purchase': data})


@purchase_bp.route('/', methods=['POST'])
def create():
    """创建采购单"""
    header, lines = parse_purchase(_json_body())
    purchase = PurchaseReconciler().create(CreatePurchase(header=header, lines=lines))
    return jsonify({'success': True, 'purchase': purchase.to_dict()}), 201


@purchase_bp.route('/<int:purchase_id>', methods=['PUT'])
def edit(purchase_id):
    """编辑采购单 (表头 + 完整明细)"""
    header, lines = parse_purchase(_json_body())
    purchase = PurchaseReconciler().edit(EditPurchase(purchase_id=purchase_id, header=header, lines=lines))
    return jsonify({'success': True, 'purchase': purchase.to_dict()})


@purchase_bp.route('/<int:purchase_id>/receive', methods=['POST'])
def receive(purchase_id):
    """确认收货"""
    purchase = PurchaseReconciler().receive(purchase_id)
    return jsonify({'success': True, 'purchase': purchase.to_dict()})


@purchase_bp.route('/<int:purchase_id>/cancel', methods=['POST'])
def cancel(purchase_id):
    """取消采购单"""
    purchase = PurchaseReconciler().cancel(purchase_id)
    return jsonify({'success': True, 'purchase': purchase.to_dict()})


@purchase_bp.route('/<int:purchase_id>', methods=['DELETE'])
def delete(purchase_id):
    """删除采购单"""
    PurchaseReconciler().delete(DeletePurchase(purchase_id=purchase_id))
    return jsonify({'success': True, 'message': '采购单已删除'})


@purchase_bp.route('/<int:purchase_id>/payments', methods=['POST'])
def add_payment(purchase_id):
    """登记付款"""
    form = PaymentForm(formdata=to_formdata(_json_body()))
    if not form.validate():
        raise ValidationError('付款数据有误', payload=_form_errors(form))
    purchase = PurchaseReconciler().add_payment(
        purchase_id,
        amount=form.amount.data,
        payment_method=form.payment_method.data or 'cash',
        payment_date=form.payment_date.data,
        notes=form.notes.data or None,
    )
    return jsonify({'success': True, 'purchase': purchase.to_dict(with_items=False)})
