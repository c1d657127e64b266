"""采购管理表单 (JSON 请求体的类型转换与范围检查)"""
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import StringField, IntegerField, DecimalField, TextAreaField, DateField
from wtforms.validators import DataRequired, NumberRange, Optional

from backoffice.utils.validators import (
    validate_positive_number, validate_non_negative, validate_unit_type, validate_packaging_mode
)


def to_formdata(data):
    """JSON 对象 -> MultiDict；丢弃空值，数值转为字符串以保证 Decimal 精度"""
    return MultiDict({key: str(value) for key, value in (data or {}).items()
                      if value is not None and not isinstance(value, (list, dict))})


class PurchaseItemForm(FlaskForm):
    """采购明细表单"""
    class Meta:
        csrf = False

    product_id = IntegerField('商品ID', validators=[DataRequired()])
    primary_variant_id = IntegerField('主规格ID', validators=[Optional()])
    quantity = DecimalField('数量', default=0, validators=[Optional()])
    unit_type = StringField('采购单位', default='kilo', validators=[Optional(), validate_unit_type])
    units_per_carton = IntegerField('每箱件数', validators=[Optional(), validate_positive_number])
    weight_per_unit = DecimalField('单件重量', validators=[Optional(), validate_positive_number])
    packaging_mode = StringField('包装方式', default='none', validators=[Optional(), validate_packaging_mode])
    unit_price = DecimalField('单价', validators=[Optional(), validate_non_negative])


class PurchaseForm(FlaskForm):
    """采购单表头表单"""
    class Meta:
        csrf = False

    supplier_id = IntegerField('供应商', validators=[DataRequired()])
    warehouse_id = IntegerField('入库仓库', validators=[DataRequired()])
    status = StringField('状态', default='received', validators=[Optional()])
    purchase_date = DateField('采购日期', validators=[Optional()])
    tax_rate = DecimalField('税率(%)', default=0, validators=[Optional(), NumberRange(min=0, max=100)])
    payment_type = StringField('付款方式', default='cash', validators=[Optional()])
    paid_amount = DecimalField('已付金额', validators=[Optional(), validate_non_negative])
    notes = TextAreaField('备注', validators=[Optional()])


class PaymentForm(FlaskForm):
    """供应商付款表单"""
    class Meta:
        csrf = False

    amount = DecimalField('付款金额', validators=[DataRequired(), validate_positive_number])
    payment_method = StringField('付款方式', default='cash', validators=[Optional()])
    payment_date = DateField('付款日期', validators=[Optional()])
    notes = TextAreaField('备注', validators=[Optional()])
