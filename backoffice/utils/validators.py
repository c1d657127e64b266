"""
表单验证器
"""
from wtforms.validators import ValidationError

from backoffice.services.lines import UNIT_TYPES, PACKAGING_MODES


def validate_positive_number(form, field):
    """验证正数"""
    if field.data is not None and field.data <= 0:
        raise ValidationError('数值必须大于0')


def validate_non_negative(form, field):
    """验证非负数"""
    if field.data is not None and field.data < 0:
        raise ValidationError('数值不能为负')


def validate_unit_type(form, field):
    """验证采购单位"""
    if field.data and field.data not in UNIT_TYPES:
        raise ValidationError(f'不支持的采购单位: {field.data}')


def validate_packaging_mode(form, field):
    """验证包装方式"""
    if field.data and field.data not in PACKAGING_MODES:
        raise ValidationError(f'不支持的包装方式: {field.data}')
