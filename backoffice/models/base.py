from datetime import date, datetime
from decimal import Decimal
from backoffice.extensions import db


class BaseModel(db.Model):
    """
    后台模型基类
    包含：ID主键, 创建时间, 更新时间, 序列化方法
    """
    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def save(self):
        """保存到数据库"""
        db.session.add(self)
        db.session.commit()

    def to_dict(self):
        """
        通用序列化方法：将模型转换为字典，便于 API 返回 JSON。
        过滤掉以 '_' 开头的私有属性，Decimal 转为 float。
        """
        data = {}
        for c in self.__table__.columns:
            if c.name.startswith('_'):
                continue
            val = getattr(self, c.name)
            if isinstance(val, (datetime, date)):
                data[c.name] = val.isoformat()
            elif isinstance(val, Decimal):
                data[c.name] = float(val)
            else:
                data[c.name] = val
        return data


# 数量与金额统一使用定点小数
Quantity = db.Numeric(18, 4)
Money = db.Numeric(18, 4)
