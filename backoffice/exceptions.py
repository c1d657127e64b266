class BackofficeError(Exception):
    """后台系统基础异常类"""
    def __init__(self, message, code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['success'] = False
        return rv


class ValidationError(BackofficeError):
    """提交数据校验失败 (在任何写库操作之前抛出)"""
    def __init__(self, message="Invalid data", payload=None):
        super().__init__(message, code=400, payload=payload)


class NotFound(BackofficeError):
    """目标对象不存在"""
    def __init__(self, message="Not found", payload=None):
        super().__init__(message, code=404, payload=payload)


class StoreError(BackofficeError):
    """数据存储层错误"""
    def __init__(self, message="Store error", payload=None):
        super().__init__(message, code=500, payload=payload)


class MissingColumnError(StoreError):
    """写入的字段在数据库表中不存在 (表结构落后于代码)"""
    def __init__(self, column, message=None):
        super().__init__(message or f"Unknown column: {column}", payload={'column': column})
        self.column = column


class GeneratedColumnError(StoreError):
    """写入的字段是数据库生成列，不允许显式赋值"""
    def __init__(self, column, message=None):
        super().__init__(message or f"Generated column: {column}", payload={'column': column})
        self.column = column


class PartialReconciliationError(BackofficeError):
    """
    逐行模式下对账中途失败。
    applied_lines 中的行已经写入数据库，不会自动回滚，调用方需要人工核对库存。
    """
    def __init__(self, message, applied_lines, failed_line, cause=None):
        payload = {
            'applied_lines': list(applied_lines),
            'failed_line': failed_line,
        }
        if cause is not None:
            payload['cause'] = str(cause)
        super().__init__(message, code=500, payload=payload)
        self.applied_lines = list(applied_lines)
        self.failed_line = failed_line
        self.cause = cause
