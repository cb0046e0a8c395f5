"""
统一异常体系。

所有业务异常继承 BaseAppException，包含：
- type:        错误类型标识（validation_error / block）
- code:        业务错误码（VISIT_NOT_FOUND / STALE_UPDATE / ...）
- message:     人类可读的描述
- detail:      可选的附加信息（dict / list / None）
- http_status: HTTP 状态码

View 层只需 raise，exception_handler 统一捕获并格式化响应。
字段 diff / 审计核心（childhealth.audit）不抛这些异常。
"""


class BaseAppException(Exception):
    """所有业务异常的基类。"""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(BaseAppException):
    """输入验证失败。intake adapter 抛出，400。"""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class BlockError(BaseAppException):
    """
    业务规则阻止操作。service 层抛出，默认 409。

    常见覆盖：实体不存在 / 无权访问 → 404，只读成员修改 → 403。
    """

    type = 'block'
    code = 'BUSINESS_BLOCK'
    http_status = 409
