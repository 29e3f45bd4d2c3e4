"""
自定义异常模块

定义应用特定的异常类，用于统一的错误处理。
所有业务异常都继承自 AppError，在 main.py 中有统一的异常处理器。
"""
from __future__ import annotations


class AppError(Exception):
    """
    应用自定义异常类

    用于业务逻辑中的错误处理，包含：
    - code: 业务错误码（用于客户端区分不同错误）
    - message: 错误消息
    - status_code: HTTP 状态码（400, 401, 500 等）

    使用示例：
        raise AppError(code=401001, message="Invalid signature", status_code=401)
    """

    def __init__(self, *, code: int, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def invalid_signature() -> AppError:
    """签名缺失或不匹配，拒绝且不修改任何状态"""
    return AppError(code=401001, message="Invalid webhook signature", status_code=401)


def malformed_payload(detail: str = "Invalid webhook payload") -> AppError:
    """请求体不是 JSON 对象"""
    return AppError(code=400001, message=detail, status_code=400)


def invalid_event(detail: str = "Invalid billing event") -> AppError:
    """请求体是 JSON，但无法解析为计费事件"""
    return AppError(code=400002, message=detail, status_code=400)


def storage_failure() -> AppError:
    """
    存储暂时不可用

    webhook 返回 500 让发送方稍后重试；重复投递由事件去重保证幂等。
    """
    return AppError(code=500001, message="Temporary storage failure", status_code=500)


def entitlements_unavailable() -> AppError:
    """设备端显式操作（重置、强制对账）时存储不可用"""
    return AppError(code=503001, message="Entitlement storage unavailable", status_code=503)


def event_store_unavailable() -> AppError:
    return AppError(code=503002, message="Event store unavailable", status_code=503)
