# hpa/core/errors.py
"""
业务错误码与统一错误响应。

- ErrorCode：固定的数字业务码（4xxxx），HTTP 状态由码段推出
- AppError：服务层抛出的唯一异常类型，到边界由 register_exception_handlers 渲染
- 响应体统一为 {"code", "message", "data": null}，不泄露堆栈与内部细节

码段：400xx → 400，403xx → 403，404xx → 404，500xx → 500；
40005（未登录）→ 401、40010（请求过于频繁）→ 429 单独覆盖。
"""
from enum import IntEnum
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hpa.infra.logger import emit, emit_error


class ErrorCode(IntEnum):
    INVALID_PARAM = 40001
    DOWNLOAD_EXPIRED = 40003
    DOWNLOAD_USED = 40004
    UNAUTHORIZED = 40005
    INVALID_CODE = 40007
    INVALID_INVITE = 40009
    RATE_LIMIT_EXCEEDED = 40010
    INVITE_EXHAUSTED = 40012
    INVITE_EXPIRED = 40013

    FORBIDDEN = 40301
    ADMIN_REQUIRED = 40302
    ALREADY_PURCHASED = 40304

    NOT_FOUND = 40401
    USER_NOT_FOUND = 40402
    COURSE_NOT_FOUND = 40403

    INTERNAL_ERROR = 50000


MESSAGES = {
    ErrorCode.INVALID_PARAM: "参数错误",
    ErrorCode.DOWNLOAD_EXPIRED: "下载链接已过期",
    ErrorCode.DOWNLOAD_USED: "下载链接已使用",
    ErrorCode.UNAUTHORIZED: "未登录或登录已过期",
    ErrorCode.INVALID_CODE: "验证码错误或已过期",
    ErrorCode.INVALID_INVITE: "邀请码无效",
    ErrorCode.RATE_LIMIT_EXCEEDED: "请求过于频繁，请稍后再试",
    ErrorCode.INVITE_EXHAUSTED: "邀请码已用完",
    ErrorCode.INVITE_EXPIRED: "邀请码已过期",
    ErrorCode.FORBIDDEN: "无权限",
    ErrorCode.ADMIN_REQUIRED: "需要管理员权限",
    ErrorCode.ALREADY_PURCHASED: "您已购买该课程",
    ErrorCode.NOT_FOUND: "资源不存在",
    ErrorCode.USER_NOT_FOUND: "用户不存在",
    ErrorCode.COURSE_NOT_FOUND: "课程不存在",
    ErrorCode.INTERNAL_ERROR: "服务器内部错误",
}

_STATUS_OVERRIDES = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
}


def http_status(code: int) -> int:
    if code in _STATUS_OVERRIDES:
        return _STATUS_OVERRIDES[code]
    if 40000 <= code < 40100:
        return 400
    if 40300 <= code < 40400:
        return 403
    if 40400 <= code < 40500:
        return 404
    if 50000 <= code < 60000:
        return 500
    return 400


class AppError(Exception):
    """带业务码的异常；message 缺省取 MESSAGES 中的固定文案。"""

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = ErrorCode(code)
        self.message = message or MESSAGES.get(self.code, "未知错误")
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return http_status(self.code)


def error_body(code: int, message: str) -> dict:
    return {"code": int(code), "message": message, "data": None}


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        emit(
            "app_error", level="WARNING",
            path=str(request.url.path), code=int(exc.code), message=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = MESSAGES[ErrorCode.INVALID_PARAM] + (f": {field}" if field else "")
        return JSONResponse(status_code=400, content=error_body(ErrorCode.INVALID_PARAM, message))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        emit_error("unhandled_error", path=str(request.url.path), error=repr(exc))
        return JSONResponse(
            status_code=500,
            content=error_body(ErrorCode.INTERNAL_ERROR, MESSAGES[ErrorCode.INTERNAL_ERROR]),
        )
