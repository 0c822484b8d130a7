# hpa/core/context.py
"""
统一提供请求上下文（user_id、phone、username、role）。
- get_context：必须登录；无 token / 签名错 / 过期 / 角色非法 → 40005
- get_optional_context：可选登录；任何失败都返回 None，由路由显式接收 Optional[Context]
- require_admin：在 get_context 之上要求 role == admin → 40302
- 事件打点：auth_missing_header / auth_token_invalid / auth_token_expired / auth_admin_denied
"""
from __future__ import annotations

from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ValidationError

from hpa.core.errors import AppError, ErrorCode
from hpa.core.models_user import UserRole
from hpa.core.security import decode_access_token
from hpa.infra.logger import emit

_bearer = HTTPBearer(auto_error=False)


class Context(BaseModel):
    user_id: int
    phone: str = ""
    username: Optional[str] = None
    role: UserRole = UserRole.user

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin

    @classmethod
    def from_payload(cls, data: dict) -> "Context":
        # role 必须落在 user / vip / admin 之内，否则整枚 token 视为无效
        uid = data.get("user_id") or data.get("sub")
        return cls(
            user_id=int(uid) if uid is not None else 0,
            phone=data.get("phone") or "",
            username=data.get("username"),
            role=UserRole(data.get("role")),
        )


def parse_token(token: str) -> Context:
    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        emit("auth_token_expired")
        raise AppError(ErrorCode.UNAUTHORIZED)
    except jwt.PyJWTError as e:
        emit("auth_token_invalid", error=str(e))
        raise AppError(ErrorCode.UNAUTHORIZED)

    try:
        ctx = Context.from_payload(payload)
    except (ValueError, TypeError, ValidationError) as e:
        emit("auth_token_invalid", error=f"bad claims: {e}")
        raise AppError(ErrorCode.UNAUTHORIZED, "认证信息无效")
    if ctx.user_id <= 0:
        emit("auth_token_invalid", error="missing user_id")
        raise AppError(ErrorCode.UNAUTHORIZED, "认证信息无效")
    return ctx


def get_context(creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)) -> Context:
    if not creds or not creds.credentials:
        emit("auth_missing_header")
        raise AppError(ErrorCode.UNAUTHORIZED, "未提供认证信息")
    return parse_token(creds.credentials)


def get_optional_context(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[Context]:
    if not creds or not creds.credentials:
        return None
    try:
        return parse_token(creds.credentials)
    except AppError:
        return None


def require_admin(ctx: Context = Depends(get_context)) -> Context:
    if not ctx.is_admin:
        emit("auth_admin_denied", user_id=ctx.user_id, role=ctx.role.value)
        raise AppError(ErrorCode.ADMIN_REQUIRED)
    return ctx
