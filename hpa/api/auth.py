# hpa/api/auth.py
"""
验证码登录（首次登录即注册），签发 JWT（HS256，默认 7 天）

日志事件（通过 hpa.infra.logger.emit 发出）：
- auth_send_code_attempt：收到发码请求
- auth_login_attempt：收到登录请求（不记录验证码）
- 成功/失败事件由 hpa.services.users 发出
"""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from hpa.core.response import ok
from hpa.core.schemas import UserOut, dump
from hpa.infra.db import get_db
from hpa.infra.logger import emit
from hpa.services import users as user_svc

# 主程序以 "/api/v1/auth" 前缀挂载
router = APIRouter(tags=["auth"])


class SendCodeInput(BaseModel):
    phone: str


class LoginInput(BaseModel):
    phone: str
    code: str


@router.post("/send-code")
def send_code(body: SendCodeInput, request: Request, db: Session = Depends(get_db)):
    emit(
        "auth_send_code_attempt",
        phone=body.phone,
        ip=str(request.client.host) if request.client else None,
    )
    user_svc.send_code(db, body.phone)
    return ok({"message": "验证码已发送"})


@router.post("/login")
def login(body: LoginInput, request: Request, db: Session = Depends(get_db)):
    emit(
        "auth_login_attempt",
        phone=body.phone,
        ip=str(request.client.host) if request.client else None,
        ua=request.headers.get("user-agent"),
    )
    token, user = user_svc.login(db, body.phone, body.code)
    return ok({"token": token, "user": dump(UserOut, user)})
