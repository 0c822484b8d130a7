"""
模块职能：
- 验证码发送（同一手机号 60 秒内只能发一次）、验证码登录（首登即注册）、个人资料、
  管理端用户列表与权限调整。

日志：
- sms_code_created / sms_code_throttled / auth_login_success / auth_login_failed /
  user_auto_created / user_profile_updated / admin_user_updated
"""
import re
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from hpa.core.errors import AppError, ErrorCode
from hpa.core.models_user import User, UserRole, UserStatus, VerificationCode
from hpa.core.security import create_access_token, random_digits, random_string
from hpa.infra import sms
from hpa.infra.logger import emit

PHONE_RE = re.compile(r"^1[3-9]\d{9}$")
CODE_TTL = timedelta(minutes=5)
SEND_INTERVAL = timedelta(seconds=60)
LOGIN_PURPOSE = "login"


def validate_phone(phone: str):
    if not PHONE_RE.match(phone or ""):
        raise AppError(ErrorCode.INVALID_PARAM, "手机号格式不正确")


def send_code(db: Session, phone: str) -> VerificationCode:
    validate_phone(phone)
    since = datetime.now() - SEND_INTERVAL
    recent = (db.query(VerificationCode)
              .filter(VerificationCode.phone == phone, VerificationCode.created_at > since)
              .count())
    if recent > 0:
        emit("sms_code_throttled", phone=phone)
        raise AppError(ErrorCode.RATE_LIMIT_EXCEEDED)

    vc = VerificationCode(
        phone=phone,
        code=random_digits(6),
        purpose=LOGIN_PURPOSE,
        expire_at=datetime.now() + CODE_TTL,
    )
    db.add(vc)
    try:
        db.flush()
        sms.send_code(phone, vc.code)
        db.commit()
    except sms.SmsError:
        db.rollback()
        raise AppError(ErrorCode.INTERNAL_ERROR, "短信发送失败，请稍后再试")
    except Exception:
        db.rollback()
        raise
    emit("sms_code_created", phone=phone, code_id=vc.id)
    return vc


def _consume_code(db: Session, phone: str, code: str) -> bool:
    now = datetime.now()
    vc = (db.query(VerificationCode)
          .filter(VerificationCode.phone == phone,
                  VerificationCode.code == code,
                  VerificationCode.purpose == LOGIN_PURPOSE,
                  VerificationCode.used.is_(False),
                  VerificationCode.expire_at > now)
          .first())
    if not vc:
        return False
    # 条件更新：并发登录同一验证码时只有一方成功
    updated = (db.query(VerificationCode)
               .filter(VerificationCode.id == vc.id, VerificationCode.used.is_(False))
               .update({VerificationCode.used: True}, synchronize_session=False))
    return updated == 1


def _new_user(phone: str) -> User:
    return User(
        phone=phone,
        username="user_" + random_string(8),
        nickname="用户" + phone[-4:],
        role=UserRole.user,
        status=UserStatus.active,
    )


def token_for(user: User) -> str:
    return create_access_token({
        "sub": str(user.id),
        "user_id": user.id,
        "phone": user.phone,
        "username": user.username,
        "role": UserRole(user.role).value,
    })


def login(db: Session, phone: str, code: str) -> Tuple[str, User]:
    validate_phone(phone)
    if not code or len(code) != 6:
        raise AppError(ErrorCode.INVALID_PARAM, "验证码格式不正确")

    if not _consume_code(db, phone, code):
        db.rollback()
        emit("auth_login_failed", phone=phone, reason="invalid_code")
        raise AppError(ErrorCode.INVALID_CODE)

    user = db.query(User).filter(User.phone == phone).first()
    if not user:
        user = _new_user(phone)
        db.add(user)
        db.flush()
        emit("user_auto_created", user_id=user.id, phone=phone, username=user.username)
    db.commit()
    db.refresh(user)

    if user.status == UserStatus.banned:
        emit("auth_login_failed", phone=phone, user_id=user.id, reason="banned")
        raise AppError(ErrorCode.FORBIDDEN, "账号已被禁用")

    token = token_for(user)
    emit("auth_login_success", user_id=user.id, role=UserRole(user.role).value)
    return token, user


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise AppError(ErrorCode.USER_NOT_FOUND)
    return user


def update_profile(db: Session, user: User, nickname: Optional[str], avatar: Optional[str]) -> User:
    if nickname:
        user.nickname = nickname
    if avatar:
        user.avatar = avatar
    db.add(user); db.commit(); db.refresh(user)
    emit("user_profile_updated", user_id=user.id)
    return user


def list_users(db: Session, page: int, page_size: int, phone: Optional[str] = None) -> Tuple[List[User], int]:
    q = db.query(User)
    if phone:
        q = q.filter(User.phone.like(f"%{phone}%"))
    total = q.count()
    rows = (q.order_by(User.created_at.desc(), User.id.desc())
             .offset((page - 1) * page_size).limit(page_size).all())
    return rows, total


def admin_update_user(db: Session, user_id: int, changes: Dict) -> User:
    """管理端调整 role / status / can_download / vip_expire_at；未给出的字段不动。
    只有 vip_expire_at 可以被清空。"""
    user = get_user(db, user_id)
    for field in ("role", "status", "can_download", "vip_expire_at"):
        if field not in changes:
            continue
        if changes[field] is None and field != "vip_expire_at":
            raise AppError(ErrorCode.INVALID_PARAM, f"{field} 不能为空")
        setattr(user, field, changes[field])
    db.add(user); db.commit(); db.refresh(user)
    emit("admin_user_updated", user_id=user.id, fields=sorted(changes))
    return user
