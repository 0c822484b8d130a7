# hpa/api/deps/auth.py
from fastapi import Depends
from sqlalchemy.orm import Session

from hpa.core.context import Context, get_context
from hpa.core.errors import AppError, ErrorCode
from hpa.core.models_user import User, UserStatus
from hpa.infra.db import get_db


def get_current_user(
    ctx: Context = Depends(get_context),
    db: Session = Depends(get_db),
) -> User:
    """
    由 token 中的 user_id 查库返回 User。
    用户已删除 → 40402；已被禁用 → 40301。
    """
    user = db.get(User, ctx.user_id)
    if not user:
        raise AppError(ErrorCode.USER_NOT_FOUND)
    if user.status == UserStatus.banned:
        raise AppError(ErrorCode.FORBIDDEN, "账号已被禁用")
    return user
