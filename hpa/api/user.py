# hpa/api/user.py
"""
个人资料：GET / PUT /api/v1/user/profile（必须登录）
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from hpa.api.deps.auth import get_current_user
from hpa.core.models_user import User
from hpa.core.response import ok
from hpa.core.schemas import UserOut, dump
from hpa.infra.db import get_db
from hpa.services import users as user_svc

router = APIRouter(tags=["user"])


class ProfileUpdateInput(BaseModel):
    nickname: Optional[str] = Field(default=None, max_length=50)
    avatar: Optional[str] = Field(default=None, max_length=500)


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)):
    return ok(dump(UserOut, user))


@router.put("/profile")
def update_profile(
    body: ProfileUpdateInput,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = user_svc.update_profile(db, user, body.nickname, body.avatar)
    return ok(dump(UserOut, user))
