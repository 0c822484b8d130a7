# hpa/core/models_user.py
"""定义 UserRole（user|vip|admin）、UserStatus（active|banned）
与两张表：users、verification_codes。

users 在首次验证码登录时自动创建；verification_codes 每次发送一行，
登录成功时被标记为已使用（只能用一次）。"""
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Enum as SAEnum, Float, Integer, String

from hpa.core.models import Base


class UserRole(str, Enum):
    user = "user"
    vip = "vip"
    admin = "admin"


class UserStatus(str, Enum):
    active = "active"
    banned = "banned"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(20), unique=True, nullable=False, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    nickname = Column(String(50), default="")
    avatar = Column(String(500), default="")
    role = Column(SAEnum(UserRole, native_enum=False, length=20), nullable=False, default=UserRole.user)
    status = Column(SAEnum(UserStatus, native_enum=False, length=20), nullable=False, default=UserStatus.active)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    # 会员相关
    vip_expire_at = Column(DateTime, nullable=True)
    yearly_spend = Column(Float, nullable=False, default=0)
    can_download = Column(Boolean, nullable=False, default=False)   # 无订单也可下载


class VerificationCode(Base):
    __tablename__ = "verification_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(20), nullable=False, index=True)
    code = Column(String(10), nullable=False)
    purpose = Column(String(20), nullable=False, default="login")
    expire_at = Column(DateTime, nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
