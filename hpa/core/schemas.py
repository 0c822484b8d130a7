# hpa/core/schemas.py
"""
出参模型：ORM 对象 → JSON。统一 from_attributes，路由里用 dump() 序列化。
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from hpa.core.models_user import UserRole, UserStatus


class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True)


def dump(model_cls, obj) -> dict:
    return model_cls.model_validate(obj).model_dump(mode="json")


def dump_list(model_cls, objs) -> list:
    return [dump(model_cls, o) for o in objs]


class UserOut(_Out):
    id: int
    phone: str
    username: str
    nickname: Optional[str] = ""
    avatar: Optional[str] = ""
    role: UserRole
    status: UserStatus
    vip_expire_at: Optional[datetime] = None
    yearly_spend: float = 0
    can_download: bool = False
    created_at: Optional[datetime] = None


class CategoryBrief(_Out):
    id: int
    name: str
    slug: str
    parent_id: Optional[int] = None
    sort: int = 0


class CategoryOut(CategoryBrief):
    children: List[CategoryBrief] = []


class NoteBrief(_Out):
    id: int
    category_id: int
    title: str
    slug: str
    summary: Optional[str] = ""
    cover_image: Optional[str] = ""
    view_count: int = 0
    is_public: bool = True
    sort: int = 0
    created_at: Optional[datetime] = None
    category: Optional[CategoryBrief] = None


class NoteOut(NoteBrief):
    content: Optional[str] = ""


class BrowseHistoryOut(_Out):
    id: int
    note_id: int
    created_at: Optional[datetime] = None
    note: Optional[NoteBrief] = None


class CourseFileOut(_Out):
    id: int
    course_id: int
    file_type: str
    file_name: str
    file_size: int = 0
    sort: int = 0
    created_at: Optional[datetime] = None


class CourseOut(_Out):
    id: int
    title: str
    slug: str
    description: Optional[str] = ""
    cover_image: Optional[str] = ""
    price: float
    orig_price: float = 0
    sales_count: int = 0
    is_public: bool = True
    sort: int = 0
    created_at: Optional[datetime] = None


class OrderOut(_Out):
    id: int
    order_no: str
    user_id: int
    course_id: int
    amount: float
    status: str
    pay_method: Optional[str] = ""
    pay_time: Optional[datetime] = None
    invite_code: Optional[str] = ""
    created_at: Optional[datetime] = None
    course: Optional[CourseOut] = None


class InviteCodeOut(_Out):
    id: int
    code: str
    course_id: int
    max_uses: int
    used_count: int
    expire_at: Optional[datetime] = None
    is_active: bool
    created_at: Optional[datetime] = None
