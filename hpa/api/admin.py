# hpa/api/admin.py
# -*- coding: utf-8 -*-
"""
管理端 API（挂载在 /api/v1/admin，整组路由要求 role == admin）
------------------------------------
职能：
- 分类 / 笔记 CRUD
- 课程 CRUD（含非公开课程）、课程文件上传 / 列表 / 删除（对象存储 + 记录）
- 邀请码创建 / 列表 / 启停
- 用户列表与权限调整（role / status / can_download / vip_expire_at）
- 订单人工结算（pending → paid）

更新类接口只写入请求里出现的字段（exclude_unset）；
非空列上显式传 null 视为未传，只有可空列（parent_id、vip_expire_at）才会被清空。
"""
from datetime import datetime
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from hpa.core.context import require_admin
from hpa.core.errors import AppError, ErrorCode
from hpa.core.models_user import UserRole, UserStatus
from hpa.core.response import clamp_page, ok, paged
from hpa.core.schemas import (
    CategoryOut, CourseFileOut, CourseOut, InviteCodeOut, NoteBrief, NoteOut, OrderOut, UserOut,
    dump, dump_list,
)
from hpa.infra.db import get_db
from hpa.infra.storage import get_storage
from hpa.services import commerce as commerce_svc
from hpa.services import content as content_svc
from hpa.services import courses as course_svc
from hpa.services import users as user_svc

router = APIRouter(tags=["admin"], dependencies=[Depends(require_admin)])


# ---------- 入参 ----------

class CategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    slug: str = Field(min_length=1, max_length=50)
    parent_id: Optional[int] = None
    sort: int = 0


class CategoryPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=50)
    parent_id: Optional[int] = None
    sort: Optional[int] = None


class NoteIn(BaseModel):
    category_id: int
    title: str = Field(min_length=1, max_length=200)
    slug: str = Field(min_length=1, max_length=200)
    summary: str = ""
    content: str = ""
    cover_image: str = ""
    is_public: bool = True
    sort: int = 0


class NotePatch(BaseModel):
    category_id: Optional[int] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=200)
    summary: Optional[str] = None
    content: Optional[str] = None
    cover_image: Optional[str] = None
    is_public: Optional[bool] = None
    sort: Optional[int] = None


class CourseIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    slug: str = Field(min_length=1, max_length=200)
    description: str = ""
    cover_image: str = ""
    price: float = Field(ge=0)
    orig_price: float = Field(default=0, ge=0)
    is_public: bool = True
    sort: int = 0


class CoursePatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    cover_image: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    orig_price: Optional[float] = Field(default=None, ge=0)
    is_public: Optional[bool] = None
    sort: Optional[int] = None


class InviteCodeIn(BaseModel):
    course_id: int
    max_uses: int = 1
    expire_at: Optional[datetime] = None


class InviteCodeActiveIn(BaseModel):
    is_active: bool


class UserPatch(BaseModel):
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    can_download: Optional[bool] = None
    vip_expire_at: Optional[datetime] = None


class MarkPaidIn(BaseModel):
    pay_method: str = Field(default="wechat", pattern="^(wechat|alipay)$")


def _changes(body: BaseModel, nullable: Tuple[str, ...] = ()) -> dict:
    data = body.model_dump(exclude_unset=True)
    return {k: v for k, v in data.items() if v is not None or k in nullable}


# ---------- 分类 ----------

@router.get("/categories")
def list_categories(db: Session = Depends(get_db)):
    return ok(dump_list(CategoryOut, content_svc.list_categories(db)))


@router.post("/categories")
def create_category(body: CategoryIn, db: Session = Depends(get_db)):
    return ok(dump(CategoryOut, content_svc.create_category(db, body.model_dump())))


@router.put("/categories/{category_id}")
def update_category(category_id: int, body: CategoryPatch, db: Session = Depends(get_db)):
    changes = _changes(body, nullable=("parent_id",))
    return ok(dump(CategoryOut, content_svc.update_category(db, category_id, changes)))


@router.delete("/categories/{category_id}")
def delete_category(category_id: int, db: Session = Depends(get_db)):
    content_svc.delete_category(db, category_id)
    return ok()


# ---------- 笔记 ----------

@router.get("/notes")
def list_notes(
    category_id: Optional[int] = Query(default=None),
    page: int = Query(default=1),
    page_size: int = Query(default=20),
    db: Session = Depends(get_db),
):
    page, page_size = clamp_page(page, page_size)
    rows, total = content_svc.list_notes(db, category_id, page, page_size, include_private=True)
    return ok(paged(dump_list(NoteBrief, rows), total, page, page_size))


@router.post("/notes")
def create_note(body: NoteIn, db: Session = Depends(get_db)):
    return ok(dump(NoteOut, content_svc.create_note(db, body.model_dump())))


@router.put("/notes/{note_id}")
def update_note(note_id: int, body: NotePatch, db: Session = Depends(get_db)):
    return ok(dump(NoteOut, content_svc.update_note(db, note_id, _changes(body))))


@router.delete("/notes/{note_id}")
def delete_note(note_id: int, db: Session = Depends(get_db)):
    content_svc.delete_note(db, note_id)
    return ok()


# ---------- 课程 ----------

@router.get("/courses")
def list_courses(
    page: int = Query(default=1),
    page_size: int = Query(default=20),
    db: Session = Depends(get_db),
):
    page, page_size = clamp_page(page, page_size)
    rows, total = course_svc.list_courses(db, page, page_size, include_private=True)
    return ok(paged(dump_list(CourseOut, rows), total, page, page_size))


@router.post("/courses")
def create_course(body: CourseIn, db: Session = Depends(get_db)):
    return ok(dump(CourseOut, course_svc.create_course(db, body.model_dump())))


@router.put("/courses/{course_id}")
def update_course(course_id: int, body: CoursePatch, db: Session = Depends(get_db)):
    return ok(dump(CourseOut, course_svc.update_course(db, course_id, _changes(body))))


@router.delete("/courses/{course_id}")
def delete_course(course_id: int, db: Session = Depends(get_db), storage=Depends(get_storage)):
    course_svc.delete_course(db, storage, course_id)
    return ok()


@router.get("/courses/{course_id}/files")
def list_course_files(
    course_id: int,
    file_type: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    course_svc.get_course(db, course_id)
    return ok(dump_list(CourseFileOut, course_svc.list_course_files(db, course_id, file_type)))


@router.post("/courses/{course_id}/files")
def upload_course_file(
    course_id: int,
    file_type: str = Form(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    cf = course_svc.upload_course_file(db, storage, course_id, file_type, file.filename or "", file.file)
    return ok(dump(CourseFileOut, cf))


@router.delete("/courses/{course_id}/files/{file_id}")
def delete_course_file(course_id: int, file_id: int, db: Session = Depends(get_db), storage=Depends(get_storage)):
    f = course_svc.get_course_file(db, file_id)
    if f.course_id != course_id:
        raise AppError(ErrorCode.NOT_FOUND, "文件不存在")
    course_svc.delete_course_file(db, storage, file_id)
    return ok()


# ---------- 邀请码 ----------

@router.get("/invite-codes")
def list_invite_codes(
    page: int = Query(default=1),
    page_size: int = Query(default=20),
    db: Session = Depends(get_db),
):
    page, page_size = clamp_page(page, page_size)
    rows, total = course_svc.list_invite_codes(db, page, page_size)
    return ok(paged(dump_list(InviteCodeOut, rows), total, page, page_size))


@router.post("/invite-codes")
def create_invite_code(body: InviteCodeIn, db: Session = Depends(get_db)):
    ic = course_svc.create_invite_code(db, body.course_id, body.max_uses, body.expire_at)
    return ok(dump(InviteCodeOut, ic))


@router.put("/invite-codes/{invite_code_id}/active")
def set_invite_code_active(invite_code_id: int, body: InviteCodeActiveIn, db: Session = Depends(get_db)):
    return ok(dump(InviteCodeOut, course_svc.set_invite_code_active(db, invite_code_id, body.is_active)))


# ---------- 用户 ----------

@router.get("/users")
def list_users(
    phone: Optional[str] = Query(default=None),
    page: int = Query(default=1),
    page_size: int = Query(default=20),
    db: Session = Depends(get_db),
):
    page, page_size = clamp_page(page, page_size)
    rows, total = user_svc.list_users(db, page, page_size, phone=phone)
    return ok(paged(dump_list(UserOut, rows), total, page, page_size))


@router.put("/users/{user_id}")
def update_user(user_id: int, body: UserPatch, db: Session = Depends(get_db)):
    user = user_svc.admin_update_user(db, user_id, _changes(body, nullable=("vip_expire_at",)))
    return ok(dump(UserOut, user))


# ---------- 订单 ----------

@router.post("/orders/{order_no}/paid")
def mark_order_paid(order_no: str, body: MarkPaidIn, db: Session = Depends(get_db)):
    return ok(dump(OrderOut, commerce_svc.mark_order_paid(db, order_no, body.pay_method)))
