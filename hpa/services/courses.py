"""
模块职能：
- 课程列表/详情（详情带 purchased 标记、Markdown 介绍、intro/resource 文件）
- 管理端课程 CRUD、课程文件上传/删除（对象存储 + 记录）、邀请码创建与列表

日志：
- course_created / course_updated / course_deleted / course_file_uploaded /
  course_file_deleted / invite_code_created / course_intro_unavailable
"""
import os
from datetime import datetime
from typing import BinaryIO, Dict, List, Optional, Tuple

import urllib3
from minio.error import S3Error
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hpa.core.errors import AppError, ErrorCode
from hpa.core.models import Course, CourseFile, InviteCode, Order
from hpa.core.security import random_hex
from hpa.infra.logger import emit, emit_error
from hpa.services.commerce import has_paid_order

SORTS = {
    "newest": (Course.created_at.desc(), Course.id.desc()),
    "price_asc": (Course.price.asc(), Course.id.asc()),
    "price_desc": (Course.price.desc(), Course.id.desc()),
    "sales": (Course.sales_count.desc(), Course.id.desc()),
}
FILE_TYPES = ("intro", "resource")
CONTENT_TYPES = {
    ".md": "text/markdown; charset=utf-8",
    ".zip": "application/zip",
    ".pdf": "application/pdf",
    ".mp4": "video/mp4",
}

STORAGE_ERRORS = (S3Error, urllib3.exceptions.HTTPError)


# ---------- Course ----------

def list_courses(db: Session, page: int, page_size: int, sort: str = "newest",
                 include_private: bool = False) -> Tuple[List[Course], int]:
    q = db.query(Course)
    if not include_private:
        q = q.filter(Course.is_public.is_(True))
    total = q.count()
    order_by = SORTS.get(sort, SORTS["newest"])
    rows = q.order_by(*order_by).offset((page - 1) * page_size).limit(page_size).all()
    return rows, total


def get_course(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if not course:
        raise AppError(ErrorCode.COURSE_NOT_FOUND)
    return course


def get_public_course_by_slug(db: Session, slug: str) -> Course:
    course = db.query(Course).filter(Course.slug == slug, Course.is_public.is_(True)).first()
    if not course:
        raise AppError(ErrorCode.COURSE_NOT_FOUND)
    return course


def read_intro(storage, course: Course) -> str:
    """介绍文件读不到时返回空串，详情页照常展示。"""
    if not course.intro_path:
        return ""
    try:
        return storage.read_text(course.intro_path)
    except STORAGE_ERRORS as e:
        emit_error("course_intro_unavailable", course_id=course.id, key=course.intro_path, error=str(e))
        return ""


def course_detail(db: Session, storage, slug: str, user_id: Optional[int]) -> Dict:
    course = get_public_course_by_slug(db, slug)
    purchased = bool(user_id) and has_paid_order(db, user_id, course.id)
    files = list(course.files)
    return {
        "course": course,
        "purchased": purchased,
        "intro_content": read_intro(storage, course),
        "intro_files": [f for f in files if f.file_type == "intro"],
        "resource_files": [f for f in files if f.file_type == "resource"],
    }


def _ensure_slug_free(db: Session, slug: Optional[str], own_id: Optional[int] = None):
    if not slug:
        return
    q = db.query(Course.id).filter(Course.slug == slug)
    if own_id is not None:
        q = q.filter(Course.id != own_id)
    if q.first():
        raise AppError(ErrorCode.INVALID_PARAM, "课程 slug 已存在")


def _commit_course(db: Session):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AppError(ErrorCode.INVALID_PARAM, "课程数据与已有记录冲突或缺少必填字段")


def create_course(db: Session, data: Dict) -> Course:
    _ensure_slug_free(db, data.get("slug"))
    course = Course(**data)
    db.add(course)
    _commit_course(db)
    db.refresh(course)
    emit("course_created", course_id=course.id, slug=course.slug)
    return course


def update_course(db: Session, course_id: int, data: Dict) -> Course:
    course = get_course(db, course_id)
    _ensure_slug_free(db, data.get("slug"), own_id=course_id)
    for k, v in data.items():
        setattr(course, k, v)
    _commit_course(db)
    db.refresh(course)
    emit("course_updated", course_id=course.id)
    return course


def delete_course(db: Session, storage, course_id: int):
    course = get_course(db, course_id)
    if db.query(Order).filter(Order.course_id == course_id).count() > 0:
        raise AppError(ErrorCode.INVALID_PARAM, "课程已有订单，不能删除")
    keys = [f.file_path for f in course.files]
    # 记录先提交；之后对象删不掉只记日志，留下的是孤儿对象
    db.delete(course); db.commit()
    emit("course_deleted", course_id=course_id, files=len(keys))
    for key in keys:
        _discard_object(storage, key)


# ---------- CourseFile ----------

def list_course_files(db: Session, course_id: int, file_type: Optional[str] = None) -> List[CourseFile]:
    q = db.query(CourseFile).filter(CourseFile.course_id == course_id)
    if file_type:
        q = q.filter(CourseFile.file_type == file_type)
    return q.order_by(CourseFile.sort.asc(), CourseFile.id.asc()).all()


def get_course_file(db: Session, file_id: int) -> CourseFile:
    f = db.get(CourseFile, file_id)
    if not f:
        raise AppError(ErrorCode.NOT_FOUND, "文件不存在")
    return f


def object_key(course_id: int, file_type: str, filename: str) -> str:
    base, ext = os.path.splitext(os.path.basename(filename))
    millis = int(datetime.now().timestamp() * 1000)
    return f"courses/{course_id}/{file_type}/{base}_{millis}{ext}"


def _discard_object(storage, key: str) -> bool:
    """清理用：删除失败只记日志，返回是否删除成功。"""
    try:
        storage.remove(key)
        return True
    except STORAGE_ERRORS as e:
        emit_error("storage_orphan_object", key=key, error=str(e))
        return False


def _remove_object(storage, key: str):
    try:
        storage.remove(key)
    except STORAGE_ERRORS as e:
        emit_error("storage_remove_failed", key=key, error=str(e))
        raise AppError(ErrorCode.INTERNAL_ERROR, "删除文件失败")


def upload_course_file(db: Session, storage, course_id: int, file_type: str,
                       filename: str, data: BinaryIO) -> CourseFile:
    if file_type not in FILE_TYPES:
        raise AppError(ErrorCode.INVALID_PARAM, "文件类型无效")
    if not filename:
        raise AppError(ErrorCode.INVALID_PARAM, "请选择文件")
    course = get_course(db, course_id)

    data.seek(0, os.SEEK_END)
    size = data.tell()
    data.seek(0)

    key = object_key(course_id, file_type, filename)
    ext = os.path.splitext(filename)[1].lower()
    try:
        storage.put(key, data, size, CONTENT_TYPES.get(ext, "application/octet-stream"))
    except STORAGE_ERRORS as e:
        emit_error("storage_put_failed", key=key, error=str(e))
        raise AppError(ErrorCode.INTERNAL_ERROR, "上传文件失败")

    max_sort = (db.query(func.max(CourseFile.sort))
                .filter(CourseFile.course_id == course_id).scalar()) or 0
    cf = CourseFile(
        course_id=course_id, file_type=file_type, file_name=filename,
        file_path=key, file_size=size, sort=max_sort + 1,
    )
    db.add(cf)
    if file_type == "intro":
        course.intro_path = key
    try:
        db.commit()
    except Exception:
        # 记录写失败时把刚上传的对象删掉
        db.rollback()
        _discard_object(storage, key)
        raise
    db.refresh(cf)
    emit("course_file_uploaded", course_id=course_id, file_id=cf.id, file_type=file_type, size=size)
    return cf


def delete_course_file(db: Session, storage, file_id: int):
    f = get_course_file(db, file_id)
    _remove_object(storage, f.file_path)
    course = db.get(Course, f.course_id)
    if course and course.intro_path == f.file_path:
        course.intro_path = ""
    db.delete(f); db.commit()
    emit("course_file_deleted", file_id=file_id)


def presigned_file_url(storage, f: CourseFile, expires) -> str:
    try:
        return storage.presigned_url(f.file_path, expires)
    except STORAGE_ERRORS as e:
        emit_error("storage_presign_failed", file_id=f.id, error=str(e))
        raise AppError(ErrorCode.NOT_FOUND, "文件不存在")


# ---------- InviteCode ----------

def create_invite_code(db: Session, course_id: int, max_uses: int,
                       expire_at: Optional[datetime]) -> InviteCode:
    get_course(db, course_id)
    ic = InviteCode(
        code="INV" + random_hex(8),
        course_id=course_id,
        max_uses=max_uses if max_uses > 0 else 1,
        expire_at=expire_at,
        is_active=True,
    )
    db.add(ic); db.commit(); db.refresh(ic)
    emit("invite_code_created", invite_code_id=ic.id, course_id=course_id, max_uses=ic.max_uses)
    return ic


def list_invite_codes(db: Session, page: int, page_size: int) -> Tuple[List[InviteCode], int]:
    q = db.query(InviteCode)
    total = q.count()
    rows = (q.order_by(InviteCode.created_at.desc(), InviteCode.id.desc())
             .offset((page - 1) * page_size).limit(page_size).all())
    return rows, total


def set_invite_code_active(db: Session, invite_code_id: int, is_active: bool) -> InviteCode:
    ic = db.get(InviteCode, invite_code_id)
    if not ic:
        raise AppError(ErrorCode.NOT_FOUND, "邀请码不存在")
    ic.is_active = is_active
    db.commit(); db.refresh(ic)
    emit("invite_code_toggled", invite_code_id=ic.id, is_active=is_active)
    return ic
