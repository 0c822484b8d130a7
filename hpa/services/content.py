"""
模块职能：
- 分类树、笔记浏览（浏览量 +1、登录用户写浏览记录）、浏览记录分页，以及管理端分类/笔记 CRUD。

日志：
- note_viewed / category_created / category_updated / category_deleted /
  note_created / note_updated / note_deleted
"""
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hpa.core.errors import AppError, ErrorCode
from hpa.core.models import BrowseHistory, Category, Note
from hpa.infra.logger import emit


def _ensure_slug_free(db: Session, model, slug: Optional[str], what: str, own_id: Optional[int] = None):
    if not slug:
        return
    q = db.query(model.id).filter(model.slug == slug)
    if own_id is not None:
        q = q.filter(model.id != own_id)
    if q.first():
        raise AppError(ErrorCode.INVALID_PARAM, f"{what} slug 已存在")


def _commit(db: Session):
    """提交；并发写入撞上唯一键或非空约束时转换为参数错误。"""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AppError(ErrorCode.INVALID_PARAM, "数据与已有记录冲突或缺少必填字段")


# ---------- Category ----------

def list_categories(db: Session) -> List[Category]:
    return (db.query(Category)
            .filter(Category.parent_id.is_(None))
            .order_by(Category.sort.asc(), Category.id.asc())
            .all())


def get_category(db: Session, category_id: int) -> Category:
    cat = db.get(Category, category_id)
    if not cat:
        raise AppError(ErrorCode.NOT_FOUND, "分类不存在")
    return cat


def _check_parent(db: Session, category_id: Optional[int], parent_id: Optional[int]):
    """父分类必须存在，且不能是自己或自己的后代（沿祖先链向上查）。"""
    if parent_id is None:
        return
    if category_id is not None and parent_id == category_id:
        raise AppError(ErrorCode.INVALID_PARAM, "父分类不能是自己")
    node = get_category(db, parent_id)
    if category_id is None:
        return
    seen = set()
    while node.parent_id is not None and node.parent_id not in seen:
        if node.parent_id == category_id:
            raise AppError(ErrorCode.INVALID_PARAM, "父分类不能是自己的子分类")
        seen.add(node.parent_id)
        node = get_category(db, node.parent_id)


def create_category(db: Session, data: Dict) -> Category:
    _check_parent(db, None, data.get("parent_id"))
    _ensure_slug_free(db, Category, data.get("slug"), "分类")
    cat = Category(**data)
    db.add(cat)
    _commit(db)
    db.refresh(cat)
    emit("category_created", category_id=cat.id, slug=cat.slug)
    return cat


def update_category(db: Session, category_id: int, data: Dict) -> Category:
    cat = get_category(db, category_id)
    _check_parent(db, category_id, data.get("parent_id"))
    _ensure_slug_free(db, Category, data.get("slug"), "分类", own_id=category_id)
    for k, v in data.items():
        setattr(cat, k, v)
    _commit(db)
    db.refresh(cat)
    emit("category_updated", category_id=cat.id)
    return cat


def delete_category(db: Session, category_id: int):
    cat = get_category(db, category_id)
    has_children = db.query(Category).filter(Category.parent_id == category_id).count() > 0
    has_notes = db.query(Note).filter(Note.category_id == category_id).count() > 0
    if has_children or has_notes:
        raise AppError(ErrorCode.INVALID_PARAM, "分类下仍有子分类或笔记")
    db.delete(cat); db.commit()
    emit("category_deleted", category_id=category_id)


# ---------- Note ----------

def list_notes(db: Session, category_id: Optional[int], page: int, page_size: int,
               include_private: bool = False) -> Tuple[List[Note], int]:
    q = db.query(Note)
    if not include_private:
        q = q.filter(Note.is_public.is_(True))
    if category_id:
        q = q.filter(Note.category_id == category_id)
    total = q.count()
    rows = (q.order_by(Note.sort.desc(), Note.created_at.desc(), Note.id.desc())
             .offset((page - 1) * page_size).limit(page_size).all())
    return rows, total


def get_note(db: Session, note_id: int) -> Note:
    note = db.get(Note, note_id)
    if not note:
        raise AppError(ErrorCode.NOT_FOUND, "笔记不存在")
    return note


def view_note(db: Session, slug: str, user_id: Optional[int] = None) -> Note:
    """读取公开笔记：浏览量原子 +1；传入 user_id 时记录浏览历史。"""
    note = db.query(Note).filter(Note.slug == slug, Note.is_public.is_(True)).first()
    if not note:
        raise AppError(ErrorCode.NOT_FOUND, "笔记不存在")

    db.query(Note).filter(Note.id == note.id).update(
        {Note.view_count: Note.view_count + 1}, synchronize_session=False,
    )
    if user_id:
        db.add(BrowseHistory(user_id=user_id, note_id=note.id))
    db.commit()
    db.refresh(note)
    emit("note_viewed", note_id=note.id, user_id=user_id)
    return note


def create_note(db: Session, data: Dict) -> Note:
    get_category(db, data["category_id"])
    _ensure_slug_free(db, Note, data.get("slug"), "笔记")
    note = Note(**data)
    db.add(note)
    _commit(db)
    db.refresh(note)
    emit("note_created", note_id=note.id, slug=note.slug)
    return note


def update_note(db: Session, note_id: int, data: Dict) -> Note:
    note = get_note(db, note_id)
    if "category_id" in data:
        get_category(db, data["category_id"])
    _ensure_slug_free(db, Note, data.get("slug"), "笔记", own_id=note_id)
    for k, v in data.items():
        setattr(note, k, v)
    _commit(db)
    db.refresh(note)
    emit("note_updated", note_id=note.id)
    return note


def delete_note(db: Session, note_id: int):
    note = get_note(db, note_id)
    db.query(BrowseHistory).filter(BrowseHistory.note_id == note_id).delete(synchronize_session=False)
    db.delete(note); db.commit()
    emit("note_deleted", note_id=note_id)


# ---------- BrowseHistory ----------

def list_browse_history(db: Session, user_id: int, page: int, page_size: int) -> Tuple[List[BrowseHistory], int]:
    q = db.query(BrowseHistory).filter(BrowseHistory.user_id == user_id)
    total = q.count()
    rows = (q.order_by(BrowseHistory.created_at.desc(), BrowseHistory.id.desc())
             .offset((page - 1) * page_size).limit(page_size).all())
    return rows, total
