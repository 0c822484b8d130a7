# hpa/api/content.py
# -*- coding: utf-8 -*-
"""
内容浏览 API（挂载在 /api/v1/hpa）
------------------------------------
- GET /categories：顶级分类（带子分类）
- GET /notes：公开笔记分页，可按分类过滤
- GET /notes/{slug}：笔记详情；登录可选，登录时写浏览记录
- GET /history：当前用户浏览记录（必须登录）

分页参数统一走 clamp_page：page < 1 按 1，page_size 超出 1..50 回落到 20。
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hpa.core.context import Context, get_context, get_optional_context
from hpa.core.response import clamp_page, ok, paged
from hpa.core.schemas import BrowseHistoryOut, CategoryOut, NoteBrief, NoteOut, dump, dump_list
from hpa.infra.db import get_db
from hpa.services import content as content_svc

router = APIRouter(tags=["content"])


@router.get("/categories")
def list_categories(db: Session = Depends(get_db)):
    return ok(dump_list(CategoryOut, content_svc.list_categories(db)))


@router.get("/notes")
def list_notes(
    category_id: Optional[int] = Query(default=None),
    page: int = Query(default=1),
    page_size: int = Query(default=20),
    db: Session = Depends(get_db),
):
    page, page_size = clamp_page(page, page_size)
    rows, total = content_svc.list_notes(db, category_id, page, page_size)
    return ok(paged(dump_list(NoteBrief, rows), total, page, page_size))


@router.get("/notes/{slug}")
def get_note(
    slug: str,
    ctx: Optional[Context] = Depends(get_optional_context),
    db: Session = Depends(get_db),
):
    note = content_svc.view_note(db, slug, ctx.user_id if ctx else None)
    return ok(dump(NoteOut, note))


@router.get("/history")
def list_history(
    page: int = Query(default=1),
    page_size: int = Query(default=20),
    ctx: Context = Depends(get_context),
    db: Session = Depends(get_db),
):
    page, page_size = clamp_page(page, page_size)
    rows, total = content_svc.list_browse_history(db, ctx.user_id, page, page_size)
    return ok(paged(dump_list(BrowseHistoryOut, rows), total, page, page_size))
