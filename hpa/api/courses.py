# hpa/api/courses.py
"""
课程目录（挂载在 /api/v1/hpa，详情页登录可选）：
- GET /courses?page&page_size&sort：公开课程分页；sort ∈ newest / price_asc / price_desc / sales
- GET /courses/{slug}：课程详情 + purchased（仅登录时可能为真）+ Markdown 介绍 + 文件列表
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hpa.core.context import Context, get_optional_context
from hpa.core.response import clamp_page, ok, paged
from hpa.core.schemas import CourseFileOut, CourseOut, dump, dump_list
from hpa.infra.db import get_db
from hpa.infra.storage import get_storage
from hpa.services import courses as course_svc

router = APIRouter(tags=["courses"])


@router.get("/courses")
def list_courses(
    page: int = Query(default=1),
    page_size: int = Query(default=20),
    sort: str = Query(default="newest"),
    db: Session = Depends(get_db),
):
    page, page_size = clamp_page(page, page_size)
    rows, total = course_svc.list_courses(db, page, page_size, sort)
    return ok(paged(dump_list(CourseOut, rows), total, page, page_size))


@router.get("/courses/{slug}")
def get_course(
    slug: str,
    ctx: Optional[Context] = Depends(get_optional_context),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    detail = course_svc.course_detail(db, storage, slug, ctx.user_id if ctx else None)
    return ok({
        "course": dump(CourseOut, detail["course"]),
        "purchased": detail["purchased"],
        "intro_content": detail["intro_content"],
        "intro_files": dump_list(CourseFileOut, detail["intro_files"]),
        "resource_files": dump_list(CourseFileOut, detail["resource_files"]),
    })
