# hpa/api/commerce.py
# -*- coding: utf-8 -*-
"""
订单 / 邀请码 / 下载 API（挂载在 /api/v1/hpa，全部必须登录）
------------------------------------
- POST /orders {course_id}：创建待支付订单（已购 → 40304）
- GET  /orders：我的订单（新到旧，内嵌课程）
- POST /redeem {code}：邀请码兑换，成功即得一笔 paid 订单
- POST /download {course_id, file_id?}：签发下载令牌
- GET  /download/{token}：核销令牌；绑定单个文件时 307 跳转到对象存储预签名地址，
  file_id = 0 时返回课程资源文件列表

引用库：
- FastAPI: APIRouter / Depends / RedirectResponse
- Pydantic: 入参模型校验
- 项目内模块：hpa.services.commerce / downloads / courses，hpa.infra.storage.get_storage
"""
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from hpa.core.context import Context, get_context
from hpa.core.response import clamp_page, ok, paged
from hpa.core.schemas import CourseFileOut, OrderOut, dump, dump_list
from hpa.infra.db import get_db
from hpa.infra.logger import emit
from hpa.infra.storage import get_storage
from hpa.services import commerce as commerce_svc
from hpa.services import courses as course_svc
from hpa.services import downloads as download_svc

router = APIRouter(tags=["commerce"])

PRESIGN_TTL = timedelta(hours=1)


class CreateOrderInput(BaseModel):
    course_id: int


class RedeemInput(BaseModel):
    code: str = Field(min_length=1, max_length=50)


class DownloadInput(BaseModel):
    course_id: int
    file_id: Optional[int] = 0


@router.post("/orders")
def create_order(body: CreateOrderInput, ctx: Context = Depends(get_context), db: Session = Depends(get_db)):
    order = commerce_svc.create_order(db, ctx.user_id, body.course_id)
    return ok(dump(OrderOut, order))


@router.get("/orders")
def list_orders(
    page: int = Query(default=1),
    page_size: int = Query(default=20),
    ctx: Context = Depends(get_context),
    db: Session = Depends(get_db),
):
    page, page_size = clamp_page(page, page_size)
    rows, total = commerce_svc.list_orders(db, ctx.user_id, page, page_size)
    return ok(paged(dump_list(OrderOut, rows), total, page, page_size))


@router.post("/redeem")
def redeem(body: RedeemInput, ctx: Context = Depends(get_context), db: Session = Depends(get_db)):
    order = commerce_svc.redeem_invite_code(db, ctx.user_id, body.code.strip())
    return ok(dump(OrderOut, order), message="兑换成功")


@router.post("/download")
def create_download(body: DownloadInput, ctx: Context = Depends(get_context), db: Session = Depends(get_db)):
    dl = download_svc.create_download_token(db, ctx.user_id, body.course_id, body.file_id or 0)
    return ok(download_svc.token_response(dl))


@router.get("/download/{token}")
def download(
    token: str,
    ctx: Context = Depends(get_context),
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
):
    dl = download_svc.validate_download_token(db, token, user_id=ctx.user_id)
    if dl.file_id:
        f = course_svc.get_course_file(db, dl.file_id)
        url = course_svc.presigned_file_url(storage, f, PRESIGN_TTL)
        emit("download_redirect", download_id=dl.id, file_id=f.id)
        return RedirectResponse(url, status_code=307)

    course = course_svc.get_course(db, dl.course_id)
    files = course_svc.list_course_files(db, course.id, file_type="resource")
    return ok({
        "course_id": course.id,
        "title": course.title,
        "files": dump_list(CourseFileOut, files),
    })
