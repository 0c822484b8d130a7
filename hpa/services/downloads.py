"""
模块职能：
- 下载令牌的签发与核销。

签发 create_download_token：
1) 课程存在；指定 file_id 时文件必须属于该课程
2) 有该课程的 paid 订单，或用户 can_download 为真
3) 每人每天（本地零点起）最多 3 个
4) secrets.token_urlsafe 生成随机令牌，24 小时有效

核销 validate_download_token：
- 不存在 → 40401；过期 → 40003；已用 → 40004
- 条件更新 used=false → true，受影响行数为 0 同样视为已用（并发时只有一方成功）

已知竞态：每日配额是先计数后插入，同一用户并发请求可能多签发。
"""
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from hpa.core.errors import AppError, ErrorCode
from hpa.core.models import Course, CourseFile, Download
from hpa.core.models_user import User
from hpa.infra.logger import emit
from hpa.services.commerce import has_paid_order

DAILY_LIMIT = 3
TOKEN_TTL = timedelta(hours=24)
DOWNLOAD_PATH = "/api/v1/hpa/download/"


def _today_start(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def can_download(db: Session, user: User, course_id: int) -> bool:
    return bool(user.can_download) or has_paid_order(db, user.id, course_id)


def create_download_token(db: Session, user_id: int, course_id: int, file_id: int = 0) -> Download:
    course = db.get(Course, course_id)
    if not course:
        raise AppError(ErrorCode.COURSE_NOT_FOUND)
    if file_id:
        f = db.get(CourseFile, file_id)
        if not f or f.course_id != course_id:
            raise AppError(ErrorCode.NOT_FOUND, "文件不存在")

    user = db.get(User, user_id)
    if not user:
        raise AppError(ErrorCode.USER_NOT_FOUND)
    if not can_download(db, user, course_id):
        emit("download_denied", user_id=user_id, course_id=course_id)
        raise AppError(ErrorCode.FORBIDDEN, "请先购买课程")

    now = datetime.now()
    issued_today = (db.query(Download)
                    .filter(Download.user_id == user_id, Download.created_at >= _today_start(now))
                    .count())
    if issued_today >= DAILY_LIMIT:
        emit("download_quota_exceeded", user_id=user_id, issued_today=issued_today)
        raise AppError(ErrorCode.RATE_LIMIT_EXCEEDED, "今日下载次数已用完")

    dl = Download(
        user_id=user_id,
        course_id=course_id,
        file_id=file_id or 0,
        token=secrets.token_urlsafe(24),
        expire_at=now + TOKEN_TTL,
        used=False,
        created_at=now,
    )
    db.add(dl); db.commit(); db.refresh(dl)
    emit("download_token_issued", user_id=user_id, course_id=course_id, file_id=dl.file_id, download_id=dl.id)
    return dl


def token_response(dl: Download) -> dict:
    return {
        "token": dl.token,
        "expire_in": int(TOKEN_TTL.total_seconds()),
        "download_url": DOWNLOAD_PATH + dl.token,
    }


def validate_download_token(db: Session, token: str, user_id: Optional[int] = None) -> Download:
    """校验并核销令牌；传入 user_id 时令牌必须属于该用户（不符时不消耗令牌）。"""
    dl = db.query(Download).filter(Download.token == token).first()
    if not dl:
        raise AppError(ErrorCode.NOT_FOUND, "下载链接不存在")
    if user_id is not None and dl.user_id != user_id:
        emit("download_token_foreign", download_id=dl.id, user_id=user_id)
        raise AppError(ErrorCode.FORBIDDEN)
    if dl.expire_at < datetime.now():
        raise AppError(ErrorCode.DOWNLOAD_EXPIRED)
    if dl.used:
        raise AppError(ErrorCode.DOWNLOAD_USED)

    claimed = (db.query(Download)
               .filter(Download.id == dl.id, Download.used.is_(False))
               .update({Download.used: True}, synchronize_session=False))
    db.commit()
    if claimed != 1:
        raise AppError(ErrorCode.DOWNLOAD_USED)
    db.refresh(dl)
    emit("download_token_used", download_id=dl.id, user_id=dl.user_id, course_id=dl.course_id)
    return dl
