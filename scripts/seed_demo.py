"""
种子脚本：创建管理员（ADMIN_PHONE）与一套演示数据（分类 / 笔记 / 课程 / 邀请码），已存在则跳过。
可作为脚本执行，也可被测试直接导入调用（提供 run()）。
"""
# scripts/seed_demo.py
import os
import sys

# 确保脚本在控制台有输出；不影响主服务的日志设置
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("PYTHONUNBUFFERED", "1")

from sqlalchemy.orm import Session  # noqa: E402
from hpa.infra.db import SessionLocal, init_db  # noqa: E402
from hpa.infra.logger import emit  # noqa: E402
from hpa.core.models import Category, Course, InviteCode, Note  # noqa: E402
from hpa.core.models_user import User, UserRole, UserStatus  # noqa: E402

DEMO_INVITE_CODE = "INVDEMO0001"


def _get_env(k: str, default: str) -> str:
    v = os.getenv(k)
    return v if v is not None and v != "" else default


def upsert_admin(db: Session, phone: str) -> User:
    u = db.query(User).filter(User.phone == phone).first()
    if u:
        action = "updated"
        u.role = UserRole.admin
        u.status = UserStatus.active
    else:
        action = "created"
        u = User(
            phone=phone, username="admin", nickname="管理员",
            role=UserRole.admin, status=UserStatus.active, can_download=True,
        )
        db.add(u)
    db.flush()
    emit("seed_admin_upsert", user_id=u.id, action=action)
    print(f"[seed_demo] {action} admin: {phone}", flush=True)
    return u


def _get_or_add(db: Session, model, slug: str, **fields):
    row = db.query(model).filter(model.slug == slug).first()
    if row:
        return row, False
    row = model(slug=slug, **fields)
    db.add(row)
    db.flush()
    return row, True


def seed_content(db: Session):
    cat, created = _get_or_add(db, Category, "getting-started", name="入门", sort=1)
    _get_or_add(db, Category, "advanced", name="进阶", parent_id=cat.id, sort=1)
    _get_or_add(
        db, Note, "welcome",
        category_id=cat.id, title="欢迎", summary="平台使用说明",
        content="# 欢迎\n\n从这里开始浏览笔记与课程。",
    )
    emit("seed_content", category_id=cat.id, created=created)


def seed_course(db: Session):
    course, created = _get_or_add(
        db, Course, "demo-course",
        title="演示课程", description="用于联调的演示课程", price=99.0, orig_price=199.0,
    )
    if not db.query(InviteCode).filter(InviteCode.code == DEMO_INVITE_CODE).first():
        db.add(InviteCode(code=DEMO_INVITE_CODE, course_id=course.id, max_uses=10))
    emit("seed_course", course_id=course.id, created=created)
    print(f"[seed_demo] course: {course.slug} (invite {DEMO_INVITE_CODE})", flush=True)


def run():
    emit("seed_begin")
    print("[seed_demo] seeding ...", flush=True)
    init_db()

    with SessionLocal() as db:
        upsert_admin(db, _get_env("ADMIN_PHONE", "13800000000"))
        seed_content(db)
        seed_course(db)
        db.commit()

    emit("seed_done", status="ok")
    print("[seed_demo] done.", flush=True)


if __name__ == "__main__":
    try:
        run()
        sys.exit(0)
    except Exception as e:
        emit("seed_error", error=str(e))
        print(f"[seed_demo] ERROR: {e}", file=sys.stderr, flush=True)
        sys.exit(1)
