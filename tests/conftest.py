"""使用临时 SQLite 文件库；

环境变量在导入应用之前设置（DATABASE_URL / LOG_TO_FILE / JWT_SECRET / 限流阈值 / 短信通道）；

对象存储用内存字典替换（dependency_overrides[get_storage]）；

提供造用户、签 token、收验证码等小工具。"""
# tests/conftest.py
import io
import itertools
import os
import time

import pytest
import urllib3

ts = int(time.time())
os.environ["DATABASE_URL"] = f"sqlite:///./pytest_hpa_{ts}.db"
os.environ["LOG_TO_FILE"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["SMS_PROVIDER"] = "log"

from fastapi.testclient import TestClient  # noqa: E402

from hpa.main import app  # noqa: E402
from hpa.infra.db import SessionLocal, init_db  # noqa: E402
from hpa.infra.storage import get_storage  # noqa: E402
from hpa.core.models import Course  # noqa: E402
from hpa.core.models_user import User, UserRole, UserStatus, VerificationCode  # noqa: E402
from hpa.services.users import token_for  # noqa: E402

_seq = itertools.count(1)


def uniq(prefix: str) -> str:
    return f"{prefix}-{ts}-{next(_seq)}"


def new_phone() -> str:
    return f"139{(ts + next(_seq) * 7919) % 10 ** 8:08d}"


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.fail_reads = False
        self.fail_removes = False

    def put(self, key, data, length, content_type):
        self.objects[key] = data.read()

    def remove(self, key):
        if self.fail_removes:
            raise urllib3.exceptions.HTTPError("storage down")
        self.objects.pop(key, None)

    def read_text(self, key):
        if self.fail_reads:
            raise urllib3.exceptions.HTTPError("storage down")
        return self.objects[key].decode("utf-8")

    def presigned_url(self, key, expires):
        return f"http://storage.local/hpa/{key}?X-Amz-Expires={int(expires.total_seconds())}"


@pytest.fixture(scope="session")
def client():
    init_db()
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def storage():
    fake = FakeStorage()
    app.dependency_overrides[get_storage] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_storage, None)


@pytest.fixture()
def db():
    init_db()
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


def make_user(db, role=UserRole.user, can_download=False, status=UserStatus.active) -> User:
    phone = new_phone()
    u = User(
        phone=phone, username=uniq("u"), nickname="测试",
        role=role, status=status, can_download=can_download,
    )
    db.add(u); db.commit(); db.refresh(u)
    return u


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


def make_course(db, price=99.0, is_public=True) -> Course:
    c = Course(title="课程", slug=uniq("course"), price=price, is_public=is_public)
    db.add(c); db.commit(); db.refresh(c)
    return c


def latest_code(db, phone: str) -> str:
    db.expire_all()
    vc = (db.query(VerificationCode)
          .filter(VerificationCode.phone == phone)
          .order_by(VerificationCode.id.desc())
          .first())
    return vc.code


def upload(client, admin, course_id, file_type, name, content: bytes):
    return client.post(
        f"/api/v1/admin/courses/{course_id}/files",
        headers=auth(admin),
        data={"file_type": file_type},
        files={"file": (name, io.BytesIO(content), "application/octet-stream")},
    )
