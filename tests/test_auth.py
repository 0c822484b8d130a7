# tests/test_auth.py
"""验证码登录：首登注册、复用账号、验证码过期/已用、发码频控、禁用账号、JWT 负载。"""
from datetime import datetime, timedelta

import jwt
import pytest

from conftest import auth, latest_code, make_user, new_phone
from hpa.core.errors import AppError, ErrorCode
from hpa.core.models_user import User, UserRole, UserStatus, VerificationCode
from hpa.core.security import create_access_token
from hpa.services.users import admin_update_user


def _send(client, phone):
    return client.post("/api/v1/auth/send-code", json={"phone": phone})


def _login(client, phone, code):
    return client.post("/api/v1/auth/login", json={"phone": phone, "code": code})


def test_send_code_then_login_creates_user_and_claims(client, db):
    phone = new_phone()
    r = _send(client, phone)
    assert r.status_code == 200, r.text
    assert r.json()["code"] == 0

    r = _login(client, phone, latest_code(db, phone))
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    payload = jwt.decode(data["token"], "test-secret", algorithms=["HS256"])
    assert payload["role"] == "user"
    assert payload["user_id"] == data["user"]["id"]
    assert payload["phone"] == phone
    assert payload["username"].startswith("user_")
    assert payload["exp"] - payload["iat"] == 168 * 3600

    assert data["user"]["nickname"] == "用户" + phone[-4:]
    assert db.query(User).filter(User.phone == phone).count() == 1


def test_second_login_reuses_user(client, db):
    phone = new_phone()
    _send(client, phone)
    first = _login(client, phone, latest_code(db, phone)).json()["data"]["user"]["id"]

    # 绕过 60 秒发码间隔：把上一条验证码的创建时间往前推
    db.query(VerificationCode).filter(VerificationCode.phone == phone).update(
        {VerificationCode.created_at: datetime.now() - timedelta(minutes=2)},
        synchronize_session=False,
    )
    db.commit()
    _send(client, phone)
    second = _login(client, phone, latest_code(db, phone)).json()["data"]["user"]["id"]

    assert first == second
    assert db.query(User).filter(User.phone == phone).count() == 1


def test_send_code_twice_within_window_is_throttled(client):
    phone = new_phone()
    assert _send(client, phone).status_code == 200
    r = _send(client, phone)
    assert r.status_code == 429
    assert r.json()["code"] == 40010


def test_used_code_is_rejected(client, db):
    phone = new_phone()
    _send(client, phone)
    code = latest_code(db, phone)
    assert _login(client, phone, code).status_code == 200

    r = _login(client, phone, code)
    assert r.status_code == 400
    assert r.json()["code"] == 40007


def test_expired_code_is_rejected(client, db):
    phone = new_phone()
    _send(client, phone)
    code = latest_code(db, phone)
    db.query(VerificationCode).filter(VerificationCode.phone == phone).update(
        {VerificationCode.expire_at: datetime.now() - timedelta(seconds=1)},
        synchronize_session=False,
    )
    db.commit()

    r = _login(client, phone, code)
    assert r.json()["code"] == 40007
    assert db.query(User).filter(User.phone == phone).count() == 0


def test_invalid_phone_and_code_format(client):
    r = _send(client, "12345")
    assert r.status_code == 400
    assert r.json()["code"] == 40001

    r = _login(client, new_phone(), "12")
    assert r.json()["code"] == 40001


def test_banned_user_cannot_login(client, db):
    user = make_user(db, status=UserStatus.banned)
    _send(client, user.phone)
    r = _login(client, user.phone, latest_code(db, user.phone))
    assert r.status_code == 403
    assert r.json()["code"] == 40301


def test_profile_requires_token(client):
    r = client.get("/api/v1/user/profile")
    assert r.status_code == 401
    assert r.json() == {"code": 40005, "message": "未提供认证信息", "data": None}


def test_profile_get_and_update(client, db):
    user = make_user(db)
    r = client.get("/api/v1/user/profile", headers=auth(user))
    assert r.json()["data"]["phone"] == user.phone

    r = client.put("/api/v1/user/profile", headers=auth(user), json={"nickname": "新昵称", "avatar": ""})
    assert r.status_code == 200
    body = r.json()["data"]
    assert body["nickname"] == "新昵称"
    assert body["avatar"] == ""


def test_unknown_role_in_token_is_rejected(client, db):
    user = make_user(db)
    token = create_access_token({"sub": str(user.id), "user_id": user.id, "role": "root"})
    r = client.get("/api/v1/user/profile", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["code"] == 40005


def test_bad_signature_is_rejected(client, db):
    user = make_user(db)
    token = jwt.encode({"user_id": user.id, "role": "user"}, "other-secret", algorithm="HS256")
    r = client.get("/api/v1/user/profile", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_admin_gate(client, db):
    user = make_user(db)
    r = client.get("/api/v1/admin/users", headers=auth(user))
    assert r.status_code == 403
    assert r.json()["code"] == 40302

    admin = make_user(db, role=UserRole.admin)
    r = client.get("/api/v1/admin/users", params={"phone": user.phone}, headers=auth(admin))
    assert r.status_code == 200
    assert [u["id"] for u in r.json()["data"]["list"]] == [user.id]


def test_admin_updates_user_flags(client, db):
    admin = make_user(db, role=UserRole.admin)
    user = make_user(db)
    r = client.put(f"/api/v1/admin/users/{user.id}", headers=auth(admin),
                   json={"role": "vip", "can_download": True})
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["role"] == "vip"
    assert data["can_download"] is True
    assert data["status"] == "active"


def test_admin_user_update_null_fields(client, db):
    admin = make_user(db, role=UserRole.admin)
    user = make_user(db, role=UserRole.vip)
    url = f"/api/v1/admin/users/{user.id}"

    r = client.put(url, headers=auth(admin), json={"vip_expire_at": "2099-01-01T00:00:00"})
    assert r.json()["data"]["vip_expire_at"].startswith("2099-01-01")

    r = client.put(url, headers=auth(admin), json={"role": None, "status": None, "can_download": None})
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert (data["role"], data["status"], data["can_download"]) == ("vip", "active", False)
    assert data["vip_expire_at"].startswith("2099-01-01")

    r = client.put(url, headers=auth(admin), json={"vip_expire_at": None})
    assert r.json()["data"]["vip_expire_at"] is None
    assert r.json()["data"]["role"] == "vip"


def test_admin_update_user_service_rejects_null_role(db):
    user = make_user(db)
    with pytest.raises(AppError) as exc:
        admin_update_user(db, user.id, {"role": None})
    assert exc.value.code == ErrorCode.INVALID_PARAM
