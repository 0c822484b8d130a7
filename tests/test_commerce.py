# tests/test_commerce.py
"""下单与邀请码兑换：重复购买、邀请码用尽/过期/停用、paid 订单唯一索引。"""
from datetime import datetime, timedelta

import pytest

from conftest import auth, make_course, make_user
from hpa.core.errors import AppError, ErrorCode
from hpa.core.models import Course, InviteCode, Order
from hpa.core.models_user import UserRole
from hpa.services import commerce as commerce_svc


def _invite(db, course, max_uses=1, expire_at=None, is_active=True) -> InviteCode:
    ic = InviteCode(
        code="INV" + str(course.id) + "-" + str(max_uses) + "-" + str(datetime.now().timestamp()),
        course_id=course.id, max_uses=max_uses, expire_at=expire_at, is_active=is_active,
    )
    db.add(ic); db.commit(); db.refresh(ic)
    return ic


def test_redeem_until_exhausted(client, db):
    course = make_course(db)
    ic = _invite(db, course, max_uses=3)

    codes = []
    for _ in range(4):
        user = make_user(db)
        r = client.post("/api/v1/hpa/redeem", headers=auth(user), json={"code": ic.code})
        codes.append(r.json()["code"])

    assert codes == [0, 0, 0, 40012]
    db.expire_all()
    assert db.get(InviteCode, ic.id).used_count == 3
    assert db.get(Course, course.id).sales_count == 3
    orders = db.query(Order).filter(Order.course_id == course.id).all()
    assert len(orders) == 3
    assert all(o.status == "paid" and o.amount == 0 and o.pay_method == "invite_code" for o in orders)
    assert all(o.invite_code == ic.code and o.pay_time is not None for o in orders)


def test_redeem_rejections(client, db):
    course = make_course(db)
    user = make_user(db)

    expired = _invite(db, course, expire_at=datetime.now() - timedelta(days=1))
    r = client.post("/api/v1/hpa/redeem", headers=auth(user), json={"code": expired.code})
    assert r.status_code == 400
    assert r.json()["code"] == 40013

    inactive = _invite(db, course, max_uses=2, is_active=False)
    r = client.post("/api/v1/hpa/redeem", headers=auth(user), json={"code": inactive.code})
    assert r.json()["code"] == 40009

    r = client.post("/api/v1/hpa/redeem", headers=auth(user), json={"code": "NO-SUCH-CODE"})
    assert r.json()["code"] == 40009

    db.expire_all()
    assert db.get(InviteCode, expired.id).used_count == 0
    assert db.query(Order).filter(Order.user_id == user.id).count() == 0


def test_redeem_when_already_owned(client, db):
    course = make_course(db)
    user = make_user(db)
    ic = _invite(db, course, max_uses=5)

    assert client.post("/api/v1/hpa/redeem", headers=auth(user), json={"code": ic.code}).json()["code"] == 0
    r = client.post("/api/v1/hpa/redeem", headers=auth(user), json={"code": ic.code})
    assert r.status_code == 403
    assert r.json()["code"] == 40304

    db.expire_all()
    assert db.get(InviteCode, ic.id).used_count == 1


def test_create_order_and_list(client, db):
    course = make_course(db, price=128.0)
    user = make_user(db)

    r = client.post("/api/v1/hpa/orders", headers=auth(user), json={"course_id": course.id})
    assert r.status_code == 200, r.text
    order = r.json()["data"]
    assert order["status"] == "pending"
    assert order["amount"] == 128.0
    assert order["order_no"].startswith("ORD")

    r = client.get("/api/v1/hpa/orders", headers=auth(user))
    data = r.json()["data"]
    assert data["total"] == 1
    assert data["list"][0]["course"]["id"] == course.id


def test_create_order_missing_course(client, db):
    user = make_user(db)
    r = client.post("/api/v1/hpa/orders", headers=auth(user), json={"course_id": 999999})
    assert r.status_code == 404
    assert r.json()["code"] == 40403


def test_create_order_after_paid_is_rejected(client, db):
    course = make_course(db)
    user = make_user(db)
    admin = make_user(db, role=UserRole.admin)

    order_no = client.post("/api/v1/hpa/orders", headers=auth(user), json={"course_id": course.id}).json()["data"]["order_no"]
    r = client.post(f"/api/v1/admin/orders/{order_no}/paid", headers=auth(admin), json={"pay_method": "alipay"})
    assert r.json()["data"]["status"] == "paid"

    r = client.post("/api/v1/hpa/orders", headers=auth(user), json={"course_id": course.id})
    assert r.json()["code"] == 40304


def test_second_paid_order_violates_unique_index(db):
    course = make_course(db)
    user = make_user(db)
    a = commerce_svc.create_order(db, user.id, course.id)
    b = commerce_svc.create_order(db, user.id, course.id)

    commerce_svc.mark_order_paid(db, a.order_no, "wechat")
    with pytest.raises(AppError) as ei:
        commerce_svc.mark_order_paid(db, b.order_no, "wechat")
    assert ei.value.code == ErrorCode.ALREADY_PURCHASED

    db.expire_all()
    assert db.get(Order, b.id).status == "pending"
    assert db.get(Course, course.id).sales_count == 1


def test_paid_order_cannot_be_paid_again(db):
    course = make_course(db)
    user = make_user(db)
    order = commerce_svc.create_order(db, user.id, course.id)
    commerce_svc.mark_order_paid(db, order.order_no, "wechat")

    with pytest.raises(AppError) as ei:
        commerce_svc.mark_order_paid(db, order.order_no, "wechat")
    assert ei.value.code == ErrorCode.INVALID_PARAM
