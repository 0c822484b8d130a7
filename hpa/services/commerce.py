"""模块职能：

购买与邀请码兑换：

create_order(db, user_id, course_id)：已有 paid 订单则 40304；否则按现价建 pending 订单

redeem_invite_code(db, user_id, code)：校验邀请码 → 单事务内
  条件递增 used_count（used_count < max_uses 才更新）+ 插入 paid 订单 + 课程销量 +1

mark_order_paid(db, order_no, pay_method)：外部支付结算回写（按状态机迁移）

并发约束：
- 同一用户同一课程的 paid 订单由部分唯一索引兜底，冲突一律转换为 40304
- 邀请码用量只经条件更新递增，受影响行数为 0 即视为已用完

日志：
- order_created / order_paid / invite_redeem_rejected / invite_redeemed"""
from datetime import datetime
from typing import List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hpa.core.errors import AppError, ErrorCode
from hpa.core.models import Course, InviteCode, Order
from hpa.core.security import random_hex
from hpa.core.state_machine import OrderStatus, can_transit
from hpa.infra.logger import emit

INVITE_PAY_METHOD = "invite_code"


def generate_order_no() -> str:
    return f"ORD{int(datetime.now().timestamp() * 1000)}{random_hex(6)}"


def has_paid_order(db: Session, user_id: int, course_id: int) -> bool:
    return (db.query(Order)
            .filter(Order.user_id == user_id,
                    Order.course_id == course_id,
                    Order.status == OrderStatus.PAID.value)
            .count()) > 0


def create_order(db: Session, user_id: int, course_id: int) -> Order:
    course = db.get(Course, course_id)
    if not course:
        raise AppError(ErrorCode.COURSE_NOT_FOUND)
    if has_paid_order(db, user_id, course_id):
        raise AppError(ErrorCode.ALREADY_PURCHASED)

    order = Order(
        order_no=generate_order_no(),
        user_id=user_id,
        course_id=course_id,
        amount=course.price,
        status=OrderStatus.PENDING.value,
    )
    db.add(order); db.commit(); db.refresh(order)
    emit("order_created", user_id=user_id, course_id=course_id, order_no=order.order_no, amount=order.amount)
    return order


def list_orders(db: Session, user_id: int, page: int, page_size: int) -> Tuple[List[Order], int]:
    q = db.query(Order).filter(Order.user_id == user_id)
    total = q.count()
    rows = (q.order_by(Order.created_at.desc(), Order.id.desc())
             .offset((page - 1) * page_size).limit(page_size).all())
    return rows, total


def _bump_sales(db: Session, course_id: int):
    db.query(Course).filter(Course.id == course_id).update(
        {Course.sales_count: Course.sales_count + 1}, synchronize_session=False,
    )


def mark_order_paid(db: Session, order_no: str, pay_method: str) -> Order:
    order = db.query(Order).filter(Order.order_no == order_no).first()
    if not order:
        raise AppError(ErrorCode.NOT_FOUND, "订单不存在")
    if not can_transit(OrderStatus(order.status), OrderStatus.PAID):
        raise AppError(ErrorCode.INVALID_PARAM, f"订单状态 {order.status} 不能支付")

    order.status = OrderStatus.PAID.value
    order.pay_method = pay_method
    order.pay_time = datetime.now()
    _bump_sales(db, order.course_id)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AppError(ErrorCode.ALREADY_PURCHASED)
    db.refresh(order)
    emit("order_paid", order_no=order_no, user_id=order.user_id, course_id=order.course_id, pay_method=pay_method)
    return order


def _check_invite(ic: InviteCode, now: datetime):
    if not ic.is_active:
        raise AppError(ErrorCode.INVALID_INVITE, "邀请码已失效")
    if ic.used_count >= ic.max_uses:
        raise AppError(ErrorCode.INVITE_EXHAUSTED)
    if ic.expire_at is not None and ic.expire_at < now:
        raise AppError(ErrorCode.INVITE_EXPIRED)


def redeem_invite_code(db: Session, user_id: int, code: str) -> Order:
    now = datetime.now()
    ic = db.query(InviteCode).filter(InviteCode.code == code).first()
    if not ic:
        emit("invite_redeem_rejected", user_id=user_id, reason="not_found")
        raise AppError(ErrorCode.INVALID_INVITE)
    try:
        _check_invite(ic, now)
        if has_paid_order(db, user_id, ic.course_id):
            raise AppError(ErrorCode.ALREADY_PURCHASED, "您已拥有该课程")
    except AppError as e:
        emit("invite_redeem_rejected", user_id=user_id, invite_code_id=ic.id, code=int(e.code))
        raise

    try:
        claimed = (db.query(InviteCode)
                   .filter(InviteCode.id == ic.id,
                           InviteCode.is_active.is_(True),
                           InviteCode.used_count < InviteCode.max_uses)
                   .update({InviteCode.used_count: InviteCode.used_count + 1},
                           synchronize_session=False))
        if claimed != 1:
            raise AppError(ErrorCode.INVITE_EXHAUSTED)

        order = Order(
            order_no=generate_order_no(),
            user_id=user_id,
            course_id=ic.course_id,
            amount=0,
            status=OrderStatus.PAID.value,
            pay_method=INVITE_PAY_METHOD,
            pay_time=now,
            invite_code=code,
        )
        db.add(order)
        _bump_sales(db, ic.course_id)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AppError(ErrorCode.ALREADY_PURCHASED, "您已拥有该课程")
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    emit("invite_redeemed", user_id=user_id, invite_code_id=ic.id, course_id=ic.course_id, order_no=order.order_no)
    return order
