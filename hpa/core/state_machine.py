"""模块职能：

定义订单状态与合法迁移：pending → paid / cancelled，paid → refunded

主要函数/枚举：

OrderStatus：状态枚举

can_transit(src, dst)：判断是否允许状态迁移"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


VALID = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),
    OrderStatus.CANCELLED: set(),
}


def can_transit(src: OrderStatus, dst: OrderStatus) -> bool:
    return OrderStatus(dst) in VALID[OrderStatus(src)]
