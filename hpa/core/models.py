"""
模块职能：

定义内容与课程两组表（users / verification_codes 见 models_user.py）：

hpa_categories / hpa_notes / hpa_browse_history：分类树、笔记、浏览记录

hpa_courses / hpa_course_files：课程与其对象存储文件

hpa_orders：订单；同一用户同一课程最多一笔 paid（部分唯一索引兜底）

hpa_invite_codes：邀请码，used_count 只能经条件更新递增

hpa_downloads：一次性下载令牌"""

# hpa/core/models.py
from datetime import datetime
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, text,
)

from hpa.core.state_machine import OrderStatus

Base = declarative_base()


class Category(Base):
    __tablename__ = "hpa_categories"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    slug = Column(String(50), unique=True, nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("hpa_categories.id"), nullable=True, index=True)
    sort = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    parent = relationship("Category", remote_side=[id], back_populates="children")
    children = relationship("Category", back_populates="parent", order_by="Category.sort")


class Note(Base):
    __tablename__ = "hpa_notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    category_id = Column(Integer, ForeignKey("hpa_categories.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    slug = Column(String(200), unique=True, nullable=False, index=True)
    summary = Column(String(500), default="")
    content = Column(Text, default="")
    cover_image = Column(String(500), default="")
    view_count = Column(Integer, nullable=False, default=0)
    is_public = Column(Boolean, nullable=False, default=True)
    sort = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    category = relationship("Category")


class BrowseHistory(Base):
    __tablename__ = "hpa_browse_history"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    note_id = Column(Integer, ForeignKey("hpa_notes.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now)

    note = relationship("Note")


class Course(Base):
    __tablename__ = "hpa_courses"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    slug = Column(String(200), unique=True, nullable=False, index=True)
    description = Column(Text, default="")
    cover_image = Column(String(500), default="")
    price = Column(Float, nullable=False)
    orig_price = Column(Float, nullable=False, default=0)
    intro_path = Column(String(500), default="")          # Markdown 介绍的对象路径
    sales_count = Column(Integer, nullable=False, default=0)
    is_public = Column(Boolean, nullable=False, default=True)
    sort = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    files = relationship(
        "CourseFile", back_populates="course",
        order_by="CourseFile.sort", cascade="all, delete-orphan",
    )


class CourseFile(Base):
    __tablename__ = "hpa_course_files"
    id = Column(Integer, primary_key=True, autoincrement=True)
    course_id = Column(Integer, ForeignKey("hpa_courses.id"), nullable=False, index=True)
    file_type = Column(String(20), nullable=False)        # intro | resource
    file_name = Column(String(200), nullable=False)
    file_path = Column(String(500), nullable=False)       # 对象存储 key
    file_size = Column(Integer, nullable=False, default=0)
    sort = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)

    course = relationship("Course", back_populates="files")


class Order(Base):
    __tablename__ = "hpa_orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_no = Column(String(50), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("hpa_courses.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    pay_method = Column(String(20), default="")            # wechat | alipay | invite_code
    pay_time = Column(DateTime, nullable=True)
    invite_code = Column(String(50), default="")
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    course = relationship("Course")

    __table_args__ = (
        Index(
            "uq_orders_user_course_paid", "user_id", "course_id", unique=True,
            sqlite_where=text("status = 'paid'"),
            postgresql_where=text("status = 'paid'"),
        ),
    )


class InviteCode(Base):
    __tablename__ = "hpa_invite_codes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("hpa_courses.id"), nullable=False, index=True)
    max_uses = Column(Integer, nullable=False, default=1)
    used_count = Column(Integer, nullable=False, default=0)
    expire_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    course = relationship("Course")


class Download(Base):
    __tablename__ = "hpa_downloads"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("hpa_courses.id"), nullable=False, index=True)
    file_id = Column(Integer, nullable=False, default=0)   # 0 表示整门课程
    token = Column(String(100), unique=True, nullable=False, index=True)
    expire_at = Column(DateTime, nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now, index=True)

    course = relationship("Course")
