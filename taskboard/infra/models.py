from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from .db import Base


def utcnow() -> datetime:
    return datetime.utcnow()


def new_id() -> str:
    return uuid4().hex


class CategoryModel(Base):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_categories_user_name"),)

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(16), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    tasks = relationship("TaskModel", back_populates="category", passive_deletes=True)


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="BACKLOG", index=True)
    priority = Column(String(10), nullable=False, default="LOW")
    expected_time = Column(Integer, nullable=True)
    actual_time = Column(Integer, nullable=False, default=0)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    scheduled_start_time = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    category_id = Column(
        String(32), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    day = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    category = relationship("CategoryModel", back_populates="tasks", lazy="joined")
