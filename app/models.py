"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

import uuid

from sqlalchemy import Column, Integer, String, Text

from app.storage import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    A person identified only by the name they typed in the browser.

    Table: users
    Unique: name (lets concurrent first submissions race safely)
    """
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False, unique=True, index=True)
    ai_usage_count = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(String, nullable=False)  # Server time ISO-8601


class Submission(Base):
    """
    A contact-form submission. Written once, never updated.

    Table: submissions
    user_name references users.name by value only.
    """
    __tablename__ = "submissions"

    id = Column(String, primary_key=True, default=_new_id)
    user_name = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(String, nullable=False, index=True)  # Server time ISO-8601
