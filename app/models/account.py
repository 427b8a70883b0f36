"""
SQLAlchemy models base and Account model.

This module defines the declarative base for all models and the Account model
that owns a subscription record and carries the admin role claim.
"""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Account(Base):
    """
    Accounts table - the signed-in identity behind every subscription call.

    Attributes:
        id: Account identifier (UUID string, JWT ``sub``)
        email: Contact email, forwarded to the billing provider on customer creation
        is_admin: Role claim checked by every privileged operation
        created_at: Signup timestamp
    """

    __tablename__ = "accounts"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
        comment="Account identifier (Primary Key)",
    )
    email = Column(String(255), unique=True, index=True, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False, comment="Admin role claim")
    created_at = Column(DateTime, default=datetime.utcnow)
