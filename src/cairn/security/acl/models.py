"""
Access control tables: user groups, group membership and access rules.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from cairn.models.base import Base
from cairn.security.auth import models as _auth_models  # noqa: F401

user_group_members = Table(
    "user_group_members",
    Base.metadata,
    Column(
        "user_id",
        Integer,
        ForeignKey("auth_users.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "user_group_id",
        Integer,
        ForeignKey("user_groups.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("assigned_at", DateTime, default=datetime.utcnow),
)


class UserGroup(Base):
    __tablename__ = "user_groups"
    __table_args__ = (
        UniqueConstraint("tenant_id", "slug", name="uq_user_group_tenant_slug"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), ForeignKey("auth_tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text)

    super_group = Column(Boolean, default=False, nullable=False)
    # Groups are merged in (priority, id) order; later groups win.
    priority = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    users = relationship("AuthUser", secondary=user_group_members, backref="user_groups")
    access_rules = relationship(
        "AccessRuleRecord",
        back_populates="user_group",
        cascade="all, delete-orphan",
        order_by="AccessRuleRecord.id",
    )


class AccessRuleRecord(Base):
    __tablename__ = "access_rules"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (user_group_id IS NULL)",
            name="ck_access_rule_single_owner",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), ForeignKey("auth_tenants.id"), nullable=False, index=True)
    user_id = Column(
        Integer, ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    user_group_id = Column(
        Integer, ForeignKey("user_groups.id", ondelete="CASCADE"), nullable=True, index=True
    )

    package = Column(String(100), nullable=True)
    controller = Column(String(100), nullable=False)

    create_access = Column(Boolean, nullable=False, default=False)
    read_access = Column(Boolean, nullable=False, default=False)
    update_access = Column(Boolean, nullable=False, default=False)
    delete_access = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user_group = relationship("UserGroup", back_populates="access_rules")
    user = relationship("AuthUser", backref="access_rules")
