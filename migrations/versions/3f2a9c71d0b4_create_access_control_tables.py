"""create access control tables

Revision ID: 3f2a9c71d0b4
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f2a9c71d0b4"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    tables = set(inspector.get_table_names())

    if "auth_tenants" not in tables:
        op.create_table(
            "auth_tenants",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )

    if "auth_users" not in tables:
        op.create_table(
            "auth_users",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("tenant_id", sa.String(length=64), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("last_login", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["tenant_id"], ["auth_tenants.id"]),
            sa.UniqueConstraint("tenant_id", "username", name="uq_auth_user_tenant_username"),
        )
        op.create_index("ix_auth_users_tenant_id", "auth_users", ["tenant_id"])

    if "auth_credentials" not in tables:
        op.create_table(
            "auth_credentials",
            sa.Column("user_id", sa.Integer(), primary_key=True),
            sa.Column("password_hash", sa.String(length=500), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["auth_users.id"], ondelete="CASCADE"),
        )

    if "user_groups" not in tables:
        op.create_table(
            "user_groups",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("tenant_id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("slug", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("super_group", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["tenant_id"], ["auth_tenants.id"]),
            sa.UniqueConstraint("tenant_id", "slug", name="uq_user_group_tenant_slug"),
        )
        op.create_index("ix_user_groups_tenant_id", "user_groups", ["tenant_id"])

    if "user_group_members" not in tables:
        op.create_table(
            "user_group_members",
            sa.Column("user_id", sa.Integer(), primary_key=True),
            sa.Column("user_group_id", sa.Integer(), primary_key=True),
            sa.Column("assigned_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["auth_users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_group_id"], ["user_groups.id"], ondelete="CASCADE"),
        )

    if "access_rules" not in tables:
        op.create_table(
            "access_rules",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("tenant_id", sa.String(length=64), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("user_group_id", sa.Integer(), nullable=True),
            sa.Column("package", sa.String(length=100), nullable=True),
            sa.Column("controller", sa.String(length=100), nullable=False),
            sa.Column("create_access", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("read_access", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("update_access", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("delete_access", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["tenant_id"], ["auth_tenants.id"]),
            sa.ForeignKeyConstraint(["user_id"], ["auth_users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_group_id"], ["user_groups.id"], ondelete="CASCADE"),
            sa.CheckConstraint(
                "(user_id IS NULL) <> (user_group_id IS NULL)",
                name="ck_access_rule_single_owner",
            ),
        )
        op.create_index("ix_access_rules_tenant_id", "access_rules", ["tenant_id"])
        op.create_index("ix_access_rules_user_id", "access_rules", ["user_id"])
        op.create_index("ix_access_rules_user_group_id", "access_rules", ["user_group_id"])


def downgrade() -> None:
    op.drop_table("access_rules")
    op.drop_table("user_group_members")
    op.drop_table("user_groups")
    op.drop_table("auth_credentials")
    op.drop_table("auth_users")
    op.drop_table("auth_tenants")
