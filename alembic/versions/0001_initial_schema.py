"""Initial schema for groups, members, memberships, punishments and the blacklist."""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column[Any]:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def _counter(name: str) -> sa.Column[Any]:
    return sa.Column(name, sa.Integer(), nullable=False, server_default=sa.text("0"))


def upgrade() -> None:
    op.create_table(
        "groups",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("external_group_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("external_group_id", name="uq_groups_external_group_id"),
    )

    op.create_table(
        "members",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("external_member_id", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("external_member_id", name="uq_members_external_member_id"),
    )

    op.create_table(
        "group_memberships",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("group_id", sa.Uuid(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        _counter("message_count"),
        _counter("timeout_count"),
        _counter("mute_count"),
        _counter("ban_count"),
        _counter("permanent_ban_count"),
        _counter("kick_count"),
        _counter("warn_count"),
        sa.Column("note", sa.Text(), nullable=False, server_default=sa.text("''")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("group_id", "member_id", name="uq_group_memberships_group_member"),
    )
    op.create_index("ix_group_memberships_member_id", "group_memberships", ["member_id"])

    op.create_table(
        "punishments",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column(
            "membership_id",
            sa.Uuid(),
            sa.ForeignKey("group_memberships.id"),
            nullable=False,
        ),
        sa.Column("group_id", sa.Uuid(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("punishment_type", sa.Text(), nullable=False),
        sa.Column("duration_ms", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("reason", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint(
            "punishment_type IN ('timeout', 'mute', 'ban', 'permanentBan', 'kick', 'warn')",
            name="ck_punishments_punishment_type",
        ),
        sa.CheckConstraint("duration_ms >= 0", name="ck_punishments_duration_ms"),
    )
    op.create_index(
        "ix_punishments_member_id_applied_at",
        "punishments",
        ["member_id", "applied_at"],
    )
    op.create_index(
        "uq_punishments_active_member",
        "punishments",
        ["member_id"],
        unique=True,
        sqlite_where=sa.text("is_active"),
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "blacklist",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("member_id", sa.Uuid(), sa.ForeignKey("members.id"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("banned_by", sa.Text(), nullable=True),
        sa.Column("banned_from_group_id", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("member_id", name="uq_blacklist_member_id"),
    )


def downgrade() -> None:
    op.drop_table("blacklist")
    op.drop_index("uq_punishments_active_member", table_name="punishments")
    op.drop_index("ix_punishments_member_id_applied_at", table_name="punishments")
    op.drop_table("punishments")
    op.drop_index("ix_group_memberships_member_id", table_name="group_memberships")
    op.drop_table("group_memberships")
    op.drop_table("members")
    op.drop_table("groups")
