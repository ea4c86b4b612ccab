"""SQLAlchemy metadata definitions for moderation tables."""

from __future__ import annotations

import sqlalchemy as sa

metadata = sa.MetaData()

_PUNISHMENT_TYPES_CHECK = (
    "punishment_type IN ('timeout', 'mute', 'ban', 'permanentBan', 'kick', 'warn')"
)

groups = sa.Table(
    "groups",
    metadata,
    sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
    sa.Column("external_group_id", sa.Text(), nullable=False),
    sa.Column("name", sa.Text(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
    sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    ),
    sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    ),
    sa.UniqueConstraint("external_group_id", name="uq_groups_external_group_id"),
)

members = sa.Table(
    "members",
    metadata,
    sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
    sa.Column("external_member_id", sa.Text(), nullable=False),
    sa.Column("display_name", sa.Text(), nullable=False),
    sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    ),
    sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    ),
    sa.UniqueConstraint("external_member_id", name="uq_members_external_member_id"),
)

group_memberships = sa.Table(
    "group_memberships",
    metadata,
    sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
    sa.Column("group_id", sa.Uuid(), sa.ForeignKey("groups.id"), nullable=False),
    sa.Column("member_id", sa.Uuid(), sa.ForeignKey("members.id"), nullable=False),
    sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("message_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("timeout_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("mute_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("ban_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column(
        "permanent_ban_count",
        sa.Integer(),
        nullable=False,
        server_default=sa.text("0"),
    ),
    sa.Column("kick_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("warn_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("note", sa.Text(), nullable=False, server_default=sa.text("''")),
    sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    ),
    sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    ),
    sa.UniqueConstraint("group_id", "member_id", name="uq_group_memberships_group_member"),
)
sa.Index("ix_group_memberships_member_id", group_memberships.c.member_id)

punishments = sa.Table(
    "punishments",
    metadata,
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
    sa.CheckConstraint(_PUNISHMENT_TYPES_CHECK, name="ck_punishments_punishment_type"),
    sa.CheckConstraint("duration_ms >= 0", name="ck_punishments_duration_ms"),
)
sa.Index("ix_punishments_member_id_applied_at", punishments.c.member_id, punishments.c.applied_at)
sa.Index(
    "uq_punishments_active_member",
    punishments.c.member_id,
    unique=True,
    sqlite_where=sa.text("is_active"),
    postgresql_where=sa.text("is_active"),
)

blacklist = sa.Table(
    "blacklist",
    metadata,
    sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
    sa.Column("member_id", sa.Uuid(), sa.ForeignKey("members.id"), nullable=False),
    sa.Column("reason", sa.Text(), nullable=False),
    sa.Column("banned_by", sa.Text(), nullable=True),
    sa.Column("banned_from_group_id", sa.Text(), nullable=True),
    sa.Column("notes", sa.Text(), nullable=True),
    sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    ),
    sa.UniqueConstraint("member_id", name="uq_blacklist_member_id"),
)
