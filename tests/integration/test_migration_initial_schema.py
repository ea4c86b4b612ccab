from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import pytest
import sqlalchemy as sa
from alembic.config import Config

from alembic import command
from chat_moderation.infrastructure.db.metadata import (
    group_memberships,
    groups,
    members,
    punishments,
)


def _upgrade_head(tmp_path: Path) -> str:
    db_path = tmp_path / "moderation_migration.db"
    database_url = f"sqlite+pysqlite:///{db_path}"

    alembic_config = Config("alembic.ini")
    alembic_config.set_main_option("sqlalchemy.url", database_url)

    command.upgrade(alembic_config, "head")
    return database_url


def test_migration_creates_required_tables(tmp_path: Path) -> None:
    database_url = _upgrade_head(tmp_path)
    engine = sa.create_engine(database_url)

    table_names = set(sa.inspect(engine).get_table_names())

    assert {"groups", "members", "group_memberships", "punishments", "blacklist"} <= table_names


def test_migration_creates_required_uniques_and_indexes(tmp_path: Path) -> None:
    database_url = _upgrade_head(tmp_path)
    engine = sa.create_engine(database_url)
    inspector = sa.inspect(engine)

    def uniques(table: str) -> set[tuple[str, ...]]:
        return {
            tuple(sorted(constraint["column_names"]))
            for constraint in inspector.get_unique_constraints(table)
        }

    assert ("external_group_id",) in uniques("groups")
    assert ("external_member_id",) in uniques("members")
    assert ("group_id", "member_id") in uniques("group_memberships")
    assert ("member_id",) in uniques("blacklist")

    punishment_indexes = {index["name"]: index for index in inspector.get_indexes("punishments")}
    assert "ix_punishments_member_id_applied_at" in punishment_indexes
    assert punishment_indexes["uq_punishments_active_member"]["unique"]

    membership_indexes = {index["name"] for index in inspector.get_indexes("group_memberships")}
    assert "ix_group_memberships_member_id" in membership_indexes


def test_membership_counters_default_to_zero(tmp_path: Path) -> None:
    database_url = _upgrade_head(tmp_path)
    engine = sa.create_engine(database_url)
    group_id, member_id = uuid4(), uuid4()

    with engine.begin() as connection:
        connection.execute(sa.insert(groups).values(id=group_id, external_group_id="g", name="G"))
        connection.execute(
            sa.insert(members).values(id=member_id, external_member_id="m", display_name="M")
        )
        connection.execute(
            sa.insert(group_memberships).values(id=uuid4(), group_id=group_id, member_id=member_id)
        )
        row = connection.execute(sa.select(group_memberships)).mappings().one()

    assert row["message_count"] == 0
    assert row["warn_count"] == 0
    assert row["is_admin"] is False
    assert row["note"] == ""


def test_downgrade_removes_all_tables(tmp_path: Path) -> None:
    database_url = _upgrade_head(tmp_path)
    alembic_config = Config("alembic.ini")
    alembic_config.set_main_option("sqlalchemy.url", database_url)

    command.downgrade(alembic_config, "base")

    table_names = set(sa.inspect(sa.create_engine(database_url)).get_table_names())
    assert table_names <= {"alembic_version"}


@pytest.mark.parametrize("punishment_type", ["timeout", "permanentBan", "warn"])
def test_known_punishment_types_pass_check_constraint(
    tmp_path: Path,
    punishment_type: str,
) -> None:
    database_url = _upgrade_head(tmp_path)
    engine = sa.create_engine(database_url)
    group_id, member_id, membership_id = uuid4(), uuid4(), uuid4()

    with engine.begin() as connection:
        connection.execute(sa.insert(groups).values(id=group_id, external_group_id="g", name="G"))
        connection.execute(
            sa.insert(members).values(id=member_id, external_member_id="m", display_name="M")
        )
        connection.execute(
            sa.insert(group_memberships).values(
                id=membership_id,
                group_id=group_id,
                member_id=member_id,
            )
        )
        connection.execute(
            sa.insert(punishments).values(
                id=uuid4(),
                member_id=member_id,
                membership_id=membership_id,
                group_id=group_id,
                punishment_type=punishment_type,
                applied_at=datetime(2026, 3, 1, tzinfo=UTC),
                is_active=False,
            )
        )
        count = connection.execute(sa.select(sa.func.count()).select_from(punishments)).scalar()

    assert count == 1
