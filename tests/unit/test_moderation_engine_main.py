from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

import apps.moderation_engine.main as engine_main
from apps.moderation_engine.main import (
    build_document_store,
    build_moderation_context,
    run_cache_sweeper,
    shutdown_context,
)
from chat_moderation.application.events.domain_events import (
    MemberMessagePayload,
    OutboundMessagePayload,
)
from chat_moderation.application.ports.store_errors import StoreUnavailableError
from chat_moderation.config.settings import Settings, load_settings
from chat_moderation.infrastructure.cache.expiring_cache import ExpiringCache
from chat_moderation.infrastructure.db.session import (
    create_session_factory,
    verify_store_connection,
)


class _Clock:
    def __init__(self) -> None:
        self.now = 10.0

    def __call__(self) -> float:
        return self.now


def _document_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setenv("STORE_BACKEND", "document")
    monkeypatch.setenv("DOCUMENT_STORE_PATH", str(tmp_path / "state.json"))
    monkeypatch.setenv("ACTIVITY_DEBOUNCE_MS", "60000")
    return Settings(_env_file=None)


async def _discard(payload: OutboundMessagePayload) -> None:
    _ = payload


@pytest.mark.asyncio
async def test_shutdown_flushes_pending_activity_to_document(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    settings = _document_settings(tmp_path, monkeypatch)
    store = await build_document_store(settings.document_store_path)
    context = build_moderation_context(settings=settings, store=store, deliver=_discard)

    for index in range(3):
        context.receive(
            MemberMessagePayload(
                group_id="group-1",
                member_id="member-a",
                display_name="Alice",
                is_admin=False,
                text=f"message {index}",
                message_handle=index,
            )
        )
    await context.event_bus.drain()
    await shutdown_context(context)

    reopened = await build_document_store(settings.document_store_path)
    group = await reopened.groups.get_by_external_id(external_group_id="group-1")
    member = await reopened.members.get_by_external_id(external_member_id="member-a")
    assert group is not None
    assert member is not None
    membership = await reopened.memberships.get(group_id=group.group_id, member_id=member.member_id)
    assert membership is not None
    assert membership.message_count == 3
    assert reopened.write_serializer is not None
    await reopened.write_serializer.close()


@pytest.mark.asyncio
async def test_cache_sweeper_evicts_expired_entries_until_stopped() -> None:
    clock = _Clock()
    cache: ExpiringCache[object] = ExpiringCache(clock=clock)
    cache.set("group:old", object(), ttl_ms=1_000)
    clock.now += 5
    stop_event = asyncio.Event()

    sweeper = asyncio.create_task(
        run_cache_sweeper(cache, interval_seconds=0.01, stop_event=stop_event)
    )
    await asyncio.sleep(0.05)
    stop_event.set()
    await asyncio.wait_for(sweeper, timeout=1)

    assert cache.size() == 0


@pytest.mark.asyncio
async def test_unreachable_database_raises_store_unavailable(tmp_path: Path) -> None:
    missing = tmp_path / "missing-dir" / "nested" / "store.db"
    session_factory = create_session_factory(f"sqlite+aiosqlite:///{missing}")

    with pytest.raises(StoreUnavailableError):
        await verify_store_connection(session_factory)


@pytest.mark.asyncio
async def test_engine_exits_with_error_when_store_is_unreachable(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.setenv("STORE_BACKEND", "database")
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///unused.db")
    load_settings.cache_clear()

    async def unreachable(settings: Settings) -> engine_main.StoreAdapters:
        raise StoreUnavailableError("down")

    monkeypatch.setattr(engine_main, "_build_store", unreachable)

    with caplog.at_level(logging.CRITICAL):
        exit_code = await engine_main._run_engine()
    load_settings.cache_clear()

    assert exit_code == 1
    assert "moderation_engine_store_unreachable" in caplog.text
