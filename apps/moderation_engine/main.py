"""moderation engine entrypoint."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chat_moderation.application.events.domain_events import (
    DomainEvent,
    DomainEventType,
    EventMetadata,
    MemberMessagePayload,
)
from chat_moderation.application.events.event_bus import EventBus
from chat_moderation.application.ports.blacklist_repository_port import BlacklistRepositoryPort
from chat_moderation.application.ports.group_repository_port import GroupRepositoryPort
from chat_moderation.application.ports.member_repository_port import MemberRepositoryPort
from chat_moderation.application.ports.membership_repository_port import (
    MembershipRepositoryPort,
)
from chat_moderation.application.ports.punishment_repository_port import (
    PunishmentRepositoryPort,
)
from chat_moderation.application.ports.store_errors import StoreUnavailableError
from chat_moderation.application.services.admin_command_handlers import (
    PingCommand,
    RegisterGroupCommand,
)
from chat_moderation.application.services.command_handler_base import CommandHandler
from chat_moderation.application.services.command_router_service import CommandRouterService
from chat_moderation.application.services.member_tracking_service import MemberTrackingService
from chat_moderation.application.services.outbound_delivery_gate import (
    DeliverCallable,
    OutboundDeliveryGate,
)
from chat_moderation.application.services.punishment_command_handlers import (
    BanCommand,
    KickCommand,
    SetFreeCommand,
    TimedPunishmentCommand,
    UnbanCommand,
    WarnCommand,
)
from chat_moderation.application.services.punishment_lifecycle_service import (
    PunishmentLifecycleService,
)
from chat_moderation.config.settings import Settings, load_settings
from chat_moderation.infrastructure.cache.cache_config import CacheTtls
from chat_moderation.infrastructure.cache.cached_blacklist_repository import (
    CachedBlacklistRepository,
)
from chat_moderation.infrastructure.cache.cached_group_repository import CachedGroupRepository
from chat_moderation.infrastructure.cache.cached_member_repository import CachedMemberRepository
from chat_moderation.infrastructure.cache.cached_membership_repository import (
    CachedMembershipRepository,
)
from chat_moderation.infrastructure.cache.cached_punishment_repository import (
    CachedPunishmentRepository,
)
from chat_moderation.infrastructure.cache.expiring_cache import ExpiringCache
from chat_moderation.infrastructure.chat.logging_delivery import LoggingTransport
from chat_moderation.infrastructure.db.blacklist_repository import SqlAlchemyBlacklistRepository
from chat_moderation.infrastructure.db.group_repository import SqlAlchemyGroupRepository
from chat_moderation.infrastructure.db.member_repository import SqlAlchemyMemberRepository
from chat_moderation.infrastructure.db.membership_repository import (
    SqlAlchemyMembershipRepository,
)
from chat_moderation.infrastructure.db.punishment_repository import (
    SqlAlchemyPunishmentRepository,
)
from chat_moderation.infrastructure.db.session import (
    create_session_factory,
    verify_store_connection,
)
from chat_moderation.infrastructure.document_store.document_file import DocumentFile
from chat_moderation.infrastructure.document_store.document_repositories import (
    DocumentBlacklistRepository,
    DocumentGroupRepository,
    DocumentMemberRepository,
    DocumentMembershipRepository,
    DocumentPunishmentRepository,
)
from chat_moderation.infrastructure.document_store.write_serializer import WriteSerializer
from chat_moderation.infrastructure.logging import configure_logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreAdapters:
    """Durable store adapters for one backend."""

    groups: GroupRepositoryPort
    members: MemberRepositoryPort
    memberships: MembershipRepositoryPort
    punishments: PunishmentRepositoryPort
    blacklist: BlacklistRepositoryPort
    write_serializer: WriteSerializer | None = None


@dataclass(frozen=True)
class ModerationContext:
    """Process-scoped dependencies shared by every moderation component."""

    settings: Settings
    event_bus: EventBus
    cache: ExpiringCache[object]
    groups: CachedGroupRepository
    members: CachedMemberRepository
    memberships: CachedMembershipRepository
    punishments: CachedPunishmentRepository
    blacklist: CachedBlacklistRepository
    tracking: MemberTrackingService
    lifecycle: PunishmentLifecycleService
    router: CommandRouterService
    command_handlers: tuple[CommandHandler, ...]
    delivery_gate: OutboundDeliveryGate
    write_serializer: WriteSerializer | None = None

    def receive(self, payload: MemberMessagePayload) -> DomainEvent[Any]:
        """Entry point for the transport: publish one inbound group message."""

        return self.event_bus.publish(
            DomainEvent(
                type=DomainEventType.MEMBER_MESSAGE_RECEIVED,
                payload=payload,
                metadata=EventMetadata(group_id=payload.group_id, member_id=payload.member_id),
            )
        )


def build_sql_store(session_factory: async_sessionmaker[AsyncSession]) -> StoreAdapters:
    """Build relational store adapters sharing one session factory."""

    return StoreAdapters(
        groups=SqlAlchemyGroupRepository(session_factory),
        members=SqlAlchemyMemberRepository(session_factory),
        memberships=SqlAlchemyMembershipRepository(session_factory),
        punishments=SqlAlchemyPunishmentRepository(session_factory),
        blacklist=SqlAlchemyBlacklistRepository(session_factory),
    )


async def build_document_store(path: str) -> StoreAdapters:
    """Load the JSON document (recovering it when corrupt) and start its write serializer."""

    serializer = WriteSerializer(DocumentFile(path))
    await serializer.start()
    return StoreAdapters(
        groups=DocumentGroupRepository(serializer),
        members=DocumentMemberRepository(serializer),
        memberships=DocumentMembershipRepository(serializer),
        punishments=DocumentPunishmentRepository(serializer),
        blacklist=DocumentBlacklistRepository(serializer),
        write_serializer=serializer,
    )


def build_command_handlers(
    *,
    settings: Settings,
    event_bus: EventBus,
    lifecycle: PunishmentLifecycleService,
    groups: CachedGroupRepository,
    members: CachedMemberRepository,
    blacklist: CachedBlacklistRepository,
) -> tuple[CommandHandler, ...]:
    """Build one handler per supported command family."""

    return (
        TimedPunishmentCommand(
            event_bus=event_bus,
            lifecycle=lifecycle,
            default_duration_ms=settings.default_timeout_ms,
        ),
        BanCommand(event_bus=event_bus, lifecycle=lifecycle, members=members, blacklist=blacklist),
        UnbanCommand(
            event_bus=event_bus,
            lifecycle=lifecycle,
            members=members,
            blacklist=blacklist,
        ),
        SetFreeCommand(event_bus=event_bus, lifecycle=lifecycle),
        KickCommand(event_bus=event_bus, lifecycle=lifecycle),
        WarnCommand(event_bus=event_bus, lifecycle=lifecycle),
        RegisterGroupCommand(event_bus=event_bus, groups=groups),
        PingCommand(event_bus=event_bus),
    )


def build_moderation_context(
    *,
    settings: Settings,
    store: StoreAdapters,
    deliver: DeliverCallable,
    now: Callable[[], datetime] | None = None,
    cache_clock: Callable[[], float] | None = None,
) -> ModerationContext:
    """Compose the bus, cache, cached repositories and services, and register subscribers."""

    event_bus = EventBus(now=now) if now is not None else EventBus()
    cache: ExpiringCache[object] = (
        ExpiringCache(clock=cache_clock) if cache_clock is not None else ExpiringCache()
    )
    ttls = CacheTtls.from_settings(settings)

    groups = CachedGroupRepository(store=store.groups, cache=cache, ttls=ttls)
    members = CachedMemberRepository(store=store.members, cache=cache, ttls=ttls)
    memberships = CachedMembershipRepository(store=store.memberships, cache=cache, ttls=ttls)
    punishments = CachedPunishmentRepository(store=store.punishments, cache=cache, ttls=ttls)
    blacklist = CachedBlacklistRepository(store=store.blacklist, cache=cache, ttls=ttls)

    tracking = MemberTrackingService(
        event_bus=event_bus,
        groups=groups,
        members=members,
        memberships=memberships,
        activity_debounce_ms=settings.activity_debounce_ms,
        auto_register_groups=settings.auto_register_groups,
    )
    clock_kwargs: dict[str, Any] = {"now": now} if now is not None else {}
    lifecycle = PunishmentLifecycleService(
        event_bus=event_bus,
        groups=groups,
        members=members,
        memberships=memberships,
        punishments=punishments,
        blacklist=blacklist,
        **clock_kwargs,
    )
    router = CommandRouterService(
        event_bus=event_bus,
        members=members,
        punishments=punishments,
        commands_require_admin=settings.commands_require_admin,
        **clock_kwargs,
    )
    command_handlers = build_command_handlers(
        settings=settings,
        event_bus=event_bus,
        lifecycle=lifecycle,
        groups=groups,
        members=members,
        blacklist=blacklist,
    )
    delivery_gate = OutboundDeliveryGate(
        event_bus=event_bus,
        deliver=deliver,
        window_seconds=settings.outbound_dedupe_window_seconds,
    )

    tracking.register()
    lifecycle.register()
    router.register()
    for handler in command_handlers:
        handler.register()
    delivery_gate.register()

    return ModerationContext(
        settings=settings,
        event_bus=event_bus,
        cache=cache,
        groups=groups,
        members=members,
        memberships=memberships,
        punishments=punishments,
        blacklist=blacklist,
        tracking=tracking,
        lifecycle=lifecycle,
        router=router,
        command_handlers=command_handlers,
        delivery_gate=delivery_gate,
        write_serializer=store.write_serializer,
    )


async def run_cache_sweeper(
    cache: ExpiringCache[object],
    *,
    interval_seconds: float,
    stop_event: asyncio.Event,
) -> None:
    """Physically evict expired cache entries until ``stop_event`` is set."""

    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except TimeoutError:
            removed = cache.sweep()
            if removed:
                logger.debug("cache_swept removed=%s remaining=%s", removed, cache.size())


async def shutdown_context(context: ModerationContext) -> None:
    """Flush coalesced writes, let in-flight handlers finish and drain the document queue."""

    await context.tracking.flush()
    await context.event_bus.drain()
    if context.write_serializer is not None:
        await context.write_serializer.close()
    logger.info("moderation_engine_stopped")


def _install_stop_signals(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except NotImplementedError:
            logger.warning("signal_handler_unsupported signal=%s", signum)


async def _build_store(settings: Settings) -> StoreAdapters:
    if settings.store_backend == "document":
        return await build_document_store(settings.document_store_path)

    assert settings.database_url is not None
    session_factory = create_session_factory(settings.database_url)
    await verify_store_connection(session_factory)
    return build_sql_store(session_factory)


async def _run_engine() -> int:
    settings = load_settings()
    configure_logging(level=settings.log_level)
    logger.info(
        "moderation_engine_starting store_backend=%s auto_register_groups=%s",
        settings.store_backend,
        settings.auto_register_groups,
    )

    try:
        store = await _build_store(settings)
    except StoreUnavailableError:
        logger.critical(
            "moderation_engine_store_unreachable store_backend=%s",
            settings.store_backend,
        )
        return 1

    transport = LoggingTransport()
    context = build_moderation_context(settings=settings, store=store, deliver=transport.send)
    transport.register_enforcement(context.event_bus)

    stop_event = asyncio.Event()
    _install_stop_signals(stop_event)
    logger.info("moderation_engine_started")
    await run_cache_sweeper(
        context.cache,
        interval_seconds=settings.cache_sweep_interval_seconds,
        stop_event=stop_event,
    )
    await shutdown_context(context)
    return 0


def main() -> None:
    """Run the moderation engine until interrupted."""

    raise SystemExit(asyncio.run(_run_engine()))


if __name__ == "__main__":
    main()
