"""
Pytest configuration and fixtures

Fakes stand in for Discord: FakeProvisioner keeps channels in a dict and
FakeNotifier records every message. Both accept injected faults. ManualSleep
replaces asyncio.sleep so deadlines only fire when a test releases them.
"""
import asyncio
from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from ticketdesk.config import Settings, get_settings
from ticketdesk.main import app
from ticketdesk.models.messages import StructuredMessage
from ticketdesk.models.schemas import (
    ChannelHandle,
    DeliveryResult,
    Principal,
    Ticket,
    TicketCategory,
    TicketStatus,
    VisibilityRule,
    WorkspaceConfig,
)
from ticketdesk.repositories.memory_repository import InMemoryTicketRepository
from ticketdesk.services.context import ServiceContext
from ticketdesk.services.ticket_service import TicketService
from ticketdesk.utils.permissions import MANAGE_CHANNELS

GUILD_ID = "guild-1"
BOT_ID = "bot-1"
SUPPORT_ROLE_ID = "role-support"


class FakeProvisioner:
    """In-memory channel provisioner with fault injection"""

    def __init__(self):
        self.channels = {}
        self.created: List[ChannelHandle] = []
        self.deleted: List[str] = []
        self.renamed: List[Tuple[str, str]] = []
        self.visibility: List[Tuple[str, VisibilityRule]] = []
        self.create_rules: List[List[VisibilityRule]] = []
        self.fail_create = False
        self.fail_delete = False
        self.fail_rename = False
        self.fail_visibility = False
        self.get_error: Optional[Exception] = None
        self._next_id = 0

    def register(self, channel_id: str, guild_id: str = GUILD_ID) -> ChannelHandle:
        channel = ChannelHandle(id=channel_id, guild_id=guild_id, name=channel_id)
        self.channels[channel_id] = channel
        return channel

    async def get(self, channel_id: str) -> Optional[ChannelHandle]:
        await asyncio.sleep(0)
        if self.get_error is not None:
            raise self.get_error
        return self.channels.get(channel_id)

    async def create(self, guild_id, parent_group, name, visibility_rules) -> ChannelHandle:
        await asyncio.sleep(0)
        if self.fail_create:
            raise RuntimeError("Missing Permissions")
        self._next_id += 1
        channel = ChannelHandle(
            id=f"chan-{self._next_id}",
            guild_id=guild_id,
            name=name,
            parent_id=parent_group,
        )
        self.channels[channel.id] = channel
        self.created.append(channel)
        self.create_rules.append(list(visibility_rules))
        return channel

    async def rename(self, channel: ChannelHandle, name: str) -> ChannelHandle:
        if self.fail_rename:
            raise RuntimeError("rate limited")
        self.renamed.append((channel.id, name))
        renamed = channel.model_copy(update={"name": name})
        self.channels[channel.id] = renamed
        return renamed

    async def set_visibility(self, channel: ChannelHandle, rule: VisibilityRule) -> None:
        if self.fail_visibility:
            raise RuntimeError("Missing Access")
        self.visibility.append((channel.id, rule))

    async def delete(self, channel: ChannelHandle) -> None:
        if self.fail_delete:
            raise RuntimeError("Unknown Channel")
        self.deleted.append(channel.id)
        self.channels.pop(channel.id, None)


class FakeNotifier:
    """Records deliveries; failing targets report delivered=False"""

    def __init__(self):
        self.sent: List[Tuple[str, StructuredMessage]] = []
        self.edits: List[Tuple[str, str, StructuredMessage]] = []
        self.dms: List[Tuple[str, StructuredMessage]] = []
        self.fail_channels = set()
        self.fail_dm = False
        self._next_id = 0

    async def send(self, channel_id: str, message: StructuredMessage) -> DeliveryResult:
        if channel_id in self.fail_channels:
            return DeliveryResult(delivered=False, channel_id=channel_id, error="Missing Access")
        self._next_id += 1
        self.sent.append((channel_id, message))
        return DeliveryResult(delivered=True, channel_id=channel_id, message_id=f"msg-{self._next_id}")

    async def edit(self, channel_id: str, message_id: str, message: StructuredMessage) -> DeliveryResult:
        self.edits.append((channel_id, message_id, message))
        return DeliveryResult(delivered=True, channel_id=channel_id, message_id=message_id)

    async def direct_message(self, principal_id: str, message: StructuredMessage) -> DeliveryResult:
        if self.fail_dm:
            return DeliveryResult(delivered=False, error="Cannot send messages to this user")
        self.dms.append((principal_id, message))
        return DeliveryResult(delivered=True, channel_id=f"dm-{principal_id}")

    def titles(self, channel_id: str) -> List[Optional[str]]:
        return [message.title for target, message in self.sent if target == channel_id]


class ManualSleep:
    """Stand-in for asyncio.sleep that waits until release() is called"""

    def __init__(self):
        self.waiting: List[Tuple[float, asyncio.Future]] = []

    async def __call__(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self.waiting.append((seconds, future))
        await future

    @property
    def pending(self) -> int:
        return sum(1 for _, future in self.waiting if not future.done())

    async def release(self) -> None:
        """Let every pending sleep finish, then give woken tasks time to run"""
        for _, future in self.waiting:
            if not future.done():
                future.set_result(None)
        for _ in range(10):
            await asyncio.sleep(0)


async def settle(rounds: int = 10) -> None:
    """Yield to the loop so freshly started tasks reach their first await"""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        store_backend="memory",
        discord_application_id=BOT_ID,
        confirmation_timeout_seconds=30.0,
        channel_delete_delay_seconds=3.0,
        interaction_signing_secret="",
        allowed_api_keys="",
    )


@pytest.fixture
def general_category() -> TicketCategory:
    return TicketCategory(
        id="general",
        guild_id=GUILD_ID,
        name="General Support",
        description="Questions about the server",
        emoji="🎫",
        position=0,
        parent_channel_id="parent-general",
    )


@pytest.fixture
def billing_category() -> TicketCategory:
    return TicketCategory(
        id="billing",
        guild_id=GUILD_ID,
        name="Billing",
        support_role_id=SUPPORT_ROLE_ID,
        position=1,
        parent_channel_id="parent-billing",
    )


@pytest.fixture
def store(general_category, billing_category) -> InMemoryTicketRepository:
    repo = InMemoryTicketRepository()
    repo.add_workspace(
        WorkspaceConfig(
            guild_id=GUILD_ID,
            is_enabled=True,
            categories=[general_category, billing_category],
        )
    )
    return repo


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def manual_sleep() -> ManualSleep:
    return ManualSleep()


@pytest.fixture
def ctx(store, provisioner, notifier, settings, manual_sleep) -> ServiceContext:
    return ServiceContext(
        store=store,
        provisioner=provisioner,
        notifier=notifier,
        bot_user_id=BOT_ID,
        settings=settings,
        sleep=manual_sleep,
    )


@pytest.fixture
def service(ctx) -> TicketService:
    return TicketService(ctx)


@pytest.fixture
def creator() -> Principal:
    return Principal(id="user-1", username="alice")


@pytest.fixture
def staff_a() -> Principal:
    return Principal(id="staff-a", username="moderator-a", permissions=MANAGE_CHANNELS)


@pytest.fixture
def staff_b() -> Principal:
    return Principal(id="staff-b", username="moderator-b", permissions=MANAGE_CHANNELS)


@pytest.fixture
def supporter() -> Principal:
    return Principal(id="support-1", username="helper", role_ids=[SUPPORT_ROLE_ID])


@pytest.fixture
def outsider() -> Principal:
    return Principal(id="user-2", username="bob")


@pytest.fixture
def make_ticket(store, provisioner):
    """Insert a ticket bound to a live channel"""

    def _make(
        creator_id: str = "user-1",
        category_id: str = "general",
        status: TicketStatus = TicketStatus.OPEN,
        claimed_by_id: Optional[str] = None,
        channel_id: Optional[str] = None,
        ticket_number: Optional[int] = None,
        live_channel: bool = True
    ) -> Ticket:
        number = ticket_number or store.counters[GUILD_ID] + 1
        channel_id = channel_id or f"ticket-chan-{number}"
        if live_channel:
            provisioner.register(channel_id)
        return store.add_ticket(
            Ticket(
                guild_id=GUILD_ID,
                ticket_number=number,
                creator_id=creator_id,
                channel_id=channel_id,
                category_id=category_id,
                status=status,
                claimed_by_id=claimed_by_id,
            )
        )

    return _make


@pytest.fixture
def client(service):
    """TestClient over the app with the fixture service in place of the lifespan's"""
    app.state.ticket_service = service
    yield TestClient(app)
    del app.state.ticket_service


@pytest.fixture
def configure(monkeypatch):
    """Override environment-backed settings for one test"""

    def _configure(**env):
        for key, value in env.items():
            monkeypatch.setenv(key.upper(), value)
        get_settings.cache_clear()

    yield _configure
    get_settings.cache_clear()
