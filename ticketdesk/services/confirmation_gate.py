"""
Confirmation Gate

Bounded, requester-scoped confirm/cancel prompt used before irreversible
actions. Opening a gate posts the prompt and registers a listener; clicks
from the interaction router are handed to `ConfirmationRegistry.deliver`.

A gate resolves exactly once, to one of:
    CONFIRMED   the requester pressed the confirm button; the action runs
    CANCELLED   the requester pressed cancel
    TIMED_OUT   nothing was collected within the window

Resolution is recorded before the first await, so a second click that
arrives while the first is still being handled finds the gate closed.
"""
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from ticketdesk.models.interactions import InteractionBase
from ticketdesk.models.messages import StructuredMessage
from ticketdesk.models.schemas import Principal
from ticketdesk.services import message_builder as cards
from ticketdesk.utils.deadline import Deadline, SleepFunc
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class GateOutcome(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


class DeliveryStatus(str, Enum):
    ACCEPTED = "accepted"
    NOT_REQUESTER = "not_requester"
    UNKNOWN = "unknown"


@dataclass
class GateMessages:
    """Cards the prompt is edited to on each outcome"""
    confirmed: Callable[[], StructuredMessage] = cards.deleting_ticket
    cancelled: Callable[[], StructuredMessage] = cards.delete_cancelled
    timed_out: Callable[[], StructuredMessage] = cards.delete_timed_out


class PendingConfirmation:
    """One open confirmation prompt"""

    def __init__(
        self,
        registry: "ConfirmationRegistry",
        notifier,
        channel_id: str,
        requester: Principal,
        on_confirm: Callable[[], Awaitable[Any]],
        messages: GateMessages,
        confirm_id: str,
        cancel_id: str
    ):
        self.registry = registry
        self.notifier = notifier
        self.channel_id = channel_id
        self.requester = requester
        self.confirm_id = confirm_id
        self.cancel_id = cancel_id
        self.message_id: Optional[str] = None
        self.delivered = False
        self.resolved = False
        self.result: Any = None
        self._on_confirm = on_confirm
        self._messages = messages
        self._deadline: Optional[Deadline] = None
        self._outcome: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def outcome(self) -> Optional[GateOutcome]:
        return self._outcome.result() if self._outcome.done() else None

    def accepts(self, custom_id: str) -> bool:
        return custom_id in (self.confirm_id, self.cancel_id)

    async def wait(self) -> GateOutcome:
        """Wait until the gate resolves"""
        return await asyncio.shield(self._outcome)

    async def resolve(self, outcome: GateOutcome) -> bool:
        """
        Resolve the gate. Returns False when it was already resolved.
        """
        if self.resolved:
            return False
        self.resolved = True
        self.registry.unregister(self)
        if self._deadline is not None and outcome != GateOutcome.TIMED_OUT:
            self._deadline.cancel()

        logger.info(
            f"[CONFIRMATION] Prompt in channel {self.channel_id} for {self.requester.display}: {outcome.value}"
        )

        try:
            if outcome == GateOutcome.CONFIRMED:
                await self._edit(self._messages.confirmed())
                self.result = await self._on_confirm()
            elif outcome == GateOutcome.CANCELLED:
                await self._edit(self._messages.cancelled())
            else:
                await self._edit(self._messages.timed_out())
        finally:
            self._outcome.set_result(outcome)
        return True

    async def _edit(self, message: StructuredMessage) -> None:
        if not self.message_id:
            return
        result = await self.notifier.edit(self.channel_id, self.message_id, message)
        if not result.delivered:
            logger.warning(f"[CONFIRMATION] Could not update prompt {self.message_id}: {result.error}")

    def _arm(self, timeout: float, sleep: Optional[SleepFunc]) -> None:
        self._deadline = Deadline(
            timeout,
            lambda: self.resolve(GateOutcome.TIMED_OUT),
            sleep=sleep,
            name=f"confirmation-{self.channel_id}",
        ).start()


class ConfirmationRegistry:
    """In-flight confirmation prompts, looked up by prompt message id"""

    def __init__(self):
        self._pending: Dict[str, PendingConfirmation] = {}

    def __len__(self) -> int:
        return len(self._pending)

    async def open(
        self,
        notifier,
        channel_id: str,
        requester: Principal,
        prompt: StructuredMessage,
        on_confirm: Callable[[], Awaitable[Any]],
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        sleep: Optional[SleepFunc] = None,
        messages: Optional[GateMessages] = None,
        confirm_id: str = cards.CONFIRM_DELETE,
        cancel_id: str = cards.CANCEL_DELETE
    ) -> PendingConfirmation:
        """
        Post the prompt and start the confirmation window.

        Args:
            notifier: Where the prompt is posted and later edited
            channel_id: Channel the prompt goes to
            requester: The only principal whose clicks count
            prompt: Card carrying the confirm and cancel buttons
            on_confirm: Action run once on confirmation; its return value
                is kept on `PendingConfirmation.result`
            timeout: Window length in seconds
            sleep: Sleep coroutine for the window (tests inject a manual one)

        Returns:
            The pending confirmation. If the prompt could not be posted it
            comes back already resolved as CANCELLED with `delivered` False.
        """
        pending = PendingConfirmation(
            self,
            notifier,
            channel_id,
            requester,
            on_confirm,
            messages or GateMessages(),
            confirm_id,
            cancel_id,
        )

        delivery = await notifier.send(channel_id, prompt)
        if not delivery.delivered:
            logger.error(f"[CONFIRMATION] Could not post prompt in channel {channel_id}: {delivery.error}")
            await pending.resolve(GateOutcome.CANCELLED)
            return pending

        pending.delivered = True
        pending.message_id = delivery.message_id
        self._pending[self._key(pending)] = pending
        pending._arm(timeout, sleep)
        return pending

    async def deliver(self, interaction: InteractionBase) -> DeliveryStatus:
        """Hand a confirm/cancel click to the gate it belongs to"""
        pending = self.find(interaction)
        if pending is None or not pending.accepts(interaction.custom_id):
            return DeliveryStatus.UNKNOWN

        if interaction.principal.id != pending.requester.id:
            logger.debug(
                f"[CONFIRMATION] Ignoring {interaction.custom_id} from {interaction.principal.id} "
                f"on prompt owned by {pending.requester.id}"
            )
            return DeliveryStatus.NOT_REQUESTER

        outcome = GateOutcome.CONFIRMED if interaction.custom_id == pending.confirm_id else GateOutcome.CANCELLED
        if not await pending.resolve(outcome):
            return DeliveryStatus.UNKNOWN
        return DeliveryStatus.ACCEPTED

    def find(self, interaction: InteractionBase) -> Optional[PendingConfirmation]:
        if interaction.message_id and interaction.message_id in self._pending:
            return self._pending[interaction.message_id]
        for pending in self._pending.values():
            if pending.channel_id == interaction.channel_id:
                return pending
        return None

    def unregister(self, pending: PendingConfirmation) -> None:
        key = self._key(pending)
        if self._pending.get(key) is pending:
            del self._pending[key]

    @staticmethod
    def _key(pending: PendingConfirmation) -> str:
        return pending.message_id or f"channel:{pending.channel_id}"
