"""In-process notification bus and the re-derived table view it invalidates."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Protocol

from .piles import PileStore

__all__ = [
    "Event",
    "CONFIRMATIONS",
    "INVALIDATING_EVENTS",
    "Message",
    "Handler",
    "NotificationBus",
    "NotificationHub",
    "LocalNotificationBus",
    "TableSnapshot",
    "RenderState",
]

logger = logging.getLogger(__name__)


class Event(str, Enum):
    CARD_TO_TABLE = "cardToTable"
    SET_PLAYED = "setPlayed"
    SET_ACTIVATED = "setActivated"
    CLEAN_TABLE = "cleanTable"
    RETURN_CARD_TO_HAND = "returnCardToHand"
    SHUFFLE_DECK = "shuffleDeck"
    APPLY_DAMAGE = "applyDamage"
    DAMAGE_CONFIRM = "damageConfirm"
    APPLY_HEALING = "applyHealing"
    HEALING_CONFIRM = "healingConfirm"
    APPLY_STATUS_EFFECT = "applyStatusEffect"
    STATUS_CONFIRM = "statusConfirm"

    @property
    def is_confirmation(self) -> bool:
        return self in CONFIRMATIONS


CONFIRMATIONS = frozenset({Event.DAMAGE_CONFIRM, Event.HEALING_CONFIRM, Event.STATUS_CONFIRM})

INVALIDATING_EVENTS = (
    Event.CARD_TO_TABLE,
    Event.SET_PLAYED,
    Event.SET_ACTIVATED,
    Event.CLEAN_TABLE,
    Event.RETURN_CARD_TO_HAND,
    Event.SHUFFLE_DECK,
)


@dataclass(frozen=True, slots=True)
class Message:
    event: Event
    sender_id: str
    payload: Mapping[str, Any] = field(default_factory=dict)


Handler = Callable[[Message], "Awaitable[None] | None"]


class NotificationBus(Protocol):
    """Fire-and-forget broadcast with per-event handlers."""

    user_id: str

    def broadcast(self, event: Event, payload: Mapping[str, Any] | None = None) -> None:  # pragma: no cover
        ...

    def on_receive(self, event: Event, handler: Handler) -> None:  # pragma: no cover - protocol only
        ...


class NotificationHub:
    """Relay connecting the buses of every client in one process.

    Broadcasts are queued and only handed to handlers by :meth:`flush`, which
    stands in for the network tick. ``drop_next`` discards the next queued
    messages to model at-most-once delivery.
    """

    def __init__(self) -> None:
        self.clients: dict[str, LocalNotificationBus] = {}
        self.queue: list[Message] = []
        self.delivered: list[Message] = []
        self.drop_next = 0

    def connect(self, user_id: str) -> "LocalNotificationBus":
        bus = LocalNotificationBus(user_id, self)
        self.clients[user_id] = bus
        return bus

    def enqueue(self, message: Message) -> None:
        if self.drop_next:
            self.drop_next -= 1
            logger.debug("Dropped %s from %s", message.event.value, message.sender_id)
            return
        self.queue.append(message)

    async def flush(self) -> int:
        """Deliver queued messages, including any sent by handlers, and return the count."""

        count = 0
        while self.queue:
            message = self.queue.pop(0)
            for bus in list(self.clients.values()):
                await bus.deliver(message)
            self.delivered.append(message)
            count += 1
        return count


class LocalNotificationBus:
    """One client's end of a :class:`NotificationHub`."""

    def __init__(self, user_id: str, hub: NotificationHub | None = None) -> None:
        self.user_id = user_id
        self.hub = hub
        self.handlers: dict[Event, list[Handler]] = defaultdict(list)
        self.sent: list[Message] = []

    def broadcast(self, event: Event, payload: Mapping[str, Any] | None = None) -> None:
        message = Message(event=event, sender_id=self.user_id, payload=dict(payload or {}))
        self.sent.append(message)
        logger.debug("Broadcast %s from %s", event.value, self.user_id)
        if self.hub is not None:
            self.hub.enqueue(message)

    def on_receive(self, event: Event, handler: Handler) -> None:
        self.handlers[event].append(handler)

    async def deliver(self, message: Message) -> None:
        # Clients ignore their own broadcasts; confirmations are addressed by payload.
        if message.sender_id == self.user_id and not message.event.is_confirmation:
            return
        for handler in self.handlers.get(message.event, ()):
            result = handler(message)
            if inspect.isawaitable(result):
                await result


@dataclass(frozen=True, slots=True)
class TableSnapshot:
    """Table cards grouped by owner, in table order."""

    by_owner: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    ownerless: tuple[str, ...] = ()

    @property
    def card_ids(self) -> tuple[str, ...]:
        ids = [card_id for cards in self.by_owner.values() for card_id in cards]
        return tuple(ids) + self.ownerless


class RenderState:
    """Client view rebuilt from pile state whenever it is invalidated.

    Handlers never apply deltas, so a repeated or missed notification leaves
    the view equal to the current piles after the next refresh.
    """

    def __init__(self, store: PileStore, table_id: str) -> None:
        self.store = store
        self.table_id = table_id
        self.snapshot = TableSnapshot()
        self.refreshes = 0

    def listen(self, bus: NotificationBus) -> None:
        for event in INVALIDATING_EVENTS:
            bus.on_receive(event, self.invalidate)

    async def invalidate(self, message: Message) -> None:
        logger.debug("Refreshing table view after %s", message.event.value)
        await self.refresh()

    async def refresh(self) -> TableSnapshot:
        table = await self.store.get_pile(self.table_id)
        by_owner: dict[str, list[str]] = {}
        ownerless: list[str] = []
        for card in table.cards if table is not None else ():
            owner = card.flags.get("ownerId")
            if owner:
                by_owner.setdefault(str(owner), []).append(card.id)
            else:
                ownerless.append(card.id)
        self.snapshot = TableSnapshot(
            by_owner={owner: tuple(ids) for owner, ids in by_owner.items()},
            ownerless=tuple(ownerless),
        )
        self.refreshes += 1
        return self.snapshot
