"""Actor resource and permission collaborators used by the set engine."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Iterable, Mapping, Protocol, Sequence

from .effects import DamageType, StatusEffect, StatusMode
from .notifications import CONFIRMATIONS, Event, Message, NotificationBus

__all__ = [
    "Disposition",
    "Affinity",
    "DamageTrait",
    "DamageReport",
    "ResourceMutator",
    "SceneView",
    "PermissionOracle",
    "Combatant",
    "ResourceLedger",
    "StaticPermissions",
    "ProxyResourceMutator",
    "PrivilegedCoordinator",
    "damage_after_affinity",
]

logger = logging.getLogger(__name__)


class Disposition(IntEnum):
    ENEMY = -1
    NEUTRAL = 0
    ALLY = 1


class Affinity(IntEnum):
    """Per damage type affinity values as stored on an actor."""

    VULNERABLE = -1
    NORMAL = 0
    RESISTANT = 1
    IMMUNE = 2
    ABSORB = 3


class DamageTrait(str, Enum):
    IGNORE_RESISTANCES = "ignoreResistances"
    IGNORE_IMMUNITIES = "ignoreImmunities"


@dataclass(frozen=True, slots=True)
class DamageReport:
    actor_id: str
    original: int
    final: int
    affinity: str


class ResourceMutator(Protocol):
    """Writes actor resources; implementations may proxy to another client."""

    async def apply_damage(
        self,
        damage_type: DamageType,
        amount: int,
        source_id: str | None,
        target_ids: Sequence[str],
        traits: Sequence[DamageTrait] = (),
    ) -> list[DamageReport]:  # pragma: no cover - protocol only
        ...

    async def apply_resource_delta(self, actor_id: str, *, hp: int = 0, mp: int = 0) -> None:  # pragma: no cover
        ...

    async def apply_status_effect(
        self, actor_id: str, effect: StatusEffect, mode: StatusMode
    ) -> None:  # pragma: no cover - protocol only
        ...

    async def revive(self, actor_id: str) -> None:  # pragma: no cover - protocol only
        ...


class SceneView(Protocol):
    """Read access to the actors present on the scene."""

    def disposition(self, actor_id: str) -> Disposition | None:  # pragma: no cover - protocol only
        ...

    def current_mp(self, actor_id: str) -> int | None:  # pragma: no cover - protocol only
        ...


class PermissionOracle(Protocol):
    def is_owner(self, actor_id: str) -> bool:  # pragma: no cover - protocol only
        ...

    def is_privileged_user(self) -> bool:  # pragma: no cover - protocol only
        ...


@dataclass(slots=True)
class Combatant:
    """Actor on the scene with HP/MP pools, statuses and affinities."""

    id: str
    name: str
    disposition: Disposition
    hp: int
    hp_max: int
    mp: int
    mp_max: int
    affinities: dict[DamageType, Affinity] = field(default_factory=dict)
    statuses: set[StatusEffect] = field(default_factory=set)
    surrendered: bool = False


def damage_after_affinity(amount: int, affinity: Affinity, traits: Iterable[DamageTrait] = ()) -> tuple[int, str]:
    """Return the damage dealt after ``affinity`` and a short label.

    A negative result means the damage was absorbed as healing.
    """

    trait_set = set(traits)
    ignore_resistances = DamageTrait.IGNORE_RESISTANCES in trait_set
    ignore_immunities = DamageTrait.IGNORE_IMMUNITIES in trait_set
    if affinity is Affinity.VULNERABLE:
        return amount * 2, "Vulnerable"
    if affinity is Affinity.RESISTANT:
        if ignore_resistances:
            return amount, "Resistance ignored"
        return amount // 2, "Resistant"
    if affinity is Affinity.IMMUNE:
        if ignore_immunities:
            return amount, "Immunity ignored"
        return 0, "Immune"
    if affinity is Affinity.ABSORB:
        if ignore_immunities:
            return amount, "Absorption ignored"
        return -amount, "Absorbed"
    return amount, "Normal"


class ResourceLedger:
    """In-memory :class:`ResourceMutator` and :class:`SceneView`."""

    def __init__(self, combatants: Iterable[Combatant] = ()) -> None:
        self.combatants: dict[str, Combatant] = {combatant.id: combatant for combatant in combatants}

    def add(self, combatant: Combatant) -> Combatant:
        self.combatants[combatant.id] = combatant
        return combatant

    def get(self, actor_id: str) -> Combatant | None:
        return self.combatants.get(actor_id)

    def disposition(self, actor_id: str) -> Disposition | None:
        combatant = self.combatants.get(actor_id)
        return combatant.disposition if combatant is not None else None

    def current_mp(self, actor_id: str) -> int | None:
        combatant = self.combatants.get(actor_id)
        return combatant.mp if combatant is not None else None

    async def apply_damage(
        self,
        damage_type: DamageType,
        amount: int,
        source_id: str | None,
        target_ids: Sequence[str],
        traits: Sequence[DamageTrait] = (),
    ) -> list[DamageReport]:
        reports: list[DamageReport] = []
        for target_id in target_ids:
            combatant = self.combatants.get(target_id)
            if combatant is None:
                logger.warning("Cannot find target for damage: %s", target_id)
                continue
            affinity = combatant.affinities.get(damage_type, Affinity.NORMAL)
            final, label = damage_after_affinity(amount, affinity, traits)
            combatant.hp = max(0, min(combatant.hp - final, combatant.hp_max))
            logger.info("%s takes %d %s damage (%s)", combatant.name, final, damage_type.value, label)
            reports.append(DamageReport(actor_id=target_id, original=amount, final=final, affinity=label))
        return reports

    async def apply_resource_delta(self, actor_id: str, *, hp: int = 0, mp: int = 0) -> None:
        combatant = self.combatants.get(actor_id)
        if combatant is None:
            logger.warning("Cannot find actor for resource change: %s", actor_id)
            return
        combatant.hp = max(0, min(combatant.hp + hp, combatant.hp_max))
        combatant.mp = max(0, min(combatant.mp + mp, combatant.mp_max))

    async def apply_status_effect(self, actor_id: str, effect: StatusEffect, mode: StatusMode) -> None:
        combatant = self.combatants.get(actor_id)
        if combatant is None:
            logger.warning("Cannot find actor for status effect: %s", actor_id)
            return
        if mode is StatusMode.APPLY:
            combatant.statuses.add(effect)
        else:
            combatant.statuses.discard(effect)

    async def revive(self, actor_id: str) -> None:
        combatant = self.combatants.get(actor_id)
        if combatant is not None and combatant.surrendered:
            combatant.surrendered = False
            logger.info("%s regains consciousness", combatant.name)


@dataclass(slots=True)
class StaticPermissions:
    """Permission oracle backed by a fixed ownership set."""

    owned_actor_ids: set[str] = field(default_factory=set)
    privileged: bool = False

    def is_owner(self, actor_id: str) -> bool:
        return actor_id in self.owned_actor_ids

    def is_privileged_user(self) -> bool:
        return self.privileged

    @classmethod
    def from_mapping(cls, owners: Mapping[str, str], user_id: str, *, privileged: bool = False) -> "StaticPermissions":
        """Build permissions for ``user_id`` from an ``actor id -> owner`` mapping."""

        return cls({actor for actor, owner in owners.items() if owner == user_id}, privileged)


class ProxyResourceMutator:
    """Resource mutator that routes writes it may not perform to the GM.

    Writes on actors the local user owns, or any write by a privileged user,
    go straight to ``local``. Everything else is published as a request on
    ``bus`` and tracked in :attr:`pending` until a confirmation arrives; the
    caller never waits for it.
    """

    def __init__(self, local: ResourceMutator, bus: NotificationBus, permissions: PermissionOracle) -> None:
        self.local = local
        self.bus = bus
        self.permissions = permissions
        self.pending: dict[str, Event] = {}
        self.confirmed: list[Message] = []
        self._request_ids = itertools.count(1)
        for event in CONFIRMATIONS:
            bus.on_receive(event, self._on_confirmation)

    def _can_write(self, actor_id: str) -> bool:
        return self.permissions.is_privileged_user() or self.permissions.is_owner(actor_id)

    def _request(self, event: Event, payload: dict[str, Any]) -> str:
        request_id = f"{self.bus.user_id}-{next(self._request_ids)}"
        self.pending[request_id] = event
        self.bus.broadcast(event, {**payload, "requestId": request_id})
        logger.info("Sent %s request %s to the GM", event.value, request_id)
        return request_id

    def _on_confirmation(self, message: Message) -> None:
        if message.payload.get("originalSenderId") != self.bus.user_id:
            return
        request_id = message.payload.get("requestId")
        if self.pending.pop(str(request_id), None) is not None:
            self.confirmed.append(message)

    async def apply_damage(
        self,
        damage_type: DamageType,
        amount: int,
        source_id: str | None,
        target_ids: Sequence[str],
        traits: Sequence[DamageTrait] = (),
    ) -> list[DamageReport]:
        direct = [target for target in target_ids if self._can_write(target)]
        proxied = [target for target in target_ids if not self._can_write(target)]
        if proxied:
            self._request(
                Event.APPLY_DAMAGE,
                {
                    "damageType": damage_type.value,
                    "amount": amount,
                    "sourceId": source_id,
                    "targetIds": proxied,
                    "traits": [trait.value for trait in traits],
                },
            )
        if not direct:
            return []
        return await self.local.apply_damage(damage_type, amount, source_id, direct, traits)

    async def apply_resource_delta(self, actor_id: str, *, hp: int = 0, mp: int = 0) -> None:
        if self._can_write(actor_id):
            await self.local.apply_resource_delta(actor_id, hp=hp, mp=mp)
            return
        self._request(Event.APPLY_HEALING, {"actorId": actor_id, "hp": hp, "mp": mp})

    async def apply_status_effect(self, actor_id: str, effect: StatusEffect, mode: StatusMode) -> None:
        if self._can_write(actor_id):
            await self.local.apply_status_effect(actor_id, effect, mode)
            return
        self._request(Event.APPLY_STATUS_EFFECT, {"actorId": actor_id, "effect": effect.value, "mode": mode.value})

    async def revive(self, actor_id: str) -> None:
        if self._can_write(actor_id):
            await self.local.revive(actor_id)
            return
        self._request(Event.APPLY_HEALING, {"actorId": actor_id, "hp": 0, "mp": 0, "revive": True})


class PrivilegedCoordinator:
    """GM-side handler applying proxied requests and confirming them."""

    def __init__(self, bus: NotificationBus, resources: ResourceMutator) -> None:
        self.bus = bus
        self.resources = resources
        self.handled: set[str] = set()
        bus.on_receive(Event.APPLY_DAMAGE, self.on_damage)
        bus.on_receive(Event.APPLY_HEALING, self.on_healing)
        bus.on_receive(Event.APPLY_STATUS_EFFECT, self.on_status)

    def _first_time(self, message: Message) -> bool:
        request_id = f"{message.sender_id}:{message.payload.get('requestId')}"
        if request_id in self.handled:
            logger.debug("Ignoring repeated request %s", request_id)
            return False
        self.handled.add(request_id)
        return True

    def _confirm(self, event: Event, message: Message, **extra: Any) -> None:
        self.bus.broadcast(
            event,
            {"originalSenderId": message.sender_id, "requestId": message.payload.get("requestId"), **extra},
        )

    async def on_damage(self, message: Message) -> None:
        if not self._first_time(message):
            return
        payload = message.payload
        reports = await self.resources.apply_damage(
            DamageType(payload["damageType"]),
            int(payload["amount"]),
            payload.get("sourceId"),
            list(payload.get("targetIds", ())),
            [DamageTrait(trait) for trait in payload.get("traits", ())],
        )
        self._confirm(Event.DAMAGE_CONFIRM, message, results=[(r.actor_id, r.final, r.affinity) for r in reports])

    async def on_healing(self, message: Message) -> None:
        if not self._first_time(message):
            return
        payload = message.payload
        actor_id = str(payload["actorId"])
        if payload.get("revive"):
            await self.resources.revive(actor_id)
        await self.resources.apply_resource_delta(actor_id, hp=int(payload.get("hp", 0)), mp=int(payload.get("mp", 0)))
        self._confirm(Event.HEALING_CONFIRM, message, actorId=actor_id)

    async def on_status(self, message: Message) -> None:
        if not self._first_time(message):
            return
        payload = message.payload
        actor_id = str(payload["actorId"])
        await self.resources.apply_status_effect(
            actor_id, StatusEffect(payload["effect"]), StatusMode(payload["mode"])
        )
        self._confirm(Event.STATUS_CONFIRM, message, actorId=actor_id)
