"""Play and activate detected sets against piles, resources and the bus."""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Sequence, assert_never

from .cards import ClassifiedCard, RawCard, Suit, WildAssignment, classify_card, classify_cards
from .collaborators import DamageReport, DamageTrait, PermissionOracle, ResourceMutator, SceneView
from .config import DEFAULT_CONFIG, EngineConfig
from .effects import (
    DamageType,
    IllegalAllocation,
    SetEffect,
    StatusEffect,
    TargetCardinality,
    allocate_healing,
    resolve_effect,
)
from .notifications import Event, NotificationBus
from .piles import CardUpdate, PileStore, PileStoreError, TableContext
from .sets import DetectedSet, SetType, detect_set_type, detect_sets, partition_cards
from . import transfer
from .transfer import CleanupReport, DrawResult, FailureReason, OperationResult, TransferOutcome

__all__ = [
    "SetState",
    "Playability",
    "TargetSelection",
    "ActivationChoices",
    "ActivationResult",
    "EffectPlan",
    "SetEngine",
]

logger = logging.getLogger(__name__)


class SetState(str, Enum):
    DETECTED = "detected"
    PLAYABLE = "playable"
    PLAYED = "played"
    ACTIVATED = "activated"


@dataclass(frozen=True, slots=True)
class Playability:
    detected: DetectedSet
    state: SetState
    cost: int
    reason: FailureReason | None = None

    @property
    def playable(self) -> bool:
        return self.state is SetState.PLAYABLE


@dataclass(frozen=True, slots=True)
class TargetSelection:
    """Creatures currently selected by the acting user."""

    hostile: tuple[str, ...] = ()
    friendly: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ActivationChoices:
    """Decisions the caster makes while activating a set.

    ``damage_type`` settles a choice between suit damage types, ``statuses``
    names the status effects for a full status and ``allocation`` splits a
    triple support pool as ``actor id -> (hp, mp)``.
    """

    damage_type: DamageType | None = None
    statuses: tuple[StatusEffect, ...] = ()
    allocation: Mapping[str, tuple[int, int]] | None = None


@dataclass(frozen=True, slots=True)
class ActivationResult(OperationResult):
    effect: SetEffect | None = None
    targets: tuple[str, ...] = ()
    damage: tuple[DamageReport, ...] = ()
    state: SetState = SetState.PLAYED


@dataclass(slots=True)
class EffectPlan:
    effect: SetEffect
    targets: tuple[str, ...]
    damage_type: DamageType | None = None
    statuses: tuple[StatusEffect, ...] = ()
    allocation: dict[str, tuple[int, int]] = field(default_factory=dict)


class SetEngine:
    """Orchestrates one client's set lifecycle.

    Every pile write goes through :mod:`acecards.transfer`; every change to
    actors goes through ``resources``. Failures come back as
    :class:`OperationResult` values with a :class:`FailureReason`.
    """

    def __init__(
        self,
        context: TableContext,
        store: PileStore,
        resources: ResourceMutator,
        scene: SceneView,
        bus: NotificationBus,
        permissions: PermissionOracle,
        config: EngineConfig = DEFAULT_CONFIG,
        rng: random.Random | None = None,
    ) -> None:
        self.context = context
        self.store = store
        self.resources = resources
        self.scene = scene
        self.bus = bus
        self.permissions = permissions
        self.config = config
        self.rng = rng or random.Random()

    # Detection -------------------------------------------------------------

    async def hand_cards(self) -> list[ClassifiedCard]:
        piles = self.context.piles_for()
        if piles is None or piles.hand_id is None:
            return []
        hand = await self.store.get_pile(piles.hand_id)
        return classify_cards(hand.cards) if hand is not None else []

    async def table_cards(self, owner_id: str | None = None) -> list[ClassifiedCard]:
        if self.context.table_id is None:
            return []
        table = await self.store.get_pile(self.context.table_id)
        if table is None:
            return []
        owner = owner_id or self.context.user_id
        return [card for card in classify_cards(table.cards) if card.owner_id == owner]

    async def playable_sets(self, caster_id: str) -> list[Playability]:
        """Detect every set in the local hand and check whether it can be played."""

        hand = await self.hand_cards()
        hand_ids = {card.id for card in hand}
        mp = self.scene.current_mp(caster_id)
        return [self._check(detected, hand_ids, mp) for detected in detect_sets(hand)]

    async def check_playable(self, detected: DetectedSet, caster_id: str) -> Playability:
        hand_ids = {card.id for card in await self.hand_cards()}
        return self._check(detected, hand_ids, self.scene.current_mp(caster_id))

    def _check(self, detected: DetectedSet, hand_ids: set[str], mp: int | None) -> Playability:
        cost = resolve_effect(detected, cost_per_card=self.config.mp_cost_per_card).cost
        reason: FailureReason | None = None
        if any(card_id not in hand_ids for card_id in detected.card_ids):
            reason = FailureReason.CARD_MISSING
        elif any(card.is_wild and not card.is_resolved_wild for card in detected.cards):
            reason = FailureReason.UNASSIGNED_WILD
        elif mp is not None and mp < cost:
            reason = FailureReason.INSUFFICIENT_MP
        state = SetState.DETECTED if reason is not None else SetState.PLAYABLE
        return Playability(detected=detected, state=state, cost=cost, reason=reason)

    async def table_sets(self, owner_id: str | None = None) -> list[DetectedSet]:
        """Re-detect the sets an owner has on the table.

        Each played set is re-detected on its own cards. Cards tagged with a
        set type but no set id are pooled per type; untagged cards go through
        full detection.
        """

        played: dict[tuple[str, SetType], list[ClassifiedCard]] = {}
        tagged: dict[SetType, list[ClassifiedCard]] = {}
        untagged: list[ClassifiedCard] = []
        for card in await self.table_cards(owner_id):
            try:
                set_type = SetType.parse(card.set_type_tag or "")
            except ValueError:
                untagged.append(card)
                continue
            if card.set_id is not None:
                played.setdefault((card.set_id, set_type), []).append(card)
            else:
                tagged.setdefault(set_type, []).append(card)
        found: list[DetectedSet] = []
        for (_, set_type), cards in played.items():
            found.extend(detect_set_type(set_type, partition_cards(cards)))
        for set_type, cards in tagged.items():
            found.extend(detect_set_type(set_type, partition_cards(cards)))
        if untagged:
            found.extend(detect_sets(untagged))
        return found

    # Play ------------------------------------------------------------------

    async def play_set_to_table(self, detected: DetectedSet, caster_id: str) -> OperationResult:
        """Move a playable set from the local hand onto the shared table.

        Every check runs before the first move. A move failing part way stops
        the remaining cards; cards already on the table stay there.
        """

        piles = self.context.piles_for()
        if piles is None or piles.hand_id is None:
            return OperationResult.failure(FailureReason.NO_PILES)
        if self.context.table_id is None:
            return OperationResult.failure(FailureReason.NO_TABLE)
        hand = await self.store.get_pile(piles.hand_id)
        if hand is None:
            return OperationResult.failure(FailureReason.NO_PILES)

        check = self._check(detected, set(hand.card_ids()), self.scene.current_mp(caster_id))
        if not check.playable:
            logger.info("Set %s is not playable: %s", detected.type.value, check.reason)
            return OperationResult.failure(check.reason or FailureReason.CARD_MISSING)

        set_id = f"{self.context.user_id}:{uuid.uuid4().hex[:12]}"
        outcomes: list[TransferOutcome] = []
        for card_id in detected.card_ids:
            raw = hand.get(card_id)
            if raw is None:
                return OperationResult.failure(FailureReason.CARD_MISSING, outcomes)
            outcome = await transfer.place_on_table(
                self.store,
                piles.hand_id,
                self.context.table_id,
                raw.copy(),
                self.context.user_id,
                detected.type.value,
                set_id,
            )
            outcomes.append(outcome)
            if not outcome.moved:
                logger.error("Playing %s stopped at card %s (%s)", detected.type.value, card_id, outcome.status.value)
                return OperationResult.failure(FailureReason.MOVE_FAILED, outcomes)

        self.bus.broadcast(
            Event.SET_PLAYED,
            {
                "ownerId": self.context.user_id,
                "setType": detected.type.value,
                "setId": set_id,
                "cardIds": list(detected.card_ids),
            },
        )
        logger.info("%s played %s to the table", self.context.user_id, detected.type.display_name)
        return OperationResult.success(outcomes)

    async def _hand_card(self, card_id: str) -> tuple[str, RawCard] | FailureReason:
        piles = self.context.piles_for()
        if piles is None:
            return FailureReason.NO_PILES
        _, hand_id, _ = piles.require()
        hand = await self.store.get_pile(hand_id)
        if hand is None:
            return FailureReason.NO_PILES
        raw = hand.get(card_id)
        if raw is None:
            return FailureReason.CARD_MISSING
        return hand_id, raw

    async def play_card_to_table(self, card_id: str) -> OperationResult:
        """Move a single card from the local hand onto the table.

        The card is stamped with the local owner and keeps its phantom
        assignment. An unassigned joker stays in hand.
        """

        if self.context.table_id is None:
            return OperationResult.failure(FailureReason.NO_TABLE)
        found = await self._hand_card(card_id)
        if isinstance(found, FailureReason):
            return OperationResult.failure(found)
        hand_id, raw = found
        card = classify_card(raw)
        if card.is_wild and not card.is_resolved_wild:
            logger.info("Joker %s needs a phantom rank and suit before it can be played", card_id)
            return OperationResult.failure(FailureReason.UNASSIGNED_WILD)

        outcome = await transfer.place_on_table(
            self.store, hand_id, self.context.table_id, raw.copy(), self.context.user_id
        )
        if not outcome.moved:
            return OperationResult.failure(FailureReason.MOVE_FAILED, [outcome])
        self.bus.broadcast(Event.CARD_TO_TABLE, {"ownerId": self.context.user_id, "cardId": card_id})
        logger.info("%s played %s to the table", self.context.user_id, card.label())
        return OperationResult.success([outcome])

    # Wild cards ------------------------------------------------------------

    async def assign_wild(self, card_id: str, rank: int, suit: Suit) -> OperationResult:
        """Give a joker in the local hand a phantom rank and suit.

        Raises :class:`InvalidWildAssignment` for a rank outside the deck.
        """

        assignment = WildAssignment(rank=rank, suit=suit)
        return await self._update_wild(
            card_id, CardUpdate(card_id, flags={"phantomValue": assignment.rank, "phantomSuit": assignment.suit.value})
        )

    async def clear_wild(self, card_id: str) -> OperationResult:
        return await self._update_wild(card_id, CardUpdate(card_id, clear_flags=("phantomValue", "phantomSuit")))

    async def _update_wild(self, card_id: str, update: CardUpdate) -> OperationResult:
        found = await self._hand_card(card_id)
        if isinstance(found, FailureReason):
            return OperationResult.failure(found)
        hand_id, raw = found
        if not classify_card(raw).is_wild:
            return OperationResult.failure(FailureReason.NOT_WILD)
        try:
            await self.store.update_cards(hand_id, [update])
        except PileStoreError as exc:
            logger.error("Could not update joker %s: %s", card_id, exc)
            return OperationResult.failure(FailureReason.UPDATE_FAILED)
        return OperationResult.success()

    # Activation ------------------------------------------------------------

    def compute_targets(self, effect: SetEffect, caster_id: str, selection: TargetSelection) -> tuple[str, ...]:
        """Return the actors an effect lands on.

        Effects reaching allies take the friendly selection plus the caster;
        everything else takes the hostile selection.
        """

        match effect.target_cardinality:
            case TargetCardinality.ALL_ALLIES:
                return tuple(dict.fromkeys((caster_id, *selection.friendly)))
            case TargetCardinality.ALL_ENEMIES:
                return tuple(dict.fromkeys(selection.hostile))
            case TargetCardinality.UP_TO_TWO_ENEMIES:
                return tuple(dict.fromkeys(selection.hostile))[:2]
            case TargetCardinality.SINGLE_FREE_ATTACK:
                return tuple(selection.hostile[:1])
            case TargetCardinality.NONE:
                return ()
            case _:
                assert_never(effect.target_cardinality)

    def _plan(
        self,
        detected: DetectedSet,
        caster_id: str,
        selection: TargetSelection,
        choices: ActivationChoices,
    ) -> EffectPlan:
        effect = resolve_effect(detected, cost_per_card=self.config.mp_cost_per_card)
        plan = EffectPlan(effect=effect, targets=self.compute_targets(effect, caster_id, selection))
        if effect.damage_type is DamageType.CHOOSE:
            chosen = choices.damage_type
            if chosen is None or chosen not in effect.damage_type_choices:
                chosen = effect.damage_type_choices[0]
            plan.damage_type = chosen
        else:
            plan.damage_type = effect.damage_type
        if effect.status_picks:
            picked = tuple(dict.fromkeys(s for s in choices.statuses if s in effect.status_choices))
            plan.statuses = (picked or effect.status_choices)[: effect.status_picks]
        if effect.allocatable:
            if choices.allocation is None:
                share = effect.heal_value // max(len(plan.targets), 1)
                requested = {target: (share, 0) for target in plan.targets}
            else:
                requested = dict(choices.allocation)
            stray = set(requested) - set(plan.targets)
            if stray:
                raise IllegalAllocation(f"allocation names non-targets: {sorted(stray)}")
            plan.allocation = allocate_healing(effect.heal_value, requested)
        return plan

    async def activate_set(
        self,
        detected: DetectedSet,
        caster_id: str,
        selection: TargetSelection = TargetSelection(),
        choices: ActivationChoices = ActivationChoices(),
    ) -> ActivationResult:
        """Resolve a set the local user owns on the table.

        Cards go to the owner's discard one at a time; a card that is gone or
        already discarded is skipped and the effect still lands once.
        """

        if any(card.owner_id != self.context.user_id for card in detected.cards):
            return ActivationResult(ok=False, reason=FailureReason.NOT_OWNER)
        if not (self.permissions.is_privileged_user() or self.permissions.is_owner(caster_id)):
            return ActivationResult(ok=False, reason=FailureReason.NOT_OWNER)
        piles = self.context.piles_for()
        if piles is None or piles.discard_id is None:
            return ActivationResult(ok=False, reason=FailureReason.NO_PILES)
        if self.context.table_id is None:
            return ActivationResult(ok=False, reason=FailureReason.NO_TABLE)

        try:
            plan = self._plan(detected, caster_id, selection, choices)
        except IllegalAllocation as exc:
            logger.warning("Rejected allocation for %s: %s", detected.type.value, exc)
            return ActivationResult(ok=False, reason=FailureReason.ILLEGAL_ALLOCATION)
        if plan.effect.target_cardinality is not TargetCardinality.NONE and not plan.targets:
            return ActivationResult(ok=False, reason=FailureReason.NO_TARGETS, effect=plan.effect)

        outcomes = await transfer.move_cards(
            self.store, self.context.table_id, piles.discard_id, detected.card_ids, check_duplicate=True
        )
        for outcome in outcomes:
            if outcome.moved:
                await transfer.clear_table_flags(self.store, piles.discard_id, outcome.card_id)
            else:
                logger.warning("Card %s skipped during activation (%s)", outcome.card_id, outcome.status.value)

        await self.resources.apply_resource_delta(caster_id, mp=-plan.effect.cost)
        damage = await self.apply_effect(plan, caster_id)
        self.bus.broadcast(
            Event.SET_ACTIVATED,
            {
                "ownerId": self.context.user_id,
                "casterId": caster_id,
                "setType": detected.type.value,
                "cardIds": list(detected.card_ids),
                "targets": list(plan.targets),
            },
        )
        logger.info("%s activated %s on %d targets", caster_id, detected.type.display_name, len(plan.targets))
        return ActivationResult(
            ok=True,
            outcomes=tuple(outcomes),
            effect=plan.effect,
            targets=plan.targets,
            damage=tuple(damage),
            state=SetState.ACTIVATED,
        )

    async def apply_effect(self, plan: EffectPlan, caster_id: str) -> list[DamageReport]:
        effect = plan.effect
        match effect.set_type:
            case SetType.JACKPOT:
                for target in plan.targets:
                    await self.resources.revive(target)
                    await self.resources.apply_resource_delta(target, hp=effect.heal_value, mp=effect.mp_heal_value)
                return []
            case SetType.TRIPLE_SUPPORT:
                for target, (hp, mp) in plan.allocation.items():
                    await self.resources.apply_resource_delta(target, hp=hp, mp=mp)
                return []
            case SetType.FULL_STATUS:
                if effect.status_mode is None:
                    raise RuntimeError("Full status effect resolved without a status mode")
                for target in plan.targets:
                    for status in plan.statuses:
                        await self.resources.apply_status_effect(target, status, effect.status_mode)
                return []
            case SetType.MAGIC_PAIR:
                logger.info(
                    "%s makes a free attack as %s damage",
                    caster_id,
                    plan.damage_type.value if plan.damage_type else DamageType.PHYSICAL.value,
                )
                return []
            case SetType.MAGIC_FLUSH | SetType.BLINDING_FLUSH | SetType.DOUBLE_TROUBLE | SetType.FORBIDDEN_MONARCH:
                if plan.damage_type is None:
                    raise RuntimeError(f"{effect.set_type.value} effect resolved without a damage type")
                traits: list[DamageTrait] = []
                if effect.ignores_resistance:
                    traits.append(DamageTrait.IGNORE_RESISTANCES)
                if effect.ignores_immunity:
                    traits.append(DamageTrait.IGNORE_IMMUNITIES)
                return await self.resources.apply_damage(
                    plan.damage_type, effect.damage_value, caster_id, plan.targets, traits
                )
            case _:
                assert_never(effect.set_type)

    # Single-card operations -----------------------------------------------

    async def draw_card(self) -> DrawResult:
        result = await transfer.draw_card(self.store, self.context.piles_for(), self.rng)
        if result.reshuffled:
            self.bus.broadcast(Event.SHUFFLE_DECK, {"userId": self.context.user_id})
        return result

    async def discard_card(self, card_id: str) -> OperationResult:
        return await transfer.discard_card(self.store, self.context.piles_for(), card_id)

    async def return_card_to_hand(self, card_id: str) -> OperationResult:
        result = await transfer.return_card_to_hand(self.store, self.context, card_id)
        if result.ok:
            self.bus.broadcast(Event.RETURN_CARD_TO_HAND, {"userId": self.context.user_id, "cardId": card_id})
        return result

    async def reset_hand(self) -> OperationResult:
        return await transfer.reset_hand(self.store, self.context.piles_for())

    async def draw_starting_hand(self) -> OperationResult:
        return await transfer.draw_starting_hand(self.store, self.context.piles_for(), self.rng, self.config)

    async def reset_deck(self) -> OperationResult:
        result = await transfer.reset_deck(self.store, self.context.piles_for())
        if result.ok:
            self.bus.broadcast(Event.SHUFFLE_DECK, {"userId": self.context.user_id})
        return result

    async def clean_table(self) -> CleanupReport:
        report = await transfer.clean_table(self.store, self.context, self.config)
        if report.ok:
            self.bus.broadcast(Event.CLEAN_TABLE, {"userId": self.context.user_id, "moved": report.moved})
        return report

    async def sweep_duplicates(self, pile_ids: Sequence[str] | None = None) -> list[TransferOutcome]:
        """Remove duplicate card instances across the local piles and the table."""

        if pile_ids is None:
            piles = self.context.piles_for()
            ids = [piles.hand_id, piles.deck_id, piles.discard_id] if piles else []
            ids.append(self.context.table_id)
            pile_ids = [pile_id for pile_id in ids if pile_id]
        return await transfer.repair_duplicates(self.store, pile_ids)
