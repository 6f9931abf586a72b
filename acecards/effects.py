"""Effect formulas for detected sets."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, Mapping, assert_never

from .cards import Suit
from .sets import DetectedSet, SetType

__all__ = [
    "MP_COST_PER_CARD",
    "JACKPOT_AMOUNT",
    "MONARCH_DAMAGE",
    "DamageType",
    "TargetCardinality",
    "StatusMode",
    "StatusEffect",
    "SetEffect",
    "IllegalAllocation",
    "SUIT_DAMAGE_TYPES",
    "SET_DESCRIPTIONS",
    "damage_type_for_suit",
    "resolve_effect",
    "set_cost",
    "describe_effect",
    "allocate_healing",
]

MP_COST_PER_CARD: Final = 5
JACKPOT_AMOUNT: Final = 777
MONARCH_DAMAGE: Final = 777
MAGIC_FLUSH_BASE: Final = 25
BLINDING_FLUSH_BASE: Final = 15
DOUBLE_TROUBLE_BASE: Final = 10
TRIPLE_SUPPORT_MULTIPLIER: Final = 3
FULL_STATUS_PICKS: Final = 2


class DamageType(str, Enum):
    FIRE = "fire"
    AIR = "air"
    EARTH = "earth"
    ICE = "ice"
    LIGHT = "light"
    DARK = "dark"
    PHYSICAL = "physical"
    CHOOSE = "choose"


class TargetCardinality(str, Enum):
    """Which creatures an effect reaches once activated."""

    ALL_ENEMIES = "all-enemies"
    ALL_ALLIES = "all-allies"
    UP_TO_TWO_ENEMIES = "up-to-two-enemies"
    SINGLE_FREE_ATTACK = "single-free-attack"
    NONE = "none"


class StatusMode(str, Enum):
    APPLY = "apply"
    REMOVE = "remove"


class StatusEffect(str, Enum):
    DAZED = "dazed"
    SHAKEN = "shaken"
    SLOW = "slow"
    WEAK = "weak"


SUIT_DAMAGE_TYPES: Final[Mapping[Suit, DamageType]] = {
    Suit.HEARTS: DamageType.FIRE,
    Suit.DIAMONDS: DamageType.AIR,
    Suit.CLUBS: DamageType.EARTH,
    Suit.SPADES: DamageType.ICE,
}


class IllegalAllocation(ValueError):
    """Raised when a healing allocation exceeds or misuses its pool."""


@dataclass(frozen=True, slots=True)
class SetEffect:
    """Numeric and typed outcome of activating a set."""

    set_type: SetType
    cost: int
    damage_value: int = 0
    damage_type: DamageType | None = None
    damage_type_choices: tuple[DamageType, ...] = ()
    heal_value: int = 0
    mp_heal_value: int = 0
    revives: bool = False
    status_mode: StatusMode | None = None
    status_choices: tuple[StatusEffect, ...] = ()
    status_picks: int = 0
    target_cardinality: TargetCardinality = TargetCardinality.NONE
    ignores_resistance: bool = False
    ignores_immunity: bool = False
    allocatable: bool = False

    @property
    def deals_damage(self) -> bool:
        return self.damage_value > 0

    @property
    def targets_allies(self) -> bool:
        return self.target_cardinality is TargetCardinality.ALL_ALLIES


def damage_type_for_suit(suit: Suit | None) -> DamageType:
    if suit is None:
        return DamageType.PHYSICAL
    return SUIT_DAMAGE_TYPES.get(suit, DamageType.PHYSICAL)


def _parity_type(value: int) -> DamageType:
    return DamageType.LIGHT if value % 2 == 0 else DamageType.DARK


def set_cost(detected: DetectedSet, per_card: int = MP_COST_PER_CARD) -> int:
    """Return the MP cost of ``detected``: ``per_card`` for every card."""

    return per_card * len(detected.cards)


def _suit_choices(detected: DetectedSet) -> tuple[DamageType, ...]:
    return tuple(dict.fromkeys(damage_type_for_suit(suit) for suit in detected.suits))


def _choice_or_single(choices: tuple[DamageType, ...]) -> DamageType:
    if len(choices) == 1:
        return choices[0]
    if not choices:
        return DamageType.PHYSICAL
    return DamageType.CHOOSE


def resolve_effect(detected: DetectedSet, *, cost_per_card: int = MP_COST_PER_CARD) -> SetEffect:
    """Map ``detected`` to its :class:`SetEffect`."""

    cost = set_cost(detected, cost_per_card)
    set_type = detected.type
    match set_type:
        case SetType.JACKPOT:
            return SetEffect(
                set_type=set_type,
                cost=cost,
                heal_value=JACKPOT_AMOUNT,
                mp_heal_value=JACKPOT_AMOUNT,
                revives=True,
                target_cardinality=TargetCardinality.ALL_ALLIES,
            )
        case SetType.MAGIC_FLUSH:
            suit = detected.suit or (detected.suits[0] if detected.suits else None)
            return SetEffect(
                set_type=set_type,
                cost=cost,
                damage_value=MAGIC_FLUSH_BASE + detected.total,
                damage_type=damage_type_for_suit(suit),
                target_cardinality=TargetCardinality.ALL_ENEMIES,
            )
        case SetType.BLINDING_FLUSH:
            return SetEffect(
                set_type=set_type,
                cost=cost,
                damage_value=BLINDING_FLUSH_BASE + detected.total,
                damage_type=_parity_type(detected.highest),
                target_cardinality=TargetCardinality.ALL_ENEMIES,
            )
        case SetType.FULL_STATUS:
            removes = detected.highest % 2 == 0
            return SetEffect(
                set_type=set_type,
                cost=cost,
                status_mode=StatusMode.REMOVE if removes else StatusMode.APPLY,
                status_choices=tuple(StatusEffect),
                status_picks=FULL_STATUS_PICKS,
                target_cardinality=TargetCardinality.ALL_ALLIES if removes else TargetCardinality.ALL_ENEMIES,
            )
        case SetType.TRIPLE_SUPPORT:
            amount = detected.total * TRIPLE_SUPPORT_MULTIPLIER
            return SetEffect(
                set_type=set_type,
                cost=cost,
                heal_value=amount,
                mp_heal_value=amount,
                target_cardinality=TargetCardinality.ALL_ALLIES,
                allocatable=True,
            )
        case SetType.DOUBLE_TROUBLE:
            choices = _suit_choices(detected)
            return SetEffect(
                set_type=set_type,
                cost=cost,
                damage_value=DOUBLE_TROUBLE_BASE + detected.highest,
                damage_type=_choice_or_single(choices),
                damage_type_choices=choices,
                target_cardinality=TargetCardinality.UP_TO_TWO_ENEMIES,
            )
        case SetType.MAGIC_PAIR:
            choices = _suit_choices(detected)
            return SetEffect(
                set_type=set_type,
                cost=cost,
                damage_type=_choice_or_single(choices),
                damage_type_choices=choices,
                target_cardinality=TargetCardinality.SINGLE_FREE_ATTACK,
            )
        case SetType.FORBIDDEN_MONARCH:
            common = detected.common_rank if detected.common_rank is not None else detected.values[0]
            return SetEffect(
                set_type=set_type,
                cost=cost,
                damage_value=MONARCH_DAMAGE,
                damage_type=_parity_type(common),
                target_cardinality=TargetCardinality.ALL_ENEMIES,
                ignores_resistance=True,
                ignores_immunity=True,
            )
        case _:
            assert_never(set_type)


SET_DESCRIPTIONS: Final[Mapping[SetType, tuple[str, str]]] = {
    SetType.JACKPOT: (
        "4 cards of the same value, none of which is a joker",
        "You and every ally present on the scene recover 777 Hit Points and 777 Mind Points; "
        "any PCs who have surrendered but are still part of the scene immediately regain consciousness.",
    ),
    SetType.MAGIC_FLUSH: (
        "4 cards of consecutive values and of the same suit",
        "You deal {damage} damage to each enemy present on the scene; "
        "the type of this damage matches the suit of the resolved cards ({damage_type}).",
    ),
    SetType.BLINDING_FLUSH: (
        "4 cards of consecutive values",
        "You deal {damage} damage to each enemy present on the scene; "
        "the type of this damage is {damage_type} (highest value: {highest}).",
    ),
    SetType.FULL_STATUS: (
        "3 cards of the same value + 2 cards of the same value",
        "Choose two status effects among dazed, shaken, slow, and weak (highest value: {highest}): {status_text}.",
    ),
    SetType.TRIPLE_SUPPORT: (
        "3 cards of the same value",
        "You and every ally present on the scene share {heal} Hit Points and Mind Points of recovery.",
    ),
    SetType.DOUBLE_TROUBLE: (
        "2 cards of the same value + 2 cards of the same value",
        "You deal {damage} damage to each of up to two different enemies you can see; "
        "the type of this damage is your choice among {choices}.",
    ),
    SetType.MAGIC_PAIR: (
        "2 cards of the same value",
        "You perform a free attack with a weapon you have equipped; "
        "if it deals damage, its type becomes one of {choices}.",
    ),
    SetType.FORBIDDEN_MONARCH: (
        "4 cards of the same value, none of which is a joker + 1 joker",
        "You deal 777 {damage_type} damage to each enemy present on the scene (common value: {common}), "
        "ignoring Immunities and Resistances.",
    ),
}


def describe_effect(detected: DetectedSet) -> str:
    """Return the rules text of ``detected`` with its numbers filled in."""

    effect = resolve_effect(detected)
    _, template = SET_DESCRIPTIONS[detected.type]
    if effect.status_mode is StatusMode.REMOVE:
        status_text = "you and every ally recover from the chosen status effects"
    else:
        status_text = "each enemy present on the scene suffers them"
    return template.format(
        damage=effect.damage_value,
        damage_type=effect.damage_type.value if effect.damage_type else "",
        highest=detected.highest,
        heal=effect.heal_value,
        status_text=status_text,
        choices=", ".join(choice.value for choice in effect.damage_type_choices) or "physical",
        common=detected.common_rank,
    )


def allocate_healing(pool: int, requests: Mapping[str, tuple[int, int]]) -> dict[str, tuple[int, int]]:
    """Validate a triple-support allocation of ``pool`` across allies.

    ``requests`` maps an actor id to the ``(hp, mp)`` it should recover. The
    combined HP and MP handed out may not exceed ``pool``.
    """

    allocated = 0
    accepted: dict[str, tuple[int, int]] = {}
    for actor_id, (hp, mp) in requests.items():
        if hp < 0 or mp < 0:
            raise IllegalAllocation(f"negative allocation for {actor_id}")
        allocated += hp + mp
        accepted[actor_id] = (hp, mp)
    if allocated > pool:
        raise IllegalAllocation(f"allocated {allocated} exceeds pool of {pool}")
    return accepted
