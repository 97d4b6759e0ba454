from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .config import DEFAULT_RULES, RulesConfig
from .enums import (
    DamageType,
    FatigueStatus,
    HealthStatus,
    MoraleStatus,
    Side,
    SizeCategory,
    SpellSource,
    StatusEffect,
)
from .fatigue import FatigueState, initialize as initialize_fatigue
from .flight import FlightState
from .grapple import GrappleState
from .items import Weapon
from .map import Position
from .memory import AiMemory
from .morale import MoraleState
from .spells import Spell


@dataclass
class Attributes:
    iq: int = 10
    me: int = 10
    ma: int = 10
    ps: int = 10
    pp: int = 10
    pe: int = 10
    pb: int = 10
    spd: int = 10


def health_status_for(hp: int, rules: RulesConfig = DEFAULT_RULES) -> HealthStatus:
    if hp > 0:
        return HealthStatus.CONSCIOUS
    if hp >= rules.unconscious_floor:
        return HealthStatus.UNCONSCIOUS
    if hp >= rules.dying_floor:
        return HealthStatus.DYING
    if hp > rules.dead_at:
        return HealthStatus.CRITICAL
    return HealthStatus.DEAD


@dataclass
class Combatant:
    id: str
    name: str
    side: Side = Side.ENEMY
    attributes: Attributes = field(default_factory=Attributes)
    level: int = 1
    max_hp: int = 20
    current_hp: Optional[int] = None
    armor_rating: int = 10
    max_ppe: int = 0
    ppe: Optional[int] = None
    max_isp: int = 0
    isp: Optional[int] = None
    actions_per_round: int = 2
    actions_remaining: Optional[int] = None
    strike_bonus: int = 0
    parry_bonus: int = 0
    dodge_bonus: int = 0
    damage_bonus: int = 0
    initiative_bonus: int = 0
    save_bonuses: Dict[str, int] = field(default_factory=dict)
    weapons: List[Weapon] = field(default_factory=list)
    spells: List[Spell] = field(default_factory=list)
    psionics: List[Spell] = field(default_factory=list)
    ammo: Dict[str, int] = field(default_factory=dict)
    size: SizeCategory = SizeCategory.MEDIUM
    speed: int = 4
    can_fly: bool = False
    fear_immune: bool = False
    prowl: int = 0
    keen_senses: bool = False
    creature_kind: str = "humanoid"
    occupation: str = ""
    horror_factor: int = 0
    resistances: Set[DamageType] = field(default_factory=set)
    immunities: Set[DamageType] = field(default_factory=set)
    regeneration: int = 0
    can_surrender: bool = True
    surrender_bias: int = 0
    is_ai: bool = True
    position: Optional[Position] = None
    grapple: GrappleState = field(default_factory=GrappleState)
    morale: MoraleState = field(default_factory=MoraleState)
    fatigue: FatigueState = field(default_factory=FatigueState)
    flight: FlightState = field(default_factory=FlightState)
    memory: AiMemory = field(default_factory=AiMemory)
    status_effects: Set[StatusEffect] = field(default_factory=set)
    status_durations: Dict[StatusEffect, int] = field(default_factory=dict)
    fled: bool = False
    cast_this_round: bool = False
    rules: RulesConfig = field(default_factory=lambda: DEFAULT_RULES, repr=False, compare=False)

    def __post_init__(self):
        if self.current_hp is None:
            self.current_hp = self.max_hp
        if self.ppe is None:
            self.ppe = self.max_ppe
        if self.isp is None:
            self.isp = self.max_isp
        if self.actions_remaining is None:
            self.actions_remaining = self.actions_per_round
        self.set_hp(self.current_hp)
        self.set_actions(self.actions_remaining)
        if self.fatigue == FatigueState():
            initialize_fatigue(self, self.rules)

    # --- Hit points -------------------------------------------------------

    def set_hp(self, value: int) -> int:
        self.current_hp = max(self.rules.hp_floor, min(self.max_hp, int(value)))
        return self.current_hp

    def apply_hp_delta(self, delta: int) -> int:
        before = self.current_hp
        self.set_hp(before + delta)
        return self.current_hp - before

    @property
    def health_status(self) -> HealthStatus:
        return health_status_for(self.current_hp, self.rules)

    @property
    def hp_ratio(self) -> float:
        return self.current_hp / max(1, self.max_hp)

    @property
    def is_alive(self) -> bool:
        return self.health_status != HealthStatus.DEAD

    @property
    def is_conscious(self) -> bool:
        return self.current_hp > 0

    @property
    def is_flying(self) -> bool:
        return self.flight.is_flying

    @property
    def altitude(self) -> int:
        return self.position.altitude if self.position else 0

    @property
    def in_fight(self) -> bool:
        """Still counts toward its side: conscious, present and not surrendered."""
        return self.is_conscious and not self.fled and self.morale.status != MoraleStatus.SURRENDERED

    @property
    def can_act(self) -> bool:
        return (self.in_fight
                and self.fatigue.status != FatigueStatus.COLLAPSED
                and not self.has_status(StatusEffect.STUNNED))

    @property
    def can_attack(self) -> bool:
        return self.can_act and not self.morale.is_broken and not self.has_status(StatusEffect.FLEEING)

    # --- Action budget ----------------------------------------------------

    def set_actions(self, value: int) -> int:
        self.actions_remaining = max(0, min(self.actions_per_round, int(value)))
        return self.actions_remaining

    def spend_actions(self, amount: int) -> bool:
        if self.actions_remaining < amount:
            return False
        self.set_actions(self.actions_remaining - amount)
        return True

    def restore_actions(self) -> None:
        self.set_actions(self.actions_per_round)

    # --- PPE / ISP --------------------------------------------------------

    def resource_for(self, source: SpellSource) -> int:
        return self.ppe if source == SpellSource.MAGIC else self.isp

    def spend_resource(self, source: SpellSource, amount: int) -> bool:
        if self.resource_for(source) < amount:
            return False
        if source == SpellSource.MAGIC:
            self.ppe -= amount
        else:
            self.isp -= amount
        return True

    def known_powers(self) -> List[Spell]:
        return list(self.spells) + list(self.psionics)

    # --- Status effects ---------------------------------------------------

    def apply_status(self, status: StatusEffect, rounds: int = 0):
        self.status_effects.add(status)
        if rounds > 0:
            self.status_durations[status] = max(rounds, self.status_durations.get(status, 0))

    def clear_status(self, status: StatusEffect):
        self.status_effects.discard(status)
        self.status_durations.pop(status, None)

    def has_status(self, status: StatusEffect) -> bool:
        return status in self.status_effects

    def tick_statuses(self) -> List[StatusEffect]:
        expired: List[StatusEffect] = []
        for status, remaining in list(self.status_durations.items()):
            new_val = remaining - 1
            if new_val <= 0:
                expired.append(status)
                self.status_durations.pop(status, None)
            else:
                self.status_durations[status] = new_val
        for status in expired:
            self.status_effects.discard(status)
        return expired

    def situational_penalty(self) -> int:
        return self.rules.horror_penalty if self.has_status(StatusEffect.FRIGHTENED) else 0

    # --- Lifecycle --------------------------------------------------------

    def reset_for_encounter(self) -> None:
        self.grapple.reset()
        self.morale.reset()
        initialize_fatigue(self, self.rules)
        flying = self.flight.is_flying
        self.flight.reset()
        self.flight.is_flying = flying and self.can_fly
        if self.position is not None and not self.flight.is_flying:
            self.position = self.position.at_altitude(0)
        self.memory.clear()
        self.status_effects.clear()
        self.status_durations.clear()
        self.fled = False
        self.cast_this_round = False
        self.restore_actions()
