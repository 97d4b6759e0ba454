"""
Grapple state machine.

    Neutral --attempt--> Clinch --takedown--> Ground
                           |                    |
                           +-------pin----------+--> Grappled (pin)

Clinch, Ground and Grappled always come in reciprocal pairs: both
fighters hold the same status, point at each other and have opposite
roles. ``break_free`` (and ``release`` on death) return both to Neutral;
``reversal`` swaps roles without leaving the current status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional, Tuple

from .config import DEFAULT_RULES, RulesConfig
from .enums import GrappleRole, GrappleStatus
from .errors import IllegalTransition, StateInvariantViolation
from .fatigue import drain_stamina
from .items import Weapon, grapple_legal
from .size import grapple_modifiers

if TYPE_CHECKING:
    from .combatant import Combatant
    from .dice import DiceRoller

logger = logging.getLogger(__name__)

CLINCH_PENALTIES = (0, -3, -2)
GROUND_PENALTIES = (-2, -3, -3)
PIN_PENALTIES = (-4, -4, -4)


@dataclass
class GrappleState:
    status: GrappleStatus = GrappleStatus.NEUTRAL
    opponent_id: Optional[str] = None
    role: GrappleRole = GrappleRole.NONE
    strike_penalty: int = 0
    parry_penalty: int = 0
    dodge_penalty: int = 0
    rounds_held: int = 0

    @property
    def is_neutral(self) -> bool:
        return self.status == GrappleStatus.NEUTRAL

    def enter(self, status: GrappleStatus, opponent_id: str, role: GrappleRole,
              penalties: Tuple[int, int, int] = (0, 0, 0)) -> None:
        self.status = status
        self.opponent_id = opponent_id
        self.role = role
        self.strike_penalty, self.parry_penalty, self.dodge_penalty = penalties

    def reset(self) -> None:
        self.status = GrappleStatus.NEUTRAL
        self.opponent_id = None
        self.role = GrappleRole.NONE
        self.strike_penalty = 0
        self.parry_penalty = 0
        self.dodge_penalty = 0
        self.rounds_held = 0


@dataclass
class GrappleResult:
    success: bool
    message: str
    attack_roll: int = 0
    defend_roll: int = 0
    auto: bool = False
    damage: int = 0


def attribute_bonus(score: int) -> int:
    return (score - 10) // 2


def check_reciprocal(a: "Combatant", b: "Combatant") -> None:
    """Raise if two fighters are not a consistent grapple pair."""
    ga, gb = a.grapple, b.grapple
    if ga.is_neutral and gb.is_neutral:
        return
    if (ga.opponent_id != b.id or gb.opponent_id != a.id or ga.status != gb.status
            or ga.role == gb.role or GrappleRole.NONE in (ga.role, gb.role)):
        raise StateInvariantViolation(f"Grapple between {a.name} and {b.name} is not reciprocal")


def _require(a: "Combatant", b: "Combatant", allowed: Iterable[GrappleStatus], action: str) -> None:
    check_reciprocal(a, b)
    if a.grapple.status not in tuple(allowed) or a.grapple.opponent_id != b.id:
        raise IllegalTransition(f"{action} is not allowed from {a.grapple.status.value}")


def _enter_pair(holder: "Combatant", held: "Combatant", status: GrappleStatus,
                held_penalties: Tuple[int, int, int]) -> None:
    rounds = holder.grapple.rounds_held
    holder.grapple.enter(status, held.id, GrappleRole.ATTACKER)
    held.grapple.enter(status, holder.id, GrappleRole.DEFENDER, held_penalties)
    holder.grapple.rounds_held = held.grapple.rounds_held = rounds


def attempt_grapple(attacker: "Combatant", defender: "Combatant", dice: "DiceRoller",
                    rules: RulesConfig = DEFAULT_RULES) -> GrappleResult:
    if not attacker.grapple.is_neutral or not defender.grapple.is_neutral:
        raise IllegalTransition("Both fighters must be neutral to start a grapple")
    if attacker is defender:
        raise IllegalTransition("A fighter cannot grapple itself")
    mods = grapple_modifiers(attacker, defender, rules.grapple_auto_ps_gap, rules.grapple_ps_step)

    if mods.auto_grapple:
        defend = dice.d20()
        if defend == 20:
            drain_stamina(attacker, "combat", rules)
            return GrappleResult(False, f"{defender.name} slips {attacker.name}'s overpowering grab with a natural 20!",
                                 defend_roll=defend, auto=True)
        _enter_pair(attacker, defender, GrappleStatus.CLINCH, CLINCH_PENALTIES)
        drain_stamina(attacker, "grappling", rules)
        drain_stamina(defender, "grappling", rules)
        return GrappleResult(True, f"{attacker.name} overpowers {defender.name} into a clinch (PS gap {mods.ps_diff}).",
                             defend_roll=defend, auto=True)

    attack = dice.d20() + attribute_bonus(attacker.attributes.pp) + attacker.strike_bonus + mods.strike_bonus + mods.modifier
    defend = dice.d20() + attribute_bonus(defender.attributes.pp) + defender.parry_bonus + mods.defender_parry
    if attack > defend:
        _enter_pair(attacker, defender, GrappleStatus.CLINCH, CLINCH_PENALTIES)
        drain_stamina(attacker, "grappling", rules)
        drain_stamina(defender, "grappling", rules)
        return GrappleResult(True, f"{attacker.name} clinches {defender.name} ({attack} vs {defend}).", attack, defend)
    drain_stamina(attacker, "combat", rules)
    return GrappleResult(False, f"{attacker.name} fails to grapple {defender.name} ({attack} vs {defend}).", attack, defend)


def takedown(attacker: "Combatant", defender: "Combatant", dice: "DiceRoller",
             rules: RulesConfig = DEFAULT_RULES) -> GrappleResult:
    _require(attacker, defender, (GrappleStatus.CLINCH,), "Takedown")
    if attacker.grapple.role != GrappleRole.ATTACKER:
        raise IllegalTransition("Only the fighter holding the clinch can take the opponent down")
    mods = grapple_modifiers(attacker, defender, rules.grapple_auto_ps_gap, rules.grapple_ps_step)
    roll = dice.d20() + attribute_bonus(attacker.attributes.ps) + mods.modifier
    drain_stamina(attacker, "grappling", rules)
    drain_stamina(defender, "grappling", rules)
    if roll >= rules.takedown_target:
        damage = max(0, dice.roll("1d6").total + mods.damage_bonus)
        _enter_pair(attacker, defender, GrappleStatus.GROUND, GROUND_PENALTIES)
        return GrappleResult(True, f"{attacker.name} slams {defender.name} to the ground ({roll}).", roll, damage=damage)
    return GrappleResult(False, f"{attacker.name} fails the takedown ({roll}, need {rules.takedown_target}).", roll)


def pin(attacker: "Combatant", defender: "Combatant", dice: "DiceRoller",
        rules: RulesConfig = DEFAULT_RULES) -> GrappleResult:
    _require(attacker, defender, (GrappleStatus.CLINCH, GrappleStatus.GROUND), "Pin")
    if attacker.grapple.role != GrappleRole.ATTACKER:
        raise IllegalTransition("Only the controlling fighter can pin")
    mods = grapple_modifiers(attacker, defender, rules.grapple_auto_ps_gap, rules.grapple_ps_step)
    attack = dice.d20() + attribute_bonus(attacker.attributes.ps) + mods.modifier
    defend = dice.d20() + attribute_bonus(defender.attributes.ps)
    drain_stamina(attacker, "grappling", rules)
    drain_stamina(defender, "grappling", rules)
    if attack > defend:
        _enter_pair(attacker, defender, GrappleStatus.GRAPPLED, PIN_PENALTIES)
        return GrappleResult(True, f"{attacker.name} pins {defender.name} ({attack} vs {defend}).", attack, defend)
    return GrappleResult(False, f"{defender.name} resists the pin ({attack} vs {defend}).", attack, defend)


def break_free(character: "Combatant", opponent: "Combatant") -> GrappleResult:
    """End the grapple between two fighters; both return to Neutral."""
    check_reciprocal(character, opponent)
    if character.grapple.is_neutral:
        raise IllegalTransition(f"{character.name} is not grappling")
    character.grapple.reset()
    opponent.grapple.reset()
    return GrappleResult(True, f"{character.name} breaks free of {opponent.name}.")


def attempt_escape(character: "Combatant", opponent: "Combatant", dice: "DiceRoller",
                   rules: RulesConfig = DEFAULT_RULES) -> GrappleResult:
    """Opposed strength roll to escape; success calls ``break_free``."""
    _require(character, opponent, (GrappleStatus.CLINCH, GrappleStatus.GROUND, GrappleStatus.GRAPPLED), "Escape")
    mods = grapple_modifiers(character, opponent, rules.grapple_auto_ps_gap, rules.grapple_ps_step)
    mine = dice.d20() + attribute_bonus(character.attributes.ps) + mods.modifier
    theirs = dice.d20() + attribute_bonus(opponent.attributes.ps)
    drain_stamina(character, "grappling", rules)
    if mine > theirs:
        result = break_free(character, opponent)
        result.attack_roll, result.defend_roll = mine, theirs
        return result
    return GrappleResult(False, f"{character.name} struggles but stays held ({mine} vs {theirs}).", mine, theirs)


def push_off(character: "Combatant", opponent: "Combatant", dice: "DiceRoller",
             rules: RulesConfig = DEFAULT_RULES) -> GrappleResult:
    _require(character, opponent, (GrappleStatus.CLINCH,), "Push off")
    mine = dice.d20() + attribute_bonus(character.attributes.ps) + attribute_bonus(character.attributes.pp)
    theirs = dice.d20() + attribute_bonus(opponent.attributes.ps)
    drain_stamina(character, "grappling", rules)
    if mine > theirs:
        result = break_free(character, opponent)
        result.message = f"{character.name} shoves {opponent.name} away."
        result.attack_roll, result.defend_roll = mine, theirs
        return result
    return GrappleResult(False, f"{character.name} cannot push {opponent.name} off ({mine} vs {theirs}).", mine, theirs)


def reversal(character: "Combatant", opponent: "Combatant", dice: "DiceRoller",
             rules: RulesConfig = DEFAULT_RULES) -> GrappleResult:
    _require(character, opponent, (GrappleStatus.CLINCH, GrappleStatus.GROUND, GrappleStatus.GRAPPLED), "Reversal")
    if character.grapple.role != GrappleRole.DEFENDER:
        raise IllegalTransition("Only the controlled fighter can attempt a reversal")
    mods = grapple_modifiers(character, opponent, rules.grapple_auto_ps_gap, rules.grapple_ps_step)
    mine = dice.d20() + attribute_bonus(character.attributes.pp) + mods.modifier
    theirs = dice.d20() + attribute_bonus(opponent.attributes.pp)
    drain_stamina(character, "grappling", rules)
    drain_stamina(opponent, "grappling", rules)
    if mine > theirs:
        status = character.grapple.status
        penalties = {
            GrappleStatus.CLINCH: CLINCH_PENALTIES,
            GrappleStatus.GROUND: GROUND_PENALTIES,
            GrappleStatus.GRAPPLED: PIN_PENALTIES,
        }[status]
        _enter_pair(character, opponent, status, penalties)
        return GrappleResult(True, f"{character.name} reverses the hold on {opponent.name}!", mine, theirs)
    return GrappleResult(False, f"{character.name} fails to reverse ({mine} vs {theirs}).", mine, theirs)


def release(character: "Combatant", opponent: Optional["Combatant"]) -> None:
    """Drop a grapple when one side dies, falls unconscious or leaves the map."""
    if character.grapple.is_neutral:
        return
    if opponent is not None and opponent.grapple.opponent_id == character.id:
        opponent.grapple.reset()
    character.grapple.reset()
    logger.debug("grapple released for %s", character.name)


def grapple_penalties(character: "Combatant") -> Tuple[int, int, int]:
    g = character.grapple
    return g.strike_penalty, g.parry_penalty, g.dodge_penalty


def can_use_weapon(character: "Combatant", weapon: Weapon, rules: RulesConfig = DEFAULT_RULES) -> bool:
    if character.grapple.is_neutral:
        return True
    return grapple_legal(weapon, rules.grapple_weapon_max_length)
