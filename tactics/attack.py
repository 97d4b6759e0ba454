"""
Attack resolution.

Order of resolution for one strike:

1. validate the attacker, the target, the weapon and its ammo
2. substitute the effective weapon (shared with the AI planner); a hidden
   attacker is revealed and strikes as a sneak attack
3. 3-D range check, flagging ``RequiresDive`` for flyers above reach
4. to-hit roll: natural 20 always hits, natural 1 always misses
5. defender's parry or dodge (parry converts to dodge against missiles)
6. damage roll with critical, sneak and charge multipliers, then
   resistance and immunity
7. HP application through the engine (falls, grapple release, morale),
   then pain stagger from heavy blunt blows
8. combat-end check

Validation failures come back on ``AttackOutcome.error``; an AI attacker
still loses one action so its turn always makes progress. An attack that
was already under way (a missile in flight, an overwatch or held strike)
is wasted instead. Each attack id resolves once; a replay is reported as
``duplicate`` and touches nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Optional, Tuple

from . import fatigue, stealth
from .enums import AttackKind, DefenseKind, GrappleRole, GrappleStatus, Severity
from .errors import ValidationError, ValidationReason
from .flight import dive
from .grapple import grapple_penalties
from .items import AttackDescriptor, Weapon, effective_weapon, has_ammo_for
from .memory import EFFECTIVE, IMMUNE, RESISTED
from .pain import apply_pain_stagger
from .size import damage_modifier, grapple_modifiers, reach_advantage

if TYPE_CHECKING:
    from .combatant import Combatant
    from .engine import CombatEngine
    from .map import TacticalMap

logger = logging.getLogger(__name__)


@dataclass
class AttackModifiers:
    strike: int = 0
    damage: int = 0
    sneak: bool = False
    charge: bool = False
    dive: bool = False
    consume_action: bool = True
    ammo_spent: bool = False


@dataclass
class RangeCheck:
    distance_ft: int
    horizontal_ft: int
    vertical_ft: int
    in_range: bool
    requires_dive: bool = False


@dataclass
class AttackOutcome:
    attack_id: str
    attacker_id: str
    defender_id: str
    weapon: Optional[str] = None
    descriptor: Optional[AttackDescriptor] = None
    hit: bool = False
    natural: int = 0
    strike_total: int = 0
    critical: bool = False
    defense: DefenseKind = DefenseKind.NONE
    defense_total: int = 0
    defended: bool = False
    damage_rolled: int = 0
    damage: int = 0
    dice: Tuple[int, ...] = ()
    immune: bool = False
    resisted: bool = False
    sneak: bool = False
    pain: bool = False
    requires_dive: bool = False
    duplicate: bool = False
    action_spent: bool = False
    combat_ended: bool = False
    error: Optional[ValidationError] = None
    notes: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


def check_range(tactical_map: Optional["TacticalMap"], attacker: "Combatant", defender: "Combatant",
                weapon: Weapon) -> RangeCheck:
    """3-D range test shared by the resolver and the AI planner."""
    if tactical_map is None or attacker.position is None or defender.position is None:
        return RangeCheck(0, 0, 0, True)
    horizontal = tactical_map.distance_ft(attacker.position.cell, defender.position.cell)
    vertical = abs(attacker.altitude - defender.altitude)
    total = tactical_map.distance_3d_ft(attacker.position, defender.position)
    above = attacker.is_flying and attacker.altitude > defender.altitude
    if weapon.is_ranged:
        if total <= weapon.range_ft:
            return RangeCheck(total, horizontal, vertical, True)
        needs_dive = above and horizontal <= weapon.range_ft
        return RangeCheck(total, horizontal, vertical, False, needs_dive)
    reach = weapon.reach_ft
    if horizontal <= reach and vertical <= reach:
        return RangeCheck(total, horizontal, vertical, True)
    needs_dive = above and horizontal <= reach
    return RangeCheck(total, horizontal, vertical, False, needs_dive)


class AttackResolver:
    def __init__(self, engine: "CombatEngine"):
        self.engine = engine

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, attacker: "Combatant", defender: "Combatant", weapon: Optional[Weapon],
                 modifiers: AttackModifiers) -> Tuple[Weapon, RangeCheck]:
        engine = self.engine
        if not attacker.can_act:
            raise ValidationError(ValidationReason.CANNOT_ACT, f"{attacker.name} cannot act")
        if modifiers.consume_action and attacker.actions_remaining < 1:
            raise ValidationError(ValidationReason.NO_ACTIONS, f"{attacker.name} has no actions left")
        if not attacker.can_attack:
            raise ValidationError(ValidationReason.ILLEGAL_ACTION,
                                  f"{attacker.name} is {attacker.morale.status.value} and cannot attack")
        if defender is attacker or not defender.is_alive or defender.fled or defender.id not in engine.roster:
            raise ValidationError(ValidationReason.INVALID_TARGET, f"{defender.name} is not a valid target")
        chosen = effective_weapon(attacker, weapon, engine.rules.grapple_weapon_max_length)
        if not modifiers.ammo_spent and not has_ammo_for(attacker, chosen):
            raise ValidationError(ValidationReason.NO_AMMO, f"{attacker.name} is out of {chosen.ammo_type}")
        rc = check_range(engine.tactical_map, attacker, defender, chosen)
        if not rc.in_range:
            if rc.requires_dive and not modifiers.dive:
                raise ValidationError(ValidationReason.REQUIRES_DIVE,
                                      f"{defender.name} is {rc.vertical_ft}ft below; {attacker.name} must dive")
            if not rc.requires_dive:
                raise ValidationError(ValidationReason.OUT_OF_RANGE,
                                      f"{defender.name} is {rc.distance_ft}ft away, {chosen.name} reaches {chosen.max_range_ft}ft")
        if chosen.is_ranged and engine.tactical_map and attacker.position and defender.position:
            if not engine.tactical_map.has_line_of_sight(attacker.position.cell, defender.position.cell):
                raise ValidationError(ValidationReason.NO_LINE_OF_SIGHT,
                                      f"{attacker.name} has no line of sight to {defender.name}")
        return chosen, rc

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_attack(self, attacker: "Combatant", defender: "Combatant", weapon: Optional[Weapon] = None,
                       modifiers: Optional[AttackModifiers] = None, defense: DefenseKind = DefenseKind.AUTO,
                       attack_id: Optional[str] = None) -> AttackOutcome:
        engine = self.engine
        engine.ensure_active()
        modifiers = modifiers or AttackModifiers()
        outcome = AttackOutcome(attack_id or engine.next_id("atk"), attacker.id, defender.id)
        attack_key = f"atk:{outcome.attack_id}"
        if attack_key in engine.scheduler.processed:
            outcome.duplicate = True
            logger.debug("attack %s already resolved", outcome.attack_id)
            return outcome
        try:
            chosen, rc = self.validate(attacker, defender, weapon, modifiers)
        except ValidationError as err:
            return self._fail(attacker, outcome, err, forfeit=modifiers.consume_action)

        engine.scheduler.mark_processed(attack_key)
        outcome.weapon = chosen.name
        outcome.descriptor = chosen.describe()
        if stealth.reveal(attacker):
            modifiers = replace(modifiers, sneak=True)
            engine.log(f"{attacker.name} strikes from hiding!", Severity.INFO, attacker)
        outcome.sneak = modifiers.sneak
        dive_bonus = 0
        if rc.requires_dive:
            outcome.requires_dive = True
            result = dive(attacker, defender, engine.rules)
            dive_bonus = result.attack_bonus
            engine.log(result.message, Severity.INFO, attacker)
            rc = check_range(engine.tactical_map, attacker, defender, chosen)
            if not rc.in_range:
                return self._fail(attacker, outcome, ValidationError(
                    ValidationReason.OUT_OF_RANGE, f"{attacker.name} cannot close on {defender.name}"),
                    forfeit=modifiers.consume_action)

        if modifiers.consume_action:
            engine.scheduler.spend_action(attacker, 1)
            outcome.action_spent = True
        if chosen.ammo_type and not modifiers.ammo_spent:
            attacker.ammo[chosen.ammo_type] -= 1
        fatigue.drain_stamina(attacker, "combat", engine.rules)

        engine.log(f"{attacker.name} attacks {defender.name} with {chosen.name}", Severity.INFO, attacker)
        natural = engine.dice.d20()
        outcome.natural = natural
        strike_total = natural + self.strike_modifier(attacker, defender, chosen, modifiers) + dive_bonus
        outcome.strike_total = strike_total

        rules = engine.rules
        if natural == rules.natural_miss:
            engine.log(f"Natural {natural}: {attacker.name} misses.", Severity.INFO, attacker)
            return outcome
        outcome.critical = natural == rules.natural_hit
        if not outcome.critical and strike_total < defender.armor_rating:
            engine.log(f"Strike {strike_total} vs AR {defender.armor_rating}: miss.", Severity.INFO, attacker)
            return outcome

        if self._defend(attacker, defender, chosen, natural, strike_total, defense, outcome):
            return outcome

        outcome.hit = True
        self._apply_damage(attacker, defender, chosen, modifiers, outcome)
        outcome.combat_ended = engine.is_combat_ended()
        return outcome

    def strike_modifier(self, attacker: "Combatant", defender: "Combatant", weapon: Weapon,
                        modifiers: AttackModifiers) -> int:
        rules = self.engine.rules
        total = attacker.strike_bonus + weapon.strike_bonus + modifiers.strike
        total += grapple_penalties(attacker)[0]
        if not attacker.grapple.is_neutral and defender.id == attacker.grapple.opponent_id:
            total += grapple_modifiers(attacker, defender, rules.grapple_auto_ps_gap, rules.grapple_ps_step).strike_bonus
        elif not weapon.is_ranged:
            total += reach_advantage(attacker, defender)
        if weapon.is_ranged and self.engine.tactical_map and attacker.position and defender.position:
            cover = self.engine.tactical_map.cover_between(attacker.position.cell, defender.position.cell)
            total -= rules.cover_penalties.get(cover, 0)
        if modifiers.sneak:
            total += rules.sneak_strike_bonus
        total -= fatigue.penalty(attacker, rules)
        total -= attacker.situational_penalty()
        return total

    def defense_modifier(self, attacker: "Combatant", defender: "Combatant", kind: DefenseKind) -> int:
        rules = self.engine.rules
        mods = grapple_modifiers(attacker, defender, rules.grapple_auto_ps_gap, rules.grapple_ps_step)
        _, parry_pen, dodge_pen = grapple_penalties(defender)
        if kind == DefenseKind.PARRY:
            best = max((w.parry_bonus for w in defender.weapons if w.can_parry_with()), default=0)
            total = defender.parry_bonus + best + parry_pen + mods.defender_parry
        else:
            total = defender.dodge_bonus + dodge_pen + mods.defender_dodge
        total -= fatigue.penalty(defender, rules)
        total -= defender.situational_penalty()
        return total

    def _defend(self, attacker: "Combatant", defender: "Combatant", weapon: Weapon, natural: int,
                strike_total: int, declared: DefenseKind, outcome: AttackOutcome) -> bool:
        engine = self.engine
        if declared == DefenseKind.NONE:
            return False
        pinned = defender.grapple.status == GrappleStatus.GRAPPLED and defender.grapple.role == GrappleRole.DEFENDER
        if not defender.can_act or defender.actions_remaining < 1 or pinned:
            engine.log(f"{defender.name} cannot defend.", Severity.INFO, defender)
            return False
        kind = declared
        if kind == DefenseKind.AUTO:
            kind = DefenseKind.DODGE if weapon.is_ranged else DefenseKind.PARRY
        elif kind == DefenseKind.PARRY and weapon.kind != AttackKind.MELEE:
            engine.log(f"{defender.name} cannot parry a missile and dodges instead.", Severity.INFO, defender)
            kind = DefenseKind.DODGE
        engine.scheduler.spend_action(defender, 1)
        roll = engine.dice.d20()
        total = roll + self.defense_modifier(attacker, defender, kind)
        outcome.defense = kind
        outcome.defense_total = total
        rules = engine.rules
        if natural == rules.natural_hit:
            defended = roll == rules.natural_hit
        else:
            defended = roll != rules.natural_miss and total >= strike_total
        outcome.defended = defended
        verb = "parries" if kind == DefenseKind.PARRY else "dodges"
        if defended:
            engine.log(f"{defender.name} {verb} ({total} vs {strike_total}).", Severity.INFO, defender)
        else:
            engine.log(f"{defender.name} fails to {kind.value} ({total} vs {strike_total}).", Severity.INFO, defender)
        return defended

    def _apply_damage(self, attacker: "Combatant", defender: "Combatant", weapon: Weapon,
                      modifiers: AttackModifiers, outcome: AttackOutcome) -> None:
        engine = self.engine
        rules = engine.rules
        roll = engine.dice.roll(weapon.damage)
        amount = roll.total + modifiers.damage
        if weapon.kind != AttackKind.RANGED:
            amount += attacker.damage_bonus + damage_modifier(attacker, defender)
        amount = max(1, amount)
        if outcome.critical:
            amount *= rules.crit_multiplier
        if modifiers.sneak:
            amount = int(amount * rules.sneak_multiplier)
        if modifiers.charge and weapon.kind == AttackKind.MELEE:
            amount = int(amount * rules.charge_multiplier)
        outcome.dice = roll.dice
        outcome.damage_rolled = amount

        key = defender.id
        if weapon.damage_type in defender.immunities:
            outcome.immune = True
            attacker.memory.note_damage_outcome(key, weapon.damage_type, IMMUNE)
            engine.log(f"{defender.name} is immune to {weapon.damage_type.value} damage.", Severity.INFO, defender)
            return
        if weapon.damage_type in defender.resistances:
            outcome.resisted = True
            amount //= 2
            attacker.memory.note_damage_outcome(key, weapon.damage_type, RESISTED)
        else:
            attacker.memory.note_damage_outcome(key, weapon.damage_type, EFFECTIVE)
        crit = " CRITICAL!" if outcome.critical else ""
        engine.log(f"{attacker.name} hits {defender.name} for {amount} damage ({weapon.damage} -> {list(roll.dice)}).{crit}",
                   Severity.INFO, attacker)
        outcome.damage = engine.apply_damage(defender, amount, weapon.damage_type,
                                             effect_id=f"{outcome.attack_id}:{defender.id}", source=attacker,
                                             already_adjusted=True)
        if outcome.damage and not engine.is_combat_ended():
            pain = apply_pain_stagger(defender, outcome.damage, outcome.descriptor, rules)
            if pain.triggered:
                outcome.pain = True
                engine.log(pain.message, Severity.WARNING, defender)

    def _fail(self, attacker: "Combatant", outcome: AttackOutcome, err: ValidationError,
              forfeit: bool = True) -> AttackOutcome:
        """Record a rejected attack. Shots already in flight (``forfeit=False``) are simply wasted."""
        engine = self.engine
        outcome.error = err
        outcome.requires_dive = err.reason == ValidationReason.REQUIRES_DIVE
        if not forfeit:
            engine.log(f"{attacker.name}'s attack is wasted: {err.message}", Severity.INFO, attacker)
            return outcome
        engine.log(f"Attack aborted: {err.message}", Severity.WARNING, attacker)
        if attacker.is_ai and attacker.actions_remaining > 0:
            attacker.spend_actions(1)
            outcome.action_spent = True
        return outcome
