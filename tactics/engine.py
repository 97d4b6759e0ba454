"""
Combat engine facade.

``CombatEngine`` owns the fighter list, the position map, the turn
scheduler, the deferred timeline, fog of war, the horror tracker and the
event log. The AI and the presentation layer read snapshots and act only
through the public methods below; nothing else mutates a fighter.

Usage:
    engine = CombatEngine(fighters, tactical_map=TacticalMap(12, 10))
    engine.start_combat()
    actor = engine.current_actor()
    engine.attack(actor, target)
    engine.end_turn()

Once combat has ended every public mutation is silently ignored and
returns None.
"""

from __future__ import annotations

import functools
import itertools
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Union

from . import fatigue, flight, grapple, pain, stealth
from .attack import AttackModifiers, AttackOutcome, AttackResolver, check_range
from .casting import CastOutcome, SpellResolver
from .combatant import Combatant
from .config import DEFAULT_RULES, RulesConfig
from .dice import DiceRoller
from .enums import (
    DamageType,
    DefenseKind,
    FatigueStatus,
    HealthStatus,
    Outcome,
    RoundEventKind,
    Severity,
    Side,
    StatusEffect,
)
from .errors import CombatEndedError, ValidationError, ValidationReason
from .eventlog import EventLog
from .horror import HorrorTracker
from .items import Weapon, effective_weapon, has_ammo_for
from .map import FogOfWar, Position, TacticalMap
from .morale import MoraleCheckResult, MoraleContext, check_morale
from .scheduler import RoundEvent, TurnScheduler
from .spells import Spell
from .timeline import Timeline, TimelineEvent
from .view import WorldView, view_of

logger = logging.getLogger(__name__)

# Action cost per activity; None means "all remaining actions".
ACTION_COSTS: Dict[str, Optional[int]] = {
    "strike": 1,
    "move": 1,
    "run": 1,
    "charge": 1,
    "grapple": 1,
    "flight": 1,
    "rest": 1,
    "hold": 1,
    "prowl": 1,
    "sprint": None,
}

MOVE_MULTIPLIERS = {"move": 1, "run": 2, "sprint": 3}


@dataclass
class HeldAction:
    """An attack readied against the first foe that comes into range."""
    actor_id: str
    weapon: Optional[Weapon]
    round: int


def _ignored_after_end(method: Callable) -> Callable:
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except CombatEndedError:
            logger.debug("%s ignored: combat has ended", method.__name__)
            return None
    return wrapper


class CombatEngine:
    def __init__(self, combatants: List[Combatant], tactical_map: Optional[TacticalMap] = None,
                 dice: Optional[DiceRoller] = None, rules: Optional[RulesConfig] = None,
                 sight_range: int = 12):
        ids = [c.id for c in combatants]
        if len(ids) != len(set(ids)):
            raise ValueError("Combatant ids must be unique")
        self.combatants: List[Combatant] = list(combatants)
        self.roster: Dict[str, Combatant] = {c.id: c for c in self.combatants}
        self.rules = rules or DEFAULT_RULES
        self.dice = dice or DiceRoller()
        self.tactical_map = tactical_map
        self.scheduler = TurnScheduler(self.dice, self.rules)
        self.timeline = Timeline()
        self.fog = FogOfWar(tactical_map, sight_range) if tactical_map else None
        self.horror = HorrorTracker()
        self.event_log = EventLog()
        self.attacks = AttackResolver(self)
        self.spells = SpellResolver(self)
        self.encounter_id: Optional[str] = None
        self.holds: Dict[str, HeldAction] = {}
        self._ids = itertools.count(1)
        self._finished = False
        self.scheduler.round_hooks.append(self._on_new_round)
        self.scheduler.stalemate_check = self.is_stalemate
        for c in self.combatants:
            c.rules = self.rules
            if self.tactical_map and c.position is not None:
                self._place(c, c.position)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _place(self, c: Combatant, position: Position) -> None:
        tmap = self.tactical_map
        if not tmap.in_bounds(position.x, position.y):
            raise ValueError(f"{c.name} is placed off the map at {position.cell}")
        occupant = tmap.occupant_at(position.x, position.y)
        if occupant is not None and occupant is not c:
            raise ValueError(f"{c.name} cannot share {position.cell} with {occupant.name}")
        tmap.set_occupant(position.x, position.y, c)
        c.position = position

    def next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def log(self, message: str, severity: Severity = Severity.INFO, actor: Optional[Combatant] = None):
        return self.event_log.append(message, severity, self.scheduler.round, actor.id if actor else None)

    @property
    def round(self) -> int:
        return self.scheduler.round

    @property
    def outcome(self) -> Optional[Outcome]:
        return self.scheduler.outcome

    def ensure_active(self) -> None:
        self.scheduler.ensure_active()

    def positions(self) -> Dict[str, Position]:
        return {c.id: c.position for c in self.combatants if c.position is not None}

    def get(self, combatant_id: str) -> Optional[Combatant]:
        return self.roster.get(combatant_id)

    def side_members(self, side: Side) -> List[Combatant]:
        return [c for c in self.combatants if c.side == side]

    def opponents_of(self, c: Combatant) -> List[Combatant]:
        return [o for o in self.combatants if o.side != c.side and o.in_fight]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_combat(self) -> str:
        self.encounter_id = uuid.uuid4().hex
        self._finished = False
        self.timeline.reset()
        self.horror.reset()
        self.holds.clear()
        for c in self.combatants:
            c.reset_for_encounter()
        event = self.scheduler.start(self.combatants)
        order = ", ".join(f"{c.name} ({self.scheduler.initiative[c.id]})" for c in self.scheduler.order)
        self.log(f"Combat begins. Initiative: {order}")
        self._update_fog()
        if not self._check_combat_end():
            for c in self.combatants:
                self._check_horror(c)
        if event is not None and event.kind == RoundEventKind.COMBAT_ENDED:
            self._finish(event.outcome)
        return self.encounter_id

    def current_actor(self) -> Optional[Combatant]:
        return self.scheduler.current_actor()

    @_ignored_after_end
    def spend_action(self, actor: Combatant, cost: int = 1) -> bool:
        self.ensure_active()
        return self.scheduler.spend_action(actor, cost)

    @_ignored_after_end
    def end_turn(self) -> Optional[RoundEvent]:
        self.ensure_active()
        event = self.scheduler.end_turn()
        if event is None:
            return None
        if event.kind == RoundEventKind.NEW_ROUND:
            self.log(f"--- Melee round {event.round} ---")
            self._update_fog()
        elif event.kind == RoundEventKind.COMBAT_ENDED:
            self._finish(event.outcome)
        return event

    @_ignored_after_end
    def advance_time(self, delta_ms: int) -> List[TimelineEvent]:
        self.ensure_active()
        return self.timeline.advance(delta_ms)

    def is_combat_ended(self) -> bool:
        return self.scheduler.ended

    # ------------------------------------------------------------------
    # Offense
    # ------------------------------------------------------------------

    @_ignored_after_end
    def attack(self, attacker: Combatant, defender: Combatant, weapon: Optional[Weapon] = None,
               modifiers: Optional[AttackModifiers] = None, defense: DefenseKind = DefenseKind.AUTO,
               attack_id: Optional[str] = None) -> AttackOutcome:
        outcome = self.attacks.resolve_attack(attacker, defender, weapon, modifiers, defense, attack_id)
        if outcome.ok and not outcome.duplicate and not self.is_combat_ended():
            self._check_horror(attacker, terrifying=outcome.critical or not defender.is_conscious)
        return outcome

    @_ignored_after_end
    def fire_projectile(self, attacker: Combatant, defender: Combatant, travel_ms: int,
                        weapon: Optional[Weapon] = None, defense: DefenseKind = DefenseKind.AUTO) -> Optional[TimelineEvent]:
        """Loose a missile now and resolve the hit when the timeline reaches impact."""
        self.ensure_active()
        modifiers = AttackModifiers()
        attack_id = self.next_id("atk")
        try:
            chosen, _ = self.attacks.validate(attacker, defender, weapon, modifiers)
            if not chosen.is_ranged:
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, f"{chosen.name} is not a missile weapon")
        except ValidationError as err:
            self.attacks._fail(attacker, AttackOutcome(attack_id, attacker.id, defender.id), err)
            return None
        self.scheduler.spend_action(attacker, ACTION_COSTS["strike"])
        if chosen.ammo_type:
            attacker.ammo[chosen.ammo_type] -= 1
        self.log(f"{attacker.name} looses a {chosen.name} shot at {defender.name}.", Severity.INFO, attacker)
        in_flight = replace(modifiers, consume_action=False, ammo_spent=True)

        def impact(event: TimelineEvent) -> AttackOutcome:
            return self.attacks.resolve_attack(attacker, defender, chosen, in_flight, defense, attack_id)

        return self.timeline.schedule(travel_ms, f"projectile:{attack_id}", impact, payload=attack_id)

    @_ignored_after_end
    def set_overwatch(self, actor: Combatant, x: int, y: int, delay_ms: int,
                      weapon: Optional[Weapon] = None) -> Optional[TimelineEvent]:
        """Aim at a cell; whoever stands there when the shot lands is attacked."""
        self.ensure_active()
        chosen = effective_weapon(actor, weapon, self.rules.grapple_weapon_max_length)
        try:
            if not actor.can_attack:
                raise ValidationError(ValidationReason.CANNOT_ACT, f"{actor.name} cannot take an overwatch shot")
            if actor.actions_remaining < 1:
                raise ValidationError(ValidationReason.NO_ACTIONS, f"{actor.name} has no actions left")
            if not chosen.is_ranged:
                raise ValidationError(ValidationReason.WEAPON_UNUSABLE, f"{chosen.name} cannot cover a distant cell")
            if not has_ammo_for(actor, chosen):
                raise ValidationError(ValidationReason.NO_AMMO, f"{actor.name} is out of {chosen.ammo_type}")
            if self.tactical_map is None or not self.tactical_map.in_bounds(x, y):
                raise ValidationError(ValidationReason.INVALID_TARGET, f"({x}, {y}) is not on the map")
        except ValidationError as err:
            self.log(f"Overwatch aborted: {err.message}", Severity.WARNING, actor)
            if actor.is_ai and actor.actions_remaining > 0:
                actor.spend_actions(1)
            return None
        self.scheduler.spend_action(actor, ACTION_COSTS["strike"])
        if chosen.ammo_type:
            actor.ammo[chosen.ammo_type] -= 1
        self.log(f"{actor.name} covers ({x}, {y}) with {chosen.name}.", Severity.INFO, actor)
        attack_id = self.next_id("ow")

        def impact(event: TimelineEvent) -> Optional[AttackOutcome]:
            occupant = self.tactical_map.occupant_at(x, y)
            if occupant is None or occupant.side == actor.side:
                self.log(f"{actor.name}'s overwatch shot at ({x}, {y}) finds no target.", Severity.INFO, actor)
                return None
            return self.attacks.resolve_attack(actor, occupant, chosen, AttackModifiers(consume_action=False, ammo_spent=True),
                                               DefenseKind.AUTO, attack_id)

        return self.timeline.schedule(delay_ms, f"overwatch:{attack_id}", impact, payload=(x, y))

    @_ignored_after_end
    def charge(self, attacker: Combatant, defender: Combatant, weapon: Optional[Weapon] = None) -> Optional[AttackOutcome]:
        """Run up to the defender and strike in one action with the charge multiplier."""
        self.ensure_active()
        tmap = self.tactical_map
        if tmap is None or attacker.position is None or defender.position is None:
            return self.attack(attacker, defender, weapon)
        distance = tmap.distance(attacker.position.cell, defender.position.cell)
        if distance < self.rules.charge_min_cells:
            return self.attack(attacker, defender, weapon)
        dest = self._approach_cell(attacker, defender, attacker.speed * MOVE_MULTIPLIERS["run"])
        if dest is None:
            outcome = AttackOutcome(self.next_id("atk"), attacker.id, defender.id)
            return self.attacks._fail(attacker, outcome, ValidationError(
                ValidationReason.OUT_OF_RANGE, f"{attacker.name} has no charge lane to {defender.name}"))
        self._relocate(attacker, dest)
        fatigue.drain_stamina(attacker, "sprint", self.rules)
        self.log(f"{attacker.name} charges {defender.name}!", Severity.INFO, attacker)
        self._trigger_holds(attacker)
        return self.attack(attacker, defender, weapon, AttackModifiers(charge=True))

    @_ignored_after_end
    def hold_action(self, actor: Combatant, weapon: Optional[Weapon] = None) -> bool:
        """Spend an action now to strike the first foe that moves into range before the next round."""
        self.ensure_active()
        try:
            if not actor.can_attack:
                raise ValidationError(ValidationReason.CANNOT_ACT, f"{actor.name} cannot ready an attack")
            if actor.actions_remaining < 1:
                raise ValidationError(ValidationReason.NO_ACTIONS, f"{actor.name} has no actions left")
            if actor.id in self.holds:
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, f"{actor.name} is already holding an action")
        except ValidationError as err:
            self.log(f"Hold aborted: {err.message}", Severity.WARNING, actor)
            if actor.is_ai and actor.actions_remaining > 0:
                actor.spend_actions(1)
            return False
        self.scheduler.spend_action(actor, ACTION_COSTS["hold"])
        self.holds[actor.id] = HeldAction(actor.id, weapon, self.round)
        chosen = effective_weapon(actor, weapon, self.rules.grapple_weapon_max_length)
        self.log(f"{actor.name} holds an action, {chosen.name} ready.", Severity.INFO, actor)
        return True

    def _trigger_holds(self, mover: Combatant) -> None:
        """Spring every held attack whose owner now has *mover* in range and in view."""
        for holder_id, held in list(self.holds.items()):
            if self.is_combat_ended() or not mover.in_fight:
                return
            holder = self.roster[holder_id]
            if holder.side == mover.side or not holder.can_attack:
                continue
            if not self.can_see(holder, mover) or not self.in_range(holder, mover, held.weapon):
                continue
            del self.holds[holder_id]
            self.log(f"{holder.name} springs a held attack on {mover.name}!", Severity.INFO, holder)
            self.attacks.resolve_attack(holder, mover, held.weapon, AttackModifiers(consume_action=False),
                                        DefenseKind.AUTO, self.next_id("hold"))

    @_ignored_after_end
    def cast_spell(self, caster: Combatant, target: Combatant, spell: Union[Spell, str],
                   cast_id: Optional[str] = None) -> CastOutcome:
        self.ensure_active()
        if isinstance(spell, str):
            known = {s.name: s for s in caster.known_powers()}
            if spell not in known:
                outcome = CastOutcome(cast_id or self.next_id("cast"), caster.id, target.id, spell)
                outcome.error = ValidationError(ValidationReason.ILLEGAL_ACTION, f"{caster.name} does not know {spell}")
                self.log(f"{spell} aborted: {outcome.error.message}", Severity.WARNING, caster)
                if caster.is_ai and caster.actions_remaining > 0:
                    caster.spend_actions(1)
                    outcome.action_spent = True
                return outcome
            spell = known[spell]
        return self.spells.cast(caster, target, spell, cast_id)

    # ------------------------------------------------------------------
    # Grappling
    # ------------------------------------------------------------------

    def _validate_grapple(self, attacker: Combatant, defender: Combatant) -> None:
        if not attacker.can_attack:
            raise ValidationError(ValidationReason.CANNOT_ACT, f"{attacker.name} cannot grapple now")
        if attacker.actions_remaining < 1:
            raise ValidationError(ValidationReason.NO_ACTIONS, f"{attacker.name} has no actions left")
        if defender is attacker or not defender.is_alive or defender.fled:
            raise ValidationError(ValidationReason.INVALID_TARGET, f"{defender.name} cannot be grappled")
        if not attacker.grapple.is_neutral or not defender.grapple.is_neutral:
            raise ValidationError(ValidationReason.ILLEGAL_ACTION, "Both fighters must be free to start a grapple")
        if attacker.is_flying != defender.is_flying or attacker.altitude != defender.altitude:
            raise ValidationError(ValidationReason.OUT_OF_RANGE, f"{defender.name} is not at the same height")
        if self.tactical_map and attacker.position and defender.position:
            if self.tactical_map.distance(attacker.position.cell, defender.position.cell) > 1:
                raise ValidationError(ValidationReason.OUT_OF_RANGE, f"{defender.name} is not adjacent")

    @_ignored_after_end
    def attempt_grapple(self, attacker: Combatant, defender: Combatant) -> grapple.GrappleResult:
        self.ensure_active()
        try:
            self._validate_grapple(attacker, defender)
        except ValidationError as err:
            self.log(f"Grapple aborted: {err.message}", Severity.WARNING, attacker)
            if attacker.is_ai and attacker.actions_remaining > 0:
                attacker.spend_actions(1)
            return grapple.GrappleResult(False, err.message)
        self.scheduler.spend_action(attacker, ACTION_COSTS["grapple"])
        result = grapple.attempt_grapple(attacker, defender, self.dice, self.rules)
        self.log(result.message, Severity.INFO, attacker)
        return result

    @_ignored_after_end
    def grapple_action(self, actor: Combatant, kind: str) -> grapple.GrappleResult:
        """Takedown, pin, escape, push_off, reversal or release against the current hold."""
        self.ensure_active()
        opponent = self.roster.get(actor.grapple.opponent_id) if actor.grapple.opponent_id else None
        moves = {
            "takedown": grapple.takedown,
            "pin": grapple.pin,
            "escape": grapple.attempt_escape,
            "push_off": grapple.push_off,
            "reversal": grapple.reversal,
        }
        try:
            if opponent is None:
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, f"{actor.name} is not grappling")
            if kind not in moves and kind != "release":
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, f"Unknown grapple action {kind!r}")
            if not actor.can_act:
                raise ValidationError(ValidationReason.CANNOT_ACT, f"{actor.name} cannot act")
            if actor.actions_remaining < 1:
                raise ValidationError(ValidationReason.NO_ACTIONS, f"{actor.name} has no actions left")
        except ValidationError as err:
            self.log(f"Grapple action aborted: {err.message}", Severity.WARNING, actor)
            if actor.is_ai and actor.actions_remaining > 0:
                actor.spend_actions(1)
            return grapple.GrappleResult(False, err.message)

        self.scheduler.spend_action(actor, ACTION_COSTS["grapple"])
        if kind == "release":
            result = grapple.break_free(actor, opponent)
        else:
            result = moves[kind](actor, opponent, self.dice, self.rules)
        self.log(result.message, Severity.INFO, actor)
        if result.damage:
            self.apply_damage(opponent, result.damage, DamageType.PHYSICAL,
                              effect_id=self.next_id("grapple"), source=actor)
        if result.success and kind == "takedown":
            opponent.apply_status(StatusEffect.PRONE)
        if opponent.grapple.is_neutral:
            opponent.clear_status(StatusEffect.PRONE)
        return result

    # ------------------------------------------------------------------
    # Movement and flight
    # ------------------------------------------------------------------

    def _relocate(self, actor: Combatant, cell) -> None:
        tmap = self.tactical_map
        if actor.position is not None:
            tmap.clear_occupant(*actor.position.cell)
            actor.position = actor.position.moved_to(*cell)
        else:
            actor.position = Position(cell[0], cell[1])
        tmap.set_occupant(cell[0], cell[1], actor)

    def _approach_cell(self, actor: Combatant, target: Combatant, budget: int):
        """Closest free cell next to *target* reachable within *budget* movement."""
        tmap = self.tactical_map
        reachable = tmap.get_reachable_tiles(*actor.position.cell, budget, actor)
        goal = target.position.cell
        options = [cell for cell in reachable if tmap.distance(cell, goal) == 1]
        if not options:
            return None
        return min(options, key=lambda cell: (reachable[cell], cell))

    @_ignored_after_end
    def move_to(self, actor: Combatant, x: int, y: int, mode: str = "move") -> bool:
        self.ensure_active()
        tmap = self.tactical_map
        try:
            if mode not in MOVE_MULTIPLIERS:
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, f"Unknown movement mode {mode!r}")
            if not actor.can_act:
                raise ValidationError(ValidationReason.CANNOT_ACT, f"{actor.name} cannot move")
            if actor.actions_remaining < 1:
                raise ValidationError(ValidationReason.NO_ACTIONS, f"{actor.name} has no actions left")
            if not actor.grapple.is_neutral:
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, f"{actor.name} is held in a grapple")
            if tmap is None or actor.position is None:
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, "No tactical map available for movement")
            if (x, y) == actor.position.cell:
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, f"{actor.name} is already at ({x}, {y})")
            path = tmap.find_path(*actor.position.cell, x, y, actor)
            if not path:
                raise ValidationError(ValidationReason.OUT_OF_RANGE, f"{actor.name} cannot find a path to ({x}, {y})")
            cost = sum(tmap.get_tile(cx, cy).move_cost for cx, cy in path[1:])
            allowance = actor.speed * MOVE_MULTIPLIERS[mode]
            if cost > allowance:
                raise ValidationError(ValidationReason.OUT_OF_RANGE,
                                      f"{actor.name} cannot reach ({x}, {y}): needs {cost}, has {allowance}")
        except ValidationError as err:
            self.log(f"Move aborted: {err.message}", Severity.WARNING, actor)
            if actor.is_ai and actor.actions_remaining > 0:
                actor.spend_actions(1)
            return False

        action_cost = ACTION_COSTS[mode]
        self.scheduler.spend_action(actor, actor.actions_remaining if action_cost is None else action_cost)
        start = actor.position.cell
        self._relocate(actor, (x, y))
        if actor.is_flying:
            fatigue.drain_stamina(actor, "fly_cruise", self.rules)
        else:
            fatigue.drain_stamina(actor, "light" if mode == "move" else "sprint", self.rules)
        actor.clear_status(StatusEffect.PRONE)
        self.log(f"{actor.name} {'moves' if mode == 'move' else mode + 's'} from {start} to ({x}, {y}) (cost: {cost}).",
                 Severity.INFO, actor)
        self._update_fog()
        self._check_horror(actor)
        self._trigger_holds(actor)
        return True

    @_ignored_after_end
    def take_off(self, actor: Combatant, altitude: Optional[int] = None) -> Optional[flight.FlightResult]:
        self.ensure_active()
        if not self._can_spend(actor, "Take off"):
            return None
        if not actor.grapple.is_neutral:
            self.log(f"{actor.name} cannot take off while grappled.", Severity.WARNING, actor)
            return flight.FlightResult(False, f"{actor.name} is grappled.")
        result = flight.take_off(actor, altitude, self.rules)
        if result.success:
            self.scheduler.spend_action(actor, ACTION_COSTS["flight"])
        self.log(result.message, Severity.INFO if result.success else Severity.WARNING, actor)
        return result

    @_ignored_after_end
    def land(self, actor: Combatant) -> Optional[flight.FlightResult]:
        self.ensure_active()
        if not self._can_spend(actor, "Land"):
            return None
        result = flight.land(actor, self.dice, controlled=True, rules=self.rules)
        if result.success:
            self.scheduler.spend_action(actor, ACTION_COSTS["flight"])
        self.log(result.message, Severity.INFO, actor)
        return result

    @_ignored_after_end
    def change_altitude(self, actor: Combatant, delta_ft: int) -> Optional[flight.FlightResult]:
        self.ensure_active()
        if not self._can_spend(actor, "Altitude change"):
            return None
        if not actor.is_flying:
            self.log(f"{actor.name} is not flying.", Severity.WARNING, actor)
            return flight.FlightResult(False, f"{actor.name} is not flying.")
        result = flight.change_altitude(actor, delta_ft, self.rules)
        if result.success:
            self.scheduler.spend_action(actor, ACTION_COSTS["flight"])
            if result.altitude == 0:
                flight.land(actor, self.dice, controlled=True, rules=self.rules)
        self.log(result.message, Severity.INFO, actor)
        return result

    @_ignored_after_end
    def rest(self, actor: Combatant, full: bool = False) -> Optional[float]:
        """Catch breath: one action for a light rest, the whole budget for a full one."""
        self.ensure_active()
        if not actor.in_fight:
            return None
        cost = actor.actions_remaining if full else ACTION_COSTS["rest"]
        if actor.actions_remaining < max(1, cost):
            self.log(f"{actor.name} has no actions left to rest.", Severity.WARNING, actor)
            return None
        self.scheduler.spend_action(actor, cost)
        gained = fatigue.recover(actor, "full" if full else "light", self.rules)
        self.log(f"{actor.name} rests and recovers {gained:g} stamina.", Severity.INFO, actor)
        return gained

    @_ignored_after_end
    def prowl(self, actor: Combatant) -> Optional[stealth.StealthResult]:
        """Spend an action trying to slip out of sight."""
        self.ensure_active()
        try:
            if not actor.can_act:
                raise ValidationError(ValidationReason.CANNOT_ACT, f"{actor.name} cannot prowl now")
            if actor.actions_remaining < 1:
                raise ValidationError(ValidationReason.NO_ACTIONS, f"{actor.name} has no actions left")
            if actor.prowl <= 0:
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, f"{actor.name} has no Prowl skill")
            if stealth.is_hidden(actor):
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, f"{actor.name} is already hidden")
        except ValidationError as err:
            self.log(f"Prowl aborted: {err.message}", Severity.WARNING, actor)
            if actor.is_ai and actor.actions_remaining > 0:
                actor.spend_actions(1)
            return stealth.StealthResult(False, message=err.message)
        self.scheduler.spend_action(actor, ACTION_COSTS["prowl"])
        result = stealth.roll_prowl(actor, self.dice)
        self.log(result.message, Severity.INFO, actor)
        self._update_fog()
        return result

    @_ignored_after_end
    def flee_off_map(self, actor: Combatant) -> bool:
        """Remove a fighter from the battlefield; it stays in the fighter list."""
        self.ensure_active()
        if actor.fled:
            return False
        opponent = self.roster.get(actor.grapple.opponent_id) if actor.grapple.opponent_id else None
        grapple.release(actor, opponent)
        if self.tactical_map and actor.position is not None:
            self.tactical_map.clear_occupant(*actor.position.cell)
        actor.position = None
        actor.flight.is_flying = False
        actor.fled = True
        self.holds.pop(actor.id, None)
        self.scheduler.remove(actor)
        self.log(f"{actor.name} flees the battlefield!", Severity.WARNING, actor)
        self._update_fog()
        self._check_combat_end()
        return True

    def _can_spend(self, actor: Combatant, label: str) -> bool:
        if not actor.can_act or actor.actions_remaining < 1:
            self.log(f"{label} aborted: {actor.name} cannot act.", Severity.WARNING, actor)
            return False
        return True

    # ------------------------------------------------------------------
    # Hit points, sides and morale
    # ------------------------------------------------------------------

    @_ignored_after_end
    def apply_damage(self, target: Combatant, amount: int, damage_type: DamageType = DamageType.PHYSICAL,
                     effect_id: Optional[str] = None, source: Optional[Combatant] = None,
                     already_adjusted: bool = False) -> int:
        """Apply damage once per effect id. Returns the HP actually removed."""
        self.ensure_active()
        if effect_id is not None and not self.scheduler.mark_processed(f"dmg:{effect_id}"):
            logger.debug("effect %s already applied to %s", effect_id, target.id)
            return 0
        if not already_adjusted:
            if damage_type in target.immunities:
                self.log(f"{target.name} is immune to {damage_type.value} damage.", Severity.INFO, target)
                return 0
            if damage_type in target.resistances:
                amount //= 2
        amount = max(0, int(amount))
        if amount == 0 or not target.is_alive:
            return 0

        before_status = target.health_status
        removed = -target.apply_hp_delta(-amount)
        after_status = target.health_status
        self.log(f"{target.name} takes {removed} damage ({target.current_hp}/{target.max_hp} HP).", Severity.INFO, target)

        if after_status != before_status:
            severity = Severity.WARNING if after_status != HealthStatus.DEAD else Severity.CRITICAL
            self.log(f"{target.name} is {after_status.value}!", severity, target)

        if not target.is_conscious:
            opponent = self.roster.get(target.grapple.opponent_id) if target.grapple.opponent_id else None
            grapple.release(target, opponent)
            self.scheduler.remove(target)
            self.holds.pop(target.id, None)
            if target.is_flying:
                result = flight.fall(target, self.dice)
                self.log(result.message, Severity.WARNING, target)
                if result.fall_damage:
                    self.apply_damage(target, result.fall_damage, DamageType.PHYSICAL,
                                      effect_id=self.next_id("fall"), already_adjusted=True)
            if target.health_status == HealthStatus.DEAD and self.tactical_map and target.position:
                self.tactical_map.clear_occupant(*target.position.cell)
            elif pain.start_bleeding(target):
                self.log(f"{target.name} is bleeding out.", Severity.WARNING, target)
            if self._check_combat_end():
                return removed
            self._allies_down_checks(target)
        elif target.hp_ratio < self.rules.low_hp_ratio:
            self.morale_check(target, reason="wounded", big_pain_hit=removed >= target.max_hp // 4)
        return removed

    @_ignored_after_end
    def heal(self, target: Combatant, amount: int, source: Optional[Combatant] = None) -> int:
        self.ensure_active()
        if not target.is_alive or amount <= 0:
            return 0
        was_down = not target.is_conscious
        healed = target.apply_hp_delta(int(amount))
        who = f" by {source.name}" if source is not None and source is not target else ""
        self.log(f"{target.name} is healed{who} for {healed} ({target.current_hp}/{target.max_hp} HP).",
                 Severity.INFO, target)
        if was_down and target.is_conscious:
            pain.clear_wounds(target)
            self.log(f"{target.name} regains consciousness.", Severity.INFO, target)
        return healed

    @_ignored_after_end
    def set_side(self, combatant: Combatant, side: Side) -> bool:
        """Switch allegiance at runtime (betrayal or recruitment)."""
        self.ensure_active()
        if combatant.side == side:
            return False
        combatant.side = side
        combatant.memory.clear()
        self.log(f"{combatant.name} now fights for the {side.value} side!", Severity.WARNING, combatant)
        self._update_fog()
        self._check_combat_end()
        return True

    @_ignored_after_end
    def morale_check(self, combatant: Combatant, reason: str = "generic", force: bool = False,
                     big_pain_hit: bool = False) -> Optional[MoraleCheckResult]:
        self.ensure_active()
        if not combatant.in_fight:
            return None
        context = MoraleContext(
            reason=reason,
            hp_ratio=combatant.hp_ratio,
            allies_down_ratio=self.allies_down_ratio(combatant),
            horror_failed=any(combatant.has_status(s) for s in
                              (StatusEffect.FRIGHTENED, StatusEffect.HESITANT, StatusEffect.FLEEING)),
            big_pain_hit=big_pain_hit,
        )
        result = check_morale(combatant, self.dice, context, self.round, force, self.rules)
        if result.message and not result.skipped:
            severity = Severity.INFO if result.passed else Severity.WARNING
            self.log(result.message, severity, combatant)
        if not result.passed and not result.skipped:
            self._check_combat_end()
        return result

    def allies_down_ratio(self, combatant: Combatant) -> float:
        team = [c for c in self.combatants if c.side == combatant.side and c is not combatant]
        if not team:
            return 0.0
        return sum(1 for c in team if not c.in_fight) / len(team)

    def _allies_down_checks(self, fallen: Combatant) -> None:
        for ally in self.combatants:
            if ally is fallen or ally.side != fallen.side or not ally.in_fight:
                continue
            if self.allies_down_ratio(ally) >= self.rules.morale_allies_down_steps[0][0]:
                self.morale_check(ally, reason="allies_down")
            if self.is_combat_ended():
                return

    # ------------------------------------------------------------------
    # Horror and visibility
    # ------------------------------------------------------------------

    def _update_fog(self) -> None:
        if self.fog is not None:
            self.fog.update(self.combatants)

    def can_see(self, viewer: Combatant, target: Combatant) -> bool:
        if stealth.is_hidden(target):
            return False
        return self.has_line(viewer, target)

    def has_line(self, viewer: Combatant, target: Combatant) -> bool:
        """Line of sight regardless of whether *target* is hiding."""
        if self.tactical_map is None or viewer.position is None or target.position is None:
            return target.position is not None or self.tactical_map is None
        if target.is_flying or viewer.is_flying:
            return True
        return self.tactical_map.has_line_of_sight(viewer.position.cell, target.position.cell)

    def _check_horror(self, subject: Combatant, terrifying: bool = False) -> None:
        """Roll Horror Factor saves between *subject* and every foe that can see it, or that it can see.

        ``terrifying`` raises *subject*'s own Horror Factor for this exposure (a
        critical hit or a fighter cut down in plain view).
        """
        if self.is_combat_ended() or not subject.in_fight:
            return
        for other in self.combatants:
            if other.side == subject.side or not other.in_fight:
                continue
            for source, target in ((subject, other), (other, subject)):
                if source.horror_factor < self.rules.horror_min_factor or self.horror.has_checked(source, target):
                    continue
                result = self.horror.expose(source, target, self.dice, self.can_see(target, source),
                                            terrifying_action=terrifying and source is subject, rules=self.rules)
                if not result.triggered:
                    if result.message:
                        self.log(result.message, Severity.INFO, target)
                    continue
                self.log(result.message, Severity.INFO if result.passed else Severity.WARNING, target)
                if not result.passed:
                    self.morale_check(target, reason="horror", force=True)
                    if self.is_combat_ended():
                        return

    # ------------------------------------------------------------------
    # Round transition
    # ------------------------------------------------------------------

    def _on_new_round(self, round_number: int) -> None:
        for c in self.combatants:
            if not c.is_alive or c.fled:
                continue
            hesitant = c.has_status(StatusEffect.HESITANT)
            for status in c.tick_statuses():
                self.log(f"{c.name} is no longer {status.name.lower()}.", Severity.INFO, c)
            if c.regeneration and c.current_hp < c.max_hp:
                healed = c.apply_hp_delta(c.regeneration)
                self.log(f"{c.name} regenerates {healed} HP.", Severity.INFO, c)
                if c.is_conscious:
                    pain.clear_wounds(c)
            lost = pain.bleed(c, self.rules)
            if lost:
                self.log(f"{c.name} bleeds for {lost} ({c.current_hp}/{c.max_hp} HP).", Severity.WARNING, c)
                if not c.is_alive:
                    self.log(f"{c.name} bleeds to death.", Severity.CRITICAL, c)
                    if self.tactical_map and c.position:
                        self.tactical_map.clear_occupant(*c.position.cell)
                    continue
            if c.is_flying:
                fatigue.drain_stamina(c, "fly_hover", self.rules)
            message = fatigue.tick_round(c, self.dice, self.rules)
            if message:
                self.log(message, Severity.WARNING, c)
            if not c.grapple.is_neutral:
                c.grapple.rounds_held += 1
            if not c.is_conscious or c.fatigue.status == FatigueStatus.COLLAPSED:
                c.set_actions(0)
            elif hesitant:
                c.set_actions(c.actions_remaining - 1)
                self.log(f"{c.name} hesitates and loses an action.", Severity.INFO, c)
        for holder_id in list(self.holds):
            self.log(f"{self.roster[holder_id].name}'s held action lapses.", Severity.INFO, self.roster[holder_id])
        self.holds.clear()
        self._check_combat_end()
        self._detection_rolls()

    def _detection_rolls(self) -> None:
        """Every foe with a line on a hidden fighter gets a roll to spot it."""
        if self.is_combat_ended():
            return
        tmap = self.tactical_map
        for hidden in self.combatants:
            if not hidden.in_fight or not stealth.is_hidden(hidden):
                continue
            for observer in self.opponents_of(hidden):
                if not observer.can_act or not self.has_line(observer, hidden):
                    continue
                cover = None
                if tmap is not None and observer.position and hidden.position and not (observer.is_flying or hidden.is_flying):
                    cover = tmap.cover_between(observer.position.cell, hidden.position.cell)
                result = stealth.roll_detection(observer, hidden, self.dice, cover, self.rules)
                if result.success:
                    self.log(result.message, Severity.INFO, observer)
                    break
        self._update_fog()

    def has_offensive_option(self, c: Combatant) -> bool:
        if not c.in_fight or c.morale.is_broken or c.has_status(StatusEffect.FLEEING):
            return False
        foes = self.opponents_of(c)
        if not foes:
            return False
        ranged = any(w.is_ranged and has_ammo_for(c, w) for w in c.weapons)
        spell = any(p.is_offensive and c.resource_for(p.source) >= p.cost for p in c.known_powers())
        for foe in foes:
            if not foe.is_flying or ranged or spell or c.can_fly or c.flight.granted:
                return True
        return False

    def is_stalemate(self) -> bool:
        return not any(self.has_offensive_option(c) for c in self.combatants)

    def _check_combat_end(self) -> bool:
        if self.is_combat_ended():
            return True
        allies = [c for c in self.combatants if c.side == Side.ALLY and c.in_fight]
        enemies = [c for c in self.combatants if c.side == Side.ENEMY and c.in_fight]
        if allies and enemies:
            return False
        if not allies and not enemies:
            outcome = Outcome.DRAW
        elif enemies:
            outcome = Outcome.DEFEAT
        else:
            outcome = Outcome.VICTORY
        self.scheduler.end_combat(outcome)
        self._finish(outcome)
        return True

    def _finish(self, outcome: Outcome) -> None:
        if self._finished:
            return
        self._finished = True
        discarded = self.timeline.cancel_all()
        self.log(f"Combat ends: {outcome.value} after {self.round} melee round(s).")
        if discarded:
            self.log(f"{discarded} pending timeline event(s) discarded.", Severity.INFO)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def world_view(self, side: Side) -> WorldView:
        visible = self.fog.visible_to(side) if self.fog is not None else None
        allies = tuple(view_of(c) for c in self.combatants if c.side == side)
        enemies = []
        for c in self.combatants:
            if c.side == side or c.fled:
                continue
            if visible is not None and c.position is not None and not c.is_flying and c.position.cell not in visible:
                continue
            if c.has_status(StatusEffect.HIDDEN):
                continue
            enemies.append(view_of(c))
        occupied = {cell: occ.id for cell, occ in self.tactical_map.occupied_cells().items()} if self.tactical_map else {}
        return WorldView(side, self.round, allies, tuple(enemies), occupied,
                         frozenset(visible) if visible is not None else None)

    def snapshot(self) -> Dict[str, Any]:
        actor = self.current_actor()
        return {
            "encounter_id": self.encounter_id,
            "round": self.round,
            "state": self.scheduler.state.value,
            "actor": actor.id if actor else None,
            "outcome": self.outcome.value if self.outcome else None,
            "time_ms": self.timeline.now_ms,
            "pending_events": len(self.timeline.pending()),
            "combatants": [
                {
                    "id": c.id,
                    "name": c.name,
                    "side": c.side.value,
                    "hp": c.current_hp,
                    "max_hp": c.max_hp,
                    "health": c.health_status.value,
                    "actions": c.actions_remaining,
                    "morale": c.morale.status.value,
                    "fatigue": c.fatigue.status.value,
                    "grapple": c.grapple.status.value,
                    "position": (c.position.x, c.position.y, c.position.altitude) if c.position else None,
                    "flying": c.is_flying,
                    "fled": c.fled,
                    "holding": c.id in self.holds,
                    "statuses": sorted(s.name.lower() for s in c.status_effects),
                }
                for c in self.combatants
            ],
        }

    def in_range(self, attacker: Combatant, defender: Combatant, weapon: Optional[Weapon] = None) -> bool:
        chosen = effective_weapon(attacker, weapon, self.rules.grapple_weapon_max_length)
        return check_range(self.tactical_map, attacker, defender, chosen).in_range

    def get_combat_summary(self) -> str:
        lines = ["\n=== Combat Status ==="]
        for c in self.combatants:
            status = "FLED" if c.fled else c.health_status.value.upper()
            lines.append(
                f"{c.name} [{c.side.value}]: {c.current_hp}/{c.max_hp} HP | "
                f"PPE: {c.ppe}/{c.max_ppe} | ISP: {c.isp}/{c.max_isp} | "
                f"{status} | {c.morale.status.value}"
            )
        if self.outcome is not None:
            lines.append(f"Outcome: {self.outcome.value}")
        return "\n".join(lines)
