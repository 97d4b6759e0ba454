"""
Combat AI - autonomous decision making for allies and enemies alike.

Usage:
    ai = CombatAI(strategy="balanced")
    plan = ai.decide(engine, actor)      # look, don't touch
    plans = ai.take_turn(engine, actor)  # act once, then end the turn

Priority each turn:
    1. routed -> run for the map edge (or off it); fleeing in terror ->
       back away from every threat, cowering when boxed in
    2. badly hurt -> morale check
    3. a critically injured or bleeding ally in touch range -> heal
    4. pick a target: lowest HP%, then lowest AR, nearest, most flankers
    5. cast a viable spell, otherwise strike
    6. out of reach: prowl once, hold ground, or close the distance
       (move, run, charge, take off, climb)

Strategies:
    - "aggressive": charges, grabs weaker foes, reverses holds
    - "defensive": rests when spent, avoids grappling, holds its ground
    - "balanced": the default
    - "random": random target among the valid ones

Watchdog: a turn either spends at least one action or ends within
``max_decision_steps`` decisions; if planning stalls, one action is
forfeited so the scheduler always makes progress.
"""

from __future__ import annotations

import logging
import random as _random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .attack import AttackModifiers, check_range
from .dice import parse_expression
from .enums import (
    AttackKind,
    FatigueStatus,
    GrappleRole,
    GrappleStatus,
    MoraleStatus,
    PlanKind,
    Severity,
    StatusEffect,
)
from .items import AttackDescriptor, Weapon, effective_weapon, has_ammo_for
from .map import Cell
from .morale import is_fear_immune
from .stealth import is_hidden
from .spells import Spell

if TYPE_CHECKING:
    from .combatant import Combatant
    from .engine import CombatEngine
    from .view import WorldView

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Strategy configuration
# ---------------------------------------------------------------------------

STRATEGY_DEFAULTS = {
    "aggressive": {
        "morale_hp_threshold": 0.15,
        "heal_ally_ratio": 0.20,
        "charge": True,
        "grapple_weaker": True,
        "try_reversal": True,
        "rest_when_spent": False,
        "prefer_spells": True,
        "hold_ground": False,
    },
    "defensive": {
        "morale_hp_threshold": 0.25,
        "heal_ally_ratio": 0.35,
        "charge": False,
        "grapple_weaker": False,
        "try_reversal": False,
        "rest_when_spent": True,
        "prefer_spells": True,
        "hold_ground": True,
    },
    "balanced": {
        "morale_hp_threshold": 0.20,
        "heal_ally_ratio": 0.25,
        "charge": True,
        "grapple_weaker": False,
        "try_reversal": True,
        "rest_when_spent": True,
        "prefer_spells": True,
        "hold_ground": False,
    },
    "random": {
        "morale_hp_threshold": 0.20,
        "heal_ally_ratio": 0.25,
        "charge": False,
        "grapple_weaker": False,
        "try_reversal": False,
        "rest_when_spent": False,
        "prefer_spells": False,
        "hold_ground": False,
    },
}


@dataclass
class PlannedAction:
    kind: PlanKind
    target_id: Optional[str] = None
    destination: Optional[Cell] = None
    weapon: Optional[Weapon] = None
    spell: Optional[str] = None
    mode: str = "move"
    altitude_delta: int = 0
    attack: Optional[AttackDescriptor] = None
    reason: str = ""


# ---------------------------------------------------------------------------
# CombatAI
# ---------------------------------------------------------------------------

class CombatAI:
    """Autonomous combat decision maker.

    Parameters
    ----------
    strategy : str
        One of ``"aggressive"``, ``"defensive"``, ``"balanced"`` (default)
        or ``"random"``.
    decision_log : list[str] | None
        Optional list to append decision explanations to (for UI transparency).
    show_decisions : bool
        If True, decision reasons are appended to *decision_log* and the
        engine's event log.
    max_decision_steps : int | None
        Watchdog budget; defaults to the engine's ``RulesConfig``.
    """

    def __init__(
        self,
        strategy: str = "balanced",
        decision_log: Optional[List[str]] = None,
        show_decisions: bool = True,
        max_decision_steps: Optional[int] = None,
        rng: Optional[_random.Random] = None,
    ) -> None:
        if strategy not in STRATEGY_DEFAULTS:
            strategy = "balanced"
        self.strategy = strategy
        self.config: Dict[str, Any] = dict(STRATEGY_DEFAULTS[strategy])
        self.decision_log: List[str] = decision_log if decision_log is not None else []
        self.show_decisions = show_decisions
        self.max_decision_steps = max_decision_steps
        self.rng = rng or _random.Random()
        self.watchdog_trips = 0
        self._prowled: set = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def take_turn(self, engine: CombatEngine, actor: Combatant) -> List[PlannedAction]:
        """Decide and act until one action is spent, then end the turn."""
        plans: List[PlannedAction] = []
        if engine.is_combat_ended():
            return plans
        budget = self.max_decision_steps or engine.rules.max_decision_steps
        start_actions = actor.actions_remaining
        for _ in range(budget):
            if engine.is_combat_ended() or actor.actions_remaining < start_actions:
                break
            if actor.actions_remaining < 1 or not actor.can_act:
                break
            plan = self.decide(engine, actor)
            plans.append(plan)
            if plan.kind == PlanKind.END_TURN:
                break
            self.execute(engine, actor, plan)
        else:
            if not engine.is_combat_ended() and actor.actions_remaining >= start_actions and actor.actions_remaining > 0:
                self.watchdog_trips += 1
                engine.log(f"{actor.name} hesitates too long and loses an action.", Severity.WARNING, actor)
                actor.spend_actions(1)
        if not engine.is_combat_ended() and engine.current_actor() is actor:
            engine.end_turn()
        return plans

    def decide(self, engine: CombatEngine, actor: Combatant) -> PlannedAction:
        if not actor.can_act or actor.actions_remaining < 1:
            return PlannedAction(PlanKind.END_TURN, reason="cannot act")
        if actor.morale.status == MoraleStatus.SURRENDERED:
            return PlannedAction(PlanKind.END_TURN, reason="surrendered")
        view = engine.world_view(actor.side)

        # --- Flight phase ---
        if actor.morale.status == MoraleStatus.ROUTED:
            return self._plan_flee(engine, actor, view)
        if actor.has_status(StatusEffect.FLEEING):
            return self._plan_retreat(engine, actor, view)

        # --- Morale phase ---
        if (actor.hp_ratio < self.config["morale_hp_threshold"] and not is_fear_immune(actor)
                and actor.morale.last_check_round != engine.round):
            return self._plan(engine, PlannedAction(PlanKind.MORALE, reason=f"HP at {actor.hp_ratio:.0%}"))

        # --- Grapple phase ---
        if not actor.grapple.is_neutral:
            plan = self._plan_grapple(engine, actor)
            if plan is not None:
                return self._plan(engine, plan)

        # --- Support phase ---
        plan = self._plan_heal(engine, actor, view)
        if plan is not None:
            return self._plan(engine, plan)

        if (self.config["rest_when_spent"] and not actor.fatigue.rested_this_round
                and actor.fatigue.status in (FatigueStatus.COLLAPSE_RISK, FatigueStatus.EXHAUSTED)):
            return self._plan(engine, PlannedAction(PlanKind.REST, reason=f"fatigue {actor.fatigue.status.value}"))

        # --- Target phase ---
        target = self.pick_target(engine, actor, view)
        if target is None:
            return PlannedAction(PlanKind.END_TURN, reason="no reachable foe")

        # --- Offense phase ---
        spell = self.choose_spell(engine, actor, target)
        if spell is not None:
            return self._plan(engine, PlannedAction(PlanKind.CAST, target.id, spell=spell.name,
                                                    reason=f"{spell.name} on {target.name}"))

        weapon = self.choose_weapon(engine, actor, target)
        rc = check_range(engine.tactical_map, actor, target, weapon)
        if rc.in_range:
            if self._should_grapple(engine, actor, target, weapon):
                return self._plan(engine, PlannedAction(PlanKind.GRAPPLE, target.id, mode="attempt",
                                                        reason=f"overpowering {target.name}"))
            return self._plan(engine, PlannedAction(PlanKind.ATTACK, target.id, weapon=weapon, attack=weapon.describe(),
                                                    reason=f"{weapon.name} at {target.name} ({rc.distance_ft}ft)"))
        if rc.requires_dive:
            return self._plan(engine, PlannedAction(PlanKind.DIVE, target.id, weapon=weapon, attack=weapon.describe(),
                                                    reason=f"dive on {target.name} from {actor.altitude}ft"))

        # --- Movement phase ---
        if self._should_prowl(engine, actor):
            return self._plan(engine, PlannedAction(PlanKind.PROWL, reason=f"prowl ({actor.prowl}%) toward {target.name}"))
        if self._should_hold(engine, actor, target, weapon):
            return self._plan(engine, PlannedAction(PlanKind.HOLD, target.id, weapon=weapon,
                                                    reason=f"wait for {target.name} to close"))
        return self._plan(engine, self._plan_approach(engine, actor, target, weapon))

    def execute(self, engine: CombatEngine, actor: Combatant, plan: PlannedAction) -> Any:
        target = engine.get(plan.target_id) if plan.target_id else None
        kind = plan.kind
        if kind == PlanKind.ATTACK:
            return engine.attack(actor, target, plan.weapon)
        if kind == PlanKind.DIVE:
            return engine.attack(actor, target, plan.weapon, AttackModifiers(dive=True))
        if kind in (PlanKind.CAST, PlanKind.HEAL):
            return engine.cast_spell(actor, target, plan.spell)
        if kind == PlanKind.CHARGE:
            return engine.charge(actor, target, plan.weapon)
        if kind == PlanKind.MOVE:
            return engine.move_to(actor, *plan.destination, mode=plan.mode)
        if kind == PlanKind.TAKE_OFF:
            return engine.take_off(actor)
        if kind == PlanKind.CLIMB:
            return engine.change_altitude(actor, plan.altitude_delta)
        if kind == PlanKind.MORALE:
            return engine.morale_check(actor, reason="low_hp")
        if kind == PlanKind.REST:
            return engine.rest(actor)
        if kind == PlanKind.HOLD:
            return engine.hold_action(actor, plan.weapon)
        if kind == PlanKind.PROWL:
            self._prowled.add((engine.encounter_id, actor.id))
            return engine.prowl(actor)
        if kind == PlanKind.GRAPPLE:
            if plan.mode == "attempt":
                return engine.attempt_grapple(actor, target)
            return engine.grapple_action(actor, plan.mode)
        if kind == PlanKind.FLEE:
            if plan.destination is None:
                return engine.flee_off_map(actor)
            moved = engine.move_to(actor, *plan.destination, mode="run")
            if moved and engine.tactical_map.is_edge(*plan.destination):
                return engine.flee_off_map(actor)
            return moved
        return None

    # ------------------------------------------------------------------
    # Fleeing
    # ------------------------------------------------------------------

    def _plan_flee(self, engine: CombatEngine, actor: Combatant, view: WorldView) -> PlannedAction:
        tmap = engine.tactical_map
        if tmap is None or actor.position is None:
            return self._plan(engine, PlannedAction(PlanKind.FLEE, reason="no map: leaves the fight"))
        if not actor.grapple.is_neutral:
            return self._plan(engine, PlannedAction(PlanKind.GRAPPLE, actor.grapple.opponent_id, mode="escape",
                                                    reason="held while fleeing"))
        start = actor.position.cell
        threats = view.threat_cells()
        if tmap.is_edge(*start):
            return self._plan(engine, PlannedAction(PlanKind.FLEE, reason="at the edge: leaves the map"))

        def threat_free(cell: Cell) -> bool:
            return all(tmap.distance(cell, t) > 1 for t in threats)

        steps = tmap.steps_within(start, engine.rules.flee_step_budget, actor)
        options = [cell for cell in steps if cell != start and threat_free(cell)]
        if not options:
            return self._plan(engine, PlannedAction(PlanKind.FLEE, reason="boxed in: slips away off the map"))

        def nearest_threat(cell: Cell) -> int:
            return min((tmap.distance(cell, t) for t in threats), default=99)

        best = max(options, key=lambda c: (tmap.is_edge(*c), nearest_threat(c), -steps[c], c))
        return self._plan(engine, PlannedAction(PlanKind.FLEE, destination=best,
                                                reason=f"retreats toward {best}"))

    def _plan_retreat(self, engine: CombatEngine, actor: Combatant, view: WorldView) -> PlannedAction:
        """Terror without a broken spirit: back away from threats but stay on the field."""
        tmap = engine.tactical_map
        if tmap is None or actor.position is None:
            return self._plan(engine, PlannedAction(PlanKind.REST, reason="cowers in terror"))
        if not actor.grapple.is_neutral:
            return self._plan(engine, PlannedAction(PlanKind.GRAPPLE, actor.grapple.opponent_id, mode="escape",
                                                    reason="held while terrified"))
        start = actor.position.cell
        threats = view.threat_cells()

        def nearest_threat(cell: Cell) -> int:
            return min((tmap.distance(cell, t) for t in threats), default=99)

        steps = tmap.steps_within(start, engine.rules.flee_step_budget, actor)
        options = [cell for cell in steps if cell != start and nearest_threat(cell) > max(1, nearest_threat(start))]
        if not options:
            return self._plan(engine, PlannedAction(PlanKind.REST, reason="cowers in terror"))
        best = max(options, key=lambda c: (nearest_threat(c), -steps[c], c))
        return self._plan(engine, PlannedAction(PlanKind.MOVE, destination=best, mode="run",
                                                reason=f"backs away to {best}"))

    # ------------------------------------------------------------------
    # Grappling
    # ------------------------------------------------------------------

    def _plan_grapple(self, engine: CombatEngine, actor: Combatant) -> Optional[PlannedAction]:
        g = actor.grapple
        opponent_id = g.opponent_id
        if g.role == GrappleRole.DEFENDER:
            mode = "reversal" if self.config["try_reversal"] and g.status == GrappleStatus.CLINCH else "escape"
            if g.status == GrappleStatus.CLINCH and not self.config["try_reversal"]:
                mode = "push_off"
            return PlannedAction(PlanKind.GRAPPLE, opponent_id, mode=mode, reason=f"{mode} from {g.status.value}")
        if g.status == GrappleStatus.CLINCH:
            return PlannedAction(PlanKind.GRAPPLE, opponent_id, mode="takedown", reason="take the clinch to the ground")
        if g.status == GrappleStatus.GROUND:
            return PlannedAction(PlanKind.GRAPPLE, opponent_id, mode="pin", reason="pin the downed foe")
        # Pinning: strike with whatever short weapon is allowed.
        return None

    def _should_grapple(self, engine: CombatEngine, actor: Combatant, target: Combatant, weapon: Weapon) -> bool:
        if not self.config["grapple_weaker"] or weapon.is_ranged:
            return False
        if not actor.grapple.is_neutral or not target.grapple.is_neutral:
            return False
        if actor.is_flying or target.is_flying:
            return False
        return actor.attributes.ps - target.attributes.ps >= engine.rules.grapple_auto_ps_gap

    # ------------------------------------------------------------------
    # Support
    # ------------------------------------------------------------------

    def _plan_heal(self, engine: CombatEngine, actor: Combatant, view: WorldView) -> Optional[PlannedAction]:
        if actor.cast_this_round:
            return None
        heals = [p for p in actor.known_powers()
                 if (p.is_healing or p.stops_bleeding)
                 and actor.resource_for(p.source) >= p.cost and p.actions_required <= actor.actions_remaining]
        # Stanch the bleeding before topping up hit points.
        heals.sort(key=lambda p: not p.stops_bleeding)
        if not heals:
            return None
        threshold = max(self.config["heal_ally_ratio"], engine.rules.critical_ally_ratio)
        wounded = []
        for ally_view in view.allies:
            ally = engine.get(ally_view.id)
            if ally is None or not ally.is_alive or ally.fled or ally.hp_ratio >= threshold:
                continue
            wounded.append(ally)
        wounded.sort(key=lambda a: (a.hp_ratio, a.id))
        for ally in wounded:
            for power in heals:
                if power.stops_bleeding and not ally.has_status(StatusEffect.BLEEDING):
                    continue
                if self._power_reaches(engine, actor, ally, power):
                    what = "is bleeding out" if power.stops_bleeding else f"is at {ally.hp_ratio:.0%}"
                    return PlannedAction(PlanKind.HEAL, ally.id, spell=power.name, reason=f"{ally.name} {what}")
        return None

    # ------------------------------------------------------------------
    # Target selection
    # ------------------------------------------------------------------

    def pick_target(self, engine: CombatEngine, actor: Combatant, view: WorldView) -> Optional[Combatant]:
        candidates = []
        for enemy_view in view.enemies:
            enemy = engine.get(enemy_view.id)
            if enemy is None or not enemy.in_fight:
                continue
            if not self._can_reach(actor, enemy):
                continue
            candidates.append(enemy)
        if not candidates:
            return None
        if self.strategy == "random":
            return self.rng.choice(candidates)
        if actor.grapple.status == GrappleStatus.GRAPPLED and actor.grapple.role == GrappleRole.ATTACKER:
            held = engine.get(actor.grapple.opponent_id)
            if held in candidates:
                return held
        return min(candidates, key=lambda e: (
            round(e.hp_ratio, 2),
            e.armor_rating,
            self._distance(engine, actor, e),
            -self._flankers(engine, actor, e),
            e.id,
        ))

    def _can_reach(self, actor: Combatant, enemy: Combatant) -> bool:
        if not enemy.is_flying or actor.is_flying or actor.can_fly or actor.flight.granted:
            return True
        if any(w.is_ranged and has_ammo_for(actor, w) for w in actor.weapons):
            return True
        return any(p.is_offensive and actor.resource_for(p.source) >= p.cost for p in actor.known_powers())

    @staticmethod
    def _distance(engine: CombatEngine, a: Combatant, b: Combatant) -> int:
        if engine.tactical_map is None or a.position is None or b.position is None:
            return 0
        return engine.tactical_map.distance_3d_ft(a.position, b.position)

    @staticmethod
    def _flankers(engine: CombatEngine, actor: Combatant, target: Combatant) -> int:
        tmap = engine.tactical_map
        if tmap is None or target.position is None:
            return 0
        count = 0
        for cell in tmap.get_neighbors(*target.position.cell):
            occupant = tmap.occupant_at(*cell)
            if occupant is not None and occupant is not actor and occupant.side == actor.side and occupant.in_fight:
                count += 1
        return count

    # ------------------------------------------------------------------
    # Spells and weapons
    # ------------------------------------------------------------------

    def choose_spell(self, engine: CombatEngine, actor: Combatant, target: Combatant) -> Optional[Spell]:
        """Best offensive power that can land right now, or None to fall back on a strike."""
        if not self.config["prefer_spells"] or actor.cast_this_round:
            return None
        memory = actor.memory
        if memory.spell_failures(target.id) >= engine.rules.spell_failure_limit:
            self._log(engine, f"{actor.name}: spells keep failing on {target.name}, using weapons")
            return None
        options = []
        for power in actor.known_powers():
            if not power.is_offensive or power.actions_required > actor.actions_remaining:
                continue
            if actor.resource_for(power.source) < power.cost:
                continue
            if power.damage and memory.is_known_immune(target.id, power.damage_type):
                continue
            if power.status_effect is not None and not power.damage:
                if target.has_status(power.status_effect):
                    continue
                if power.status_effect == StatusEffect.FRIGHTENED and is_fear_immune(target):
                    continue
            if not self._power_reaches(engine, actor, target, power):
                continue
            options.append(power)
        if not options:
            return None
        return max(options, key=lambda p: (self.average_damage(p.damage) if p.damage else 0.5, -p.cost, p.name))

    @staticmethod
    def _power_reaches(engine: CombatEngine, actor: Combatant, target: Combatant, power: Spell) -> bool:
        if target is actor:
            return True
        tmap = engine.tactical_map
        if tmap is None or actor.position is None or target.position is None:
            return True
        if tmap.distance_3d_ft(actor.position, target.position) > power.range_ft:
            return False
        return tmap.has_line_of_sight(actor.position.cell, target.position.cell)

    def choose_weapon(self, engine: CombatEngine, actor: Combatant, target: Combatant) -> Weapon:
        """Highest expected damage among weapons that reach; otherwise the default pick."""
        max_len = engine.rules.grapple_weapon_max_length
        default = effective_weapon(actor, None, max_len)
        best, best_value = None, -1.0
        for carried in actor.weapons:
            weapon = effective_weapon(actor, carried, max_len)
            if not has_ammo_for(actor, weapon):
                continue
            if not check_range(engine.tactical_map, actor, target, weapon).in_range:
                continue
            value = self.expected_attack_value(actor, target, weapon)
            if value > best_value:
                best, best_value = weapon, value
        return best or default

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------

    def _plan_approach(self, engine: CombatEngine, actor: Combatant, target: Combatant,
                       weapon: Weapon) -> PlannedAction:
        tmap = engine.tactical_map
        if target.is_flying and not actor.is_flying and (actor.can_fly or actor.flight.granted) and not weapon.is_ranged:
            return PlannedAction(PlanKind.TAKE_OFF, target.id, reason=f"{target.name} is airborne")
        if tmap is None or actor.position is None or target.position is None:
            return PlannedAction(PlanKind.END_TURN, reason="nothing to close on")
        horizontal = tmap.distance_ft(actor.position.cell, target.position.cell)
        if actor.is_flying and horizontal <= weapon.max_range_ft and actor.altitude < target.altitude:
            return PlannedAction(PlanKind.CLIMB, target.id, altitude_delta=target.altitude - actor.altitude,
                                 reason=f"climb to {target.name}")

        goal = target.position.cell
        reachable = tmap.get_reachable_tiles(*actor.position.cell, actor.speed * 2, actor)
        reachable.pop(actor.position.cell, None)
        if not reachable:
            return PlannedAction(PlanKind.END_TURN, reason="no room to move")

        if weapon.is_ranged:
            shooting = [c for c in reachable
                        if tmap.distance_ft(c, goal) <= weapon.range_ft and tmap.has_line_of_sight(c, goal)]
            if shooting:
                dest = min(shooting, key=lambda c: (reachable[c], c))
                return self._move_plan(actor, dest, reachable[dest], f"firing position {dest}")

        dest = min(reachable, key=lambda c: (tmap.distance(c, goal), reachable[c], c))
        if tmap.distance(dest, goal) >= tmap.distance(actor.position.cell, goal):
            return PlannedAction(PlanKind.END_TURN, reason=f"no way closer to {target.name}")
        start_gap = tmap.distance(actor.position.cell, goal)
        if (self.config["charge"] and not weapon.is_ranged and tmap.distance(dest, goal) == 1
                and start_gap >= engine.rules.charge_min_cells and not actor.is_flying):
            return PlannedAction(PlanKind.CHARGE, target.id, weapon=weapon, attack=weapon.describe(),
                                 reason=f"charge {target.name}")
        return self._move_plan(actor, dest, reachable[dest], f"close on {target.name}")

    def _should_prowl(self, engine: CombatEngine, actor: Combatant) -> bool:
        if actor.prowl <= 0 or is_hidden(actor):
            return False
        return (engine.encounter_id, actor.id) not in self._prowled

    def _should_hold(self, engine: CombatEngine, actor: Combatant, target: Combatant, weapon: Weapon) -> bool:
        """Hold ground when the foe can close the gap on its own this turn."""
        if not self.config["hold_ground"] or weapon.is_ranged or actor.id in engine.holds:
            return False
        tmap = engine.tactical_map
        if tmap is None or actor.position is None or target.position is None or target.is_flying:
            return False
        return tmap.distance(actor.position.cell, target.position.cell) - 1 <= target.speed * 2

    @staticmethod
    def _move_plan(actor: Combatant, dest: Cell, cost: int, reason: str) -> PlannedAction:
        mode = "move" if cost <= actor.speed else "run"
        return PlannedAction(PlanKind.MOVE, destination=dest, mode=mode, reason=reason)

    # ==================================================================
    # Expected-value math (public for testability)
    # ==================================================================

    @staticmethod
    def prob_d20_at_least(threshold: int) -> float:
        """Chance that a d20 strike meets *threshold*; 20 always hits, 1 always misses."""
        needed = max(2, min(20, threshold))
        return (21 - needed) / 20.0

    @staticmethod
    def average_damage(expression: Optional[str]) -> float:
        if not expression:
            return 0.0
        count, sides, multiplier, modifier = parse_expression(expression)
        return count * (sides + 1) / 2.0 * multiplier + modifier

    @staticmethod
    def expected_attack_value(attacker: Combatant, defender: Combatant, weapon: Weapon) -> float:
        """Expected damage per strike before the defender's parry or dodge."""
        bonus = attacker.strike_bonus + weapon.strike_bonus
        p_hit = CombatAI.prob_d20_at_least(defender.armor_rating - bonus)
        damage = CombatAI.average_damage(weapon.damage)
        if weapon.kind != AttackKind.RANGED:
            damage += attacker.damage_bonus
        if weapon.damage_type in defender.immunities:
            damage = 0.0
        elif weapon.damage_type in defender.resistances:
            damage /= 2
        return p_hit * max(0.0, damage)

    # ==================================================================
    # Misc helpers
    # ==================================================================

    def _plan(self, engine: CombatEngine, plan: PlannedAction) -> PlannedAction:
        self._log(engine, f"Decision: {plan.kind.value} ({plan.reason})")
        return plan

    def _log(self, engine: CombatEngine, message: str) -> None:
        logger.debug(message)
        if self.show_decisions:
            self.decision_log.append(message)
            engine.log(message, Severity.INFO)
