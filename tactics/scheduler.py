"""
Turn scheduler.

Combatants act in initiative order, one action per turn, cycling through
the order until nobody has actions left; then a new melee round starts.

States:
    Idle -> ActorTurn(id) <-> RoundTransition -> CombatEnded(outcome)

Only one advance may be in flight at a time. A second ``end_turn`` issued
while the first is still running (for example from a round hook) raises
``TurnAdvanceWhileLocked``. Once combat has ended every ``spend_action``
and ``end_turn`` is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Set

from .config import DEFAULT_RULES, RulesConfig
from .enums import Outcome, RoundEventKind, SchedulerState
from .errors import CombatEndedError, TurnAdvanceWhileLocked, ValidationError, ValidationReason

if TYPE_CHECKING:
    from .combatant import Combatant
    from .dice import DiceRoller

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoundEvent:
    kind: RoundEventKind
    round: int
    actor_id: Optional[str] = None
    outcome: Optional[Outcome] = None


class TurnScheduler:
    def __init__(self, dice: "DiceRoller", rules: RulesConfig = DEFAULT_RULES):
        self.dice = dice
        self.rules = rules
        self.order: List["Combatant"] = []
        self.initiative: Dict[str, int] = {}
        self.index = 0
        self.round = 0
        self.state = SchedulerState.IDLE
        self.outcome: Optional[Outcome] = None
        self.processed: Set[str] = set()
        self.round_hooks: List[Callable[[int], None]] = []
        self.stalemate_check: Optional[Callable[[], bool]] = None
        self._locked = False

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def roll_initiative(self, combatants: List["Combatant"]) -> List["Combatant"]:
        self.initiative = {}
        for c in combatants:
            self.initiative[c.id] = self.dice.d20() + c.initiative_bonus
        self.order = sorted(
            combatants,
            key=lambda c: (-self.initiative[c.id], -c.attributes.pp, c.id),
        )
        return self.order

    def start(self, combatants: List["Combatant"]) -> Optional[RoundEvent]:
        self.processed.clear()
        self.outcome = None
        self.round = 1
        self.index = 0
        self.roll_initiative(combatants)
        for c in self.order:
            if c.is_alive and not c.fled:
                c.restore_actions()
            else:
                c.set_actions(0)
        found = self._find_actor(0)
        if found is not None:
            self.index = found
            self.state = SchedulerState.ACTOR_TURN
            return RoundEvent(RoundEventKind.NEXT_ACTOR, self.round, self.order[found].id)
        self._locked = True
        try:
            return self._new_round()
        finally:
            self._locked = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def ended(self) -> bool:
        return self.state == SchedulerState.COMBAT_ENDED

    @property
    def locked(self) -> bool:
        return self._locked

    def ensure_active(self) -> None:
        if self.ended:
            raise CombatEndedError("Combat has ended")

    def current_actor(self) -> Optional["Combatant"]:
        if self.state != SchedulerState.ACTOR_TURN or not self.order:
            return None
        return self.order[self.index]

    def mark_processed(self, key: str) -> bool:
        """Record an effect id. False when it was already applied."""
        if key in self.processed:
            return False
        self.processed.add(key)
        return True

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def spend_action(self, actor: "Combatant", cost: int = 1) -> bool:
        if self.ended:
            return False
        if cost < 0:
            raise ValueError("Action cost cannot be negative")
        if actor.actions_remaining < cost:
            raise ValidationError(ValidationReason.NO_ACTIONS,
                                  f"{actor.name} has {actor.actions_remaining} action(s), needs {cost}")
        actor.spend_actions(cost)
        return True

    def end_turn(self) -> Optional[RoundEvent]:
        if self.ended:
            return None
        if self._locked:
            raise TurnAdvanceWhileLocked("end_turn requested while a turn advance is in flight")
        self._locked = True
        try:
            found = self._find_actor(self.index + 1)
            if found is not None:
                self.index = found
                self.state = SchedulerState.ACTOR_TURN
                return RoundEvent(RoundEventKind.NEXT_ACTOR, self.round, self.order[found].id)
            return self._new_round()
        finally:
            self._locked = False

    def end_combat(self, outcome: Outcome) -> RoundEvent:
        if not self.ended:
            self.state = SchedulerState.COMBAT_ENDED
            self.outcome = outcome
            logger.info("combat ended: %s after %d round(s)", outcome.value, self.round)
        return RoundEvent(RoundEventKind.COMBAT_ENDED, self.round, outcome=self.outcome)

    def remove(self, combatant: "Combatant") -> None:
        """Zero a combatant's budget so the order skips it from now on."""
        combatant.set_actions(0)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _can_take_turn(self, c: "Combatant") -> bool:
        return c.can_act and c.actions_remaining > 0

    def _find_actor(self, start: int) -> Optional[int]:
        n = len(self.order)
        for offset in range(n):
            i = (start + offset) % n
            if self._can_take_turn(self.order[i]):
                return i
        return None

    def _new_round(self) -> RoundEvent:
        self.state = SchedulerState.ROUND_TRANSITION
        idle_rounds = 0
        while True:
            self.round += 1
            for c in self.order:
                if c.is_alive and not c.fled:
                    c.restore_actions()
                    c.cast_this_round = False
                else:
                    c.set_actions(0)
            for hook in list(self.round_hooks):
                hook(self.round)
                if self.ended:
                    return RoundEvent(RoundEventKind.COMBAT_ENDED, self.round, outcome=self.outcome)
            if self.stalemate_check is not None and self.stalemate_check():
                return self.end_combat(Outcome.DRAW)
            if self.round > self.rules.round_cap:
                return self.end_combat(Outcome.DRAW)
            found = self._find_actor(0)
            if found is not None:
                self.index = found
                self.state = SchedulerState.ACTOR_TURN
                return RoundEvent(RoundEventKind.NEW_ROUND, self.round, self.order[found].id)
            idle_rounds += 1
            if idle_rounds > self.rules.max_idle_rounds:
                return self.end_combat(Outcome.DRAW)
