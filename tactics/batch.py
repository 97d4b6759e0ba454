"""
Batch simulation runner.

Run N encounters with the same setup and collect statistics.

Usage:
    from tactics.batch import BatchRunner, BatchConfig, BatchResult

    config = BatchConfig(
        combatants_factory=lambda: [knight(), orc()],
        map_factory=lambda cs: build_map(cs),
        num_combats=1000,
        strategy="balanced",
    )
    result = BatchRunner.run(config, progress_callback=lambda i, n: ...)
    print(result.summary())
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .ai import CombatAI
from .combatant import Combatant
from .config import RulesConfig
from .dice import DiceRoller
from .engine import CombatEngine
from .enums import Outcome, Side
from .map import TacticalMap

logger = logging.getLogger(__name__)


@dataclass
class BatchConfig:
    """Configuration for a batch of encounters.

    Parameters
    ----------
    combatants_factory : callable
        Returns a fresh list of Combatant for each encounter.
    map_factory : callable or None
        Given the combatant list, returns a TacticalMap (or None).
    num_combats : int
        How many encounters to run.
    turn_limit : int
        Max turns per encounter (safety valve); hitting it scores a draw.
    strategy : str
        AI strategy for the ally side ("balanced", "aggressive", "defensive", "random").
    enemy_strategy : str or None
        AI strategy for the enemy side; defaults to *strategy*.
    seed : int or None
        Base seed; encounter *i* rolls with ``seed + i``.
    rules : RulesConfig or None
        Rules overrides shared by every encounter.
    """

    combatants_factory: Callable[[], List[Combatant]] = field(default=lambda: [])
    map_factory: Optional[Callable[[List[Combatant]], Optional[TacticalMap]]] = None
    num_combats: int = 100
    turn_limit: int = 500
    strategy: str = "balanced"
    enemy_strategy: Optional[str] = None
    seed: Optional[int] = None
    rules: Optional[RulesConfig] = None


@dataclass
class CombatRecord:
    """Stats for a single completed encounter."""
    outcome: Outcome = Outcome.DRAW
    rounds: int = 0
    turns: int = 0
    truncated: bool = False
    total_damage: Dict[str, float] = field(default_factory=dict)
    survivor_hp: Dict[str, int] = field(default_factory=dict)
    fled: int = 0
    watchdog_trips: int = 0


@dataclass
class BatchResult:
    """Aggregated statistics from a batch run."""
    records: List[CombatRecord] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def num_combats(self) -> int:
        return len(self.records)

    def outcome_counts(self) -> Dict[Outcome, int]:
        counts: Dict[Outcome, int] = {o: 0 for o in Outcome}
        for r in self.records:
            counts[r.outcome] += 1
        return counts

    def outcome_rates(self) -> Dict[Outcome, float]:
        n = max(1, self.num_combats)
        return {k: v / n for k, v in self.outcome_counts().items()}

    def avg_rounds(self) -> float:
        if not self.records:
            return 0.0
        return sum(r.rounds for r in self.records) / len(self.records)

    def avg_damage_by_side(self) -> Dict[str, float]:
        totals: Dict[str, float] = {}
        counts: Dict[str, int] = {}
        for r in self.records:
            for side, dmg in r.total_damage.items():
                totals[side] = totals.get(side, 0.0) + dmg
                counts[side] = counts.get(side, 0) + 1
        return {side: totals[side] / max(1, counts[side]) for side in totals}

    def draws(self) -> int:
        return self.outcome_counts()[Outcome.DRAW]

    def truncated(self) -> int:
        return sum(1 for r in self.records if r.truncated)

    def summary(self) -> str:
        lines = [
            f"=== Batch Result: {self.num_combats} combats ===",
            f"Elapsed: {self.elapsed_seconds:.2f}s",
            f"Average rounds: {self.avg_rounds():.1f}",
        ]
        counts = self.outcome_counts()
        rates = self.outcome_rates()
        for outcome in (Outcome.VICTORY, Outcome.DEFEAT, Outcome.DRAW):
            lines.append(f"  {outcome.value}: {rates[outcome] * 100:.1f}% ({counts[outcome]})")
        cut = self.truncated()
        if cut:
            lines.append(f"  Hit the turn limit: {cut}")
        avg_dmg = self.avg_damage_by_side()
        if avg_dmg:
            lines.append("Average damage dealt per combat:")
            for side in sorted(avg_dmg):
                lines.append(f"  {side}: {avg_dmg[side]:.1f}")
        return "\n".join(lines)


class BatchRunner:
    """Runs multiple encounters and collects statistics."""

    @staticmethod
    def run(
        config: BatchConfig,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> BatchResult:
        result = BatchResult()
        t0 = time.time()

        for i in range(config.num_combats):
            combatants = config.combatants_factory()
            tmap = config.map_factory(combatants) if config.map_factory else None
            dice = DiceRoller(seed=None if config.seed is None else config.seed + i)
            record = BatchRunner.run_single(combatants, tmap, config, dice)
            result.records.append(record)
            if progress_callback:
                progress_callback(i + 1, config.num_combats)

        result.elapsed_seconds = time.time() - t0
        logger.info("batch of %d finished in %.2fs", result.num_combats, result.elapsed_seconds)
        return result

    @staticmethod
    def run_single(
        combatants: List[Combatant],
        tmap: Optional[TacticalMap],
        config: BatchConfig,
        dice: Optional[DiceRoller] = None,
    ) -> CombatRecord:
        engine = CombatEngine(combatants, tactical_map=tmap, dice=dice, rules=config.rules)
        engine.event_log.forward = False
        ais = {
            Side.ALLY: CombatAI(strategy=config.strategy, show_decisions=False),
            Side.ENEMY: CombatAI(strategy=config.enemy_strategy or config.strategy, show_decisions=False),
        }

        engine.start_combat()
        # Track starting HP for damage calculation
        start_hp = {c.id: c.current_hp for c in combatants}

        record = CombatRecord()
        while not engine.is_combat_ended() and record.turns < config.turn_limit:
            current = engine.current_actor()
            if current is None:
                break
            ais[current.side].take_turn(engine, current)
            record.turns += 1

        record.rounds = engine.round
        if engine.outcome is None:
            record.truncated = True
            record.outcome = Outcome.DRAW
        else:
            record.outcome = engine.outcome

        # Damage dealt BY each side = total HP lost by the other side
        lost: Dict[str, float] = {}
        for c in combatants:
            key = c.side.value
            lost[key] = lost.get(key, 0.0) + max(0, start_hp[c.id] - c.current_hp)
            if c.in_fight:
                record.survivor_hp[key] = record.survivor_hp.get(key, 0) + c.current_hp
        for side in Side:
            record.total_damage[side.value] = lost.get(side.opponent().value, 0.0)

        record.fled = sum(1 for c in combatants if c.fled)
        record.watchdog_trips = sum(ai.watchdog_trips for ai in ais.values())
        return record
