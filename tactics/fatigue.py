from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .config import DEFAULT_RULES, RulesConfig
from .enums import FatigueStatus

if TYPE_CHECKING:
    from .combatant import Combatant
    from .dice import DiceRoller

logger = logging.getLogger(__name__)


@dataclass
class FatigueState:
    max_stamina: float = 20.0
    stamina: float = 20.0
    status: FatigueStatus = FatigueStatus.READY
    collapse_rounds: int = 0
    rested_this_round: bool = False

    def reset(self, max_stamina: float) -> None:
        self.max_stamina = max_stamina
        self.stamina = max_stamina
        self.status = FatigueStatus.READY
        self.collapse_rounds = 0
        self.rested_this_round = False


def initialize(character: "Combatant", rules: RulesConfig = DEFAULT_RULES) -> None:
    character.fatigue.reset(float(character.attributes.pe * rules.stamina_per_pe))


def update_status(character: "Combatant", rules: RulesConfig = DEFAULT_RULES) -> FatigueStatus:
    f = character.fatigue
    if f.status == FatigueStatus.COLLAPSED:
        return f.status
    if f.status == FatigueStatus.EXHAUSTED and f.stamina <= 0:
        return f.status
    if f.stamina > 0:
        f.status = FatigueStatus.READY
    elif f.stamina <= rules.collapse_threshold:
        f.status = FatigueStatus.COLLAPSE_RISK
    else:
        f.status = FatigueStatus.TIRED
    return f.status


def penalty(character: "Combatant", rules: RulesConfig = DEFAULT_RULES) -> int:
    """Amount subtracted from strike, parry and dodge rolls."""
    f = character.fatigue
    if f.status in (FatigueStatus.COLLAPSE_RISK, FatigueStatus.COLLAPSED, FatigueStatus.EXHAUSTED):
        return rules.collapse_penalty
    if f.status == FatigueStatus.READY:
        return 0
    result = 0
    for threshold, amount in rules.fatigue_bands:
        if f.stamina <= threshold:
            result = amount
    return result


def drain_stamina(character: "Combatant", action: str, rules: RulesConfig = DEFAULT_RULES,
                  rounds: float = 1.0) -> float:
    cost = rules.stamina_costs.get(action, rules.stamina_costs["combat"]) * rounds
    character.fatigue.stamina -= cost
    update_status(character, rules)
    return cost


def recover(character: "Combatant", rest: str = "light", rules: RulesConfig = DEFAULT_RULES) -> float:
    f = character.fatigue
    gained = min(rules.recovery_rates.get(rest, 1.0), f.max_stamina - f.stamina)
    f.stamina += max(0.0, gained)
    f.rested_this_round = True
    if f.status == FatigueStatus.EXHAUSTED and f.stamina > 0:
        f.status = FatigueStatus.READY
    update_status(character, rules)
    return gained


def tick_round(character: "Combatant", dice: "DiceRoller", rules: RulesConfig = DEFAULT_RULES) -> Optional[str]:
    """Advance the fatigue machine by one melee round. Returns a log line on a change."""
    f = character.fatigue
    f.rested_this_round = False
    if f.status == FatigueStatus.COLLAPSED:
        f.collapse_rounds -= 1
        if f.collapse_rounds <= 0:
            f.collapse_rounds = 0
            f.status = FatigueStatus.EXHAUSTED
            update_status(character, rules)
            return f"{character.name} staggers back up, exhausted."
        return None
    if f.status != FatigueStatus.COLLAPSE_RISK:
        return None
    band_penalty = 0
    for threshold, amount in rules.fatigue_bands:
        if f.stamina <= threshold:
            band_penalty = amount
    target = max(1, character.attributes.pe - band_penalty)
    roll = dice.d20()
    if roll > target:
        f.status = FatigueStatus.COLLAPSED
        f.collapse_rounds = dice.roll("1d4").total
        f.stamina = max(f.stamina, float(rules.fatigue_bands[-1][0]))
        logger.debug("%s collapse roll %d vs %d", character.name, roll, target)
        return f"{character.name} collapses from exhaustion for {f.collapse_rounds} melee round(s)!"
    return None
