"""
Morale state machine.

    Steady --fail--> Shaken --fail--> Routed | Surrendered
       ^               |
       +----pass-------+

Checks are roll-under: a d20 at or below the morale target passes.
Fear-immune fighters always pass and can never leave Steady.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .config import DEFAULT_RULES, RulesConfig
from .enums import MoraleStatus

if TYPE_CHECKING:
    from .combatant import Combatant
    from .dice import DiceRoller

logger = logging.getLogger(__name__)

_MARTIAL = re.compile(r"knight|paladin|soldier|men-at-arms", re.IGNORECASE)

FEAR_IMMUNE_KINDS = {"undead", "demon", "devil", "construct"}


@dataclass
class MoraleState:
    status: MoraleStatus = MoraleStatus.STEADY
    failed_checks: int = 0
    last_check_round: Optional[int] = None
    last_reason: Optional[str] = None

    @property
    def is_broken(self) -> bool:
        return self.status in (MoraleStatus.ROUTED, MoraleStatus.SURRENDERED)

    def reset(self) -> None:
        self.status = MoraleStatus.STEADY
        self.failed_checks = 0
        self.last_check_round = None
        self.last_reason = None


@dataclass
class MoraleContext:
    reason: str = "generic"
    hp_ratio: float = 1.0
    allies_down_ratio: float = 0.0
    horror_failed: bool = False
    big_pain_hit: bool = False


@dataclass
class MoraleCheckResult:
    passed: bool
    status: MoraleStatus
    roll: int = 0
    target: int = 0
    skipped: bool = False
    message: str = ""


def is_fear_immune(character: "Combatant") -> bool:
    return character.fear_immune or character.creature_kind.lower() in FEAR_IMMUNE_KINDS


def base_morale(character: "Combatant", rules: RulesConfig = DEFAULT_RULES) -> int:
    raw = character.attributes.me + character.level // 2
    return max(rules.morale_min, min(rules.morale_max, raw))


def morale_target(character: "Combatant", context: MoraleContext, rules: RulesConfig = DEFAULT_RULES) -> int:
    target = base_morale(character, rules)
    for ratio, amount in rules.morale_hp_steps:
        if context.hp_ratio <= ratio:
            target -= amount
    for ratio, amount in rules.morale_allies_down_steps:
        if context.allies_down_ratio >= ratio:
            target -= amount
    if context.horror_failed:
        target -= rules.morale_horror_penalty
    if context.big_pain_hit:
        target -= rules.morale_pain_penalty
    if _MARTIAL.search(character.occupation or ""):
        target += rules.morale_martial_bonus
    return target


def check_morale(character: "Combatant", dice: "DiceRoller", context: MoraleContext,
                 round_number: int = 0, force: bool = False,
                 rules: RulesConfig = DEFAULT_RULES) -> MoraleCheckResult:
    state = character.morale
    if is_fear_immune(character):
        state.status = MoraleStatus.STEADY
        state.failed_checks = 0
        state.last_check_round = round_number
        return MoraleCheckResult(True, state.status, message=f"{character.name} is fearless and ignores the morale check.")
    if state.is_broken:
        return MoraleCheckResult(False, state.status, skipped=True)
    if not force and state.last_check_round == round_number:
        return MoraleCheckResult(True, state.status, skipped=True)

    target = morale_target(character, context, rules)
    roll = dice.d20()
    passed = roll <= target
    state.last_check_round = round_number
    state.last_reason = context.reason

    if passed:
        if state.status == MoraleStatus.SHAKEN:
            state.status = MoraleStatus.STEADY
            state.failed_checks = 0
            message = f"{character.name} rallies ({roll} vs {target})."
        else:
            message = f"{character.name} holds steady ({roll} vs {target})."
        return MoraleCheckResult(True, state.status, roll, target, message=message)

    state.failed_checks += 1
    if state.failed_checks >= 2 or state.status == MoraleStatus.SHAKEN:
        state.status = _broken_status(character, context, roll - target, rules)
    else:
        state.status = MoraleStatus.SHAKEN
    message = f"{character.name} fails a morale check ({roll} vs {target}) and is now {state.status.value}."
    logger.debug("morale %s: %s", character.name, message)
    return MoraleCheckResult(False, state.status, roll, target, message=message)


def _broken_status(character: "Combatant", context: MoraleContext, margin: int, rules: RulesConfig) -> MoraleStatus:
    if character.can_surrender and context.hp_ratio <= rules.surrender_hp_ratio:
        if margin + character.surrender_bias >= rules.surrender_score:
            return MoraleStatus.SURRENDERED
    return MoraleStatus.ROUTED

