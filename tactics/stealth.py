"""
Prowling and detection.

Prowl is a percentile skill: a d100 at or under the skill hides the
fighter. Each melee round every foe with a line on a hidden fighter gets
a percentile detection roll; a hidden attacker strikes with the sneak
attack bonus and is revealed by the blow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .config import DEFAULT_RULES, RulesConfig
from .enums import StatusEffect

if TYPE_CHECKING:
    from .combatant import Combatant
    from .dice import DiceRoller


@dataclass
class StealthResult:
    success: bool
    roll: int = 0
    chance: int = 0
    message: str = ""


def is_hidden(character: "Combatant") -> bool:
    return character.has_status(StatusEffect.HIDDEN)


def roll_prowl(character: "Combatant", dice: "DiceRoller") -> StealthResult:
    roll = dice.roll("1d100").total
    if roll <= character.prowl:
        character.apply_status(StatusEffect.HIDDEN)
        return StealthResult(True, roll, character.prowl,
                             f"{character.name} slips out of sight ({roll} vs {character.prowl}%).")
    return StealthResult(False, roll, character.prowl,
                         f"{character.name} fails to prowl ({roll} vs {character.prowl}%).")


def detection_chance(observer: "Combatant", cover: Optional[str] = None,
                     rules: RulesConfig = DEFAULT_RULES) -> int:
    chance = rules.base_detection - rules.detection_cover_penalties.get(cover or "none", 0)
    if observer.keen_senses:
        chance += rules.keen_senses_bonus
    return max(0, min(rules.max_detection, chance))


def roll_detection(observer: "Combatant", hidden: "Combatant", dice: "DiceRoller",
                   cover: Optional[str] = None, rules: RulesConfig = DEFAULT_RULES) -> StealthResult:
    chance = detection_chance(observer, cover, rules)
    roll = dice.roll("1d100").total
    if roll <= chance:
        hidden.clear_status(StatusEffect.HIDDEN)
        return StealthResult(True, roll, chance, f"{observer.name} spots {hidden.name} ({roll} vs {chance}%).")
    return StealthResult(False, roll, chance)


def reveal(character: "Combatant") -> bool:
    if not is_hidden(character):
        return False
    character.clear_status(StatusEffect.HIDDEN)
    return True
