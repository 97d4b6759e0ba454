"""
Pain stagger and bleeding.

A heavy blunt blow that lands on a lightly armored fighter for at least
half its P.E. (never less than ``pain_min_threshold``) knocks an action
out of it. A fighter knocked to 0 HP or below bleeds each melee round
until it is healed back up or stabilized.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .config import DEFAULT_RULES, RulesConfig
from .enums import StatusEffect

if TYPE_CHECKING:
    from .combatant import Combatant
    from .items import AttackDescriptor


@dataclass
class PainResult:
    triggered: bool
    threshold: int = 0
    actions_lost: int = 0
    message: str = ""


def pain_threshold(character: "Combatant", rules: RulesConfig = DEFAULT_RULES) -> int:
    return max(rules.pain_min_threshold, character.attributes.pe // 2)


def is_unarmored(character: "Combatant", rules: RulesConfig = DEFAULT_RULES) -> bool:
    return character.armor_rating < rules.pain_armor_threshold


def apply_pain_stagger(defender: "Combatant", damage: int, attack: Optional["AttackDescriptor"],
                       rules: RulesConfig = DEFAULT_RULES) -> PainResult:
    if attack is None or not attack.blunt or damage <= 0 or not defender.is_conscious:
        return PainResult(False)
    if not is_unarmored(defender, rules):
        return PainResult(False)
    threshold = pain_threshold(defender, rules)
    if damage < threshold:
        return PainResult(False, threshold)
    lost = min(rules.pain_actions_lost, defender.actions_remaining)
    defender.set_actions(defender.actions_remaining - lost)
    plural = "" if lost == 1 else "s"
    return PainResult(True, threshold, lost,
                      f"{defender.name} reels from the crushing blow and loses {lost} action{plural} to pain!")


# --- Bleeding ---------------------------------------------------------------

def start_bleeding(character: "Combatant") -> bool:
    """Mark a downed fighter as bleeding. False when it already bleeds or was stabilized."""
    if character.is_conscious or not character.is_alive:
        return False
    if character.has_status(StatusEffect.BLEEDING) or character.has_status(StatusEffect.STABILIZED):
        return False
    character.apply_status(StatusEffect.BLEEDING)
    return True


def bleed(character: "Combatant", rules: RulesConfig = DEFAULT_RULES) -> int:
    """One melee round of blood loss. Returns the HP lost."""
    if not character.has_status(StatusEffect.BLEEDING) or not character.is_alive:
        return 0
    return -character.apply_hp_delta(-rules.bleed_per_round)


def stop_bleeding(character: "Combatant") -> bool:
    if not character.has_status(StatusEffect.BLEEDING):
        return False
    character.clear_status(StatusEffect.BLEEDING)
    character.apply_status(StatusEffect.STABILIZED)
    return True


def clear_wounds(character: "Combatant") -> None:
    """Back above 0 HP: neither bleeding nor in need of stabilizing."""
    character.clear_status(StatusEffect.BLEEDING)
    character.clear_status(StatusEffect.STABILIZED)
