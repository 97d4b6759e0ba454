from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Set, Tuple

from .config import DEFAULT_RULES, RulesConfig
from .enums import StatusEffect
from .morale import is_fear_immune

if TYPE_CHECKING:
    from .combatant import Combatant
    from .dice import DiceRoller


@dataclass
class HorrorResult:
    triggered: bool
    passed: bool = True
    roll: int = 0
    total: int = 0
    horror_factor: int = 0
    effect: Optional[StatusEffect] = None
    rounds: int = 0
    message: str = ""


@dataclass
class HorrorTracker:
    """Remembers which (source, target) pairs have already rolled this encounter."""
    checked: Set[Tuple[str, str]] = field(default_factory=set)

    def reset(self) -> None:
        self.checked.clear()

    def has_checked(self, source: "Combatant", target: "Combatant") -> bool:
        return (source.id, target.id) in self.checked

    def expose(self, source: "Combatant", target: "Combatant", dice: "DiceRoller",
               can_see: bool = True, terrifying_action: bool = False,
               rules: RulesConfig = DEFAULT_RULES) -> HorrorResult:
        hf = source.horror_factor
        if hf < rules.horror_min_factor or source is target or not can_see:
            return HorrorResult(False)
        if not source.is_conscious or not target.is_conscious:
            return HorrorResult(False)
        key = (source.id, target.id)
        if key in self.checked:
            return HorrorResult(False)
        self.checked.add(key)
        if is_fear_immune(target):
            return HorrorResult(False, message=f"{target.name} is unmoved by {source.name}.")
        if terrifying_action:
            hf += rules.horror_terrifying_bonus

        roll = dice.d20()
        total = roll + target.save_bonuses.get("horror", 0)
        if roll != 1 and total >= hf:
            return HorrorResult(True, True, roll, total, hf,
                                message=f"{target.name} steels their nerves against {source.name} ({total} vs HF {hf}).")

        margin = hf - total
        if roll == 1:
            effect, rounds = StatusEffect.FLEEING, rules.horror_panic_rounds
            text = "suffers total mental collapse and flees"
        elif margin <= rules.horror_frightened_margin:
            effect, rounds = StatusEffect.FRIGHTENED, 1
            text = "is frightened"
        elif margin <= rules.horror_hesitant_margin:
            effect, rounds = StatusEffect.HESITANT, 1
            text = "hesitates in terror"
        else:
            effect, rounds = StatusEffect.FLEEING, dice.roll("1d4").total
            text = "breaks and flees"
        target.apply_status(effect, rounds)
        return HorrorResult(True, False, roll, total, hf, effect, rounds,
                            message=f"{target.name} {text} at the sight of {source.name} ({total} vs HF {hf}).")
