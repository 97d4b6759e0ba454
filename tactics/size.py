from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict

from .enums import SizeCategory

if TYPE_CHECKING:
    from .combatant import Combatant


@dataclass(frozen=True)
class SizeProfile:
    grapple: int
    strike: int
    parry: int
    dodge: int
    damage: int


SIZE_TABLE: Dict[SizeCategory, SizeProfile] = {
    SizeCategory.TINY: SizeProfile(grapple=-4, strike=-2, parry=-2, dodge=2, damage=-2),
    SizeCategory.SMALL: SizeProfile(grapple=-2, strike=-1, parry=-1, dodge=1, damage=-1),
    SizeCategory.MEDIUM: SizeProfile(grapple=0, strike=0, parry=0, dodge=0, damage=0),
    SizeCategory.LARGE: SizeProfile(grapple=2, strike=1, parry=1, dodge=-1, damage=1),
    SizeCategory.HUGE: SizeProfile(grapple=4, strike=2, parry=2, dodge=-2, damage=2),
    SizeCategory.GIANT: SizeProfile(grapple=6, strike=3, parry=3, dodge=-3, damage=3),
}


@dataclass(frozen=True)
class GrappleModifiers:
    """Size and strength modifiers between an attacker and a defender."""
    modifier: int
    strike_bonus: int
    defender_parry: int
    defender_dodge: int
    damage_bonus: int
    ps_diff: int
    auto_grapple: bool


def grapple_modifiers(attacker: "Combatant", defender: "Combatant",
                      auto_gap: int = 10, ps_step: int = 5) -> GrappleModifiers:
    a = SIZE_TABLE[attacker.size]
    d = SIZE_TABLE[defender.size]
    ps_diff = attacker.attributes.ps - defender.attributes.ps
    return GrappleModifiers(
        modifier=(a.grapple - d.grapple) + ps_diff // ps_step,
        strike_bonus=a.strike - d.strike,
        defender_parry=d.parry - a.parry,
        defender_dodge=d.dodge - a.dodge,
        damage_bonus=a.damage - d.damage,
        ps_diff=ps_diff,
        auto_grapple=ps_diff >= auto_gap,
    )


def reach_advantage(attacker: "Combatant", defender: "Combatant") -> int:
    diff = SIZE_TABLE[attacker.size].strike - SIZE_TABLE[defender.size].strike
    return diff if diff > 0 else 0


def damage_modifier(attacker: "Combatant", defender: "Combatant") -> int:
    return SIZE_TABLE[attacker.size].damage - SIZE_TABLE[defender.size].damage
