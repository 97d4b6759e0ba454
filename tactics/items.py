from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

from .enums import AttackKind, DamageType

if TYPE_CHECKING:
    from .combatant import Combatant


@dataclass(frozen=True)
class Weapon:
    name: str
    damage: str
    kind: AttackKind = AttackKind.MELEE
    range_ft: int = 0
    reach_ft: int = 5
    strike_bonus: int = 0
    parry_bonus: int = 0
    damage_type: DamageType = DamageType.PHYSICAL
    ammo_type: Optional[str] = None
    length_ft: float = 1.0
    is_natural: bool = False
    is_placeholder: bool = False
    blunt: bool = False
    description: str = ""

    @property
    def is_ranged(self) -> bool:
        return self.kind in (AttackKind.RANGED, AttackKind.THROWN)

    @property
    def max_range_ft(self) -> int:
        return self.range_ft if self.is_ranged else self.reach_ft

    def can_parry_with(self) -> bool:
        return self.kind == AttackKind.MELEE and not self.is_placeholder

    def describe(self) -> "AttackDescriptor":
        return AttackDescriptor(
            name=self.name,
            damage=self.damage,
            kind=self.kind,
            range_ft=self.max_range_ft,
            reach_ft=self.reach_ft,
            strike_bonus=self.strike_bonus,
            damage_type=self.damage_type,
            ammo_type=self.ammo_type,
            length_ft=self.length_ft,
            blunt=self.blunt,
        )


@dataclass(frozen=True)
class AttackDescriptor:
    """Immutable description of one attack, fixed when the action is declared."""
    name: str
    damage: str
    kind: AttackKind
    range_ft: int
    reach_ft: int = 5
    strike_bonus: int = 0
    damage_type: DamageType = DamageType.PHYSICAL
    ammo_type: Optional[str] = None
    length_ft: float = 1.0
    blunt: bool = False

    @property
    def is_ranged(self) -> bool:
        return self.kind in (AttackKind.RANGED, AttackKind.THROWN)


PALLADIUM_WEAPONS: Dict[str, Weapon] = {
    "Unarmed": Weapon(name="Unarmed", damage="1d4", length_ft=0.0, is_natural=True, description="Punch or kick."),
    "Dagger": Weapon(name="Dagger", damage="1d6", length_ft=1.0, parry_bonus=1, description="Short blade, usable in a grapple."),
    "Short Sword": Weapon(name="Short Sword", damage="1d6", length_ft=2.0, parry_bonus=1),
    "Long Sword": Weapon(name="Long Sword", damage="2d6", length_ft=3.5, parry_bonus=1),
    "Battle Axe": Weapon(name="Battle Axe", damage="3d6", length_ft=3.0),
    "Mace": Weapon(name="Mace", damage="2d6", length_ft=2.5, blunt=True),
    "Club": Weapon(name="Club", damage="1d6", length_ft=2.0, blunt=True),
    "War Hammer": Weapon(name="War Hammer", damage="2d6+1", length_ft=3.0, blunt=True),
    "Spear": Weapon(name="Spear", damage="1d8", reach_ft=10, length_ft=7.0),
    "Staff": Weapon(name="Staff", damage="1d6", reach_ft=5, length_ft=6.0, parry_bonus=1),
    "Throwing Knife": Weapon(name="Throwing Knife", damage="1d4", kind=AttackKind.THROWN, range_ft=40, length_ft=1.0, ammo_type="knives"),
    "Short Bow": Weapon(name="Short Bow", damage="1d6", kind=AttackKind.RANGED, range_ft=340, length_ft=3.0, ammo_type="arrows"),
    "Long Bow": Weapon(name="Long Bow", damage="2d6", kind=AttackKind.RANGED, range_ft=640, length_ft=5.0, ammo_type="arrows"),
    "Crossbow": Weapon(name="Crossbow", damage="2d6", kind=AttackKind.RANGED, range_ft=400, length_ft=3.0, ammo_type="bolts"),
    "Claws": Weapon(name="Claws", damage="2d6", length_ft=0.5, is_natural=True),
    "Bite": Weapon(name="Bite", damage="1d8", length_ft=0.0, is_natural=True),
    "Talons": Weapon(name="Talons", damage="2d4", length_ft=0.5, is_natural=True),
    "Fire Breath": Weapon(name="Fire Breath", damage="3d6", kind=AttackKind.RANGED, range_ft=60, damage_type=DamageType.FIRE, is_natural=True),
    # Placeholders stand for "whatever the fighter is carrying".
    "Attack": Weapon(name="Attack", damage="1d4", is_placeholder=True),
    "Melee Attack": Weapon(name="Melee Attack", damage="1d4", is_placeholder=True),
    "Ranged Attack": Weapon(name="Ranged Attack", damage="1d4", kind=AttackKind.RANGED, range_ft=60, is_placeholder=True),
}

UNARMED = PALLADIUM_WEAPONS["Unarmed"]


def has_ammo_for(combatant: "Combatant", weapon: Weapon) -> bool:
    if weapon.ammo_type is None:
        return True
    return combatant.ammo.get(weapon.ammo_type, 0) > 0


def grapple_legal(weapon: Weapon, max_length: float = 2.0) -> bool:
    return weapon.is_natural or (weapon.kind != AttackKind.RANGED and weapon.length_ft <= max_length)


def effective_weapon(combatant: "Combatant", selected: Optional[Weapon] = None,
                     grapple_max_length: float = 2.0) -> Weapon:
    """Resolve the weapon actually used for an attack.

    Placeholder entries are swapped for the fighter's equipped weapon,
    preferring a loaded ranged weapon when the placeholder does not say
    which. The AI planner and the attack resolver both call this so they
    always agree on the weapon.
    """
    carried: List[Weapon] = [w for w in combatant.weapons if not w.is_placeholder]
    grappling = not combatant.grapple.is_neutral

    chosen: Optional[Weapon] = selected
    if chosen is None or chosen.is_placeholder:
        ranged = [w for w in carried if w.is_ranged and has_ammo_for(combatant, w)]
        melee = [w for w in carried if not w.is_ranged]
        wants_melee = chosen is not None and chosen.name == "Melee Attack"
        if grappling or wants_melee:
            chosen = melee[0] if melee else (ranged[0] if ranged else None)
        else:
            chosen = ranged[0] if ranged else (melee[0] if melee else None)
        if chosen is None:
            chosen = UNARMED

    if grappling and not grapple_legal(chosen, grapple_max_length):
        short = [w for w in carried if grapple_legal(w, grapple_max_length)]
        short.sort(key=lambda w: (not w.is_natural, w.length_ft))
        chosen = short[0] if short else UNARMED
    return chosen
