from dataclasses import dataclass
from typing import Dict, Optional

from .enums import DamageType, SaveEffect, SpellSource, StatusEffect, TargetMode


@dataclass(frozen=True)
class Spell:
    name: str
    source: SpellSource
    cost: int
    target_mode: TargetMode = TargetMode.ENEMY
    range_ft: int = 60
    damage: Optional[str] = None
    healing: Optional[str] = None
    damage_type: DamageType = DamageType.MAGIC
    save_effect: SaveEffect = SaveEffect.NONE
    status_effect: Optional[StatusEffect] = None
    status_rounds: int = 0
    grants_flight: bool = False
    stops_bleeding: bool = False
    actions_required: int = 1
    description: str = ""

    @property
    def is_offensive(self) -> bool:
        return self.damage is not None or (self.status_effect is not None and self.target_mode == TargetMode.ENEMY)

    @property
    def is_healing(self) -> bool:
        return self.healing is not None

    @property
    def resource_name(self) -> str:
        return "PPE" if self.source == SpellSource.MAGIC else "ISP"


PALLADIUM_SPELLS: Dict[str, Spell] = {
    "Fire Bolt": Spell(name="Fire Bolt", source=SpellSource.MAGIC, cost=7, range_ft=100, damage="4d6", damage_type=DamageType.FIRE, save_effect=SaveEffect.HALF, description="Bolt of fire, 4d6 damage."),
    "Energy Bolt": Spell(name="Energy Bolt", source=SpellSource.MAGIC, cost=5, range_ft=60, damage="2d6", damage_type=DamageType.MAGIC, description="Bolt of raw energy, no save."),
    "Call Lightning": Spell(name="Call Lightning", source=SpellSource.MAGIC, cost=15, range_ft=100, damage="5d6", damage_type=DamageType.ELECTRIC, save_effect=SaveEffect.HALF),
    "Frost Blade": Spell(name="Frost Blade", source=SpellSource.MAGIC, cost=12, range_ft=5, damage="2d6+2", damage_type=DamageType.COLD),
    "Heal Wounds": Spell(name="Heal Wounds", source=SpellSource.MAGIC, cost=10, target_mode=TargetMode.ALLY, range_ft=5, healing="2d6+2", description="Touch; restores 2d6+2 HP."),
    "Turn Dead": Spell(name="Turn Dead", source=SpellSource.MAGIC, cost=6, range_ft=60, damage="2d6", damage_type=DamageType.HOLY, save_effect=SaveEffect.NEGATE),
    "Fear": Spell(name="Fear", source=SpellSource.MAGIC, cost=5, range_ft=60, save_effect=SaveEffect.NEGATE, status_effect=StatusEffect.FRIGHTENED, status_rounds=3),
    "Fly as the Eagle": Spell(name="Fly as the Eagle", source=SpellSource.MAGIC, cost=25, target_mode=TargetMode.SELF, range_ft=0, grants_flight=True),
}

PALLADIUM_PSIONICS: Dict[str, Spell] = {
    "Psi-Sword": Spell(name="Psi-Sword", source=SpellSource.PSIONIC, cost=30, range_ft=5, damage="3d6", damage_type=DamageType.PSYCHIC),
    "Mind Bolt": Spell(name="Mind Bolt", source=SpellSource.PSIONIC, cost=6, range_ft=80, damage="2d6", damage_type=DamageType.PSYCHIC, save_effect=SaveEffect.NEGATE),
    "Healing Touch": Spell(name="Healing Touch", source=SpellSource.PSIONIC, cost=6, target_mode=TargetMode.ALLY, range_ft=5, healing="2d6"),
    "Stop Bleeding": Spell(name="Stop Bleeding", source=SpellSource.PSIONIC, cost=2, target_mode=TargetMode.ALLY, range_ft=5, stops_bleeding=True, description="Touch; stabilizes a fighter bleeding out."),
    "Bio-Manipulation": Spell(name="Bio-Manipulation", source=SpellSource.PSIONIC, cost=10, range_ft=160, save_effect=SaveEffect.NEGATE, status_effect=StatusEffect.STUNNED, status_rounds=2),
    "Levitation": Spell(name="Levitation", source=SpellSource.PSIONIC, cost=12, target_mode=TargetMode.SELF, range_ft=0, grants_flight=True),
}
