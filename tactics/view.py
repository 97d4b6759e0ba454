"""Read-only views of engine state handed to the AI and the presentation layer."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .enums import GrappleStatus, HealthStatus, MoraleStatus, Side
from .map import Cell, Position


@dataclass(frozen=True)
class CombatantView:
    id: str
    name: str
    side: Side
    current_hp: int
    max_hp: int
    armor_rating: int
    health: HealthStatus
    morale: MoraleStatus
    grapple: GrappleStatus
    position: Optional[Position]
    is_flying: bool
    in_fight: bool
    actions_remaining: int

    @property
    def hp_ratio(self) -> float:
        return self.current_hp / max(1, self.max_hp)

    @property
    def cell(self) -> Optional[Cell]:
        return self.position.cell if self.position else None

    @property
    def altitude(self) -> int:
        return self.position.altitude if self.position else 0


def view_of(combatant) -> CombatantView:
    return CombatantView(
        id=combatant.id,
        name=combatant.name,
        side=combatant.side,
        current_hp=combatant.current_hp,
        max_hp=combatant.max_hp,
        armor_rating=combatant.armor_rating,
        health=combatant.health_status,
        morale=combatant.morale.status,
        grapple=combatant.grapple.status,
        position=combatant.position,
        is_flying=combatant.is_flying,
        in_fight=combatant.in_fight,
        actions_remaining=combatant.actions_remaining,
    )


@dataclass(frozen=True)
class WorldView:
    """What one side knows: its own fighters plus the foes it can see."""
    side: Side
    round: int
    allies: Tuple[CombatantView, ...] = ()
    enemies: Tuple[CombatantView, ...] = ()
    occupied: Dict[Cell, str] = field(default_factory=dict)
    visible: Optional[frozenset] = None

    def ally(self, combatant_id: str) -> Optional[CombatantView]:
        return next((a for a in self.allies if a.id == combatant_id), None)

    def enemy(self, combatant_id: str) -> Optional[CombatantView]:
        return next((e for e in self.enemies if e.id == combatant_id), None)

    def threat_cells(self) -> List[Cell]:
        return [e.cell for e in self.enemies if e.in_fight and e.cell is not None]
