#!/usr/bin/env python3
"""
Sample combatants and ready-made encounters.

Each factory returns a fresh Combatant so batch runs never share state.
Running this module plays one AI-vs-AI skirmish and prints the log.
"""

from typing import Callable, Dict, List, Optional, Tuple

from .combatant import Attributes, Combatant
from .enums import DamageType, GridKind, Side, SizeCategory, TerrainType
from .items import PALLADIUM_WEAPONS
from .map import Position, TacticalMap
from .spells import PALLADIUM_PSIONICS, PALLADIUM_SPELLS

W = PALLADIUM_WEAPONS


def _at(cell: Optional[Tuple[int, int]]) -> Optional[Position]:
    return Position(*cell) if cell is not None else None


# ----------------------------------------------------------------------
# Fighters
# ----------------------------------------------------------------------

def fighter(cid: str = "fighter", side: Side = Side.ALLY, cell=None, name: str = "Mercenary Fighter") -> Combatant:
    return Combatant(
        id=cid, name=name, side=side, level=3,
        attributes=Attributes(ps=18, pp=14, pe=16, spd=12),
        max_hp=32, armor_rating=14, actions_per_round=3,
        strike_bonus=3, parry_bonus=4, dodge_bonus=2, damage_bonus=3,
        weapons=[W["Long Sword"], W["Dagger"]],
        occupation="soldier", position=_at(cell),
    )


def archer(cid: str = "archer", side: Side = Side.ALLY, cell=None, name: str = "Long Bowman") -> Combatant:
    return Combatant(
        id=cid, name=name, side=side, level=2,
        attributes=Attributes(ps=12, pp=18, pe=12, spd=14),
        max_hp=22, armor_rating=12, actions_per_round=3,
        strike_bonus=4, parry_bonus=1, dodge_bonus=3,
        weapons=[W["Long Bow"], W["Short Sword"]],
        ammo={"arrows": 12}, speed=5, position=_at(cell),
    )


def wizard(cid: str = "wizard", side: Side = Side.ALLY, cell=None, name: str = "Wizard") -> Combatant:
    return Combatant(
        id=cid, name=name, side=side, level=4,
        attributes=Attributes(iq=18, ps=9, pp=11, pe=11),
        max_hp=18, armor_rating=10, actions_per_round=2, max_ppe=60,
        dodge_bonus=1, save_bonuses={"magic": 2},
        weapons=[W["Staff"]],
        spells=[PALLADIUM_SPELLS[n] for n in ("Fire Bolt", "Energy Bolt", "Fear", "Fly as the Eagle")],
        position=_at(cell),
    )


def healer(cid: str = "healer", side: Side = Side.ALLY, cell=None, name: str = "Mind Mage") -> Combatant:
    return Combatant(
        id=cid, name=name, side=side, level=3,
        attributes=Attributes(me=18, ps=10, pp=12, pe=12),
        max_hp=20, armor_rating=11, actions_per_round=2, max_isp=50,
        save_bonuses={"psionics": 3},
        weapons=[W["Mace"]],
        psionics=[PALLADIUM_PSIONICS[n] for n in ("Healing Touch", "Mind Bolt", "Bio-Manipulation")],
        position=_at(cell),
    )


# ----------------------------------------------------------------------
# Monsters
# ----------------------------------------------------------------------

def orc(cid: str = "orc", side: Side = Side.ENEMY, cell=None, name: str = "Orc Raider") -> Combatant:
    return Combatant(
        id=cid, name=name, side=side, level=2,
        attributes=Attributes(ps=16, pp=11, pe=14),
        max_hp=24, armor_rating=12, actions_per_round=2,
        strike_bonus=1, parry_bonus=2, damage_bonus=1,
        weapons=[W["Battle Axe"], W["Throwing Knife"]],
        ammo={"knives": 2}, creature_kind="orc", surrender_bias=-1, position=_at(cell),
    )


def ogre(cid: str = "ogre", side: Side = Side.ENEMY, cell=None, name: str = "Ogre") -> Combatant:
    return Combatant(
        id=cid, name=name, side=side, level=3,
        attributes=Attributes(ps=28, pp=9, pe=20),
        max_hp=55, armor_rating=11, actions_per_round=2,
        strike_bonus=1, parry_bonus=1, damage_bonus=8,
        weapons=[W["Mace"], W["Unarmed"]],
        size=SizeCategory.LARGE, creature_kind="giant", horror_factor=8, position=_at(cell),
    )


def troll(cid: str = "troll", side: Side = Side.ENEMY, cell=None, name: str = "Troll") -> Combatant:
    return Combatant(
        id=cid, name=name, side=side, level=4,
        attributes=Attributes(ps=24, pp=12, pe=22),
        max_hp=60, armor_rating=12, actions_per_round=3,
        strike_bonus=2, parry_bonus=2, damage_bonus=6,
        weapons=[W["Claws"], W["Bite"]],
        size=SizeCategory.LARGE, creature_kind="troll", horror_factor=12,
        regeneration=3, resistances={DamageType.PHYSICAL}, can_surrender=False, position=_at(cell),
    )


def skeleton(cid: str = "skeleton", side: Side = Side.ENEMY, cell=None, name: str = "Animated Skeleton") -> Combatant:
    return Combatant(
        id=cid, name=name, side=side, level=1,
        attributes=Attributes(ps=14, pp=10, pe=30),
        max_hp=18, armor_rating=10, actions_per_round=2,
        weapons=[W["Short Sword"]],
        creature_kind="undead", horror_factor=10, fear_immune=True, can_surrender=False,
        immunities={DamageType.POISON, DamageType.COLD, DamageType.PSYCHIC}, position=_at(cell),
    )


def hatchling(cid: str = "hatchling", side: Side = Side.ENEMY, cell=None, name: str = "Dragon Hatchling") -> Combatant:
    c = Combatant(
        id=cid, name=name, side=side, level=3,
        attributes=Attributes(ps=20, pp=16, pe=18, spd=20),
        max_hp=45, armor_rating=13, actions_per_round=3,
        strike_bonus=3, dodge_bonus=2, damage_bonus=2,
        weapons=[W["Talons"], W["Bite"], W["Fire Breath"]],
        size=SizeCategory.LARGE, speed=6, can_fly=True, creature_kind="dragon",
        horror_factor=13, immunities={DamageType.FIRE}, can_surrender=False, position=_at(cell),
    )
    if cell is not None:
        c.flight.is_flying = True
        c.position = c.position.at_altitude(30)
    return c


FACTORIES: Dict[str, Callable[..., Combatant]] = {
    "Fighter": fighter,
    "Archer": archer,
    "Wizard": wizard,
    "Healer": healer,
    "Orc": orc,
    "Ogre": ogre,
    "Troll": troll,
    "Skeleton": skeleton,
    "Dragon Hatchling": hatchling,
}


# ----------------------------------------------------------------------
# Encounters
# ----------------------------------------------------------------------

def open_field(width: int = 14, height: int = 10, grid: GridKind = GridKind.HEX) -> TacticalMap:
    tmap = TacticalMap(width, height, grid=grid)
    for y in range(3, 6):
        tmap.set_terrain(6, y, TerrainType.FOREST)
    tmap.set_terrain(8, 2, TerrainType.WALL)
    tmap.set_terrain(8, 7, TerrainType.WALL)
    return tmap


def patrol_vs_orcs() -> List[Combatant]:
    return [
        fighter(cell=(2, 4)),
        archer(cell=(1, 6)),
        wizard(cell=(1, 2)),
        orc("orc1", cell=(11, 3), name="Orc Raider"),
        orc("orc2", cell=(11, 5), name="Orc Brute"),
        orc("orc3", cell=(12, 7), name="Orc Scout"),
    ]


def crypt_guardians() -> List[Combatant]:
    return [
        fighter(cell=(3, 4)),
        healer(cell=(2, 5)),
        skeleton("sk1", cell=(10, 3)),
        skeleton("sk2", cell=(10, 5)),
        troll(cell=(12, 4)),
    ]


def hatchling_raid() -> List[Combatant]:
    return [
        fighter(cell=(3, 4)),
        archer(cell=(2, 6)),
        wizard(cell=(2, 2)),
        hatchling(cell=(11, 4)),
    ]


def ogre_duel() -> List[Combatant]:
    return [fighter(cell=(4, 4)), ogre(cell=(8, 4))]


ENCOUNTERS: Dict[str, Callable[[], List[Combatant]]] = {
    "Patrol vs Orcs": patrol_vs_orcs,
    "Crypt Guardians": crypt_guardians,
    "Hatchling Raid": hatchling_raid,
    "Ogre Duel": ogre_duel,
}


def main():
    import logging

    from .ai import CombatAI
    from .dice import DiceRoller
    from .engine import CombatEngine

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    engine = CombatEngine(patrol_vs_orcs(), tactical_map=open_field(), dice=DiceRoller(seed=7))
    engine.event_log.forward = False
    ai = CombatAI("balanced")
    engine.start_combat()
    turns = 0
    while not engine.is_combat_ended() and turns < 300:
        actor = engine.current_actor()
        if actor is None:
            break
        ai.take_turn(engine, actor)
        turns += 1
    for line in engine.event_log.messages():
        print(line)
    print()
    print(engine.get_combat_summary())


if __name__ == "__main__":
    main()
