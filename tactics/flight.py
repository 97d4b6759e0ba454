from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .config import DEFAULT_RULES, RulesConfig
from .errors import IllegalTransition
from .fatigue import drain_stamina

if TYPE_CHECKING:
    from .combatant import Combatant
    from .dice import DiceRoller


@dataclass
class FlightState:
    is_flying: bool = False
    granted: bool = False
    cruise_altitude: int = 0

    def reset(self) -> None:
        self.is_flying = False
        self.granted = False
        self.cruise_altitude = 0


@dataclass
class FlightResult:
    success: bool
    message: str
    altitude: int = 0
    attack_bonus: int = 0
    fall_damage: int = 0


def can_fly(character: "Combatant") -> bool:
    return character.can_fly or character.flight.granted


def altitude_of(character: "Combatant") -> int:
    return character.position.altitude if character.position else 0


def _set_altitude(character: "Combatant", altitude: int) -> None:
    if character.position is not None:
        character.position = character.position.at_altitude(altitude)


def _snap(feet: int, step: int) -> int:
    return int(round(feet / step)) * step


def take_off(character: "Combatant", altitude: Optional[int] = None,
             rules: RulesConfig = DEFAULT_RULES) -> FlightResult:
    if not can_fly(character):
        return FlightResult(False, f"{character.name} cannot fly.")
    if character.flight.is_flying:
        return FlightResult(False, f"{character.name} is already flying.", altitude_of(character))
    target = _snap(altitude if altitude is not None else rules.takeoff_altitude, rules.altitude_step)
    target = max(rules.altitude_step, min(rules.max_altitude, target))
    character.flight.is_flying = True
    character.flight.cruise_altitude = target
    _set_altitude(character, target)
    drain_stamina(character, "fly_hover", rules)
    return FlightResult(True, f"{character.name} takes off to {target}ft.", target)


def change_altitude(character: "Combatant", delta_ft: int, rules: RulesConfig = DEFAULT_RULES) -> FlightResult:
    if not character.flight.is_flying:
        raise IllegalTransition(f"{character.name} must be flying to change altitude")
    current = altitude_of(character)
    target = max(0, min(rules.max_altitude, _snap(current + delta_ft, rules.altitude_step)))
    if target == current:
        return FlightResult(False, f"{character.name} cannot change altitude (at {current}ft).", current)
    _set_altitude(character, target)
    character.flight.cruise_altitude = target
    cost = "fly_sprint" if target > current else "fly_hover"
    drain_stamina(character, cost, rules, rounds=abs(target - current) / 10)
    verb = "climbs" if target > current else "descends"
    return FlightResult(True, f"{character.name} {verb} from {current}ft to {target}ft.", target)


def dive(character: "Combatant", target: "Combatant", rules: RulesConfig = DEFAULT_RULES) -> FlightResult:
    if not character.flight.is_flying:
        raise IllegalTransition(f"{character.name} must be flying to dive")
    current = altitude_of(character)
    attack_altitude = max(0, altitude_of(target)) + rules.dive_offset
    if current <= attack_altitude:
        return FlightResult(True, f"{character.name} swoops low and strikes!", current)
    _set_altitude(character, attack_altitude)
    character.flight.cruise_altitude = attack_altitude
    drain_stamina(character, "fly_sprint", rules)
    bonus = min(rules.max_dive_bonus, (current - attack_altitude) // 10)
    return FlightResult(True, f"{character.name} dives from {current}ft to {attack_altitude}ft at {target.name}!",
                        attack_altitude, attack_bonus=bonus)


def fall_damage_dice(height_ft: int) -> int:
    if height_ft <= 0:
        return 0
    return max(1, height_ft // 10)


def fall(character: "Combatant", dice: "DiceRoller") -> FlightResult:
    """Drop a fighter to the ground. Damage is rolled, not applied."""
    height = altitude_of(character)
    character.flight.is_flying = False
    character.flight.cruise_altitude = 0
    _set_altitude(character, 0)
    count = fall_damage_dice(height)
    damage = dice.roll(f"{count}d6").total if count else 0
    return FlightResult(True, f"{character.name} falls {height}ft!", 0, fall_damage=damage)


def land(character: "Combatant", dice: "DiceRoller", controlled: bool = True,
         rules: RulesConfig = DEFAULT_RULES) -> FlightResult:
    if not character.flight.is_flying:
        return FlightResult(False, f"{character.name} is not flying.")
    height = altitude_of(character)
    if not controlled and height > rules.safe_landing_height:
        return fall(character, dice)
    character.flight.is_flying = False
    character.flight.cruise_altitude = 0
    _set_altitude(character, 0)
    return FlightResult(True, f"{character.name} lands safely.", 0)
