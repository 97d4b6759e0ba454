"""
Rules tunables for the combat engine.

Every threshold the resolvers use lives here so a table can adjust the
feel of combat without touching resolution code.

Usage:
    rules = RulesConfig.from_dict({"crit_multiplier": 3, "flee_step_budget": 4})
    engine = CombatEngine(fighters, tactical_map=tmap, rules=rules)
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Tuple


@dataclass
class RulesConfig:
    """Numeric rules used by the engine.

    HP bands are inclusive lower bounds: HP above ``unconscious_floor``
    (but <= 0) is unconscious, and so on; HP at or below ``dead_at`` is dead.
    """

    # Hit points
    hp_floor: int = -100
    unconscious_floor: int = -5
    dying_floor: int = -10
    dead_at: int = -21

    # To-hit and damage
    natural_hit: int = 20
    natural_miss: int = 1
    crit_multiplier: int = 2
    sneak_multiplier: float = 2.0
    charge_multiplier: float = 1.5
    charge_min_cells: int = 2
    sneak_strike_bonus: int = 2
    cover_penalties: Dict[str, int] = field(default_factory=lambda: {"none": 0, "half": 2, "three_quarter": 4})

    # Action economy
    max_idle_rounds: int = 10
    round_cap: int = 60

    # Saving throws
    magic_save_base: int = 12
    psionic_save_base: int = 15
    save_levels_per_step: int = 3

    # Morale
    morale_min: int = 6
    morale_max: int = 18
    low_hp_ratio: float = 0.20
    morale_hp_steps: Tuple[Tuple[float, int], ...] = ((0.25, 2), (0.10, 2))
    morale_allies_down_steps: Tuple[Tuple[float, int], ...] = ((0.50, 2), (0.75, 2))
    morale_horror_penalty: int = 2
    morale_pain_penalty: int = 1
    morale_martial_bonus: int = 2
    surrender_hp_ratio: float = 0.10
    surrender_score: int = 3

    # Fatigue
    stamina_per_pe: int = 2
    fatigue_bands: Tuple[Tuple[int, int], ...] = ((-5, 1), (-10, 2), (-15, 3))
    collapse_threshold: int = -16
    collapse_penalty: int = 4
    stamina_costs: Dict[str, float] = field(default_factory=lambda: {
        "light": 0.5,
        "combat": 1.0,
        "grappling": 2.0,
        "sprint": 1.5,
        "spellcasting": 1.0,
        "fly_hover": 0.5,
        "fly_cruise": 1.0,
        "fly_sprint": 1.5,
    })
    recovery_rates: Dict[str, float] = field(default_factory=lambda: {"light": 1.0, "full": 2.0})

    # Horror
    horror_min_factor: int = 8
    horror_frightened_margin: int = 3
    horror_hesitant_margin: int = 6
    horror_panic_rounds: int = 10
    horror_penalty: int = 2
    horror_terrifying_bonus: int = 2

    # Pain and bleeding
    pain_min_threshold: int = 4
    pain_armor_threshold: int = 10
    pain_actions_lost: int = 1
    bleed_per_round: int = 1

    # Stealth
    base_detection: int = 40
    detection_cover_penalties: Dict[str, int] = field(default_factory=lambda: {"none": 0, "half": 15, "three_quarter": 30})
    keen_senses_bonus: int = 25
    max_detection: int = 95

    # Grapple
    grapple_auto_ps_gap: int = 10
    grapple_ps_step: int = 5
    takedown_target: int = 15
    grapple_weapon_max_length: float = 2.0

    # Flight
    takeoff_altitude: int = 20
    max_altitude: int = 100
    altitude_step: int = 5
    dive_offset: int = 5
    max_dive_bonus: int = 4
    safe_landing_height: int = 5

    # AI
    max_decision_steps: int = 8
    flee_step_budget: int = 3
    critical_ally_ratio: float = 0.25
    spell_failure_limit: int = 2

    @classmethod
    def from_dict(cls, overrides: Dict[str, Any]) -> "RulesConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown rules keys: {', '.join(sorted(unknown))}")
        return cls(**overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


DEFAULT_RULES = RulesConfig()
