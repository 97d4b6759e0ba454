# Palladium tactical combat package

from .engine import CombatEngine, ACTION_COSTS, HeldAction
from .combatant import Attributes, Combatant, health_status_for
from .config import RulesConfig, DEFAULT_RULES
from .dice import DiceRoller, ScriptedDice, RollResult, parse_expression
from .map import TacticalMap, Tile, Position, FogOfWar
from .items import Weapon, AttackDescriptor, PALLADIUM_WEAPONS, effective_weapon
from .spells import Spell, PALLADIUM_SPELLS, PALLADIUM_PSIONICS
from .attack import AttackModifiers, AttackOutcome, check_range
from .casting import CastOutcome
from .pain import PainResult
from .stealth import StealthResult
from .scheduler import RoundEvent, TurnScheduler
from .timeline import Timeline, TimelineEvent
from .eventlog import EventLog, LogEvent
from .ai import CombatAI, PlannedAction, STRATEGY_DEFAULTS
from .batch import BatchConfig, BatchResult, BatchRunner, CombatRecord
from .view import CombatantView, WorldView
from .enums import (
    Side, GridKind, TerrainType, AttackKind, DefenseKind, DamageType, HealthStatus,
    GrappleStatus, GrappleRole, MoraleStatus, FatigueStatus, SizeCategory, TargetMode,
    SpellSource, SaveEffect, Outcome, SchedulerState, RoundEventKind, Severity,
    StatusEffect, PlanKind,
)
from .errors import (
    CombatError, ValidationError, ValidationReason, StateInvariantViolation,
    TurnAdvanceWhileLocked, CombatEndedError, IllegalTransition,
)

__all__ = [
    "CombatEngine", "ACTION_COSTS", "HeldAction",
    "Attributes", "Combatant", "health_status_for",
    "RulesConfig", "DEFAULT_RULES",
    "DiceRoller", "ScriptedDice", "RollResult", "parse_expression",
    "TacticalMap", "Tile", "Position", "FogOfWar",
    "Weapon", "AttackDescriptor", "PALLADIUM_WEAPONS", "effective_weapon",
    "Spell", "PALLADIUM_SPELLS", "PALLADIUM_PSIONICS",
    "AttackModifiers", "AttackOutcome", "check_range",
    "CastOutcome", "PainResult", "StealthResult",
    "RoundEvent", "TurnScheduler",
    "Timeline", "TimelineEvent",
    "EventLog", "LogEvent",
    "CombatAI", "PlannedAction", "STRATEGY_DEFAULTS",
    "BatchConfig", "BatchResult", "BatchRunner", "CombatRecord",
    "CombatantView", "WorldView",
    "Side", "GridKind", "TerrainType", "AttackKind", "DefenseKind", "DamageType", "HealthStatus",
    "GrappleStatus", "GrappleRole", "MoraleStatus", "FatigueStatus", "SizeCategory", "TargetMode",
    "SpellSource", "SaveEffect", "Outcome", "SchedulerState", "RoundEventKind", "Severity",
    "StatusEffect", "PlanKind",
    "CombatError", "ValidationError", "ValidationReason", "StateInvariantViolation",
    "TurnAdvanceWhileLocked", "CombatEndedError", "IllegalTransition",
]
