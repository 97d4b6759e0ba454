"""Engine exceptions."""

from enum import Enum


class ValidationReason(Enum):
    INVALID_TARGET = "invalid_target"
    OUT_OF_RANGE = "out_of_range"
    NO_LINE_OF_SIGHT = "no_line_of_sight"
    NO_AMMO = "no_ammo"
    NO_ACTIONS = "no_actions"
    CANNOT_ACT = "cannot_act"
    INSUFFICIENT_RESOURCE = "insufficient_resource"
    SPELL_CAP_REACHED = "spell_cap_reached"
    WEAPON_UNUSABLE = "weapon_unusable"
    ILLEGAL_ACTION = "illegal_action"
    REQUIRES_DIVE = "requires_dive"


class CombatError(Exception):
    """Base class for combat engine errors."""


class ValidationError(CombatError):
    """Raised when an action request is invalid; the action is aborted."""

    def __init__(self, reason: ValidationReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason
        self.message = message or reason.value


class StateInvariantViolation(CombatError):
    """Raised when engine state would become inconsistent. Indicates a caller bug."""


class TurnAdvanceWhileLocked(StateInvariantViolation):
    """Raised when a turn advance is requested while another is in flight."""


class IllegalTransition(StateInvariantViolation):
    """Raised when a sub-state machine is asked for a transition it does not allow."""


class CombatEndedError(CombatError):
    """Raised internally when a mutation is attempted after combat has ended."""
