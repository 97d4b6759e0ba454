"""
Spell and psionic resolution.

A cast is validated in a fixed order (actions, resource, per-round cap,
target, range and sight) and nothing is spent until every check passes.
Immunity is tested before the saving throw: an immune target is simply
unaffected, it never "resists".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from . import fatigue, pain
from .enums import SaveEffect, Severity, SpellSource, StatusEffect, TargetMode
from .errors import ValidationError, ValidationReason
from .memory import EFFECTIVE, IMMUNE, RESISTED, SAVED
from .spells import Spell

if TYPE_CHECKING:
    from .combatant import Combatant
    from .engine import CombatEngine

logger = logging.getLogger(__name__)


@dataclass
class CastOutcome:
    cast_id: str
    caster_id: str
    target_id: str
    spell: str
    cost: int = 0
    save_roll: int = 0
    save_total: int = 0
    save_target: int = 0
    saved: bool = False
    immune: bool = False
    resisted: bool = False
    damage: int = 0
    healed: int = 0
    status_applied: bool = False
    flight_granted: bool = False
    stabilized: bool = False
    duplicate: bool = False
    action_spent: bool = False
    combat_ended: bool = False
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def save_target(caster: "Combatant", spell: Spell, rules) -> int:
    base = rules.magic_save_base if spell.source == SpellSource.MAGIC else rules.psionic_save_base
    return base + max(0, caster.level - 1) // rules.save_levels_per_step


def save_bonus(target: "Combatant", spell: Spell) -> int:
    key = "magic" if spell.source == SpellSource.MAGIC else "psionics"
    return target.save_bonuses.get(key, 0)


class SpellResolver:
    def __init__(self, engine: "CombatEngine"):
        self.engine = engine

    def validate(self, caster: "Combatant", target: "Combatant", spell: Spell) -> None:
        engine = self.engine
        if not caster.can_act:
            raise ValidationError(ValidationReason.CANNOT_ACT, f"{caster.name} cannot act")
        if caster.actions_remaining < spell.actions_required:
            raise ValidationError(ValidationReason.NO_ACTIONS,
                                  f"{caster.name} needs {spell.actions_required} action(s) for {spell.name}")
        if caster.resource_for(spell.source) < spell.cost:
            raise ValidationError(ValidationReason.INSUFFICIENT_RESOURCE,
                                  f"{caster.name} has {caster.resource_for(spell.source)} {spell.resource_name}, "
                                  f"{spell.name} costs {spell.cost}")
        if caster.cast_this_round:
            raise ValidationError(ValidationReason.SPELL_CAP_REACHED,
                                  f"{caster.name} has already cast this melee round")
        if spell.is_offensive and not caster.can_attack:
            raise ValidationError(ValidationReason.ILLEGAL_ACTION,
                                  f"{caster.name} is {caster.morale.status.value} and cannot attack")
        self._check_target(caster, target, spell)
        if target is caster or engine.tactical_map is None or caster.position is None or target.position is None:
            return
        distance = engine.tactical_map.distance_3d_ft(caster.position, target.position)
        if distance > spell.range_ft:
            raise ValidationError(ValidationReason.OUT_OF_RANGE,
                                  f"{target.name} is {distance}ft away, {spell.name} reaches {spell.range_ft}ft")
        if not engine.tactical_map.has_line_of_sight(caster.position.cell, target.position.cell):
            raise ValidationError(ValidationReason.NO_LINE_OF_SIGHT, f"{caster.name} cannot see {target.name}")

    def _check_target(self, caster: "Combatant", target: "Combatant", spell: Spell) -> None:
        if target.id not in self.engine.roster or not target.is_alive or target.fled:
            raise ValidationError(ValidationReason.INVALID_TARGET, f"{target.name} is not a valid target")
        mode = spell.target_mode
        if mode == TargetMode.SELF and target is not caster:
            raise ValidationError(ValidationReason.INVALID_TARGET, f"{spell.name} can only target the caster")
        if mode == TargetMode.ENEMY and target.side == caster.side:
            raise ValidationError(ValidationReason.INVALID_TARGET, f"{spell.name} must target an enemy")
        if mode == TargetMode.ALLY and target.side != caster.side:
            raise ValidationError(ValidationReason.INVALID_TARGET, f"{spell.name} must target an ally")
        if spell.stops_bleeding:
            if target.has_status(StatusEffect.STABILIZED):
                raise ValidationError(ValidationReason.ILLEGAL_ACTION, f"{target.name} is already stabilized")
            if not target.has_status(StatusEffect.BLEEDING):
                raise ValidationError(ValidationReason.INVALID_TARGET, f"{target.name} is not bleeding")
            if self._bleed_key(target) in self.engine.scheduler.processed:
                raise ValidationError(ValidationReason.ILLEGAL_ACTION,
                                      f"{target.name} has already been tended this melee round")

    def _bleed_key(self, target: "Combatant") -> str:
        return f"stopbleed:{self.engine.round}:{target.id}"

    def cast(self, caster: "Combatant", target: "Combatant", spell: Spell,
             cast_id: Optional[str] = None) -> CastOutcome:
        engine = self.engine
        engine.ensure_active()
        outcome = CastOutcome(cast_id or engine.next_id("cast"), caster.id, target.id, spell.name)
        effect_key = f"cast:{outcome.cast_id}:{target.id}"
        if effect_key in engine.scheduler.processed:
            outcome.duplicate = True
            logger.debug("cast %s on %s already applied", outcome.cast_id, target.id)
            return outcome
        try:
            self.validate(caster, target, spell)
        except ValidationError as err:
            outcome.error = err
            engine.log(f"{spell.name} aborted: {err.message}", Severity.WARNING, caster)
            if caster.is_ai and caster.actions_remaining > 0:
                caster.spend_actions(1)
                outcome.action_spent = True
            return outcome

        engine.scheduler.mark_processed(effect_key)
        caster.spend_resource(spell.source, spell.cost)
        engine.scheduler.spend_action(caster, spell.actions_required)
        caster.cast_this_round = True
        outcome.cost = spell.cost
        outcome.action_spent = True
        fatigue.drain_stamina(caster, "spellcasting", engine.rules)
        engine.log(f"{caster.name} casts {spell.name} on {target.name} ({spell.cost} {spell.resource_name}).",
                   Severity.INFO, caster)

        if spell.is_healing:
            amount = engine.dice.roll(spell.healing).total
            outcome.healed = engine.heal(target, amount, source=caster)
            return outcome
        if spell.stops_bleeding:
            engine.scheduler.mark_processed(self._bleed_key(target))
            outcome.stabilized = pain.stop_bleeding(target)
            engine.log(f"{target.name}'s bleeding is stopped.", Severity.INFO, target)
            return outcome
        if spell.grants_flight:
            target.flight.granted = True
            outcome.flight_granted = True
            engine.log(f"{target.name} can now fly.", Severity.INFO, target)
            return outcome

        key = target.id
        if spell.damage and spell.damage_type in target.immunities:
            outcome.immune = True
            caster.memory.note_spell(key, spell.name, spell.damage_type, IMMUNE)
            engine.log(f"{target.name} is unaffected by {spell.name}.", Severity.INFO, target)
            return outcome

        multiplier = 1.0
        if spell.save_effect != SaveEffect.NONE:
            roll = engine.dice.d20()
            total = roll + save_bonus(target, spell)
            outcome.save_roll, outcome.save_total = roll, total
            outcome.save_target = save_target(caster, spell, engine.rules)
            outcome.saved = total >= outcome.save_target
            if outcome.saved:
                engine.log(f"{target.name} saves against {spell.name} ({total} vs {outcome.save_target}).",
                           Severity.INFO, target)
                if spell.save_effect == SaveEffect.NEGATE or not spell.damage:
                    caster.memory.note_spell(key, spell.name, spell.damage_type if spell.damage else None, SAVED)
                    return outcome
                multiplier = 0.5

        if spell.status_effect is not None and not outcome.saved:
            target.apply_status(spell.status_effect, spell.status_rounds)
            outcome.status_applied = True
            engine.log(f"{target.name} is {spell.status_effect.name.lower()} for {spell.status_rounds} round(s).",
                       Severity.INFO, target)

        if spell.damage:
            amount = int(engine.dice.roll(spell.damage).total * multiplier)
            memo = SAVED if outcome.saved else EFFECTIVE
            if spell.damage_type in target.resistances:
                amount //= 2
                outcome.resisted = True
                memo = RESISTED
            caster.memory.note_spell(key, spell.name, spell.damage_type, memo)
            engine.log(f"{spell.name} deals {amount} damage to {target.name}.", Severity.INFO, caster)
            outcome.damage = engine.apply_damage(target, amount, spell.damage_type,
                                                 effect_id=f"{outcome.cast_id}:{target.id}", source=caster,
                                                 already_adjusted=True)
        else:
            caster.memory.note_spell(key, spell.name, None, EFFECTIVE)
        outcome.combat_ended = engine.is_combat_ended()
        return outcome
