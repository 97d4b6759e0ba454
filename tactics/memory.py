from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from .enums import DamageType

IMMUNE = "immune"
RESISTED = "resisted"
SAVED = "saved"
EFFECTIVE = "effective"


@dataclass
class ThreatRecord:
    threat_tags: Set[str] = field(default_factory=set)
    damage_outcomes: Dict[DamageType, str] = field(default_factory=dict)
    last_spell: Optional[str] = None
    last_spell_outcome: Optional[str] = None
    spell_failures: int = 0


@dataclass
class AiMemory:
    """What an AI fighter has learned about its opponents this encounter."""
    records: Dict[str, ThreatRecord] = field(default_factory=dict)

    def record_for(self, target_key: str) -> ThreatRecord:
        return self.records.setdefault(target_key, ThreatRecord())

    def note_damage_outcome(self, target_key: str, damage_type: DamageType, outcome: str) -> None:
        record = self.record_for(target_key)
        if record.damage_outcomes.get(damage_type) == IMMUNE and outcome != IMMUNE:
            return
        record.damage_outcomes[damage_type] = outcome

    def note_spell(self, target_key: str, spell_name: str, damage_type: Optional[DamageType], outcome: str) -> None:
        record = self.record_for(target_key)
        record.last_spell = spell_name
        record.last_spell_outcome = outcome
        if outcome == EFFECTIVE:
            record.spell_failures = 0
        else:
            record.spell_failures += 1
        if damage_type is not None:
            self.note_damage_outcome(target_key, damage_type, outcome)

    def is_known_immune(self, target_key: str, damage_type: DamageType) -> bool:
        record = self.records.get(target_key)
        return bool(record and record.damage_outcomes.get(damage_type) == IMMUNE)

    def spell_failures(self, target_key: str) -> int:
        record = self.records.get(target_key)
        return record.spell_failures if record else 0

    def tag(self, target_key: str, tag: str) -> None:
        self.record_for(target_key).threat_tags.add(tag)

    def has_tag(self, target_key: str, tag: str) -> bool:
        record = self.records.get(target_key)
        return bool(record and tag in record.threat_tags)

    def clear(self) -> None:
        self.records.clear()
