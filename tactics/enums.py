from enum import Enum, auto


class Side(Enum):
    ALLY = "ally"
    ENEMY = "enemy"

    def opponent(self) -> "Side":
        return Side.ENEMY if self is Side.ALLY else Side.ALLY


class GridKind(Enum):
    HEX = "hex"
    SQUARE = "square"


class TerrainType(Enum):
    NORMAL = "normal"
    FOREST = "forest"
    WATER = "water"
    MOUNTAIN = "mountain"
    ROAD = "road"
    WALL = "wall"


class AttackKind(Enum):
    MELEE = "melee"
    RANGED = "ranged"
    THROWN = "thrown"


class DefenseKind(Enum):
    AUTO = "auto"
    PARRY = "parry"
    DODGE = "dodge"
    NONE = "none"


class DamageType(Enum):
    PHYSICAL = "physical"
    FIRE = "fire"
    COLD = "cold"
    ELECTRIC = "electric"
    ACID = "acid"
    POISON = "poison"
    PSYCHIC = "psychic"
    HOLY = "holy"
    MAGIC = "magic"


class HealthStatus(Enum):
    CONSCIOUS = "conscious"
    UNCONSCIOUS = "unconscious"
    DYING = "dying"
    CRITICAL = "critical"
    DEAD = "dead"


class GrappleStatus(Enum):
    NEUTRAL = "neutral"
    CLINCH = "clinch"
    GROUND = "ground"
    GRAPPLED = "grappled"


class GrappleRole(Enum):
    NONE = "none"
    ATTACKER = "attacker"
    DEFENDER = "defender"

    def swapped(self) -> "GrappleRole":
        if self is GrappleRole.ATTACKER:
            return GrappleRole.DEFENDER
        if self is GrappleRole.DEFENDER:
            return GrappleRole.ATTACKER
        return GrappleRole.NONE


class MoraleStatus(Enum):
    STEADY = "steady"
    SHAKEN = "shaken"
    ROUTED = "routed"
    SURRENDERED = "surrendered"


class FatigueStatus(Enum):
    READY = "ready"
    TIRED = "tired"
    COLLAPSE_RISK = "collapse_risk"
    COLLAPSED = "collapsed"
    EXHAUSTED = "exhausted"


class SizeCategory(Enum):
    TINY = "tiny"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    HUGE = "huge"
    GIANT = "giant"


class TargetMode(Enum):
    ENEMY = "enemy"
    ALLY = "ally"
    SELF = "self"
    ANY = "any"


class SpellSource(Enum):
    MAGIC = "magic"
    PSIONIC = "psionic"


class SaveEffect(Enum):
    NONE = "none"
    NEGATE = "negate"
    HALF = "half"


class Outcome(Enum):
    VICTORY = "victory"
    DEFEAT = "defeat"
    DRAW = "draw"


class SchedulerState(Enum):
    IDLE = "idle"
    ACTOR_TURN = "actor_turn"
    ROUND_TRANSITION = "round_transition"
    COMBAT_ENDED = "combat_ended"


class RoundEventKind(Enum):
    NEXT_ACTOR = "next_actor"
    NEW_ROUND = "new_round"
    COMBAT_ENDED = "combat_ended"


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class StatusEffect(Enum):
    PRONE = auto()
    FRIGHTENED = auto()
    HESITANT = auto()
    FLEEING = auto()
    STUNNED = auto()
    HIDDEN = auto()
    BLEEDING = auto()
    STABILIZED = auto()


class PlanKind(Enum):
    ATTACK = "attack"
    CAST = "cast"
    MOVE = "move"
    CHARGE = "charge"
    DIVE = "dive"
    TAKE_OFF = "take_off"
    CLIMB = "climb"
    FLEE = "flee"
    GRAPPLE = "grapple"
    HEAL = "heal"
    MORALE = "morale"
    REST = "rest"
    HOLD = "hold"
    PROWL = "prowl"
    END_TURN = "end_turn"
