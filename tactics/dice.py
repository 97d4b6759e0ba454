import logging
import random
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

_EXPR = re.compile(r"^\s*(\d*)\s*[dD]\s*(\d+)\s*(?:[xX*]\s*(\d+))?\s*([+-]\s*\d+)?\s*$")
_NUMBER = re.compile(r"^\s*([+-]?\d+)\s*$")


@dataclass(frozen=True)
class RollResult:
    expression: str
    total: int
    dice: Tuple[int, ...] = ()
    modifier: int = 0
    multiplier: int = 1

    @property
    def natural(self) -> int:
        return self.dice[0] if self.dice else self.total


def parse_expression(expression: str) -> Tuple[int, int, int, int]:
    """Split a dice expression into (count, sides, multiplier, modifier).

    ``"2d6+3"`` -> (2, 6, 1, 3); ``"1d6x10"`` -> (1, 6, 10, 0); a plain number
    such as ``"7"`` -> (0, 0, 1, 7).
    """
    text = str(expression)
    number = _NUMBER.match(text)
    if number:
        return 0, 0, 1, int(number.group(1))
    match = _EXPR.match(text)
    if not match:
        raise ValueError(f"Malformed dice expression: {expression!r}")
    count = int(match.group(1)) if match.group(1) else 1
    sides = int(match.group(2))
    multiplier = int(match.group(3)) if match.group(3) else 1
    modifier = int(match.group(4).replace(" ", "")) if match.group(4) else 0
    if count <= 0 or sides <= 0:
        raise ValueError(f"Dice count and sides must be positive: {expression!r}")
    return count, sides, multiplier, modifier


class DiceRoller:
    """Evaluates dice expressions against an injectable RNG."""

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random(seed)

    def roll_die(self, sides: int) -> int:
        return self.rng.randint(1, sides)

    def d20(self) -> int:
        return self.roll_die(20)

    def roll(self, expression) -> RollResult:
        count, sides, multiplier, modifier = parse_expression(expression)
        faces = tuple(self.roll_die(sides) for _ in range(count))
        total = sum(faces) * multiplier + modifier
        logger.debug("roll %s -> %s = %d", expression, faces, total)
        return RollResult(str(expression), total, faces, modifier, multiplier)


class ScriptedDice(DiceRoller):
    """Returns pre-set die faces in order. Used for replays and tests."""

    def __init__(self, values: Iterable[int]):
        super().__init__(seed=0)
        self.values: List[int] = list(values)
        self.consumed: List[int] = []

    def push(self, *values: int) -> None:
        self.values.extend(values)

    def remaining(self) -> int:
        return len(self.values)

    def roll_die(self, sides: int) -> int:
        if not self.values:
            raise ValueError(f"Scripted dice exhausted (wanted a d{sides})")
        value = self.values.pop(0)
        if not 1 <= value <= sides:
            raise ValueError(f"Scripted face {value} is not valid for a d{sides}")
        self.consumed.append(value)
        return value

