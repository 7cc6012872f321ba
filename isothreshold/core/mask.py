"""
Threshold Mask Predicate

The visibility test of the threshold effect:

    inclusive:  min <= value <= max
    exclusive:  min <  value <  max

The same definition drives CPU-side decisions (scalars and numpy arrays) and
the per-fragment mask, which is generated from the textual form returned by
MaskPredicate.to_expression(). An interval with min > max is empty and masks
everything out; it is not an error.
"""

import operator
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Tuple

import numpy as np

LESS = '<'
LESS_EQUAL = '<='

_OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    LESS: operator.lt,
    LESS_EQUAL: operator.le,
}


def comparison_operator(inclusive: bool) -> str:
    """Operator used on both sides of the interval."""
    return LESS_EQUAL if inclusive else LESS


def mask(value: float, min_value: float, max_value: float, inclusive: bool = True) -> bool:
    """Return True if value lies inside the threshold interval."""
    compare = _OPERATORS[comparison_operator(inclusive)]
    return bool(compare(min_value, value) and compare(value, max_value))


@dataclass(frozen=True)
class MaskPredicate:
    """Threshold interval test with a serializable form."""

    min: float = 0.0
    max: float = 1.0
    inclusive: bool = True

    @property
    def operator(self) -> str:
        return comparison_operator(self.inclusive)

    @property
    def is_empty(self) -> bool:
        """True if no value can pass the test."""
        if self.inclusive:
            return self.min > self.max
        return self.min >= self.max

    def __call__(self, value: float) -> bool:
        return mask(value, self.min, self.max, self.inclusive)

    def evaluate(self, values: np.ndarray) -> np.ndarray:
        """Vectorized mask over an array of values."""
        values = np.asarray(values, dtype=np.float64)
        compare = _OPERATORS[self.operator]
        return compare(self.min, values) & compare(values, self.max)

    def conditions(self, variable: str = 'value') -> List[Tuple[Any, str, Any]]:
        """
        The two comparisons making up the test, as (lhs, operator, rhs).

        A node-graph builder turns each into one conditional node and ANDs
        them together.
        """
        return [
            (self.min, self.operator, variable),
            (variable, self.operator, self.max),
        ]

    def to_expression(self, variable: str = 'value') -> str:
        """
        Shader-style boolean expression of the test, e.g.
        ``(0.0 <= value) && (value <= 1.0)``.
        """
        parts = []
        for lhs, op, rhs in self.conditions(variable):
            parts.append(f"({_format_operand(lhs)} {op} {_format_operand(rhs)})")
        return " && ".join(parts)

    def with_bounds(self, min_value: float, max_value: float) -> 'MaskPredicate':
        return MaskPredicate(min=float(min_value), max=float(max_value), inclusive=self.inclusive)

    def with_inclusive(self, inclusive: bool) -> 'MaskPredicate':
        return MaskPredicate(min=self.min, max=self.max, inclusive=bool(inclusive))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'MaskPredicate':
        return cls(
            min=float(data['min']),
            max=float(data['max']),
            inclusive=bool(data.get('inclusive', True)),
        )


def _format_operand(operand: Any) -> str:
    if isinstance(operand, str):
        return operand
    # repr keeps a decimal point, which GLSL float literals need
    return repr(float(operand))
