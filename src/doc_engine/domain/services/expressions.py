"""Expression language for derived fields.

Expressions are written in Mongo style and compiled into a small tree:

    "$published_year"                      field reference
    2000, "s", True, None                  literals
    {"$floor": {"$divide": ["$published_year", 10]}}
    {"$concat": [{"$toString": "$decade"}, "s"]}

Supported operators: $add, $subtract, $multiply, $divide, $floor, $concat,
$toString and $literal. Evaluation is permissive: null, absent or
mistyped operands and division by zero produce None instead of raising.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from doc_engine.domain.value_objects import ABSENT, is_number, is_scalar
from doc_engine.ports.inbound.query_engine import InvalidSpecificationError


@dataclass(frozen=True)
class Expression(ABC):
    """Base class for expressions."""

    @abstractmethod
    def evaluate(self, record: Any) -> Any:
        """Compute the value for a record. May return ABSENT for field refs."""

    @abstractmethod
    def __str__(self) -> str:
        pass


@dataclass(frozen=True)
class FieldRef(Expression):
    """Reference to a record field."""

    name: str

    def evaluate(self, record: Any) -> Any:
        return record.get(self.name, ABSENT)

    def __str__(self) -> str:
        return f"${self.name}"


@dataclass(frozen=True)
class LiteralValue(Expression):
    """Constant value."""

    value: Any

    def evaluate(self, record: Any) -> Any:
        return self.value

    def __str__(self) -> str:
        return repr(self.value)


@dataclass(frozen=True)
class OperatorCall(Expression):
    """Operator applied to argument expressions."""

    name: str
    args: tuple[Expression, ...]

    def evaluate(self, record: Any) -> Any:
        values = []
        for arg in self.args:
            value = arg.evaluate(record)
            values.append(None if value is ABSENT else value)
        return _OPERATORS[self.name].function(values)

    def __str__(self) -> str:
        return f"${self.name}({', '.join(str(a) for a in self.args)})"


def _numbers(values: list[Any]) -> list[Any] | None:
    if all(is_number(v) for v in values):
        return values
    return None


def _add(values: list[Any]) -> Any:
    numbers = _numbers(values)
    return None if numbers is None else sum(numbers)


def _subtract(values: list[Any]) -> Any:
    numbers = _numbers(values)
    return None if numbers is None else numbers[0] - numbers[1]


def _multiply(values: list[Any]) -> Any:
    numbers = _numbers(values)
    return None if numbers is None else math.prod(numbers)


def _divide(values: list[Any]) -> Any:
    numbers = _numbers(values)
    if numbers is None or numbers[1] == 0:
        return None
    return numbers[0] / numbers[1]


def _floor(values: list[Any]) -> Any:
    numbers = _numbers(values)
    if numbers is None or not math.isfinite(numbers[0]):
        return None
    return math.floor(numbers[0])


def _concat(values: list[Any]) -> Any:
    if all(isinstance(v, str) for v in values):
        return "".join(values)
    return None


def to_string(value: Any) -> str | None:
    """Render a scalar the way the pipeline displays it.

    Integral floats drop their fractional part (``2000.0`` -> ``"2000"``)
    and booleans render in lower case.
    """
    if value is None or value is ABSENT:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_string(values: list[Any]) -> Any:
    return to_string(values[0])


@dataclass(frozen=True)
class _OperatorSpec:
    function: Callable[[list[Any]], Any]
    min_args: int
    max_args: int | None


_OPERATORS: dict[str, _OperatorSpec] = {
    "add": _OperatorSpec(_add, 1, None),
    "subtract": _OperatorSpec(_subtract, 2, 2),
    "multiply": _OperatorSpec(_multiply, 1, None),
    "divide": _OperatorSpec(_divide, 2, 2),
    "floor": _OperatorSpec(_floor, 1, 1),
    "concat": _OperatorSpec(_concat, 1, None),
    "toString": _OperatorSpec(_to_string, 1, 1),
}


def compile_expression(spec: Any) -> Expression:
    """Compile an expression specification.

    Raises:
        InvalidSpecificationError: For unknown operators, wrong argument
            counts or unsupported literal types.
    """
    if isinstance(spec, Expression):
        return spec
    if isinstance(spec, str) and spec.startswith("$"):
        if len(spec) == 1:
            raise InvalidSpecificationError("Empty field reference '$'")
        return FieldRef(spec[1:])
    if isinstance(spec, Mapping):
        return _compile_operator(spec)
    if is_scalar(spec):
        return LiteralValue(spec)
    raise InvalidSpecificationError(f"Unsupported expression: {spec!r}")


def _compile_operator(spec: Mapping[Any, Any]) -> Expression:
    if len(spec) != 1:
        raise InvalidSpecificationError(
            f"Operator expression must have exactly one key, got {list(spec)}"
        )
    (raw_name, raw_args), = spec.items()
    if not isinstance(raw_name, str) or not raw_name.startswith("$"):
        raise InvalidSpecificationError(f"Expected an operator like '$add', got {raw_name!r}")
    name = raw_name[1:]

    if name == "literal":
        if not is_scalar(raw_args):
            raise InvalidSpecificationError(f"$literal needs a scalar, got {raw_args!r}")
        return LiteralValue(raw_args)

    operator = _OPERATORS.get(name)
    if operator is None:
        raise InvalidSpecificationError(f"Unknown expression operator '{raw_name}'")

    arg_specs = list(raw_args) if isinstance(raw_args, (list, tuple)) else [raw_args]
    if len(arg_specs) < operator.min_args or (
        operator.max_args is not None and len(arg_specs) > operator.max_args
    ):
        raise InvalidSpecificationError(
            f"'{raw_name}' takes {operator.min_args}"
            f"{'' if operator.max_args == operator.min_args else '+'} argument(s), "
            f"got {len(arg_specs)}"
        )
    return OperatorCall(name, tuple(compile_expression(arg) for arg in arg_specs))


def evaluate_expression(expression: Expression, record: Any) -> Any:
    """Evaluate and fold ABSENT into None."""
    value = expression.evaluate(record)
    return None if value is ABSENT else value
