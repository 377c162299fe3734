import logging
import math

from calc_pad.errors import (
    DimensionMismatchError,
    DivisionByZeroError,
    DomainError,
    IncompatibleUnitsError,
    UndefinedLineReferenceError,
    UndefinedVariableError,
)
from calc_pad.functions import get_function
from calc_pad.parser import (
    Assignment,
    BinaryOp,
    ConvertTo,
    FunctionCall,
    LineRef,
    Literal,
    Node,
    UnaryMinus,
    VariableRef,
)
from calc_pad.units import Dimension, Value, check_same_currency, get_catalog

logger = logging.getLogger(__name__)


class Evaluator:
    """Evaluates one line's expression tree against the document so far.

    ``environment`` supplies variables and the results of earlier lines; the
    evaluator never looks at lines at or after ``line_index``.
    """

    def __init__(self, environment, line_index: int):
        self.environment = environment
        self.line_index = line_index
        self.catalog = get_catalog()

    def evaluate(self, node: Node) -> Value:
        method = getattr(self, f"_eval_{type(node).__name__}")
        result = method(node)
        if not math.isfinite(result.magnitude):
            raise DomainError("Result is too large to represent")
        return result

    # --- Leaves ---

    def _eval_Literal(self, node: Literal) -> Value:
        return node.value

    def _eval_VariableRef(self, node: VariableRef) -> Value:
        value = self.environment.variables.get(node.name)
        if value is None:
            raise UndefinedVariableError(f"Undefined variable '{node.name}'")
        return value

    def _eval_LineRef(self, node: LineRef) -> Value:
        label = f"line{node.index + 1}"
        if node.index < 0 or node.index >= self.line_index:
            raise UndefinedLineReferenceError(
                f"{label} does not refer to an earlier line"
            )
        result = self.environment.line_result(node.index)
        if result.error is not None:
            raise UndefinedLineReferenceError(f"{label} has an error: {result.error.message}")
        if result.value is None:
            raise UndefinedLineReferenceError(f"{label} has no value")
        return result.value

    # --- Composite nodes ---

    def _eval_Assignment(self, node: Assignment) -> Value:
        return self.evaluate(node.expr)

    def _eval_UnaryMinus(self, node: UnaryMinus) -> Value:
        operand = self.evaluate(node.operand)
        return Value(-operand.magnitude, operand.unit)

    def _eval_FunctionCall(self, node: FunctionCall) -> Value:
        argument = self.evaluate(node.argument) if node.argument is not None else None
        return get_function(node.name).apply(argument, self)

    def _eval_ConvertTo(self, node: ConvertTo) -> Value:
        return self.catalog.convert(self.evaluate(node.expr), node.target)

    def _eval_BinaryOp(self, node: BinaryOp) -> Value:
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        if node.op == "+":
            return self.add(left, right)
        if node.op == "-":
            return self.add(left, Value(-right.magnitude, right.unit))
        if node.op in ("*", "of"):
            return self.multiply(left, right)
        if node.op == "/":
            return self.divide(left, right)
        if node.op == "^":
            return self.power(left, right)
        raise ValueError(f"Unknown operator '{node.op}'")

    # --- Arithmetic ---

    def add(self, left: Value, right: Value) -> Value:
        """Add two values of the same dimension, answering in the left unit."""
        if left.dimension is not right.dimension:
            raise DimensionMismatchError(
                f"Cannot add {_describe(left)} and {_describe(right)}"
            )
        if left.unit is None:
            return Value(left.magnitude + right.magnitude)
        check_same_currency(left.unit, right.unit)
        total = left.to_base() + right.to_base()
        return Value(left.unit.from_base(total), left.unit)

    def multiply(self, left: Value, right: Value) -> Value:
        left, right = _as_fraction(left), _as_fraction(right)
        if right.unit is None:
            return Value(left.magnitude * right.magnitude, left.unit)
        if left.unit is None:
            return Value(left.magnitude * right.magnitude, right.unit)
        return self.catalog.compose("*", left, right)

    def divide(self, left: Value, right: Value) -> Value:
        left, right = _as_fraction(left), _as_fraction(right)
        if right.magnitude == 0:
            raise DivisionByZeroError("Division by zero")
        if right.unit is None:
            return Value(left.magnitude / right.magnitude, left.unit)
        if left.unit is None:
            raise IncompatibleUnitsError(
                f"Cannot divide a plain number by {right.unit.name}"
            )
        if left.dimension is right.dimension:
            check_same_currency(left.unit, right.unit)
            return Value(left.to_base() / right.to_base())
        return self.catalog.compose("/", left, right)

    def power(self, base: Value, exponent: Value) -> Value:
        base = _as_fraction(base)
        if exponent.unit is not None:
            raise DomainError(f"Exponent must be a plain number, got {exponent.unit.name}")
        if base.unit is None:
            try:
                result = base.magnitude ** exponent.magnitude
            except (OverflowError, ZeroDivisionError) as e:
                raise DomainError(f"Cannot raise {base.magnitude} to {exponent.magnitude}: {e}")
            if isinstance(result, complex):
                raise DomainError("Fractional power of a negative number")
            return Value(result)

        if not float(exponent.magnitude).is_integer() or exponent.magnitude < 0:
            raise DomainError(
                f"Cannot raise {base.unit.name} to a non-integer or negative power"
            )
        result = Value(1.0)
        for _ in range(int(exponent.magnitude)):
            result = self.multiply(result, base)
        return result


def _as_fraction(value: Value) -> Value:
    # Percentages scale like plain numbers in products and quotients
    if value.dimension is Dimension.PERCENTAGE:
        return Value(value.to_base())
    return value


def _describe(value: Value) -> str:
    if value.unit is None:
        return "a plain number"
    return f"{value.unit.name} ({value.dimension.value})"
