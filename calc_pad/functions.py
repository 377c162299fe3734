import math
from abc import ABC, abstractmethod
from typing import Dict, Optional

from calc_pad.errors import CalcError, DomainError
from calc_pad.units import Value


# --- Function Interface and Implementations ---
class FunctionInterface(ABC):
    name = ""
    takes_argument = True

    @abstractmethod
    def apply(self, argument: Optional[Value], evaluator) -> Value:
        pass


class SqrtFunction(FunctionInterface):
    name = "sqrt"

    def apply(self, argument: Optional[Value], evaluator) -> Value:
        if argument.unit is not None:
            raise DomainError(f"sqrt needs a plain number, got {argument.unit.name}")
        if argument.magnitude < 0:
            raise DomainError("Cannot take the square root of a negative number")
        return Value(math.sqrt(argument.magnitude))


class SumAboveFunction(FunctionInterface):
    """Adds up the results of every earlier line in the document.

    Lines whose values cannot be added to the running total (a different
    dimension or currency) are left out of the sum.
    """

    name = "sum_above"
    takes_argument = False

    def apply(self, argument: Optional[Value], evaluator) -> Value:
        total = None
        for value in evaluator.environment.values_before(evaluator.line_index):
            if total is None:
                total = value
                continue
            try:
                total = evaluator.add(total, value)
            except CalcError:
                continue
        return total if total is not None else Value(0.0)


# --- Function Registration ---
REGISTERED_FUNCTIONS = [
    SqrtFunction(),  # sqrt(16)
    SumAboveFunction(),  # sum_above()
]

FUNCTIONS: Dict[str, FunctionInterface] = {f.name: f for f in REGISTERED_FUNCTIONS}


def get_function(name: str) -> Optional[FunctionInterface]:
    return FUNCTIONS.get(name)
