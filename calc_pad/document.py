"""Document-level evaluation: every edit recomputes all lines top to bottom.

Line references only ever point backwards, so one forward pass over a fresh
environment is always enough; there is no dependency graph to maintain.
"""

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from calc_pad.errors import CalcError, ErrorKind, UndefinedLineReferenceError
from calc_pad.evaluator import Evaluator
from calc_pad.formatting import format_value
from calc_pad.parser import Assignment, parse_line
from calc_pad.units import Value

logger = logging.getLogger(__name__)

# A lineN reference as the tokenizer sees it: a whole word
LINE_REF_IN_TEXT = re.compile(r"(?<![A-Za-z0-9_µ])line(\d+)(?![A-Za-z0-9_µ])")


class ResultKind(enum.Enum):
    EMPTY = "empty"
    VALUE = "value"
    ERROR = "error"


@dataclass(frozen=True)
class LineResult:
    kind: ResultKind
    value: Optional[Value] = None
    error: Optional[CalcError] = None
    variable: Optional[str] = None

    @classmethod
    def empty(cls) -> "LineResult":
        return cls(ResultKind.EMPTY)

    @classmethod
    def of_value(cls, value: Value, variable: Optional[str] = None) -> "LineResult":
        return cls(ResultKind.VALUE, value=value, variable=variable)

    @classmethod
    def of_error(cls, error: CalcError) -> "LineResult":
        return cls(ResultKind.ERROR, error=error)

    @property
    def magnitude(self) -> Optional[float]:
        return self.value.magnitude if self.value else None

    @property
    def unit_string(self) -> Optional[str]:
        if self.value is None or self.value.unit is None:
            return None
        return self.value.unit.name

    @property
    def display(self) -> Optional[str]:
        return format_value(self.value) if self.value else None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None


@dataclass
class Line:
    raw_text: str = ""
    result: LineResult = field(default_factory=LineResult.empty)
    assigned_variable: Optional[str] = None


@dataclass
class Environment:
    """Variables and line results built up during one document pass."""

    variables: Dict[str, Value] = field(default_factory=dict)
    lines: List[Line] = field(default_factory=list)

    def line_result(self, index: int) -> LineResult:
        if not 0 <= index < len(self.lines):
            raise UndefinedLineReferenceError(f"line{index + 1} has not been evaluated")
        return self.lines[index].result

    def record(self, index: int, line: Line):
        """Store the evaluated line at ``index``, padding any gap with empty lines."""
        while len(self.lines) < index:
            self.lines.append(Line())
        if index < len(self.lines):
            self.lines[index] = line
        else:
            self.lines.append(line)

    def values_before(self, index: int) -> List[Value]:
        return [line.result.value for line in self.lines[:index] if line.result.value is not None]


def evaluate_line(text: str, line_index: int, environment: Environment) -> LineResult:
    """Evaluate one line against the lines and variables before it.

    Never raises for bad input: a line without an expression is EMPTY and any
    calculation problem comes back as an ERROR result. Assignments are stored
    in ``environment.variables`` and the result is recorded in
    ``environment.lines``, so later lines can refer to it.
    """
    try:
        result = _evaluate(text, line_index, environment)
    except CalcError as e:
        logger.debug(f"Line {line_index + 1} '{text}' failed with {e.kind.value}: {e}")
        result = LineResult.of_error(e)

    environment.record(line_index, Line(text, result, result.variable))
    return result


def _evaluate(text: str, line_index: int, environment: Environment) -> LineResult:
    node = parse_line(text, environment.variables.keys())
    if node is None:
        return LineResult.empty()
    value = Evaluator(environment, line_index).evaluate(node)
    if isinstance(node, Assignment):
        environment.variables[node.name] = value
        return LineResult.of_value(value, variable=node.name)
    return LineResult.of_value(value)


def shift_line_references(
    text: str, start: int, delta: int, removed: Optional[int] = None
) -> str:
    """Renumber ``lineN`` references after lines move.

    References to lines at 0-based index ``start`` or later move by ``delta``;
    a reference to the ``removed`` line becomes ``line0``, which never resolves.
    """

    def replace(match):
        index = int(match.group(1)) - 1
        if removed is not None and index == removed:
            return "line0"
        if index >= start:
            return f"line{index + 1 + delta}"
        return match.group(0)

    return LINE_REF_IN_TEXT.sub(replace, text)


def serialize_lines(lines: Iterable[str]) -> str:
    return "\n".join(lines)


def deserialize_lines(content: str) -> List[str]:
    if not content:
        return [""]
    return content.replace("\r\n", "\n").split("\n")


class Document:
    """An ordered list of notepad lines with their computed results."""

    def __init__(self, lines: Optional[Iterable[str]] = None):
        texts = [""] if lines is None else list(lines)
        self._lines = [Line(text) for text in texts]
        self.environment = Environment()
        self.recompute()

    def __len__(self):
        return len(self._lines)

    @property
    def lines(self) -> List[Line]:
        return list(self._lines)

    @property
    def texts(self) -> List[str]:
        return [line.raw_text for line in self._lines]

    @property
    def results(self) -> List[LineResult]:
        return [line.result for line in self._lines]

    @property
    def variables(self) -> Dict[str, Value]:
        return dict(self.environment.variables)

    # --- Editing ---

    def set_content(self, content: str):
        self._lines = [Line(text) for text in deserialize_lines(content)]
        self.recompute()

    def get_content(self) -> str:
        return serialize_lines(self.texts)

    def set_line(self, index: int, text: str):
        if index < 0:
            raise IndexError(f"Line index {index} is out of range")
        while len(self._lines) <= index:
            self._lines.append(Line())
        self._lines[index].raw_text = text
        self.recompute()

    def append_line(self, text: str) -> LineResult:
        self._lines.append(Line(text))
        self.recompute()
        return self._lines[-1].result

    def insert_line(self, index: int, text: str = ""):
        if not 0 <= index <= len(self._lines):
            raise IndexError(f"Line index {index} is out of range")
        for line in self._lines:
            line.raw_text = shift_line_references(line.raw_text, start=index, delta=1)
        self._lines.insert(index, Line(text))
        self.recompute()

    def delete_line(self, index: int):
        if not 0 <= index < len(self._lines):
            raise IndexError(f"Line index {index} is out of range")
        del self._lines[index]
        for line in self._lines:
            line.raw_text = shift_line_references(
                line.raw_text, start=index + 1, delta=-1, removed=index
            )
        self.recompute()

    # --- Evaluation ---

    def recompute(self):
        """Re-evaluate every line from the top with a fresh environment."""
        self.environment = Environment()
        for index, line in enumerate(self._lines):
            line.result = evaluate_line(line.raw_text, index, self.environment)
            line.assigned_variable = line.result.variable

        errors = sum(1 for line in self._lines if line.result.kind is ResultKind.ERROR)
        logger.debug(f"Recomputed {len(self._lines)} lines ({errors} with errors)")
