import enum
from typing import Optional, Tuple


class ErrorKind(enum.Enum):
    PARSE_ERROR = "ParseError"
    UNDEFINED_VARIABLE = "UndefinedVariable"
    UNDEFINED_LINE_REFERENCE = "UndefinedLineReference"
    DIMENSION_MISMATCH = "DimensionMismatch"
    CURRENCY_MISMATCH = "CurrencyMismatch"
    INCOMPATIBLE_UNITS = "IncompatibleUnits"
    DOMAIN_ERROR = "DomainError"
    DIVISION_BY_ZERO = "DivisionByZero"


class CalcError(Exception):
    """Base class for every error a single line can produce.

    Errors are local to the line that raised them; the document pass records
    them on that line and carries on with the next one.
    """

    kind = ErrorKind.PARSE_ERROR

    def __init__(self, message: str, span: Optional[Tuple[int, int]] = None):
        super().__init__(message)
        self.message = message
        self.span = span

    def __str__(self):
        return self.message


# --- Parse errors ---


class ParseError(CalcError):
    kind = ErrorKind.PARSE_ERROR


class InvalidNumberError(ParseError):
    pass


class UnknownFunctionError(ParseError):
    pass


# --- Evaluation errors ---


class UndefinedVariableError(CalcError):
    kind = ErrorKind.UNDEFINED_VARIABLE


class UndefinedLineReferenceError(CalcError):
    kind = ErrorKind.UNDEFINED_LINE_REFERENCE


class DimensionMismatchError(CalcError):
    kind = ErrorKind.DIMENSION_MISMATCH


class CurrencyMismatchError(CalcError):
    kind = ErrorKind.CURRENCY_MISMATCH


class IncompatibleUnitsError(CalcError):
    kind = ErrorKind.INCOMPATIBLE_UNITS


class DomainError(CalcError):
    kind = ErrorKind.DOMAIN_ERROR


class DivisionByZeroError(CalcError):
    kind = ErrorKind.DIVISION_BY_ZERO
