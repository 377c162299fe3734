import logging
import re
from dataclasses import dataclass
from typing import Collection, List, Optional, Union

from calc_pad.errors import ParseError
from calc_pad.functions import get_function
from calc_pad.tokenizer import LINE_REF_PATTERN, Token, TokenKind, tokenize
from calc_pad.units import UnitSpec, Value

logger = logging.getLogger(__name__)


# --- Expression Nodes ---


@dataclass
class Literal:
    value: Value


@dataclass
class VariableRef:
    name: str


@dataclass
class LineRef:
    index: int


@dataclass
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


@dataclass
class UnaryMinus:
    operand: "Node"


@dataclass
class FunctionCall:
    name: str
    argument: Optional["Node"]


@dataclass
class ConvertTo:
    expr: "Node"
    target: UnitSpec


@dataclass
class Assignment:
    name: str
    expr: "Node"


Node = Union[Literal, VariableRef, LineRef, BinaryOp, UnaryMinus, FunctionCall, ConvertTo, Assignment]

# --- Assignment Pattern ---
# Regex to capture 'var_name = expression_body'
ASSIGNMENT_PATTERN = re.compile(r"^\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*=\s*(.+)$")

# Tokens that can start or carry a value; a line without any has no expression
VALUE_KINDS = frozenset(
    {TokenKind.NUMBER, TokenKind.IDENT, TokenKind.LINE_REF, TokenKind.FUNCTION, TokenKind.CURRENCY}
)


class LeftoverTokensError(ParseError):
    """An expression parsed, but unrelated tokens followed it."""


class Parser:
    """Recursive-descent parser over one line's tokens.

    Precedence, lowest first: ``to``/``in`` conversion, ``+ -``,
    ``* / of``, ``^`` (right-associative), then unary minus and calls.
    """

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0

    def parse(self) -> Node:
        node = self._conversion()
        if self.pos < len(self.tokens):
            token = self.tokens[self.pos]
            raise LeftoverTokensError(f"Unexpected '{token.text}'", token.span)
        return node

    # --- Helpers ---

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _at(self, kind: TokenKind, *values) -> bool:
        token = self._peek()
        if token is None or token.kind is not kind:
            return False
        return not values or token.value in values

    def _expect(self, kind: TokenKind, description: str) -> Token:
        token = self._peek()
        if token is None:
            end = self.tokens[-1].span[1] if self.tokens else 0
            raise ParseError(f"Expected {description} at end of expression", (end, end))
        if token.kind is not kind:
            raise ParseError(f"Expected {description}, found '{token.text}'", token.span)
        return self._advance()

    # --- Grammar ---

    def _conversion(self) -> Node:
        node = self._additive()
        while self._at(TokenKind.KEYWORD, "to", "in"):
            keyword = self._advance()
            target = self._expect(TokenKind.UNIT, f"a unit after '{keyword.text}'")
            node = ConvertTo(node, target.value)
        return node

    def _additive(self) -> Node:
        node = self._multiplicative()
        while self._at(TokenKind.OPERATOR, "+", "-"):
            op = self._advance().value
            node = BinaryOp(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._power()
        while self._at(TokenKind.OPERATOR, "*", "/") or self._at(TokenKind.KEYWORD, "of"):
            op = self._advance().value
            node = BinaryOp(op, node, self._power())
        return node

    def _power(self) -> Node:
        base = self._unary()
        if self._at(TokenKind.OPERATOR, "^"):
            self._advance()
            return BinaryOp("^", base, self._power())
        return base

    def _unary(self) -> Node:
        if self._at(TokenKind.OPERATOR, "-"):
            self._advance()
            return UnaryMinus(self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            end = self.tokens[-1].span[1] if self.tokens else 0
            raise ParseError("Expression ends unexpectedly", (end, end))

        if token.kind is TokenKind.NUMBER:
            self._advance()
            suffix = self._peek()
            if suffix is not None and suffix.kind in (TokenKind.UNIT, TokenKind.CURRENCY, TokenKind.PERCENT):
                self._advance()
                return Literal(Value(token.value, suffix.value))
            return Literal(Value(token.value))

        if token.kind is TokenKind.CURRENCY:
            self._advance()
            amount = self._expect(TokenKind.NUMBER, f"an amount after '{token.text}'")
            return Literal(Value(amount.value, token.value))

        if token.kind is TokenKind.IDENT:
            self._advance()
            return VariableRef(token.value)

        if token.kind is TokenKind.LINE_REF:
            self._advance()
            return LineRef(token.value)

        if token.kind is TokenKind.FUNCTION:
            return self._function_call()

        if token.kind is TokenKind.LPAREN:
            self._advance()
            node = self._conversion()
            self._expect(TokenKind.RPAREN, "')'")
            return node

        raise ParseError(f"Unexpected '{token.text}'", token.span)

    def _function_call(self) -> Node:
        name_token = self._advance()
        function = get_function(name_token.value)
        self._expect(TokenKind.LPAREN, f"'(' after {name_token.text}")
        if not function.takes_argument:
            self._expect(TokenKind.RPAREN, f"')' ({name_token.text}() takes no arguments)")
            return FunctionCall(function.name, None)
        if self._at(TokenKind.RPAREN):
            raise ParseError(f"{name_token.text}() needs an argument", name_token.span)
        argument = self._conversion()
        self._expect(TokenKind.RPAREN, "')'")
        return FunctionCall(function.name, argument)


def check_structure(tokens: List[Token]):
    """Reject token streams that are malformed as a whole.

    Unbalanced parentheses and dangling or doubled operators are errors even
    when a shorter piece of the line would parse on its own.
    """
    open_parens = []
    for token in tokens:
        if token.kind is TokenKind.LPAREN:
            open_parens.append(token)
        elif token.kind is TokenKind.RPAREN:
            if not open_parens:
                raise ParseError("Unmatched ')'", token.span)
            open_parens.pop()
    if open_parens:
        raise ParseError("Unclosed '('", open_parens[-1].span)

    for index, token in enumerate(tokens):
        if token.kind is TokenKind.KEYWORD and token.value == "as":
            raise ParseError("Percentage phrasing with 'as' is not supported", token.span)
        if token.kind is not TokenKind.OPERATOR:
            continue
        before = tokens[index - 1] if index > 0 else None
        after = tokens[index + 1] if index + 1 < len(tokens) else None
        if after is None or after.kind is TokenKind.RPAREN:
            raise ParseError(f"Operator '{token.text}' is missing its right operand", token.span)
        if token.value == "-":
            continue
        if before is None or before.kind in (TokenKind.OPERATOR, TokenKind.LPAREN, TokenKind.KEYWORD):
            raise ParseError(f"Operator '{token.text}' is missing its left operand", token.span)


def longest_expression(tokens: List[Token]) -> Optional[Node]:
    """Find the longest run of tokens that parses on its own, earliest first."""
    for length in range(len(tokens) - 1, 0, -1):
        for start in range(len(tokens) - length + 1):
            window = tokens[start : start + length]
            if not any(token.kind in VALUE_KINDS for token in window):
                continue
            try:
                return Parser(window).parse()
            except ParseError:
                continue
    return None


def parse_tokens(tokens: List[Token]) -> Optional[Node]:
    """Parse a token stream; None means the line holds no expression."""
    if not any(token.kind in VALUE_KINDS for token in tokens):
        return None
    check_structure(tokens)
    try:
        return Parser(tokens).parse()
    except LeftoverTokensError:
        # Prose between numbers, e.g. "Meeting at 9 with 5 people"
        node = longest_expression(tokens)
        if node is None:
            raise
        return node


def parse_line(text: str, known_names: Collection[str] = ()) -> Optional[Node]:
    """Parse one line of text, including ``name = expr`` assignments."""
    match = ASSIGNMENT_PATTERN.match(text)
    if match:
        name, body = match.groups()
        if LINE_REF_PATTERN.match(name):
            raise ParseError(f"Cannot assign to line reference '{name}'", match.span(1))
        expr = parse_tokens(tokenize(body, known_names, offset=match.start(2)))
        if expr is None:
            logger.debug(f"Assignment to '{name}' has no expression: '{body}'")
            return None
        return Assignment(name, expr)
    return parse_tokens(tokenize(text, known_names))
