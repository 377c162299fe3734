"""Turns one line of free-form notepad text into expression tokens.

Anything that does not look like part of a calculation (plain words,
punctuation, stray hyphens) is dropped, so ``API load: 1000 QPS * 5 minutes``
tokenizes to just ``1000 QPS * 5 min``.
"""

import enum
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Collection, List, Optional, Tuple

from calc_pad.errors import InvalidNumberError, UnknownFunctionError
from calc_pad.functions import FUNCTIONS
from calc_pad.units import Dimension, UnitSpec, get_catalog

logger = logging.getLogger(__name__)


class TokenKind(enum.Enum):
    NUMBER = "number"
    UNIT = "unit"
    OPERATOR = "operator"
    KEYWORD = "keyword"
    FUNCTION = "function"
    IDENT = "identifier"
    LINE_REF = "line reference"
    CURRENCY = "currency"
    PERCENT = "percent"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    span: Tuple[int, int]
    value: Any = None


# --- Patterns ---
VALID_NUMBER_PATTERN = re.compile(r"^(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")
LINE_REF_PATTERN = re.compile(r"^line(\d+)$")
CONVERSION_KEYWORDS = ("to", "in")
# Dates and clock times are prose, not subtraction or two numbers
DATE_TIME_PATTERN = re.compile(r"(?<![\d.,])(?:\d{4}-\d{2}-\d{2}|\d{1,2}:\d{2}(?::\d{2})?)(?!\d|[.,]\d)")


@dataclass(frozen=True)
class _Lexeme:
    kind: str
    text: str
    start: int
    end: int


@lru_cache(maxsize=None)
def _lexeme_pattern():
    symbols = "|".join(re.escape(symbol) for symbol in get_catalog().currency_symbols())
    return re.compile(
        rf"(?P<currency>{symbols})"
        r"|(?P<number>\d[\d.,]*\d|\d)(?P<thousands>[kK](?![A-Za-z0-9_]))?"
        r"|(?P<word>[A-Za-z_µ][A-Za-z0-9_µ]*)"
        r"|(?P<op>[-+*/^])"
        r"|(?P<lparen>\()"
        r"|(?P<rparen>\))"
        r"|(?P<comma>,)"
        r"|(?P<percent>%)"
    )


def _scan(text: str) -> List[_Lexeme]:
    # Blank out rather than remove, so offsets still point into the line
    masked = DATE_TIME_PATTERN.sub(lambda match: " " * len(match.group(0)), text)
    lexemes = []
    for match in _lexeme_pattern().finditer(masked):
        kind = match.lastgroup
        if kind == "thousands":
            kind = "number"
        lexemes.append(_Lexeme(kind, match.group(0), match.start(), match.end()))
    return lexemes


def parse_number(text: str, span: Tuple[int, int]) -> float:
    """Parse ``1,234.5`` or ``5k``; anything else that starts with a digit is invalid."""
    multiplier = 1.0
    if text[-1] in "kK":
        text, multiplier = text[:-1], 1000.0
    if not VALID_NUMBER_PATTERN.match(text):
        raise InvalidNumberError(f"Invalid number '{text}'", span)
    return float(text.replace(",", "")) * multiplier


class _Classifier:
    """Second pass: decides what each lexeme means from its neighbours."""

    def __init__(self, text: str, known_names: Collection[str], offset: int):
        self.text = text
        self.lexemes = _scan(text)
        self.known_names = set(known_names)
        self.offset = offset
        self.catalog = get_catalog()
        # Emitted tokens, with None marking skipped prose
        self.items: List[Optional[Token]] = []
        self.pos = 0

    def run(self) -> List[Token]:
        while self.pos < len(self.lexemes):
            lexeme = self.lexemes[self.pos]
            getattr(self, f"_on_{lexeme.kind}")(lexeme)
        return self._without_stray_operators()

    # --- Helpers ---

    def _peek(self, distance: int = 1) -> Optional[_Lexeme]:
        index = self.pos + distance
        if 0 <= index < len(self.lexemes):
            return self.lexemes[index]
        return None

    def _lexeme_at(self, index: int) -> Optional[_Lexeme]:
        if 0 <= index < len(self.lexemes):
            return self.lexemes[index]
        return None

    def _span(self, start: int, end: int) -> Tuple[int, int]:
        return (start + self.offset, end + self.offset)

    def _emit(self, kind: TokenKind, first: _Lexeme, last: Optional[_Lexeme] = None, value=None):
        last = last or first
        text = self.text[first.start : last.end]
        self.items.append(Token(kind, text, self._span(first.start, last.end), value))

    def _skip(self):
        self.items.append(None)
        self.pos += 1

    def _paren_depth(self) -> int:
        opened = sum(1 for item in self.items if item is not None and item.kind is TokenKind.LPAREN)
        closed = sum(1 for item in self.items if item is not None and item.kind is TokenKind.RPAREN)
        return opened - closed

    def _last_token(self) -> Optional[Token]:
        return self.items[-1] if self.items else None

    def _unit_at(self, index: int) -> Optional[Tuple[UnitSpec, int]]:
        """Resolve the unit starting at lexeme ``index``; returns (unit, lexemes used)."""
        lexeme = self._lexeme_at(index)
        if lexeme is None:
            return None
        if lexeme.kind == "percent":
            return self.catalog.resolve("%"), 1
        if lexeme.kind not in ("word", "currency"):
            return None
        spec = self.catalog.resolve(lexeme.text)
        if spec is None:
            return None
        slash, per = self._lexeme_at(index + 1), self._lexeme_at(index + 2)
        if slash is not None and slash.text == "/" and per is not None and per.kind == "word":
            per_unit = self.catalog.resolve(per.text)
            composite = self.catalog.rate_of(spec, per_unit) if per_unit is not None else None
            if composite is not None:
                return composite, 3
        return spec, 1

    def _is_operand(self, lexeme: Optional[_Lexeme]) -> bool:
        if lexeme is None:
            return False
        if lexeme.kind in ("number", "currency", "percent", "lparen", "rparen"):
            return True
        if lexeme.kind == "word":
            return (
                lexeme.text in self.known_names
                or lexeme.text in FUNCTIONS
                or LINE_REF_PATTERN.match(lexeme.text) is not None
                or self.catalog.resolve(lexeme.text) is not None
            )
        return False

    def _looks_like_call_argument(self, lexeme: Optional[_Lexeme]) -> bool:
        # "foo(3)" is a bad call, "item(s)" is just prose
        if lexeme is None:
            return False
        if lexeme.kind in ("number", "currency", "op"):
            return True
        return lexeme.kind == "word" and (
            lexeme.text in self.known_names or LINE_REF_PATTERN.match(lexeme.text) is not None
        )

    def _in_math_context(self) -> bool:
        # An unknown word counts as a variable only when an operator joins it
        # to a concrete operand, e.g. "servers * 2"
        before, before2 = self._peek(-1), self._peek(-2)
        if before is not None and before.kind == "op" and self._is_operand(before2):
            return True
        after, after2 = self._peek(1), self._peek(2)
        if after is not None and after.kind == "op" and self._is_operand(after2):
            return True
        return False

    # --- Lexeme handlers ---

    def _on_number(self, lexeme: _Lexeme):
        number = parse_number(lexeme.text, self._span(lexeme.start, lexeme.end))
        self._emit(TokenKind.NUMBER, lexeme, value=number)
        self.pos += 1

        following = self._peek(0)
        if following is None:
            return
        if following.kind == "percent":
            self._emit(TokenKind.PERCENT, following, value=self.catalog.resolve("%"))
            self.pos += 1
            return
        if following.kind == "currency" and following.start == lexeme.end:
            # 5$ or 5$/hr
            unit, used = self._unit_at(self.pos)
            self._emit(TokenKind.CURRENCY, following, self.lexemes[self.pos + used - 1], unit)
            self.pos += used
            return
        if following.kind == "word":
            resolved = self._unit_at(self.pos)
            if resolved is not None:
                unit, used = resolved
                self._emit(TokenKind.UNIT, following, self.lexemes[self.pos + used - 1], unit)
                self.pos += used

    def _on_currency(self, lexeme: _Lexeme):
        following = self._peek()
        if following is None or following.kind != "number" or following.start != lexeme.end:
            # A bare symbol is only meaningful as a conversion target
            self._skip()
            return
        unit = self.catalog.resolve(lexeme.text)
        number = parse_number(following.text, self._span(following.start, following.end))
        used = 2
        slash, per = self._peek(2), self._peek(3)
        if slash is not None and slash.text == "/" and per is not None and per.kind == "word":
            per_unit = self.catalog.resolve(per.text)
            rate = self.catalog.rate_of(unit, per_unit) if per_unit else None
            if rate is not None:
                # $5/hr
                unit, used = rate, 4
        self._emit(TokenKind.CURRENCY, lexeme, value=unit)
        self._emit(TokenKind.NUMBER, following, value=number)
        self.pos += used

    def _on_word(self, lexeme: _Lexeme):
        word = lexeme.text
        lowered = word.lower()
        following = self._peek()

        line_match = LINE_REF_PATTERN.match(word)
        if line_match:
            self._emit(TokenKind.LINE_REF, lexeme, value=int(line_match.group(1)) - 1)
            self.pos += 1
            return

        if lowered in CONVERSION_KEYWORDS:
            target = self._unit_at(self.pos + 1)
            if target is not None:
                unit, used = target
                self._emit(TokenKind.KEYWORD, lexeme, value=lowered)
                first, last = self.lexemes[self.pos + 1], self.lexemes[self.pos + used]
                self._emit(TokenKind.UNIT, first, last, unit)
                self.pos += 1 + used
                return

        last = self._last_token()
        if lowered == "of" and last is not None and last.kind in (TokenKind.PERCENT, TokenKind.UNIT):
            if last.kind is TokenKind.PERCENT or last.value.dimension is Dimension.PERCENTAGE:
                self._emit(TokenKind.KEYWORD, lexeme, value="of")
                self.pos += 1
                return

        if lowered == "as" and following is not None and following.kind == "percent":
            self._emit(TokenKind.KEYWORD, lexeme, value="as")
            self._emit(TokenKind.PERCENT, following, value=self.catalog.resolve("%"))
            self.pos += 2
            return

        if following is not None and following.kind == "lparen" and following.start == lexeme.end:
            if word in FUNCTIONS:
                self._emit(TokenKind.FUNCTION, lexeme, value=word)
                self.pos += 1
                return
            if self._looks_like_call_argument(self._peek(2)):
                raise UnknownFunctionError(
                    f"Unknown function '{word}'", self._span(lexeme.start, lexeme.end)
                )

        if word in self.known_names or self._in_math_context():
            self._emit(TokenKind.IDENT, lexeme, value=word)
            self.pos += 1
            return

        self._skip()

    def _on_op(self, lexeme: _Lexeme):
        self._emit(TokenKind.OPERATOR, lexeme, value=lexeme.text)
        self.pos += 1

    def _on_lparen(self, lexeme: _Lexeme):
        self._emit(TokenKind.LPAREN, lexeme)
        self.pos += 1

    def _on_rparen(self, lexeme: _Lexeme):
        self._emit(TokenKind.RPAREN, lexeme)
        self.pos += 1

    def _on_comma(self, lexeme: _Lexeme):
        # Outside parentheses a comma is sentence punctuation
        if self._paren_depth() == 0:
            self._skip()
            return
        self._emit(TokenKind.COMMA, lexeme)
        self.pos += 1

    def _on_percent(self, lexeme: _Lexeme):
        # Only meaningful straight after a number, handled there
        self._skip()

    def _without_stray_operators(self) -> List[Token]:
        """Drop operators with prose on both sides, e.g. the hyphen in "Q3 - planning"."""
        tokens = []
        for index, item in enumerate(self.items):
            if item is None:
                continue
            if item.kind is TokenKind.OPERATOR:
                before = self.items[index - 1] if index > 0 else None
                after = self.items[index + 1] if index + 1 < len(self.items) else None
                if before is None and after is None:
                    continue
            tokens.append(item)
        return tokens


def tokenize(text: str, known_names: Collection[str] = (), offset: int = 0) -> List[Token]:
    """Tokenize one line of text.

    ``known_names`` are the variables defined so far; they are recognized as
    identifiers anywhere in the line. ``offset`` shifts every span, for text
    that was cut out of a longer line.
    """
    tokens = _Classifier(text, known_names, offset).run()
    logger.debug(f"Tokenized '{text}' into {len(tokens)} tokens")
    return tokens
