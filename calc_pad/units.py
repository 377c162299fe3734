import enum
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, FrozenSet, List, Optional, Tuple

from pint import UnitRegistry

from calc_pad.errors import (
    CurrencyMismatchError,
    DimensionMismatchError,
    IncompatibleUnitsError,
)

logger = logging.getLogger(__name__)


class Dimension(enum.Enum):
    DATA = "data"
    DATA_RATE = "data rate"
    TIME = "time"
    REQUEST_COUNT = "request count"
    REQUEST_RATE = "request rate"
    CURRENCY = "currency"
    CURRENCY_RATE = "currency rate"
    DATA_PRICE = "data price"
    PERCENTAGE = "percentage"
    DIMENSIONLESS = "dimensionless"


# Quantity dimension -> the dimension of that quantity per unit of time
RATE_DIMENSIONS = {
    Dimension.DATA: Dimension.DATA_RATE,
    Dimension.REQUEST_COUNT: Dimension.REQUEST_RATE,
    Dimension.CURRENCY: Dimension.CURRENCY_RATE,
}

CURRENCY_DIMENSIONS = frozenset(
    {Dimension.CURRENCY, Dimension.CURRENCY_RATE, Dimension.DATA_PRICE}
)

# --- Rate Composition Table ---
# (left dimension, operator, right dimension) -> result dimension.
# Same-dimension division (a plain ratio) and scaling by plain numbers are
# handled by the evaluator; every other unit pairing must appear here.
COMPOSITION_TABLE: Dict[Tuple[Dimension, str, Dimension], Dimension] = {
    # Rate * Time -> Quantity
    (Dimension.DATA_RATE, "*", Dimension.TIME): Dimension.DATA,
    (Dimension.TIME, "*", Dimension.DATA_RATE): Dimension.DATA,
    (Dimension.REQUEST_RATE, "*", Dimension.TIME): Dimension.REQUEST_COUNT,
    (Dimension.TIME, "*", Dimension.REQUEST_RATE): Dimension.REQUEST_COUNT,
    (Dimension.CURRENCY_RATE, "*", Dimension.TIME): Dimension.CURRENCY,
    (Dimension.TIME, "*", Dimension.CURRENCY_RATE): Dimension.CURRENCY,
    # Price per data unit * Data -> Currency
    (Dimension.DATA_PRICE, "*", Dimension.DATA): Dimension.CURRENCY,
    (Dimension.DATA, "*", Dimension.DATA_PRICE): Dimension.CURRENCY,
    # Quantity / Time -> Rate
    (Dimension.DATA, "/", Dimension.TIME): Dimension.DATA_RATE,
    (Dimension.REQUEST_COUNT, "/", Dimension.TIME): Dimension.REQUEST_RATE,
    (Dimension.CURRENCY, "/", Dimension.TIME): Dimension.CURRENCY_RATE,
    (Dimension.CURRENCY, "/", Dimension.DATA): Dimension.DATA_PRICE,
    # Quantity / Rate -> Time
    (Dimension.DATA, "/", Dimension.DATA_RATE): Dimension.TIME,
    (Dimension.REQUEST_COUNT, "/", Dimension.REQUEST_RATE): Dimension.TIME,
    (Dimension.CURRENCY, "/", Dimension.CURRENCY_RATE): Dimension.TIME,
    (Dimension.CURRENCY, "/", Dimension.DATA_PRICE): Dimension.DATA,
}


@dataclass(frozen=True)
class UnitSpec:
    """A concrete unit: display name, dimension and factor to the base unit.

    Rates and prices are composites that remember their ``numerator`` and
    ``per`` units, so that ``$5/hr * 1 day`` can be expressed back in dollars.
    Currency-bearing units carry their ISO code in ``currency``.
    """

    name: str
    dimension: Dimension
    factor_to_base: float
    aliases: FrozenSet[str] = field(default=frozenset(), compare=False, repr=False)
    currency: Optional[str] = None
    numerator: Optional["UnitSpec"] = field(default=None, repr=False)
    per: Optional["UnitSpec"] = field(default=None, repr=False)

    def __post_init__(self):
        if not self.factor_to_base > 0:
            raise ValueError(f"Unit '{self.name}' needs a positive conversion factor")
        if self.dimension in CURRENCY_DIMENSIONS and not self.currency:
            raise ValueError(f"Currency unit '{self.name}' needs a currency code")

    @property
    def is_composite(self) -> bool:
        return self.per is not None

    def to_base(self, magnitude: float) -> float:
        return magnitude * self.factor_to_base

    def from_base(self, magnitude: float) -> float:
        return magnitude / self.factor_to_base

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class Value:
    magnitude: float
    unit: Optional[UnitSpec] = None

    @property
    def dimension(self) -> Dimension:
        return self.unit.dimension if self.unit else Dimension.DIMENSIONLESS

    @property
    def currency(self) -> Optional[str]:
        return self.unit.currency if self.unit else None

    def to_base(self) -> float:
        return self.unit.to_base(self.magnitude) if self.unit else self.magnitude


def check_same_currency(left: UnitSpec, right: UnitSpec):
    if left.currency and right.currency and left.currency != right.currency:
        raise CurrencyMismatchError(
            f"Cannot combine {left.currency} with {right.currency} (no exchange rates)"
        )


# --- Unit Tables ---
# (display name, pint expression, aliases)

DATA_UNITS = [
    ("B", "byte", ("B", "byte", "bytes")),
    ("KB", "kilobyte", ("KB", "kB", "kilobyte", "kilobytes")),
    ("MB", "megabyte", ("MB", "megabyte", "megabytes")),
    ("GB", "gigabyte", ("GB", "gigabyte", "gigabytes")),
    ("TB", "terabyte", ("TB", "terabyte", "terabytes")),
    ("PB", "petabyte", ("PB", "petabyte", "petabytes")),
    ("EB", "exabyte", ("EB", "exabyte", "exabytes")),
    ("KiB", "kibibyte", ("KiB", "kibibyte", "kibibytes")),
    ("MiB", "mebibyte", ("MiB", "mebibyte", "mebibytes")),
    ("GiB", "gibibyte", ("GiB", "gibibyte", "gibibytes")),
    ("TiB", "tebibyte", ("TiB", "tebibyte", "tebibytes")),
    ("PiB", "pebibyte", ("PiB", "pebibyte", "pebibytes")),
    ("EiB", "exbibyte", ("EiB", "exbibyte", "exbibytes")),
    # Bits come after bytes so that lowercase lookups prefer bytes
    ("bit", "bit", ("bit", "bits")),
    ("Kb", "kilobit", ("Kb", "kbit", "kilobit", "kilobits")),
    ("Mb", "megabit", ("Mb", "Mbit", "megabit", "megabits")),
    ("Gb", "gigabit", ("Gb", "Gbit", "gigabit", "gigabits")),
    ("Tb", "terabit", ("Tb", "Tbit", "terabit", "terabits")),
    ("Pb", "petabit", ("Pb", "Pbit", "petabit", "petabits")),
    ("Eb", "exabit", ("Eb", "Ebit", "exabit", "exabits")),
    ("Kib", "kibibit", ("Kib", "kibibit", "kibibits")),
    ("Mib", "mebibit", ("Mib", "mebibit", "mebibits")),
    ("Gib", "gibibit", ("Gib", "gibibit", "gibibits")),
    ("Tib", "tebibit", ("Tib", "tebibit", "tebibits")),
    ("Pib", "pebibit", ("Pib", "pebibit", "pebibits")),
    ("Eib", "exbibit", ("Eib", "exbibit", "exbibits")),
]

TIME_UNITS = [
    ("ns", "nanosecond", ("ns", "nanosecond", "nanoseconds")),
    ("us", "microsecond", ("us", "µs", "microsecond", "microseconds")),
    ("ms", "millisecond", ("ms", "millisecond", "milliseconds")),
    ("s", "second", ("s", "sec", "secs", "second", "seconds")),
    ("min", "minute", ("min", "mins", "minute", "minutes")),
    ("h", "hour", ("h", "hr", "hrs", "hour", "hours")),
    ("day", "day", ("day", "days")),
    ("week", "week", ("week", "weeks")),
    ("month", "month", ("month", "months")),
    ("quarter", "3 * month", ("quarter", "quarters")),
    ("year", "year", ("year", "years", "yr", "yrs")),
]

REQUEST_UNITS = [
    ("req", "request", ("req", "reqs", "request", "requests")),
    ("query", "query", ("query", "queries")),
]

PERCENT_UNITS = [
    ("%", "percent", ("%", "percent")),
]

# (display name, numerator unit, per unit, aliases)
NAMED_RATES = [
    ("bps", "bit", "s", ("bps",)),
    ("Kbps", "Kb", "s", ("Kbps",)),
    ("Mbps", "Mb", "s", ("Mbps",)),
    ("Gbps", "Gb", "s", ("Gbps",)),
    ("Tbps", "Tb", "s", ("Tbps",)),
    ("QPS", "query", "s", ("QPS",)),
    ("QPM", "query", "min", ("QPM",)),
    ("QPH", "query", "h", ("QPH",)),
    ("RPS", "req", "s", ("RPS",)),
    ("RPM", "req", "min", ("RPM",)),
    ("RPH", "req", "h", ("RPH",)),
]

# (ISO code, display symbol, aliases)
CURRENCIES = [
    ("USD", "$", ("$", "USD", "dollar", "dollars")),
    ("EUR", "€", ("€", "EUR", "euro", "euros")),
    ("GBP", "£", ("£", "GBP", "pound", "pounds")),
    ("JPY", "¥", ("¥", "JPY", "yen")),
    ("CNY", "CN¥", ("CN¥", "CNY", "yuan")),
    ("INR", "₹", ("₹", "INR", "rupee", "rupees")),
    ("KRW", "₩", ("₩", "KRW", "won")),
    ("THB", "฿", ("฿", "THB", "baht")),
    ("CAD", "C$", ("C$", "CAD")),
    ("AUD", "A$", ("A$", "AUD")),
    ("NZD", "NZ$", ("NZ$", "NZD")),
    ("HKD", "HK$", ("HK$", "HKD")),
    ("SGD", "S$", ("S$", "SGD")),
    ("CHF", "CHF", ("CHF", "franc", "francs")),
    ("MXN", "MXN", ("MXN", "peso", "pesos")),
]

# pint expression of each dimension's base unit
PINT_BASE_UNITS = {
    Dimension.DATA: "byte",
    Dimension.TIME: "second",
    Dimension.REQUEST_COUNT: "request",
    Dimension.PERCENTAGE: "dimensionless",
}


def build_unit_registry() -> UnitRegistry:
    ureg = UnitRegistry()
    # Requests and queries count the same thing
    ureg.define("request = [request]")
    ureg.define("query = request")
    return ureg


class UnitCatalog:
    """Read-only lookup table of every unit the calculator understands."""

    def __init__(self, ureg: UnitRegistry):
        self._by_alias: Dict[str, UnitSpec] = {}
        self._by_lower_alias: Dict[str, UnitSpec] = {}
        self._units: List[UnitSpec] = []

        for dimension, table in (
            (Dimension.DATA, DATA_UNITS),
            (Dimension.TIME, TIME_UNITS),
            (Dimension.REQUEST_COUNT, REQUEST_UNITS),
            (Dimension.PERCENTAGE, PERCENT_UNITS),
        ):
            base = PINT_BASE_UNITS[dimension]
            for name, expression, aliases in table:
                factor = float(ureg.parse_expression(expression).to(base).magnitude)
                self._register(UnitSpec(name, dimension, factor, frozenset(aliases)))

        for code, symbol, aliases in CURRENCIES:
            self._register(
                UnitSpec(symbol, Dimension.CURRENCY, 1.0, frozenset(aliases), currency=code)
            )

        for name, numerator_name, per_name, aliases in NAMED_RATES:
            numerator = self._by_alias[numerator_name]
            per = self._by_alias[per_name]
            rate = self.rate_of(numerator, per)
            self._register(
                UnitSpec(
                    name,
                    rate.dimension,
                    rate.factor_to_base,
                    frozenset(aliases),
                    numerator=numerator,
                    per=per,
                )
            )

        logger.debug(f"Unit catalog built with {len(self._units)} units")

    def _register(self, spec: UnitSpec):
        for alias in spec.aliases:
            if alias in self._by_alias:
                raise ValueError(
                    f"Alias '{alias}' is used by both {self._by_alias[alias].name} and {spec.name}"
                )
            self._by_alias[alias] = spec
            # First registration wins for case-insensitive lookups
            self._by_lower_alias.setdefault(alias.lower(), spec)
        self._units.append(spec)

    # --- Lookup ---

    def resolve(self, name: str) -> Optional[UnitSpec]:
        """Find a unit by alias.

        Exact (case-sensitive) aliases win; then composite ``X/Y`` names such
        as ``GiB/min`` or ``$/month``; then a case-insensitive match.
        """
        name = name.strip()
        if not name:
            return None
        spec = self._by_alias.get(name)
        if spec is not None:
            return spec
        if "/" in name:
            head, _, tail = name.partition("/")
            numerator = self.resolve(head)
            per = self.resolve(tail)
            if numerator is None or per is None:
                return None
            return self.rate_of(numerator, per)
        return self._by_lower_alias.get(name.lower())

    def rate_of(self, numerator: UnitSpec, per: UnitSpec) -> Optional[UnitSpec]:
        """Build the composite unit ``numerator/per``, or None if it has no meaning."""
        if numerator.is_composite or per.is_composite:
            return None
        if per.dimension is Dimension.TIME and numerator.dimension in RATE_DIMENSIONS:
            dimension = RATE_DIMENSIONS[numerator.dimension]
        elif per.dimension is Dimension.DATA and numerator.dimension is Dimension.CURRENCY:
            dimension = Dimension.DATA_PRICE
        else:
            return None
        return UnitSpec(
            f"{numerator.name}/{per.name}",
            dimension,
            numerator.factor_to_base / per.factor_to_base,
            currency=numerator.currency,
            numerator=numerator,
            per=per,
        )

    @property
    def units(self) -> List[UnitSpec]:
        return list(self._units)

    def aliases(self) -> List[str]:
        return sorted(self._by_alias)

    def currency_symbols(self) -> List[str]:
        """Non-alphabetic currency aliases ($, €, C$, ...), longest first."""
        symbols = [
            alias
            for spec in self._units
            if spec.dimension is Dimension.CURRENCY
            for alias in spec.aliases
            if not alias.isalpha()
        ]
        return sorted(symbols, key=len, reverse=True)

    def units_by_dimension(self) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {}
        for spec in self._units:
            grouped.setdefault(spec.dimension.value, []).append(spec.name)
        return grouped

    # --- Conversion ---

    def convert(self, value: Value, target: UnitSpec) -> Value:
        """Re-express ``value`` in ``target``, going through the base unit."""
        if value.unit is None:
            if target.dimension is Dimension.PERCENTAGE:
                return Value(target.from_base(value.magnitude), target)
            raise DimensionMismatchError(f"Cannot convert a plain number to {target.name}")
        if value.dimension is not target.dimension:
            raise DimensionMismatchError(
                f"Cannot convert {value.unit.name} ({value.dimension.value}) "
                f"to {target.name} ({target.dimension.value})"
            )
        check_same_currency(value.unit, target)
        return Value(target.from_base(value.to_base()), target)

    def compose(self, operator: str, left: Value, right: Value) -> Value:
        """Multiply or divide two unit-bearing values via the composition table."""
        result_dimension = COMPOSITION_TABLE.get((left.dimension, operator, right.dimension))
        if result_dimension is None:
            verb = "multiply" if operator == "*" else "divide"
            raise IncompatibleUnitsError(
                f"Cannot {verb} {left.unit.name} ({left.dimension.value}) "
                f"by {right.unit.name} ({right.dimension.value})"
            )
        check_same_currency(left.unit, right.unit)

        if operator == "*":
            base_magnitude = left.to_base() * right.to_base()
            composite = left.unit if left.unit.is_composite else right.unit
            unit = composite.numerator
        else:
            base_magnitude = left.to_base() / right.to_base()
            if right.unit.is_composite:
                # Quantity / Rate -> expressed in the rate's own period
                unit = right.unit.per
            else:
                unit = self.rate_of(left.unit, right.unit)

        if unit is None or unit.dimension is not result_dimension:
            raise IncompatibleUnitsError(
                f"Cannot combine {left.unit.name} with {right.unit.name}"
            )
        return Value(unit.from_base(base_magnitude), unit)


@lru_cache(maxsize=None)
def get_catalog() -> UnitCatalog:
    """Process-wide catalog, built on first use and never mutated."""
    return UnitCatalog(build_unit_registry())


def resolve(name: str) -> Optional[UnitSpec]:
    return get_catalog().resolve(name)


def convert(value: Value, target: UnitSpec) -> Value:
    return get_catalog().convert(value, target)
