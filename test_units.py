"""Test script for the unit catalog and conversions."""

import itertools

import pytest

from calc_pad.errors import CurrencyMismatchError, DimensionMismatchError, IncompatibleUnitsError
from calc_pad.units import Dimension, UnitSpec, Value, get_catalog

MONTH_SECONDS = 365.25 * 86400 / 12


def test_binary_and_decimal_data_units():
    """IEC units are powers of two, SI units powers of ten, bits are an eighth of a byte."""
    catalog = get_catalog()
    assert catalog.resolve("GiB").factor_to_base == 2**30
    assert catalog.resolve("TB").factor_to_base == pytest.approx(1e12)
    assert catalog.resolve("bit").factor_to_base == pytest.approx(0.125)
    assert catalog.resolve("Gb").factor_to_base == pytest.approx(1e9 / 8)
    assert catalog.resolve("gibibytes") is catalog.resolve("GiB")


def test_resolution_is_case_sensitive_first():
    catalog = get_catalog()
    assert catalog.resolve("Mb").name == "Mb"
    assert catalog.resolve("MB").name == "MB"
    # Case-insensitive fallback prefers bytes over bits
    assert catalog.resolve("mb").name == "MB"
    assert catalog.resolve("HOURS").name == "h"
    assert catalog.resolve("usd").currency == "USD"


def test_keywords_never_resolve_as_units():
    catalog = get_catalog()
    for word in ("to", "in", "of", "as", "T"):
        assert catalog.resolve(word) is None
    assert catalog.resolve("TB") is not None


def test_calendar_time_units():
    catalog = get_catalog()
    assert catalog.resolve("month").factor_to_base == pytest.approx(MONTH_SECONDS)
    assert catalog.resolve("quarter").factor_to_base == pytest.approx(3 * MONTH_SECONDS)
    assert catalog.resolve("year").factor_to_base == pytest.approx(365.25 * 86400)
    assert catalog.resolve("week").factor_to_base == pytest.approx(7 * 86400)


def test_composite_rate_names():
    catalog = get_catalog()
    rate = catalog.resolve("GiB/min")
    assert rate.dimension is Dimension.DATA_RATE
    assert rate.factor_to_base == pytest.approx(2**30 / 60)
    assert rate.numerator.name == "GiB"
    assert rate.per.name == "min"

    salary = catalog.resolve("$/month")
    assert salary.dimension is Dimension.CURRENCY_RATE
    assert salary.currency == "USD"

    assert catalog.resolve("$/GiB").dimension is Dimension.DATA_PRICE
    assert catalog.resolve("req/s").dimension is Dimension.REQUEST_RATE
    assert catalog.resolve("GiB/$") is None
    assert catalog.resolve("hour/GiB") is None


def test_named_rates():
    catalog = get_catalog()
    assert catalog.resolve("QPS").dimension is Dimension.REQUEST_RATE
    assert catalog.resolve("qps") is catalog.resolve("QPS")
    assert catalog.resolve("RPM").factor_to_base == pytest.approx(1 / 60)
    assert catalog.resolve("Mbps").factor_to_base == pytest.approx(1e6 / 8)


def test_every_alias_resolves_to_its_own_unit():
    catalog = get_catalog()
    for spec in catalog.units:
        for alias in spec.aliases:
            assert catalog.resolve(alias) is spec, alias


def test_factors_are_positive():
    for spec in get_catalog().units:
        assert spec.factor_to_base > 0
    with pytest.raises(ValueError):
        UnitSpec("broken", Dimension.DATA, 0)
    with pytest.raises(ValueError):
        UnitSpec("nameless money", Dimension.CURRENCY, 1.0)


def test_convert_round_trip():
    """convert(convert(v, B), A) == v for every pair of units in a dimension."""
    catalog = get_catalog()
    for dimension in (Dimension.DATA, Dimension.TIME, Dimension.REQUEST_COUNT):
        units = [spec for spec in catalog.units if spec.dimension is dimension]
        for source, target in itertools.permutations(units, 2):
            value = Value(123.456, source)
            back = catalog.convert(catalog.convert(value, target), source)
            assert back.unit is source
            assert back.magnitude == pytest.approx(value.magnitude, rel=1e-12)


def test_convert_between_bits_and_bytes():
    catalog = get_catalog()
    converted = catalog.convert(Value(1.0, catalog.resolve("Gbps")), catalog.resolve("MB/s"))
    assert converted.magnitude == pytest.approx(125)


def test_convert_rejects_other_dimensions():
    catalog = get_catalog()
    with pytest.raises(DimensionMismatchError):
        catalog.convert(Value(1.0, catalog.resolve("GiB")), catalog.resolve("hour"))
    with pytest.raises(DimensionMismatchError):
        catalog.convert(Value(1.0), catalog.resolve("GiB"))


def test_convert_rejects_other_currencies():
    catalog = get_catalog()
    with pytest.raises(CurrencyMismatchError):
        catalog.convert(Value(5.0, catalog.resolve("$")), catalog.resolve("EUR"))


def test_plain_number_converts_to_percent():
    catalog = get_catalog()
    converted = catalog.convert(Value(0.25), catalog.resolve("%"))
    assert converted.magnitude == pytest.approx(25)
    assert converted.dimension is Dimension.PERCENTAGE


def test_compose_quantity_over_time():
    catalog = get_catalog()
    rate = catalog.compose("/", Value(1000.0, catalog.resolve("GiB")), Value(10.0, catalog.resolve("minutes")))
    assert rate.dimension is Dimension.DATA_RATE
    assert rate.unit.name == "GiB/min"
    assert rate.to_base() == pytest.approx(1000 * 2**30 / 600)


def test_compose_rate_times_time_keeps_currency():
    catalog = get_catalog()
    total = catalog.compose("*", Value(5.0, catalog.resolve("EUR/day")), Value(2.0, catalog.resolve("weeks")))
    assert total.unit.currency == "EUR"
    assert total.magnitude == pytest.approx(70)


def test_compose_rejects_unlisted_pairs():
    catalog = get_catalog()
    with pytest.raises(IncompatibleUnitsError):
        catalog.compose("*", Value(1.0, catalog.resolve("GiB")), Value(1.0, catalog.resolve("GiB")))
    with pytest.raises(IncompatibleUnitsError):
        catalog.compose("/", Value(1.0, catalog.resolve("hour")), Value(1.0, catalog.resolve("GiB")))
