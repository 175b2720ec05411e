"""
Broker dialect detection and the dialect registry.

Detection is heuristic: the lower-cased header row is joined with "|" and
tested against keyword rules. Strong markers (column names only one broker
uses) are checked for every dialect before the weaker composite tests, so a
Robinhood header containing "description" and "amount" is not mistaken for
a TD Ameritrade statement. Callers can always override detection by naming
the dialect explicitly.
"""

from dataclasses import dataclass
from typing import Callable

from tradebook.models import AUTO, BrokerDialect
from tradebook.parsing.extractors import (
    ExtractContext,
    ExtractionResult,
    extract_generic,
    extract_interactive_brokers,
    extract_robinhood,
    extract_td_ameritrade,
    extract_webull,
)


class UnknownDialectError(ValueError):
    """Raised when a dialect tag is not in the registry."""
    pass


HeaderTest = Callable[[str], bool]


def _any_of(*markers: str) -> HeaderTest:
    return lambda joined: any(m in joined for m in markers)


def _all_of(*markers: str) -> HeaderTest:
    return lambda joined: all(m in joined for m in markers)


def _never(joined: str) -> bool:
    return False


@dataclass(frozen=True)
class DialectSpec:
    """
    One registry entry.

    Attributes:
        dialect: Dialect tag
        label: Human readable broker name (used in import notes)
        strong: Test for columns unique to this broker
        detect: Weaker composite test, checked after every strong test
        parse: Extractor turning body lines into row results
    """
    dialect: BrokerDialect
    label: str
    strong: HeaderTest
    detect: HeaderTest
    parse: Callable[[ExtractContext], ExtractionResult]


# Order matters: it is the detection priority within each pass.
DIALECTS: list[DialectSpec] = [
    DialectSpec(
        dialect=BrokerDialect.TDAMERITRADE,
        label="TD Ameritrade",
        strong=_any_of("exec time"),
        detect=lambda joined: (
            _all_of("date", "description", "amount")(joined)
            or "spread" in joined
            or _all_of("order", "price", "qty")(joined)
        ),
        parse=extract_td_ameritrade,
    ),
    DialectSpec(
        dialect=BrokerDialect.INTERACTIVEBROKERS,
        label="Interactive Brokers",
        strong=_any_of("clientaccountid", "datadisc", "proceeds"),
        detect=_never,
        parse=extract_interactive_brokers,
    ),
    DialectSpec(
        dialect=BrokerDialect.ROBINHOOD,
        label="Robinhood",
        strong=_any_of("activity date", "trans code"),
        detect=_never,
        parse=extract_robinhood,
    ),
    DialectSpec(
        dialect=BrokerDialect.WEBULL,
        label="WeBull",
        strong=_any_of("filled qty", "order number"),
        detect=lambda joined: (
            _all_of("direction", "avg price")(joined)
            or _all_of("filled", "avg price")(joined)
        ),
        parse=extract_webull,
    ),
    DialectSpec(
        dialect=BrokerDialect.GENERIC,
        label="Generic CSV",
        strong=_never,
        detect=_never,
        parse=extract_generic,
    ),
]

_BY_DIALECT = {spec.dialect: spec for spec in DIALECTS}


def joined_headers(headers: list[str]) -> str:
    """Lower-case and '|'-join header names for keyword tests."""
    return "|".join(h.strip().lower() for h in headers)


def detect_dialect(headers: list[str]) -> BrokerDialect:
    """
    Detect the broker dialect from the header row.

    Strong markers of every dialect are checked before any composite test,
    so a broker-unique column outranks a looser match earlier in the
    registry. A header with date, description, amount and proceeds is
    Interactive Brokers here ("proceeds" is strong), not TD Ameritrade.
    Pass an explicit broker to override.

    Args:
        headers: Header field names as tokenized

    Returns:
        First matching dialect, or GENERIC when nothing matches
    """
    joined = joined_headers(headers)

    for spec in DIALECTS:
        if spec.strong(joined):
            return spec.dialect

    for spec in DIALECTS:
        if spec.detect(joined):
            return spec.dialect

    return BrokerDialect.GENERIC


def get_dialect(tag: str | BrokerDialect) -> DialectSpec:
    """
    Resolve a dialect tag or enum to its registry entry.

    Raises:
        UnknownDialectError: If the tag is not registered (or is "auto",
            which must be resolved with detect_dialect first)
    """
    if isinstance(tag, BrokerDialect):
        return _BY_DIALECT[tag]

    normalized = (tag or "").strip().lower()
    for spec in DIALECTS:
        if spec.dialect.value == normalized:
            return spec

    valid = ", ".join([AUTO] + [spec.dialect.value for spec in DIALECTS])
    raise UnknownDialectError(f"Unknown broker dialect '{tag}'. Valid values: {valid}")
