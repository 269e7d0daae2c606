"""Placeholder grammar for transaction templates.

Supported placeholders:

- ``{{walletAddress}}`` - the member's wallet address
- ``{{ethBalance}}`` - native balance in wei
- ``{{tokenBalance:0x...}}`` - ERC20 balance for a specific token
- ``{{blockTimestamp}}`` - current block timestamp
- ``{{deadline:N}}`` - block timestamp + N seconds
- ``{{percentage:ethBalance:N}}`` - N% of the native balance
- ``{{percentage:tokenBalance:0x...:N}}`` - N% of a token balance
- ``{{slippage:AMOUNT:N}}`` - AMOUNT minus N% (for minAmountOut); AMOUNT is an
  integer literal, ``ethBalance`` or ``tokenBalance:0x...``

Arguments are literal tokens. A placeholder inside another placeholder's
argument is never expanded.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterator, Optional

from ..exceptions import PlaceholderSyntaxError

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]*)\}\}")
ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")

# Percentages are held in basis points so that "12.5" stays exact
_BPS_PER_PERCENT = 100
_MAX_BPS = 100 * _BPS_PER_PERCENT


class PlaceholderKind(str, Enum):
    """Closed set of placeholder kinds."""
    WALLET_ADDRESS = "walletAddress"
    ETH_BALANCE = "ethBalance"
    TOKEN_BALANCE = "tokenBalance"
    BLOCK_TIMESTAMP = "blockTimestamp"
    DEADLINE = "deadline"
    PERCENTAGE_ETH = "percentageEth"
    PERCENTAGE_TOKEN = "percentageToken"
    SLIPPAGE = "slippage"


class SlippageSource(str, Enum):
    LITERAL = "literal"
    ETH_BALANCE = "ethBalance"
    TOKEN_BALANCE = "tokenBalance"


@dataclass(frozen=True)
class Placeholder:
    """A parsed ``{{...}}`` expression."""
    kind: PlaceholderKind
    raw: str
    token_address: Optional[str] = None
    basis_points: Optional[int] = None
    seconds: Optional[int] = None
    slippage_source: Optional[SlippageSource] = None
    amount: Optional[int] = None

    @property
    def text(self) -> str:
        return "{{" + self.raw + "}}"

    @property
    def is_numeric(self) -> bool:
        return self.kind is not PlaceholderKind.WALLET_ADDRESS

    @property
    def is_balance_derived(self) -> bool:
        """True when the resolved amount comes from a wallet balance."""
        if self.kind in (
            PlaceholderKind.ETH_BALANCE,
            PlaceholderKind.TOKEN_BALANCE,
            PlaceholderKind.PERCENTAGE_ETH,
            PlaceholderKind.PERCENTAGE_TOKEN,
        ):
            return True
        return (
            self.kind is PlaceholderKind.SLIPPAGE
            and self.slippage_source is not SlippageSource.LITERAL
        )


def _expect_arity(raw: str, parts: list[str], count: int, location: Optional[str]) -> None:
    got = len(parts) - 1
    if got != count:
        raise PlaceholderSyntaxError(
            raw,
            f"{parts[0]} takes {count} argument(s), got {got}",
            location,
        )


def _parse_address(raw: str, value: str, location: Optional[str]) -> str:
    if not ADDRESS_PATTERN.match(value):
        raise PlaceholderSyntaxError(raw, f"invalid token address {value!r}", location)
    return value


def _parse_percentage(raw: str, value: str, location: Optional[str]) -> int:
    try:
        pct = Decimal(value)
    except InvalidOperation:
        raise PlaceholderSyntaxError(raw, f"invalid percentage {value!r}", location) from None
    if not pct.is_finite():
        raise PlaceholderSyntaxError(raw, f"invalid percentage {value!r}", location)
    bps = pct * _BPS_PER_PERCENT
    if bps != bps.to_integral_value():
        raise PlaceholderSyntaxError(
            raw, f"percentage {value!r} has more than two decimal places", location
        )
    bps_int = int(bps)
    if bps_int < 0 or bps_int > _MAX_BPS:
        raise PlaceholderSyntaxError(raw, f"percentage {value!r} out of range 0-100", location)
    return bps_int


def _parse_non_negative_int(raw: str, value: str, what: str, location: Optional[str]) -> int:
    if not (value.isascii() and value.isdigit()):
        raise PlaceholderSyntaxError(raw, f"invalid {what} {value!r}", location)
    return int(value)


def parse_placeholder(body: str, location: Optional[str] = None) -> Placeholder:
    """Parse the inside of a ``{{...}}`` expression.

    Raises:
        PlaceholderSyntaxError: unknown name, wrong argument count or a
            malformed argument.
    """
    raw = body.strip()
    parts = raw.split(":")
    name = parts[0]

    if name == "walletAddress":
        _expect_arity(raw, parts, 0, location)
        return Placeholder(PlaceholderKind.WALLET_ADDRESS, raw)

    if name == "ethBalance":
        _expect_arity(raw, parts, 0, location)
        return Placeholder(PlaceholderKind.ETH_BALANCE, raw)

    if name == "tokenBalance":
        _expect_arity(raw, parts, 1, location)
        return Placeholder(
            PlaceholderKind.TOKEN_BALANCE,
            raw,
            token_address=_parse_address(raw, parts[1], location),
        )

    if name == "blockTimestamp":
        _expect_arity(raw, parts, 0, location)
        return Placeholder(PlaceholderKind.BLOCK_TIMESTAMP, raw)

    if name == "deadline":
        _expect_arity(raw, parts, 1, location)
        return Placeholder(
            PlaceholderKind.DEADLINE,
            raw,
            seconds=_parse_non_negative_int(raw, parts[1], "seconds", location),
        )

    if name == "percentage":
        if len(parts) >= 2 and parts[1] == "ethBalance":
            _expect_arity(raw, parts, 2, location)
            return Placeholder(
                PlaceholderKind.PERCENTAGE_ETH,
                raw,
                basis_points=_parse_percentage(raw, parts[2], location),
            )
        if len(parts) >= 2 and parts[1] == "tokenBalance":
            _expect_arity(raw, parts, 3, location)
            return Placeholder(
                PlaceholderKind.PERCENTAGE_TOKEN,
                raw,
                token_address=_parse_address(raw, parts[2], location),
                basis_points=_parse_percentage(raw, parts[3], location),
            )
        raise PlaceholderSyntaxError(
            raw, "percentage source must be ethBalance or tokenBalance:<address>", location
        )

    if name == "slippage":
        if len(parts) >= 2 and parts[1] == "tokenBalance":
            _expect_arity(raw, parts, 3, location)
            return Placeholder(
                PlaceholderKind.SLIPPAGE,
                raw,
                token_address=_parse_address(raw, parts[2], location),
                basis_points=_parse_percentage(raw, parts[3], location),
                slippage_source=SlippageSource.TOKEN_BALANCE,
            )
        _expect_arity(raw, parts, 2, location)
        bps = _parse_percentage(raw, parts[2], location)
        if parts[1] == "ethBalance":
            return Placeholder(
                PlaceholderKind.SLIPPAGE,
                raw,
                basis_points=bps,
                slippage_source=SlippageSource.ETH_BALANCE,
            )
        return Placeholder(
            PlaceholderKind.SLIPPAGE,
            raw,
            basis_points=bps,
            slippage_source=SlippageSource.LITERAL,
            amount=_parse_non_negative_int(raw, parts[1], "amount", location),
        )

    raise PlaceholderSyntaxError(raw, f"unknown placeholder name {name!r}", location)


def join_path(path: str, key: Any) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else str(key)


def iter_placeholders(value: Any, path: str = "") -> Iterator[tuple[str, str]]:
    """Yield ``(location, body)`` for every ``{{...}}`` in a nested value."""
    if isinstance(value, str):
        for match in PLACEHOLDER_PATTERN.finditer(value):
            yield path, match.group(1)
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            yield from iter_placeholders(item, join_path(path, index))
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from iter_placeholders(item, join_path(path, key))


def extract_placeholders(value: Any, path: str = "") -> list[Placeholder]:
    """Parse every placeholder in a nested value, failing on the first bad one."""
    return [
        parse_placeholder(body, location or None)
        for location, body in iter_placeholders(value, path)
    ]


def required_token_addresses(placeholders: list[Placeholder]) -> list[str]:
    """Unique token addresses referenced by the placeholders, in first-seen order."""
    seen: dict[str, str] = {}
    for placeholder in placeholders:
        address = placeholder.token_address
        if address and address.lower() not in seen:
            seen[address.lower()] = address
    return list(seen.values())
