"""Per-wallet placeholder resolution.

Resolution is a pure function of (value, WalletContext): the same inputs
always produce the same output. Amounts use integer arithmetic throughout and
every division truncates toward zero.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from ..exceptions import MissingContextError
from .placeholders import (
    PLACEHOLDER_PATTERN,
    Placeholder,
    PlaceholderKind,
    SlippageSource,
    join_path,
    parse_placeholder,
)

_BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class WalletContext:
    """Data available for template resolution for one wallet."""
    wallet_address: str
    native_balance: int
    token_balances: Mapping[str, int] = field(default_factory=dict)
    block_timestamp: int = 0

    def __post_init__(self) -> None:
        normalized = {addr.lower(): int(bal) for addr, bal in self.token_balances.items()}
        object.__setattr__(self, "token_balances", MappingProxyType(normalized))

    def token_balance(self, token_address: str) -> int:
        try:
            return self.token_balances[token_address.lower()]
        except KeyError:
            raise MissingContextError(
                f"No balance for token {token_address} in context of {self.wallet_address}",
                details={"token_address": token_address},
            ) from None


def _apply_bps(amount: int, basis_points: int) -> int:
    return amount * basis_points // _BPS_DENOMINATOR


def resolve_amount(placeholder: Placeholder, context: WalletContext) -> int:
    """Resolve a numeric placeholder to an integer."""
    kind = placeholder.kind

    if kind is PlaceholderKind.ETH_BALANCE:
        return context.native_balance
    if kind is PlaceholderKind.TOKEN_BALANCE:
        return context.token_balance(placeholder.token_address)
    if kind is PlaceholderKind.BLOCK_TIMESTAMP:
        return context.block_timestamp
    if kind is PlaceholderKind.DEADLINE:
        return context.block_timestamp + placeholder.seconds
    if kind is PlaceholderKind.PERCENTAGE_ETH:
        return _apply_bps(context.native_balance, placeholder.basis_points)
    if kind is PlaceholderKind.PERCENTAGE_TOKEN:
        return _apply_bps(
            context.token_balance(placeholder.token_address),
            placeholder.basis_points,
        )
    if kind is PlaceholderKind.SLIPPAGE:
        source = placeholder.slippage_source
        if source is SlippageSource.ETH_BALANCE:
            reference = context.native_balance
        elif source is SlippageSource.TOKEN_BALANCE:
            reference = context.token_balance(placeholder.token_address)
        else:
            reference = placeholder.amount
        return _apply_bps(reference, _BPS_DENOMINATOR - placeholder.basis_points)

    raise MissingContextError(f"{placeholder.text} does not resolve to an amount")


def resolve_placeholder(placeholder: Placeholder, context: WalletContext) -> str:
    """Resolve a placeholder to its string form (address or decimal amount)."""
    if placeholder.kind is PlaceholderKind.WALLET_ADDRESS:
        return context.wallet_address
    return str(resolve_amount(placeholder, context))


def render_abi_word(placeholder: Placeholder, context: WalletContext) -> str:
    """Resolve a placeholder to one 32-byte ABI word (64 hex chars, no prefix)."""
    if placeholder.kind is PlaceholderKind.WALLET_ADDRESS:
        return context.wallet_address.lower().removeprefix("0x").zfill(64)
    return f"{resolve_amount(placeholder, context):064x}"


Renderer = Callable[[Placeholder, WalletContext], str]


def resolve_string(
    text: str,
    context: WalletContext,
    render: Optional[Renderer] = None,
    location: Optional[str] = None,
) -> str:
    """Substitute every placeholder inside a string."""
    render = render or resolve_placeholder

    def _substitute(match) -> str:
        return render(parse_placeholder(match.group(1), location), context)

    return PLACEHOLDER_PATTERN.sub(_substitute, text)


def resolve_value(value: Any, context: WalletContext, path: str = "") -> Any:
    """Recursively resolve placeholders in a string, list or dict.

    A string that is exactly one placeholder becomes the resolved value; a
    string that merely contains placeholders gets substring substitution.
    """
    if isinstance(value, str):
        full = PLACEHOLDER_PATTERN.fullmatch(value)
        if full:
            return resolve_placeholder(parse_placeholder(full.group(1), path or None), context)
        return resolve_string(value, context, location=path or None)

    if isinstance(value, (list, tuple)):
        return [
            resolve_value(item, context, join_path(path, index))
            for index, item in enumerate(value)
        ]

    if isinstance(value, dict):
        return {
            key: resolve_value(item, context, join_path(path, key))
            for key, item in value.items()
        }

    return value


def zero_balance_placeholders(
    placeholders: list[Placeholder],
    context: WalletContext,
) -> list[str]:
    """Balance-derived placeholders that resolve to zero for this wallet."""
    drained = []
    for placeholder in placeholders:
        if placeholder.is_balance_derived and resolve_amount(placeholder, context) == 0:
            if placeholder.text not in drained:
                drained.append(placeholder.text)
    return drained
