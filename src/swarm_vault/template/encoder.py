"""Call-data encoding for resolved templates.

Function signatures are built from the JSON ABI with tuple (struct) parameters
expanded to their canonical form, e.g. ``swap((address,uint24)[],uint256)``.
"""
from __future__ import annotations

import re
from typing import Any, Optional, Union

from eth_abi import encode
from eth_abi.exceptions import EncodingError as AbiEncodingError
from eth_utils import is_address
from web3 import Web3

from ..exceptions import EncodingError
from ..models import ResolvedCall
from .models import AbiTemplate, RawTemplate
from .resolver import WalletContext, render_abi_word, resolve_string, resolve_value

_HEX_BYTES = re.compile(r"^0x(?:[0-9a-fA-F]{2})*$")
_ARRAY_SUFFIX = re.compile(r"^(.*)\[(\d*)\]$")


def canonical_type(param: dict[str, Any]) -> str:
    """Canonical ABI type for a parameter, expanding tuples recursively."""
    typ = param.get("type", "")
    if typ.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){typ[len('tuple'):]}"
    return typ


def function_signature(entry: dict[str, Any]) -> str:
    types = ",".join(canonical_type(p) for p in entry.get("inputs", []))
    return f"{entry['name']}({types})"


def function_selector(entry: dict[str, Any]) -> bytes:
    return bytes(Web3.keccak(text=function_signature(entry))[:4])


def select_function(
    abi: list[dict[str, Any]],
    function_name: str,
    arg_count: int,
) -> dict[str, Any]:
    """Pick the function entry by name, using the argument count for overloads."""
    named = [
        entry for entry in abi
        if entry.get("name") == function_name and entry.get("type", "function") == "function"
    ]
    if not named:
        raise EncodingError(f"Function '{function_name}' not found in ABI")

    candidates = [e for e in named if len(e.get("inputs", [])) == arg_count]
    if not candidates:
        raise EncodingError(
            f"Function '{function_name}' has no overload taking {arg_count} argument(s)"
        )
    if len(candidates) > 1:
        signatures = ", ".join(function_signature(e) for e in candidates)
        raise EncodingError(f"Ambiguous overload for '{function_name}': {signatures}")
    return candidates[0]


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError(f"expected integer, got bool {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text, 10)
    raise TypeError(f"expected integer, got {type(value).__name__}")


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value.removeprefix("0x").removeprefix("0X"))
    raise TypeError(f"expected hex bytes, got {type(value).__name__}")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise TypeError(f"expected bool, got {value!r}")


def coerce_argument(param: dict[str, Any], value: Any) -> Any:
    """Convert a resolved template value to what eth_abi expects for ``param``."""
    typ = param.get("type", "")

    array = _ARRAY_SUFFIX.match(typ)
    if array:
        if not isinstance(value, (list, tuple)):
            raise TypeError(f"expected list for {typ}, got {type(value).__name__}")
        element = {**param, "type": array.group(1)}
        return [coerce_argument(element, item) for item in value]

    if typ == "tuple":
        components = param.get("components", [])
        if isinstance(value, dict):
            value = [value[c["name"]] for c in components]
        if not isinstance(value, (list, tuple)) or len(value) != len(components):
            raise TypeError(f"expected {len(components)} tuple fields")
        return tuple(coerce_argument(c, v) for c, v in zip(components, value))

    if typ == "address":
        if not isinstance(value, str) or not is_address(value):
            raise ValueError(f"invalid address {value!r}")
        return Web3.to_checksum_address(value)

    if typ.startswith(("uint", "int")):
        return _to_int(value)

    if typ == "bool":
        return _to_bool(value)

    if typ.startswith("bytes"):
        return _to_bytes(value)

    if typ == "string":
        return str(value)

    return value


def encode_function_call(
    abi: list[dict[str, Any]],
    function_name: str,
    args: list[Any],
) -> str:
    """Selector plus ABI-encoded arguments as a 0x hex string."""
    entry = select_function(abi, function_name, len(args))
    inputs = entry.get("inputs", [])
    try:
        values = [coerce_argument(p, v) for p, v in zip(inputs, args)]
        encoded = encode([canonical_type(p) for p in inputs], values) if inputs else b""
    except (AbiEncodingError, ValueError, TypeError, KeyError, OverflowError) as e:
        raise EncodingError(f"Failed to encode function data: {e}") from e
    return "0x" + (function_selector(entry) + encoded).hex()


def parse_amount(value: Any) -> int:
    """Parse a resolved ``value`` field into a non-negative integer."""
    try:
        amount = _to_int(value)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Invalid value {value!r}: {e}") from e
    if amount < 0:
        raise EncodingError(f"Invalid value {value!r}: must be non-negative")
    return amount


def encode_call(
    template: Union[AbiTemplate, RawTemplate],
    resolved_args: Optional[list[Any]] = None,
    resolved_value: Any = "0",
    resolved_data: Optional[str] = None,
) -> ResolvedCall:
    """Build the concrete call from already-resolved template parts."""
    to = Web3.to_checksum_address(template.contract_address)

    if isinstance(template, AbiTemplate):
        data = encode_function_call(template.abi, template.function_name, resolved_args or [])
    else:
        data = resolved_data if resolved_data is not None else template.data
        if not _HEX_BYTES.match(data):
            raise EncodingError(f"Resolved data is not valid hex: {data[:66]}")
        data = data.lower()

    return ResolvedCall(to=to, data=data, value=parse_amount(resolved_value))


def resolve_template(
    template: Union[AbiTemplate, RawTemplate],
    context: WalletContext,
) -> ResolvedCall:
    """Resolve every placeholder for one wallet and encode the call."""
    value = resolve_value(template.value, context, "value")

    if isinstance(template, AbiTemplate):
        args = resolve_value(template.args, context, "args")
        return encode_call(template, resolved_args=args, resolved_value=value)

    # Raw call data takes each placeholder as one 32-byte word
    data = resolve_string(template.data, context, render=render_abi_word, location="data")
    return encode_call(template, resolved_value=value, resolved_data=data)
