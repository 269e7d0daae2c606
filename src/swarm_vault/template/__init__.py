"""Transaction templates: placeholder grammar, validation, resolution, encoding."""

from .encoder import encode_call, encode_function_call, parse_amount, resolve_template
from .models import AbiTemplate, RawTemplate, Template
from .placeholders import (
    Placeholder,
    PlaceholderKind,
    extract_placeholders,
    parse_placeholder,
    required_token_addresses,
)
from .resolver import WalletContext, resolve_placeholder, resolve_value
from .validator import ValidatedTemplate, validate_template

__all__ = [
    "AbiTemplate",
    "RawTemplate",
    "Template",
    "Placeholder",
    "PlaceholderKind",
    "parse_placeholder",
    "extract_placeholders",
    "required_token_addresses",
    "WalletContext",
    "resolve_placeholder",
    "resolve_value",
    "ValidatedTemplate",
    "validate_template",
    "encode_call",
    "encode_function_call",
    "parse_amount",
    "resolve_template",
]
