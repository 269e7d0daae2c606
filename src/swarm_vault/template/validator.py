"""Structural validation of templates, run once per dispatch."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Union

from pydantic import ValidationError

from ..exceptions import TemplateValidationError
from .models import TEMPLATE_ADAPTER, AbiTemplate, RawTemplate
from .placeholders import (
    PLACEHOLDER_PATTERN,
    Placeholder,
    extract_placeholders,
    parse_placeholder,
    required_token_addresses,
)

_HEX_DATA = re.compile(r"^0x(?:[0-9a-fA-F]{2})*$")
_INT_LITERAL = re.compile(r"^(0x[0-9a-fA-F]+|[0-9]+)$")


@dataclass(frozen=True)
class ValidatedTemplate:
    """A template that passed validation, with its parsed placeholders."""
    template: Union[AbiTemplate, RawTemplate]
    placeholders: tuple[Placeholder, ...]
    token_addresses: tuple[str, ...]


def _format_location(loc: tuple) -> str:
    # Drop the discriminator tag pydantic prepends for tagged unions
    if loc and loc[0] in ("abi", "raw"):
        loc = loc[1:]
    return ".".join(str(p) for p in loc)


def parse_template(raw: Any) -> Union[AbiTemplate, RawTemplate]:
    """Parse a template payload, mapping pydantic errors to TemplateValidationError."""
    if isinstance(raw, (AbiTemplate, RawTemplate)):
        return raw
    if not isinstance(raw, Mapping):
        raise TemplateValidationError("Template must be an object")
    try:
        return TEMPLATE_ADAPTER.validate_python(dict(raw))
    except ValidationError as e:
        first = e.errors()[0]
        location = _format_location(first.get("loc", ()))
        raise TemplateValidationError(
            f"Invalid template: {location or 'template'}: {first.get('msg')}",
            field=location or None,
        ) from e


def _function_entries(abi: list[dict[str, Any]], name: str) -> list[dict[str, Any]]:
    # "type" defaults to "function" in the JSON ABI format
    return [
        entry for entry in abi
        if entry.get("name") == name and entry.get("type", "function") == "function"
    ]


def _validate_abi_template(template: AbiTemplate) -> None:
    entries = _function_entries(template.abi, template.function_name)
    if not entries:
        raise TemplateValidationError(
            f"Function '{template.function_name}' not found in ABI",
            field="functionName",
        )
    arity = len(template.args)
    if not any(len(entry.get("inputs", [])) == arity for entry in entries):
        expected = sorted({len(entry.get("inputs", [])) for entry in entries})
        raise TemplateValidationError(
            f"Function '{template.function_name}' expects {expected} argument(s), got {arity}",
            field="args",
        )


def _validate_raw_template(template: RawTemplate) -> None:
    stripped = PLACEHOLDER_PATTERN.sub("", template.data)
    if not _HEX_DATA.match(stripped):
        raise TemplateValidationError("Invalid hex data", field="data")


def _validate_value(value: str) -> None:
    full = PLACEHOLDER_PATTERN.fullmatch(value)
    if full:
        if not parse_placeholder(full.group(1), "value").is_numeric:
            raise TemplateValidationError(
                "value placeholder must resolve to an amount", field="value"
            )
        return
    if not _INT_LITERAL.match(value):
        raise TemplateValidationError(
            "value must be a non-negative integer or a single placeholder",
            field="value",
        )


def validate_template(raw: Any) -> ValidatedTemplate:
    """Validate a template before any per-wallet work.

    Raises:
        TemplateValidationError: schema violation, missing function, bad hex
            data, bad value, or an unknown/miscounted placeholder anywhere.
    """
    template = parse_template(raw)

    if isinstance(template, AbiTemplate):
        _validate_abi_template(template)
    else:
        _validate_raw_template(template)
    _validate_value(template.value)

    placeholders = extract_placeholders(template.to_payload())

    return ValidatedTemplate(
        template=template,
        placeholders=tuple(placeholders),
        token_addresses=tuple(required_token_addresses(placeholders)),
    )
