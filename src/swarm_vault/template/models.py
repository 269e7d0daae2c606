"""Transaction template schemas."""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

ADDRESS_REGEX = r"^0x[a-fA-F0-9]{40}$"


class _TemplateBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    contract_address: str = Field(alias="contractAddress", pattern=ADDRESS_REGEX)
    value: str = "0"

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("value must be an integer string")
        if isinstance(v, int):
            return str(v)
        return v

    def to_payload(self) -> dict[str, Any]:
        """Wire form (camelCase) for persistence."""
        return self.model_dump(by_alias=True, mode="json")


class AbiTemplate(_TemplateBase):
    """Call-description mode: contract ABI + function name + args."""
    mode: Literal["abi"] = "abi"
    abi: list[dict[str, Any]] = Field(min_length=1)
    function_name: str = Field(alias="functionName", min_length=1)
    args: list[Any] = Field(default_factory=list)


class RawTemplate(_TemplateBase):
    """Raw mode: pre-encoded hex call data, may contain placeholders."""
    mode: Literal["raw"] = "raw"
    data: str


Template = Annotated[Union[AbiTemplate, RawTemplate], Field(discriminator="mode")]

TEMPLATE_ADAPTER: TypeAdapter[Template] = TypeAdapter(Template)
