"""Security code model - per-property access codes with validity windows."""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class SecurityCodeEntry(BaseModel):
    """Access code for a property. Dates are kept raw so malformed values can be tolerated."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    code_type: str = Field(default="", alias="codeType", description="Code type, e.g. Lockbox, Gate")
    code: str = Field(default="", description="Code value")
    start_date: Optional[str] = Field(None, alias="startDate", description="YYYY-MM-DD, inclusive")
    end_date: Optional[str] = Field(None, alias="endDate", description="YYYY-MM-DD, exclusive")

    @field_validator("code_type", "code", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _coerce_optional_text(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)
