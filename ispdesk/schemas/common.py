from typing import Optional

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request bodies arrive in the dashboard's camelCase; snake_case is accepted too."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


def strip_or_none(v) -> Optional[str]:
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class TrimmedModel(CamelModel):
    @field_validator("*", mode="before")
    @classmethod
    def _trim_strings(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v
