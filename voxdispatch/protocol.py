"""Self-description document every service serves at its docs path."""
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional


class EndpointDoc(BaseModel):
    method: str = Field(min_length=1)
    path: str = Field(min_length=1)
    description: str = ""
    parameters: Optional[Dict[str, Any]] = None

    @field_validator("path")
    @classmethod
    def _printable_path(cls, v: str) -> str:
        if not v.isprintable() or any(ch.isspace() for ch in v):
            raise ValueError("path must not contain whitespace or control characters")
        return v


class ServiceDoc(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    endpoints: List[EndpointDoc] = Field(min_length=1)
