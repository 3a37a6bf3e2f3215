"""Base model for RPC response payloads.

Every RPC response model inherits from :class:`RpcBaseModel` which
provides:

* ``alias_generator=to_camel`` so camelCase RPC keys map
  automatically to snake_case fields.
* A ``raw`` dict that captures the original payload.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class RpcBaseModel(BaseModel):
    """Base for JSON-RPC response models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[str, Any] = Field(default_factory=dict)
    """Original RPC response dict."""

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        """Stash the raw payload unless the caller provided ``raw`` explicitly."""
        if not isinstance(values, dict):
            return values
        if "raw" in values:
            return values
        return {**values, "raw": dict(values)}
