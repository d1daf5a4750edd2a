"""
Cacher — Cache Entry

The stored value wrapper and its JSON wire format:
    {"data": <value>, "expiry": <seconds, 0 = never>, "window": <bool>}
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """A cached value together with its expiry policy."""

    model_config = ConfigDict(frozen=True)

    data: Any = None
    expiry: int = Field(default=0, ge=0)
    window: bool = False

    @property
    def renews_on_read(self) -> bool:
        """Sliding expiry applies only to entries that expire at all."""
        return self.window and self.expiry > 0

    def encode(self) -> str:
        """Serialize to the JSON wire format."""
        return self.model_dump_json()

    @classmethod
    def decode(cls, raw: str | bytes) -> "CacheEntry":
        """Parse a wire-format record. Raises pydantic.ValidationError on corrupt input."""
        return cls.model_validate_json(raw)
