"""
Partner programme and feed catalog records returned by the affiliate API
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class Partner(BaseModel):
    """A joined affiliate programme. Read-only for the duration of a run."""

    id: int
    name: str
    feed_api_identifier: Optional[str] = None

    model_config = ConfigDict(extra="ignore", frozen=True)


class Feed(BaseModel):
    """One row of the partner feed catalog"""

    id: int
    partner_id: int
    name: str = ""
    status: str = "inactive"
    item_count: int = Field(0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def is_active(self) -> bool:
        return self.status.strip().lower() == "active"
