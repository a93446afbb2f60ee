"""
Models for the rows held by the remote counter store and for vote outcomes.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class UpvoteRecord(BaseModel):
    """A single row of the ``song_upvotes`` collection, as returned by the store."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[Union[int, str]] = None
    track_id: str
    upvote_count: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class VoteResult:
    """
    Outcome of a single vote toggle.

    ``new_count`` is None when the store could not be reached and the
    resulting count is unknown.
    """

    applied: bool
    new_count: Optional[int] = None

    @classmethod
    def failed(cls) -> "VoteResult":
        return cls(applied=False, new_count=None)
