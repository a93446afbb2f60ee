"""
Data Models Layer.

This package contains the Pydantic models and dataclasses that define the core
data structures used throughout the application: configuration, counter
records, vote outcomes and playback snapshots.
"""

from .config import ClientConfig
from .playback import PlaybackState, PlayerStatus, RepeatMode
from .records import UpvoteRecord, VoteResult

__all__ = [
    "ClientConfig",
    "PlaybackState",
    "PlayerStatus",
    "RepeatMode",
    "UpvoteRecord",
    "VoteResult",
]
