"""
Playback state machine states and the immutable snapshot handed to consumers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PlayerStatus(Enum):
    """States of the playback engine."""

    IDLE = "idle"  # Nothing loaded
    LOADING = "loading"  # Track assigned, media not ready yet
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    ERRORED = "errored"  # Recoverable only through a new load


class RepeatMode(Enum):
    OFF = "off"
    ONE = "one"
    ALL = "all"

    def next(self) -> "RepeatMode":
        """Cycles off -> one -> all -> off."""
        order = (RepeatMode.OFF, RepeatMode.ONE, RepeatMode.ALL)
        return order[(order.index(self) + 1) % len(order)]


@dataclass(frozen=True)
class PlaybackState:
    """A read-only snapshot of the session's playback state."""

    current_track: Optional[str] = None
    status: PlayerStatus = PlayerStatus.IDLE
    position_seconds: float = 0.0
    duration_seconds: float = 0.0
    volume: int = 70
    is_shuffled: bool = False
    repeat_mode: RepeatMode = RepeatMode.OFF
    is_minimized: bool = False
    error: Optional[str] = None

    @property
    def is_playing(self) -> bool:
        return self.status is PlayerStatus.PLAYING
