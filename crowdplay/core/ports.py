"""
Capabilities the playback engine needs from the outside world.

The engine is written against these protocols only, so it can be driven by a
real audio backend in the application and by fakes in tests.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional, Protocol

from crowdplay.models.playback import RepeatMode


@dataclass(frozen=True)
class QueuedTrack:
    """A playable entry handed out by a track queue."""

    track_id: str
    source_url: str


class AudioOutput(Protocol):
    """A single audio output resource (an HTML audio element or equivalent)."""

    async def load(self, url: str) -> float:
        """Loads a source and resolves with its duration once metadata is ready."""
        ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, seconds: float) -> None: ...

    def set_volume(self, level: float) -> None:
        """Sets the output volume, 0.0 to 1.0."""
        ...

    def stop(self) -> None:
        """Stops playback and releases the current source."""
        ...

    async def close(self) -> None: ...

    def bind(
        self,
        on_time_update: Callable[[float], None],
        on_ended: Callable[[], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        """Registers the callbacks for timeupdate, ended and error notifications."""
        ...


class TrackQueue(Protocol):
    """Decides what plays next; shuffle and repeat flags are passed in."""

    def next_track(
        self, current: Optional[str], *, shuffle: bool, repeat: RepeatMode
    ) -> Optional[QueuedTrack]: ...

    def previous_track(
        self, current: Optional[str], *, shuffle: bool, repeat: RepeatMode
    ) -> Optional[QueuedTrack]: ...
