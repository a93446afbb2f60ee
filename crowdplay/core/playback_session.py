"""
The single process-wide playback session shared by every view.
"""

import logging
from collections.abc import Callable
from typing import ClassVar, Optional

from crowdplay.exceptions import SessionError
from crowdplay.models.config import ClientConfig
from crowdplay.models.playback import PlaybackState

from .playback_engine import Listener, PlaybackEngine
from .ports import AudioOutput, TrackQueue

log = logging.getLogger(__name__)


class PlaybackSession:
    """
    Owns the one PlaybackEngine of the process.

    Create it once at start-up and hand it to consumers explicitly. Opening a
    second session while one is live raises SessionError; after ``close()``
    a new session may be created (start-up after shutdown, tests).
    """

    _active: ClassVar[Optional["PlaybackSession"]] = None

    def __init__(self, audio: AudioOutput, queue: TrackQueue, volume: int = 70):
        if PlaybackSession._active is not None:
            raise SessionError("A playback session is already open in this process.")
        self._engine = PlaybackEngine(audio, queue, volume=volume)
        self._closed = False
        PlaybackSession._active = self
        log.debug("Playback session opened.")

    @classmethod
    def from_config(
        cls, config: ClientConfig, audio: AudioOutput, queue: TrackQueue
    ) -> "PlaybackSession":
        return cls(audio, queue, volume=config.default_volume)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> PlaybackState:
        return self._engine.state

    def is_current(self, track_id: str) -> bool:
        """True if ``track_id`` is the session's now-playing track."""
        return self._engine.state.current_track == track_id

    def is_playing(self, track_id: str) -> bool:
        return self.is_current(track_id) and self._engine.state.is_playing

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Calls ``listener`` with the current snapshot now and after every change."""
        unsubscribe = self._engine.add_listener(listener)
        listener(self._engine.state)
        return unsubscribe

    def _require_open(self) -> PlaybackEngine:
        if self._closed:
            raise SessionError("The playback session has been closed.")
        return self._engine

    async def play_track(self, track_id: str, source_url: str) -> None:
        """Loads a track and starts playing it as soon as possible."""
        await self._require_open().load(track_id, source_url, autoplay=True)

    async def load(self, track_id: str, source_url: str) -> None:
        await self._require_open().load(track_id, source_url)

    def play(self) -> None:
        self._require_open().play()

    def pause(self) -> None:
        self._require_open().pause()

    def toggle_play(self) -> None:
        self._require_open().toggle_play()

    def seek(self, position_seconds: float) -> None:
        self._require_open().seek(position_seconds)

    async def skip_next(self) -> None:
        await self._require_open().skip_next()

    async def skip_previous(self) -> None:
        await self._require_open().skip_previous()

    def stop(self) -> None:
        self._require_open().stop()

    def set_volume(self, level: float) -> None:
        self._require_open().set_volume(level)

    def toggle_shuffle(self) -> None:
        self._require_open().toggle_shuffle()

    def toggle_repeat(self) -> None:
        self._require_open().toggle_repeat()

    def set_minimized(self, minimized: bool) -> None:
        self._require_open().set_minimized(minimized)

    def toggle_minimized(self) -> None:
        self._require_open().toggle_minimized()

    async def close(self) -> None:
        """Releases the audio resource. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._engine.close()
        finally:
            if PlaybackSession._active is self:
                PlaybackSession._active = None
            log.debug("Playback session closed.")

    async def __aenter__(self) -> "PlaybackSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
