"""
The playback state machine.

The engine owns the single audio output resource and the one mutable
PlaybackState. Consumers only ever see immutable snapshots, delivered to
listeners after every change.
"""

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Coroutine
from typing import Any, Optional

from crowdplay.exceptions import PlaybackResourceError
from crowdplay.models.playback import PlaybackState, PlayerStatus, RepeatMode

from .ports import AudioOutput, QueuedTrack, TrackQueue

log = logging.getLogger(__name__)

Listener = Callable[[PlaybackState], None]

SEEKABLE = {
    PlayerStatus.LOADING,
    PlayerStatus.PLAYING,
    PlayerStatus.PAUSED,
    PlayerStatus.ENDED,
}


def _clamp_volume(level: float) -> int:
    return max(0, min(100, int(round(level))))


class PlaybackEngine:
    """
    Drives an AudioOutput through the states
    IDLE, LOADING, PLAYING, PAUSED, ENDED and ERRORED.

    A load that is overtaken by a later load is "superseded": its readiness or
    failure is ignored once it resolves. Loads are tagged with the track id and
    a generation number, and both must still match.
    """

    def __init__(self, audio: AudioOutput, queue: TrackQueue, volume: int = 70):
        self._audio = audio
        self._queue = queue
        self._state = PlaybackState(volume=_clamp_volume(volume))
        self._load_generation = 0
        self._listeners: list[Listener] = []
        self._pending: set[asyncio.Task] = set()
        self.last_error: Optional[PlaybackResourceError] = None

        self._audio.set_volume(self._state.volume / 100)
        self._audio.bind(
            on_time_update=self.handle_time_update,
            on_ended=self._on_ended_event,
            on_error=self.handle_error,
        )

    @property
    def state(self) -> PlaybackState:
        return self._state

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Registers a snapshot listener and returns a callable that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _update(self, **changes: Any) -> None:
        new_state = dataclasses.replace(self._state, **changes)
        if new_state == self._state:
            return
        if new_state.status is not self._state.status:
            log.debug(
                f"Playback {self._state.status.value} -> {new_state.status.value} "
                f"({new_state.current_track})"
            )
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                log.exception("Playback state listener failed")

    def _is_current_load(self, track_id: str, generation: int) -> bool:
        return (
            generation == self._load_generation
            and self._state.current_track == track_id
        )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # Transport
    async def load(self, track_id: str, source_url: str, autoplay: bool = False) -> None:
        """
        Makes ``track_id`` the current track and waits for its metadata.

        Any live source is stopped and released first. With ``autoplay`` the
        engine moves straight to PLAYING while the source is still loading.
        """
        if self._state.current_track is not None:
            self._audio.stop()

        self._load_generation += 1
        generation = self._load_generation
        self._update(
            current_track=track_id,
            status=PlayerStatus.LOADING,
            position_seconds=0.0,
            duration_seconds=0.0,
            error=None,
        )
        if autoplay:
            self.play()

        try:
            duration = await self._audio.load(source_url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._is_current_load(track_id, generation):
                self.handle_error(e)
            else:
                log.debug(f"Ignoring failure of superseded load for {track_id}: {e}")
            return

        if not self._is_current_load(track_id, generation):
            log.debug(f"Ignoring readiness of superseded load for {track_id}")
            return

        status = self._state.status
        if status is PlayerStatus.ERRORED:
            log.debug(f"Ignoring readiness of {track_id} after a resource error")
            return
        if status is PlayerStatus.LOADING:
            status = PlayerStatus.PAUSED
        self.last_error = None
        self._update(duration_seconds=max(0.0, float(duration or 0.0)), status=status)

    def play(self) -> None:
        """Starts or resumes playback. Does nothing when idle or errored."""
        status = self._state.status
        if status in (PlayerStatus.IDLE, PlayerStatus.ERRORED):
            log.debug(f"play() ignored while {status.value}")
            return
        if status is PlayerStatus.PLAYING:
            return

        position = self._state.position_seconds
        if status is PlayerStatus.ENDED:
            self._audio.seek(0.0)
            position = 0.0
        try:
            self._audio.play()
        except Exception as e:
            self.handle_error(e)
            return
        self._update(status=PlayerStatus.PLAYING, position_seconds=position)

    def pause(self) -> None:
        if self._state.status is not PlayerStatus.PLAYING:
            return
        self._audio.pause()
        self._update(status=PlayerStatus.PAUSED)

    def toggle_play(self) -> None:
        if self._state.is_playing:
            self.pause()
        else:
            self.play()

    def seek(self, position_seconds: float) -> None:
        """Moves the playhead, clamped to the known duration."""
        if self._state.status not in SEEKABLE:
            return
        position = max(0.0, min(float(position_seconds), self._state.duration_seconds))
        self._audio.seek(position)
        self._update(position_seconds=position)

    async def _skip_to(self, track: Optional[QueuedTrack]) -> None:
        if track is None:
            self._stop_to_idle()
            return
        await self.load(track.track_id, track.source_url, autoplay=True)

    async def skip_next(self) -> None:
        """Loads and plays the queue's next track, or goes idle if there is none."""
        await self._skip_to(
            self._queue.next_track(
                self._state.current_track,
                shuffle=self._state.is_shuffled,
                repeat=self._state.repeat_mode,
            )
        )

    async def skip_previous(self) -> None:
        await self._skip_to(
            self._queue.previous_track(
                self._state.current_track,
                shuffle=self._state.is_shuffled,
                repeat=self._state.repeat_mode,
            )
        )

    def _stop_to_idle(self) -> None:
        if self._state.current_track is not None:
            self._audio.stop()
        self._load_generation += 1
        self._update(
            current_track=None,
            status=PlayerStatus.IDLE,
            position_seconds=0.0,
            duration_seconds=0.0,
            error=None,
        )

    def stop(self) -> None:
        """Releases the current source and returns to IDLE."""
        self._stop_to_idle()

    # Flags
    def set_volume(self, level: float) -> None:
        volume = _clamp_volume(level)
        self._audio.set_volume(volume / 100)
        self._update(volume=volume)

    def toggle_shuffle(self) -> None:
        self._update(is_shuffled=not self._state.is_shuffled)

    def toggle_repeat(self) -> None:
        self._update(repeat_mode=self._state.repeat_mode.next())

    def set_minimized(self, minimized: bool) -> None:
        self._update(is_minimized=minimized)

    def toggle_minimized(self) -> None:
        self._update(is_minimized=not self._state.is_minimized)

    # Audio resource events
    def handle_time_update(self, position_seconds: float) -> None:
        """Records the playhead reported by the resource. Not a transition."""
        if self._state.status is PlayerStatus.IDLE:
            return
        self._update(position_seconds=max(0.0, float(position_seconds)))

    def _on_ended_event(self) -> None:
        self._spawn(self.handle_ended(self._load_generation))

    async def handle_ended(self, generation: Optional[int] = None) -> None:
        """
        Reacts to the end of the current source: repeat it, advance through the
        queue, or settle in ENDED.

        ``generation`` is the load that was current when the event fired. An
        event from a source that has since been replaced is ignored.
        """
        if generation is not None and generation != self._load_generation:
            log.debug("Ignoring ended event from a superseded source")
            return
        state = self._state
        if state.current_track is None or state.status in (
            PlayerStatus.ERRORED,
            PlayerStatus.ENDED,
        ):
            return

        if state.repeat_mode is RepeatMode.ONE:
            self._audio.seek(0.0)
            try:
                self._audio.play()
            except Exception as e:
                self.handle_error(e)
                return
            self._update(status=PlayerStatus.PLAYING, position_seconds=0.0)
            return

        next_track = self._queue.next_track(
            state.current_track, shuffle=state.is_shuffled, repeat=state.repeat_mode
        )
        if next_track is not None or state.repeat_mode is RepeatMode.ALL:
            await self._skip_to(next_track)
            return

        self._update(
            status=PlayerStatus.ENDED, position_seconds=state.duration_seconds
        )

    def handle_error(self, error: BaseException) -> None:
        """Moves to ERRORED, keeping the current track for display. No retry."""
        if self._state.current_track is None:
            log.debug(f"Audio error with nothing loaded: {error}")
            return
        message = str(error) or type(error).__name__
        if not isinstance(error, PlaybackResourceError):
            wrapped = PlaybackResourceError(message)
            wrapped.__cause__ = error
            error = wrapped
        self.last_error = error
        log.error(
            f"[red]Playback failed for {self._state.current_track}: {message}[/red]"
        )
        self._update(status=PlayerStatus.ERRORED, error=message)

    async def close(self) -> None:
        """Cancels pending event handling and releases the audio resource."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._stop_to_idle()
        await self._audio.close()
