"""Tests for the process-wide playback session."""

from __future__ import annotations

import pytest

from crowdplay.core.playback_session import PlaybackSession
from crowdplay.exceptions import SessionError
from crowdplay.models.config import ClientConfig
from crowdplay.models.playback import PlayerStatus


async def test_only_one_session_per_process(audio, make_queue) -> None:
    session = PlaybackSession(audio, make_queue("A"))

    with pytest.raises(SessionError):
        PlaybackSession(audio, make_queue("A"))

    await session.close()

    replacement = PlaybackSession(audio, make_queue("A"))
    assert not replacement.closed
    with pytest.raises(SessionError):
        PlaybackSession(audio, make_queue("A"))
    await replacement.close()


async def test_session_from_config_uses_default_volume(audio, make_queue) -> None:
    config = ClientConfig(
        store_url="https://abc.supabase.co",
        api_key="anon",
        default_volume=25,
        config_path=".",
    )

    session = PlaybackSession.from_config(config, audio, make_queue("A"))

    assert session.state.volume == 25
    assert audio.volume == pytest.approx(0.25)
    await session.close()


async def test_views_share_one_now_playing_identity(audio, make_queue) -> None:
    audio.auto_duration = 120.0
    session = PlaybackSession(audio, make_queue("A", "B"))
    list_view, player_bar = [], []
    session.subscribe(list_view.append)
    session.subscribe(player_bar.append)

    await session.play_track("B", "https://cdn.test/B.mp3")

    assert session.is_current("B")
    assert session.is_playing("B")
    assert not session.is_current("A")
    assert list_view[-1] is player_bar[-1] is session.state
    assert list_view[0].status is PlayerStatus.IDLE
    await session.close()


async def test_unsubscribed_view_stops_receiving(audio, make_queue) -> None:
    session = PlaybackSession(audio, make_queue("A"))
    seen = []
    unsubscribe = session.subscribe(seen.append)
    unsubscribe()

    session.set_volume(20)

    assert len(seen) == 1
    assert session.state.volume == 20
    await session.close()


async def test_controls_delegate_to_engine(audio, make_queue) -> None:
    audio.auto_duration = 60.0
    session = PlaybackSession(audio, make_queue("A", "B"), volume=40)
    assert session.state.volume == 40

    await session.load("A", "https://cdn.test/A.mp3")
    session.play()
    session.seek(30)
    session.toggle_shuffle()
    session.toggle_repeat()
    session.set_minimized(True)
    session.pause()

    state = session.state
    assert state.status is PlayerStatus.PAUSED
    assert state.position_seconds == 30.0
    assert state.is_shuffled
    assert state.is_minimized

    await session.skip_next()
    assert session.is_playing("B")
    await session.skip_previous()
    assert session.is_current("A")

    session.stop()
    assert session.state.current_track is None
    await session.close()


async def test_closed_session_releases_audio_and_rejects_calls(audio, make_queue) -> None:
    async with PlaybackSession(audio, make_queue("A")) as session:
        session.toggle_minimized()

    assert session.closed
    assert audio.closed
    with pytest.raises(SessionError):
        session.play()
    await session.close()
