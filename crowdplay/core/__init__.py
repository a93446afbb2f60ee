"""
Core client state.

This package contains the two stateful services of the client: the
`VoteLedger`, which keeps local votes and remote counts in step, and the
`PlaybackSession`, which owns the process's single `PlaybackEngine`.
"""

from .playback_engine import PlaybackEngine
from .playback_session import PlaybackSession
from .ports import AudioOutput, QueuedTrack, TrackQueue
from .vote_ledger import VoteLedger

__all__ = [
    "AudioOutput",
    "PlaybackEngine",
    "PlaybackSession",
    "QueuedTrack",
    "TrackQueue",
    "VoteLedger",
]
