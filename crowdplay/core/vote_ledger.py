"""
Local record of the tracks this visitor has upvoted, and the toggle logic that
keeps it in step with the remote counter store.

The ledger is a convenience for choosing the direction of a toggle. It is NOT
vote-fraud prevention: anyone can clear their local storage or vote from
another device, and the store accepts whatever counts it is sent.
"""

import asyncio
import logging
from collections import Counter
from typing import Iterable

from crowdplay.api.client import CounterStoreClient
from crowdplay.exceptions import CrowdplayError
from crowdplay.models.records import UpvoteRecord, VoteResult
from crowdplay.storage.local_storage import LocalStorage

log = logging.getLogger(__name__)

LEDGER_KEY = "upvoted_tracks"


class VoteLedger:
    """
    Turns a single "toggle my vote" intent into a remote count update plus a
    local ledger change.

    Toggles for the same track are serialized so two quick clicks cannot both
    read the same base count. Toggles for different tracks run concurrently.
    """

    def __init__(self, client: CounterStoreClient, storage: LocalStorage):
        self.client = client
        self.storage = storage
        self._voted: set[str] = self.read_voted(storage)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @staticmethod
    def read_voted(storage: LocalStorage) -> set[str]:
        """Reads the persisted set of voted track ids; malformed entries read as empty."""
        raw = storage.get_item(LEDGER_KEY)
        if raw is None:
            return set()
        if not isinstance(raw, list):
            log.warning("Ignoring malformed vote ledger entry in local storage.")
            return set()
        return {str(track_id) for track_id in raw}

    @staticmethod
    def clear_stored(storage: LocalStorage) -> bool:
        return storage.remove_item(LEDGER_KEY)

    def _persist(self) -> None:
        if not self.storage.set_item(LEDGER_KEY, sorted(self._voted)):
            # The remote count already changed; the local hint simply drifts.
            log.warning(
                "[yellow]Vote recorded remotely but the local ledger could not be "
                "saved.[/yellow]"
            )

    @property
    def voted_tracks(self) -> frozenset[str]:
        return frozenset(self._voted)

    def has_voted(self, track_id: str) -> bool:
        return track_id in self._voted

    async def _fetch_or_create(self, track_id: str) -> UpvoteRecord:
        record = await self.client.fetch_count(track_id)
        if record is None:
            record = await self.client.create_count(track_id)
        return record

    async def _apply(self, track_id: str, upvote: bool) -> int:
        record = await self._fetch_or_create(track_id)
        if upvote:
            new_count = record.upvote_count + 1
        else:
            new_count = max(0, record.upvote_count - 1)
        updated = await self.client.set_count(track_id, new_count)
        return updated.upvote_count

    async def toggle_vote(self, track_id: str) -> VoteResult:
        """
        Up-votes a track the visitor has not voted on, or withdraws an existing vote.

        Never raises for store failures: they are reported as ``applied=False``
        with an unknown count, and the local ledger is left untouched.
        """
        lock = self._locks.setdefault(track_id, asyncio.Lock())
        self._lock_users[track_id] += 1
        try:
            async with lock:
                upvote = track_id not in self._voted
                try:
                    new_count = await self._apply(track_id, upvote)
                except CrowdplayError as e:
                    log.warning(
                        f"[yellow]{'Upvote' if upvote else 'Vote removal'} for "
                        f"{track_id} failed: {e}[/yellow]"
                    )
                    return VoteResult.failed()

                if upvote:
                    self._voted.add(track_id)
                else:
                    self._voted.discard(track_id)
                self._persist()
                log.debug(
                    f"{'Upvoted' if upvote else 'Removed vote for'} {track_id}, "
                    f"count is now {new_count}."
                )
                return VoteResult(applied=True, new_count=new_count)
        finally:
            self._lock_users[track_id] -= 1
            if self._lock_users[track_id] <= 0:
                del self._lock_users[track_id]
                self._locks.pop(track_id, None)

    async def bulk_initialize(self, track_ids: Iterable[str]) -> dict[str, int]:
        """Fetches counts for a list of tracks in one go; absent tracks count as zero."""
        return await self.client.fetch_counts_bulk(track_ids)

    def clear(self) -> bool:
        """Forgets every local vote. Remote counts are left as they are."""
        self._voted.clear()
        return self.clear_stored(self.storage)
