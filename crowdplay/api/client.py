"""
Async client for the remote upvote counter store (a PostgREST endpoint such as Supabase).
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

import aiohttp
from pydantic import ValidationError

from crowdplay.exceptions import (
    RecordNotFoundError,
    RemoteError,
    RemoteUnavailableError,
)
from crowdplay.models.config import ClientConfig
from crowdplay.models.records import UpvoteRecord
from crowdplay.utils.circuit_breaker import CircuitBreaker

log = logging.getLogger(__name__)


def _trips_breaker(exc: BaseException) -> bool:
    """Only transport failures and server-side errors count against the store."""
    if isinstance(exc, RemoteUnavailableError):
        return True
    return isinstance(exc, RemoteError) and (exc.status is None or exc.status >= 500)


def _quote_filter_value(value: str) -> str:
    """Quotes a value for use inside a PostgREST ``in.(...)`` list."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class CounterStoreClient:
    """
    Typed request layer over the ``song_upvotes`` collection.

    Each public method is a single round trip with no retry. Transport failures
    surface as RemoteUnavailableError and non-success responses as RemoteError.
    A missing record is a valid result (None), never an exception, except for
    set_count, which cannot update what does not exist.
    """

    def __init__(
        self,
        store_url: str,
        api_key: str,
        table: str = "song_upvotes",
        request_timeout: Optional[float] = None,
        bulk_chunk_size: int = 100,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initializes the client.

        Args:
            store_url: Base URL of the store, e.g. ``https://xyz.supabase.co``.
            api_key: Static shared key presented on every request.
            table: Name of the counter collection.
            request_timeout: Total seconds per request, or None for no timeout.
            bulk_chunk_size: Maximum track ids per bulk lookup request.
            circuit_breaker: Breaker shared by all requests of this client.
        """
        self.base_url = f"{store_url.rstrip('/')}/rest/v1/{table}"
        self._api_key = api_key
        self.request_timeout = request_timeout
        self.bulk_chunk_size = bulk_chunk_size

        self._session: Optional[aiohttp.ClientSession] = None
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            counts_as_failure=_trips_breaker
        )

    @classmethod
    def from_config(cls, config: ClientConfig) -> "CounterStoreClient":
        return cls(
            config.store_url,
            config.api_key,
            table=config.table,
            request_timeout=config.request_timeout,
            bulk_chunk_size=config.bulk_chunk_size,
            circuit_breaker=CircuitBreaker(
                failure_threshold=config.circuit_failure_threshold,
                recovery_timeout=config.circuit_recovery_timeout,
                counts_as_failure=_trips_breaker,
            ),
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "apikey": self._api_key,
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                    "Prefer": "return=representation",
                },
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "CounterStoreClient":
        await self._initialize_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Sends one request through the circuit breaker and returns the decoded rows.

        Raises:
            RemoteUnavailableError: On transport failure or an open circuit.
            RemoteError: On a non-2xx status or a body that is not a JSON list.
        """
        await self._initialize_session()

        async with self._circuit_breaker:
            start_time = time.monotonic()
            try:
                async with self._session.request(
                    method, self.base_url, params=params, json=payload
                ) as r:
                    duration_ms = (time.monotonic() - start_time) * 1000
                    log.debug(
                        f"{method} {self.base_url} {params or ''} -> {r.status} "
                        f"({duration_ms:.0f} ms)"
                    )

                    if r.status >= 400:
                        body = await r.text()
                        raise RemoteError(
                            f"Counter store answered {r.status} {r.reason}: {body[:200]}",
                            status=r.status,
                        )

                    text = await r.text()
            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
                raise RemoteUnavailableError(
                    f"Counter store unreachable: {str(e) or type(e).__name__}"
                ) from e
            except aiohttp.ClientError as e:
                raise RemoteError(f"Counter store request failed: {e}") from e

            if not text:
                return []
            try:
                data = json.loads(text)
            except json.JSONDecodeError as e:
                raise RemoteError(
                    f"Counter store returned invalid JSON: {e}", status=r.status
                ) from e

        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise RemoteError(
                f"Unexpected response shape from counter store: {type(data).__name__}"
            )
        return data

    @staticmethod
    def _parse_record(row: Dict[str, Any]) -> UpvoteRecord:
        try:
            return UpvoteRecord.model_validate(row)
        except ValidationError as e:
            raise RemoteError(f"Malformed counter record: {e}") from e

    # Public API Methods
    async def fetch_count(self, track_id: str) -> Optional[UpvoteRecord]:
        """Looks up the single record for a track. Returns None when absent."""
        rows = await self._request(
            "GET", params={"track_id": f"eq.{track_id}", "select": "*"}
        )
        return self._parse_record(rows[0]) if rows else None

    async def create_count(self, track_id: str) -> UpvoteRecord:
        """
        Creates a record with a count of zero.

        When a concurrent creation already produced the record, the store answers
        409 and the existing record is re-fetched and returned instead.
        """
        try:
            rows = await self._request(
                "POST", payload={"track_id": track_id, "upvote_count": 0}
            )
        except RemoteError as e:
            if e.status != 409:
                raise
            log.debug(f"Record for {track_id} already exists, re-fetching.")
            existing = await self.fetch_count(track_id)
            if existing is None:
                raise RemoteError(
                    f"Record for {track_id} reported as existing but not found.",
                    status=409,
                ) from e
            return existing

        if not rows:
            raise RemoteError(f"Counter store returned no record for {track_id}.")
        return self._parse_record(rows[0])

    async def set_count(self, track_id: str, new_count: int) -> UpvoteRecord:
        """
        Overwrites the stored count for an existing record.

        Raises:
            RecordNotFoundError: If the track has no record yet.
        """
        if new_count < 0:
            raise ValueError(f"Upvote count cannot be negative: {new_count}")

        rows = await self._request(
            "PATCH",
            params={"track_id": f"eq.{track_id}"},
            payload={"upvote_count": new_count},
        )
        if not rows:
            raise RecordNotFoundError(f"No upvote record exists for track {track_id}.")
        return self._parse_record(rows[0])

    async def fetch_counts_bulk(self, track_ids: Iterable[str]) -> Dict[str, int]:
        """
        Fetches counts for many tracks, chunked to keep request URLs short.

        Track ids without a record are absent from the result.
        """
        unique_ids = list(dict.fromkeys(track_ids))
        if not unique_ids:
            return {}

        async def fetch_chunk(chunk: List[str]) -> List[Dict[str, Any]]:
            id_list = ",".join(_quote_filter_value(tid) for tid in chunk)
            return await self._request(
                "GET",
                params={
                    "track_id": f"in.({id_list})",
                    "select": "track_id,upvote_count",
                },
            )

        chunks = [
            unique_ids[i : i + self.bulk_chunk_size]
            for i in range(0, len(unique_ids), self.bulk_chunk_size)
        ]
        log.debug(
            f"Bulk fetching counts for {len(unique_ids)} tracks "
            f"in {len(chunks)} request(s)..."
        )
        results = await asyncio.gather(*(fetch_chunk(chunk) for chunk in chunks))

        counts: Dict[str, int] = {}
        for rows in results:
            for row in rows:
                try:
                    counts[str(row["track_id"])] = int(row["upvote_count"])
                except (KeyError, TypeError, ValueError) as e:
                    raise RemoteError(f"Malformed bulk count row {row!r}") from e
        return counts
