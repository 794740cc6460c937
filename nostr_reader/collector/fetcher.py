"""Fan-out/fan-in access to every configured relay under one deadline."""

import asyncio
import logging
from contextlib import nullcontext
from typing import Any, Dict, List, Optional, Sequence, Set

from pydantic import ValidationError

from nostr_reader.errors import NoRelaysConfiguredError
from nostr_reader.models.event import Event, Filter
from nostr_reader.transport import BroadcastTransport, PublishResult

logger = logging.getLogger(__name__)


class RelayFetcher:
    """
    Issues queries and publishes against all relays in parallel.

    A single timeout bounds each logical call. Relays that fail or are still
    busy when the deadline passes are logged and left out; whatever arrived
    in time is used. No request is ever retried.
    """

    def __init__(
        self,
        transport: BroadcastTransport,
        relays: Sequence[str],
        timeout: float,
        prometheus_exporter=None,
    ):
        """
        Initialize the fetcher.

        Args:
            transport: Broadcast transport used for every relay operation
            relays: Relay URLs to fan out to (must not be empty)
            timeout: Deadline in seconds shared by all relays of one call
            prometheus_exporter: Optional Prometheus exporter for metrics

        Raises:
            NoRelaysConfiguredError: If ``relays`` is empty
        """
        if not relays:
            raise NoRelaysConfiguredError()

        self.transport = transport
        self.relays = list(relays)
        self.timeout = timeout
        self.prometheus_exporter = prometheus_exporter

    async def connect(self) -> List[str]:
        """
        Connect to every relay concurrently.

        Returns:
            The relays that accepted the connection, in configured order
        """

        async def _connect(relay: str) -> bool:
            try:
                await self.transport.connect(relay)
                return True
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Could not connect to relay {relay}: {e}")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_relay_error(relay, "connect")
                return False

        outcomes = await asyncio.gather(*(_connect(relay) for relay in self.relays))
        reachable = [relay for relay, ok in zip(self.relays, outcomes) if ok]

        if not reachable:
            logger.error(f"None of the {len(self.relays)} configured relays are reachable")
        else:
            logger.info(f"Connected to {len(reachable)}/{len(self.relays)} relays")

        return reachable

    async def fetch(self, query: Filter, operation_type: str = "query") -> Dict[str, Event]:
        """
        Run one query on every relay and merge the results.

        Args:
            query: Filter sent to each relay
            operation_type: Label used for metrics

        Returns:
            Events keyed by id; empty when nothing was found or reachable
        """
        return await self.fetch_many([query], operation_type=operation_type)

    async def fetch_many(
        self, queries: Sequence[Filter], operation_type: str = "query"
    ) -> Dict[str, Event]:
        """
        Run several queries on every relay under one shared deadline.

        Args:
            queries: Filters to send; each goes to every relay
            operation_type: Label used for metrics

        Relays are not trusted to apply the filter, so every event is
        re-checked against the query that produced it.

        Returns:
            The union of all results, deduplicated by event id
        """
        if not queries:
            return {}

        collected: Dict[str, Event] = {}
        answered: Set[str] = set()

        if self.prometheus_exporter:
            self.prometheus_exporter.record_fetch_operation(operation_type)
            timer = self.prometheus_exporter.time_request()
        else:
            timer = None

        async def _drain(relay: str, query: Filter) -> None:
            received = 0
            try:
                async for raw in self.transport.query(relay, query):
                    event = self._coerce_event(raw, relay)
                    if event is None:
                        continue
                    if not query.matches(event):
                        logger.debug(f"Dropping event {event.id} from {relay}: does not match query")
                        continue
                    # Same id means same content, so last write wins
                    collected[event.id] = event
                    received += 1
                answered.add(relay)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Query failed on relay {relay}: {e}")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_relay_error(relay, "query")
            finally:
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_events_received(relay, received)

        tasks = {
            asyncio.create_task(_drain(relay, query)): relay
            for query in queries
            for relay in self.relays
        }

        with timer if timer else nullcontext():
            _, pending = await asyncio.wait(list(tasks), timeout=self.timeout)

            for task in pending:
                relay = tasks[task]
                task.cancel()
                logger.warning(f"Relay {relay} did not finish within {self.timeout}s, using partial results")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_relay_error(relay, "timeout")

            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if not answered:
            logger.warning(f"No relay completed the {operation_type} query ({len(self.relays)} configured)")

        logger.debug(f"Fetched {len(collected)} unique events for {operation_type} query")
        return collected

    async def publish(self, event: Event) -> List[PublishResult]:
        """
        Broadcast a signed event to every relay.

        Args:
            event: Signed event

        Returns:
            One result per relay in configured order; relays that had not
            answered by the deadline are reported as timed out
        """

        async def _send(relay: str) -> PublishResult:
            try:
                await self.transport.publish(relay, event)
                return PublishResult(relay=relay)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                return PublishResult(relay=relay, error=str(e) or type(e).__name__)

        tasks = {relay: asyncio.create_task(_send(relay)) for relay in self.relays}
        _, pending = await asyncio.wait(list(tasks.values()), timeout=self.timeout)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: List[PublishResult] = []
        for relay, task in tasks.items():
            if task in pending:
                result = PublishResult(relay=relay, error="timed out")
            else:
                result = task.result()

            if not result.ok:
                logger.warning(f"Relay {relay} rejected event {event.id}: {result.error}")
                if self.prometheus_exporter:
                    self.prometheus_exporter.record_relay_error(relay, "publish")
            if self.prometheus_exporter:
                self.prometheus_exporter.record_publish_result(result.ok)
            results.append(result)

        return results

    @staticmethod
    def _coerce_event(raw: Any, relay: str) -> Optional[Event]:
        if isinstance(raw, Event):
            event = raw
        else:
            try:
                event = Event.model_validate(raw)
            except ValidationError as e:
                logger.debug(f"Dropping malformed event from {relay}: {e}")
                return None

        if not event.id:
            logger.debug(f"Dropping event without id from {relay}")
            return None
        return event
