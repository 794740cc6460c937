"""Tests for the relay fetcher."""

import logging
from unittest.mock import MagicMock

import pytest

from nostr_reader.collector.fetcher import RelayFetcher
from nostr_reader.errors import NoRelaysConfiguredError
from nostr_reader.models.event import Filter
from tests.conftest import RELAYS, hex_id, make_event

FEED_FILTER = Filter(kinds=[1111], limit=50)


@pytest.fixture
def fetcher(transport):
    return RelayFetcher(transport, RELAYS, timeout=0.2)


def test_requires_relays(transport):
    with pytest.raises(NoRelaysConfiguredError):
        RelayFetcher(transport, [], timeout=1)


@pytest.mark.asyncio
async def test_connect_skips_unreachable_relays(transport, fetcher):
    transport.failing_connect = {RELAYS[1]}

    reachable = await fetcher.connect()

    assert reachable == [RELAYS[0], RELAYS[2]]


@pytest.mark.asyncio
async def test_connect_with_no_reachable_relays(transport, fetcher):
    transport.failing_connect = set(RELAYS)

    assert await fetcher.connect() == []


@pytest.mark.asyncio
async def test_fetch_deduplicates_across_relays(transport, fetcher):
    shared = make_event(1)
    transport.add(RELAYS[0], shared, make_event(2))
    transport.add(RELAYS[1], shared, make_event(3))
    transport.add(RELAYS[2], shared, shared)

    events = await fetcher.fetch(FEED_FILTER)

    assert sorted(events) == [hex_id(1), hex_id(2), hex_id(3)]
    assert len(transport.queries) == len(RELAYS)


@pytest.mark.asyncio
async def test_fetch_empty_is_not_an_error(fetcher):
    assert await fetcher.fetch(FEED_FILTER) == {}


@pytest.mark.asyncio
async def test_failing_relay_is_skipped(transport, fetcher):
    transport.failing_query = {RELAYS[0]}
    transport.add(RELAYS[0], make_event(1))
    transport.add(RELAYS[1], make_event(2))

    events = await fetcher.fetch(FEED_FILTER)

    assert list(events) == [hex_id(2)]


@pytest.mark.asyncio
async def test_all_relays_failing_returns_empty(transport, fetcher):
    transport.failing_query = set(RELAYS)

    assert await fetcher.fetch(FEED_FILTER) == {}


@pytest.mark.asyncio
async def test_timeout_keeps_partial_results(transport, fetcher):
    """A relay still streaming at the deadline contributes what it already sent."""
    transport.stalling = {RELAYS[0]}
    transport.add(RELAYS[0], make_event(1))
    transport.add(RELAYS[1], make_event(2))

    events = await fetcher.fetch(FEED_FILTER)

    assert sorted(events) == [hex_id(1), hex_id(2)]


@pytest.mark.asyncio
async def test_malformed_events_are_dropped(transport, fetcher):
    transport.raw_events[RELAYS[0]] = [
        {"id": hex_id(7), "pubkey": "pk", "created_at": 10, "kind": 1111, "tags": [], "content": "ok"},
        {"id": hex_id(8), "created_at": "yesterday"},
        {"content": "no id"},
    ]

    events = await fetcher.fetch(FEED_FILTER)

    assert list(events) == [hex_id(7)]
    assert events[hex_id(7)].content == "ok"


@pytest.mark.asyncio
async def test_events_not_matching_the_query_are_dropped(transport, fetcher):
    """Relays that ignore the filter cannot inject unrelated events."""
    transport.raw_events[RELAYS[0]] = [
        make_event(1, kind=1111).model_dump(),
        make_event(2, kind=7).model_dump(),
    ]

    events = await fetcher.fetch(FEED_FILTER)

    assert list(events) == [hex_id(1)]


@pytest.mark.asyncio
async def test_tag_filter_is_rechecked(transport, fetcher):
    root = hex_id(100)
    transport.raw_events[RELAYS[0]] = [
        make_event(1, tags=[["e", root]]).model_dump(),
        make_event(2, tags=[["e", hex_id(101)]]).model_dump(),
    ]

    events = await fetcher.fetch(Filter(tags={"e": [root]}))

    assert list(events) == [hex_id(1)]


@pytest.mark.asyncio
async def test_warns_when_no_relay_completes(transport, fetcher, caplog):
    transport.failing_query = {RELAYS[0]}
    transport.stalling = {RELAYS[1], RELAYS[2]}

    with caplog.at_level(logging.WARNING, logger="nostr_reader.collector.fetcher"):
        await fetcher.fetch(FEED_FILTER)

    assert "No relay completed" in caplog.text


@pytest.mark.asyncio
async def test_no_warning_when_one_relay_completes_a_query(transport, fetcher, caplog):
    """A relay counts as answering when any of its queries finished."""
    root = hex_id(100)
    transport.failing_query = {RELAYS[1], RELAYS[2]}

    with caplog.at_level(logging.WARNING, logger="nostr_reader.collector.fetcher"):
        await fetcher.fetch_many([
            Filter(kinds=[1, 1111], tags={"e": [root]}),
            Filter(kinds=[1, 1111], tags={"E": [root]}),
        ])

    assert "No relay completed" not in caplog.text

@pytest.mark.asyncio
async def test_fetch_many_merges_queries(transport, fetcher):
    root = hex_id(100)
    lower = make_event(1, tags=[["e", root]], kind=1)
    upper = make_event(2, tags=[["E", root]], kind=1)
    transport.add(RELAYS[0], lower)
    transport.add(RELAYS[1], upper)

    events = await fetcher.fetch_many([
        Filter(kinds=[1, 1111], tags={"e": [root]}),
        Filter(kinds=[1, 1111], tags={"E": [root]}),
    ])

    assert sorted(events) == [hex_id(1), hex_id(2)]
    assert len(transport.queries) == 2 * len(RELAYS)


@pytest.mark.asyncio
async def test_metrics_are_recorded(transport):
    exporter = MagicMock()
    fetcher = RelayFetcher(transport, RELAYS, timeout=0.2, prometheus_exporter=exporter)
    transport.failing_query = {RELAYS[2]}
    transport.add(RELAYS[0], make_event(1))

    await fetcher.fetch(FEED_FILTER, operation_type="feed")

    exporter.record_fetch_operation.assert_called_once_with("feed")
    exporter.record_relay_error.assert_called_once_with(RELAYS[2], "query")
    exporter.record_events_received.assert_any_call(RELAYS[0], 1)


@pytest.mark.asyncio
async def test_publish_reports_every_relay(transport, fetcher):
    transport.publish_errors = {RELAYS[1]: "blocked: spam"}
    event = make_event(1)

    results = await fetcher.publish(event)

    assert [result.relay for result in results] == RELAYS
    assert [result.ok for result in results] == [True, False, True]
    assert results[1].error == "blocked: spam"
    assert len(transport.published) == 2


@pytest.mark.asyncio
async def test_publish_timeout_is_an_error(transport, fetcher):
    transport.stalling_publish = {RELAYS[0]}

    results = await fetcher.publish(make_event(1))

    assert results[0].error == "timed out"
    assert results[1].ok and results[2].ok
