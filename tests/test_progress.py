"""Tests for the progress channel and SSE encoding."""

import json
import logging

import pytest

from plansync.sync.progress import ProgressChannel, encode_sse


def test_encode_sse_frame():
    frame = encode_sse({"message": "Fetching plans from AGL..."})

    assert frame == 'data: {"message": "Fetching plans from AGL..."}\n\n'


def test_encode_sse_serialises_unknown_types_as_strings():
    class Marker:
        def __str__(self):
            return "marker"

    frame = encode_sse({"value": Marker()})

    assert json.loads(frame[len("data: "):]) == {"value": "marker"}


@pytest.mark.asyncio
async def test_events_arrive_in_order_with_terminal_last():
    channel = ProgressChannel()

    await channel.emit("one")
    await channel.warn("two")
    await channel.finish({"done": True, "success": True})

    events = [event async for event in channel]

    assert events == [{"message": "one"}, {"message": "two"}, {"done": True, "success": True}]
    assert channel.closed
    assert channel.terminal == {"done": True, "success": True}


@pytest.mark.asyncio
async def test_only_first_terminal_event_counts():
    channel = ProgressChannel()

    await channel.finish({"done": True, "success": True})
    await channel.finish({"done": True, "success": False})
    await channel.emit("late")

    events = [event async for event in channel]

    assert events == [{"done": True, "success": True}]


@pytest.mark.asyncio
async def test_close_without_terminal_ends_iteration():
    channel = ProgressChannel()
    await channel.emit("partial")
    await channel.close()

    assert [event async for event in channel] == [{"message": "partial"}]
    assert channel.terminal is None


@pytest.mark.asyncio
async def test_non_streaming_channel_only_logs(caplog):
    channel = ProgressChannel(stream=False)

    with caplog.at_level(logging.INFO, logger="plansync.sync.progress"):
        await channel.emit("quiet")
        await channel.warn("careful")
        await channel.finish({"done": True})

    assert [event async for event in channel] == []
    assert channel.terminal == {"done": True}
    levels = {r.getMessage(): r.levelno for r in caplog.records}
    assert levels == {"quiet": logging.INFO, "careful": logging.WARNING}
