"""
test_transcript.py  –  History retrieval and transcript merging.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from models.chat_models import Sender
from services.errors import HistoryUnavailable
from services.transcript_fetcher import TranscriptFetcher
from services.transcript_merger import DIVIDER_TEXT, TranscriptMerger
from utils.time_utils import parse_timestamp

T = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
NOW = T + timedelta(hours=1)


def _merger(now: datetime = NOW) -> TranscriptMerger:
    return TranscriptMerger(clock=lambda: now)


# ─────────────────────────────────────────────────────────────────────
#  TranscriptMerger
# ─────────────────────────────────────────────────────────────────────

class TestMerger:
    def test_single_record(self):
        transcript = _merger().merge([{"request": "hi", "response": "hello", "timestamp": T.isoformat()}])
        assert [(m.sender, m.text, m.timestamp) for m in transcript] == [
            (Sender.USER, "hi", T),
            (Sender.BOT, "hello", T + timedelta(seconds=1)),
            (Sender.SYSTEM, DIVIDER_TEXT, NOW),
        ]

    def test_mixed_records_sorted_with_divider_last(self):
        records = [
            {"messageText": "third", "response": "r3", "createdAt": "2024-03-01T12:10:00Z"},
            {"message_text": "first", "timestamp": int((T - timedelta(minutes=5)).timestamp() * 1000)},
            {"request": "second", "response": "r2", "timestamp": T.isoformat()},
            {"response": "orphan reply", "createdAt": "2024-03-01T12:05:00"},
        ]
        transcript = _merger().merge(records)
        stamps = [m.timestamp for m in transcript]
        assert stamps == sorted(stamps)
        assert [m.text for m in transcript] == ["first", "second", "r2", "orphan reply", "third", "r3", DIVIDER_TEXT]
        assert [m.sender for m in transcript].count(Sender.SYSTEM) == 1
        assert transcript[-1].sender is Sender.SYSTEM

    def test_ids_unique(self):
        records = [{"request": f"q{i}", "response": f"a{i}", "timestamp": T.isoformat()} for i in range(4)]
        ids = [m.id for m in _merger().merge(records)]
        assert len(ids) == len(set(ids))

    def test_equal_timestamps_keep_record_order(self):
        records = [{"request": "a", "timestamp": T.isoformat()}, {"request": "b", "timestamp": T.isoformat()}]
        assert [m.text for m in _merger().merge(records)][:2] == ["a", "b"]

    def test_divider_not_before_future_history(self):
        early_clock = T - timedelta(days=1)
        transcript = _merger(early_clock).merge([{"request": "hi", "response": "yo", "timestamp": T.isoformat()}])
        assert transcript[-1].timestamp == T + timedelta(seconds=1)

    def test_missing_timestamp_uses_now(self):
        transcript = _merger().merge([{"request": "hi"}])
        assert transcript[0].timestamp == NOW

    @pytest.mark.parametrize("records", [[], [{"timestamp": T.isoformat()}], [{"request": "  ", "response": ""}]])
    def test_nothing_to_show(self, records):
        assert _merger().merge(records) == []


# ─────────────────────────────────────────────────────────────────────
#  TranscriptFetcher
# ─────────────────────────────────────────────────────────────────────

class TestFetcher:
    def test_returns_records(self, healthnet, api):
        healthnet.reply("GET", "/chat/getmine", json=[{"request": "hi", "response": "hello"}])
        records = asyncio.run(TranscriptFetcher(api).fetch("tok"))
        assert records == [{"request": "hi", "response": "hello"}]
        assert healthnet.requests[0].headers["Authorization"] == "Bearer tok"

    def test_no_token(self, healthnet, api):
        with pytest.raises(HistoryUnavailable):
            asyncio.run(TranscriptFetcher(api).fetch(None))
        assert healthnet.requests == []

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"status_code": 500, "text": "boom"},
            {"json": {"messages": []}},
            {"json": []},
            {"text": "not json"},
        ],
    )
    def test_unusable_responses(self, healthnet, api, kwargs):
        healthnet.reply("GET", "/chat/getmine", **kwargs)
        with pytest.raises(HistoryUnavailable):
            asyncio.run(TranscriptFetcher(api).fetch("tok"))

    def test_transport_error(self, healthnet, api):
        healthnet.fail("GET", "/chat/getmine")
        with pytest.raises(HistoryUnavailable):
            asyncio.run(TranscriptFetcher(api).fetch("tok"))


# ─────────────────────────────────────────────────────────────────────
#  Timestamp parsing
# ─────────────────────────────────────────────────────────────────────

class TestParseTimestamp:
    @pytest.mark.parametrize(
        "raw, microsecond",
        [
            ("2024-03-01T12:00:00.5", 500000),
            ("2024-03-01T12:00:00.1234Z", 123400),
            ("2024-03-01T12:00:00.123456789+00:00", 123456),
            ("2024-03-01T12:00:00.250", 250000),
        ],
    )
    def test_fraction_of_any_length(self, raw, microsecond):
        assert parse_timestamp(raw) == T.replace(microsecond=microsecond)

    @pytest.mark.parametrize("raw", [None, True, "", "yesterday", {"at": 1}])
    def test_unparseable(self, raw):
        assert parse_timestamp(raw) is None

    def test_java_style_created_at_keeps_reply_after_request(self):
        records = [
            {"request": "a", "response": "ra", "createdAt": "2024-03-01T12:00:00.1234"},
            {"request": "b", "response": "rb", "createdAt": "2024-03-01T12:05:00.987654321"},
        ]
        assert [m.text for m in _merger().merge(records)] == ["a", "ra", "b", "rb", DIVIDER_TEXT]
