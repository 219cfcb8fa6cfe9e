"""
Tests for the message normalizer (AI extraction and rule-based fallback).
"""

import json
from datetime import date

import pytest

from src.agents.message_normalizer import RULE_BASED_MODEL, MessageNormalizer, is_vague_message
from src.core.gemini import GeminiClient
from src.models.schemas import EventBatch, IgnoredMessage
from tests.conftest import FakeGeminiClient, run


def offline_normalizer():
    return MessageNormalizer(GeminiClient(api_key=None, model_name="m", default_model="m"), timezone="UTC")


class TestPreFilter:

    @pytest.mark.parametrize("text", [
        "busy day",
        "Busy day today",
        "lots of chats, many customers",
        "quiet today...",
        "Slow day",
    ])
    def test_vague_chatter(self, text):
        assert is_vague_message(text) is True

    @pytest.mark.parametrize("text", [
        "busy day, Dara called 093724678",
        "busy day with facebook leads",
        "good day, Sophea wants to visit",
    ])
    def test_signal_keeps_message(self, text):
        assert is_vague_message(text) is False

    def test_not_vague_without_phrase(self):
        assert is_vague_message("hello") is False

    def test_vague_message_never_reaches_model(self):
        client = FakeGeminiClient(replies=["[]"])
        result = run(MessageNormalizer(client).normalize("busy day", "1"))

        assert isinstance(result, IgnoredMessage)
        assert client.calls == []

    def test_empty_text_ignored(self):
        assert isinstance(run(offline_normalizer().normalize("   ", "1")), IgnoredMessage)


class TestAiPath:

    def test_one_event_per_customer(self):
        reply = json.dumps([
            {"date": "2025-01-16", "customer": {"name": "Dara", "phone": "093724678"},
             "page": "Facebook", "follower": "Srey", "status_text": "interested"},
            {"date": "2025-01-16", "customer": {"name": "Sophea", "phone": "012345678"},
             "page": None, "follower": "Srey", "status_text": "callback", "is_update": True},
        ])
        client = FakeGeminiClient(replies=[reply])
        result = run(MessageNormalizer(client).normalize("Dara 093724678 and Sophea 012345678", "55"))

        assert isinstance(result, EventBatch)
        assert len(result.events) == 2
        first, second = result.events
        assert first.customer.phone == "093724678"
        assert first.date == date(2025, 1, 16)
        assert first.source.message_id == "55"
        assert first.source.model == "fake-model"
        assert first.is_update is False
        assert second.is_update is True

    def test_fenced_reply(self):
        reply = '```json\n[{"customer": {"name": "Dara", "phone": "093724678"}}]\n```'
        result = run(MessageNormalizer(FakeGeminiClient(replies=[reply])).normalize("Dara 093724678", "1"))
        assert isinstance(result, EventBatch)
        assert result.events[0].customer.name == "Dara"

    def test_ignored_marker(self):
        client = FakeGeminiClient(replies=['{"ignored": true}'])
        result = run(MessageNormalizer(client).normalize("lunch at noon with Team", "1"))
        assert isinstance(result, IgnoredMessage)

    def test_empty_array_is_ignored(self):
        client = FakeGeminiClient(replies=["[]"])
        assert isinstance(run(MessageNormalizer(client).normalize("Dara", "1")), IgnoredMessage)

    def test_legacy_flat_fields(self):
        reply = json.dumps([{
            "date": "2025-01-16", "customer_name": "Dara", "phone_number": "093724678",
            "page": "TikTok", "case_followed_by": "Srey", "comment": "will think",
        }])
        result = run(MessageNormalizer(FakeGeminiClient(replies=[reply])).normalize("x Dara", "1"))

        event = result.events[0]
        assert event.customer.name == "Dara"
        assert event.customer.phone == "093724678"
        assert event.follower == "Srey"
        assert event.status_text == "will think"

    def test_wrong_types_become_null(self):
        reply = json.dumps([{
            "date": 20250116, "customer": {"name": 5, "phone": "093724678"},
            "page": ["fb"], "follower": {"x": 1}, "status_text": True,
            "reason_code": "Z", "is_update": "yes",
        }])
        result = run(MessageNormalizer(FakeGeminiClient(replies=[reply]), timezone="UTC").normalize("Dara", "1"))

        event = result.events[0]
        assert event.customer.name is None
        assert event.customer.phone == "093724678"
        assert event.page is None
        assert event.follower is None
        assert event.status_text is None
        assert event.reason_code is None
        assert event.is_update is False
        assert isinstance(event.date, date)

    def test_model_reason_code_is_dropped(self):
        reply = json.dumps([{"customer": {"name": "Dara", "phone": "093724678"}, "reason_code": "A"}])
        result = run(MessageNormalizer(FakeGeminiClient(replies=[reply])).normalize("Dara 093724678 price high", "1"))

        event = result.events[0]
        assert event.customer.phone == "093724678"
        assert event.reason_code is None

    def test_model_hint_is_forwarded(self):
        client = FakeGeminiClient(replies=['{"ignored": true}'])
        run(MessageNormalizer(client).normalize("Dara", "1", model_hint="gemini-pro"))
        assert client.calls[0]["model"] == "gemini-pro"

    def test_no_json_falls_back_to_rules(self):
        client = FakeGeminiClient(replies=["I could not parse that, sorry"])
        result = run(MessageNormalizer(client).normalize("Dara 093724678 interested", "1"))

        assert isinstance(result, EventBatch)
        assert result.model == RULE_BASED_MODEL

    def test_model_failure_falls_back_to_rules(self):
        client = FakeGeminiClient(replies=[None])
        result = run(MessageNormalizer(client).normalize("Dara 093724678", "1"))
        assert result.events[0].source.model == RULE_BASED_MODEL

    def test_non_list_payload_falls_back(self):
        client = FakeGeminiClient(replies=['{"customer": {"phone": "1"}}'])
        result = run(MessageNormalizer(client).normalize("Dara 093724678", "1"))
        assert result.model == RULE_BASED_MODEL


class TestFallback:

    def test_extracts_all_fields(self):
        text = "Sok Dara 093724678 from facebook, followed by Srey, not interested"
        result = run(offline_normalizer().normalize(text, "9"))

        assert isinstance(result, EventBatch)
        assert len(result.events) == 1
        event = result.events[0]
        assert event.customer.name == "Sok Dara"
        assert event.customer.phone == "093724678"
        assert event.page == "facebook"
        assert event.follower == "Srey"
        assert event.status_text == "not interested"
        assert event.source.model == RULE_BASED_MODEL
        assert event.source.message_id == "9"

    def test_x_following_pattern(self):
        result = run(offline_normalizer().normalize("093724678 Srey following, callback", "1"))
        event = result.events[0]
        assert event.follower == "Srey"
        assert event.status_text == "callback"

    def test_phone_only(self):
        result = run(offline_normalizer().normalize("call back 093724678", "1"))
        assert result.events[0].customer.phone == "093724678"
        assert result.events[0].customer.name is None

    def test_nothing_identifying_is_ignored(self):
        result = run(offline_normalizer().normalize("called 3 people today, no luck", "1"))
        assert isinstance(result, IgnoredMessage)
