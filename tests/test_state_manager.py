"""
Tests for conversation state storage and cooldowns.
"""

from src.core.rate_limit import CooldownTracker, wait_message
from src.core.state_manager import ConversationStateManager
from tests.conftest import FakeClock


class TestConversationStateManager:

    def setup_method(self):
        self.clock = FakeClock()
        self.manager = ConversationStateManager(ttl_seconds=300, clock=self.clock)

    def test_set_and_get(self):
        self.manager.set_state("u1", "entry", "c1", "awaiting_reason", {"a": 1})
        state = self.manager.get_state("u1", "entry", "c1")

        assert state.step == "awaiting_reason"
        assert state.data == {"a": 1}

    def test_flows_are_independent(self):
        self.manager.set_state("u1", "entry", "c1", "awaiting_reason")
        self.manager.set_state("u1", "customers", "c1", "awaiting_follower")

        assert self.manager.get_state("u1", "entry", "c1").step == "awaiting_reason"
        assert self.manager.get_state("u1", "customers", "c1").step == "awaiting_follower"

    def test_expired_state_is_deleted_on_read(self):
        self.manager.set_state("u1", "entry", "c1", "awaiting_reason")
        self.clock.advance(301)

        assert self.manager.get_state("u1", "entry", "c1") is None
        assert self.manager.peek("u1", "entry") is None

    def test_other_chat_treated_as_expired(self):
        self.manager.set_state("u1", "entry", "c1", "awaiting_reason")

        assert self.manager.get_state("u1", "entry", "c2") is None
        assert self.manager.peek("u1", "entry") is None

    def test_advancing_keeps_original_expiry(self):
        self.manager.set_state("u1", "entry", "c1", "awaiting_reason")
        self.clock.advance(200)
        self.manager.update_context("u1", "entry", "awaiting_note", {"reason_code": "B"})
        self.clock.advance(101)

        assert self.manager.get_state("u1", "entry", "c1") is None

    def test_clear_user_drops_every_flow(self):
        self.manager.set_state("u1", "entry", "c1", "awaiting_reason")
        self.manager.set_state("u1", "report", "c1", "awaiting_range")
        self.manager.set_state("u2", "entry", "c1", "awaiting_reason")

        assert self.manager.clear_user("u1") == 2
        assert self.manager.peek("u1", "entry") is None
        assert self.manager.peek("u2", "entry") is not None


class TestCooldownTracker:

    def setup_method(self):
        self.clock = FakeClock()
        self.tracker = CooldownTracker("customers", 120, clock=self.clock)

    def test_fresh_user_not_limited(self):
        assert self.tracker.remaining_seconds("u1") == 0

    def test_remaining_rounds_up(self):
        self.tracker.arm("u1")
        self.clock.advance(30.5)
        assert self.tracker.remaining_seconds("u1") == 90

    def test_window_elapses(self):
        self.tracker.arm("u1")
        self.clock.advance(120)
        assert self.tracker.remaining_seconds("u1") == 0

    def test_checking_does_not_arm(self):
        self.tracker.remaining_seconds("u1")
        assert self.tracker.remaining_seconds("u1") == 0

    def test_wait_message(self):
        assert wait_message(42, "customer list") == "Please wait 42s before requesting another customer list."
